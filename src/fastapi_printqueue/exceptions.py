"""Exception hierarchy and FastAPI handlers mapping it to HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class PrintQueueException(Exception):
    """Base class for every error raised by fastapi-printqueue."""

    code = "printqueue_error"
    status_code = 400


class NotFoundError(PrintQueueException):
    code = "not_found"
    status_code = 404
    entity = "Object"

    def __init__(self, object_id: str) -> None:
        self.object_id = object_id
        super().__init__(f"{self.entity} {object_id} not found")


class JobNotFoundError(NotFoundError):
    entity = "Print job"

    @property
    def job_id(self) -> str:
        return self.object_id


class OrderNotFoundError(NotFoundError):
    entity = "Order"


class PrinterNotFoundError(NotFoundError):
    entity = "Printer"


class ShopNotFoundError(NotFoundError):
    entity = "Shop"


class InvalidTransitionError(PrintQueueException):
    """The requested status change is not in the state table."""

    code = "invalid_transition"
    status_code = 409


class TransitionConflictError(PrintQueueException):
    """A guarded transition lost its compare-and-swap.

    Expected under concurrency: callers usually skip the job.
    """

    code = "transition_conflict"
    status_code = 409

    def __init__(
        self,
        job_id: str,
        expected: str,
        actual: str | None,
    ) -> None:
        self.job_id = job_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Print job {job_id} is {actual}, expected {expected}"
        )


class OrderValidationError(PrintQueueException):
    """A platform order payload is missing required fields."""

    code = "invalid_order"
    status_code = 422


class JobValidationError(PrintQueueException):
    """A print job request cannot be queued as given."""

    code = "invalid_job"
    status_code = 422


class DuplicateOrderError(PrintQueueException):
    """An order with the same platform id already exists for the shop."""

    code = "duplicate_order"
    status_code = 409

    def __init__(self, shop_id: str, platform_order_id: str) -> None:
        self.shop_id = shop_id
        self.platform_order_id = platform_order_id
        super().__init__(
            f"Order {platform_order_id} already exists for shop {shop_id}"
        )


class CommunicationError(PrintQueueException):
    """An external collaborator could not be reached or answered badly."""

    code = "communication_error"
    status_code = 502


class ReauthorizationRequired(CommunicationError):
    """The marketplace rejected the shop token; refresh it and retry."""

    code = "needs_reauthorization"
    status_code = 401


class InvalidWebhookError(PrintQueueException):
    """Webhook signature or timestamp did not verify."""

    code = "invalid_webhook"
    status_code = 401


class InvalidOAuthStateError(PrintQueueException):
    """The OAuth state is unknown, already used or expired."""

    code = "invalid_state"


class PrinterChannelError(CommunicationError):
    """The printer agent is not connected or did not accept the message."""

    code = "printer_unreachable"


class PrinterBusyError(PrintQueueException):
    """The printer still has pending jobs."""

    code = "printer_busy"

    def __init__(self, printer_id: str, pending: int) -> None:
        self.printer_id = printer_id
        self.pending = pending
        super().__init__(
            f"Printer {printer_id} has {pending} pending job(s)"
        )


def register_exception_handlers(app: FastAPI) -> None:
    """Register printqueue exception handlers on a FastAPI app.

    Every ``PrintQueueException`` subclass carries its own HTTP status and
    error code, so one handler on the base class covers the hierarchy.
    """

    @app.exception_handler(PrintQueueException)
    async def _printqueue_error(
        request: Request,
        exc: PrintQueueException,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": str(exc),
                "code": exc.code,
            },
        )
