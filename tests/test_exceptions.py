"""Exception handler tests."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from fastapi_printqueue.exceptions import (
    CommunicationError,
    InvalidTransitionError,
    InvalidWebhookError,
    JobNotFoundError,
    OrderValidationError,
    PrinterBusyError,
    PrinterChannelError,
    PrintQueueException,
    ReauthorizationRequired,
    TransitionConflictError,
    register_exception_handlers,
)


def _create_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)
    return app


def _raise(exc: Exception):
    app = _create_app()

    @app.get("/boom")
    async def boom():
        raise exc

    client = TestClient(app, raise_server_exceptions=False)
    return client.get("/boom")


def test_job_not_found_error_has_job_id() -> None:
    exc = JobNotFoundError("job-42")
    assert exc.job_id == "job-42"
    assert "job-42" in str(exc)


def test_transition_conflict_keeps_statuses() -> None:
    exc = TransitionConflictError("job-1", "pending", "processing")
    assert exc.job_id == "job-1"
    assert exc.expected == "pending"
    assert exc.actual == "processing"


def test_communication_error_returns_502() -> None:
    resp = _raise(CommunicationError("marketplace timeout"))
    assert resp.status_code == 502
    body = resp.json()
    assert body["detail"] == "marketplace timeout"
    assert body["code"] == "communication_error"


def test_reauthorization_required_returns_401() -> None:
    resp = _raise(ReauthorizationRequired("token expired"))
    assert resp.status_code == 401
    assert resp.json()["code"] == "needs_reauthorization"


def test_printer_channel_error_is_a_communication_error() -> None:
    assert issubclass(PrinterChannelError, CommunicationError)
    resp = _raise(PrinterChannelError("agent gone"))
    assert resp.status_code == 502
    assert resp.json()["code"] == "printer_unreachable"


def test_invalid_webhook_returns_401() -> None:
    resp = _raise(InvalidWebhookError("bad signature"))
    assert resp.status_code == 401
    assert resp.json() == {
        "detail": "bad signature",
        "code": "invalid_webhook",
    }


def test_invalid_transition_returns_409() -> None:
    resp = _raise(InvalidTransitionError("cannot cancel"))
    assert resp.status_code == 409
    assert resp.json()["code"] == "invalid_transition"


def test_order_validation_returns_422() -> None:
    resp = _raise(OrderValidationError("missing recipient"))
    assert resp.status_code == 422
    assert resp.json()["code"] == "invalid_order"


def test_job_not_found_returns_404() -> None:
    resp = _raise(JobNotFoundError("job-99"))
    assert resp.status_code == 404
    body = resp.json()
    assert body["detail"] == "Print job job-99 not found"
    assert body["code"] == "not_found"


def test_printer_busy_returns_400() -> None:
    resp = _raise(PrinterBusyError("printer-1", 2))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Printer printer-1 has 2 pending job(s)"


def test_generic_printqueue_exception_returns_400() -> None:
    resp = _raise(PrintQueueException("something broke"))
    assert resp.status_code == 400
    body = resp.json()
    assert body["detail"] == "something broke"
    assert body["code"] == "printqueue_error"
