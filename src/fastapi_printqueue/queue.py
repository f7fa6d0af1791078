"""Print queue store: enqueue, priority listing and guarded transitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from fastapi_printqueue.clock import Clock, utcnow
from fastapi_printqueue.exceptions import (
    InvalidTransitionError,
    JobValidationError,
    TransitionConflictError,
)
from fastapi_printqueue.fsm import (
    EVENT_FOR_STATUS,
    PENDING_STATUSES,
    TERMINAL_JOB_STATUSES,
    HistoryEventType,
    JobStatus,
    Priority,
    ensure_job_transition,
)
from fastapi_printqueue.history import PrintHistoryLogger
from fastapi_printqueue.protocols import Order, PrintJob, PrintJobRepository

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3


@dataclass
class JobSpec:
    """What the caller wants printed, where, and how urgently."""

    user_id: str
    printer_id: str
    order_id: str | None = None
    shop_id: str | None = None
    template_id: str | None = None
    priority: str = Priority.NORMAL
    payload: dict[str, Any] = field(default_factory=dict)
    max_retries: int | None = None


@dataclass(frozen=True)
class QueueStats:
    total: int
    today: int
    pending: int
    processing: int
    completed: int
    failed: int
    retrying: int
    cancelled: int


def snapshot_order(order: Order, **extra: Any) -> dict[str, Any]:
    """Denormalize the order fields a printer agent needs at send time."""
    return {
        "orderNumber": order.order_number,
        "customerName": order.customer_name,
        "customerEmail": order.customer_email,
        "customerPhone": order.customer_phone,
        "shippingAddress": dict(order.shipping_address or {}),
        "items": list(order.items or []),
        "orderTotal": order.order_total,
        "currency": order.currency,
        **extra,
    }


class PrintQueue:
    """Single source of truth for print job state.

    Every status write goes through :meth:`transition`, which checks the
    state table and then performs a compare-and-swap on the stored status.
    """

    def __init__(
        self,
        jobs: PrintJobRepository,
        history: PrintHistoryLogger,
        *,
        default_max_retries: int = DEFAULT_MAX_RETRIES,
        clock: Clock = utcnow,
    ) -> None:
        self.jobs = jobs
        self.history = history
        self.default_max_retries = default_max_retries
        self.clock = clock

    async def enqueue(self, spec: JobSpec) -> PrintJob:
        if not spec.printer_id:
            raise JobValidationError("A print job needs a target printer")
        try:
            priority = Priority(spec.priority)
        except ValueError as e:
            raise JobValidationError(
                f"Unknown priority {spec.priority!r}"
            ) from e
        max_retries = (
            self.default_max_retries
            if spec.max_retries is None
            else spec.max_retries
        )
        if max_retries < 0:
            raise JobValidationError("max_retries cannot be negative")

        now = self.clock()
        job = await self.jobs.create(
            order_id=spec.order_id,
            user_id=spec.user_id,
            shop_id=spec.shop_id,
            template_id=spec.template_id,
            printer_id=spec.printer_id,
            priority=str(priority),
            status=str(JobStatus.PENDING),
            retry_count=0,
            max_retries=max_retries,
            payload=dict(spec.payload),
            created_at=now,
            updated_at=now,
        )
        logger.info("Print job added to queue: %s", job.id)
        await self.history.append(
            job.id,
            HistoryEventType.CREATED,
            None,
            JobStatus.PENDING,
            {
                "orderId": spec.order_id,
                "templateId": spec.template_id,
                "priority": str(priority),
            },
            printer_id=spec.printer_id,
        )
        return job

    async def get(self, job_id: str) -> PrintJob:
        return await self.jobs.get_by_id(job_id)

    async def list_pending(
        self, printer_id: str, limit: int = 10
    ) -> list[PrintJob]:
        """Jobs waiting for ``printer_id``: priority first, then oldest."""
        return await self.jobs.list_pending(printer_id, limit, self.clock())

    async def transition(
        self,
        job_id: str,
        to_status: JobStatus | str,
        *,
        from_status: JobStatus | str | None = None,
        detail: dict[str, Any] | None = None,
        **fields: Any,
    ) -> PrintJob:
        """Move a job to ``to_status``.

        Raises ``TransitionConflictError`` (and changes nothing) when the job
        is not in ``from_status`` or a concurrent writer changes it first,
        and ``InvalidTransitionError`` for moves outside the state table.
        """
        target = JobStatus(to_status)
        job = await self.jobs.get_by_id(job_id)
        current = JobStatus(job.status)
        if from_status is not None and current != JobStatus(from_status):
            raise TransitionConflictError(job_id, str(from_status), current)
        ensure_job_transition(current, target)

        retry_count = fields.get("retry_count", job.retry_count)
        if retry_count > job.max_retries:
            raise InvalidTransitionError(
                f"Print job {job_id} cannot exceed {job.max_retries} retries"
            )
        if target == JobStatus.RETRYING and retry_count >= job.max_retries:
            raise InvalidTransitionError(
                f"Print job {job_id} has no retries left"
            )

        now = self.clock()
        values: dict[str, Any] = {
            "status": str(target),
            "updated_at": now,
            **fields,
        }
        if target == JobStatus.PROCESSING:
            values["started_at"] = now
            values["next_attempt_at"] = None
        elif target == JobStatus.COMPLETED:
            values["completed_at"] = now
        elif target == JobStatus.FAILED:
            values["failed_at"] = now

        updated = await self.jobs.compare_and_set(job_id, current, **values)
        if updated is None:
            latest = await self.jobs.get_by_id(job_id)
            raise TransitionConflictError(job_id, current, latest.status)

        logger.info("Print job %s: %s -> %s", job_id, current, target)
        await self.history.append(
            job_id,
            EVENT_FOR_STATUS.get(target, HistoryEventType.STATUS_CHANGED),
            current,
            target,
            detail,
            printer_id=updated.printer_id,
        )
        return updated

    async def cancel_for_order(
        self, order_id: str, reason: str
    ) -> list[PrintJob]:
        """Cancel the order's jobs that have not been sent yet.

        Jobs already ``processing`` keep running; there is no way to recall
        a job from a printer agent.
        """
        cancelled = []
        for job in await self.jobs.list_by_order(order_id, PENDING_STATUSES):
            try:
                cancelled.append(
                    await self.transition(
                        job.id,
                        JobStatus.CANCELLED,
                        from_status=job.status,
                        detail={"reason": reason},
                        error_message=reason,
                    )
                )
            except TransitionConflictError:
                logger.info(
                    "Print job %s changed state before it could be "
                    "cancelled",
                    job.id,
                )
        return cancelled

    async def cleanup(self, retention_days: int = 30) -> int:
        """Delete terminal jobs created more than ``retention_days`` ago."""
        cutoff = self.clock() - timedelta(days=retention_days)
        deleted = await self.jobs.delete_terminal_before(
            TERMINAL_JOB_STATUSES, cutoff
        )
        logger.info(
            "Cleaned up %d print jobs older than %d days",
            deleted,
            retention_days,
        )
        return deleted

    async def history_for_user(
        self,
        user_id: str,
        *,
        status: str | None = None,
        printer_id: str | None = None,
        limit: int | None = None,
    ) -> list[PrintJob]:
        return await self.jobs.list_for_user(
            user_id, status=status, printer_id=printer_id, limit=limit
        )

    async def stats(self, user_id: str) -> QueueStats:
        counts = await self.jobs.status_counts(user_id)
        today = await self.jobs.status_counts(
            user_id, since=_start_of_day(self.clock())
        )
        return QueueStats(
            total=sum(counts.values()),
            today=sum(today.values()),
            pending=counts.get(JobStatus.PENDING, 0),
            processing=counts.get(JobStatus.PROCESSING, 0),
            completed=counts.get(JobStatus.COMPLETED, 0),
            failed=counts.get(JobStatus.FAILED, 0),
            retrying=counts.get(JobStatus.RETRYING, 0),
            cancelled=counts.get(JobStatus.CANCELLED, 0),
        )


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)
