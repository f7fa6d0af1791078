"""Completion callbacks, bounded retry and the stale-job sweep."""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi_printqueue.clock import Clock, utcnow
from fastapi_printqueue.exceptions import TransitionConflictError
from fastapi_printqueue.fsm import (
    PRINTABLE_ORDER_STATUSES,
    JobStatus,
    OrderStatus,
)
from fastapi_printqueue.protocols import OrderRepository, PrintJob
from fastapi_printqueue.queue import PrintQueue

logger = logging.getLogger(__name__)

STALE_JOB_ERROR = "Job timed out - no response from printer"


class CompletionHandler:
    """Applies printer agent results and the retry policy to the queue.

    A failed attempt goes back to ``retrying`` while attempts remain and to
    ``failed`` once ``retry_count`` reaches ``max_retries``.
    """

    def __init__(
        self,
        queue: PrintQueue,
        orders: OrderRepository,
        *,
        retry_backoff: timedelta = timedelta(0),
        clock: Clock = utcnow,
    ) -> None:
        self.queue = queue
        self.orders = orders
        self.retry_backoff = retry_backoff
        self.clock = clock

    async def complete(
        self,
        job_id: str,
        success: bool,
        error: str | None = None,
    ) -> PrintJob:
        """Record the outcome of a dispatched job.

        Callbacks for jobs that are no longer ``processing`` (duplicates,
        late results after a timeout) leave everything untouched.
        """
        job = await self.queue.get(job_id)
        if job.status != JobStatus.PROCESSING:
            logger.info(
                "Ignoring result for print job %s in status %s",
                job_id,
                job.status,
            )
            return job

        if not success:
            return await self.apply_failure(
                job, error or "Printer reported a failure"
            )

        try:
            job = await self.queue.transition(
                job_id,
                JobStatus.COMPLETED,
                from_status=JobStatus.PROCESSING,
                error_message=None,
            )
        except TransitionConflictError:
            logger.info("Print job %s was finished concurrently", job_id)
            return await self.queue.get(job_id)

        logger.info("Print job %s completed successfully", job_id)
        if job.order_id:
            await self._mark_order_printed(job.order_id)
        return job

    async def apply_failure(self, job: PrintJob, error: str) -> PrintJob:
        """Fail one attempt of a ``processing`` job."""
        attempts = job.retry_count + 1
        try:
            if attempts < job.max_retries:
                next_attempt_at = (
                    self.clock() + self.retry_backoff
                    if self.retry_backoff
                    else None
                )
                updated = await self.queue.transition(
                    job.id,
                    JobStatus.RETRYING,
                    from_status=JobStatus.PROCESSING,
                    detail={"error": error, "attempt": attempts},
                    retry_count=attempts,
                    error_message=None,
                    next_attempt_at=next_attempt_at,
                )
                logger.warning(
                    "Print job %s failed (attempt %d/%d), retrying: %s",
                    job.id,
                    attempts,
                    job.max_retries,
                    error,
                )
                return updated

            updated = await self.queue.transition(
                job.id,
                JobStatus.FAILED,
                from_status=JobStatus.PROCESSING,
                detail={"error": error, "attempt": attempts},
                retry_count=min(attempts, job.max_retries),
                error_message=error,
            )
        except TransitionConflictError:
            logger.info("Print job %s was finished concurrently", job.id)
            return await self.queue.get(job.id)

        logger.error(
            "Print job %s failed permanently after %d attempt(s): %s",
            job.id,
            attempts,
            error,
        )
        return updated

    async def sweep_stale(
        self, stale_after: timedelta = timedelta(minutes=10)
    ) -> list[PrintJob]:
        """Fail jobs stuck in ``processing`` longer than ``stale_after``."""
        cutoff = self.clock() - stale_after
        stale = await self.queue.jobs.list_stale(cutoff)
        if stale:
            logger.warning("Found %d stale processing jobs", len(stale))

        swept = []
        for job in stale:
            try:
                swept.append(await self.apply_failure(job, STALE_JOB_ERROR))
            except Exception:
                logger.exception(
                    "Failed to recover stale print job %s", job.id
                )
        return swept

    async def _mark_order_printed(self, order_id: str) -> None:
        now = self.clock()
        order = await self.orders.compare_and_set_status(
            order_id,
            PRINTABLE_ORDER_STATUSES,
            OrderStatus.PRINTED,
            printed_at=now,
            updated_at=now,
        )
        if order is None:
            logger.debug("Order %s was already printed", order_id)
        else:
            logger.info("Order %s marked as printed", order_id)
