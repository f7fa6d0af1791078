"""Job dispatcher: claims pending jobs and pushes them to printer agents."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from fastapi_printqueue.channel import PrinterChannel, build_print_command
from fastapi_printqueue.completion import CompletionHandler
from fastapi_printqueue.exceptions import (
    PrinterChannelError,
    TransitionConflictError,
)
from fastapi_printqueue.fsm import JobStatus, PrinterStatus
from fastapi_printqueue.liveness import PrinterLivenessTracker
from fastapi_printqueue.protocols import Printer
from fastapi_printqueue.queue import PrintQueue

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class DispatchReport:
    printers: int = 0
    dispatched: int = 0
    errors: dict[str, str] = field(default_factory=dict)


class JobDispatcher:
    """One dispatch pass per reachable printer.

    Claims are guarded transitions, so several dispatchers may sweep the
    same queue without sending a job twice.
    """

    def __init__(
        self,
        queue: PrintQueue,
        liveness: PrinterLivenessTracker,
        channel: PrinterChannel,
        completion: CompletionHandler,
        *,
        batch_size: int = 5,
        inter_job_delay: float = 1.0,
        push_timeout: float = 5.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.queue = queue
        self.liveness = liveness
        self.channel = channel
        self.completion = completion
        self.batch_size = batch_size
        self.inter_job_delay = inter_job_delay
        self.push_timeout = push_timeout
        self.sleep = sleep

    async def dispatch_for(self, printer: Printer) -> int:
        """Send up to ``batch_size`` jobs to ``printer``; return how many."""
        if not self.liveness.is_dispatchable(printer):
            logger.warning(
                "Printer %s appears offline - last seen %s",
                printer.name,
                printer.last_seen_at.isoformat(),
            )
            await self.liveness.mark_offline(printer.id)
            return 0

        jobs = await self.queue.list_pending(printer.id, self.batch_size)
        sent = 0
        for job in jobs:
            try:
                claimed = await self.queue.transition(
                    job.id,
                    JobStatus.PROCESSING,
                    from_status=job.status,
                    detail={"printerId": printer.id},
                )
            except TransitionConflictError:
                logger.debug("Print job %s already claimed", job.id)
                continue

            if sent:
                # Physical printers queue one job at a time.
                await self.sleep(self.inter_job_delay)

            try:
                async with asyncio.timeout(self.push_timeout):
                    await self.channel.send(
                        printer.id, build_print_command(claimed)
                    )
            except (PrinterChannelError, TimeoutError) as exc:
                error = (
                    f"Could not deliver job to printer {printer.name}: "
                    f"{str(exc) or 'timed out'}"
                )
                logger.error("Print job %s: %s", job.id, error)
                await self.completion.apply_failure(claimed, error)
                continue

            sent += 1
            logger.info(
                "Print job %s sent to printer %s", job.id, printer.name
            )
        return sent

    async def run_once(self) -> DispatchReport:
        """Dispatch for every online printer concurrently."""
        printers = await self.liveness.printers.list_by_status(
            PrinterStatus.ONLINE
        )
        report = DispatchReport(printers=len(printers))
        if not printers:
            logger.debug("No online printers found for processing")
            return report

        results = await asyncio.gather(
            *(self.dispatch_for(printer) for printer in printers),
            return_exceptions=True,
        )
        for printer, result in zip(printers, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Dispatch failed for printer %s: %s",
                    printer.name,
                    result,
                    exc_info=result,
                )
                report.errors[printer.id] = str(result)
            else:
                report.dispatched += result

        if report.dispatched or report.errors:
            logger.info(
                "Dispatch pass completed: %d job(s) sent, %d printer error(s)",
                report.dispatched,
                len(report.errors),
            )
        return report
