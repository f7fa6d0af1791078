"""Print history logger: best-effort audit trail of job transitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from fastapi_printqueue.clock import Clock, utcnow
from fastapi_printqueue.fsm import HistoryEventType
from fastapi_printqueue.protocols import HistoryEvent, HistoryStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailureStats:
    completed: int
    failed: int

    @property
    def total(self) -> int:
        return self.completed + self.failed

    @property
    def failure_rate(self) -> float:
        if not self.total:
            return 0.0
        return self.failed / self.total


class PrintHistoryLogger:
    """Append-only job history.

    ``append`` never raises: queue state is authoritative and a lost history
    row must not undo or block the transition it describes.
    """

    def __init__(self, store: HistoryStore, clock: Clock = utcnow) -> None:
        self.store = store
        self.clock = clock

    async def append(
        self,
        job_id: str,
        event_type: HistoryEventType,
        from_status: str | None,
        to_status: str | None,
        detail: dict | None = None,
        *,
        printer_id: str | None = None,
    ) -> HistoryEvent | None:
        try:
            return await self.store.add(
                job_id=job_id,
                printer_id=printer_id,
                event_type=str(event_type),
                from_status=str(from_status) if from_status else None,
                to_status=str(to_status) if to_status else None,
                detail=detail or {},
                created_at=self.clock(),
            )
        except Exception:
            logger.exception(
                "Failed to record %s history event for job %s",
                event_type,
                job_id,
            )
            return None

    async def timeline(self, job_id: str) -> list[HistoryEvent]:
        return await self.store.list_for_job(job_id)

    async def printer_throughput(
        self, printer_id: str, since: datetime | None = None
    ) -> int:
        """Number of jobs a printer completed since ``since``."""
        return await self.store.count_events(
            HistoryEventType.COMPLETED, since=since, printer_id=printer_id
        )

    async def failure_stats(
        self,
        since: datetime | None = None,
        printer_id: str | None = None,
    ) -> FailureStats:
        completed = await self.store.count_events(
            HistoryEventType.COMPLETED, since=since, printer_id=printer_id
        )
        failed = await self.store.count_events(
            HistoryEventType.FAILED, since=since, printer_id=printer_id
        )
        return FailureStats(completed=completed, failed=failed)
