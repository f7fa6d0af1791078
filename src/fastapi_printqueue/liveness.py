"""Printer registration, heartbeats and online/offline bookkeeping."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from fastapi_printqueue.clock import Clock, utcnow
from fastapi_printqueue.exceptions import (
    PrinterBusyError,
    PrinterNotFoundError,
)
from fastapi_printqueue.fsm import PrinterStatus
from fastapi_printqueue.protocols import (
    Printer,
    PrinterRepository,
    PrintJobRepository,
)

logger = logging.getLogger(__name__)

DISPATCH_WINDOW = timedelta(minutes=2)
DISPLAY_WINDOW = timedelta(minutes=5)


class PrinterLivenessTracker:
    """Derives printer reachability from ``last_seen_at``.

    Two windows apply: a printer is shown as online for five minutes after
    its last heartbeat, but only receives jobs for two.
    """

    def __init__(
        self,
        printers: PrinterRepository,
        jobs: PrintJobRepository,
        *,
        dispatch_window: timedelta = DISPATCH_WINDOW,
        display_window: timedelta = DISPLAY_WINDOW,
        clock: Clock = utcnow,
    ) -> None:
        self.printers = printers
        self.jobs = jobs
        self.dispatch_window = dispatch_window
        self.display_window = display_window
        self.clock = clock

    async def register(
        self,
        user_id: str,
        device_id: str,
        name: str,
        type: str,
        capabilities: dict[str, Any] | None = None,
    ) -> tuple[Printer, bool]:
        """Create or refresh the printer for ``(user_id, device_id)``.

        Returns the printer and whether it was newly created.
        """
        now = self.clock()
        fields = {
            "name": name,
            "type": type,
            "capabilities": capabilities or {},
            "status": str(PrinterStatus.ONLINE),
            "last_seen_at": now,
            "updated_at": now,
        }
        existing = await self.printers.get_by_device(user_id, device_id)
        if existing is not None:
            return await self.printers.update(existing.id, **fields), False

        printer = await self.printers.create(
            user_id=user_id, device_id=device_id, created_at=now, **fields
        )
        logger.info("New printer registered: %s (%s)", name, type)
        return printer, True

    async def heartbeat(
        self,
        printer_id: str,
        status: str = PrinterStatus.ONLINE,
        job_count: int = 0,
    ) -> Printer:
        now = self.clock()
        return await self.printers.update(
            printer_id,
            status=str(PrinterStatus(status)),
            last_seen_at=now,
            current_job_count=job_count,
            updated_at=now,
        )

    def is_dispatchable(
        self, printer: Printer, now: datetime | None = None
    ) -> bool:
        now = now or self.clock()
        return now - printer.last_seen_at <= self.dispatch_window

    def is_online(self, printer: Printer, now: datetime | None = None) -> bool:
        now = now or self.clock()
        return now - printer.last_seen_at <= self.display_window

    async def mark_offline(self, printer_id: str) -> Printer:
        printer = await self.printers.get_by_id(printer_id)
        if printer.status == PrinterStatus.OFFLINE:
            return printer
        logger.info("Printer %s marked as offline", printer_id)
        return await self.printers.update(
            printer_id,
            status=str(PrinterStatus.OFFLINE),
            updated_at=self.clock(),
        )

    async def sweep(self) -> list[str]:
        """Mark online printers silent past the display window offline."""
        now = self.clock()
        marked = []
        online = await self.printers.list_by_status(PrinterStatus.ONLINE)
        for printer in online:
            if self.is_online(printer, now):
                continue
            try:
                await self.mark_offline(printer.id)
            except PrinterNotFoundError:
                continue
            marked.append(printer.id)
        if marked:
            logger.info(
                "Liveness sweep marked %d printer(s) offline", len(marked)
            )
        return marked

    async def list_for_user(self, user_id: str) -> list[tuple[Printer, bool]]:
        """User's printers paired with their display-window online flag."""
        now = self.clock()
        return [
            (printer, self.is_online(printer, now))
            for printer in await self.printers.list_by_user(user_id)
        ]

    async def delete(self, printer_id: str, user_id: str) -> None:
        printer = await self.printers.get_by_id(printer_id)
        if printer.user_id != user_id:
            raise PrinterNotFoundError(printer_id)
        pending = await self.jobs.count_pending(printer_id)
        if pending:
            raise PrinterBusyError(printer_id, pending)
        await self.printers.delete(printer_id)
        logger.info("Printer %s deleted by user %s", printer_id, user_id)
