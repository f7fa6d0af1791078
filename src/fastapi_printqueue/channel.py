"""Live channels to desktop printer agents."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from fastapi import WebSocket

from fastapi_printqueue.exceptions import PrinterChannelError

logger = logging.getLogger(__name__)

PRINT_COMMAND = "print-command"
HEARTBEAT = "heartbeat"
JOB_RESULT = "job-result"


@runtime_checkable
class PrinterChannel(Protocol):
    """Pushes messages to the agent bound to a printer."""

    def is_connected(self, printer_id: str) -> bool: ...

    async def send(self, printer_id: str, message: dict[str, Any]) -> None: ...


class WebSocketChannelHub:
    """One WebSocket per printer; a reconnect replaces the old socket."""

    def __init__(self) -> None:
        self._sockets: dict[str, WebSocket] = {}

    async def connect(self, printer_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        previous = self._sockets.get(printer_id)
        self._sockets[printer_id] = websocket
        logger.info("Printer agent connected: %s", printer_id)
        if previous is not None and previous is not websocket:
            try:
                await previous.close()
            except Exception:
                logger.debug(
                    "Previous socket for printer %s already closed",
                    printer_id,
                )

    def disconnect(self, printer_id: str, websocket: WebSocket) -> None:
        if self._sockets.get(printer_id) is websocket:
            del self._sockets[printer_id]
            logger.info("Printer agent disconnected: %s", printer_id)

    def is_connected(self, printer_id: str) -> bool:
        return printer_id in self._sockets

    def connected_printers(self) -> list[str]:
        return list(self._sockets)

    async def send(self, printer_id: str, message: dict[str, Any]) -> None:
        websocket = self._sockets.get(printer_id)
        if websocket is None:
            raise PrinterChannelError(f"Printer {printer_id} is not connected")
        try:
            await websocket.send_json(message)
        except Exception as exc:
            self.disconnect(printer_id, websocket)
            raise PrinterChannelError(
                f"Could not deliver to printer {printer_id}: {exc}"
            ) from exc


def build_print_command(job: Any) -> dict[str, Any]:
    """Message sent to the agent when a job is dispatched."""
    return {
        "type": PRINT_COMMAND,
        "jobId": job.id,
        "orderId": job.order_id,
        "printerId": job.printer_id,
        "template": job.template_id,
        "payload": job.payload,
        "priority": job.priority,
    }
