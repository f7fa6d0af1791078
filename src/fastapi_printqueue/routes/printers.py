"""Printer agent endpoints and the live printer channel."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from fastapi_printqueue.channel import HEARTBEAT, JOB_RESULT
from fastapi_printqueue.dependencies import get_services, get_ws_services
from fastapi_printqueue.exceptions import (
    PrinterNotFoundError,
    PrintQueueException,
)
from fastapi_printqueue.schemas import (
    HeartbeatRequest,
    JobCallbackRequest,
    PrinterResponse,
    PrinterStatsResponse,
    PrintJobResponse,
    QueueTestPrintRequest,
    RegisterPrinterRequest,
    RegisterPrinterResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/printers/register", response_model=RegisterPrinterResponse)
async def register_printer(
    body: RegisterPrinterRequest,
    services=Depends(get_services),
) -> RegisterPrinterResponse:
    """Create or refresh a printer for the agent's device id."""
    printer, created = await services.liveness.register(
        body.user_id,
        body.device_id,
        body.name,
        body.type,
        body.capabilities,
    )
    return RegisterPrinterResponse(
        created=created,
        printer=PrinterResponse.from_printer(printer, is_online=True),
    )


@router.get("/printers", response_model=list[PrinterResponse])
async def list_printers(
    user_id: str,
    services=Depends(get_services),
) -> list[PrinterResponse]:
    """User's printers with ``is_online`` by the display window."""
    return [
        PrinterResponse.from_printer(printer, is_online=online)
        for printer, online in await services.liveness.list_for_user(user_id)
    ]


@router.put("/printers/{printer_id}/heartbeat", response_model=PrinterResponse)
async def heartbeat(
    printer_id: str,
    body: HeartbeatRequest,
    services=Depends(get_services),
) -> PrinterResponse:
    printer = await services.liveness.heartbeat(
        printer_id, body.status, body.job_count
    )
    return PrinterResponse.from_printer(printer, is_online=True)


@router.delete("/printers/{printer_id}")
async def delete_printer(
    printer_id: str,
    user_id: str,
    services=Depends(get_services),
) -> dict[str, str]:
    """Delete a printer that has no pending jobs."""
    await services.liveness.delete(printer_id, user_id)
    return {"status": "deleted"}


@router.get(
    "/printers/{printer_id}/stats", response_model=PrinterStatsResponse
)
async def printer_stats(
    printer_id: str,
    user_id: str,
    since: datetime | None = None,
    services=Depends(get_services),
) -> PrinterStatsResponse:
    """Completed and failed jobs for one printer, from the history log."""
    printer = await services.liveness.printers.get_by_id(printer_id)
    if printer.user_id != user_id:
        raise PrinterNotFoundError(printer_id)
    stats = await services.history.failure_stats(since, printer_id=printer_id)
    return PrinterStatsResponse(
        printer_id=printer_id,
        completed=stats.completed,
        failed=stats.failed,
        failure_rate=stats.failure_rate,
        is_online=services.liveness.is_online(printer),
    )


@router.post(
    "/printers/{printer_id}/test-print", response_model=PrintJobResponse
)
async def test_print(
    printer_id: str,
    body: QueueTestPrintRequest,
    services=Depends(get_services),
) -> PrintJobResponse:
    job = await services.orders.test_print(
        printer_id, body.user_id, body.template_id
    )
    return PrintJobResponse.from_job(job)


@router.post("/printers/jobs/callback", response_model=PrintJobResponse)
async def job_callback(
    body: JobCallbackRequest,
    services=Depends(get_services),
) -> PrintJobResponse:
    """Completion report from an agent that is not on the live channel."""
    job = await services.completion.complete(
        body.job_id, body.success, body.error_message
    )
    return PrintJobResponse.from_job(job)


@router.websocket("/printers/{printer_id}/ws")
async def printer_channel(
    websocket: WebSocket,
    printer_id: str,
    services=Depends(get_ws_services),
) -> None:
    """Live channel: print commands out, heartbeats and job results in."""
    try:
        await services.liveness.printers.get_by_id(printer_id)
    except PrinterNotFoundError:
        await websocket.close(code=1008)
        return

    hub = services.channel
    await hub.connect(printer_id, websocket)
    try:
        while True:
            message = await websocket.receive_json()
            try:
                await handle_agent_message(services, printer_id, message)
            except (PrintQueueException, ValueError) as exc:
                logger.warning(
                    "Rejected message from printer %s: %s", printer_id, exc
                )
                await websocket.send_json(
                    {"type": "error", "detail": str(exc)}
                )
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(printer_id, websocket)


async def handle_agent_message(
    services, printer_id: str, message: dict[str, Any]
) -> None:
    if not isinstance(message, dict):
        raise ValueError("Agent messages must be JSON objects")
    kind = message.get("type")
    if kind == HEARTBEAT:
        await services.liveness.heartbeat(
            printer_id,
            message.get("status") or "online",
            int(message.get("jobCount") or 0),
        )
    elif kind == JOB_RESULT:
        job = await services.queue.get(str(message.get("jobId")))
        if job.printer_id != printer_id:
            raise ValueError(
                f"Print job {job.id} is not assigned to printer {printer_id}"
            )
        await services.completion.complete(
            job.id,
            bool(message.get("success")),
            message.get("errorMessage"),
        )
    else:
        raise ValueError(f"Unknown message type {kind!r}")
