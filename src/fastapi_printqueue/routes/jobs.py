"""Print job reporting endpoints."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from fastapi_printqueue.dependencies import get_services
from fastapi_printqueue.schemas import (
    HistoryEventResponse,
    PrintJobResponse,
    QueueStatsResponse,
)

router = APIRouter()


@router.get("/jobs", response_model=list[PrintJobResponse])
async def list_jobs(
    user_id: str,
    status: str | None = None,
    printer_id: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    services=Depends(get_services),
) -> list[PrintJobResponse]:
    jobs = await services.queue.history_for_user(
        user_id, status=status, printer_id=printer_id, limit=limit
    )
    return [PrintJobResponse.from_job(job) for job in jobs]


@router.get("/jobs/stats", response_model=QueueStatsResponse)
async def job_stats(
    user_id: str,
    services=Depends(get_services),
) -> QueueStatsResponse:
    stats = await services.queue.stats(user_id)
    return QueueStatsResponse(**asdict(stats))


@router.get(
    "/jobs/{job_id}/history", response_model=list[HistoryEventResponse]
)
async def job_history(
    job_id: str,
    services=Depends(get_services),
) -> list[HistoryEventResponse]:
    """Lifecycle events of one job, oldest first."""
    job = await services.queue.get(job_id)
    events = await services.history.timeline(job.id)
    return [HistoryEventResponse.from_event(event) for event in events]
