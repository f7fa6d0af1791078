"""Health endpoint."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from fastapi_printqueue.dependencies import get_services, get_sweeps

router = APIRouter()


@router.get("/health")
async def health(
    services=Depends(get_services),
    sweeps=Depends(get_sweeps),
) -> dict[str, Any]:
    """Process liveness plus the state of each background sweep."""
    return {
        "status": "ok",
        "connected_printers": len(services.channel.connected_printers()),
        "workers": sweeps.status() if sweeps is not None else {},
    }
