"""Dependency providers for request handlers."""

from __future__ import annotations

from fastapi import Request, WebSocket

from fastapi_printqueue.services import PrintQueueServices
from fastapi_printqueue.workers import SweepRunner


def get_services(request: Request) -> PrintQueueServices:
    """Read the service container from FastAPI app state."""
    return request.app.state.printqueue_services


def get_sweeps(request: Request) -> SweepRunner | None:
    """Read the sweep runner from FastAPI app state."""
    return getattr(request.app.state, "printqueue_sweeps", None)


def get_ws_services(websocket: WebSocket) -> PrintQueueServices:
    """Service container for WebSocket handlers."""
    return websocket.app.state.printqueue_services
