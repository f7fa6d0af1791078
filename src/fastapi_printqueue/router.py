"""Router factory for fastapi-printqueue."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI

from fastapi_printqueue.exceptions import register_exception_handlers
from fastapi_printqueue.routes.health import router as health_router
from fastapi_printqueue.routes.jobs import router as jobs_router
from fastapi_printqueue.routes.orders import router as orders_router
from fastapi_printqueue.routes.printers import router as printers_router
from fastapi_printqueue.routes.shops import router as shops_router
from fastapi_printqueue.routes.webhooks import router as webhooks_router
from fastapi_printqueue.services import PrintQueueServices
from fastapi_printqueue.workers import SweepRunner


def create_printqueue_router(
    *,
    services: PrintQueueServices,
    sweeps: SweepRunner | None = None,
) -> APIRouter:
    """Create a configured API router.

    When ``sweeps`` is given and workers are enabled, the periodic sweeps
    run for the lifetime of the application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        app.state.printqueue_config = services.config
        app.state.printqueue_services = services
        app.state.printqueue_sweeps = sweeps
        register_exception_handlers(app)
        run_sweeps = sweeps is not None and services.config.workers_enabled
        if run_sweeps:
            sweeps.start()
        try:
            yield
        finally:
            if run_sweeps:
                await sweeps.stop()

    router = APIRouter(lifespan=lifespan)
    router.include_router(health_router)
    router.include_router(webhooks_router)
    router.include_router(printers_router)
    router.include_router(orders_router)
    router.include_router(jobs_router)
    router.include_router(shops_router)
    return router
