"""Standalone application: engine, services and sweeps built at startup."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from fastapi_printqueue import __version__
from fastapi_printqueue.clock import Clock, utcnow
from fastapi_printqueue.config import PrintQueueConfig
from fastapi_printqueue.contrib.sqlalchemy.models import Base
from fastapi_printqueue.marketplace import MarketplaceClient
from fastapi_printqueue.router import create_printqueue_router
from fastapi_printqueue.services import build_services, build_sweeps

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Configure process-wide logging for the entrypoint."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(
    config: PrintQueueConfig | None = None,
    *,
    marketplace: MarketplaceClient | None = None,
    clock: Clock = utcnow,
) -> FastAPI:
    config = config or PrintQueueConfig()
    engine = create_async_engine(config.database_url)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    services = build_services(
        config, session_factory, marketplace=marketplace, clock=clock
    )
    sweeps = build_sweeps(services)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Print queue service starting")
        try:
            yield
        finally:
            await services.marketplace.aclose()
            await engine.dispose()
            logger.info("Print queue service stopped")

    app = FastAPI(
        title="fastapi-printqueue", version=__version__, lifespan=lifespan
    )
    app.include_router(
        create_printqueue_router(services=services, sweeps=sweeps)
    )
    return app


def main() -> None:
    config = PrintQueueConfig()
    configure_logging(config.log_level)
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
