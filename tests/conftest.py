"""Shared fixtures for fastapi-printqueue tests."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from fastapi_printqueue.completion import CompletionHandler
from fastapi_printqueue.contrib.sqlalchemy.history_store import (
    SQLAlchemyHistoryStore,
)
from fastapi_printqueue.contrib.sqlalchemy.models import Base
from fastapi_printqueue.contrib.sqlalchemy.repository import (
    SQLAlchemyOrderRepository,
    SQLAlchemyPrinterRepository,
    SQLAlchemyPrintJobRepository,
    SQLAlchemyShopRepository,
)
from fastapi_printqueue.dispatcher import JobDispatcher
from fastapi_printqueue.exceptions import PrinterChannelError
from fastapi_printqueue.history import PrintHistoryLogger
from fastapi_printqueue.liveness import PrinterLivenessTracker
from fastapi_printqueue.queue import PrintQueue

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingChannel:
    """Printer channel double: records sends to connected printers."""

    def __init__(self) -> None:
        self.connected: set[str] = set()
        self.sent: list[tuple[str, dict]] = []
        self.delay: float = 0.0

    def is_connected(self, printer_id: str) -> bool:
        return printer_id in self.connected

    async def send(self, printer_id: str, message: dict[str, Any]) -> None:
        if printer_id not in self.connected:
            raise PrinterChannelError(f"Printer {printer_id} is not connected")
        if self.delay:
            await asyncio.sleep(self.delay)
        self.sent.append((printer_id, message))


def raw_order(
    order_id: str = "576461413038785752",
    status: str = "AWAITING_SHIPMENT",
    **overrides: Any,
) -> dict[str, Any]:
    """Marketplace order payload as the order search API returns it."""
    data: dict[str, Any] = {
        "order_id": order_id,
        "order_status": status,
        "buyer_email": "buyer@example.com",
        "recipient_address": {
            "name": "Jane Doe",
            "address_line1": "1 Main St",
            "city": "Austin",
            "state": "TX",
            "zipcode": "73301",
            "country_code": "US",
            "phone_number": "+1 555 0100",
        },
        "order_line_list": [
            {
                "product_id": "p-1",
                "sku_id": "sku-1",
                "product_name": "Mug",
                "quantity": 2,
                "platform_total_price": "19.98",
            }
        ],
        "payment": {"total_amount": "19.98", "currency": "USD"},
    }
    data.update(overrides)
    return data


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    yield factory
    await engine.dispose()


@pytest.fixture()
def shops(session_factory) -> SQLAlchemyShopRepository:
    return SQLAlchemyShopRepository(session_factory)


@pytest.fixture()
def orders(session_factory) -> SQLAlchemyOrderRepository:
    return SQLAlchemyOrderRepository(session_factory)


@pytest.fixture()
def jobs(session_factory) -> SQLAlchemyPrintJobRepository:
    return SQLAlchemyPrintJobRepository(session_factory)


@pytest.fixture()
def printers(session_factory) -> SQLAlchemyPrinterRepository:
    return SQLAlchemyPrinterRepository(session_factory)


@pytest.fixture()
def history(session_factory, clock) -> PrintHistoryLogger:
    return PrintHistoryLogger(SQLAlchemyHistoryStore(session_factory), clock)


@pytest.fixture()
def queue(jobs, history, clock) -> PrintQueue:
    return PrintQueue(jobs, history, clock=clock)


@pytest.fixture()
def liveness(printers, jobs, clock) -> PrinterLivenessTracker:
    return PrinterLivenessTracker(printers, jobs, clock=clock)


@pytest.fixture()
def completion(queue, orders, clock) -> CompletionHandler:
    return CompletionHandler(queue, orders, clock=clock)


@pytest.fixture()
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture()
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture()
def dispatcher(queue, liveness, channel, completion, sleep) -> JobDispatcher:
    return JobDispatcher(queue, liveness, channel, completion, sleep=sleep)


@pytest.fixture()
async def shop(shops):
    return await shops.upsert(
        "user-1",
        "7495000000000000001",
        shop_name="Demo Shop",
        access_token="access-1",
        refresh_token="refresh-1",
    )


@pytest.fixture()
async def printer(liveness):
    created, _ = await liveness.register(
        "user-1", "device-1", "Desk Zebra", "thermal", {"dpi": 203}
    )
    return created
