"""Record and storage protocols the pipeline services depend on.

The services only talk to these protocols; ``contrib.sqlalchemy`` ships the
relational implementation.
"""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from typing import Any, Protocol, runtime_checkable


class Shop(Protocol):
    id: str
    user_id: str
    platform_shop_id: str
    shop_name: str
    status: str
    access_token: str
    refresh_token: str
    live_mode: bool
    auto_print_enabled: bool
    default_template_id: str | None
    default_printer_id: str | None
    last_sync_at: datetime | None


class Order(Protocol):
    id: str
    shop_id: str
    platform_order_id: str
    order_number: str
    status: str
    priority: str
    platform_status: str
    customer_name: str
    customer_email: str
    customer_phone: str
    shipping_address: dict
    items: list
    order_total: str
    currency: str
    platform_data: dict
    notes: str
    cancel_reason: str | None
    printed_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime
    updated_at: datetime


class PrintJob(Protocol):
    id: str
    order_id: str | None
    user_id: str
    shop_id: str | None
    template_id: str | None
    printer_id: str
    priority: str
    status: str
    retry_count: int
    max_retries: int
    payload: dict
    error_message: str | None
    next_attempt_at: datetime | None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    failed_at: datetime | None


class Printer(Protocol):
    id: str
    user_id: str
    device_id: str
    name: str
    type: str
    capabilities: dict
    status: str
    last_seen_at: datetime
    current_job_count: int


class HistoryEvent(Protocol):
    id: str
    job_id: str
    printer_id: str | None
    event_type: str
    from_status: str | None
    to_status: str | None
    detail: dict
    created_at: datetime


@runtime_checkable
class ShopRepository(Protocol):
    async def get_by_id(self, shop_id: str) -> Shop: ...

    async def get_by_platform_shop_id(
        self, platform_shop_id: str
    ) -> Shop | None: ...

    async def list_active(self) -> list[Shop]: ...

    async def upsert(
        self, user_id: str, platform_shop_id: str, **fields: Any
    ) -> Shop: ...

    async def update(self, shop_id: str, **fields: Any) -> Shop: ...


@runtime_checkable
class OrderRepository(Protocol):
    async def get_by_id(self, order_id: str) -> Order: ...

    async def get_by_platform_id(
        self, shop_id: str, platform_order_id: str
    ) -> Order | None: ...

    async def create(self, **fields: Any) -> Order: ...

    async def update_platform_fields(
        self,
        order_id: str,
        *,
        platform_status: str,
        platform_data: dict,
        updated_at: datetime,
    ) -> Order: ...

    async def compare_and_set_status(
        self,
        order_id: str,
        expected: Collection[str],
        status: str,
        **fields: Any,
    ) -> Order | None: ...


@runtime_checkable
class PrintJobRepository(Protocol):
    async def create(self, **fields: Any) -> PrintJob: ...

    async def get_by_id(self, job_id: str) -> PrintJob: ...

    async def compare_and_set(
        self, job_id: str, expected_status: str, **values: Any
    ) -> PrintJob | None: ...

    async def list_pending(
        self, printer_id: str, limit: int, now: datetime
    ) -> list[PrintJob]: ...

    async def count_pending(self, printer_id: str) -> int: ...

    async def list_stale(self, started_before: datetime) -> list[PrintJob]: ...

    async def list_by_order(
        self, order_id: str, statuses: Collection[str] | None = None
    ) -> list[PrintJob]: ...

    async def list_for_user(
        self,
        user_id: str,
        *,
        status: str | None = None,
        printer_id: str | None = None,
        limit: int | None = None,
    ) -> list[PrintJob]: ...

    async def status_counts(
        self, user_id: str, since: datetime | None = None
    ) -> dict[str, int]: ...

    async def delete_terminal_before(
        self, statuses: Collection[str], cutoff: datetime
    ) -> int: ...


@runtime_checkable
class PrinterRepository(Protocol):
    async def get_by_id(self, printer_id: str) -> Printer: ...

    async def get_by_device(
        self, user_id: str, device_id: str
    ) -> Printer | None: ...

    async def create(self, **fields: Any) -> Printer: ...

    async def update(self, printer_id: str, **fields: Any) -> Printer: ...

    async def list_by_status(self, status: str) -> list[Printer]: ...

    async def list_by_user(self, user_id: str) -> list[Printer]: ...

    async def delete(self, printer_id: str) -> None: ...


@runtime_checkable
class HistoryStore(Protocol):
    """Append-only storage for job lifecycle events."""

    async def add(self, **fields: Any) -> HistoryEvent: ...

    async def list_for_job(self, job_id: str) -> list[HistoryEvent]: ...

    async def count_events(
        self,
        event_type: str,
        *,
        since: datetime | None = None,
        printer_id: str | None = None,
    ) -> int: ...
