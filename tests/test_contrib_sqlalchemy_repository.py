"""SQLAlchemy repository integration tests with real aiosqlite DB."""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from conftest import T0

from fastapi_printqueue.exceptions import (
    DuplicateOrderError,
    JobNotFoundError,
    OrderNotFoundError,
    PrinterNotFoundError,
    ShopNotFoundError,
)


async def _job(jobs, **fields):
    values = {
        "user_id": "user-1",
        "printer_id": "printer-1",
        "status": "pending",
        "priority": "normal",
        "created_at": T0,
        "updated_at": T0,
    }
    values.update(fields)
    return await jobs.create(**values)


async def test_order_platform_id_is_unique_per_shop(orders) -> None:
    await orders.create(shop_id="shop-1", platform_order_id="po-1")
    await orders.create(shop_id="shop-2", platform_order_id="po-1")

    with pytest.raises(DuplicateOrderError):
        await orders.create(shop_id="shop-1", platform_order_id="po-1")


async def test_order_lookup(orders) -> None:
    created = await orders.create(shop_id="shop-1", platform_order_id="po-1")

    assert (await orders.get_by_id(created.id)).platform_order_id == "po-1"
    found = await orders.get_by_platform_id("shop-1", "po-1")
    assert found.id == created.id
    assert await orders.get_by_platform_id("shop-2", "po-1") is None
    with pytest.raises(OrderNotFoundError):
        await orders.get_by_id("missing")


async def test_order_compare_and_set_status(orders) -> None:
    order = await orders.create(shop_id="shop-1", platform_order_id="po-1")

    queued = await orders.compare_and_set_status(
        order.id, {"pending"}, "queued"
    )
    assert queued.status == "queued"

    assert (
        await orders.compare_and_set_status(order.id, {"pending"}, "queued")
        is None
    )


async def test_job_compare_and_set_checks_status(jobs) -> None:
    job = await _job(jobs)

    claimed = await jobs.compare_and_set(
        job.id, "pending", status="processing"
    )
    assert claimed.status == "processing"

    assert await jobs.compare_and_set(job.id, "pending", status="x") is None
    assert (await jobs.get_by_id(job.id)).status == "processing"


async def test_job_not_found(jobs) -> None:
    with pytest.raises(JobNotFoundError):
        await jobs.get_by_id("missing")


async def test_list_pending_ranks_priority_then_age(jobs) -> None:
    low = await _job(jobs, priority="low", created_at=T0)
    high = await _job(jobs, priority="high", created_at=T0 + timedelta(1))
    urgent = await _job(jobs, priority="urgent", created_at=T0 + timedelta(2))
    normal = await _job(jobs, priority="normal", created_at=T0)

    pending = await jobs.list_pending("printer-1", 10, T0 + timedelta(3))

    assert [j.id for j in pending] == [urgent.id, high.id, normal.id, low.id]


async def test_count_and_list_by_order(jobs) -> None:
    await _job(jobs, order_id="order-1")
    await _job(jobs, order_id="order-1", status="retrying")
    await _job(jobs, order_id="order-1", status="completed")

    assert await jobs.count_pending("printer-1") == 2
    assert len(await jobs.list_by_order("order-1")) == 3
    assert len(await jobs.list_by_order("order-1", ["completed"])) == 1


async def test_datetimes_round_trip_as_utc(jobs) -> None:
    eastern = timezone(timedelta(hours=-5))
    started = datetime(2025, 3, 1, 7, 0, tzinfo=eastern)
    job = await _job(jobs, status="processing", started_at=started)

    stored = await jobs.get_by_id(job.id)

    assert stored.started_at.tzinfo is not None
    assert stored.started_at == datetime(2025, 3, 1, 12, 0, tzinfo=UTC)
    assert await jobs.list_stale(started + timedelta(seconds=1)) != []
    assert await jobs.list_stale(started) == []


async def test_shop_upsert_and_update(shops) -> None:
    shop = await shops.upsert("user-1", "platform-1", shop_name="One")
    again = await shops.upsert("user-1", "platform-1", shop_name="Renamed")

    assert again.id == shop.id
    assert again.shop_name == "Renamed"
    assert (await shops.get_by_platform_shop_id("platform-1")).id == shop.id

    await shops.update(shop.id, status="needs_reauth")
    assert await shops.list_active() == []

    with pytest.raises(ShopNotFoundError):
        await shops.update("missing", status="active")


async def test_printer_update_missing(printers) -> None:
    with pytest.raises(PrinterNotFoundError):
        await printers.update("missing", status="online")
