"""Printer registration and liveness tests."""

import pytest

from fastapi_printqueue.exceptions import (
    PrinterBusyError,
    PrinterNotFoundError,
)
from fastapi_printqueue.fsm import PrinterStatus
from fastapi_printqueue.queue import JobSpec


async def test_register_creates_online_printer(liveness, clock) -> None:
    printer, created = await liveness.register(
        "user-1", "device-1", "Desk Zebra", "thermal", {"dpi": 203}
    )

    assert created is True
    assert printer.status == PrinterStatus.ONLINE
    assert printer.last_seen_at == clock()
    assert printer.capabilities == {"dpi": 203}


async def test_register_same_device_updates_in_place(
    liveness, printer, clock
) -> None:
    clock.advance(minutes=10)

    again, created = await liveness.register(
        "user-1", "device-1", "Renamed", "laser"
    )

    assert created is False
    assert again.id == printer.id
    assert again.name == "Renamed"
    assert again.type == "laser"
    assert again.last_seen_at == clock()


async def test_same_device_for_another_user_is_a_new_printer(
    liveness, printer
) -> None:
    other, created = await liveness.register(
        "user-2", "device-1", "Desk Zebra", "thermal"
    )

    assert created is True
    assert other.id != printer.id


async def test_heartbeat_refreshes_last_seen(liveness, printer, clock) -> None:
    clock.advance(minutes=4)

    updated = await liveness.heartbeat(printer.id, "online", job_count=2)

    assert updated.last_seen_at == clock()
    assert updated.status == PrinterStatus.ONLINE
    assert updated.current_job_count == 2


async def test_heartbeat_for_unknown_printer(liveness) -> None:
    with pytest.raises(PrinterNotFoundError):
        await liveness.heartbeat("missing")


async def test_dispatch_and_display_windows(liveness, printer, clock) -> None:
    assert liveness.is_dispatchable(printer)

    clock.advance(minutes=2)
    assert liveness.is_dispatchable(printer)

    clock.advance(seconds=1)
    assert not liveness.is_dispatchable(printer)
    assert liveness.is_online(printer)

    clock.advance(minutes=3)
    assert not liveness.is_online(printer)


async def test_sweep_marks_silent_printers_offline(
    liveness, printer, clock
) -> None:
    fresh, _ = await liveness.register("user-1", "device-2", "B", "thermal")
    clock.advance(minutes=4)
    await liveness.heartbeat(fresh.id)
    clock.advance(minutes=2)

    assert await liveness.sweep() == [printer.id]

    stored = await liveness.printers.get_by_id(printer.id)
    assert stored.status == PrinterStatus.OFFLINE
    assert (await liveness.printers.get_by_id(fresh.id)).status == "online"


async def test_mark_offline_is_idempotent(liveness, printer) -> None:
    first = await liveness.mark_offline(printer.id)
    second = await liveness.mark_offline(printer.id)

    assert first.status == second.status == PrinterStatus.OFFLINE


async def test_list_for_user_uses_display_window(
    liveness, printer, clock
) -> None:
    clock.advance(minutes=4)

    listed = await liveness.list_for_user("user-1")

    assert [(p.id, online) for p, online in listed] == [(printer.id, True)]
    assert await liveness.list_for_user("user-2") == []


async def test_delete_requires_owner(liveness, printer) -> None:
    with pytest.raises(PrinterNotFoundError):
        await liveness.delete(printer.id, "user-2")


async def test_delete_refuses_printer_with_pending_jobs(
    liveness, queue, printer
) -> None:
    await queue.enqueue(JobSpec(user_id="user-1", printer_id=printer.id))

    with pytest.raises(PrinterBusyError) as excinfo:
        await liveness.delete(printer.id, "user-1")

    assert excinfo.value.pending == 1


async def test_delete_idle_printer(liveness, printer) -> None:
    await liveness.delete(printer.id, "user-1")

    with pytest.raises(PrinterNotFoundError):
        await liveness.printers.get_by_id(printer.id)
