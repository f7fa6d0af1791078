"""Printer channel hub tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from fastapi_printqueue.channel import (
    PRINT_COMMAND,
    PrinterChannel,
    WebSocketChannelHub,
    build_print_command,
)
from fastapi_printqueue.exceptions import PrinterChannelError


def _socket() -> MagicMock:
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.close = AsyncMock()
    websocket.send_json = AsyncMock()
    return websocket


async def test_send_to_connected_printer() -> None:
    hub = WebSocketChannelHub()
    websocket = _socket()
    await hub.connect("printer-1", websocket)

    await hub.send("printer-1", {"type": PRINT_COMMAND})

    websocket.accept.assert_awaited_once()
    websocket.send_json.assert_awaited_once_with({"type": PRINT_COMMAND})
    assert hub.connected_printers() == ["printer-1"]


async def test_send_without_connection_raises() -> None:
    hub = WebSocketChannelHub()

    with pytest.raises(PrinterChannelError, match="not connected"):
        await hub.send("printer-1", {})


async def test_reconnect_replaces_previous_socket() -> None:
    hub = WebSocketChannelHub()
    old, new = _socket(), _socket()
    await hub.connect("printer-1", old)
    await hub.connect("printer-1", new)

    old.close.assert_awaited_once()
    hub.disconnect("printer-1", old)
    assert hub.is_connected("printer-1")

    await hub.send("printer-1", {})
    new.send_json.assert_awaited_once()


async def test_failed_send_drops_the_socket() -> None:
    hub = WebSocketChannelHub()
    websocket = _socket()
    websocket.send_json.side_effect = RuntimeError("socket closed")
    await hub.connect("printer-1", websocket)

    with pytest.raises(PrinterChannelError):
        await hub.send("printer-1", {})

    assert not hub.is_connected("printer-1")


def test_hub_satisfies_protocol() -> None:
    assert isinstance(WebSocketChannelHub(), PrinterChannel)


def test_build_print_command() -> None:
    job = MagicMock(
        id="job-1",
        order_id="order-1",
        printer_id="printer-1",
        template_id="label-4x6",
        payload={"orderNumber": "#1"},
        priority="urgent",
    )

    assert build_print_command(job) == {
        "type": PRINT_COMMAND,
        "jobId": "job-1",
        "orderId": "order-1",
        "printerId": "printer-1",
        "template": "label-4x6",
        "payload": {"orderNumber": "#1"},
        "priority": "urgent",
    }
