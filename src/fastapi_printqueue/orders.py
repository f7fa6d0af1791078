"""Operator actions on orders: send to print, cancel, status updates."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from fastapi_printqueue.clock import Clock, utcnow
from fastapi_printqueue.exceptions import (
    InvalidTransitionError,
    JobValidationError,
    OrderNotFoundError,
    PrinterNotFoundError,
)
from fastapi_printqueue.fsm import (
    OrderStatus,
    Priority,
    ensure_order_transition,
)
from fastapi_printqueue.protocols import (
    Order,
    OrderRepository,
    Printer,
    PrinterRepository,
    PrintJob,
    ShopRepository,
)
from fastapi_printqueue.queue import JobSpec, PrintQueue, snapshot_order

logger = logging.getLogger(__name__)

MAX_BULK_ORDERS = 50
DEFAULT_CANCEL_REASON = "Order cancelled by user"
CANCEL_ATTEMPTS = 3


@dataclass
class PrintRequestResult:
    total_requested: int
    jobs: list[PrintJob] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def success_count(self) -> int:
        return len(self.jobs)


class OrderService:
    def __init__(
        self,
        orders: OrderRepository,
        shops: ShopRepository,
        printers: PrinterRepository,
        queue: PrintQueue,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.orders = orders
        self.shops = shops
        self.printers = printers
        self.queue = queue
        self.clock = clock

    async def send_to_print(
        self,
        order_ids: Sequence[str],
        printer_id: str,
        user_id: str,
        *,
        template_id: str | None = None,
        priority: str | None = None,
    ) -> PrintRequestResult:
        """Queue one print job per order.

        Each order is handled on its own: a missing or cancelled order is
        reported in ``errors`` and the rest are still queued.
        """
        if not order_ids:
            raise JobValidationError("At least one order id is required")
        if len(order_ids) > MAX_BULK_ORDERS:
            raise JobValidationError(
                f"Maximum {MAX_BULK_ORDERS} orders can be printed at once"
            )
        if priority is not None:
            try:
                priority = Priority(priority)
            except ValueError as e:
                raise JobValidationError(
                    f"Unknown priority {priority!r}"
                ) from e
        await self._owned_printer(printer_id, user_id)

        result = PrintRequestResult(total_requested=len(order_ids))
        for order_id in dict.fromkeys(order_ids):
            try:
                order = await self._owned_order(order_id, user_id)
                result.jobs.append(
                    await self._queue_order(
                        order, printer_id, user_id, template_id, priority
                    )
                )
            except Exception as exc:
                logger.error(
                    "Failed to create print job for order %s: %s",
                    order_id,
                    exc,
                )
                result.errors[order_id] = str(exc)

        logger.info(
            "%d of %d order(s) queued for printing on %s",
            result.success_count,
            result.total_requested,
            printer_id,
        )
        return result

    async def cancel_order(
        self, order_id: str, reason: str | None = None
    ) -> Order:
        """Cancel the order and its unsent jobs.

        Jobs already ``processing`` are left to finish or to be caught by the
        stale sweep. The order is cancelled before its jobs, so a failure
        here never leaves a live order without its jobs.
        """
        reason = reason or DEFAULT_CANCEL_REASON
        updated = None
        for _ in range(CANCEL_ATTEMPTS):
            order = await self.orders.get_by_id(order_id)
            ensure_order_transition(order.status, OrderStatus.CANCELLED)
            now = self.clock()
            updated = await self.orders.compare_and_set_status(
                order.id,
                {order.status},
                OrderStatus.CANCELLED,
                cancel_reason=reason,
                cancelled_at=now,
                updated_at=now,
            )
            if updated is not None:
                break
            logger.info(
                "Order %s changed while cancelling; retrying", order_id
            )
        if updated is None:
            raise InvalidTransitionError(
                f"Order {order_id} kept changing while it was being cancelled"
            )

        cancelled = await self.queue.cancel_for_order(updated.id, reason)
        logger.info(
            "Order %s cancelled, %d pending job(s) cancelled",
            order_id,
            len(cancelled),
        )
        return updated

    async def update_status(self, order_id: str, status: str) -> Order:
        target = OrderStatus(status)
        if target == OrderStatus.CANCELLED:
            return await self.cancel_order(order_id)

        order = await self.orders.get_by_id(order_id)
        ensure_order_transition(order.status, target)
        now = self.clock()
        fields = {"updated_at": now}
        if target == OrderStatus.PRINTED:
            fields["printed_at"] = now
        updated = await self.orders.compare_and_set_status(
            order.id, {order.status}, target, **fields
        )
        if updated is None:
            raise InvalidTransitionError(
                f"Order {order_id} changed while its status was being updated"
            )
        logger.info("Order %s status updated to %s", order_id, target)
        return updated

    async def test_print(
        self,
        printer_id: str,
        user_id: str,
        template_id: str | None = None,
    ) -> PrintJob:
        await self._owned_printer(printer_id, user_id)
        now = self.clock()
        job = await self.queue.enqueue(
            JobSpec(
                user_id=user_id,
                printer_id=printer_id,
                template_id=template_id,
                priority=Priority.HIGH,
                payload={
                    "isTestPrint": True,
                    "testData": {
                        "orderNumber": f"TEST-{int(now.timestamp() * 1000)}",
                        "customerName": "Test Customer",
                        "address": {
                            "line1": "123 Test Street",
                            "city": "Test City",
                            "state": "TS",
                            "zip": "12345",
                            "country": "US",
                        },
                        "items": [
                            {
                                "name": "Test Product",
                                "quantity": 1,
                                "sku": "TEST-SKU",
                            }
                        ],
                    },
                },
            )
        )
        logger.info("Test print job %s queued for %s", job.id, printer_id)
        return job

    async def _queue_order(
        self,
        order: Order,
        printer_id: str,
        user_id: str,
        template_id: str | None,
        priority: str | None,
    ) -> PrintJob:
        if order.status in (OrderStatus.CANCELLED, OrderStatus.SHIPPED):
            raise JobValidationError(
                f"Order {order.id} is {order.status} and cannot be printed"
            )
        job = await self.queue.enqueue(
            JobSpec(
                user_id=user_id,
                printer_id=printer_id,
                order_id=order.id,
                shop_id=order.shop_id,
                template_id=template_id,
                priority=priority or order.priority,
                payload=snapshot_order(
                    order, platformData=dict(order.platform_data or {})
                ),
            )
        )
        await self.orders.compare_and_set_status(
            order.id,
            {OrderStatus.PENDING},
            OrderStatus.QUEUED,
            updated_at=self.clock(),
        )
        return job

    async def _owned_order(self, order_id: str, user_id: str) -> Order:
        order = await self.orders.get_by_id(order_id)
        shop = await self.shops.get_by_id(order.shop_id)
        if shop.user_id != user_id:
            raise OrderNotFoundError(order_id)
        return order

    async def _owned_printer(self, printer_id: str, user_id: str) -> Printer:
        printer = await self.printers.get_by_id(printer_id)
        if printer.user_id != user_id:
            raise PrinterNotFoundError(printer_id)
        return printer
