"""Order ingestion: normalize, deduplicate and auto-print new orders."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fastapi_printqueue.clock import Clock, utcnow
from fastapi_printqueue.exceptions import (
    DuplicateOrderError,
    InvalidWebhookError,
    OrderValidationError,
    ReauthorizationRequired,
    ShopNotFoundError,
)
from fastapi_printqueue.fsm import OrderStatus, Priority
from fastapi_printqueue.marketplace import MarketplaceClient
from fastapi_printqueue.protocols import (
    Order,
    OrderRepository,
    PrintJob,
    Shop,
    ShopRepository,
)
from fastapi_printqueue.queue import JobSpec, PrintQueue, snapshot_order

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-tts-signature"
TIMESTAMP_HEADER = "x-tts-timestamp"
SHOP_ACTIVE = "active"
SHOP_NEEDS_REAUTH = "needs_reauth"


class MarketplaceAddress(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    name: str = Field(min_length=1)
    address_line1: str = Field(min_length=1)
    address_line2: str = ""
    city: str = ""
    state: str = ""
    zipcode: str = ""
    country_code: str = "US"
    phone_number: str = ""


class MarketplaceLineItem(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    product_id: str = ""
    sku_id: str = ""
    product_name: str = ""
    quantity: int = Field(default=1, ge=1)
    platform_total_price: str | None = None
    sku_image: str | None = None


class MarketplacePayment(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    total_amount: str = "0"
    currency: str = "USD"


class MarketplaceOrder(BaseModel):
    """One order as the marketplace reports it."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    order_id: str = Field(min_length=1)
    order_number: str | None = None
    order_status: str = ""
    buyer_email: str = ""
    recipient_address: MarketplaceAddress
    order_line_list: list[MarketplaceLineItem] = Field(min_length=1)
    payment: MarketplacePayment = Field(default_factory=MarketplacePayment)

    def to_order_fields(self) -> dict[str, Any]:
        address = self.recipient_address
        return {
            "platform_order_id": self.order_id,
            "order_number": self.order_number or f"#{self.order_id[-6:]}",
            "platform_status": self.order_status,
            "customer_name": address.name,
            "customer_email": self.buyer_email,
            "customer_phone": address.phone_number,
            "shipping_address": {
                "line1": address.address_line1,
                "line2": address.address_line2,
                "city": address.city,
                "state": address.state,
                "zip": address.zipcode,
                "country": address.country_code or "US",
            },
            "items": [
                {
                    "product_id": item.product_id,
                    "sku": item.sku_id,
                    "name": item.product_name,
                    "quantity": item.quantity,
                    "price": item.platform_total_price,
                    "image": item.sku_image,
                }
                for item in self.order_line_list
            ],
            "order_total": self.payment.total_amount,
            "currency": self.payment.currency or "USD",
        }


def normalize_order(raw: Mapping[str, Any]) -> MarketplaceOrder:
    """Validate a raw platform payload; raise ``OrderValidationError``."""
    try:
        return MarketplaceOrder.model_validate(raw)
    except ValidationError as e:
        order_id = raw.get("order_id") if isinstance(raw, Mapping) else None
        fields = ", ".join(
            ".".join(str(part) for part in error["loc"])
            for error in e.errors()
        )
        raise OrderValidationError(
            f"Order {order_id or '<unknown>'} is malformed: {fields}"
        ) from e


class IngestOutcome(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DUPLICATE = "duplicate"


@dataclass
class IngestResult:
    outcome: IngestOutcome
    order: Order
    job: PrintJob | None = None
    auto_print_error: str | None = None


@dataclass
class IngestReport:
    """Per-batch counts; one bad order never aborts the batch."""

    created: int = 0
    updated: int = 0
    duplicate: int = 0
    rejected: int = 0
    failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    def record(self, result: IngestResult) -> None:
        if result.outcome == IngestOutcome.CREATED:
            self.created += 1
        elif result.outcome == IngestOutcome.UPDATED:
            self.updated += 1
        else:
            self.duplicate += 1
        if result.auto_print_error:
            self.errors[result.order.platform_order_id] = (
                f"auto-print: {result.auto_print_error}"
            )

    def merge(self, other: IngestReport) -> None:
        self.created += other.created
        self.updated += other.updated
        self.duplicate += other.duplicate
        self.rejected += other.rejected
        self.failed += other.failed
        self.errors.update(other.errors)

    @property
    def processed(self) -> int:
        return (
            self.created
            + self.updated
            + self.duplicate
            + self.rejected
            + self.failed
        )


class OrderIngestionAdapter:
    """Turns webhook pushes and poll pages into Order rows."""

    def __init__(
        self,
        orders: OrderRepository,
        shops: ShopRepository,
        queue: PrintQueue,
        marketplace: MarketplaceClient,
        *,
        page_size: int = 50,
        max_pages: int = 20,
        webhook_tolerance: timedelta = timedelta(minutes=5),
        clock: Clock = utcnow,
    ) -> None:
        self.orders = orders
        self.shops = shops
        self.queue = queue
        self.marketplace = marketplace
        self.page_size = min(max(page_size, 50), 100)
        self.max_pages = max_pages
        self.webhook_tolerance = webhook_tolerance
        self.clock = clock

    async def ingest(self, shop: Shop, raw: Mapping[str, Any]) -> IngestResult:
        """Upsert one order keyed by ``(shop.id, order_id)``.

        Redeliveries are validated like new orders, so a malformed update
        never overwrites the stored platform payload.
        """
        if not isinstance(raw, Mapping):
            raise OrderValidationError("Order payload must be a JSON object")
        platform_order_id = raw.get("order_id")
        if not platform_order_id:
            raise OrderValidationError("Order payload has no order_id")
        platform_order_id = str(platform_order_id)
        normalized = normalize_order(raw)

        existing = await self.orders.get_by_platform_id(
            shop.id, platform_order_id
        )
        if existing is not None:
            return await self._refresh(existing, raw)

        now = self.clock()
        try:
            order = await self.orders.create(
                shop_id=shop.id,
                status=str(OrderStatus.PENDING),
                priority=str(
                    Priority.URGENT if shop.live_mode else Priority.NORMAL
                ),
                platform_data=dict(raw),
                created_at=now,
                updated_at=now,
                **normalized.to_order_fields(),
            )
        except DuplicateOrderError:
            # Another delivery of the same order won the insert.
            existing = await self.orders.get_by_platform_id(
                shop.id, platform_order_id
            )
            if existing is None:
                raise
            return await self._refresh(existing, raw)

        logger.info(
            "New order %s ingested for shop %s", platform_order_id, shop.id
        )
        result = IngestResult(IngestOutcome.CREATED, order)
        if shop.auto_print_enabled:
            await self._auto_print(shop, result)
        return result

    async def ingest_batch(
        self, shop: Shop, raws: Iterable[Mapping[str, Any]]
    ) -> IngestReport:
        report = IngestReport()
        for index, raw in enumerate(raws):
            key = f"#{index}"
            if isinstance(raw, Mapping) and raw.get("order_id"):
                key = str(raw["order_id"])
            try:
                report.record(await self.ingest(shop, raw))
            except OrderValidationError as exc:
                logger.warning("Rejected order %s: %s", key, exc)
                report.rejected += 1
                report.errors[key] = str(exc)
            except Exception as exc:
                logger.exception("Failed to save order %s", key)
                report.failed += 1
                report.errors[key] = str(exc)
        return report

    async def poll_shop(self, shop: Shop) -> IngestReport:
        """Page through the shop's recent orders.

        ``ReauthorizationRequired`` propagates so the caller can refresh the
        shop token and retry the whole batch.
        """
        report = IngestReport()
        page_token = None
        for _ in range(self.max_pages):
            params: dict[str, Any] = {
                "page_size": self.page_size,
                "sort_field": "create_time",
                "sort_order": "DESC",
            }
            if page_token:
                params["page_token"] = page_token
            response = await self.marketplace.get_orders(
                shop.access_token, shop.platform_shop_id, params
            )
            data = response.get("data") or {}
            report.merge(
                await self.ingest_batch(shop, data.get("orders") or [])
            )
            page_token = data.get("next_page_token")
            if not page_token:
                break
        else:
            logger.warning(
                "Stopped polling shop %s after %d pages",
                shop.id,
                self.max_pages,
            )
        return report

    async def ingest_webhook(
        self, raw_body: bytes, headers: Mapping[str, str]
    ) -> IngestReport:
        """Verify and ingest a webhook delivery.

        Expects a JSON envelope ``{"shop_id": ..., "data": order | [orders]}``.
        """
        self.verify_webhook(raw_body, headers)
        try:
            envelope = json.loads(raw_body)
        except ValueError as e:
            raise OrderValidationError("Webhook body is not valid JSON") from e
        if not isinstance(envelope, dict):
            raise OrderValidationError("Webhook body must be a JSON object")

        platform_shop_id = str(envelope.get("shop_id") or "")
        shop = await self.shops.get_by_platform_shop_id(platform_shop_id)
        if shop is None:
            raise ShopNotFoundError(platform_shop_id)

        data = envelope.get("data")
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise OrderValidationError("Webhook body has no order data")
        report = await self.ingest_batch(shop, data)
        logger.info(
            "Webhook for shop %s: %d created, %d updated, %d duplicate",
            shop.id,
            report.created,
            report.updated,
            report.duplicate,
        )
        return report

    def verify_webhook(
        self, raw_body: bytes, headers: Mapping[str, str]
    ) -> None:
        lowered = {key.lower(): value for key, value in headers.items()}
        signature = lowered.get(SIGNATURE_HEADER, "")
        timestamp = lowered.get(TIMESTAMP_HEADER, "")
        if not self.marketplace.verify_webhook_signature(
            signature, timestamp, raw_body
        ):
            raise InvalidWebhookError("Webhook signature mismatch")
        try:
            sent_at = int(timestamp)
        except ValueError as e:
            raise InvalidWebhookError("Webhook timestamp is invalid") from e
        age = abs(self.clock().timestamp() - sent_at)
        if age > self.webhook_tolerance.total_seconds():
            raise InvalidWebhookError("Webhook timestamp outside tolerance")

    async def _refresh(
        self, order: Order, raw: Mapping[str, Any]
    ) -> IngestResult:
        platform_status = str(raw.get("order_status") or order.platform_status)
        platform_data = dict(raw)
        if (
            platform_status == order.platform_status
            and platform_data == order.platform_data
        ):
            return IngestResult(IngestOutcome.DUPLICATE, order)

        updated = await self.orders.update_platform_fields(
            order.id,
            platform_status=platform_status,
            platform_data=platform_data,
            updated_at=self.clock(),
        )
        logger.info("Order %s refreshed from marketplace", order.id)
        return IngestResult(IngestOutcome.UPDATED, updated)

    async def _auto_print(self, shop: Shop, result: IngestResult) -> None:
        order = result.order
        try:
            if not shop.default_printer_id:
                raise ValueError("shop has no default printer")
            result.job = await self.queue.enqueue(
                JobSpec(
                    user_id=shop.user_id,
                    printer_id=shop.default_printer_id,
                    order_id=order.id,
                    shop_id=shop.id,
                    template_id=shop.default_template_id,
                    priority=order.priority,
                    payload=snapshot_order(order),
                )
            )
            queued = await self.orders.compare_and_set_status(
                order.id,
                {OrderStatus.PENDING},
                OrderStatus.QUEUED,
                updated_at=self.clock(),
            )
            if queued is not None:
                result.order = queued
        except Exception as exc:
            logger.exception(
                "Auto-print failed for order %s; needs manual follow-up",
                order.id,
            )
            result.auto_print_error = str(exc)


@dataclass
class PollOutcome:
    shop_id: str
    success: bool
    report: IngestReport | None = None
    error: str | None = None


class OrderPoller:
    """Periodic pull of orders for every active shop."""

    def __init__(
        self,
        adapter: OrderIngestionAdapter,
        shops: ShopRepository,
        marketplace: MarketplaceClient,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.adapter = adapter
        self.shops = shops
        self.marketplace = marketplace
        self.clock = clock

    async def poll_all(self) -> list[PollOutcome]:
        shops = await self.shops.list_active()
        if not shops:
            logger.debug("No active shops found for polling")
            return []

        results = await asyncio.gather(
            *(self._poll(shop) for shop in shops), return_exceptions=True
        )
        outcomes = []
        for shop, result in zip(shops, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Error polling orders for shop %s: %s",
                    shop.shop_name or shop.id,
                    result,
                    exc_info=result,
                )
                outcomes.append(PollOutcome(shop.id, False, error=str(result)))
            else:
                outcomes.append(PollOutcome(shop.id, True, report=result))

        succeeded = sum(1 for outcome in outcomes if outcome.success)
        logger.info(
            "Order polling completed: %d success, %d errors",
            succeeded,
            len(outcomes) - succeeded,
        )
        return outcomes

    async def poll_shop_manually(self, shop_id: str) -> PollOutcome:
        shop = await self.shops.get_by_id(shop_id)
        logger.info("Manually polling orders for shop %s", shop.shop_name)
        try:
            report = await self._poll(shop)
        except Exception as exc:
            logger.error(
                "Manual order polling failed for %s: %s", shop_id, exc
            )
            return PollOutcome(shop.id, False, error=str(exc))
        return PollOutcome(shop.id, True, report=report)

    async def _poll(self, shop: Shop) -> IngestReport:
        try:
            report = await self.adapter.poll_shop(shop)
        except ReauthorizationRequired:
            logger.info("Token for shop %s rejected; refreshing", shop.id)
            shop = await self.refresh_shop_token(shop)
            report = await self.adapter.poll_shop(shop)
        await self.shops.update(shop.id, last_sync_at=self.clock())
        return report

    async def refresh_shop_token(self, shop: Shop) -> Shop:
        """Swap in fresh tokens, or flag the shop for re-authorization."""
        try:
            response = await self.marketplace.refresh_token(shop.refresh_token)
            tokens = response.get("data") or {}
            access_token = tokens["access_token"]
        except Exception as exc:
            await self.shops.update(shop.id, status=SHOP_NEEDS_REAUTH)
            logger.error(
                "Token refresh failed for shop %s; needs re-authorization",
                shop.id,
            )
            raise ReauthorizationRequired(
                f"Shop {shop.id} needs re-authorization"
            ) from exc

        return await self.shops.update(
            shop.id,
            access_token=access_token,
            refresh_token=tokens.get("refresh_token", shop.refresh_token),
            token_expires_at=_expires_at(self.clock(), tokens),
        )


def _expires_at(now: datetime, tokens: Mapping[str, Any]) -> datetime | None:
    expires_in = tokens.get("expires_in")
    if not expires_in:
        return None
    return now + timedelta(seconds=int(expires_in))
