"""Pydantic request and response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from fastapi_printqueue.fsm import OrderStatus, Priority, PrinterStatus


class RegisterPrinterRequest(BaseModel):
    user_id: str
    device_id: str
    name: str
    type: str
    capabilities: dict[str, Any] = Field(default_factory=dict)


class HeartbeatRequest(BaseModel):
    status: PrinterStatus = PrinterStatus.ONLINE
    job_count: int = Field(default=0, ge=0)


class PrinterResponse(BaseModel):
    id: str
    user_id: str
    device_id: str
    name: str
    type: str
    capabilities: dict[str, Any]
    status: str
    last_seen_at: datetime
    current_job_count: int
    is_online: bool | None = None

    @classmethod
    def from_printer(
        cls, printer: Any, is_online: bool | None = None
    ) -> PrinterResponse:
        return cls(
            id=printer.id,
            user_id=printer.user_id,
            device_id=printer.device_id,
            name=printer.name,
            type=printer.type,
            capabilities=dict(printer.capabilities or {}),
            status=str(printer.status),
            last_seen_at=printer.last_seen_at,
            current_job_count=printer.current_job_count,
            is_online=is_online,
        )


class RegisterPrinterResponse(BaseModel):
    created: bool
    printer: PrinterResponse


class JobCallbackRequest(BaseModel):
    job_id: str
    success: bool
    error_message: str | None = None


class QueueTestPrintRequest(BaseModel):
    user_id: str
    template_id: str | None = None


class PrintJobResponse(BaseModel):
    id: str
    order_id: str | None
    printer_id: str
    template_id: str | None
    priority: str
    status: str
    retry_count: int
    max_retries: int
    error_message: str | None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    failed_at: datetime | None

    @classmethod
    def from_job(cls, job: Any) -> PrintJobResponse:
        return cls(
            id=job.id,
            order_id=job.order_id,
            printer_id=job.printer_id,
            template_id=job.template_id,
            priority=str(job.priority),
            status=str(job.status),
            retry_count=job.retry_count,
            max_retries=job.max_retries,
            error_message=job.error_message,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            failed_at=job.failed_at,
        )


class PrintOrdersRequest(BaseModel):
    user_id: str
    order_ids: list[str] = Field(min_length=1, max_length=50)
    printer_id: str
    template_id: str | None = None
    priority: Priority | None = None


class PrintOrdersResponse(BaseModel):
    jobs: list[PrintJobResponse]
    errors: dict[str, str]
    success_count: int
    total_requested: int


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus


class OrderResponse(BaseModel):
    id: str
    shop_id: str
    platform_order_id: str
    order_number: str
    status: str
    priority: str
    platform_status: str
    cancel_reason: str | None
    printed_at: datetime | None
    cancelled_at: datetime | None

    @classmethod
    def from_order(cls, order: Any) -> OrderResponse:
        return cls(
            id=order.id,
            shop_id=order.shop_id,
            platform_order_id=order.platform_order_id,
            order_number=order.order_number,
            status=str(order.status),
            priority=str(order.priority),
            platform_status=order.platform_status,
            cancel_reason=order.cancel_reason,
            printed_at=order.printed_at,
            cancelled_at=order.cancelled_at,
        )


class HistoryEventResponse(BaseModel):
    event_type: str
    from_status: str | None
    to_status: str | None
    detail: dict[str, Any]
    printer_id: str | None
    created_at: datetime

    @classmethod
    def from_event(cls, event: Any) -> HistoryEventResponse:
        return cls(
            event_type=str(event.event_type),
            from_status=event.from_status,
            to_status=event.to_status,
            detail=dict(event.detail or {}),
            printer_id=event.printer_id,
            created_at=event.created_at,
        )


class QueueStatsResponse(BaseModel):
    total: int
    today: int
    pending: int
    processing: int
    completed: int
    failed: int
    retrying: int
    cancelled: int


class IngestReportResponse(BaseModel):
    created: int
    updated: int
    duplicate: int
    rejected: int
    failed: int
    errors: dict[str, str]


class PollResponse(BaseModel):
    shop_id: str
    success: bool
    report: IngestReportResponse | None = None
    error: str | None = None


class ConnectShopResponse(BaseModel):
    authorization_url: str
    state: str


class ShopResponse(BaseModel):
    id: str
    platform_shop_id: str
    shop_name: str
    status: str
    live_mode: bool
    auto_print_enabled: bool

    @classmethod
    def from_shop(cls, shop: Any) -> ShopResponse:
        return cls(
            id=shop.id,
            platform_shop_id=shop.platform_shop_id,
            shop_name=shop.shop_name,
            status=shop.status,
            live_mode=shop.live_mode,
            auto_print_enabled=shop.auto_print_enabled,
        )


class WebhookAck(BaseModel):
    status: str = "accepted"


class PrinterStatsResponse(BaseModel):
    printer_id: str
    completed: int
    failed: int
    failure_rate: float
    is_online: bool
