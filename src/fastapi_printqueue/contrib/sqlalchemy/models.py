"""SQLAlchemy shop/order/print job/printer/history models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from fastapi_printqueue.clock import utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always round-trips as UTC.

    SQLite has no native timezone support, so values are stored as naive UTC
    there and re-tagged on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        value = value.astimezone(UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""


class ShopModel(Base):
    """Connected marketplace shop with its tokens and print settings."""

    __tablename__ = "printqueue_shops"
    __table_args__ = (
        UniqueConstraint("user_id", "platform_shop_id", name="uq_shop_owner"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    platform_shop_id: Mapped[str] = mapped_column(String(128), index=True)
    shop_name: Mapped[str] = mapped_column(String(255), default="")
    platform: Mapped[str] = mapped_column(String(32), default="tiktok")
    status: Mapped[str] = mapped_column(String(32), default="active")
    access_token: Mapped[str] = mapped_column(Text, default="")
    refresh_token: Mapped[str] = mapped_column(Text, default="")
    token_expires_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    live_mode: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_print_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    default_template_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True
    )
    default_printer_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True
    )
    last_sync_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )


class OrderModel(Base):
    """Marketplace sale tracked for printing; never physically deleted."""

    __tablename__ = "printqueue_orders"
    __table_args__ = (
        UniqueConstraint(
            "shop_id", "platform_order_id", name="uq_order_platform_id"
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    shop_id: Mapped[str] = mapped_column(String(36), index=True)
    platform_order_id: Mapped[str] = mapped_column(String(128))
    order_number: Mapped[str] = mapped_column(String(64), default="")
    status: Mapped[str] = mapped_column(String(32), default="pending")
    priority: Mapped[str] = mapped_column(String(16), default="normal")
    platform_status: Mapped[str] = mapped_column(String(64), default="")
    customer_name: Mapped[str] = mapped_column(String(255), default="")
    customer_email: Mapped[str] = mapped_column(String(255), default="")
    customer_phone: Mapped[str] = mapped_column(String(64), default="")
    shipping_address: Mapped[dict] = mapped_column(JSON, default=dict)
    items: Mapped[list] = mapped_column(JSON, default=list)
    order_total: Mapped[str] = mapped_column(String(32), default="0")
    currency: Mapped[str] = mapped_column(String(8), default="USD")
    platform_data: Mapped[dict] = mapped_column(JSON, default=dict)
    notes: Mapped[str] = mapped_column(Text, default="")
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    printed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


class PrintJobModel(Base):
    """Unit of dispatch work targeting one printer."""

    __tablename__ = "printqueue_jobs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    order_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True, index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    shop_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    template_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    printer_id: Mapped[str] = mapped_column(String(36), index=True)
    priority: Mapped[str] = mapped_column(String(16), default="normal")
    status: Mapped[str] = mapped_column(
        String(32), default="pending", index=True
    )
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, default=3)
    payload: Mapped[dict] = mapped_column(JSON, default=dict)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_attempt_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    started_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    failed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )


class PrinterModel(Base):
    """Desktop print agent registered by a user."""

    __tablename__ = "printqueue_printers"
    __table_args__ = (
        UniqueConstraint("user_id", "device_id", name="uq_printer_device"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    device_id: Mapped[str] = mapped_column(String(128))
    name: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(64))
    capabilities: Mapped[dict] = mapped_column(JSON, default=dict)
    status: Mapped[str] = mapped_column(
        String(16), default="online", index=True
    )
    last_seen_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    current_job_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


class PrintHistoryModel(Base):
    """Append-only print job lifecycle event."""

    __tablename__ = "printqueue_print_history"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    job_id: Mapped[str] = mapped_column(String(36), index=True)
    printer_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True, index=True
    )
    event_type: Mapped[str] = mapped_column(String(32))
    from_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    to_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    detail: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
