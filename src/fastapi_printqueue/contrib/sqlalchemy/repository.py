"""SQLAlchemy repository implementations."""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from typing import Any

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fastapi_printqueue.contrib.sqlalchemy.models import (
    OrderModel,
    PrinterModel,
    PrintJobModel,
    ShopModel,
)
from fastapi_printqueue.exceptions import (
    DuplicateOrderError,
    JobNotFoundError,
    OrderNotFoundError,
    PrinterNotFoundError,
    ShopNotFoundError,
)
from fastapi_printqueue.fsm import PENDING_STATUSES, PRIORITY_RANK

_PENDING = [str(status) for status in PENDING_STATUSES]
_RANK = {str(priority): rank for priority, rank in PRIORITY_RANK.items()}


class SQLAlchemyShopRepository:
    """Shop repository backed by SQLAlchemy async sessions."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        self.session_factory = session_factory

    async def get_by_id(self, shop_id: str) -> ShopModel:
        async with self.session_factory() as session:
            shop = await session.get(ShopModel, shop_id)
            if shop is None:
                raise ShopNotFoundError(shop_id)
            return shop

    async def get_by_platform_shop_id(
        self, platform_shop_id: str
    ) -> ShopModel | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ShopModel)
                .where(ShopModel.platform_shop_id == platform_shop_id)
                .order_by(ShopModel.created_at)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_active(self) -> list[ShopModel]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ShopModel).where(ShopModel.status == "active")
            )
            return list(result.scalars().all())

    async def upsert(
        self, user_id: str, platform_shop_id: str, **fields: Any
    ) -> ShopModel:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ShopModel).where(
                    ShopModel.user_id == user_id,
                    ShopModel.platform_shop_id == platform_shop_id,
                )
            )
            shop = result.scalar_one_or_none()
            if shop is None:
                shop = ShopModel(
                    user_id=user_id,
                    platform_shop_id=platform_shop_id,
                    **fields,
                )
                session.add(shop)
            else:
                for key, value in fields.items():
                    setattr(shop, key, value)
            await session.commit()
            await session.refresh(shop)
            return shop

    async def update(self, shop_id: str, **fields: Any) -> ShopModel:
        async with self.session_factory() as session:
            shop = await session.get(ShopModel, shop_id)
            if shop is None:
                raise ShopNotFoundError(shop_id)
            for key, value in fields.items():
                setattr(shop, key, value)
            await session.commit()
            await session.refresh(shop)
            return shop


class SQLAlchemyOrderRepository:
    """Order repository; (shop_id, platform_order_id) is unique."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        self.session_factory = session_factory

    async def get_by_id(self, order_id: str) -> OrderModel:
        async with self.session_factory() as session:
            result = await session.execute(
                select(OrderModel).where(OrderModel.id == order_id)
            )
            try:
                return result.scalar_one()
            except NoResultFound as e:
                raise OrderNotFoundError(order_id) from e

    async def get_by_platform_id(
        self, shop_id: str, platform_order_id: str
    ) -> OrderModel | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(OrderModel).where(
                    OrderModel.shop_id == shop_id,
                    OrderModel.platform_order_id == platform_order_id,
                )
            )
            return result.scalar_one_or_none()

    async def create(self, **fields: Any) -> OrderModel:
        order = OrderModel(**fields)
        async with self.session_factory() as session:
            session.add(order)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateOrderError(
                    fields["shop_id"], fields["platform_order_id"]
                ) from e
            await session.refresh(order)
        return order

    async def update_platform_fields(
        self,
        order_id: str,
        *,
        platform_status: str,
        platform_data: dict,
        updated_at: datetime,
    ) -> OrderModel:
        async with self.session_factory() as session:
            order = await session.get(OrderModel, order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            order.platform_status = platform_status
            order.platform_data = platform_data
            order.updated_at = updated_at
            await session.commit()
            await session.refresh(order)
            return order

    async def compare_and_set_status(
        self,
        order_id: str,
        expected: Collection[str],
        status: str,
        **fields: Any,
    ) -> OrderModel | None:
        """Set ``status`` only while the order is in one of ``expected``."""
        async with self.session_factory() as session:
            result = await session.execute(
                update(OrderModel)
                .where(
                    OrderModel.id == order_id,
                    OrderModel.status.in_([str(s) for s in expected]),
                )
                .values(status=str(status), **fields)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                return None
            await session.commit()
            return await session.get(OrderModel, order_id)


class SQLAlchemyPrintJobRepository:
    """Print queue table; every status write is a compare-and-swap."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        self.session_factory = session_factory

    async def create(self, **fields: Any) -> PrintJobModel:
        job = PrintJobModel(**fields)
        async with self.session_factory() as session:
            session.add(job)
            await session.commit()
            await session.refresh(job)
        return job

    async def get_by_id(self, job_id: str) -> PrintJobModel:
        async with self.session_factory() as session:
            job = await session.get(PrintJobModel, job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job

    async def compare_and_set(
        self, job_id: str, expected_status: str, **values: Any
    ) -> PrintJobModel | None:
        """Apply ``values`` only if the stored status is ``expected_status``.

        Returns the updated row, or ``None`` when another writer got there
        first.
        """
        async with self.session_factory() as session:
            result = await session.execute(
                update(PrintJobModel)
                .where(
                    PrintJobModel.id == job_id,
                    PrintJobModel.status == str(expected_status),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                return None
            await session.commit()
            return await session.get(PrintJobModel, job_id)

    async def list_pending(
        self, printer_id: str, limit: int, now: datetime
    ) -> list[PrintJobModel]:
        rank = case(_RANK, value=PrintJobModel.priority, else_=1)
        async with self.session_factory() as session:
            result = await session.execute(
                select(PrintJobModel)
                .where(
                    PrintJobModel.printer_id == printer_id,
                    PrintJobModel.status.in_(_PENDING),
                    or_(
                        PrintJobModel.next_attempt_at.is_(None),
                        PrintJobModel.next_attempt_at <= now,
                    ),
                )
                .order_by(
                    rank.desc(),
                    PrintJobModel.created_at.asc(),
                    PrintJobModel.id.asc(),
                )
                .limit(limit)
            )
            return list(result.scalars().all())

    async def count_pending(self, printer_id: str) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(PrintJobModel)
                .where(
                    PrintJobModel.printer_id == printer_id,
                    PrintJobModel.status.in_(_PENDING),
                )
            )
            return int(result.scalar_one())

    async def list_stale(
        self, started_before: datetime
    ) -> list[PrintJobModel]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PrintJobModel).where(
                    PrintJobModel.status == "processing",
                    PrintJobModel.started_at < started_before,
                )
            )
            return list(result.scalars().all())

    async def list_by_order(
        self, order_id: str, statuses: Collection[str] | None = None
    ) -> list[PrintJobModel]:
        stmt = select(PrintJobModel).where(PrintJobModel.order_id == order_id)
        if statuses is not None:
            stmt = stmt.where(
                PrintJobModel.status.in_([str(s) for s in statuses])
            )
        async with self.session_factory() as session:
            result = await session.execute(
                stmt.order_by(PrintJobModel.created_at)
            )
            return list(result.scalars().all())

    async def list_for_user(
        self,
        user_id: str,
        *,
        status: str | None = None,
        printer_id: str | None = None,
        limit: int | None = None,
    ) -> list[PrintJobModel]:
        stmt = select(PrintJobModel).where(PrintJobModel.user_id == user_id)
        if status:
            stmt = stmt.where(PrintJobModel.status == str(status))
        if printer_id:
            stmt = stmt.where(PrintJobModel.printer_id == printer_id)
        stmt = stmt.order_by(PrintJobModel.created_at.desc())
        if limit:
            stmt = stmt.limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def status_counts(
        self, user_id: str, since: datetime | None = None
    ) -> dict[str, int]:
        stmt = (
            select(PrintJobModel.status, func.count())
            .where(PrintJobModel.user_id == user_id)
            .group_by(PrintJobModel.status)
        )
        if since is not None:
            stmt = stmt.where(PrintJobModel.created_at >= since)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return {status: int(count) for status, count in result.all()}

    async def delete_terminal_before(
        self, statuses: Collection[str], cutoff: datetime
    ) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(PrintJobModel).where(
                    PrintJobModel.status.in_([str(s) for s in statuses]),
                    PrintJobModel.created_at < cutoff,
                )
            )
            await session.commit()
            return result.rowcount


class SQLAlchemyPrinterRepository:
    """Printer registry; heartbeats are last-write-wins updates."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        self.session_factory = session_factory

    async def get_by_id(self, printer_id: str) -> PrinterModel:
        async with self.session_factory() as session:
            printer = await session.get(PrinterModel, printer_id)
            if printer is None:
                raise PrinterNotFoundError(printer_id)
            return printer

    async def get_by_device(
        self, user_id: str, device_id: str
    ) -> PrinterModel | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PrinterModel).where(
                    PrinterModel.user_id == user_id,
                    PrinterModel.device_id == device_id,
                )
            )
            return result.scalar_one_or_none()

    async def create(self, **fields: Any) -> PrinterModel:
        printer = PrinterModel(**fields)
        async with self.session_factory() as session:
            session.add(printer)
            await session.commit()
            await session.refresh(printer)
        return printer

    async def update(self, printer_id: str, **fields: Any) -> PrinterModel:
        async with self.session_factory() as session:
            printer = await session.get(PrinterModel, printer_id)
            if printer is None:
                raise PrinterNotFoundError(printer_id)
            for key, value in fields.items():
                setattr(printer, key, value)
            await session.commit()
            await session.refresh(printer)
            return printer

    async def list_by_status(self, status: str) -> list[PrinterModel]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PrinterModel).where(PrinterModel.status == str(status))
            )
            return list(result.scalars().all())

    async def list_by_user(self, user_id: str) -> list[PrinterModel]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PrinterModel)
                .where(PrinterModel.user_id == user_id)
                .order_by(PrinterModel.created_at.desc())
            )
            return list(result.scalars().all())

    async def delete(self, printer_id: str) -> None:
        async with self.session_factory() as session:
            await session.execute(
                delete(PrinterModel).where(PrinterModel.id == printer_id)
            )
            await session.commit()
