"""SQLAlchemy print history store."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fastapi_printqueue.contrib.sqlalchemy.models import PrintHistoryModel


class SQLAlchemyHistoryStore:
    """Persist job lifecycle events; rows are only ever inserted."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        self.session_factory = session_factory

    async def add(self, **fields: Any) -> PrintHistoryModel:
        event = PrintHistoryModel(**fields)
        async with self.session_factory() as session:
            session.add(event)
            await session.commit()
            await session.refresh(event)
        return event

    async def list_for_job(self, job_id: str) -> list[PrintHistoryModel]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PrintHistoryModel)
                .where(PrintHistoryModel.job_id == job_id)
                .order_by(PrintHistoryModel.created_at)
            )
            return list(result.scalars().all())

    async def count_events(
        self,
        event_type: str,
        *,
        since: datetime | None = None,
        printer_id: str | None = None,
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(PrintHistoryModel)
            .where(PrintHistoryModel.event_type == str(event_type))
        )
        if since is not None:
            stmt = stmt.where(PrintHistoryModel.created_at >= since)
        if printer_id is not None:
            stmt = stmt.where(PrintHistoryModel.printer_id == printer_id)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())
