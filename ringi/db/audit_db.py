from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel

from ..contracts import Application
from .models import DecisionRecord


class DecisionAuditDB:
    """Async store for the decision history of applications."""

    def __init__(self, database_url: str) -> None:
        connect_args = (
            {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        )
        self.engine = create_async_engine(
            database_url, echo=False, future=True, connect_args=connect_args
        )

    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with AsyncSession(self.engine) as session:
            yield session

    async def record(
        self,
        action: str,
        application: Application,
        actor_id: str,
        level: Optional[int] = None,
    ) -> DecisionRecord:
        """Append a history row describing ``application`` after ``action``.

        ``level`` defaults to the application's current level; approvals pass
        the level that was confirmed.
        """
        row = DecisionRecord(
            application_id=application.id,
            action=action,
            level=application.current_level if level is None else level,
            actor_id=actor_id,
            approver_after=application.approver_id,
            status_after=application.status.value,
            reason=application.rejection_reason,
        )
        async with self.session() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
        return row

    async def history(self, application_id: str) -> list[DecisionRecord]:
        async with self.session() as session:
            result = await session.execute(
                select(DecisionRecord)
                .where(DecisionRecord.application_id == application_id)
                .order_by(DecisionRecord.id)
            )
            return list(result.scalars().all())

    async def dispose(self) -> None:
        await self.engine.dispose()
