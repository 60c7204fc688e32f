from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, String, Text, func, select, update
from sqlalchemy.orm import Mapped, mapped_column

from devkit.db import AsyncDatabaseManager, Base, create_all_tables
from devkit.timezone import ensure_utc, now_utc

from notification_service.models import Notification


class NotificationORM(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    service_provider_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class NotificationStore:
    def __init__(self, database_url: str | None = None) -> None:
        self._notifications: dict[UUID, Notification] = {}
        self._lock = asyncio.Lock()
        self._db = AsyncDatabaseManager(database_url) if database_url else None
        self._orm_ready = False

    async def close(self) -> None:
        if self._db is not None:
            await self._db.disconnect()

    async def create(
        self,
        service_provider_id: UUID,
        message: str,
        *,
        created_at: datetime | None = None,
    ) -> Notification:
        notification = Notification(
            id=uuid4(),
            service_provider_id=service_provider_id,
            message=message,
            created_at=created_at or now_utc(),
        )
        if self._db is None:
            self._notifications[notification.id] = notification
            return replace(notification)

        await self._ensure_orm_ready()

        async def _run(session):
            session.add(
                NotificationORM(
                    id=str(notification.id),
                    service_provider_id=str(notification.service_provider_id),
                    message=notification.message,
                    created_at=notification.created_at,
                    is_read=False,
                )
            )
            return notification

        return await self._db.run_with_session(_run)

    async def get_page(self, service_provider_id: UUID, *, page: int = 1, page_size: int = 10) -> list[Notification]:
        if self._db is None:
            return self._memory_page(service_provider_id, page, page_size)

        await self._ensure_orm_ready()

        async def _run(session):
            rows = (await session.scalars(self._page_query(service_provider_id, page, page_size))).all()
            return [self._to_entity(row) for row in rows]

        return await self._db.run_with_session(_run)

    async def count_unread(self, service_provider_id: UUID) -> int:
        if self._db is None:
            return len(self._memory_unread(service_provider_id))

        await self._ensure_orm_ready()

        async def _run(session):
            return await self._count_query(session, service_provider_id)

        return await self._db.run_with_session(_run)

    async def mark_read(self, ids: list[UUID]) -> int:
        if not ids:
            return 0
        if self._db is None:
            return self._memory_mark(ids)

        await self._ensure_orm_ready()

        async def _run(session):
            result = await session.execute(
                update(NotificationORM)
                .where(NotificationORM.id.in_([str(item) for item in ids]))
                .values(is_read=True)
            )
            return int(result.rowcount or 0)

        return await self._db.run_with_session(_run)

    async def fetch_unread_page_and_mark_read(
        self,
        service_provider_id: UUID,
        *,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[list[Notification], int]:
        """Return one page of unread notifications and mark exactly that page as read.

        The total is the unread count before marking. Count, fetch and mark
        share one transaction (or the store lock in memory), so concurrent
        readers never receive the same row twice.
        """
        if self._db is None:
            async with self._lock:
                total = len(self._memory_unread(service_provider_id))
                items = self._memory_page(service_provider_id, page, page_size)
                self._memory_mark([item.id for item in items])
                return items, total

        await self._ensure_orm_ready()
        lock_rows = self._db.dialect_name == "postgresql"

        async def _run(session):
            total = await self._count_query(session, service_provider_id)
            stmt = self._page_query(service_provider_id, page, page_size)
            if lock_rows:
                stmt = stmt.with_for_update(skip_locked=True)
            rows = (await session.scalars(stmt)).all()
            items = [self._to_entity(row) for row in rows]
            if rows:
                await session.execute(
                    update(NotificationORM)
                    .where(NotificationORM.id.in_([row.id for row in rows]))
                    .values(is_read=True)
                )
            return items, total

        return await self._db.run_with_session(_run)

    def _memory_unread(self, service_provider_id: UUID) -> list[Notification]:
        return sorted(
            (
                item
                for item in self._notifications.values()
                if item.service_provider_id == service_provider_id and not item.is_read
            ),
            key=lambda item: (item.created_at, str(item.id)),
            reverse=True,
        )

    def _memory_page(self, service_provider_id: UUID, page: int, page_size: int) -> list[Notification]:
        offset = (page - 1) * page_size
        return [replace(item) for item in self._memory_unread(service_provider_id)[offset : offset + page_size]]

    def _memory_mark(self, ids: list[UUID]) -> int:
        marked = 0
        for notification_id in ids:
            item = self._notifications.get(notification_id)
            if item is not None:
                item.is_read = True
                marked += 1
        return marked

    @staticmethod
    def _page_query(service_provider_id: UUID, page: int, page_size: int):
        return (
            select(NotificationORM)
            .where(NotificationORM.service_provider_id == str(service_provider_id))
            .where(NotificationORM.is_read.is_(False))
            .order_by(NotificationORM.created_at.desc(), NotificationORM.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )

    @staticmethod
    async def _count_query(session, service_provider_id: UUID) -> int:
        result = await session.scalar(
            select(func.count())
            .select_from(NotificationORM)
            .where(NotificationORM.service_provider_id == str(service_provider_id))
            .where(NotificationORM.is_read.is_(False))
        )
        return int(result or 0)

    async def _ensure_orm_ready(self) -> None:
        if self._db is None or self._orm_ready:
            return
        await self._db.connect()
        await create_all_tables(self._db.engine, Base.metadata, tables=[NotificationORM.__table__])
        self._orm_ready = True

    def _to_entity(self, row: NotificationORM) -> Notification:
        return Notification(
            id=UUID(row.id),
            service_provider_id=UUID(row.service_provider_id),
            message=row.message,
            created_at=ensure_utc(row.created_at),
            is_read=row.is_read,
        )
