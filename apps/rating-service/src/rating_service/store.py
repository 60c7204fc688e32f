from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Integer, String, func, select
from sqlalchemy.orm import Mapped, mapped_column

from devkit.db import AsyncDatabaseManager, Base, create_all_tables
from devkit.timezone import ensure_utc

from rating_service.models import Rating


class RatingORM(Base):
    __tablename__ = "ratings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    service_provider_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    customer_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class RatingStore:
    def __init__(self, database_url: str | None = None) -> None:
        self._ratings: dict[UUID, Rating] = {}
        self._db = AsyncDatabaseManager(database_url) if database_url else None
        self._orm_ready = False

    async def close(self) -> None:
        if self._db is not None:
            await self._db.disconnect()

    async def create(self, rating: Rating) -> Rating:
        if self._db is None:
            self._ratings[rating.id] = rating
            return rating

        await self._ensure_orm_ready()

        async def _run(session):
            row = RatingORM(
                id=str(rating.id),
                service_provider_id=str(rating.service_provider_id),
                customer_id=str(rating.customer_id),
                score=rating.score,
                comment=rating.comment,
                created_at=rating.created_at,
            )
            session.add(row)
            return self._to_entity(row)

        return await self._db.run_with_session(_run)

    async def average_for_provider(self, service_provider_id: UUID) -> float:
        return await self._average(RatingORM.service_provider_id, service_provider_id)

    async def count_for_provider(self, service_provider_id: UUID) -> int:
        return await self._count(RatingORM.service_provider_id, service_provider_id)

    async def average_for_customer(self, customer_id: UUID) -> float:
        return await self._average(RatingORM.customer_id, customer_id)

    async def count_for_customer(self, customer_id: UUID) -> int:
        return await self._count(RatingORM.customer_id, customer_id)

    async def list_for_customer(self, customer_id: UUID, *, page: int, page_size: int) -> list[Rating]:
        offset = (page - 1) * page_size
        if self._db is None:
            items = sorted(
                (item for item in self._ratings.values() if item.customer_id == customer_id),
                key=lambda item: (item.created_at, str(item.id)),
                reverse=True,
            )
            return items[offset : offset + page_size]

        await self._ensure_orm_ready()

        async def _run(session):
            stmt = (
                select(RatingORM)
                .where(RatingORM.customer_id == str(customer_id))
                .order_by(RatingORM.created_at.desc(), RatingORM.id.desc())
                .offset(offset)
                .limit(page_size)
            )
            rows = (await session.scalars(stmt)).all()
            return [self._to_entity(row) for row in rows]

        return await self._db.run_with_session(_run)

    async def _average(self, column, value: UUID) -> float:
        if self._db is None:
            scores = [item.score for item in self._matching(column, value)]
            return sum(scores) / len(scores) if scores else 0.0

        await self._ensure_orm_ready()

        async def _run(session):
            result = await session.scalar(select(func.avg(RatingORM.score)).where(column == str(value)))
            return float(result) if result is not None else 0.0

        return await self._db.run_with_session(_run)

    async def _count(self, column, value: UUID) -> int:
        if self._db is None:
            return len(self._matching(column, value))

        await self._ensure_orm_ready()

        async def _run(session):
            result = await session.scalar(select(func.count()).select_from(RatingORM).where(column == str(value)))
            return int(result or 0)

        return await self._db.run_with_session(_run)

    def _matching(self, column, value: UUID) -> list[Rating]:
        return [item for item in self._ratings.values() if getattr(item, column.key) == value]

    async def _ensure_orm_ready(self) -> None:
        if self._db is None or self._orm_ready:
            return
        await self._db.connect()
        await create_all_tables(self._db.engine, Base.metadata, tables=[RatingORM.__table__])
        self._orm_ready = True

    def _to_entity(self, row: RatingORM) -> Rating:
        return Rating(
            id=UUID(row.id),
            service_provider_id=UUID(row.service_provider_id),
            customer_id=UUID(row.customer_id),
            score=row.score,
            comment=row.comment,
            created_at=ensure_utc(row.created_at),
        )
