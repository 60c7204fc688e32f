from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from uuid import UUID, uuid4

from devkit.retry import exponential_backoff, with_exponential_backoff
from shared.events import RatingCreatedEvent

from rating_service.models import AverageRating, Rating
from rating_service.publisher import RatingEventPublisher
from rating_service.schemas import RatingCreateRequest
from rating_service.store import RatingStore

logger = logging.getLogger(__name__)


class RatingService:
    def __init__(
        self,
        store: RatingStore,
        publisher: RatingEventPublisher,
        *,
        publish_retries: int = 3,
        publish_base_delay_seconds: float = 1.0,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._publisher = publisher
        self._publish_retries = publish_retries
        self._publish_backoff = exponential_backoff(publish_base_delay_seconds)
        self._sleep = sleep_fn

    async def create_rating(self, request: RatingCreateRequest) -> Rating:
        """Store the rating, then publish its event.

        The stored rating is returned even when every publish attempt fails;
        the failure is only logged.
        """
        logger.info(
            "rating_create_requested",
            extra={
                "service_provider_id": str(request.service_provider_id),
                "customer_id": str(request.customer_id),
            },
        )
        rating = Rating(
            id=uuid4(),
            service_provider_id=request.service_provider_id,
            customer_id=request.customer_id,
            score=request.score,
            comment=request.comment,
        )
        saved = await self._store.create(rating)
        event = RatingCreatedEvent(
            id=saved.id,
            service_provider_id=saved.service_provider_id,
            customer_id=saved.customer_id,
            score=saved.score,
            comment=saved.comment,
            created_at=saved.created_at,
        )
        try:
            await with_exponential_backoff(
                lambda: self._publisher.publish(event),
                retries=self._publish_retries,
                backoff=self._publish_backoff,
                on_retry=lambda attempt, delay, exc: logger.warning(
                    "rating_event_publish_retry",
                    extra={"rating_id": str(saved.id), "attempt": attempt, "delay_seconds": delay, "error": str(exc)},
                ),
                sleep_fn=self._sleep,
            )
        except Exception:
            logger.exception("rating_event_publish_failed", extra={"rating_id": str(saved.id)})
        return saved

    async def get_provider_average(self, service_provider_id: UUID) -> AverageRating:
        average = await self._store.average_for_provider(service_provider_id)
        total = await self._store.count_for_provider(service_provider_id)
        return AverageRating(subject_id=service_provider_id, average_score=average, total_ratings=total)

    async def get_customer_average(self, customer_id: UUID) -> AverageRating:
        average = await self._store.average_for_customer(customer_id)
        total = await self._store.count_for_customer(customer_id)
        return AverageRating(subject_id=customer_id, average_score=average, total_ratings=total)

    async def get_customer_ratings(self, customer_id: UUID, *, page: int = 1, page_size: int = 10) -> tuple[list[Rating], int]:
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be greater than zero")
        total = await self._store.count_for_customer(customer_id)
        if total == 0:
            return [], 0
        items = await self._store.list_for_customer(customer_id, page=page, page_size=page_size)
        return items, total
