from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any
from uuid import uuid4

from opentelemetry import trace

from devkit.amqp import AmqpConnectionManager, RabbitMqSettings, build_persistent_message
from devkit.timezone import now_utc
from shared.events import RatingCreatedEvent

logger = logging.getLogger(__name__)


class RatingEventPublisher(ABC):
    @abstractmethod
    async def publish(self, event: RatingCreatedEvent) -> None:
        raise NotImplementedError

    async def start(self) -> None:
        return None

    async def close(self) -> None:
        return None


class InMemoryRatingEventPublisher(RatingEventPublisher):
    def __init__(self) -> None:
        self.published: list[RatingCreatedEvent] = []

    async def publish(self, event: RatingCreatedEvent) -> None:
        self.published.append(event)


class AmqpRatingEventPublisher(RatingEventPublisher):
    """Publishes rating events to the topic exchange as persistent JSON messages.

    One channel serves every request in the process, so publishes are
    serialised through a lock. The exchange handle is dropped after a failed
    publish and redeclared, reconnecting if needed, on the next call.
    """

    def __init__(self, connection: AmqpConnectionManager) -> None:
        self._connection = connection
        self._exchange: Any = None
        self._lock = asyncio.Lock()
        self._tracer = trace.get_tracer("rating-service")

    async def start(self) -> None:
        async with self._lock:
            await self._get_exchange()

    async def publish(self, event: RatingCreatedEvent) -> None:
        settings = self._connection.settings
        message_id = str(uuid4())
        message = build_persistent_message(event.to_json(), message_id=message_id, timestamp=now_utc())
        with self._tracer.start_as_current_span("rating.event.publish") as span:
            span.set_attribute("messaging.destination", settings.exchange_name)
            span.set_attribute("messaging.rabbitmq.routing_key", settings.routing_key)
            span.set_attribute("messaging.message_id", message_id)
            async with self._lock:
                exchange = await self._get_exchange()
                try:
                    await exchange.publish(message, routing_key=settings.routing_key)
                except Exception:
                    self._exchange = None
                    raise
        logger.info(
            "rating_event_published",
            extra={
                "rating_id": str(event.id),
                "exchange": settings.exchange_name,
                "routing_key": settings.routing_key,
                "message_id": message_id,
            },
        )

    async def close(self) -> None:
        async with self._lock:
            self._exchange = None
            await self._connection.close()

    async def _get_exchange(self) -> Any:
        if self._exchange is None or not self._connection.is_connected:
            self._exchange = await self._connection.declare_exchange()
        return self._exchange


def build_amqp_publisher(
    settings: RabbitMqSettings,
    *,
    connection_factory: Callable[[RabbitMqSettings], Awaitable[Any]] | None = None,
) -> AmqpRatingEventPublisher:
    """Publisher whose connection makes a single attempt per publish.

    Retries belong to the publish call site, so a broker outage costs a
    request only the publish backoff.
    """
    publish_settings = replace(settings, connect_max_retries=1)
    return AmqpRatingEventPublisher(AmqpConnectionManager(publish_settings, connection_factory=connection_factory))
