from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RabbitMqSettings:
    host: str = "localhost"
    port: int = 5672
    username: str = "guest"
    password: str = "guest"
    virtual_host: str = "/"
    exchange_name: str = "ratings_exchange"
    queue_name: str = "notifications_queue"
    routing_key: str = "rating.created"
    connect_max_retries: int = 10
    connect_retry_delay_seconds: float = 5.0


class AmqpConnectionError(Exception):
    """Raised when the broker stays unreachable for a whole connect cycle."""


def _load_aio_pika() -> Any:
    try:
        import aio_pika
    except ImportError as exc:
        raise RuntimeError("aio-pika is required for rabbitmq messaging") from exc
    return aio_pika


async def open_connection(settings: RabbitMqSettings) -> Any:
    aio_pika = _load_aio_pika()
    return await aio_pika.connect(
        host=settings.host,
        port=settings.port,
        login=settings.username,
        password=settings.password,
        virtualhost=settings.virtual_host,
    )


def build_persistent_message(body: bytes, *, message_id: str, timestamp: datetime) -> Any:
    aio_pika = _load_aio_pika()
    return aio_pika.Message(
        body=body,
        content_type="application/json",
        delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
        message_id=message_id,
        # AMQP timestamps carry whole seconds
        timestamp=timestamp.replace(microsecond=0),
    )


class AmqpConnectionManager:
    """Owns one connection/channel pair for the process.

    The pair is opened by :meth:`connect` (retrying with a fixed delay) and
    released by :meth:`close`; ``async with`` scopes both. A closed channel is
    reopened on the next :meth:`connect`.
    """

    def __init__(
        self,
        settings: RabbitMqSettings,
        *,
        connection_factory: Callable[[RabbitMqSettings], Awaitable[Any]] | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._connection_factory = connection_factory or open_connection
        self._sleep = sleep_fn
        self._connection: Any = None
        self._channel: Any = None
        self._lock = asyncio.Lock()

    @property
    def settings(self) -> RabbitMqSettings:
        return self._settings

    @property
    def is_connected(self) -> bool:
        return self._channel is not None and not self._channel.is_closed

    async def __aenter__(self) -> AmqpConnectionManager:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def connect(self) -> Any:
        async with self._lock:
            if self.is_connected:
                return self._channel
            await self._release()
            return await self._connect_with_retry()

    async def declare_exchange(self) -> Any:
        aio_pika = _load_aio_pika()
        channel = await self.connect()
        return await channel.declare_exchange(
            self._settings.exchange_name,
            aio_pika.ExchangeType.TOPIC,
            durable=True,
            auto_delete=False,
        )

    async def declare_queue(self, *, prefetch_count: int = 1) -> Any:
        channel = await self.connect()
        await channel.set_qos(prefetch_count=prefetch_count)
        exchange = await self.declare_exchange()
        queue = await channel.declare_queue(
            self._settings.queue_name,
            durable=True,
            exclusive=False,
            auto_delete=False,
        )
        await queue.bind(exchange, routing_key=self._settings.routing_key)
        return queue

    async def close(self) -> None:
        async with self._lock:
            await self._release()

    async def _connect_with_retry(self) -> Any:
        max_retries = max(1, self._settings.connect_max_retries)
        delay = self._settings.connect_retry_delay_seconds
        attempt = 0
        while True:
            attempt += 1
            try:
                self._connection = await self._connection_factory(self._settings)
                self._channel = await self._connection.channel()
            except asyncio.CancelledError:
                await self._release()
                raise
            except Exception as exc:
                await self._release()
                if attempt >= max_retries:
                    logger.error(
                        "amqp_connect_failed",
                        extra={
                            "host": self._settings.host,
                            "port": self._settings.port,
                            "attempts": attempt,
                        },
                    )
                    raise AmqpConnectionError(
                        f"could not connect to rabbitmq at {self._settings.host}:{self._settings.port} "
                        f"after {attempt} attempts"
                    ) from exc
                logger.warning(
                    "amqp_connect_retry",
                    extra={
                        "host": self._settings.host,
                        "port": self._settings.port,
                        "attempt": attempt,
                        "max_retries": max_retries,
                        "delay_seconds": delay,
                        "error": str(exc),
                    },
                )
                await self._sleep(delay)
                continue
            logger.info(
                "amqp_connected",
                extra={"host": self._settings.host, "port": self._settings.port},
            )
            return self._channel

    async def _release(self) -> None:
        channel, connection = self._channel, self._connection
        self._channel = None
        self._connection = None
        if channel is not None and not channel.is_closed:
            try:
                await channel.close()
            except Exception:
                logger.warning("amqp_channel_close_failed", exc_info=True)
        if connection is not None and not connection.is_closed:
            try:
                await connection.close()
            except Exception:
                logger.warning("amqp_connection_close_failed", exc_info=True)
