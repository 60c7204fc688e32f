from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from typing import Any

from opentelemetry import trace

from devkit.amqp import AmqpConnectionError, AmqpConnectionManager
from devkit.config import ServiceSettings, load_settings
from devkit.observability import configure_logging, configure_otel
from shared.events import EventDecodeError, RatingCreatedEvent

from notification_service.event_handler import RatingCreatedEventHandler
from notification_service.metrics import ConsumerMetrics
from notification_service.service import NotificationService
from notification_service.store import NotificationStore

logger = logging.getLogger(__name__)


class RatingEventConsumer:
    """Consumes rating events from the notifications queue, one delivery at a time.

    Every delivery ends in exactly one outcome: ``acked`` when the handler
    succeeds, ``discarded`` (rejected without requeue) when the body is not a
    rating event, ``requeued`` when the handler fails. A lost connection is
    reopened; a connect budget that runs out is logged and retried after one
    delay, so :meth:`run` only returns after :meth:`stop`.
    """

    def __init__(
        self,
        handler: RatingCreatedEventHandler,
        connection: AmqpConnectionManager,
        *,
        metrics: ConsumerMetrics | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._handler = handler
        self._connection = connection
        self._metrics = metrics
        self._sleep = sleep_fn
        self._tracer = trace.get_tracer("notification-service")
        self._stopping = False
        self._wakeup = asyncio.Event()
        self._start_task: asyncio.Task | None = None
        self._queue: Any = None
        self._consumer_tag: str | None = None

    @property
    def is_consuming(self) -> bool:
        return self._consumer_tag is not None

    async def process_message(self, message: Any) -> str:
        message_id = str(getattr(message, "message_id", None) or "")
        with self._tracer.start_as_current_span("rating.event.consume") as span:
            span.set_attribute("messaging.message_id", message_id)
            try:
                event = RatingCreatedEvent.from_json(message.body)
            except EventDecodeError as exc:
                logger.error("rating_event_discarded", extra={"message_id": message_id, "error": str(exc)})
                await message.reject(requeue=False)
                outcome = "discarded"
            else:
                try:
                    await self._handler.handle(event)
                except Exception:
                    logger.warning(
                        "rating_event_requeued",
                        extra={"message_id": message_id, "rating_id": str(event.id)},
                        exc_info=True,
                    )
                    await message.reject(requeue=True)
                    outcome = "requeued"
                else:
                    await message.ack()
                    logger.info("rating_event_acked", extra={"message_id": message_id, "rating_id": str(event.id)})
                    outcome = "acked"
            span.set_attribute("messaging.outcome", outcome)
        if self._metrics is not None:
            self._metrics.observe(outcome)
        return outcome

    async def run(self) -> None:
        retry_delay = self._connection.settings.connect_retry_delay_seconds
        while not self._stopping:
            self._wakeup.clear()
            self._start_task = asyncio.create_task(self._start_consuming())
            try:
                await self._start_task
            except asyncio.CancelledError:
                if self._stopping and self._start_task.cancelled():
                    break
                raise
            except AmqpConnectionError:
                logger.error("rating_consumer_connect_cycle_failed", extra={"retry_in_seconds": retry_delay})
                await self._pause(retry_delay)
                continue
            except Exception:
                logger.exception("rating_consumer_start_failed")
                await self._connection.close()
                await self._pause(retry_delay)
                continue
            finally:
                self._start_task = None

            await self._wakeup.wait()
            if not self._stopping:
                logger.warning("rating_consumer_connection_lost")
                self._queue = None
                self._consumer_tag = None
                await self._connection.close()
        logger.info("rating_consumer_stopped")

    async def stop(self) -> None:
        """Cancel the subscription, then close the channel and the connection."""
        self._stopping = True
        if self._start_task is not None and not self._start_task.done():
            self._start_task.cancel()
        queue, consumer_tag = self._queue, self._consumer_tag
        self._queue = None
        self._consumer_tag = None
        if queue is not None and consumer_tag is not None:
            try:
                await queue.cancel(consumer_tag)
            except Exception:
                logger.warning("rating_consumer_cancel_failed", exc_info=True)
        await self._connection.close()
        self._wakeup.set()

    async def _start_consuming(self) -> None:
        channel = await self._connection.connect()
        queue = await self._connection.declare_queue(prefetch_count=1)
        channel.close_callbacks.add(self._on_channel_closed)
        self._queue = queue
        self._consumer_tag = await queue.consume(self.process_message, no_ack=False)
        logger.info(
            "rating_consumer_started",
            extra={"queue": self._connection.settings.queue_name, "consumer_tag": self._consumer_tag},
        )

    def _on_channel_closed(self, *_: object) -> None:
        self._wakeup.set()

    async def _pause(self, delay: float) -> None:
        if not self._stopping:
            await self._sleep(delay)


def build_consumer(
    settings: ServiceSettings,
    *,
    store: NotificationStore | None = None,
    metrics: ConsumerMetrics | None = None,
) -> tuple[RatingEventConsumer, NotificationStore]:
    store = store or NotificationStore(settings.DATABASE_URL)
    handler = RatingCreatedEventHandler(
        NotificationService(store),
        retries=settings.HANDLER_MAX_RETRIES,
        base_delay_seconds=settings.HANDLER_BASE_DELAY_SECONDS,
    )
    return RatingEventConsumer(handler, AmqpConnectionManager(settings.rabbitmq()), metrics=metrics), store


async def _serve(settings: ServiceSettings) -> None:
    consumer, store = build_consumer(settings)
    loop = asyncio.get_running_loop()
    stop_tasks: list[asyncio.Task] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: stop_tasks.append(loop.create_task(consumer.stop())))
    try:
        await consumer.run()
    finally:
        await asyncio.gather(*stop_tasks)
        await store.close()


def main() -> None:
    settings = load_settings("notification-consumer")
    configure_logging(settings.LOG_LEVEL)
    configure_otel(service_name=settings.SERVICE_NAME)
    asyncio.run(_serve(settings))


if __name__ == "__main__":
    main()
