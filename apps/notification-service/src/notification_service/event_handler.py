from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from devkit.retry import exponential_backoff, with_exponential_backoff
from shared.events import RatingCreatedEvent

from notification_service.models import Notification
from notification_service.service import NotificationService

logger = logging.getLogger(__name__)

MASKED_ID_LENGTH = 8
MAX_NOTIFICATION_COMMENT_LENGTH = 50


def mask_customer_id(customer_id: object) -> str:
    return f"{str(customer_id)[:MASKED_ID_LENGTH]}..."


def truncate_comment(comment: str, limit: int = MAX_NOTIFICATION_COMMENT_LENGTH) -> str:
    if len(comment) <= limit:
        return comment
    return f"{comment[:limit]}..."


def build_notification_message(event: RatingCreatedEvent) -> str:
    message = f"New rating received from customer {mask_customer_id(event.customer_id)}. Score: {event.score}/5."
    if event.comment:
        message += f" Comment: {truncate_comment(event.comment)}"
    return message


class RatingCreatedEventHandler:
    def __init__(
        self,
        service: NotificationService,
        *,
        retries: int = 3,
        base_delay_seconds: float = 1.0,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._service = service
        self._retries = retries
        self._backoff = exponential_backoff(base_delay_seconds)
        self._sleep = sleep_fn

    async def handle(self, event: RatingCreatedEvent) -> Notification:
        """Create the provider notification for ``event``.

        Raises the last error once retries are exhausted so the delivery is requeued.
        """
        message = build_notification_message(event)
        try:
            return await with_exponential_backoff(
                lambda: self._service.create_notification(event.service_provider_id, message),
                retries=self._retries,
                backoff=self._backoff,
                on_retry=lambda attempt, delay, exc: logger.warning(
                    "rating_event_handle_retry",
                    extra={"rating_id": str(event.id), "attempt": attempt, "delay_seconds": delay, "error": str(exc)},
                ),
                sleep_fn=self._sleep,
            )
        except Exception:
            logger.error(
                "rating_event_handle_failed",
                extra={"rating_id": str(event.id), "retries": self._retries},
                exc_info=True,
            )
            raise
