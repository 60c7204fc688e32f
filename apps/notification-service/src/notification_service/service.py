from __future__ import annotations

import logging
from uuid import UUID

from notification_service.models import Notification
from notification_service.store import NotificationStore

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, store: NotificationStore) -> None:
        self._store = store

    async def create_notification(self, service_provider_id: UUID, message: str) -> Notification:
        notification = await self._store.create(service_provider_id, message)
        logger.info(
            "notification_created",
            extra={"notification_id": str(notification.id), "service_provider_id": str(service_provider_id)},
        )
        return notification

    async def get_notifications(
        self,
        service_provider_id: UUID,
        *,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[list[Notification], int]:
        """Return a page of unread notifications, newest first, and mark it as read.

        Each notification is returned by at most one call. The total is the
        unread count before this page was marked.
        """
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be greater than zero")
        items, total = await self._store.fetch_unread_page_and_mark_read(
            service_provider_id, page=page, page_size=page_size
        )
        if items:
            logger.info(
                "notifications_marked_read",
                extra={"service_provider_id": str(service_provider_id), "count": len(items), "total": total},
            )
        return items, total
