from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from devkit.config import ServiceSettings, load_settings
from devkit.observability import configure_logging, configure_otel, configure_probe_access_log_filter

from notification_service.consumer import RatingEventConsumer, build_consumer
from notification_service.metrics import ConsumerMetrics
from notification_service.service import NotificationService
from notification_service.store import NotificationStore

logger = logging.getLogger(__name__)


def success_response(data: object, meta: dict[str, object] | None = None) -> dict[str, object]:
    return {"success": True, "data": data, "meta": meta or {}}


def error_response(code: str, message: str) -> dict[str, object]:
    return {"success": False, "error": {"code": code, "message": message}}


def create_app(
    *,
    settings: ServiceSettings | None = None,
    store: NotificationStore | None = None,
    consumer: RatingEventConsumer | None = None,
    metrics: ConsumerMetrics | None = None,
) -> FastAPI:
    settings = settings or load_settings("notification-service")
    configure_logging(settings.LOG_LEVEL)
    configure_otel(service_name=settings.SERVICE_NAME)
    configure_probe_access_log_filter()

    store = store or NotificationStore(settings.DATABASE_URL)
    metrics = metrics or ConsumerMetrics()
    if consumer is None:
        consumer, _ = build_consumer(settings, store=store, metrics=metrics)
    service = NotificationService(store)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        consumer_task: asyncio.Task | None = None
        if settings.NOTIFICATION_CONSUMER_ENABLED:
            consumer_task = asyncio.create_task(consumer.run())
        else:
            logger.info("rating_consumer_disabled")
        try:
            yield
        finally:
            if consumer_task is not None:
                await consumer.stop()
                consumer_task.cancel()
                with suppress(asyncio.CancelledError):
                    await consumer_task
            await store.close()

    app = FastAPI(title="Notification Service", version="0.1.0", lifespan=lifespan)
    app.state.notification_service = service
    app.state.consumer_metrics = metrics

    @app.exception_handler(HTTPException)
    async def handle_http_exception(_: Request, exc: HTTPException) -> JSONResponse:
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})
        return JSONResponse(status_code=exc.status_code, content=error_response("HTTP_ERROR", str(exc.detail)))

    @app.get("/healthz")
    async def healthz() -> dict[str, object]:
        return success_response({"status": "ok"}, meta={})

    @app.get("/readyz")
    async def readyz() -> dict[str, object]:
        return success_response({"status": "ready"}, meta={})

    @app.get("/metrics")
    async def prometheus_metrics() -> Response:
        return Response(content=metrics.render(), media_type="text/plain; version=0.0.4")

    @app.get("/v1/notifications/service-provider/{service_provider_id}")
    async def get_notifications(service_provider_id: str, page: int = 1, page_size: int = 10) -> dict[str, object]:
        try:
            provider_id = UUID(service_provider_id)
        except ValueError as exc:
            logger.warning("invalid_service_provider_id", extra={"value": service_provider_id})
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "INVALID_SERVICE_PROVIDER_ID", "message": "Invalid service provider ID format."},
            ) from exc
        if page < 1 or page_size < 1:
            logger.warning("invalid_pagination", extra={"page": page, "page_size": page_size})
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "INVALID_PAGINATION",
                    "message": "Page number and page size must be greater than zero.",
                },
            )
        try:
            items, total = await service.get_notifications(provider_id, page=page, page_size=page_size)
        except Exception as exc:
            logger.exception("notifications_fetch_failed", extra={"service_provider_id": str(provider_id)})
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"code": "INTERNAL_ERROR", "message": "An error occurred while retrieving notifications."},
            ) from exc
        return success_response(
            [item.to_dict() for item in items],
            meta={
                "page": page,
                "page_size": page_size,
                "total_count": total,
                "total_pages": (total + page_size - 1) // page_size,
            },
        )

    return app


app = create_app()
