from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from devkit.config import ServiceSettings, load_settings
from devkit.observability import configure_logging, configure_otel, configure_probe_access_log_filter
from shared.events import MAX_COMMENT_LENGTH

from rating_service.publisher import RatingEventPublisher, build_amqp_publisher
from rating_service.schemas import RatingCreateRequest
from rating_service.service import RatingService
from rating_service.store import RatingStore

logger = logging.getLogger(__name__)

_EMPTY_UUID = UUID(int=0)


def success_response(data: object, meta: dict[str, object] | None = None) -> dict[str, object]:
    return {"success": True, "data": data, "meta": meta or {}}


def error_response(code: str, message: str) -> dict[str, object]:
    return {"success": False, "error": {"code": code, "message": message}}


def _bad_request(code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"code": code, "message": message})


def _parse_uuid(value: str, label: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        logger.warning("invalid_uuid", extra={"field": label, "value": value})
        raise _bad_request("INVALID_ID", f"Invalid {label} format.") from exc


def _validate_pagination(page: int, page_size: int) -> None:
    if page < 1 or page_size < 1:
        logger.warning("invalid_pagination", extra={"page": page, "page_size": page_size})
        raise _bad_request("INVALID_PAGINATION", "Page number and page size must be greater than zero.")


def create_app(
    *,
    settings: ServiceSettings | None = None,
    store: RatingStore | None = None,
    publisher: RatingEventPublisher | None = None,
) -> FastAPI:
    settings = settings or load_settings("rating-service")
    configure_logging(settings.LOG_LEVEL)
    configure_otel(service_name=settings.SERVICE_NAME)
    configure_probe_access_log_filter()

    store = store or RatingStore(settings.DATABASE_URL)
    publisher = publisher or build_amqp_publisher(settings.rabbitmq())
    service = RatingService(
        store,
        publisher,
        publish_retries=settings.PUBLISH_MAX_RETRIES,
        publish_base_delay_seconds=settings.PUBLISH_BASE_DELAY_SECONDS,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        try:
            await publisher.start()
        except Exception:
            # the first publish reconnects
            logger.warning("rating_publisher_start_failed", exc_info=True)
        try:
            yield
        finally:
            await publisher.close()
            await store.close()

    app = FastAPI(title="Rating Service", version="0.1.0", lifespan=lifespan)
    app.state.rating_service = service

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

    @app.post("/v1/ratings", status_code=status.HTTP_201_CREATED)
    async def create_rating(body: RatingCreateRequest) -> dict[str, object]:
        if body.service_provider_id == _EMPTY_UUID or body.customer_id == _EMPTY_UUID:
            logger.warning(
                "rating_empty_ids",
                extra={"service_provider_id": str(body.service_provider_id), "customer_id": str(body.customer_id)},
            )
            raise _bad_request("INVALID_ID", "service_provider_id and customer_id cannot be empty UUIDs.")
        if body.score < 1 or body.score > 5:
            logger.warning("rating_invalid_score", extra={"score": body.score})
            raise _bad_request("INVALID_SCORE", "Rating score must be between 1 and 5.")
        if body.comment and len(body.comment) > MAX_COMMENT_LENGTH:
            logger.warning("rating_comment_too_long", extra={"length": len(body.comment)})
            raise _bad_request("COMMENT_TOO_LONG", f"Comment must not exceed {MAX_COMMENT_LENGTH} characters.")
        rating = await service.create_rating(body)
        return success_response(rating.to_dict(), meta={})

    @app.get("/v1/ratings/{service_provider_id}/average")
    async def get_provider_average(service_provider_id: str) -> dict[str, object]:
        provider_id = _parse_uuid(service_provider_id, "service provider ID")
        average = await service.get_provider_average(provider_id)
        if average.total_ratings == 0:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "NOT_FOUND", "message": f"No ratings found for service provider {provider_id}."},
            )
        return success_response(
            {
                "service_provider_id": str(provider_id),
                "average_score": average.average_score,
                "total_ratings": average.total_ratings,
            },
            meta={},
        )

    @app.get("/v1/ratings/customer/{customer_id}")
    async def list_customer_ratings(customer_id: str, page: int = 1, page_size: int = 10) -> dict[str, object]:
        parsed_id = _parse_uuid(customer_id, "customer ID")
        _validate_pagination(page, page_size)
        items, total = await service.get_customer_ratings(parsed_id, page=page, page_size=page_size)
        return success_response(
            [item.to_dict() for item in items],
            meta={
                "page": page,
                "page_size": page_size,
                "total_count": total,
                "total_pages": (total + page_size - 1) // page_size,
            },
        )

    @app.get("/v1/ratings/customer/{customer_id}/average")
    async def get_customer_average(customer_id: str) -> dict[str, object]:
        parsed_id = _parse_uuid(customer_id, "customer ID")
        average = await service.get_customer_average(parsed_id)
        if average.total_ratings == 0:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "NOT_FOUND", "message": f"No ratings found for customer {parsed_id}."},
            )
        return success_response(
            {
                "customer_id": str(parsed_id),
                "average_score": average.average_score,
                "total_ratings": average.total_ratings,
            },
            meta={},
        )

    return app


app = create_app()
