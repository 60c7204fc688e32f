from uuid import uuid4

from fastapi.testclient import TestClient

from devkit.config import ServiceSettings
from rating_service.app import create_app
from rating_service.publisher import InMemoryRatingEventPublisher, RatingEventPublisher
from shared.events import RatingCreatedEvent


class FailingPublisher(RatingEventPublisher):
    def __init__(self) -> None:
        self.calls = 0

    async def publish(self, event: RatingCreatedEvent) -> None:
        self.calls += 1
        raise ConnectionError("broker down")


def _client(publisher: RatingEventPublisher | None = None) -> tuple[TestClient, RatingEventPublisher]:
    publisher = publisher or InMemoryRatingEventPublisher()
    settings = ServiceSettings(SERVICE_NAME="rating-service", PUBLISH_BASE_DELAY_SECONDS=0.0)
    return TestClient(create_app(settings=settings, publisher=publisher)), publisher


def _payload(**overrides) -> dict[str, object]:
    values: dict[str, object] = {
        "service_provider_id": str(uuid4()),
        "customer_id": str(uuid4()),
        "score": 5,
        "comment": "Excellent!",
    }
    values.update(overrides)
    return values


def test_create_rating_returns_created_and_publishes_event() -> None:
    client, publisher = _client()
    payload = _payload()

    response = client.post("/v1/ratings", json=payload)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["service_provider_id"] == payload["service_provider_id"]
    assert body["data"]["score"] == 5
    assert len(publisher.published) == 1
    event = publisher.published[0]
    assert str(event.id) == body["data"]["id"]
    assert str(event.customer_id) == payload["customer_id"]
    assert event.comment == "Excellent!"


def test_create_rating_without_comment() -> None:
    client, publisher = _client()

    response = client.post("/v1/ratings", json=_payload(comment=None))

    assert response.status_code == 201
    assert response.json()["data"]["comment"] is None
    assert publisher.published[0].comment is None


def test_create_rating_rejects_out_of_range_score() -> None:
    client, publisher = _client()

    for score in (0, 6):
        response = client.post("/v1/ratings", json=_payload(score=score))
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_SCORE"
    assert publisher.published == []


def test_create_rating_rejects_empty_ids() -> None:
    client, _ = _client()

    response = client.post("/v1/ratings", json=_payload(customer_id="00000000-0000-0000-0000-000000000000"))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_ID"


def test_create_rating_rejects_long_comment() -> None:
    client, _ = _client()

    response = client.post("/v1/ratings", json=_payload(comment="x" * 501))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "COMMENT_TOO_LONG"


def test_create_rating_succeeds_when_publishing_keeps_failing() -> None:
    publisher = FailingPublisher()
    client, _ = _client(publisher)

    response = client.post("/v1/ratings", json=_payload())

    assert response.status_code == 201
    assert publisher.calls == 4
    rating_id = response.json()["data"]["id"]
    customer_id = response.json()["data"]["customer_id"]
    listing = client.get(f"/v1/ratings/customer/{customer_id}")
    assert [item["id"] for item in listing.json()["data"]] == [rating_id]


def test_provider_average_and_not_found() -> None:
    client, _ = _client()
    provider_id = str(uuid4())
    client.post("/v1/ratings", json=_payload(service_provider_id=provider_id, score=5))
    client.post("/v1/ratings", json=_payload(service_provider_id=provider_id, score=2))

    response = client.get(f"/v1/ratings/{provider_id}/average")
    missing = client.get(f"/v1/ratings/{uuid4()}/average")
    invalid = client.get("/v1/ratings/not-a-uuid/average")

    assert response.status_code == 200
    assert response.json()["data"] == {
        "service_provider_id": provider_id,
        "average_score": 3.5,
        "total_ratings": 2,
    }
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"
    assert invalid.status_code == 400
    assert invalid.json()["error"]["code"] == "INVALID_ID"


def test_customer_ratings_are_paginated_newest_first() -> None:
    client, _ = _client()
    customer_id = str(uuid4())
    created = [
        client.post("/v1/ratings", json=_payload(customer_id=customer_id, score=score)).json()["data"]["id"]
        for score in (1, 2, 3)
    ]

    first = client.get(f"/v1/ratings/customer/{customer_id}", params={"page": 1, "page_size": 2})
    second = client.get(f"/v1/ratings/customer/{customer_id}", params={"page": 2, "page_size": 2})

    assert first.json()["meta"] == {"page": 1, "page_size": 2, "total_count": 3, "total_pages": 2}
    ids = [item["id"] for item in first.json()["data"]] + [item["id"] for item in second.json()["data"]]
    assert sorted(ids) == sorted(created)
    assert len(second.json()["data"]) == 1


def test_customer_ratings_rejects_bad_pagination() -> None:
    client, _ = _client()

    response = client.get(f"/v1/ratings/customer/{uuid4()}", params={"page": 0})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_PAGINATION"


def test_customer_average() -> None:
    client, _ = _client()
    customer_id = str(uuid4())
    client.post("/v1/ratings", json=_payload(customer_id=customer_id, score=4))

    response = client.get(f"/v1/ratings/customer/{customer_id}/average")
    missing = client.get(f"/v1/ratings/customer/{uuid4()}/average")

    assert response.json()["data"]["average_score"] == 4.0
    assert response.json()["data"]["total_ratings"] == 1
    assert missing.status_code == 404


def test_health_probes() -> None:
    client, _ = _client()

    assert client.get("/healthz").json()["data"]["status"] == "ok"
    assert client.get("/readyz").json()["data"]["status"] == "ready"
