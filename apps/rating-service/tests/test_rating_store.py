from datetime import timedelta
from uuid import uuid4

import pytest

from devkit.timezone import now_utc
from rating_service.models import Rating
from rating_service.store import RatingStore


def _rating(customer_id, provider_id, score: int, minutes_ago: int) -> Rating:
    return Rating(
        id=uuid4(),
        service_provider_id=provider_id,
        customer_id=customer_id,
        score=score,
        comment=f"score {score}",
        created_at=now_utc() - timedelta(minutes=minutes_ago),
    )


@pytest.mark.asyncio
async def test_in_memory_store_lists_newest_first() -> None:
    store = RatingStore()
    customer_id, provider_id = uuid4(), uuid4()
    oldest = await store.create(_rating(customer_id, provider_id, 1, 30))
    newest = await store.create(_rating(customer_id, provider_id, 5, 1))
    middle = await store.create(_rating(customer_id, provider_id, 3, 10))

    page = await store.list_for_customer(customer_id, page=1, page_size=2)
    rest = await store.list_for_customer(customer_id, page=2, page_size=2)

    assert [item.id for item in page] == [newest.id, middle.id]
    assert [item.id for item in rest] == [oldest.id]
    assert await store.average_for_provider(provider_id) == 3.0
    assert await store.count_for_provider(provider_id) == 3
    assert await store.average_for_customer(uuid4()) == 0.0


@pytest.mark.asyncio
async def test_database_store_round_trip(tmp_path) -> None:
    store = RatingStore(f"sqlite+aiosqlite:///{tmp_path / 'ratings.db'}")
    customer_id, provider_id = uuid4(), uuid4()
    try:
        await store.create(_rating(customer_id, provider_id, 2, 20))
        newest = await store.create(_rating(customer_id, provider_id, 4, 2))

        assert await store.count_for_customer(customer_id) == 2
        assert await store.average_for_provider(provider_id) == 3.0
        items = await store.list_for_customer(customer_id, page=1, page_size=1)
        assert [item.id for item in items] == [newest.id]
        assert items[0].created_at.tzinfo is not None
        assert items[0].comment == "score 4"
    finally:
        await store.close()
