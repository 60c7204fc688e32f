import json

import pytest

from devkit.amqp import AmqpConnectionManager, RabbitMqSettings
from rating_service.publisher import AmqpRatingEventPublisher
from shared.events import RatingCreatedEvent


class FakeExchange:
    def __init__(self, fail_first: int = 0) -> None:
        self.fail_first = fail_first
        self.published: list[tuple[object, str]] = []

    async def publish(self, message, routing_key: str) -> None:
        if self.fail_first:
            self.fail_first -= 1
            raise ConnectionError("publish failed")
        self.published.append((message, routing_key))


class FakeChannel:
    def __init__(self, exchange: FakeExchange) -> None:
        self.is_closed = False
        self.exchange = exchange
        self.declared: list[tuple[str, dict]] = []

    async def declare_exchange(self, name: str, exchange_type, **kwargs) -> FakeExchange:
        self.declared.append((name, kwargs))
        return self.exchange

    async def close(self) -> None:
        self.is_closed = True


class FakeConnection:
    def __init__(self, channel: FakeChannel) -> None:
        self.is_closed = False
        self._channel = channel

    async def channel(self) -> FakeChannel:
        return self._channel

    async def close(self) -> None:
        self.is_closed = True


def _publisher(exchange: FakeExchange) -> tuple[AmqpRatingEventPublisher, FakeChannel, FakeConnection]:
    channel = FakeChannel(exchange)
    connection = FakeConnection(channel)

    async def factory(_settings: RabbitMqSettings) -> FakeConnection:
        return connection

    manager = AmqpConnectionManager(RabbitMqSettings(), connection_factory=factory)
    return AmqpRatingEventPublisher(manager), channel, connection


def _event() -> RatingCreatedEvent:
    return RatingCreatedEvent.model_validate(
        {
            "id": "7a1c5a1e-0a3b-4f43-9a55-0f6f2f4d2d11",
            "serviceProviderId": "2b7e1516-28ae-4d2a-a6ab-f7158809cf4f",
            "customerId": "0c1f5f3a-94d2-4f0b-8a1e-3a9b6f0a7c55",
            "score": 5,
            "comment": "Excellent!",
            "createdAt": "2026-05-04T09:30:00Z",
        }
    )


@pytest.mark.asyncio
async def test_publish_sends_persistent_json_with_routing_key() -> None:
    exchange = FakeExchange()
    publisher, channel, _ = _publisher(exchange)

    await publisher.publish(_event())

    message, routing_key = exchange.published[0]
    assert routing_key == "rating.created"
    assert channel.declared[0][0] == "ratings_exchange"
    assert channel.declared[0][1] == {"durable": True, "auto_delete": False}
    assert message.content_type == "application/json"
    assert int(message.delivery_mode) == 2
    assert message.message_id
    payload = json.loads(message.body)
    assert payload["serviceProviderId"] == "2b7e1516-28ae-4d2a-a6ab-f7158809cf4f"
    assert payload["score"] == 5


@pytest.mark.asyncio
async def test_exchange_is_redeclared_after_failed_publish() -> None:
    exchange = FakeExchange(fail_first=1)
    publisher, channel, _ = _publisher(exchange)

    with pytest.raises(ConnectionError):
        await publisher.publish(_event())
    await publisher.publish(_event())

    assert len(channel.declared) == 2
    assert len(exchange.published) == 1


@pytest.mark.asyncio
async def test_close_releases_channel_and_connection() -> None:
    publisher, channel, connection = _publisher(FakeExchange())

    await publisher.start()
    await publisher.close()

    assert channel.is_closed is True
    assert connection.is_closed is True
