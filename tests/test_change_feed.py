import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from services.realtime import ChangeFeed


class FakePubSub:
    def __init__(self, messages):
        self.messages = messages
        self.subscribe = AsyncMock()
        self.unsubscribe = AsyncMock()
        self.aclose = AsyncMock()

    async def listen(self):
        for message in self.messages:
            yield message


def _message(collection, doc_id, data):
    return {"type": "message", "data": json.dumps({"collection": collection, "op": "upsert", "id": doc_id, "data": data})}


@pytest.mark.asyncio
async def test_subscribe_yields_snapshot_then_matching_changes():
    pubsub = FakePubSub([
        {"type": "subscribe", "data": 1},
        _message("orders", "a", {"id": "a", "user_id": "u1", "status": "confirmed"}),
        _message("orders", "b", {"id": "b", "user_id": "u2", "status": "pending"}),
        {"type": "message", "data": "not json"},
        _message("orders", "c", {"id": "c", "user_id": "u1", "status": "cancelled"}),
    ])
    redis = MagicMock()
    redis.pubsub.return_value = pubsub
    snapshot = AsyncMock(return_value=[{"id": "a", "user_id": "u1", "status": "pending"}])

    async with ChangeFeed(redis).subscribe("orders", where={"user_id": "u1"}, snapshot=snapshot) as subscription:
        events = [event async for event in subscription]

    assert events[0] == {"type": "snapshot", "collection": "orders", "items": snapshot.return_value}
    assert [(e["type"], e["id"]) for e in events[1:]] == [("change", "a"), ("change", "c")]
    pubsub.subscribe.assert_awaited_once_with("feed:orders")
    pubsub.unsubscribe.assert_awaited_once_with("feed:orders")
    pubsub.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_leaving_subscription_early_still_unsubscribes():
    pubsub = FakePubSub([_message("products", "p", {"id": "p"})])
    redis = MagicMock()
    redis.pubsub.return_value = pubsub

    async with ChangeFeed(redis).subscribe("products") as subscription:
        async for event in subscription:
            assert event["type"] == "snapshot"
            break

    pubsub.unsubscribe.assert_awaited_once_with("feed:products")
    pubsub.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_publish_sends_to_collection_channel():
    redis = MagicMock()
    redis.publish = AsyncMock(return_value=1)

    await ChangeFeed(redis).publish("affiliates", "user-1", {"user_id": "user-1"})

    redis.publish.assert_awaited_once_with(
        "feed:affiliates",
        {"collection": "affiliates", "op": "upsert", "id": "user-1", "data": {"user_id": "user-1"}},
    )


@pytest.mark.asyncio
async def test_publish_failure_does_not_raise():
    redis = MagicMock()
    redis.publish = AsyncMock(side_effect=RedisConnectionError("down"))

    await ChangeFeed(redis).publish("orders", "a", {"id": "a"})

    redis.publish.assert_awaited_once()
