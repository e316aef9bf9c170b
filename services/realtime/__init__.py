from __future__ import annotations
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from redis.exceptions import RedisError

from services.redis import RedisClient

CHANNEL_PREFIX = "feed:"

SnapshotLoader = Callable[[], Awaitable[list[dict[str, Any]]]]


def _matches(data: dict[str, Any], where: dict[str, Any]) -> bool:
    return all(str(data.get(field)) == str(value) for field, value in where.items())


class Subscription:
    """
    Live view of one collection: first the snapshot, then every change whose
    document matches ``where``.
    """
    def __init__(self, collection: str, pubsub, where: dict[str, Any], snapshot: list[dict[str, Any]]):
        self.collection = collection
        self.pubsub = pubsub
        self.where = where
        self.snapshot = snapshot

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        yield {"type": "snapshot", "collection": self.collection, "items": self.snapshot}
        async for message in self.pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                event = json.loads(message["data"])
            except (TypeError, json.JSONDecodeError):
                logging.warning(f"Dropping malformed feed message on {self.collection}: {message!r}")
                continue
            if not _matches(event.get("data") or {}, self.where):
                continue
            yield {"type": "change", **event}


class ChangeFeed:
    def __init__(self, redis: Optional[RedisClient] = None):
        self.redis = redis or RedisClient()

    async def publish(self, collection: str, doc_id: Any, data: dict[str, Any], op: str = "upsert") -> None:
        message = {"collection": collection, "op": op, "id": str(doc_id), "data": data}
        try:
            await self.redis.publish(CHANNEL_PREFIX + collection, message)
        except RedisError:
            # the write is already committed; subscribers catch up on their next snapshot
            logging.warning(f"Failed to publish {collection}/{doc_id} change", exc_info=True)

    @asynccontextmanager
    async def subscribe(
        self,
        collection: str,
        *,
        where: Optional[dict[str, Any]] = None,
        snapshot: Optional[SnapshotLoader] = None,
    ) -> AsyncIterator[Subscription]:
        pubsub = self.redis.pubsub()
        # listen before reading the snapshot so no change between the two is lost
        await pubsub.subscribe(CHANNEL_PREFIX + collection)
        try:
            items = await snapshot() if snapshot else []
            yield Subscription(collection, pubsub, where or {}, items)
        finally:
            await pubsub.unsubscribe(CHANNEL_PREFIX + collection)
            await pubsub.aclose()
            logging.info(f"Unsubscribed from {collection} feed")


def _feed_schemas() -> dict[str, tuple[Any, str]]:
    # collection -> (read schema, key attribute)
    from schemas import AffiliateRead, CommissionRead, OrderRead, PayoutRead, ProductRead, ReferralRead, SettingsRead

    return {
        "orders": (OrderRead, "id"),
        "products": (ProductRead, "id"),
        "affiliates": (AffiliateRead, "user_id"),
        "affiliate_referrals": (ReferralRead, "id"),
        "affiliate_commissions": (CommissionRead, "id"),
        "affiliate_payouts": (PayoutRead, "id"),
        "affiliate_settings": (SettingsRead, "id"),
    }


class FeedPublisher:
    """Collects rows touched inside a transaction and publishes them once it commits."""

    def __init__(self, feed: Optional[ChangeFeed] = None):
        self.feed = feed
        self.schemas = _feed_schemas()
        self._touched: dict[tuple[str, str], Any] = {}

    def reset(self) -> None:
        self._touched.clear()

    def touch(self, collection: str, row: Any) -> None:
        _, key = self.schemas[collection]
        self._touched[(collection, str(getattr(row, key)))] = row

    def serialize(self, collection: str, row: Any) -> dict[str, Any]:
        schema, _ = self.schemas[collection]
        return schema.model_validate(row).model_dump(mode="json")

    async def publish(self) -> None:
        touched, self._touched = self._touched, {}
        if not self.feed:
            return
        for (collection, doc_id), row in touched.items():
            await self.feed.publish(collection, doc_id, self.serialize(collection, row))


_feed: Optional[ChangeFeed] = None


def get_change_feed() -> ChangeFeed:
    """One feed (and one Redis connection pool) per process."""
    global _feed
    if _feed is None:
        _feed = ChangeFeed()
    return _feed
