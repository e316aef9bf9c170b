from __future__ import annotations
import json
import redis.asyncio as aioredis
from typing import Any, Optional
from config import ENV

class RedisClient:
    def __init__(self, url: Optional[str] = None):
        self.env = ENV()
        self.url = url or self.env.redis_url
        self.redis = aioredis.from_url(self.url, decode_responses=True)

    async def set_json(self, key: str, value: dict[str, Any], ttl: int) -> None:
        await self.redis.set(key, json.dumps(value), ex=ttl)

    async def get_json(self, key: str) -> Optional[dict[str, Any]]:
        raw = await self.redis.get(key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    async def publish(self, channel: str, message: dict[str, Any]) -> int:
        return await self.redis.publish(channel, json.dumps(message, default=str))

    def pubsub(self):
        return self.redis.pubsub()

    async def close(self) -> None:
        await self.redis.aclose()
