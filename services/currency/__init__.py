import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Optional

import aiohttp
from redis.exceptions import RedisError

from config import ENV
from services.redis import RedisClient

CACHE_KEY = "exchange_rate:JPY:IDR"


@dataclass
class ExchangeRate:
    rate: float
    timestamp: float
    source: str
    is_fallback: bool = False


class CurrencyConverter:
    """
    JPY -> IDR rate for checkout. Tries the primary provider, then the
    backup, then a hardcoded rate; never raises for provider trouble.
    """
    def __init__(self, redis: Optional[RedisClient] = None):
        self.env = ENV()
        self.redis = redis or RedisClient()
        self.providers = [
            ("exchangerate.host", self.env.EXCHANGE_PRIMARY_URL),
            ("open.er-api.com", self.env.EXCHANGE_BACKUP_URL),
        ]

    async def _fetch(self, url: str) -> float:
        timeout = aiohttp.ClientTimeout(total=10)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url, headers={"Accept": "application/json"}) as r:
                if r.status != 200:
                    raise RuntimeError(f"HTTP {r.status}")
                data = await r.json()
        rate = (data.get("rates") or {}).get("IDR") if isinstance(data, dict) else None
        if not rate:
            raise RuntimeError(f"No IDR rate in response: {data}")
        return float(rate)

    async def _cached(self) -> Optional[ExchangeRate]:
        try:
            cached = await self.redis.get_json(CACHE_KEY)
        except RedisError:
            logging.warning("Exchange rate cache unavailable", exc_info=True)
            return None
        return ExchangeRate(**cached) if cached else None

    async def _store(self, rate: ExchangeRate) -> None:
        try:
            await self.redis.set_json(CACHE_KEY, asdict(rate), ttl=self.env.EXCHANGE_RATE_TTL)
        except RedisError:
            logging.warning("Could not cache exchange rate", exc_info=True)

    async def refresh(self) -> ExchangeRate:
        for source, url in self.providers:
            try:
                value = await self._fetch(url)
            except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError, ValueError) as e:
                logging.warning(f"Exchange rate provider {source} failed: {e}")
                continue
            rate = ExchangeRate(rate=value, timestamp=time.time(), source=source)
            await self._store(rate)
            logging.info(f"Exchange rate JPY/IDR {value} from {source}")
            return rate

        logging.warning(f"All exchange rate providers failed, using fallback {self.env.EXCHANGE_FALLBACK_RATE}")
        return ExchangeRate(
            rate=self.env.EXCHANGE_FALLBACK_RATE,
            timestamp=time.time(),
            source="fallback",
            is_fallback=True,
        )

    async def get_rate(self) -> ExchangeRate:
        cached = await self._cached()
        if cached:
            return cached
        return await self.refresh()

    async def convert(self, yen: int) -> tuple[int, ExchangeRate]:
        rate = await self.get_rate()
        return round(yen * rate.rate), rate


_converter: Optional[CurrencyConverter] = None


def get_currency_converter() -> CurrencyConverter:
    global _converter
    if _converter is None:
        _converter = CurrencyConverter()
    return _converter
