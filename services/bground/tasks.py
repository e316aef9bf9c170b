from __future__ import annotations
from dataclasses import asdict
from typing import Any, Dict
import asyncio
from celery import states

from services.bground import CeleryManager
from services.bground.reconciler import reconcile_all_affiliates
from services.currency import CurrencyConverter

celery_app = CeleryManager()


@celery_app.celery_app.task(bind=True, name="currency.refresh_rate")
def refresh_exchange_rate(self) -> Dict[str, Any]:
    """Warms the Redis rate cache so checkout rarely waits on a provider."""

    async def _run():
        converter = CurrencyConverter()
        try:
            return await converter.refresh()
        finally:
            await converter.redis.close()

    rate = asyncio.run(_run())
    return asdict(rate)


@celery_app.celery_app.task(bind=True, max_retries=3, name="affiliate.reconcile_ledgers")
def reconcile_affiliate_ledgers(self) -> Dict[str, int]:
    self.update_state(state=states.STARTED, meta={"step": "reconcile"})
    try:
        return asyncio.run(reconcile_all_affiliates())
    except Exception as e:
        self.update_state(state=states.FAILURE, meta={"error": str(e)})
        raise
