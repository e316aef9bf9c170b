import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from config import Settings
from services.affiliate.service import AffiliateService
from services.errors import StoreError


async def reconcile_all_affiliates(session_maker: async_sessionmaker | None = None) -> dict[str, int]:
    """
    Recomputes every affiliate's counters from the commission and payout
    ledger. One affiliate failing does not stop the others.
    """
    engine = None
    if session_maker is None:
        # each Celery run gets its own event loop, so no pooled connections
        engine = create_async_engine(Settings().generate_postgres_url(), poolclass=NullPool)
        session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    checked = fixed = failed = 0
    try:
        async with session_maker() as session:
            ids = await AffiliateService(session).list_affiliate_ids()

        logging.info(f"Reconciling {len(ids)} affiliate ledgers")
        for affiliate_id in ids:
            async with session_maker() as session:
                try:
                    if await AffiliateService(session).reconcile(affiliate_id):
                        fixed += 1
                    checked += 1
                except StoreError as e:
                    failed += 1
                    logging.error(f"Failed to reconcile affiliate {affiliate_id}: {e}", exc_info=True)
    finally:
        if engine is not None:
            await engine.dispose()

    logging.info(f"Ledger reconciliation done: checked={checked} fixed={fixed} failed={failed}")
    return {"checked": checked, "fixed": fixed, "failed": failed}
