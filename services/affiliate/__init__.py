from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from services.realtime import ChangeFeed, get_change_feed
from .service import AffiliateService, calculate_commission, load_settings
from .payouts import PayoutService


def get_affiliate_service(
    session: AsyncSession = Depends(get_async_session),
    feed: ChangeFeed = Depends(get_change_feed),
) -> AffiliateService:
    return AffiliateService(session, feed)


def get_payout_service(
    session: AsyncSession = Depends(get_async_session),
    feed: ChangeFeed = Depends(get_change_feed),
) -> PayoutService:
    return PayoutService(session, feed)
