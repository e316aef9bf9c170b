from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from services.realtime import ChangeFeed, get_change_feed
from .service import OrderService, StockPlan


def get_order_service(
    session: AsyncSession = Depends(get_async_session),
    feed: ChangeFeed = Depends(get_change_feed),
) -> OrderService:
    return OrderService(session, feed)
