from fastapi import Depends, Header, HTTPException, Query, status
from config import ENV
from utils.referral import VisitorToken

env = ENV()
API_KEY = env.admin_api_token


async def require_admin(x_api_key: str | None = Header(None)):
    if not API_KEY:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="API key not configured")
    if not x_api_key or x_api_key != API_KEY:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin key")
    return True


async def get_admin_actor(
    _: bool = Depends(require_admin),
    x_actor_id: str | None = Header(None),
) -> str:
    # recorded as approved_by / processed_by on the rows an admin touches
    return x_actor_id or "admin"


def get_visitor_tokens() -> VisitorToken:
    return VisitorToken(env.visitor_token_secret)


def verified_visitor(token: str | None, tokens: VisitorToken) -> str | None:
    """Visitor id behind a signed token; None when no token was sent."""
    if not token:
        return None
    visitor_id = tokens.verify(token)
    if visitor_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid visitor token")
    return visitor_id


async def require_admin_unless_scoped(
    user_id: str | None = Query(None),
    x_api_key: str | None = Header(None),
):
    # a customer may read their own orders; everything else is back office
    if user_id:
        return False
    return await require_admin(x_api_key)
