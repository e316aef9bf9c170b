import json
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import StreamingResponse
from sqlalchemy import select

from api.database import async_session_maker
from services.realtime import ChangeFeed, FeedPublisher


def table_snapshot(collection: str, model, *criteria):
    """Loader for the rows a new subscriber starts from."""
    async def load() -> list[dict[str, Any]]:
        stmt = select(model)
        if criteria:
            stmt = stmt.where(*criteria)
        async with async_session_maker() as session:
            rows = (await session.execute(stmt)).scalars().all()
        publisher = FeedPublisher()
        return [publisher.serialize(collection, row) for row in rows]
    return load


def event_stream(
    request: Request,
    feed: ChangeFeed,
    collection: str,
    model,
    *criteria,
    where: Optional[dict[str, Any]] = None,
) -> StreamingResponse:
    async def events():
        async with feed.subscribe(collection, where=where, snapshot=table_snapshot(collection, model, *criteria)) as subscription:
            async for event in subscription:
                if await request.is_disconnected():
                    break
                yield f"event: {event['type']}\ndata: {json.dumps(event, default=str)}\n\n"

    return StreamingResponse(events(), media_type="text/event-stream", headers={"Cache-Control": "no-cache"})
