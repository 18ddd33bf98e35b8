"""SSE endpoint bridging feed subscriptions to HTTP clients."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Query, Request
from fastapi.responses import StreamingResponse

from .feed import Feed
from .models import EventRecord
from .subscription import Subscription
from .symbols import normalize_symbols

logger = logging.getLogger(__name__)


def _split_param(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def create_stream_router(feed: Feed) -> APIRouter:
    """Create the SSE streaming router bound to a feed.

    The feed is injected through this factory instead of a global.
    """
    router = APIRouter(prefix="/api/stream", tags=["streaming"])

    @router.get("/events")
    async def stream_events(
        request: Request,
        types: str = Query(..., description="Comma-separated event types, e.g. Quote,Trade"),
        symbols: str = Query(..., description="Comma-separated symbols"),
        from_time: str | None = Query(None, description="Time-series lower bound (epoch ms or ISO)"),
    ) -> StreamingResponse:
        """SSE endpoint for live events of the requested types and symbols.

        Each delivered batch becomes one frame:

            data: [{"eventType": "Quote", "eventSymbol": "AAPL", ...}, ...]

        With ``from_time`` a time-series subscription is opened instead.
        """
        type_list = _split_param(types)
        if from_time is None:
            sub = feed.create_subscription(type_list)
        else:
            sub = feed.create_time_series_subscription(type_list)
            sub.set_from_time(from_time)
        return StreamingResponse(
            _generate_events(sub, _split_param(symbols), request),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
            },
        )

    return router


async def _generate_events(
    sub: Subscription,
    symbols: list[str],
    request: Request,
    poll_interval: float = 0.5,
) -> AsyncGenerator[str, None]:
    """Async generator that yields one SSE frame per delivered batch.

    Closes the subscription when the client disconnects or the stream is
    cancelled.
    """
    queue: asyncio.Queue[list[EventRecord]] = asyncio.Queue()
    sub.on_event = queue.put_nowait
    client_ip = request.client.host if request.client else "unknown"
    try:
        sub.add_symbols(normalize_symbols(symbols))
        yield "retry: 1000\n\n"

        logger.info("SSE client connected: %s (%s)", client_ip, ", ".join(sub.types))
        while True:
            if await request.is_disconnected():
                logger.info("SSE client disconnected: %s", client_ip)
                break
            try:
                batch = await asyncio.wait_for(queue.get(), timeout=poll_interval)
            except asyncio.TimeoutError:
                continue
            payload = json.dumps([record.to_dict() for record in batch])
            yield f"data: {payload}\n\n"
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled for: %s", client_ip)
    finally:
        sub.close()
