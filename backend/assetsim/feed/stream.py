"""Server-sent events for feed consumers in the browser."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from .service import FeedService

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # nginx would otherwise buffer the stream
}


def create_stream_router(feed: FeedService, keepalive: float = 15.0) -> APIRouter:
    """Build the /api/stream routes around an existing FeedService.

    The feed is injected rather than imported so an app can own its lifecycle.
    """
    router = APIRouter(prefix="/api/stream", tags=["streaming"])

    @router.get("/prices")
    async def stream_prices(request: Request) -> StreamingResponse:
        """Push the price map to an EventSource client as it changes.

        Event shapes:

            data: {"AAPL": {"symbol": "AAPL", "price": "190.50", ...}, ...}

            event: status
            data: {"state": "Reconnecting", "venueId": "venue-1", ...}

        A comment line is sent after ``keepalive`` idle seconds so proxies
        keep the connection open.
        """
        return StreamingResponse(
            _generate_events(feed, request, keepalive),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @router.get("/status")
    async def feed_status() -> dict:
        """Current connection state, venue, mode and channel membership."""
        return feed.status().to_dict()

    return router


def _sse(data: dict, event: str | None = None) -> str:
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {json.dumps(data)}\n\n"


async def _generate_events(
    feed: FeedService,
    request: Request,
    keepalive: float = 15.0,
) -> AsyncGenerator[str, None]:
    """Yield SSE frames driven by the feed's own notifications.

    Price and state callbacks only set a wake-up flag; the generator then
    sends whatever differs from what this client last saw, so a burst of
    ticks between two wake-ups costs one frame.
    """
    yield "retry: 1000\n\n"

    wakeup: asyncio.Queue[None] = asyncio.Queue(maxsize=1)

    def _wake(_: object) -> None:
        if wakeup.empty():
            wakeup.put_nowait(None)

    unsubscribers = [feed.subscribe_prices(_wake), feed.subscribe_state(_wake)]
    peer = request.client.host if request.client else "unknown"
    sent_state = None
    sent_version = -1
    logger.info("SSE client connected: %s", peer)

    try:
        while not await request.is_disconnected():
            state = feed.connection_state()
            if state is not sent_state:
                sent_state = state
                yield _sse(feed.status().to_dict(), event="status")

            version = feed.version
            if version != sent_version:
                sent_version = version
                prices = feed.latest_prices()
                if prices:
                    yield _sse({symbol: tick.to_dict() for symbol, tick in prices.items()})

            try:
                await asyncio.wait_for(wakeup.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
        logger.info("SSE client disconnected: %s", peer)
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled for: %s", peer)
        raise
    finally:
        for unsubscribe in unsubscribers:
            unsubscribe()
