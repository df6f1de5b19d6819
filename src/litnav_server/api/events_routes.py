"""
Event Stream Route

Server-Sent Events view of the run event channel. Every connection gets its
own bounded subscription; events published before it connected are not
replayed.
"""

from __future__ import annotations

import asyncio
from typing import Annotated, AsyncIterator, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from .dependencies import get_events
from ..core.events import EventChannel, RunEvent, Subscription

router = APIRouter(tags=["events"])

KEEPALIVE_SECONDS = 15.0


def format_sse(event: RunEvent) -> str:
    return f"id: {event.sequence}\nevent: {event.type}\ndata: {event.model_dump_json()}\n\n"


async def _stream(
    request: Request,
    sub: Subscription,
    channel: Optional[str],
) -> AsyncIterator[str]:
    try:
        yield ": connected\n\n"
        while True:
            if await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(sub.get(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue
            if channel and not event.channel.startswith(channel):
                continue
            yield format_sse(event)
    finally:
        sub.close()


@router.get(
    "/events",
    summary="Server-Sent Events stream of run progress",
)
async def stream_events(
    request: Request,
    events: Annotated[EventChannel, Depends(get_events)],
    channel: Optional[str] = None,
) -> StreamingResponse:
    """
    Stream progress, completion, cancellation and error events.

    ``channel`` filters by prefix, e.g. ``preprocess`` or ``exhaustive``.
    """
    sub = events.subscribe()
    return StreamingResponse(
        _stream(request, sub, channel),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
