"""
Run Event Channel

One-directional push channel from the pipeline to its consumers (the SSE route,
the CLI script, tests).

Delivery semantics
------------------
- Fire and forget: ``publish`` never blocks and never awaits.
- No replay: events published while nobody is subscribed are dropped.
- Each subscriber owns a bounded queue. When it is full the OLDEST queued
  event is discarded to make room, and the subscriber's ``dropped`` counter
  is incremented. A slow consumer therefore loses history, never the latest
  state.
- Every channel name carries its own monotonically increasing ``sequence``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from ..config import settings

logger = logging.getLogger("litnav.events")

EventType = Literal["start", "progress", "complete", "cancelled", "error"]

PREPROCESS_CHANNEL = "preprocess"


class RunEvent(BaseModel):
    """A single lifecycle or progress notification for one run."""

    channel: str = Field(..., min_length=1)
    type: EventType
    payload: Dict[str, Any] = Field(default_factory=dict)
    sequence: int = Field(..., ge=0)

    model_config = ConfigDict(extra="forbid", frozen=True)


class Subscription:
    """A consumer's bounded view of the event stream."""

    def __init__(self, channel: "EventChannel", maxsize: int) -> None:
        self._channel = channel
        self._queue: asyncio.Queue[RunEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, event: RunEvent) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(event)

    async def get(self) -> RunEvent:
        return await self._queue.get()

    def drain(self) -> List[RunEvent]:
        """Return every queued event without waiting."""
        events: List[RunEvent] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def close(self) -> None:
        self._channel.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    async def __aiter__(self) -> AsyncIterator[RunEvent]:
        while True:
            yield await self._queue.get()


class EventChannel:
    """Fan-out publisher with per-channel sequence numbers."""

    def __init__(self, queue_size: Optional[int] = None) -> None:
        self._queue_size = queue_size or settings.event_queue_size
        self._subscribers: Set[Subscription] = set()
        self._sequences: Dict[str, int] = {}

    def subscribe(self) -> Subscription:
        sub = Subscription(self, self._queue_size)
        self._subscribers.add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self._subscribers.discard(sub)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(
        self,
        channel: str,
        type: EventType,
        payload: Optional[Dict[str, Any]] = None,
    ) -> RunEvent:
        seq = self._sequences.get(channel, 0)
        self._sequences[channel] = seq + 1

        event = RunEvent(
            channel=channel,
            type=type,
            payload=payload or {},
            sequence=seq,
        )

        for sub in list(self._subscribers):
            sub.offer(event)

        logger.debug("Published %s/%s #%d", channel, type, seq)
        return event
