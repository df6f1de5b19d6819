"""
Cooperative cancellation.

A CancellationToken is created per run and handed to every long-running call.
Loops poll it at their safe points with ``raise_if_cancelled()``; network calls
are wrapped in ``guard()`` so that a cancel request aborts the in-flight
request instead of waiting for it to time out.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from .errors import Cancelled

logger = logging.getLogger("litnav.cancellation")

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation flag shared between a run and its controller."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by user") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token fires first.

        If the token fires while the awaitable is pending, the awaitable is
        cancelled and Cancelled is raised. Exceptions raised by the awaitable
        itself propagate unchanged.
        """
        self.raise_if_cancelled()

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())

        try:
            done, _ = await asyncio.wait(
                {work, waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            work.cancel()
            waiter.cancel()
            raise

        waiter.cancel()
        # A token that fired alongside the work wins over its outcome
        if work in done and not self.cancelled:
            return work.result()

        work.cancel()
        # Drain so the aborted request never logs "exception was never retrieved"
        await asyncio.gather(work, return_exceptions=True)
        logger.debug("In-flight call aborted: %s", self.reason)
        raise Cancelled()
