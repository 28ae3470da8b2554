"""
Watch sessions.

A WatchSession is the consumer side of a running engine watch: engines
publish WatchEvents into it, the orchestrator iterates over it. Cancelling
the session releases the engine process.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from ..models.events import WatchEvent, WatchEventType
from ..validation.exceptions import BuildError

logger = logging.getLogger(__name__)

CancelCallback = Callable[[], Awaitable[None]]

_CLOSED = object()


class WatchSession:
    """
    Asynchronous stream of watch events for one target.

    ``async for event in session`` yields events in publication order and
    ends once the session is cancelled or has failed. Rebuild failures are
    delivered as ERROR events and never end the session.
    """

    def __init__(self, target: str):
        self.target = target
        self.url: Optional[str] = None
        self._queue: "asyncio.Queue" = asyncio.Queue()
        self._ready = asyncio.Event()
        self._failure: Optional[BuildError] = None
        self._cycle_failed = False
        self._closed = False
        self._cancel_callbacks: List[CancelCallback] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def failure(self) -> Optional[BuildError]:
        """The error that ended the session, if the engine went away."""
        return self._failure

    @property
    def ready(self) -> bool:
        return self._ready.is_set() and self._failure is None

    def add_cancel_callback(self, callback: CancelCallback) -> None:
        """Register a coroutine function run once when the session is cancelled."""
        self._cancel_callbacks.append(callback)

    def publish(self, event: WatchEvent) -> None:
        """
        Deliver one event to consumers.

        The session becomes ready on its first successful ``bundle_end``, or on
        ``started`` for engines that serve instead of bundle.
        """
        if self._closed:
            return
        if event.type is WatchEventType.BUNDLE_START:
            self._cycle_failed = False
        elif event.type is WatchEventType.ERROR:
            self._cycle_failed = True
        elif event.type is WatchEventType.BUNDLE_END and not self._cycle_failed:
            self._ready.set()
        elif event.type is WatchEventType.STARTED:
            if event.url:
                self.url = event.url
            self._ready.set()
        self._queue.put_nowait(event)

    def fail(self, error: BuildError) -> None:
        """End the session because the engine itself went away."""
        if self._closed:
            return
        logger.error(f"Watch of {self.target} ended: {error.message}")
        self._queue.put_nowait(WatchEvent.error(error, target=self.target))
        self._failure = error
        self._closed = True
        self._ready.set()
        self._queue.put_nowait(_CLOSED)

    async def wait_ready(self, timeout: Optional[float] = None) -> None:
        """
        Wait until the first successful build (or server start).

        Raises:
            BuildError: If the session failed before becoming ready
            asyncio.TimeoutError: If ``timeout`` elapsed first
        """
        if timeout is None:
            await self._ready.wait()
        else:
            await asyncio.wait_for(self._ready.wait(), timeout)
        if self._failure is not None:
            raise self._failure

    async def cancel(self) -> None:
        """Stop the engine and end iteration. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for callback in self._cancel_callbacks:
            await callback()
        self._cancel_callbacks.clear()
        self._queue.put_nowait(_CLOSED)
        logger.debug(f"Watch of {self.target} cancelled")

    def __aiter__(self) -> "WatchSession":
        return self

    async def __anext__(self) -> WatchEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the marker for any other consumer
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item
