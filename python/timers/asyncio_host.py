"""Timer host running callbacks on an asyncio event loop."""

import asyncio
import itertools
from datetime import datetime
from typing import Optional

from colored_logger import get_colored_logger

from .host import TimerCallback, TimerHandle, TimerHost, validate_interval

logger = get_colored_logger(__name__)


class AsyncioTimerHost(TimerHost):
    """
    Timer host built on ``loop.call_later``.

    Without an explicit loop, the running loop at scheduling time is used, so
    the host must then be driven from inside a coroutine. Exceptions raised by
    callbacks reach the loop's exception handler.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._ids = itertools.count(1)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop if self._loop is not None else asyncio.get_running_loop()

    def now(self) -> datetime:
        return datetime.now()

    def schedule_once(self, delay_ms: float, fn: TimerCallback) -> TimerHandle:
        loop = self.loop
        handle = TimerHandle(
            id=next(self._ids),
            callback=fn,
            deadline=loop.time() + max(0, delay_ms) / 1000,
        )
        handle.native = loop.call_at(handle.deadline, self._fire_once, handle)
        return handle

    def schedule_repeating(self, interval_ms: int, fn: TimerCallback) -> TimerHandle:
        validate_interval(interval_ms)
        loop = self.loop
        handle = TimerHandle(
            id=next(self._ids),
            callback=fn,
            deadline=loop.time() + interval_ms / 1000,
            interval_ms=interval_ms,
        )
        handle.native = loop.call_at(handle.deadline, self._fire_repeating, handle, loop)
        return handle

    def cancel_once(self, handle: TimerHandle) -> None:
        self._cancel(handle)

    def cancel_repeating(self, handle: TimerHandle) -> None:
        self._cancel(handle)

    def _cancel(self, handle: TimerHandle) -> None:
        if not handle.active:
            return
        handle.cancelled = True
        if handle.native is not None:
            handle.native.cancel()
        logger.trace("Cancelled timer %d", handle.id)

    def _fire_once(self, handle: TimerHandle) -> None:
        if handle.cancelled:
            return
        handle.fired = True
        handle.callback()

    def _fire_repeating(
        self, handle: TimerHandle, loop: asyncio.AbstractEventLoop
    ) -> None:
        if handle.cancelled:
            return
        # Re-arm from the previous deadline first so the cadence does not drift
        handle.deadline += handle.interval_ms / 1000
        handle.native = loop.call_at(handle.deadline, self._fire_repeating, handle, loop)
        handle.callback()
