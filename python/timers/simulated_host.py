"""Deterministic timer host driven by a virtual clock."""

from datetime import datetime, timedelta
from typing import Optional

from colored_logger import get_colored_logger

from .host import TimerCallback, TimerHandle, TimerHost, TimerQueue, validate_interval

logger = get_colored_logger(__name__)


class SimulatedTimerHost(TimerHost):
    """
    Timer host whose clock only moves when ``advance`` is called.

    Nothing fires on its own: ``advance(ms)`` walks the virtual clock forward,
    running each due callback at its own deadline. Exceptions raised by a
    callback propagate out of ``advance``.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._start = start if start is not None else datetime.now().replace(
            microsecond=0
        )
        self._elapsed_ms = 0.0
        self._queue = TimerQueue()

    @property
    def elapsed_ms(self) -> float:
        """Virtual milliseconds since the host was created."""
        return self._elapsed_ms

    def now(self) -> datetime:
        return self._start + timedelta(milliseconds=self._elapsed_ms)

    def schedule_once(self, delay_ms: float, fn: TimerCallback) -> TimerHandle:
        return self._queue.push(self._elapsed_ms + max(0, delay_ms), fn)

    def schedule_repeating(self, interval_ms: int, fn: TimerCallback) -> TimerHandle:
        validate_interval(interval_ms)
        return self._queue.push(self._elapsed_ms + interval_ms, fn, interval_ms)

    def cancel_once(self, handle: TimerHandle) -> None:
        self._queue.cancel(handle)

    def cancel_repeating(self, handle: TimerHandle) -> None:
        self._queue.cancel(handle)

    def advance(self, ms: float) -> int:
        """
        Move the virtual clock forward by ``ms`` milliseconds.

        Returns:
            Number of callbacks that ran
        """
        if ms < 0:
            raise ValueError("Cannot move the clock backwards")

        target = self._elapsed_ms + ms
        fired = 0
        while True:
            due = self._queue.pop_due(target)
            if due is None:
                break
            deadline, handle = due
            self._elapsed_ms = max(self._elapsed_ms, deadline)
            fired += 1
            handle.callback()

        self._elapsed_ms = target
        if fired:
            logger.trace("Advanced %sms, %d timer callback(s) ran", ms, fired)
        return fired

    def run_pending(self) -> int:
        """Run timers that are already due without moving the clock."""
        return self.advance(0)

    def pending_count(self) -> int:
        return len(self._queue)

    def clear(self) -> None:
        """Drop every pending timer."""
        self._queue.clear()
