"""
Host timer primitives.

The controllers never sleep or spawn threads themselves. They ask a host to
run a callback after a delay, or repeatedly, and to cancel it again. This
module defines that contract and the thread-based host used by default.
"""

import heapq
import itertools
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import psutil

from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)

TimerCallback = Callable[[], None]


@dataclass(eq=False)
class TimerHandle:
    """A callback registered with a host. Hosts own every field but ``id``."""

    id: int
    callback: TimerCallback
    deadline: float
    interval_ms: Optional[int] = None
    cancelled: bool = False
    fired: bool = False
    native: Any = field(default=None, repr=False)

    @property
    def repeating(self) -> bool:
        return self.interval_ms is not None

    @property
    def active(self) -> bool:
        return not self.cancelled and not self.fired


class TimerHost(ABC):
    """
    Contract every timer host fulfils.

    Delays of zero or less fire as soon as the host can. Cancelling a handle
    that already fired or was already cancelled is always a no-op.
    """

    @abstractmethod
    def schedule_once(self, delay_ms: float, fn: TimerCallback) -> TimerHandle:
        """Run ``fn`` once after ``delay_ms`` milliseconds."""

    @abstractmethod
    def cancel_once(self, handle: TimerHandle) -> None:
        """Cancel a one-shot timer."""

    @abstractmethod
    def schedule_repeating(self, interval_ms: int, fn: TimerCallback) -> TimerHandle:
        """Run ``fn`` every ``interval_ms`` milliseconds, first after one interval."""

    @abstractmethod
    def cancel_repeating(self, handle: TimerHandle) -> None:
        """Cancel a repeating timer."""

    @abstractmethod
    def now(self) -> datetime:
        """Current wall-clock instant as seen by this host."""


def validate_interval(interval_ms: int) -> None:
    if interval_ms <= 0:
        raise ValueError(f"interval_ms must be positive, got {interval_ms}")


class TimerQueue:
    """
    Deadline-ordered timers; equal deadlines come out in scheduling order.

    Cancelled entries stay in the heap and are skipped when popped.
    """

    def __init__(self):
        self._heap: List[Tuple[float, int, TimerHandle]] = []
        self._sequence = itertools.count()
        self._ids = itertools.count(1)

    def push(
        self,
        deadline: float,
        callback: TimerCallback,
        interval_ms: Optional[int] = None,
    ) -> TimerHandle:
        handle = TimerHandle(
            id=next(self._ids),
            callback=callback,
            deadline=deadline,
            interval_ms=interval_ms,
        )
        heapq.heappush(self._heap, (deadline, next(self._sequence), handle))
        return handle

    def pop_due(self, now: float) -> Optional[Tuple[float, TimerHandle]]:
        """
        Take the earliest live timer whose deadline is at or before ``now``.

        One-shot timers are marked fired; repeating timers are re-queued one
        interval after the deadline they fired for.

        Returns:
            (deadline fired for, handle), or None when nothing is due
        """
        while self._heap:
            deadline, _, handle = self._heap[0]
            if handle.cancelled:
                heapq.heappop(self._heap)
                continue
            if deadline > now:
                return None

            heapq.heappop(self._heap)
            if handle.repeating:
                handle.deadline = deadline + handle.interval_ms
                heapq.heappush(
                    self._heap, (handle.deadline, next(self._sequence), handle)
                )
            else:
                handle.fired = True
            return deadline, handle
        return None

    def next_deadline(self) -> Optional[float]:
        while self._heap and self._heap[0][2].cancelled:
            heapq.heappop(self._heap)
        return self._heap[0][0] if self._heap else None

    def cancel(self, handle: TimerHandle) -> bool:
        """Mark a handle cancelled. Returns False if it was already inert."""
        if not handle.active:
            return False
        handle.cancelled = True
        return True

    def clear(self) -> None:
        for _, _, handle in self._heap:
            handle.cancelled = True
        self._heap.clear()

    def __len__(self) -> int:
        return sum(1 for _, _, handle in self._heap if not handle.cancelled)


class ThreadingTimerHost(TimerHost):
    """
    Timer host backed by a single background dispatcher thread.

    All callbacks run one after another on the dispatcher thread, so code
    driven by this host never sees two of its callbacks running at once.
    Scheduling and cancelling are safe from any thread.
    """

    def __init__(
        self,
        thread_name: str = "TimerDispatcher",
        daemon: bool = True,
        max_wait_seconds: float = 1.0,
    ):
        """
        Args:
            thread_name: Name of the dispatcher thread
            daemon: Whether the dispatcher thread is a daemon thread
            max_wait_seconds: Longest the dispatcher sleeps before re-checking
        """
        self.thread_name = thread_name
        self.daemon = daemon
        self.max_wait_seconds = max(0.01, max_wait_seconds)

        self._queue = TimerQueue()
        self._condition = threading.Condition(threading.RLock())
        self._shutdown_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._closed = False

    @staticmethod
    def _clock_ms() -> float:
        return time.monotonic() * 1000

    def now(self) -> datetime:
        return datetime.now()

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the dispatcher thread."""
        with self._condition:
            if self._closed:
                raise RuntimeError("Timer host has been shut down")
            if self._running:
                logger.warning("Timer host is already running")
                return

            self._shutdown_event.clear()
            self._running = True
            self._thread = threading.Thread(
                target=self._dispatch_loop, name=self.thread_name, daemon=self.daemon
            )
            self._thread.start()
            logger.info("Timer host '%s' started", self.thread_name)

    def shutdown(self, timeout_seconds: float = 5.0) -> None:
        """
        Stop the dispatcher and drop every pending timer.

        Args:
            timeout_seconds: Maximum time to wait for a running callback
        """
        with self._condition:
            self._closed = True
            if not self._running:
                self._queue.clear()
                return

            logger.info("Stopping timer host '%s'...", self.thread_name)
            self._running = False
            self._shutdown_event.set()
            self._queue.clear()
            self._condition.notify_all()

        thread = self._thread
        if (
            thread
            and thread.is_alive()
            and thread is not threading.current_thread()
        ):
            thread.join(timeout=timeout_seconds)
            if thread.is_alive():
                logger.warning(
                    "Dispatcher thread did not stop within %ss", timeout_seconds
                )

        logger.info("Timer host '%s' stopped", self.thread_name)

    def schedule_once(self, delay_ms: float, fn: TimerCallback) -> TimerHandle:
        return self._schedule(delay_ms, fn, None)

    def schedule_repeating(self, interval_ms: int, fn: TimerCallback) -> TimerHandle:
        validate_interval(interval_ms)
        return self._schedule(interval_ms, fn, interval_ms)

    def _schedule(
        self, delay_ms: float, fn: TimerCallback, interval_ms: Optional[int]
    ) -> TimerHandle:
        with self._condition:
            if self._closed:
                raise RuntimeError("Cannot schedule on a timer host that was shut down")
            if not self._running:
                self.start()

            deadline = self._clock_ms() + max(0, delay_ms)
            handle = self._queue.push(deadline, fn, interval_ms)
            self._condition.notify_all()

        logger.trace(
            "Scheduled timer %d in %sms%s",
            handle.id,
            delay_ms,
            f" every {interval_ms}ms" if interval_ms else "",
        )
        return handle

    def cancel_once(self, handle: TimerHandle) -> None:
        self._cancel(handle)

    def cancel_repeating(self, handle: TimerHandle) -> None:
        self._cancel(handle)

    def _cancel(self, handle: TimerHandle) -> None:
        with self._condition:
            cancelled = self._queue.cancel(handle)
            self._condition.notify_all()
        if cancelled:
            logger.trace("Cancelled timer %d", handle.id)

    def _dispatch_loop(self) -> None:
        """Main dispatcher loop that runs in the background thread."""
        logger.debug("Dispatcher loop started")

        while not self._shutdown_event.is_set():
            with self._condition:
                due = self._queue.pop_due(self._clock_ms())
                if due is None:
                    next_deadline = self._queue.next_deadline()
                    wait = self.max_wait_seconds
                    if next_deadline is not None:
                        wait = min(wait, (next_deadline - self._clock_ms()) / 1000)
                    if wait > 0:
                        self._condition.wait(timeout=wait)
                    continue

            # Callbacks run outside the lock so they can schedule and cancel
            self._run(due[1])

        logger.debug("Dispatcher loop ended")

    def _run(self, handle: TimerHandle) -> None:
        logger.trace("Firing timer %d", handle.id)
        try:
            handle.callback()
        except Exception as e:
            logger.error(
                "Timer %d callback raised: %s", handle.id, e, exc_info=True
            )

    def pending_count(self) -> int:
        with self._condition:
            return len(self._queue)

    def get_status(self) -> Dict[str, Any]:
        """Get dispatcher status information."""
        thread = self._thread
        return {
            "running": self._running,
            "thread_name": self.thread_name,
            "thread_alive": bool(thread and thread.is_alive()),
            "pending_timers": self.pending_count(),
            "resource_usage": {
                "memory_mb": self._get_memory_usage(),
                "active_threads": threading.active_count(),
            },
        }

    def _get_memory_usage(self) -> int:
        """Get current process memory usage in MB."""
        try:
            process = psutil.Process()
            return int(process.memory_info().rss / 1024 / 1024)
        except psutil.Error:
            return 0
