"""
One-shot and repeating timer controllers with their stop handles.

``start_timeout`` and ``start_interval`` return a ``StopHandle``. Calling it
with no argument stops right away. Calling it with a ``TimeUntil`` (or a
``datetime``) schedules the stop for later and returns a ``StopCancelHandle``
that can abort that deferred stop.
"""

import threading
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Union

from colored_logger import get_colored_logger

from .host import TimerHandle, TimerHost, validate_interval
from .time_until import TimeUntil, delay_until, resolve_delay

logger = get_colored_logger(__name__)

StopTime = Union[TimeUntil, datetime]


class TimeoutState(Enum):
    """Lifecycle of a one-shot timer."""

    ARMED = "armed"
    FIRED = "fired"
    CANCELLED = "cancelled"


class IntervalState(Enum):
    """Lifecycle of a repeating timer."""

    PENDING_START = "pending_start"
    RUNNING = "running"
    STOPPED = "stopped"


def _callback_name(callback: Callable) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)


class ActiveTimerSet:
    """Host timer handles owned by a single controller."""

    def __init__(self, host: TimerHost):
        self.host = host
        self.start_handle: Optional[TimerHandle] = None
        self.repeat_handle: Optional[TimerHandle] = None
        self.lock = threading.RLock()

    def arm_start(self, delay_ms: float, on_fire: Callable[[], None]) -> None:
        with self.lock:
            self.start_handle = self.host.schedule_once(delay_ms, on_fire)

    def arm_repeat(self, interval_ms: int, on_tick: Callable[[], None]) -> None:
        with self.lock:
            self.repeat_handle = self.host.schedule_repeating(interval_ms, on_tick)

    def cancel_all(self) -> None:
        with self.lock:
            if self.start_handle is not None:
                self.host.cancel_once(self.start_handle)
                self.start_handle = None
            if self.repeat_handle is not None:
                self.host.cancel_repeating(self.repeat_handle)
                self.repeat_handle = None

    @property
    def inert(self) -> bool:
        return self.start_handle is None and self.repeat_handle is None


class TimeoutController:
    """Runs a callback once after a delay."""

    def __init__(self, callback: Callable[[], None], host: TimerHost):
        self.callback = callback
        self.name = _callback_name(callback)
        self.timers = ActiveTimerSet(host)
        self.state = TimeoutState.ARMED

    @property
    def host(self) -> TimerHost:
        return self.timers.host

    def start(self, when: TimeUntil) -> None:
        delay = resolve_delay(when, self.host.now())
        with self.timers.lock:
            self.timers.arm_start(delay, self._fire)
        logger.trace("Timeout '%s' armed for %sms", self.name, delay)

    def _fire(self) -> None:
        with self.timers.lock:
            if self.state is not TimeoutState.ARMED:
                return
            self.timers.start_handle = None
            self.state = TimeoutState.FIRED
        logger.trace("Timeout '%s' fired", self.name)
        self.callback()

    def stop_now(self) -> None:
        with self.timers.lock:
            self.timers.cancel_all()
            if self.state is TimeoutState.ARMED:
                self.state = TimeoutState.CANCELLED
                logger.trace("Timeout '%s' cancelled", self.name)


class IntervalController:
    """Runs a callback repeatedly, optionally starting at a later time."""

    def __init__(
        self, callback: Callable[[], None], interval_ms: int, host: TimerHost
    ):
        validate_interval(interval_ms)
        self.callback = callback
        self.interval_ms = interval_ms
        self.name = _callback_name(callback)
        self.timers = ActiveTimerSet(host)
        self.state = IntervalState.PENDING_START

    @property
    def host(self) -> TimerHost:
        return self.timers.host

    def start(self, when: Optional[TimeUntil] = None) -> None:
        delay = resolve_delay(when, self.host.now()) if when is not None else 0

        if delay <= 0:
            try:
                self._begin()
            except Exception:
                # The caller never receives a handle, so nothing may stay armed
                self.stop_now()
                raise
            return

        with self.timers.lock:
            self.timers.arm_start(delay, self._begin)
        logger.trace(
            "Interval '%s' starts in %sms, every %sms",
            self.name,
            delay,
            self.interval_ms,
        )

    def _begin(self) -> None:
        with self.timers.lock:
            if self.state is not IntervalState.PENDING_START:
                return
            self.timers.start_handle = None
            self.timers.arm_repeat(self.interval_ms, self._tick)
            self.state = IntervalState.RUNNING
        logger.trace("Interval '%s' running every %sms", self.name, self.interval_ms)
        self.callback()

    def _tick(self) -> None:
        if self.state is not IntervalState.RUNNING:
            return
        self.callback()

    def stop_now(self) -> None:
        with self.timers.lock:
            self.timers.cancel_all()
            if self.state is not IntervalState.STOPPED:
                self.state = IntervalState.STOPPED
                logger.trace("Interval '%s' stopped", self.name)


Controller = Union[TimeoutController, IntervalController]


class StopCancelHandle:
    """
    Right to abort one deferred stop before it fires.

    ``handle()`` aborts the deferred stop and leaves the timer running;
    ``handle(True)`` aborts it and stops the timer immediately instead.
    """

    def __init__(self, controller: Controller):
        self._controller = controller
        self._handle: Optional[TimerHandle] = None
        self._lock = threading.Lock()

    def arm(self, delay_ms: float) -> None:
        with self._lock:
            self._handle = self._controller.host.schedule_once(delay_ms, self._fire)

    def _fire(self) -> None:
        with self._lock:
            self._handle = None
        logger.trace("Deferred stop of '%s' fired", self._controller.name)
        self._controller.stop_now()

    @property
    def pending(self) -> bool:
        """Whether the deferred stop is still waiting to fire."""
        handle = self._handle
        return handle is not None and handle.active

    def __call__(self, stop_running: bool = False) -> None:
        with self._lock:
            handle, self._handle = self._handle, None
        if handle is not None:
            self._controller.host.cancel_once(handle)
            logger.trace("Deferred stop of '%s' aborted", self._controller.name)
        if stop_running:
            self._controller.stop_now()


class StopHandle:
    """
    Stops the timer it was returned for.

    ``stop()`` stops immediately and returns None. ``stop(when)`` schedules
    the stop and returns a ``StopCancelHandle`` for that scheduled stop.
    Deferred stops may overlap; each gets its own cancel handle.
    """

    def __init__(self, controller: Controller):
        self._controller = controller

    @property
    def controller(self) -> Controller:
        return self._controller

    @property
    def state(self) -> Union[TimeoutState, IntervalState]:
        return self._controller.state

    def __call__(self, stop_when: Optional[StopTime] = None) -> Optional[StopCancelHandle]:
        if stop_when is None:
            self._controller.stop_now()
            return None

        now = self._controller.host.now()
        if isinstance(stop_when, datetime):
            delay = delay_until(stop_when, now)
        else:
            delay = resolve_delay(stop_when, now)

        cancel = StopCancelHandle(self._controller)
        cancel.arm(delay)
        logger.trace("Stop of '%s' scheduled in %sms", self._controller.name, delay)
        return cancel


def start_timeout(
    callback: Callable[[], None], when: TimeUntil, *, host: TimerHost
) -> StopHandle:
    """
    Run ``callback`` once at the time described by ``when``.

    Args:
        callback: Called with no arguments when the timer fires
        when: When to fire
        host: Timer host that drives the timer

    Returns:
        Handle that stops the timeout now or at a later time
    """
    controller = TimeoutController(callback, host)
    controller.start(when)
    return StopHandle(controller)


def start_interval(
    callback: Callable[[], None],
    interval_ms: int,
    when: Optional[TimeUntil] = None,
    *,
    host: TimerHost,
) -> StopHandle:
    """
    Run ``callback`` every ``interval_ms`` milliseconds.

    The first call happens at the start time (right away when ``when`` is
    omitted or already due), then once per interval after that.

    Raises:
        ValueError: If interval_ms is not positive
    """
    controller = IntervalController(callback, interval_ms, host)
    stop = StopHandle(controller)
    controller.start(when)
    return stop
