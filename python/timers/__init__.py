"""
Deferred one-shot and repeating timers.

This package provides:
- Flexible "when" descriptors (offset, time of day, absolute datetime)
- One-shot timeouts and delayed-start intervals
- Immediate and deferred stops, with cancellable deferred stops
- Threading, asyncio and simulated-clock timer hosts
"""

from .asyncio_host import AsyncioTimerHost
from .controllers import (
    IntervalState,
    StopCancelHandle,
    StopHandle,
    TimeoutState,
)
from .host import ThreadingTimerHost, TimerHandle, TimerHost
from .scheduler import (
    Scheduler,
    get_default_host,
    resolve_delay,
    shutdown_default_host,
    start_interval,
    start_timeout,
)
from .simulated_host import SimulatedTimerHost
from .time_until import TimeInMS, TimeOfDay, TimeUntil, delay_until

__all__ = [
    "AsyncioTimerHost",
    "IntervalState",
    "Scheduler",
    "SimulatedTimerHost",
    "StopCancelHandle",
    "StopHandle",
    "ThreadingTimerHost",
    "TimeInMS",
    "TimeOfDay",
    "TimeUntil",
    "TimeoutState",
    "TimerHandle",
    "TimerHost",
    "delay_until",
    "get_default_host",
    "resolve_delay",
    "shutdown_default_host",
    "start_interval",
    "start_timeout",
]
