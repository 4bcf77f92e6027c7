"""
Scheduler facade and the process-wide default timer host.

The module-level ``start_timeout``/``start_interval`` run on a shared
``ThreadingTimerHost`` that is created and started on first use from
``Settings``. Pass a host explicitly (or build a ``Scheduler`` around one) to
run timers on an asyncio loop or a simulated clock instead.
"""

import logging
import threading
from typing import Callable, Optional

from colored_logger import get_colored_logger, resolve_level
from settings import Settings

from .controllers import StopHandle
from .controllers import start_interval as _start_interval
from .controllers import start_timeout as _start_timeout
from .host import ThreadingTimerHost, TimerHost
from .time_until import TimeUntil, resolve_delay as _resolve_delay

logger = get_colored_logger(__name__)

_default_host: Optional[ThreadingTimerHost] = None
_default_shutdown_timeout = Settings.DEFAULTS["shutdown_timeout_seconds"]
_default_host_lock = threading.Lock()


def get_default_host(settings: Optional[Settings] = None) -> ThreadingTimerHost:
    """
    Return the shared threading host, creating and starting it if needed.

    Args:
        settings: Configuration used only when the host is created
    """
    global _default_host, _default_shutdown_timeout

    with _default_host_lock:
        if _default_host is None:
            settings = settings or Settings()
            _default_shutdown_timeout = settings.shutdown_timeout_seconds

            # Handlers are left to the application; only this package's level is set
            logging.getLogger(__package__).setLevel(resolve_level(settings.log_level))

            _default_host = ThreadingTimerHost(
                thread_name=settings.dispatcher_thread_name,
                daemon=settings.daemon,
                max_wait_seconds=settings.max_wait_seconds,
            )
            _default_host.start()
            logger.debug(
                "Default timer host created (daemon=%s, max wait %ss)",
                settings.daemon,
                settings.max_wait_seconds,
            )
        return _default_host


def shutdown_default_host(timeout_seconds: Optional[float] = None) -> None:
    """Shut down the shared host; the next call to get_default_host makes a new one."""
    global _default_host

    with _default_host_lock:
        host, _default_host = _default_host, None

    if host is not None:
        if timeout_seconds is None:
            timeout_seconds = _default_shutdown_timeout
        host.shutdown(timeout_seconds)


class Scheduler:
    """Starts timeouts and intervals on one timer host."""

    def __init__(self, host: Optional[TimerHost] = None):
        self._host = host

    @property
    def host(self) -> TimerHost:
        if self._host is None:
            self._host = get_default_host()
        return self._host

    def time_until(self, when: TimeUntil) -> int:
        """
        Milliseconds from the host's current time until ``when``.

        Without a host the local clock is used; no default host is created.
        """
        return _resolve_delay(when, self._host.now() if self._host is not None else None)

    def start_timeout(
        self, callback: Callable[[], None], when: TimeUntil
    ) -> StopHandle:
        return _start_timeout(callback, when, host=self.host)

    def start_interval(
        self,
        callback: Callable[[], None],
        interval_ms: int,
        when: Optional[TimeUntil] = None,
    ) -> StopHandle:
        return _start_interval(callback, interval_ms, when, host=self.host)


def resolve_delay(when: TimeUntil, host: Optional[TimerHost] = None) -> int:
    """Milliseconds until ``when``, measured on ``host``'s clock if given."""
    return Scheduler(host).time_until(when)


def start_timeout(
    callback: Callable[[], None],
    when: TimeUntil,
    host: Optional[TimerHost] = None,
) -> StopHandle:
    """Run ``callback`` once at ``when`` on ``host`` (the default host if omitted)."""
    return Scheduler(host).start_timeout(callback, when)


def start_interval(
    callback: Callable[[], None],
    interval_ms: int,
    when: Optional[TimeUntil] = None,
    host: Optional[TimerHost] = None,
) -> StopHandle:
    """Run ``callback`` every ``interval_ms`` from ``when`` on ``host``."""
    return Scheduler(host).start_interval(callback, interval_ms, when)
