"""
One-shot timers used to re-run a rate-bound scheduler

Every handle returned here supports `cancel()`, and cancelling an
already-fired or already-cancelled timer is a no-op.
"""

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


def epoch_ms() -> float:
    """Wall-clock time in milliseconds since the epoch"""
    return time.time() * 1000


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Timer(ABC):
    """Schedules a callback once after a delay"""

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        """
        Run `callback` after `delay_ms` milliseconds

        Returns:
            Handle whose `cancel()` prevents the call if it has not happened yet
        """


class ThreadingTimer(Timer):
    """Daemon `threading.Timer` per call, for callers without an event loop"""

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(delay_ms, 0) / 1000.0, callback)
        timer.daemon = True
        timer.start()
        return timer


class AsyncioTimer(Timer):
    """
    Event-loop timer

    Uses the given loop, or the loop running at scheduling time. Without a
    running loop it falls back to a threading timer.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._fallback = ThreadingTimer()

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running event loop, using threading timer")
                return self._fallback.call_later(delay_ms, callback)

        return loop.call_later(max(delay_ms, 0) / 1000.0, callback)
