"""
Admission scheduler

`Throttle` holds queued operations and dispatches them when three independent
limits allow it: a sliding dispatch-count window (`rate` per `rate_per` ms), a
concurrency ceiling (`concurrent`, optionally shared across contexts), and
serial lanes. Scheduling is cooperative: every decision is made synchronously
in `cycle()`, which is called on enqueue, on completion, on reconfiguration,
and by a one-shot timer while the window is full.
"""

import asyncio
import functools
import inspect
import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from .concurrency import ConcurrencyCounter
from .config import ThrottleConfig, ThrottleSettings
from .events import DRAINED, ERROR, RECEIVED, SENT, EventEmitter
from .lanes import LaneManager
from .operations import AsyncOperation, Callback, Operation, ThrottledOperation
from .stores import ContextStore, build_store
from .timers import AsyncioTimer, Timer, TimerHandle, epoch_ms
from .window import RateWindow

if TYPE_CHECKING:
    from .observability import ThrottleMetrics

logger = logging.getLogger(__name__)


@dataclass
class ThrottleStats:
    """Point-in-time view of a scheduler"""

    name: str
    active: bool
    queued: int
    in_flight: int
    local_in_flight: int
    concurrent: int
    rate: int
    rate_per: int
    window_used: int
    rate_bound: bool
    serial_bound: bool
    busy_lanes: list[str] = field(default_factory=list)
    context_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "active": self.active,
            "queued": self.queued,
            "in_flight": self.in_flight,
            "local_in_flight": self.local_in_flight,
            "concurrent": self.concurrent,
            "rate": self.rate,
            "rate_per": self.rate_per,
            "window_used": self.window_used,
            "rate_bound": self.rate_bound,
            "serial_bound": self.serial_bound,
            "busy_lanes": self.busy_lanes,
            "context_id": self.context_id,
        }


class Throttle(EventEmitter):
    """
    Client-side admission controller

    Events:
    - ``sent(request)``: request admitted and dispatched
    - ``received(request)``: dispatched request completed, success or failure
    - ``error(error, request)``: dispatched request failed; only emitted when
      someone listens
    - ``drained()``: queue empty and nothing in flight
    """

    def __init__(
        self,
        config: Optional[ThrottleConfig] = None,
        store: Optional[ContextStore] = None,
        clock: Optional[Callable[[], float]] = None,
        timer: Optional[Timer] = None,
        metrics: Optional["ThrottleMetrics"] = None,
        **options: Any,
    ):
        """
        Initialize throttle

        Args:
            config: Base options (defaults if None)
            store: Shared store for cross-context accounting; without one,
                `across_contexts` is forced off
            clock: Time source returning epoch milliseconds
            timer: One-shot timer facility (asyncio loop by default)
            metrics: Prometheus collector to bind to this throttle's events
            **options: Option overrides applied on top of `config`

        Raises:
            pydantic.ValidationError: If an option is invalid
        """
        super().__init__()
        config = config or ThrottleConfig()
        if options:
            config = config.merged(options)

        self._store = store
        self._clock = clock or epoch_ms
        self._timer = timer or AsyncioTimer()
        self._lock = threading.RLock()

        self._buffer: list[ThrottledOperation] = []
        self._timeout: Optional[TimerHandle] = None
        self._lanes = LaneManager()

        self.config = self._resolve(config)
        self._window = RateWindow(self.config.rate, self.config.rate_per)
        self._counter = ConcurrencyCounter(self.config, store, self._clock)

        if metrics is not None:
            metrics.bind(self)

        logger.debug(
            f"Throttle '{self.config.name}' created: {self.config.rate} per "
            f"{self.config.rate_per}ms, {self.config.concurrent} concurrent"
        )

    @classmethod
    def from_settings(cls, settings: ThrottleSettings, **kwargs: Any) -> "Throttle":
        """Build a throttle with the store and metrics named in `settings`"""
        from .observability import ThrottleMetrics

        store = kwargs.pop("store", None)
        if store is None and settings.throttle.across_contexts:
            store = build_store(settings.store)

        metrics = kwargs.pop("metrics", None)
        if metrics is None and settings.metrics.enabled:
            metrics = ThrottleMetrics(settings.metrics)

        return cls(settings.throttle, store=store, metrics=metrics, **kwargs)

    def _resolve(self, config: ThrottleConfig) -> ThrottleConfig:
        if config.across_contexts and self._store is None:
            logger.warning(
                f"Throttle '{config.name}': no shared store, "
                "cross-context concurrency disabled"
            )
            return config.merged({"across_contexts": False})
        return config

    # configuration

    def reconfigure(self, options: Optional[dict[str, Any]] = None, **kwargs: Any) -> None:
        """
        Merge new options and run a scheduling pass

        Raises:
            pydantic.ValidationError: If the merged options are invalid; the
                previous configuration stays in effect
        """
        updates = {**(options or {}), **kwargs}
        with self._lock:
            config = self._resolve(self.config.merged(updates))
            self.config = config
            self._window.resize(config.rate, config.rate_per)
            self._counter.configure(config)
        self.cycle()

    def set_option(self, name: str, value: Any) -> None:
        self.reconfigure({name: value})

    # queries

    @property
    def queued(self) -> int:
        return len(self._buffer)

    @property
    def context_id(self) -> Optional[str]:
        return self._counter.context_id

    def current_concurrency_level(self) -> int:
        return self._counter.current()

    def lane_state(self, lane: Optional[str]) -> Optional[bool]:
        return self._lanes.state(lane)

    def is_rate_bound(self) -> bool:
        """True while the window is full and something is waiting"""
        return bool(self._buffer) and self._window.is_full(self._clock())

    @property
    def is_serial_bound(self) -> bool:
        return self._lanes.serial_bound

    def get_stats(self) -> ThrottleStats:
        with self._lock:
            return ThrottleStats(
                name=self.config.name,
                active=self.config.active,
                queued=len(self._buffer),
                in_flight=self._counter.current(),
                local_in_flight=self._counter.local_count,
                concurrent=self.config.concurrent,
                rate=self.config.rate,
                rate_per=self.config.rate_per,
                window_used=len(self._window),
                rate_bound=self.is_rate_bound(),
                serial_bound=self._lanes.serial_bound,
                busy_lanes=self._lanes.busy_lanes(),
                context_id=self._counter.context_id,
            )

    # interception

    def intercept(self, operation: Operation, lane: Optional[str] = None) -> ThrottledOperation:
        """Wrap `operation` so that calling `end()` on the result queues it here"""
        return ThrottledOperation(self, operation, lane)

    def plugin(self, lane: Optional[str] = None) -> Callable[[Operation], ThrottledOperation]:
        """
        Return an interceptor bound to `lane`, for `.use(throttle.plugin())`
        style request builders
        """
        return functools.partial(self.intercept, lane=lane)

    def enqueue(
        self,
        operation: Operation,
        callback: Optional[Callback] = None,
        lane: Optional[str] = None,
    ) -> ThrottledOperation:
        """Intercept `operation` and queue it immediately"""
        if not isinstance(operation, ThrottledOperation):
            operation = self.intercept(operation, lane)
        elif operation.throttle is not self:
            raise ValueError(f"{operation!r} was intercepted by another throttle")
        return operation.end(callback)

    def submit(
        self,
        factory: Callable[[], Awaitable[Any]],
        lane: Optional[str] = None,
    ) -> asyncio.Future:
        """
        Queue a coroutine factory; must be called from a running event loop

        Returns:
            Future resolving to the coroutine's result (or exception)
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def settle(error: Optional[BaseException], response: Any) -> None:
            if future.done():
                return
            if isinstance(error, asyncio.CancelledError):
                future.cancel()
            elif error is not None:
                future.set_exception(error)
            else:
                future.set_result(response)

        self.enqueue(AsyncOperation(factory, loop), settle, lane)
        return future

    def limit(self, lane: Optional[str] = None):
        """
        Decorator routing every call of a coroutine function through this throttle

        Args:
            lane: Serial lane for all calls of the decorated function
        """

        def decorator(func):
            if not inspect.iscoroutinefunction(func):
                raise TypeError(f"{func.__name__} is not a coroutine function")

            @functools.wraps(func)
            async def wrapper(*args, **kwargs):
                return await self.submit(lambda: func(*args, **kwargs), lane=lane)

            return wrapper

        return decorator

    # scheduling

    def next(self) -> bool:
        """
        Try to admit one request

        Returns:
            True if a request was dispatched
        """
        with self._lock:
            self._window.trim()

            if (
                not self.config.active
                or self._counter.current() >= self.config.concurrent
                or self.is_rate_bound()
                or not self._buffer
            ):
                return False

            for index, request in enumerate(self._buffer):
                if self._lanes.is_free(request.lane):
                    break
            else:
                self._lanes.serial_bound = True
                return False

            self._send(self._buffer.pop(index))
            return True

    def cycle(self, request: Optional[ThrottledOperation] = None) -> None:
        """
        Queue `request` (if given) and admit as much as capacity allows

        Called when something is queued, when a request completes, when
        options change, and by the timer once the window may have room.
        """
        with self._lock:
            if request is not None:
                self._buffer.append(request)
            self._cancel_timeout()

            while self.next():
                pass

            if self.is_rate_bound():
                # a completion inside the drain may have armed a timer already
                self._cancel_timeout()
                delay = self._window.retry_delay(self._clock())
                handle = None

                def fire() -> None:
                    self._on_timeout(handle)

                handle = self._timeout = self._timer.call_later(delay, fire)
                logger.debug(
                    f"Throttle '{self.config.name}' rate bound, "
                    f"{len(self._buffer)} queued, retry in {delay:.0f}ms"
                )

    def close(self) -> None:
        """Cancel the pending timer and remove this context's store entry"""
        with self._lock:
            self._cancel_timeout()
        self._counter.close()

    def __enter__(self) -> "Throttle":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _on_timeout(self, handle: Optional[TimerHandle]) -> None:
        with self._lock:
            # a timer that lost a race with re-arming must not drop the new handle
            if self._timeout is handle:
                self._timeout = None
        self.cycle()

    def _cancel_timeout(self) -> None:
        if self._timeout is not None:
            self._timeout.cancel()
            self._timeout = None

    def _send(self, request: ThrottledOperation) -> None:
        self._lanes.set_state(request.lane, True)
        self._window.record(self._clock())
        self._counter.adjust(1)
        self.emit(SENT, request)

        completed = False

        def cleanup(error: Optional[BaseException] = None, response: Any = None) -> None:
            nonlocal completed
            if completed:
                logger.warning(f"Ignoring repeated completion of {request!r}")
                return
            completed = True
            self._complete(request, error, response)

        try:
            request.dispatch(cleanup)
        except Exception as e:
            logger.warning(f"Dispatch of {request!r} failed: {e}")
            cleanup(e, None)

    def _complete(
        self,
        request: ThrottledOperation,
        error: Optional[BaseException],
        response: Any,
    ) -> None:
        with self._lock:
            self._counter.adjust(-1)
            if error is not None and self.listener_count(ERROR):
                self.emit(ERROR, error, request)
            self.emit(RECEIVED, request)

            if not self._buffer and not self._counter.current():
                self.emit(DRAINED)

            self._lanes.set_state(request.lane, False)
            self.cycle()

        request.complete(error, response)
