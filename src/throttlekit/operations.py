"""
Operation interception

An operation is anything with `end(callback)` that starts work and later calls
`callback(error, response)` exactly once. `Throttle.intercept` wraps one in a
`ThrottledOperation`: calling its `end` queues the operation instead of
starting it, and the scheduler calls the original `end` on admission with a
callback that does its bookkeeping before forwarding to the caller's callback.
"""

import asyncio
import logging
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Optional,
    Protocol,
    runtime_checkable,
)

if TYPE_CHECKING:
    from .scheduler import Throttle

logger = logging.getLogger(__name__)

Callback = Callable[[Optional[BaseException], Any], None]


def _noop(error: Optional[BaseException], response: Any) -> None:
    pass


@runtime_checkable
class Operation(Protocol):
    def end(self, callback: Callback) -> Any: ...


class ThrottledOperation:
    """
    Deferred handle for an operation admitted by a `Throttle`

    Attribute access falls through to the wrapped operation.
    """

    def __init__(
        self,
        throttle: "Throttle",
        operation: Operation,
        lane: Optional[str] = None,
    ):
        self.throttle = throttle
        self.operation = operation
        # False and "" both mean unconstrained
        self.lane = lane or None
        self._callback: Callback = _noop
        self._queued = False

    def end(self, callback: Optional[Callback] = None) -> "ThrottledOperation":
        """Queue the operation; `callback` runs when it completes"""
        if self._queued:
            raise RuntimeError("Operation has already been queued")
        self._queued = True
        self._callback = callback or _noop
        self.throttle.cycle(self)
        return self

    def dispatch(self, callback: Callback) -> Any:
        """Start the wrapped operation; only the scheduler calls this"""
        return self.operation.end(callback)

    def complete(self, error: Optional[BaseException], response: Any) -> None:
        self._callback(error, response)

    def __getattr__(self, name: str) -> Any:
        if name == "operation":
            raise AttributeError(name)
        return getattr(self.operation, name)

    def __repr__(self) -> str:
        return f"ThrottledOperation({self.operation!r}, lane={self.lane!r})"


class CallbackOperation:
    """Adapts a `start(callback)` function to the operation contract"""

    def __init__(self, start: Callable[[Callback], Any]):
        self._start = start

    def end(self, callback: Callback) -> Any:
        return self._start(callback)


class AsyncOperation:
    """
    Runs a coroutine factory as an operation

    The coroutine is created only on dispatch. Its result or exception is
    forwarded to the completion callback; cancellation is reported as an
    `asyncio.CancelledError` error.
    """

    def __init__(
        self,
        factory: Callable[[], Awaitable[Any]],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._factory = factory
        self._loop = loop
        self.task: Optional[asyncio.Future] = None

    def end(self, callback: Callback) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        loop = self._loop or running
        if loop is None:
            raise RuntimeError("AsyncOperation needs an event loop to dispatch")

        if loop is running:
            self._start(loop, callback)
        else:
            # dispatched from a timer thread
            loop.call_soon_threadsafe(self._start, loop, callback)

    def _start(self, loop: asyncio.AbstractEventLoop, callback: Callback) -> None:
        self.task = asyncio.ensure_future(self._factory(), loop=loop)
        self.task.add_done_callback(lambda task: callback(*_outcome(task)))


def _outcome(task: asyncio.Future) -> tuple[Optional[BaseException], Any]:
    if task.cancelled():
        return asyncio.CancelledError(), None
    error = task.exception()
    if error is not None:
        return error, None
    return None, task.result()
