"""
Pytest configuration and shared fixtures for throttlekit tests

Provides a controllable clock and timer so scheduling can be tested
deterministically, plus operations completed by the test itself.
"""

from typing import Callable, Optional

import pytest

from throttlekit.config import set_config
from throttlekit.events import EVENTS
from throttlekit.scheduler import Throttle
from throttlekit.stores import MemoryStore
from throttlekit.timers import Timer


class FakeClock:
    """Epoch-millisecond clock moved by hand"""

    def __init__(self, start: float = 1_700_000_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class FakeTimerHandle:
    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimer(Timer):
    """Timer driven by a FakeClock; `advance` fires due callbacks in order"""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.handles: list[FakeTimerHandle] = []

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> FakeTimerHandle:
        handle = FakeTimerHandle(self.clock.now + delay_ms, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[FakeTimerHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def advance(self, ms: float) -> None:
        target = self.clock.now + ms
        while True:
            due = sorted(
                (h for h in self.pending if h.when <= target), key=lambda h: h.when
            )
            if not due:
                break
            handle = due[0]
            self.clock.now = max(self.clock.now, handle.when)
            handle.fired = True
            handle.callback()
        self.clock.now = target


class ManualOperation:
    """Operation that completes when the test calls `finish`"""

    def __init__(self, name: str = "op"):
        self.name = name
        self.callback = None
        self.started = False

    def end(self, callback) -> None:
        self.started = True
        self.callback = callback

    def finish(self, error: Optional[BaseException] = None, response=None) -> None:
        self.callback(error, response)

    def __repr__(self) -> str:
        return f"ManualOperation({self.name!r})"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timer(clock):
    return FakeTimer(clock)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_throttle(clock, timer):
    """Factory for throttles on the fake clock; closes them after the test"""
    created = []

    def factory(**kwargs) -> Throttle:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("timer", timer)
        throttle = Throttle(**kwargs)
        created.append(throttle)
        return throttle

    yield factory

    for throttle in created:
        throttle.close()


@pytest.fixture
def recorder():
    """Attach to a throttle to record (event, args) tuples in order"""

    class Recorder:
        def __init__(self):
            self.events = []

        def attach(self, throttle: Throttle) -> "Recorder":
            for event in EVENTS:
                throttle.on(
                    event, lambda *args, _event=event: self.events.append((_event, args))
                )
            return self

        def names(self) -> list[str]:
            return [event for event, _ in self.events]

        def sent(self) -> list[str]:
            return [args[0].name for event, args in self.events if event == "sent"]

    return Recorder()


@pytest.fixture(autouse=True)
def reset_global_config():
    yield
    set_config(None)
