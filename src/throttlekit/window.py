"""
Sliding dispatch-count window

Holds the `rate` most recent dispatch times. The scheduler is rate-bound while
the oldest of those is less than `rate_per` ms old. Only that oldest timestamp
matters, so older entries are dropped unconditionally.
"""

from collections import deque
from typing import Optional


class RateWindow:
    """Fixed-size log of dispatch timestamps (ms), oldest first"""

    def __init__(self, rate: int, rate_per: float):
        if rate < 1:
            raise ValueError("rate must be >= 1")
        if rate_per <= 0:
            raise ValueError("rate_per must be > 0")

        self.rate = rate
        self.rate_per = rate_per
        self._times: deque[float] = deque()

    def __len__(self) -> int:
        return len(self._times)

    @property
    def oldest(self) -> Optional[float]:
        return self._times[0] if self._times else None

    def trim(self) -> None:
        """Keep only the last `rate` timestamps"""
        while len(self._times) > self.rate:
            self._times.popleft()

    def record(self, now: float) -> None:
        self._times.append(now)

    def is_full(self, now: float) -> bool:
        """True if `rate` dispatches happened within the last `rate_per` ms"""
        self.trim()
        if len(self._times) < self.rate:
            return False
        return (now - self._times[0]) < self.rate_per

    def retry_delay(self, now: float) -> float:
        """
        Milliseconds until the oldest retained dispatch leaves the window

        The extra 1 ms keeps the next attempt strictly past expiry.
        """
        oldest = self.oldest
        if oldest is None:
            return 0.0
        return self.rate_per - (now - oldest) + 1

    def resize(self, rate: int, rate_per: float) -> None:
        """Apply new limits; history is kept and trimmed on the next check"""
        self.rate = rate
        self.rate_per = rate_per

    def snapshot(self) -> list[float]:
        return list(self._times)
