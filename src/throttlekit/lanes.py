"""
Serial lanes

A lane serialises the requests that name it while they keep their place in
the shared queue: at most one request per lane is in flight, and a waiting
lane never holds up unlaned requests or other lanes behind it.
"""

from typing import Optional


class LaneManager:
    """
    Busy/free state per lane name

    ```
    lanes._busy = {
        'example.com/end/point': True,
        'example.com/another': False,
    }
    ```
    """

    def __init__(self):
        self._busy: dict[str, bool] = {}
        # set when a pass found only lane-blocked requests; informational
        self.serial_bound = False

    def state(self, lane: Optional[str]) -> Optional[bool]:
        """Busy flag of `lane`, or None if it was never used (or no lane)"""
        if not lane:
            return None
        return self._busy.get(lane)

    def set_state(self, lane: Optional[str], busy: bool) -> None:
        if not lane:
            return
        if not busy:
            self.serial_bound = False
        self._busy[lane] = busy

    def is_free(self, lane: Optional[str]) -> bool:
        """Unlaned requests are always free to go"""
        return not lane or not self._busy.get(lane, False)

    def busy_lanes(self) -> list[str]:
        return [lane for lane, busy in self._busy.items() if busy]
