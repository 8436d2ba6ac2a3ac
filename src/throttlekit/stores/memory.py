"""
In-memory context store

Process-local store for development and testing. Several schedulers handed
the same instance behave like separate contexts sharing one durable store.
"""

import threading
from collections.abc import Iterable
from typing import Optional

from .base import ContextStore


class MemoryStore(ContextStore):
    """Thread-safe dict-backed store"""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self) -> Iterable[str]:
        with self._lock:
            # snapshot so callers may mutate while iterating
            return list(self._data)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
