"""
Base interfaces for shared context stores

A context store is the durable key-value collaborator through which separate
execution contexts (processes, workers) share concurrency accounting.

Consistency contract:
- No locking. Reads of other contexts' entries may be stale.
- Each context writes only its own key, so writes never conflict.
- Entries of dead contexts may linger; readers age them out using
  `last_action_at`.
"""

import json
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class ContextEntry:
    """Concurrency state of one execution context"""

    current_count: int
    last_action_at: float

    def is_stale(self, now: float, expire: float) -> bool:
        """Check whether the owning context has been idle longer than `expire` ms"""
        return self.last_action_at < now - expire

    def dumps(self) -> str:
        """Serialize for storage"""
        return json.dumps(
            {"currentCount": self.current_count, "lastActionAt": self.last_action_at}
        )

    @classmethod
    def loads(cls, data: Optional[str]) -> "ContextEntry":
        """
        Deserialize a stored entry

        Raises:
            StoreSerializationError: If the payload is missing or malformed
        """
        if not data:
            raise StoreSerializationError("Empty context entry")
        try:
            obj: Any = json.loads(data)
            count = obj["currentCount"]
            last_action_at = obj["lastActionAt"]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise StoreSerializationError(f"Malformed context entry: {e}") from e

        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise StoreSerializationError(f"Invalid currentCount: {count!r}")
        if isinstance(last_action_at, bool) or not isinstance(
            last_action_at, (int, float)
        ):
            raise StoreSerializationError(f"Invalid lastActionAt: {last_action_at!r}")

        return cls(current_count=count, last_action_at=last_action_at)


class ContextStore(ABC):
    """
    Abstract base class for shared context stores

    Values are opaque strings; the concurrency counter owns their format.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read a value

        Returns:
            Stored string, or None if the key is absent
        """

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Write a value, replacing any previous one"""

    @abstractmethod
    def remove(self, key: str) -> bool:
        """
        Delete a key

        Returns:
            True if the key existed
        """

    @abstractmethod
    def keys(self) -> Iterable[str]:
        """Enumerate all keys currently held"""

    def close(self) -> None:
        """Release backend resources"""


class StoreError(Exception):
    """Base exception for context store errors"""


class StoreConnectionError(StoreError):
    """Exception for store backend failures"""


class StoreSerializationError(StoreError):
    """Exception for unparseable stored entries"""
