"""
throttlekit - client-side admission control for outbound requests

Queues operations and dispatches them under a sliding rate limit, a
concurrency ceiling (optionally shared across processes), and per-lane
serialization.
"""

__version__ = "0.1.0"

from .config import StoreConfig, ThrottleConfig, ThrottleSettings
from .events import DRAINED, ERROR, RECEIVED, SENT, Subscription
from .operations import AsyncOperation, CallbackOperation, ThrottledOperation
from .scheduler import Throttle, ThrottleStats
from .stores import ContextStore, FileStore, MemoryStore, RedisStore

__all__ = [
    "Throttle",
    "ThrottleStats",
    "ThrottleConfig",
    "ThrottleSettings",
    "StoreConfig",
    "ThrottledOperation",
    "CallbackOperation",
    "AsyncOperation",
    "Subscription",
    "ContextStore",
    "MemoryStore",
    "FileStore",
    "RedisStore",
    "SENT",
    "RECEIVED",
    "ERROR",
    "DRAINED",
    "__version__",
]
