"""
Shared context stores for throttlekit

Provides the key-value collaborators used for cross-context concurrency
accounting, plus a factory selecting one from configuration.
"""

from ..config import StoreConfig
from .base import (
    ContextEntry,
    ContextStore,
    StoreConnectionError,
    StoreError,
    StoreSerializationError,
)
from .file_store import FileStore
from .memory import MemoryStore
from .redis_store import RedisStore


def build_store(config: StoreConfig) -> ContextStore:
    """Create the store backend named by `config.backend`"""
    if config.backend == "file":
        return FileStore(config.path)
    if config.backend == "redis":
        return RedisStore(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            key_prefix=config.key_prefix,
        )
    return MemoryStore()


__all__ = [
    "ContextEntry",
    "ContextStore",
    "StoreError",
    "StoreConnectionError",
    "StoreSerializationError",
    "MemoryStore",
    "FileStore",
    "RedisStore",
    "build_store",
]
