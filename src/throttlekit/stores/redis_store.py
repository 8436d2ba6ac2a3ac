"""
Redis context store

Provides a Redis-backed store so contexts on different hosts can share
concurrency accounting.
"""

import contextlib
import logging
from collections.abc import Iterable
from typing import Any, Optional

import redis

from .base import ContextStore, StoreConnectionError

logger = logging.getLogger(__name__)


class RedisStore(ContextStore):
    """
    Redis-based context store

    Features:
    - Key namespacing so the store can share a database with other data
    - Non-blocking enumeration through SCAN
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        key_prefix: str = "throttlekit:",
        socket_timeout: float = 1.0,
        socket_connect_timeout: float = 1.0,
        client: Optional[Any] = None,
        **kwargs,
    ):
        """
        Initialize Redis store

        Args:
            host: Redis host
            port: Redis port
            db: Redis database number
            password: Redis password
            key_prefix: Namespace prepended to every key
            socket_timeout: Socket timeout in seconds
            socket_connect_timeout: Socket connect timeout in seconds
            client: Pre-built client (takes precedence over connection args)
            **kwargs: Additional Redis client options
        """
        self.key_prefix = key_prefix
        self.client = client or redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
            decode_responses=True,
            **kwargs,
        )

    def _make_redis_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            value = self.client.get(self._make_redis_key(key))
        except redis.RedisError as e:
            logger.error(f"Redis error in get: {e}")
            raise StoreConnectionError(f"Redis connection error: {e}") from e

        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        try:
            self.client.set(self._make_redis_key(key), value)
        except redis.RedisError as e:
            logger.error(f"Redis error in set: {e}")
            raise StoreConnectionError(f"Redis connection error: {e}") from e

    def remove(self, key: str) -> bool:
        try:
            return self.client.delete(self._make_redis_key(key)) > 0
        except redis.RedisError as e:
            logger.error(f"Redis error in remove: {e}")
            raise StoreConnectionError(f"Redis connection error: {e}") from e

    def keys(self) -> Iterable[str]:
        try:
            raw_keys = list(
                self.client.scan_iter(match=f"{self.key_prefix}*", count=100)
            )
        except redis.RedisError as e:
            logger.error(f"Redis error in keys: {e}")
            raise StoreConnectionError(f"Redis connection error: {e}") from e

        prefix_len = len(self.key_prefix)
        return [
            (k.decode("utf-8") if isinstance(k, bytes) else k)[prefix_len:]
            for k in raw_keys
        ]

    def ping(self) -> bool:
        """Test Redis connection"""
        try:
            return self.client.ping() is True
        except redis.RedisError:
            return False

    def close(self) -> None:
        """Close Redis connection"""
        with contextlib.suppress(redis.RedisError):
            self.client.close()
