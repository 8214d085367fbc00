"""Redis implementation of KeyValueStore.

This is the default backend. Every terminal process talks to the same
Redis, which makes it the shared ledger for sessions, cache entries and
stock reservations.
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import redis
from redis.exceptions import LockError

from pos_cart.config import get_redis_client, settings
from pos_cart.errors import LockTimeoutError, StorageError

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = "\\*?[]"


def _escape_glob(text: str) -> str:
    return "".join("\\" + char if char in _GLOB_SPECIAL else char for char in text)


class RedisKeyValueStore:
    """Redis-backed store.

    This class satisfies the KeyValueStore protocol through structural
    typing - no explicit inheritance needed.

    Uses:
    - JSON-encoded string values
    - ``SET PX`` for TTLs and ``SET NX`` for set-if-absent
    - ``MULTI``/``EXEC`` pipelines for all-or-nothing batches
    - redis-py ``Lock`` for cross-process critical sections

    Redis failures surface as StorageError.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        namespace: str | None = None,
    ) -> None:
        """Initialize the Redis store.

        Args:
            redis_client: Redis client instance. If None, creates default.
            namespace: Prefix applied to every key. Defaults to settings.
        """
        self._client = redis_client or get_redis_client()
        self._namespace = (namespace if namespace is not None else settings.key_namespace).rstrip(":")

    @classmethod
    def create(cls, namespace: str | None = None) -> "RedisKeyValueStore":
        """Factory method to create RedisKeyValueStore with defaults.

        Args:
            namespace: Key prefix. If None, uses settings.

        Returns:
            Configured RedisKeyValueStore
        """
        return cls(namespace=namespace)

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}" if self._namespace else key

    def _strip(self, raw: bytes | str) -> str:
        key = raw.decode() if isinstance(raw, bytes) else raw
        prefix = f"{self._namespace}:" if self._namespace else ""
        return key[len(prefix):] if prefix and key.startswith(prefix) else key

    @staticmethod
    def _px(ttl: float | None) -> int | None:
        if ttl is None:
            return None
        return max(1, int(ttl * 1000))

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except redis.RedisError as exc:
            logger.error("Redis %s failed: %s", operation, exc)
            raise StorageError(f"Redis {operation} failed.", operation=operation) from exc

    def get(self, key: str) -> Any | None:
        with self._translate_errors("get"):
            raw = self._client.get(self._key(key))
        return None if raw is None else json.loads(raw)

    def get_many(self, keys: list[str]) -> dict[str, Any]:
        if not keys:
            return {}
        with self._translate_errors("mget"):
            values = self._client.mget([self._key(key) for key in keys])
        return {key: json.loads(raw) for key, raw in zip(keys, values) if raw is not None}

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        payload = json.dumps(value)
        with self._translate_errors("set"):
            self._client.set(self._key(key), payload, px=self._px(ttl))

    def set_many(self, items: dict[str, Any], ttl: float | None = None) -> None:
        payloads = {self._key(key): json.dumps(value) for key, value in items.items()}
        with self._translate_errors("pipeline"):
            pipe = self._client.pipeline(transaction=True)
            for key, payload in payloads.items():
                pipe.set(key, payload, px=self._px(ttl))
            pipe.execute()

    def delete(self, key: str) -> bool:
        with self._translate_errors("delete"):
            result: int = self._client.delete(self._key(key))  # type: ignore[assignment]
        return result > 0

    def delete_many(self, keys: list[str]) -> int:
        if not keys:
            return 0
        with self._translate_errors("delete"):
            result: int = self._client.delete(*[self._key(key) for key in keys])  # type: ignore[assignment]
        return result

    def scan(self, prefix: str) -> list[str]:
        pattern = _escape_glob(self._key(prefix)) + "*"
        with self._translate_errors("scan"):
            return [self._strip(raw) for raw in self._client.scan_iter(match=pattern, count=500)]

    @contextmanager
    def lock(self, name: str, timeout: float, wait: float) -> Iterator[None]:
        lock = self._client.lock(self._key(f"lock:{name}"), timeout=timeout, blocking_timeout=wait)
        with self._translate_errors("lock"):
            acquired = lock.acquire()
        if not acquired:
            logger.warning("Lock %s not acquired within %.2fs", name, wait)
            raise LockTimeoutError(f"Could not acquire lock {name!r}.", lock=name)
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                # Lock auto-expired while held
                logger.warning("Lock %s expired before release", name)

    def health_check(self) -> bool:
        """Check if Redis is accessible."""
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client."""
        return self._client
