"""In-process implementation of KeyValueStore.

Used by tests, the demo script and single-process deployments. Values are
round-tripped through JSON on every write so callers see the same
copy semantics they would get from Redis.
"""

import json
import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from pos_cart.errors import LockTimeoutError

logger = logging.getLogger(__name__)


class InMemoryKeyValueStore:
    """Dictionary-backed store with TTLs driven by an injectable clock.

    This class satisfies the KeyValueStore protocol through structural
    typing. Expired keys are dropped lazily when touched.

    Example:
        ```python
        clock = FakeClock()
        store = InMemoryKeyValueStore(clock=clock)
        store.set("a", 1, ttl=60)
        clock.advance(61)
        store.get("a")  # None
        ```
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}
        self._mutex = threading.RLock()
        self._locks: dict[str, threading.Lock] = {}
        self._available = True

    @classmethod
    def create(cls, clock: Callable[[], float] | None = None) -> "InMemoryKeyValueStore":
        return cls(clock=clock or time.time)

    def _expiry(self, ttl: float | None) -> float | None:
        if ttl is None:
            return None
        return self._clock() + ttl

    def _live(self, key: str) -> str | None:
        record = self._data.get(key)
        if record is None:
            return None
        payload, expires_at = record
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return payload

    def get(self, key: str) -> Any | None:
        with self._mutex:
            payload = self._live(key)
        return None if payload is None else json.loads(payload)

    def get_many(self, keys: list[str]) -> dict[str, Any]:
        found: dict[str, Any] = {}
        with self._mutex:
            for key in keys:
                payload = self._live(key)
                if payload is not None:
                    found[key] = json.loads(payload)
        return found

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        payload = json.dumps(value)
        with self._mutex:
            self._data[key] = (payload, self._expiry(ttl))

    def set_many(self, items: dict[str, Any], ttl: float | None = None) -> None:
        # Serialize everything first so a bad value writes nothing
        payloads = {key: json.dumps(value) for key, value in items.items()}
        expires_at = self._expiry(ttl)
        with self._mutex:
            for key, payload in payloads.items():
                self._data[key] = (payload, expires_at)

    def delete(self, key: str) -> bool:
        with self._mutex:
            existed = self._live(key) is not None
            self._data.pop(key, None)
            return existed

    def delete_many(self, keys: list[str]) -> int:
        with self._mutex:
            return sum(1 for key in keys if self.delete(key))

    def scan(self, prefix: str) -> list[str]:
        with self._mutex:
            return [key for key in list(self._data) if key.startswith(prefix) and self._live(key) is not None]

    @contextmanager
    def lock(self, name: str, timeout: float, wait: float) -> Iterator[None]:
        with self._mutex:
            named = self._locks.setdefault(name, threading.Lock())
        if not named.acquire(timeout=wait):
            logger.warning("Lock %s not acquired within %.2fs", name, wait)
            raise LockTimeoutError(f"Could not acquire lock {name!r}.", lock=name)
        try:
            yield
        finally:
            named.release()

    def health_check(self) -> bool:
        return self._available

    def __len__(self) -> int:
        with self._mutex:
            return sum(1 for key in list(self._data) if self._live(key) is not None)
