"""Key-value storage protocol.

Defines the small capability interface that every piece of shared state
(cache entries, sessions, stock reservations) is persisted through.

Implementations can include:
- Redis (default, shared between terminals)
- In-process dictionary (tests and single-process demos)
- Any store offering TTL, prefix scans and a named lock
"""

from contextlib import AbstractContextManager
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for shared key-value backends.

    Values are plain JSON-compatible structures. Keys are strings; callers
    namespace them with ``group:`` style prefixes so ``scan`` can sweep a
    family of records.

    Example:
        ```python
        from pos_cart.protocols import KeyValueStore

        store: KeyValueStore = RedisKeyValueStore.create()
        store: KeyValueStore = InMemoryKeyValueStore()
        ```
    """

    def get(self, key: str) -> Any | None:
        """Fetch a value.

        Args:
            key: Storage key

        Returns:
            The stored value, or None if missing or expired
        """
        ...

    def get_many(self, keys: list[str]) -> dict[str, Any]:
        """Fetch several values at once.

        Args:
            keys: Storage keys

        Returns:
            Mapping of key to value for the keys that exist
        """
        ...

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value, replacing any existing one.

        Args:
            key: Storage key
            value: JSON-compatible value
            ttl: Time-to-live in seconds, None for no expiry
        """
        ...

    def set_many(self, items: dict[str, Any], ttl: float | None = None) -> None:
        """Store several values in one all-or-nothing step."""
        ...

    def delete(self, key: str) -> bool:
        """Delete one key.

        Returns:
            True if the key existed
        """
        ...

    def delete_many(self, keys: list[str]) -> int:
        """Delete several keys in one all-or-nothing step.

        Returns:
            Number of keys that existed
        """
        ...

    def scan(self, prefix: str) -> list[str]:
        """List keys starting with ``prefix``.

        Returns:
            Matching keys (unexpired only)
        """
        ...

    def lock(self, name: str, timeout: float, wait: float) -> AbstractContextManager[None]:
        """Acquire a named mutual-exclusion lock shared by all processes.

        Args:
            name: Lock name
            timeout: Seconds after which a held lock auto-releases
            wait: Seconds to wait for acquisition

        Raises:
            LockTimeoutError: If the lock could not be acquired within ``wait``
        """
        ...

    def health_check(self) -> bool:
        """Check if the backend is reachable."""
        ...
