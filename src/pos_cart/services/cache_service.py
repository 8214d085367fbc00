"""Cache service: grouped TTL cache with bounded, approximately-LRU groups.

Storage layout inside the KeyValueStore:

    cache:{group}:{key}          CacheEntry record (store TTL = entry TTL)
    cache_access:{group}:{key}   last access timestamp (1 day TTL)
    cache_meta:{group}           {"count", "size", "last_set"} usage counters

Writers of one group serialize on the store lock ``cache:{group}``, so the
counters are upper bounds: expiry can only shrink a group, and when a
counter says a limit is reached the group is scanned and the counters are
reconciled before anything is evicted.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

from pos_cart.config import settings
from pos_cart.entities import CacheEntry
from pos_cart.errors import LockTimeoutError, StorageError
from pos_cart.models import CacheStatistics, GroupStatistics
from pos_cart.protocols import CatalogProvider, KeyValueStore
from pos_cart.utils import canonical_json, format_bytes

logger = logging.getLogger(__name__)

GROUP_PRODUCTS = "products"
GROUP_CATEGORIES = "categories"
GROUP_CUSTOMERS = "customers"
GROUP_STOCK = "stock"
GROUP_SEARCH = "search"
GROUP_TAX = "tax"

ENTRY_PREFIX = "cache:"
ACCESS_PREFIX = "cache_access:"
META_PREFIX = "cache_meta:"
ACCESS_TTL = 86400
EVICTION_FRACTION = 0.25


class CacheService:
    """Grouped cache over any KeyValueStore.

    ``set`` never raises: a backend failure is logged and reported as
    False so callers carry on uncached. ``get`` treats a backend failure
    as a miss.

    Example:
        ```python
        cache = CacheService(store=InMemoryKeyValueStore())
        cache.set_stock_cache("product_42", {"available_stock": 3})
        cache.get_stock_cache("product_42")
        ```
    """

    def __init__(
        self,
        store: KeyValueStore,
        statistics: CacheStatistics | None = None,
        clock: Callable[[], float] = time.time,
        group_ttls: dict[str, int] | None = None,
        group_max_items: dict[str, int] | None = None,
        group_max_bytes: int | None = None,
        max_total_bytes: int | None = None,
        warning_bytes: int | None = None,
        lock_timeout: float | None = None,
        lock_wait: float | None = None,
    ) -> None:
        """Initialize the cache service.

        Args:
            store: Shared key-value backend.
            statistics: Counter collector. A fresh one is created if None.
            clock: Time source in epoch seconds.
            group_ttls: Default TTL per group. Defaults to settings.
            group_max_items: Item cap per group. Defaults to settings.
            group_max_bytes: Byte cap per group. Defaults to settings.
            max_total_bytes: Byte cap across all groups. Defaults to settings.
            warning_bytes: Size at which health reports a warning.
            lock_timeout: Auto-release time of a group lock.
            lock_wait: How long a writer waits for a group lock.
        """
        self._store = store
        self._stats = statistics or CacheStatistics()
        self._clock = clock
        self._ttls = dict(group_ttls or settings.cache_group_ttls)
        self._max_items = dict(group_max_items or settings.cache_group_max_items)
        self._group_max_bytes = group_max_bytes or settings.cache_group_max_bytes
        self._max_total_bytes = max_total_bytes or settings.cache_max_total_bytes
        self._warning_bytes = warning_bytes or settings.cache_warning_bytes
        self._lock_timeout = lock_timeout or settings.cache_lock_timeout
        self._lock_wait = settings.cache_lock_wait if lock_wait is None else lock_wait

    @classmethod
    def create(cls, store: KeyValueStore, clock: Callable[[], float] | None = None) -> "CacheService":
        """Factory method to create CacheService with settings defaults."""
        return cls(store=store, clock=clock or time.time)

    @property
    def statistics(self) -> CacheStatistics:
        return self._stats

    def default_ttl(self, group: str) -> int:
        return self._ttls.get(group, 300)

    def max_items(self, group: str) -> int:
        return self._max_items.get(group, 100)

    # Keys

    @staticmethod
    def _entry_key(group: str, key: str) -> str:
        return f"{ENTRY_PREFIX}{group}:{key}"

    @staticmethod
    def _access_key(group: str, key: str) -> str:
        return f"{ACCESS_PREFIX}{group}:{key}"

    @staticmethod
    def _meta_key(group: str) -> str:
        return f"{META_PREFIX}{group}"

    def _group_lock(self, group: str):
        return self._store.lock(f"cache:{group}", timeout=self._lock_timeout, wait=self._lock_wait)

    @staticmethod
    def estimate_size(value: Any) -> int:
        """Serialized size of ``value`` in bytes."""
        return len(canonical_json(value).encode("utf-8"))

    # Core operations

    def get(self, group: str, key: str, default: Any = None) -> Any:
        """Fetch a cached value.

        Args:
            group: Cache group
            key: Key within the group
            default: Returned on a miss

        Returns:
            The cached value, or ``default`` if absent, expired or unreadable
        """
        entry = self._load_entry(group, key)
        if entry is None:
            self._stats.record_miss(group)
            logger.debug("Cache MISS: %s/%s", group, key)
            return default

        self._stats.record_hit(group)
        logger.debug("Cache HIT: %s/%s", group, key)
        try:
            self._store.set(self._access_key(group, key), self._clock(), ttl=ACCESS_TTL)
        except StorageError:
            self._stats.record_failure()
        return entry.value

    def set(self, group: str, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store a value, evicting the oldest-accessed quartile when the group is full.

        Args:
            group: Cache group
            key: Key within the group
            value: JSON-compatible value
            ttl: Seconds to live. Defaults to the group TTL.

        Returns:
            True if stored, False if the backend failed or the value is
            larger than the whole group budget
        """
        ttl = self.default_ttl(group) if ttl is None else ttl
        try:
            size = self.estimate_size(value)
        except (TypeError, ValueError) as exc:
            logger.warning("Cache SET skipped for %s/%s: value not serializable (%s)", group, key, exc)
            self._stats.record_failure()
            return False

        if size > self._group_max_bytes or size > self._max_total_bytes:
            logger.warning("Cache SET skipped for %s/%s: %d bytes exceeds the group budget", group, key, size)
            return False

        now = self._clock()
        try:
            with self._group_lock(group):
                existing = self._peek_entry(group, key)
                meta = self._read_meta(group)
                replaced = existing is not None and not existing.is_expired(now)
                if not self._within_limits(group, meta, size, existing if replaced else None):
                    meta = self._evict_until_fits(group, key, size)
                    existing = self._peek_entry(group, key)
                    replaced = existing is not None and not existing.is_expired(now)

                entry = CacheEntry(group=group, key=key, value=value, size=size, created_at=now, expires_at=now + ttl)
                self._store.set(self._entry_key(group, key), entry.to_dict(), ttl=ttl)

                if replaced:
                    meta["size"] = max(0, meta["size"] - existing.size)
                else:
                    meta["count"] += 1
                meta["size"] += size
                meta["last_set"] = now
                self._store.set(self._meta_key(group), meta)
        except (StorageError, LockTimeoutError) as exc:
            logger.warning("Cache SET failed for %s/%s: %s", group, key, exc)
            self._stats.record_failure()
            return False

        self._stats.record_set(group)
        logger.debug("Cache SET: %s/%s (expires in %ss)", group, key, ttl)
        return True

    def invalidate(self, group: str) -> int:
        """Remove every entry in ``group``.

        Returns:
            Number of entries removed
        """
        try:
            with self._group_lock(group):
                entry_keys = self._store.scan(f"{ENTRY_PREFIX}{group}:")
                access_keys = self._store.scan(f"{ACCESS_PREFIX}{group}:")
                self._store.delete_many(entry_keys + access_keys + [self._meta_key(group)])
        except (StorageError, LockTimeoutError) as exc:
            logger.warning("Cache invalidation failed for group %s: %s", group, exc)
            self._stats.record_failure()
            return 0

        self._stats.record_delete(group, len(entry_keys))
        logger.debug("Invalidated %s cache group (%d items)", group, len(entry_keys))
        return len(entry_keys)

    def invalidate_key(self, group: str, key: str) -> bool:
        """Remove one entry and its access record."""
        try:
            with self._group_lock(group):
                existing = self._peek_entry(group, key)
                self._store.delete_many([self._entry_key(group, key), self._access_key(group, key)])
                if existing is None:
                    return False
                meta = self._read_meta(group)
                meta["count"] = max(0, meta["count"] - 1)
                meta["size"] = max(0, meta["size"] - existing.size)
                self._store.set(self._meta_key(group), meta)
        except (StorageError, LockTimeoutError) as exc:
            logger.warning("Cache delete failed for %s/%s: %s", group, key, exc)
            self._stats.record_failure()
            return False

        self._stats.record_delete(group)
        return True

    # Domain wrappers

    def get_product_cache(self, key: str) -> Any:
        return self.get(GROUP_PRODUCTS, key)

    def set_product_cache(self, key: str, value: Any, ttl: int | None = None) -> bool:
        return self.set(GROUP_PRODUCTS, key, value, ttl)

    def get_category_cache(self, key: str) -> Any:
        return self.get(GROUP_CATEGORIES, key)

    def set_category_cache(self, key: str, value: Any, ttl: int | None = None) -> bool:
        return self.set(GROUP_CATEGORIES, key, value, ttl)

    @staticmethod
    def customer_key(key: str, user_id: int | None) -> str:
        """Customer entries are scoped to the cashier that looked them up."""
        return f"{key}_u{user_id}" if user_id is not None else key

    def get_customer_cache(self, key: str, user_id: int | None = None) -> Any:
        return self.get(GROUP_CUSTOMERS, self.customer_key(key, user_id))

    def set_customer_cache(self, key: str, value: Any, user_id: int | None = None, ttl: int | None = None) -> bool:
        return self.set(GROUP_CUSTOMERS, self.customer_key(key, user_id), value, ttl)

    def get_stock_cache(self, key: str) -> Any:
        return self.get(GROUP_STOCK, key)

    def set_stock_cache(self, key: str, value: Any, ttl: int | None = None) -> bool:
        return self.set(GROUP_STOCK, key, value, ttl)

    def get_search_cache(self, key: str) -> Any:
        return self.get(GROUP_SEARCH, key)

    def set_search_cache(self, key: str, value: Any, ttl: int | None = None) -> bool:
        return self.set(GROUP_SEARCH, key, value, ttl)

    def invalidate_product(self, product_id: int) -> None:
        """Drop everything that may embed a product: lists, searches and its stock entry."""
        self.invalidate(GROUP_PRODUCTS)
        self.invalidate(GROUP_SEARCH)
        self.invalidate_key(GROUP_STOCK, f"product_{product_id}")
        logger.debug("Invalidated cache for product: %d", product_id)

    def invalidate_categories(self) -> None:
        """Drop categories and products (product entries embed category data)."""
        self.invalidate(GROUP_CATEGORIES)
        self.invalidate(GROUP_PRODUCTS)

    def clear_all(self) -> int:
        """Remove every cache entry in every group."""
        removed = 0
        for group in self._known_groups():
            removed += self.invalidate(group)
        logger.info("Cleared all caches (%d entries)", removed)
        return removed

    # Maintenance

    def cleanup_expired(self) -> int:
        """Sweep expired entries and orphaned access records, then reconcile counters.

        Returns:
            Number of records removed
        """
        now = self._clock()
        removed = 0
        try:
            for group in self._known_groups():
                with self._group_lock(group):
                    entries = self._scan_group(group)
                    live = {key: entry for key, entry in entries.items() if not entry.is_expired(now)}
                    expired = [key for key in entries if key not in live]

                    access_keys = self._store.scan(f"{ACCESS_PREFIX}{group}:")
                    access_prefix = f"{ACCESS_PREFIX}{group}:"
                    orphans = [k for k in access_keys if k[len(access_prefix):] not in live]

                    doomed = [self._entry_key(group, key) for key in expired] + orphans
                    if doomed:
                        self._store.delete_many(doomed)
                    removed += len(doomed)
                    self._write_meta(group, live)
        except (StorageError, LockTimeoutError) as exc:
            logger.warning("Cache cleanup failed: %s", exc)
            self._stats.record_failure()
            return removed

        if removed:
            logger.info("Cleaned up %d expired cache records", removed)
        return removed

    def preload_products(self, product_ids: list[int], catalog: CatalogProvider) -> int:
        """Warm the product group for ids that are not cached yet.

        Returns:
            Number of products loaded into the cache
        """
        preloaded = 0
        for product_id in product_ids:
            key = f"product_{product_id}"
            try:
                if self._peek_entry(GROUP_PRODUCTS, key) is not None:
                    continue
            except StorageError:
                self._stats.record_failure()
                continue
            product = catalog.get_product(product_id)
            if product is None:
                continue
            data = {**product.to_dict(), "preloaded": True, "preload_time": self._clock()}
            if self.set_product_cache(key, data):
                preloaded += 1
        if preloaded:
            logger.debug("Preloaded cache for %d products", preloaded)
        return preloaded

    # Reporting

    def stats(self) -> dict[str, Any]:
        """Counters plus tracked sizes per group."""
        per_group: dict[str, Any] = {}
        total_size = 0
        try:
            for group in self._known_groups():
                meta = self._read_meta(group)
                total_size += meta["size"]
                per_group[group] = {**meta, **self._stats.groups.get(group, GroupStatistics()).to_dict()}
        except StorageError:
            self._stats.record_failure()

        counters = self._stats.to_dict()
        counters.pop("groups")
        return {
            **counters,
            "total_size": total_size,
            "memory_usage": format_bytes(total_size),
            "per_group": per_group,
        }

    def get_cache_health(self) -> dict[str, Any]:
        """Summarize cache health for dashboards."""
        stats = self.stats()
        health: dict[str, Any] = {
            "status": "good",
            "hit_rate": stats["hit_rate"],
            "memory_usage": stats["memory_usage"],
            "backend_available": self._store.health_check(),
            "recommendations": [],
        }

        requests = stats["hits"] + stats["misses"]
        if requests and stats["hit_rate"] < 70:
            health["status"] = "warning"
            health["recommendations"].append(
                "Cache hit rate is below optimal. Consider preloading popular products."
            )
        if stats["total_size"] > self._warning_bytes:
            health["status"] = "warning"
            health["recommendations"].append("Cache size is approaching limits. Consider cleanup.")
        if not health["backend_available"]:
            health["status"] = "warning"
            health["recommendations"].append("Cache backend is unreachable; serving uncached.")
        if not health["recommendations"]:
            health["recommendations"].append("Cache is performing optimally.")
        return health

    # Internals

    def _peek_entry(self, group: str, key: str) -> CacheEntry | None:
        data = self._store.get(self._entry_key(group, key))
        return None if data is None else CacheEntry.from_dict(data)

    def _load_entry(self, group: str, key: str) -> CacheEntry | None:
        try:
            entry = self._peek_entry(group, key)
        except StorageError as exc:
            logger.warning("Cache GET failed for %s/%s: %s", group, key, exc)
            self._stats.record_failure()
            return None
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry

    def _read_meta(self, group: str) -> dict[str, Any]:
        meta = self._store.get(self._meta_key(group)) or {}
        return {
            "count": int(meta.get("count", 0)),
            "size": int(meta.get("size", 0)),
            "last_set": float(meta.get("last_set", 0)),
        }

    def _write_meta(self, group: str, entries: dict[str, CacheEntry]) -> dict[str, Any]:
        previous = self._read_meta(group)
        meta = {
            "count": len(entries),
            "size": sum(entry.size for entry in entries.values()),
            "last_set": previous["last_set"],
        }
        self._store.set(self._meta_key(group), meta)
        return meta

    def _total_size(self) -> int:
        return sum(self._read_meta(group)["size"] for group in self._known_groups())

    def _within_limits(self, group: str, meta: dict[str, Any], size: int, replacing: CacheEntry | None) -> bool:
        freed = replacing.size if replacing else 0
        count = meta["count"] if replacing else meta["count"] + 1
        if count > self.max_items(group):
            return False
        if meta["size"] - freed + size > self._group_max_bytes:
            return False
        if self._total_size() - freed + size > self._max_total_bytes:
            return False
        return True

    def _scan_group(self, group: str) -> dict[str, CacheEntry]:
        prefix = f"{ENTRY_PREFIX}{group}:"
        keys = self._store.scan(prefix)
        records = self._store.get_many(keys)
        return {
            store_key[len(prefix):]: CacheEntry.from_dict(data)
            for store_key, data in records.items()
        }

    def _evict_until_fits(self, group: str, key: str, size: int) -> dict[str, Any]:
        """Evict the oldest-accessed quartile of ``group`` until ``size`` more bytes fit."""
        now = self._clock()
        entries = {k: e for k, e in self._scan_group(group).items() if not e.is_expired(now)}
        meta = self._write_meta(group, entries)

        while True:
            replacing = entries.get(key)
            if self._within_limits(group, meta, size, replacing) or not entries:
                return meta

            access_keys = [self._access_key(group, k) for k in entries]
            accessed = self._store.get_many(access_keys)
            ordered = sorted(
                entries.items(),
                key=lambda item: (
                    float(accessed.get(self._access_key(group, item[0]), item[1].created_at)),
                    item[1].created_at,
                    item[0],
                ),
            )
            batch = max(1, int(len(ordered) * EVICTION_FRACTION))
            victims = [k for k, _ in ordered[:batch]]
            doomed = [self._entry_key(group, k) for k in victims]
            doomed += [self._access_key(group, k) for k in victims]
            self._store.delete_many(doomed)
            for victim in victims:
                del entries[victim]
            meta = self._write_meta(group, entries)

            self._stats.record_eviction(group, len(victims))
            logger.info(
                "Cleaned up %s cache: removed %d of %d items",
                group,
                len(victims),
                len(ordered),
            )

    def _known_groups(self) -> list[str]:
        groups = set(self._ttls) | set(self._max_items)
        groups.update(key[len(META_PREFIX):] for key in self._store.scan(META_PREFIX))
        return sorted(groups)
