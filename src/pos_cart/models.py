import time
from dataclasses import dataclass, field


@dataclass
class GroupStatistics:
    """Hit/miss counters for a single cache group."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "evictions": self.evictions,
        }


@dataclass
class CacheStatistics:
    """Track cache operation counters.

    One instance is injected into each CacheService; tests create their
    own so counters never leak between cases.
    """

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    failures: int = 0
    evictions: int = 0
    groups: dict[str, GroupStatistics] = field(default_factory=dict)

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate as a percentage."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return round(self.hits / total * 100, 2)

    def _group(self, group: str) -> GroupStatistics:
        if group not in self.groups:
            self.groups[group] = GroupStatistics()
        return self.groups[group]

    def record_hit(self, group: str) -> None:
        """Record a cache hit."""
        self.hits += 1
        self._group(group).hits += 1

    def record_miss(self, group: str) -> None:
        """Record a cache miss."""
        self.misses += 1
        self._group(group).misses += 1

    def record_set(self, group: str) -> None:
        self.sets += 1
        self._group(group).sets += 1

    def record_delete(self, group: str, count: int = 1) -> None:
        self.deletes += count
        self._group(group).deletes += count

    def record_eviction(self, group: str, count: int) -> None:
        self.evictions += count
        self.deletes += count
        stats = self._group(group)
        stats.evictions += count
        stats.deletes += count

    def record_failure(self) -> None:
        self.failures += 1

    def reset(self) -> None:
        self.hits = self.misses = self.sets = self.deletes = 0
        self.failures = self.evictions = 0
        self.groups.clear()

    def to_dict(self) -> dict[str, object]:
        """Convert counters to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "failures": self.failures,
            "evictions": self.evictions,
            "hit_rate": self.hit_rate,
            "groups": {name: stats.to_dict() for name, stats in self.groups.items()},
        }


@dataclass
class OperationTiming:
    """Timing aggregate for one named operation."""

    count: int = 0
    total_time_ms: float = 0.0
    max_time_ms: float = 0.0
    min_time_ms: float = float("inf")

    @property
    def average_time_ms(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total_time_ms / self.count

    def record(self, duration_ms: float) -> None:
        self.count += 1
        self.total_time_ms += duration_ms
        self.max_time_ms = max(self.max_time_ms, duration_ms)
        self.min_time_ms = min(self.min_time_ms, duration_ms)

    def to_dict(self) -> dict[str, float | int]:
        return {
            "count": self.count,
            "total_time_ms": self.total_time_ms,
            "average_time_ms": self.average_time_ms,
            "max_time_ms": self.max_time_ms,
            "min_time_ms": self.min_time_ms if self.count else 0.0,
        }


@dataclass
class PerformanceMetrics:
    """Track per-operation latency for cart operations."""

    slow_threshold_ms: float = 50.0
    operations: dict[str, OperationTiming] = field(default_factory=dict)
    recalculations: int = 0

    def start(self) -> float:
        return time.perf_counter()

    def finish(self, operation: str, started: float) -> float:
        """Record elapsed time since ``started``; returns the duration in ms."""
        duration_ms = (time.perf_counter() - started) * 1000
        self.operations.setdefault(operation, OperationTiming()).record(duration_ms)
        return duration_ms

    def is_slow(self, duration_ms: float) -> bool:
        return duration_ms > self.slow_threshold_ms

    def record_recalculation(self) -> None:
        self.recalculations += 1

    def reset(self) -> None:
        self.operations.clear()
        self.recalculations = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "operations": {name: timing.to_dict() for name, timing in self.operations.items()},
            "recalculations": self.recalculations,
        }
