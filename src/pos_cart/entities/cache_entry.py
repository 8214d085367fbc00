"""Cache entry domain entity."""

from dataclasses import dataclass
from typing import Any


@dataclass
class CacheEntry:
    """A stored cache value with its bookkeeping.

    Attributes:
        group: Cache group (products, stock, tax, ...)
        key: Key within the group
        value: The cached value
        size: Estimated serialized size in bytes
        created_at: When the value was written
        expires_at: When the value stops being served
    """

    group: str
    key: str
    value: Any
    size: int
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "group": self.group,
            "key": self.key,
            "value": self.value,
            "size": self.size,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        return cls(
            group=data["group"],
            key=data["key"],
            value=data["value"],
            size=int(data.get("size", 0)),
            created_at=float(data.get("created_at", 0)),
            expires_at=float(data.get("expires_at", 0)),
        )
