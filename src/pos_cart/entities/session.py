"""Session domain entities."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Session:
    """A terminal/user session.

    ``expires_at`` is refreshed on every write and never moves past
    ``created_at`` plus the absolute session lifetime.
    """

    session_id: str
    terminal_id: str
    user_id: int
    created_at: float
    last_activity: float
    expires_at: float
    cart: dict[str, Any] | None = None
    customer_id: int | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    user_agent: str = ""

    def remaining(self, now: float) -> float:
        return max(0.0, self.expires_at - now)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "terminal_id": self.terminal_id,
            "user_id": self.user_id,
            "created_at": self.created_at,
            "last_activity": self.last_activity,
            "expires_at": self.expires_at,
            "cart": self.cart,
            "customer_id": self.customer_id,
            "meta": self.meta,
            "user_agent": self.user_agent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        return cls(
            session_id=data["session_id"],
            terminal_id=data["terminal_id"],
            user_id=int(data["user_id"]),
            created_at=float(data["created_at"]),
            last_activity=float(data["last_activity"]),
            expires_at=float(data["expires_at"]),
            cart=data.get("cart"),
            customer_id=data.get("customer_id"),
            meta=dict(data.get("meta") or {}),
            user_agent=data.get("user_agent", ""),
        )


@dataclass(frozen=True)
class SessionCookie:
    """Client token to set (or clear, when ``max_age`` is 0) on the response."""

    name: str
    value: str
    max_age: int
    secure: bool = True
    httponly: bool = True
    samesite: str = "lax"
    path: str = "/"


@dataclass(frozen=True)
class ResolvedSession:
    """Result of resolving a terminal/user pair to a session."""

    session: Session
    cookie: SessionCookie | None
    created: bool
