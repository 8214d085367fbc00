"""Session store: per-terminal, per-user session identity and data.

Records:

    session:{session_id}                          Session record
    session_terminal:{terminal_id}:{session_id}   terminal index entry

Both are written together and kept in the store for a grace period past
``expires_at`` so sweeps and stats can see lapsed sessions. Validity is
always decided from ``expires_at``, never from whether the record is
still stored.
"""

import logging
import re
import secrets
import time
from collections.abc import Callable
from typing import Any

from pos_cart.config import settings
from pos_cart.entities import ResolvedSession, Session, SessionCookie
from pos_cart.errors import (
    InvalidUserError,
    MissingSessionDataError,
    SessionInvalidError,
    TerminalMismatchError,
)
from pos_cart.protocols import KeyValueStore
from pos_cart.utils import md5_hex, sha256_hex

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session:"
TERMINAL_INDEX_PREFIX = "session_terminal:"
SESSION_ID_LENGTH = 64
RECORD_GRACE = 3600

_TERMINAL_ID_CLEAN = re.compile(r"[^A-Za-z0-9_.:-]")


class SessionService:
    """Session lifecycle over a shared KeyValueStore.

    Every write refreshes ``last_activity`` and slides the expiry window,
    but no session ever outlives ``created_at + max_lifetime``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        timeout: int | None = None,
        extension: int | None = None,
        max_lifetime: int | None = None,
        cookie_prefix: str | None = None,
        cookie_secure: bool | None = None,
    ) -> None:
        """Initialize the session service.

        Args:
            store: Shared key-value backend.
            clock: Time source in epoch seconds.
            timeout: Idle timeout in seconds. Defaults to settings (4h).
            extension: Default ``extend`` step. Defaults to settings (1h).
            max_lifetime: Absolute lifetime cap. Defaults to settings (24h).
            cookie_prefix: Client token name prefix.
            cookie_secure: Mark client tokens Secure.
        """
        self._store = store
        self._clock = clock
        self._timeout = timeout or settings.session_timeout
        self._extension = extension or settings.session_extension
        self._max_lifetime = max_lifetime or settings.session_max_lifetime
        self._cookie_prefix = cookie_prefix or settings.session_cookie_prefix
        self._cookie_secure = settings.session_cookie_secure if cookie_secure is None else cookie_secure

    @classmethod
    def create(cls, store: KeyValueStore, clock: Callable[[], float] | None = None) -> "SessionService":
        return cls(store=store, clock=clock or time.time)

    @property
    def timeout(self) -> int:
        return self._timeout

    # Identity

    @staticmethod
    def sanitize_terminal_id(
        terminal_id: str | None,
        user_id: int = 0,
        user_agent: str = "",
        ip_address: str = "",
    ) -> str:
        """Clean a terminal id, deriving a stable one from the client when missing."""
        cleaned = _TERMINAL_ID_CLEAN.sub("", (terminal_id or "").strip())[:64]
        if not cleaned:
            cleaned = "terminal_" + md5_hex(f"{user_id}{user_agent}{ip_address}")
        return cleaned

    def cookie_name(self, terminal_id: str, user_id: int) -> str:
        return self._cookie_prefix + md5_hex(f"{terminal_id}{user_id}")

    def _generate_session_id(self, terminal_id: str, user_id: int, user_agent: str) -> str:
        entropy = secrets.token_hex(32)
        return sha256_hex(f"{entropy}{self._clock()}{user_id}{terminal_id}{user_agent}")

    @staticmethod
    def _session_key(session_id: str) -> str:
        return f"{SESSION_PREFIX}{session_id}"

    @staticmethod
    def _index_key(terminal_id: str, session_id: str) -> str:
        return f"{TERMINAL_INDEX_PREFIX}{terminal_id}:{session_id}"

    # Persistence

    def _save(self, session: Session) -> None:
        ttl = max(1.0, session.expires_at - self._clock()) + RECORD_GRACE
        self._store.set_many(
            {
                self._session_key(session.session_id): session.to_dict(),
                self._index_key(session.terminal_id, session.session_id): session.user_id,
            },
            ttl=ttl,
        )

    def _fetch(self, session_id: str) -> Session | None:
        if not session_id or len(session_id) != SESSION_ID_LENGTH:
            return None
        data = self._store.get(self._session_key(session_id))
        return None if data is None else Session.from_dict(data)

    def _cap(self, session: Session, expires_at: float) -> float:
        return min(expires_at, session.created_at + self._max_lifetime)

    def _touch(self, session: Session) -> None:
        now = self._clock()
        session.last_activity = now
        session.expires_at = self._cap(session, max(session.expires_at, now + self._timeout))

    def _require_live(self, session: Session) -> Session:
        stored = self._fetch(session.session_id)
        if stored is None or stored.is_expired(self._clock()):
            raise SessionInvalidError(session_id=session.session_id)
        return stored

    # Public contract

    def resolve_session(
        self,
        terminal_id: str | None,
        user_id: int,
        client_token: str | None = None,
        user_agent: str = "",
        ip_address: str = "",
    ) -> ResolvedSession:
        """Return the caller's live session, creating one when the token is unusable.

        Args:
            terminal_id: Terminal identifier, derived from the client if empty
            user_id: Authenticated cashier id
            client_token: Session id presented by the client (cookie value)
            user_agent: Client user agent, mixed into new identifiers
            ip_address: Client address, used only to derive a terminal id

        Returns:
            The session, plus a cookie to set when a new session was issued
        """
        terminal_id = self.sanitize_terminal_id(terminal_id, user_id, user_agent, ip_address)
        now = self._clock()

        existing = self._fetch(client_token or "")
        if (
            existing is not None
            and not existing.is_expired(now)
            and existing.terminal_id == terminal_id
            and existing.user_id == user_id
        ):
            self._touch(existing)
            self._save(existing)
            return ResolvedSession(session=existing, cookie=None, created=False)

        session = Session(
            session_id=self._generate_session_id(terminal_id, user_id, user_agent),
            terminal_id=terminal_id,
            user_id=user_id,
            created_at=now,
            last_activity=now,
            expires_at=now + min(self._timeout, self._max_lifetime),
            user_agent=user_agent,
        )
        self._save(session)
        logger.info("Created session for terminal %s user %d", terminal_id, user_id)

        cookie = SessionCookie(
            name=self.cookie_name(terminal_id, user_id),
            value=session.session_id,
            max_age=self._timeout,
            secure=self._cookie_secure,
        )
        return ResolvedSession(session=session, cookie=cookie, created=True)

    def load(self, session_id: str) -> Session | None:
        """Load a live session by id; None if unknown or expired."""
        session = self._fetch(session_id)
        if session is None or session.is_expired(self._clock()):
            return None
        return session

    def get_data(self, session: Session, key: str | None = None, default: Any = None) -> Any:
        """Read session metadata; the whole map when ``key`` is None."""
        stored = self._require_live(session)
        if key is None:
            return dict(stored.meta)
        return stored.meta.get(key, default)

    def set_data(self, session: Session, key: str, value: Any) -> bool:
        stored = self._require_live(session)
        stored.meta[key] = value
        self._touch(stored)
        self._save(stored)
        self._sync(session, stored)
        return True

    def get_cart_snapshot(self, session: Session) -> dict[str, Any] | None:
        return self._require_live(session).cart

    def set_cart_snapshot(self, session: Session, snapshot: dict[str, Any] | None) -> bool:
        stored = self._require_live(session)
        stored.cart = snapshot
        self._touch(stored)
        self._save(stored)
        self._sync(session, stored)
        return True

    def get_customer_id(self, session: Session) -> int | None:
        return self._require_live(session).customer_id

    def set_customer_id(self, session: Session, customer_id: int | None) -> bool:
        stored = self._require_live(session)
        stored.customer_id = customer_id
        self._touch(stored)
        self._save(stored)
        self._sync(session, stored)
        return True

    def extend(self, session: Session, extra_seconds: int | None = None) -> float:
        """Push back expiry, never past the absolute lifetime.

        Returns:
            Remaining seconds after the extension
        """
        stored = self._require_live(session)
        stored.last_activity = self._clock()
        stored.expires_at = self._cap(stored, stored.expires_at + (extra_seconds or self._extension))
        self._save(stored)
        self._sync(session, stored)
        return stored.remaining(self._clock())

    def remaining_time(self, session: Session) -> float:
        stored = self._fetch(session.session_id)
        if stored is None:
            return 0.0
        return stored.remaining(self._clock())

    def is_valid(self, session: Session) -> bool:
        """True iff the stored session still has time left."""
        return self.remaining_time(session) > 0

    def destroy(self, session: Session) -> SessionCookie:
        """Invalidate immediately.

        Returns:
            An expired cookie that clears the client token
        """
        self._store.delete_many(
            [self._session_key(session.session_id), self._index_key(session.terminal_id, session.session_id)]
        )
        session.expires_at = self._clock()
        logger.info("Destroyed session for terminal %s user %d", session.terminal_id, session.user_id)
        return SessionCookie(
            name=self.cookie_name(session.terminal_id, session.user_id),
            value="",
            max_age=0,
            secure=self._cookie_secure,
        )

    def cleanup_expired(self) -> int:
        """Delete lapsed sessions and index entries whose session is gone.

        Returns:
            Number of records removed
        """
        now = self._clock()
        session_keys = self._store.scan(SESSION_PREFIX)
        records = self._store.get_many(session_keys)

        doomed: list[str] = []
        live_ids: set[str] = set()
        for key, data in records.items():
            session = Session.from_dict(data)
            if session.is_expired(now):
                doomed.append(key)
                doomed.append(self._index_key(session.terminal_id, session.session_id))
            else:
                live_ids.add(session.session_id)

        expired = len(doomed) // 2
        orphaned = 0
        already = set(doomed)
        for key in self._store.scan(TERMINAL_INDEX_PREFIX):
            session_id = key.rsplit(":", 1)[-1]
            if session_id not in live_ids and key not in already:
                doomed.append(key)
                orphaned += 1

        if doomed:
            self._store.delete_many(doomed)
        if expired:
            logger.info("Cleaned up %d expired POS sessions", expired)
        if orphaned:
            logger.info("Cleaned up %d orphaned POS session records", orphaned)
        return expired + orphaned

    def get_terminal_sessions(self, terminal_id: str) -> dict[str, Session]:
        """Live sessions opened on a terminal, keyed by session id."""
        terminal_id = self.sanitize_terminal_id(terminal_id)
        prefix = f"{TERMINAL_INDEX_PREFIX}{terminal_id}:"
        session_ids = [key[len(prefix):] for key in self._store.scan(prefix)]
        records = self._store.get_many([self._session_key(sid) for sid in session_ids])
        now = self._clock()
        sessions = {}
        for data in records.values():
            session = Session.from_dict(data)
            if session.terminal_id == terminal_id and not session.is_expired(now):
                sessions[session.session_id] = session
        return sessions

    def get_session_stats(self) -> dict[str, Any]:
        now = self._clock()
        records = self._store.get_many(self._store.scan(SESSION_PREFIX))
        total = len(records)
        active = sum(1 for data in records.values() if float(data["expires_at"]) > now)
        return {
            "active_sessions": active,
            "total_sessions": total,
            "expired_sessions": total - active,
            "timestamp": now,
        }

    # API sessions (header-authenticated clients)

    def create_api_session(self, terminal_id: str, user_id: int | None) -> dict[str, Any]:
        if not user_id or user_id <= 0:
            raise InvalidUserError()
        resolved = self.resolve_session(terminal_id, user_id)
        session = resolved.session
        return {
            "session_id": session.session_id,
            "terminal_id": session.terminal_id,
            "user_id": session.user_id,
            "expires_in": session.remaining(self._clock()),
            "created_at": session.created_at,
        }

    def validate_api_session(self, session_id: str | None, terminal_id: str | None) -> Session:
        """Check a header-supplied session id against its terminal and touch it.

        Raises:
            MissingSessionDataError: Either value is empty
            SessionInvalidError: Unknown or expired session
            TerminalMismatchError: Session belongs to another terminal
        """
        if not session_id or not terminal_id:
            raise MissingSessionDataError()
        session = self.load(session_id)
        if session is None:
            raise SessionInvalidError(session_id=session_id)
        if session.terminal_id != self.sanitize_terminal_id(terminal_id):
            raise TerminalMismatchError(terminal_id=terminal_id)
        self._touch(session)
        self._save(session)
        return session

    @staticmethod
    def _sync(target: Session, source: Session) -> None:
        target.last_activity = source.last_activity
        target.expires_at = source.expires_at
        target.cart = source.cart
        target.customer_id = source.customer_id
        target.meta = dict(source.meta)
