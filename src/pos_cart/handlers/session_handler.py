"""HTTP handlers for terminal sessions."""

from pos_cart.dto import SessionResponse
from pos_cart.entities import ResolvedSession, Session, SessionCookie
from pos_cart.errors import InvalidUserError
from pos_cart.services import SessionService

from .errors import translate_errors


def parse_user_id(raw: str | int | None) -> int:
    """Parse the cashier id header; anything but a positive integer is rejected."""
    try:
        user_id = int(raw) if raw is not None else 0
    except (TypeError, ValueError) as e:
        raise InvalidUserError(user_id=raw) from e
    if user_id <= 0:
        raise InvalidUserError(user_id=raw)
    return user_id


class SessionHandler:
    """Resolves request identity to a session and renders session DTOs.

    Example:
        ```python
        handler = SessionHandler(session_service=sessions)
        resolved = handler.resolve("T1", "7", cookies={}, session_header=None)
        ```
    """

    def __init__(self, session_service: SessionService) -> None:
        self._sessions = session_service

    @property
    def sessions(self) -> SessionService:
        return self._sessions

    def resolve(
        self,
        terminal_id: str | None,
        user_id: str | int | None,
        cookies: dict[str, str],
        session_header: str | None = None,
        user_agent: str = "",
        ip_address: str = "",
    ) -> ResolvedSession:
        """Find or open the session for the calling terminal and cashier.

        The token comes from the terminal's session cookie, or from the
        ``X-Session-ID`` header for clients without cookies.
        """
        with translate_errors("resolve session"):
            uid = parse_user_id(user_id)
            terminal = self._sessions.sanitize_terminal_id(terminal_id, uid, user_agent, ip_address)
            token = cookies.get(self._sessions.cookie_name(terminal, uid)) or session_header
            return self._sessions.resolve_session(terminal, uid, token, user_agent, ip_address)

    def to_response(self, session: Session, created: bool = False) -> SessionResponse:
        return SessionResponse(
            session_id=session.session_id,
            terminal_id=session.terminal_id,
            user_id=session.user_id,
            expires_at=session.expires_at,
            remaining_time=self._sessions.remaining_time(session),
            created=created,
        )

    def extend(self, session: Session) -> SessionResponse:
        with translate_errors("extend session"):
            self._sessions.extend(session)
            return self.to_response(session)

    def destroy(self, session: Session) -> SessionCookie:
        with translate_errors("destroy session"):
            return self._sessions.destroy(session)

    def validate(self, session_id: str | None, terminal_id: str | None) -> SessionResponse:
        with translate_errors("validate session"):
            return self.to_response(self._sessions.validate_api_session(session_id, terminal_id))

    def get_stats(self) -> dict:
        with translate_errors("get session stats"):
            return self._sessions.get_session_stats()
