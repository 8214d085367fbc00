"""
Tests for the session store.
"""

import pytest

from pos_cart.errors import (
    InvalidUserError,
    MissingSessionDataError,
    SessionInvalidError,
    TerminalMismatchError,
)


def test_new_session_issues_cookie(sessions):
    resolved = sessions.resolve_session("T1", user_id=7)

    assert resolved.created is True
    assert resolved.cookie is not None
    assert resolved.cookie.value == resolved.session.session_id
    assert resolved.cookie.secure is False
    assert len(resolved.session.session_id) == 64


def test_resolve_reuses_live_session(sessions):
    first = sessions.resolve_session("T1", user_id=7)
    again = sessions.resolve_session("T1", user_id=7, client_token=first.session.session_id)

    assert again.created is False
    assert again.cookie is None
    assert again.session.session_id == first.session.session_id


def test_token_from_other_terminal_is_not_reused(sessions):
    first = sessions.resolve_session("T1", user_id=7)
    other = sessions.resolve_session("T2", user_id=7, client_token=first.session.session_id)

    assert other.created is True
    assert other.session.session_id != first.session.session_id


def test_terminal_id_is_sanitized_or_derived(sessions):
    assert sessions.sanitize_terminal_id(" T 1<script> ") == "T1script"
    derived = sessions.sanitize_terminal_id("", user_id=7, user_agent="ua", ip_address="10.0.0.1")
    assert derived.startswith("terminal_")
    assert derived == sessions.sanitize_terminal_id(None, user_id=7, user_agent="ua", ip_address="10.0.0.1")


def test_session_invalid_after_expiry_without_sweep(sessions, session, clock):
    """Expiry alone invalidates a session; no cleanup run is needed."""
    assert sessions.is_valid(session)

    clock.advance(sessions.timeout + 1)

    assert not sessions.is_valid(session)
    assert sessions.load(session.session_id) is None
    with pytest.raises(SessionInvalidError):
        sessions.get_data(session)


def test_expired_token_yields_new_session(sessions, session, clock):
    clock.advance(sessions.timeout + 1)

    resolved = sessions.resolve_session("T1", user_id=7, client_token=session.session_id)

    assert resolved.created is True
    assert resolved.session.session_id != session.session_id


def test_data_round_trip(sessions, session):
    sessions.set_data(session, "drawer", 3)

    assert sessions.get_data(session, "drawer") == 3
    assert sessions.get_data(session, "missing", default="x") == "x"
    assert sessions.get_data(session) == {"drawer": 3}


def test_write_slides_expiry(sessions, session, clock):
    clock.advance(3600)
    sessions.set_data(session, "k", "v")

    assert sessions.remaining_time(session) == pytest.approx(sessions.timeout)


def test_extend_is_capped_at_max_lifetime(sessions, session, clock):
    remaining = sessions.extend(session, 3600)
    assert remaining == pytest.approx(sessions.timeout + 3600)

    remaining = sessions.extend(session, 10 * 86400)
    assert remaining == pytest.approx(86400)


def test_extend_expired_session_fails(sessions, session, clock):
    clock.advance(sessions.timeout + 1)

    with pytest.raises(SessionInvalidError):
        sessions.extend(session)


def test_destroy(sessions, session):
    cookie = sessions.destroy(session)

    assert cookie.max_age == 0
    assert cookie.value == ""
    assert not sessions.is_valid(session)
    assert sessions.load(session.session_id) is None


def test_cart_snapshot_and_customer(sessions, session):
    sessions.set_cart_snapshot(session, {"items": {}})
    sessions.set_customer_id(session, 42)

    assert sessions.get_cart_snapshot(session) == {"items": {}}
    assert sessions.get_customer_id(session) == 42


def test_cleanup_expired(sessions, clock):
    sessions.resolve_session("T1", user_id=1)
    sessions.resolve_session("T2", user_id=2)
    clock.advance(sessions.timeout + 1)
    live = sessions.resolve_session("T3", user_id=3)

    assert sessions.cleanup_expired() == 2

    stats = sessions.get_session_stats()
    assert stats["total_sessions"] == 1
    assert stats["active_sessions"] == 1
    assert list(sessions.get_terminal_sessions("T3")) == [live.session.session_id]


def test_terminal_sessions(sessions):
    a = sessions.resolve_session("T1", user_id=1).session
    b = sessions.resolve_session("T1", user_id=2).session
    sessions.resolve_session("T2", user_id=1)

    assert set(sessions.get_terminal_sessions("T1")) == {a.session_id, b.session_id}


def test_api_session_requires_user(sessions):
    with pytest.raises(InvalidUserError):
        sessions.create_api_session("T1", None)
    with pytest.raises(InvalidUserError):
        sessions.create_api_session("T1", 0)


def test_validate_api_session(sessions):
    created = sessions.create_api_session("T1", 7)

    session = sessions.validate_api_session(created["session_id"], "T1")
    assert session.user_id == 7

    with pytest.raises(MissingSessionDataError):
        sessions.validate_api_session("", "T1")
    with pytest.raises(SessionInvalidError):
        sessions.validate_api_session("0" * 64, "T1")
    with pytest.raises(TerminalMismatchError):
        sessions.validate_api_session(created["session_id"], "T2")
