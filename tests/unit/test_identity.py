"""Tests for malowanko.core.identity — bearer-token sessions."""

from __future__ import annotations

import pytest

from malowanko.core.database import Database
from malowanko.core.identity import SessionStore


@pytest.fixture
def sessions(database: Database) -> SessionStore:
    return SessionStore(database, ttl_hours=1)


class TestSessionStore:
    def test_token_resolves_to_user(self, sessions: SessionStore):
        token = sessions.create_session("user-alice", "alice@example.com")

        user = sessions.get_current_user(token)

        assert user.id == "user-alice"
        assert user.email == "alice@example.com"

    def test_create_session_creates_profile(self, sessions: SessionStore, database: Database):
        sessions.create_session("user-alice")
        with database.connect() as conn:
            assert conn.execute(
                "SELECT COUNT(*) FROM profiles WHERE id = 'user-alice'"
            ).fetchone()[0] == 1

    def test_tokens_are_unique(self, sessions: SessionStore):
        assert sessions.create_session("user-alice") != sessions.create_session("user-alice")

    @pytest.mark.parametrize("token", [None, "", "unknown-token"])
    def test_unknown_token_is_anonymous(self, sessions: SessionStore, token):
        assert sessions.get_current_user(token) is None

    def test_expired_session_is_deleted(self, sessions: SessionStore, database: Database):
        token = sessions.create_session("user-alice")
        with database.connect() as conn:
            conn.execute(
                "UPDATE sessions SET expires_at = '2000-01-01T00:00:00+00:00' WHERE token = ?",
                (token,),
            )

        assert sessions.get_current_user(token) is None
        with database.connect() as conn:
            assert conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0] == 0

    def test_revoke(self, sessions: SessionStore):
        token = sessions.create_session("user-alice")

        assert sessions.revoke_session(token) is True
        assert sessions.revoke_session(token) is False
        assert sessions.get_current_user(token) is None

    def test_store_failure_is_anonymous(self, sessions: SessionStore, database: Database):
        token = sessions.create_session("user-alice")
        with database.connect() as conn:
            conn.execute("DROP TABLE sessions")

        assert sessions.get_current_user(token) is None
