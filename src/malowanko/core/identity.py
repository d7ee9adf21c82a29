"""Bearer-token sessions resolving to the current user.

Sign-in itself (magic link / one-time code) is handled by an external
provider.  Once a user is signed in, the provider calls
:meth:`SessionStore.create_session` and hands the returned token to the
client, which sends it as ``Authorization: Bearer <token>``.
"""

from __future__ import annotations

import logging
import secrets
import sqlite3
from datetime import datetime, timedelta, timezone

from malowanko.core.database import Database
from malowanko.core.models import CurrentUser

logger = logging.getLogger(__name__)


class SessionStore:
    """Issue and resolve session tokens.

    Attributes:
        ttl: Lifetime of a newly created session.
    """

    def __init__(self, database: Database, ttl_hours: int = 168):
        """Initialize the session store.

        Args:
            database: The SQLite store holding the ``sessions`` table
            ttl_hours: Session lifetime in hours
        """
        self._database = database
        self.ttl = timedelta(hours=ttl_hours)

    def create_session(self, user_id: str, email: str | None = None) -> str:
        """Create a session for a signed-in user.

        The user's profile row is created as well, so the quota ledger and
        the library can rely on its existence.

        Args:
            user_id: Identifier assigned by the sign-in provider
            email: Email address of the user, if known

        Returns:
            The opaque session token.
        """
        token = secrets.token_urlsafe(32)
        expires_at = datetime.now(timezone.utc) + self.ttl

        with self._database.connect() as conn:
            conn.execute("INSERT OR IGNORE INTO profiles (id) VALUES (?)", (user_id,))
            conn.execute(
                "INSERT INTO sessions (token, user_id, email, expires_at) VALUES (?, ?, ?, ?)",
                (token, user_id, email, expires_at.isoformat()),
            )

        logger.info(f"Created session for user {user_id}")
        return token

    def revoke_session(self, token: str) -> bool:
        """Delete a session.  Returns True if the token existed."""
        with self._database.connect() as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
            return cursor.rowcount > 0

    def get_current_user(self, token: str | None) -> CurrentUser | None:
        """Resolve a session token to the signed-in user.

        Unknown and expired tokens resolve to ``None``; expired sessions are
        deleted on the way.  A store failure is treated as "not signed in".

        Args:
            token: Bearer token sent by the client, or None

        Returns:
            The current user, or None for anonymous callers.
        """
        if not token:
            return None

        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._database.connect() as conn:
                row = conn.execute(
                    "SELECT user_id, email, expires_at FROM sessions WHERE token = ?",
                    (token,),
                ).fetchone()
                if row is None:
                    return None
                if row["expires_at"] <= now:
                    conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
                    logger.info(f"Session expired for user {row['user_id']}")
                    return None
        except sqlite3.Error as e:
            logger.error(f"Failed to resolve session: {e}")
            return None

        return CurrentUser(id=row["user_id"], email=row["email"])
