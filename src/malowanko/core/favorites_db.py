"""Global favorites and personal library entries.

Two independent notions of "favorite" live here:

- A **global favorite** is a gallery-wide like.  Each toggle inserts or
  deletes a ``favorites`` row and then recomputes ``favorites_count`` from
  those rows, so the cached count never drifts under concurrent toggles.
- A **library favorite** is a private flag on an entry in the user's
  library and has no effect on the gallery.

Library membership means an explicit ``user_library`` row or ownership of
the coloring.  Owners can never remove their own colorings from their
library.

Every public method returns an action envelope; none of them raise.
"""

from __future__ import annotations

import logging
import sqlite3

from malowanko.core.database import Database, utc_now
from malowanko.core.errors import ErrorCode
from malowanko.core.models import (
    CurrentUser,
    ToggleFavoriteResult,
    ToggleGlobalFavoriteResult,
    parse_coloring_id,
)
from malowanko.core.results import ActionFailure, ActionResult, action_error, action_success

logger = logging.getLogger(__name__)

_MEMBERSHIP_SQL = """
SELECT
    c.user_id AS owner_id,
    c.created_at AS created_at,
    ul.coloring_id IS NOT NULL AS has_entry,
    ul.is_favorite AS is_favorite
FROM colorings c
LEFT JOIN user_library ul ON ul.coloring_id = c.id AND ul.user_id = :user_id
WHERE c.id = :coloring_id
"""


class FavoritesLedger:
    """Favorite and library mutations for signed-in users."""

    def __init__(self, database: Database):
        """Initialize the ledger.

        Args:
            database: The SQLite store
        """
        self._database = database

    def _preconditions(
        self, user: CurrentUser | None, coloring_id: object, action: str
    ) -> tuple[str, str] | ActionFailure:
        """Validate the coloring id and require a signed-in user.

        Returns:
            ``(user_id, coloring_id)`` or the error envelope to return.
        """
        validated_id = parse_coloring_id(coloring_id)
        if validated_id is None:
            logger.warning(f"Invalid coloring ID format ({action}): {coloring_id!r}")
            return action_error(ErrorCode.VALIDATION_ERROR, "Nieprawidłowy format ID kolorowanki.")

        if user is None:
            logger.warning(f"Unauthorized {action} attempt for coloring {validated_id}")
            return action_error(ErrorCode.UNAUTHORIZED)

        return user.id, validated_id

    def toggle_global_favorite(
        self, user: CurrentUser | None, coloring_id: str
    ) -> ActionResult[ToggleGlobalFavoriteResult]:
        """Like or unlike a coloring in the public gallery.

        Args:
            user: The signed-in user, or None
            coloring_id: UUID of the coloring

        Returns:
            The new favorite state and the recomputed favorites count.
            ``NOT_FOUND`` if the coloring doesn't exist.
        """
        checked = self._preconditions(user, coloring_id, "global favorite toggle")
        if isinstance(checked, ActionFailure):
            return checked
        user_id, coloring_id = checked

        try:
            with self._database.connect() as conn:
                exists = conn.execute(
                    "SELECT 1 FROM colorings WHERE id = ?", (coloring_id,)
                ).fetchone()
                if exists is None:
                    logger.warning(
                        f"Coloring {coloring_id} not found for global favorite toggle "
                        f"by user {user_id}"
                    )
                    return action_error(ErrorCode.NOT_FOUND)

                # Delete first; if nothing was deleted the row didn't exist
                deleted = conn.execute(
                    "DELETE FROM favorites WHERE user_id = ? AND coloring_id = ?",
                    (user_id, coloring_id),
                ).rowcount
                if deleted:
                    is_favorite = False
                else:
                    conn.execute(
                        "INSERT INTO favorites (user_id, coloring_id, created_at) VALUES (?, ?, ?)",
                        (user_id, coloring_id, utc_now()),
                    )
                    is_favorite = True

                favorites_count = conn.execute(
                    "SELECT COUNT(*) FROM favorites WHERE coloring_id = ?", (coloring_id,)
                ).fetchone()[0]

                try:
                    conn.execute(
                        "UPDATE colorings SET favorites_count = ? WHERE id = ?",
                        (favorites_count, coloring_id),
                    )
                except sqlite3.Error as e:
                    logger.warning(
                        f"Failed to update favorites_count cache for coloring {coloring_id}: {e}"
                    )
        except sqlite3.Error as e:
            logger.error(
                f"Failed to toggle global favorite for user {user_id}, coloring {coloring_id}: {e}"
            )
            return action_error(ErrorCode.INTERNAL_ERROR)

        logger.info(
            f"Global favorite toggled: user {user_id}, coloring {coloring_id}, "
            f"is_favorite={is_favorite}, favorites_count={favorites_count}"
        )
        return action_success(
            ToggleGlobalFavoriteResult(is_favorite=is_favorite, favorites_count=favorites_count)
        )

    def toggle_library_favorite(
        self, user: CurrentUser | None, coloring_id: str
    ) -> ActionResult[ToggleFavoriteResult]:
        """Flip the private favorite flag of a library entry.

        An owned coloring without an explicit library row gets one, created
        with the flag set.  Global favorites are not affected.

        Returns:
            The new library favorite state, or ``NOT_FOUND`` if the coloring
            is not in the user's library.
        """
        checked = self._preconditions(user, coloring_id, "library favorite toggle")
        if isinstance(checked, ActionFailure):
            return checked
        user_id, coloring_id = checked

        try:
            with self._database.connect() as conn:
                row = conn.execute(
                    _MEMBERSHIP_SQL, {"user_id": user_id, "coloring_id": coloring_id}
                ).fetchone()

                if row is not None and row["has_entry"]:
                    is_favorite = not row["is_favorite"]
                    conn.execute(
                        "UPDATE user_library SET is_favorite = ? "
                        "WHERE user_id = ? AND coloring_id = ?",
                        (int(is_favorite), user_id, coloring_id),
                    )
                elif row is not None and row["owner_id"] == user_id:
                    # Owned colorings are listed by their creation time
                    is_favorite = True
                    conn.execute(
                        "INSERT INTO user_library (user_id, coloring_id, added_at, is_favorite) "
                        "VALUES (?, ?, ?, 1)",
                        (user_id, coloring_id, row["created_at"]),
                    )
                else:
                    logger.warning(f"Coloring {coloring_id} not in library of user {user_id}")
                    return action_error(ErrorCode.NOT_FOUND)
        except sqlite3.Error as e:
            logger.error(
                f"Failed to toggle library favorite for user {user_id}, coloring {coloring_id}: {e}"
            )
            return action_error(ErrorCode.INTERNAL_ERROR)

        logger.info(
            f"Library favorite toggled: user {user_id}, coloring {coloring_id}, "
            f"is_favorite={is_favorite}"
        )
        return action_success(ToggleFavoriteResult(is_favorite=is_favorite))

    def add_to_library(self, user: CurrentUser | None, coloring_id: str) -> ActionResult[None]:
        """Save a gallery coloring into the user's library.

        Returns:
            An empty success, ``NOT_FOUND`` for unknown colorings, or
            ``ALREADY_IN_LIBRARY`` if the coloring is already a member
            (which includes the user's own colorings).
        """
        checked = self._preconditions(user, coloring_id, "library add")
        if isinstance(checked, ActionFailure):
            return checked
        user_id, coloring_id = checked

        try:
            with self._database.connect() as conn:
                row = conn.execute(
                    _MEMBERSHIP_SQL, {"user_id": user_id, "coloring_id": coloring_id}
                ).fetchone()

                if row is None:
                    logger.warning(f"Coloring {coloring_id} not found for library add")
                    return action_error(ErrorCode.NOT_FOUND)
                if row["has_entry"] or row["owner_id"] == user_id:
                    return action_error(ErrorCode.ALREADY_IN_LIBRARY)

                conn.execute(
                    "INSERT INTO user_library (user_id, coloring_id, added_at, is_favorite) "
                    "VALUES (?, ?, ?, 0)",
                    (user_id, coloring_id, utc_now()),
                )
        except sqlite3.Error as e:
            logger.error(f"Failed to add coloring {coloring_id} to library of user {user_id}: {e}")
            return action_error(ErrorCode.INTERNAL_ERROR)

        logger.info(f"Coloring {coloring_id} added to library of user {user_id}")
        return action_success()

    def remove_from_library(
        self, user: CurrentUser | None, coloring_id: str
    ) -> ActionResult[None]:
        """Remove a saved coloring from the user's library.

        Only the library entry is deleted; the coloring itself stays in the
        gallery.

        Returns:
            An empty success, ``NOT_FOUND`` if the coloring is not in the
            library, or ``CANNOT_REMOVE_OWN`` for the user's own colorings.
        """
        checked = self._preconditions(user, coloring_id, "library removal")
        if isinstance(checked, ActionFailure):
            return checked
        user_id, coloring_id = checked

        try:
            with self._database.connect() as conn:
                row = conn.execute(
                    _MEMBERSHIP_SQL, {"user_id": user_id, "coloring_id": coloring_id}
                ).fetchone()

                if row is None or not (row["has_entry"] or row["owner_id"] == user_id):
                    logger.warning(f"Coloring {coloring_id} not in library of user {user_id}")
                    return action_error(ErrorCode.NOT_FOUND)
                if row["owner_id"] == user_id:
                    logger.warning(
                        f"User {user_id} attempted to remove own coloring {coloring_id}"
                    )
                    return action_error(ErrorCode.CANNOT_REMOVE_OWN)

                conn.execute(
                    "DELETE FROM user_library WHERE user_id = ? AND coloring_id = ?",
                    (user_id, coloring_id),
                )
        except sqlite3.Error as e:
            logger.error(
                f"Failed to remove coloring {coloring_id} from library of user {user_id}: {e}"
            )
            return action_error(ErrorCode.INTERNAL_ERROR)

        logger.info(f"Coloring {coloring_id} removed from library of user {user_id}")
        return action_success()
