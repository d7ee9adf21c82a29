"""Library read queries for the Malowanko API.

The library of a user is read from ``user_library_view``: colorings the user
saved from the gallery plus every coloring they generated.  Like the gallery
lists, library lists omit the image payload.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from pydantic import ValidationError

from malowanko.api.gallery_store import build_pagination, decode_tags, format_validation_error
from malowanko.core.database import Database
from malowanko.core.errors import (
    LibraryIntegrityError,
    QueryValidationError,
    StorageError,
    UnauthorizedError,
)
from malowanko.core.models import CurrentUser, LibraryColoringListItem, LibraryQueryParams
from malowanko.core.results import PaginatedResponse

logger = logging.getLogger(__name__)

_LIST_COLUMNS = (
    "coloring_id, prompt, tags, age_group, style, created_at, favorites_count, "
    "added_at, library_favorite, is_global_favorite"
)

_ORDER_BY = {
    "added": "added_at DESC, coloring_id",
    "created": "created_at DESC, coloring_id",
}

_REQUIRED_FIELDS = ("coloring_id", "prompt", "age_group", "style", "created_at", "added_at")


def map_library_row(row: sqlite3.Row) -> LibraryColoringListItem:
    """Map a ``user_library_view`` row to a list item.

    Raises:
        LibraryIntegrityError: If a required field is null, which happens
            when a library entry points at a coloring that no longer exists.
    """
    if any(row[field] is None for field in _REQUIRED_FIELDS) or row["favorites_count"] is None:
        logger.error(f"Invalid library row with null required fields: {row['coloring_id']}")
        raise LibraryIntegrityError("Nieprawidłowe dane kolorowanki w bibliotece.")

    return LibraryColoringListItem(
        id=row["coloring_id"],
        prompt=row["prompt"],
        tags=decode_tags(row["tags"]),
        age_group=row["age_group"],
        style=row["style"],
        created_at=row["created_at"],
        favorites_count=row["favorites_count"],
        added_at=row["added_at"],
        is_library_favorite=bool(row["library_favorite"]),
        is_global_favorite=bool(row["is_global_favorite"]),
    )


class LibraryReader:
    """Read-only queries over a user's library."""

    def __init__(self, database: Database):
        self._database = database

    def query_library(
        self,
        user: CurrentUser | None,
        params: dict[str, Any] | LibraryQueryParams | None = None,
    ) -> PaginatedResponse[LibraryColoringListItem]:
        """Return one page of the signed-in user's library.

        Args:
            user: The signed-in user.
            params: Favorites filter, sort order and pagination.

        Returns:
            The page of list items, without image payloads.

        Raises:
            QueryValidationError: If *params* are invalid.
            UnauthorizedError: If *user* is None.
            LibraryIntegrityError: If a row is missing required fields.
            StorageError: If the library query fails.
        """
        try:
            params = LibraryQueryParams.model_validate(params or {})
        except ValidationError as e:
            logger.error(f"Library query params validation failed: {e.error_count()} error(s)")
            raise QueryValidationError(format_validation_error(e)) from e

        if user is None:
            logger.warning("Unauthenticated library request")
            raise UnauthorizedError("Musisz być zalogowany, aby przeglądać bibliotekę.")

        clause = "WHERE user_id = ?"
        values: list[Any] = [user.id]
        if params.favorites_only:
            clause += " AND library_favorite = 1"

        try:
            with self._database.connect() as conn:
                total = conn.execute(
                    f"SELECT COUNT(*) FROM user_library_view {clause}", values
                ).fetchone()[0]
                rows = conn.execute(
                    f"SELECT {_LIST_COLUMNS} FROM user_library_view {clause} "
                    f"ORDER BY {_ORDER_BY[params.sort_by]} LIMIT ? OFFSET ?",
                    [*values, params.limit, (params.page - 1) * params.limit],
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to fetch library of user {user.id}: {e}")
            raise StorageError("Nie udało się pobrać biblioteki.") from e

        return PaginatedResponse(
            items=[map_library_row(row) for row in rows],
            pagination=build_pagination(params.page, params.limit, total),
        )
