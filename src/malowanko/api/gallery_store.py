"""Gallery read queries for the Malowanko API.

This module isolates the gallery SQL from ``malowanko.api.main`` so route
handlers can focus on HTTP concerns while the queries remain testable as a
small unit.

List queries never select the image payload: a page of 20 data URLs would be
megabytes.  Clients fetch each image separately by id through
:meth:`GalleryReader.fetch_image_by_id`, which is backed by the in-process
:class:`~malowanko.core.image_cache.ImageCache`.

Search matches a case-insensitive substring of the prompt, or a tag equal to
the search text (case-insensitive).
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
from typing import Any

from pydantic import ValidationError

from malowanko.core.database import Database
from malowanko.core.errors import ErrorCode, QueryValidationError, StorageError
from malowanko.core.image_cache import ImageCache
from malowanko.core.models import (
    CurrentUser,
    GalleryColoringDTO,
    GalleryColoringListItem,
    GalleryQueryParams,
    parse_coloring_id,
)
from malowanko.core.results import (
    ActionResult,
    PaginatedResponse,
    Pagination,
    action_error,
    action_success,
)

logger = logging.getLogger(__name__)

_LIST_COLUMNS = "g.id, g.prompt, g.tags, g.age_group, g.style, g.created_at, g.favorites_count"

_ORDER_BY = {
    "newest": "g.created_at DESC, g.id",
    "popular": "g.favorites_count DESC, g.created_at DESC, g.id",
}


def format_validation_error(error: ValidationError) -> str:
    """Join the messages of a validation error into one display string."""
    return ". ".join(issue["msg"] for issue in error.errors())


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    """Build the pagination block for a page of *limit* items.

    Pages past the end are not clamped; they simply return no items.
    """
    return Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit))


def decode_tags(raw: str | None) -> list[str]:
    """Decode the JSON tag array stored with a coloring."""
    if not raw:
        return []
    tags = json.loads(raw)
    return [tag for tag in tags if isinstance(tag, str)] if isinstance(tags, list) else []


def build_gallery_filters(params: GalleryQueryParams) -> tuple[str, list[Any]]:
    """Translate gallery filters into a ``WHERE`` clause and its parameters.

    Returns:
        ``(clause, parameters)``.  The clause is empty when no filter applies.
    """
    conditions: list[str] = []
    values: list[Any] = []

    if params.age_groups:
        conditions.append(f"g.age_group IN ({', '.join('?' for _ in params.age_groups)})")
        values.extend(params.age_groups)

    if params.styles:
        conditions.append(f"g.style IN ({', '.join('?' for _ in params.styles)})")
        values.extend(params.styles)

    if params.search:
        conditions.append(
            "(instr(ulower(g.prompt), ulower(?)) > 0"
            " OR EXISTS (SELECT 1 FROM json_each(g.tags) t WHERE ulower(t.value) = ulower(?)))"
        )
        values.extend([params.search, params.search])

    clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return clause, values


class GalleryReader:
    """Read-only queries over the public gallery."""

    def __init__(self, database: Database, image_cache: ImageCache | None = None):
        """Initialize the reader.

        Args:
            database: The SQLite store
            image_cache: Cache for image data URLs; a disabled cache is used
                when omitted
        """
        self._database = database
        self._image_cache = image_cache if image_cache is not None else ImageCache(maxsize=0)

    def _favorite_ids(self, user: CurrentUser, coloring_ids: list[str]) -> set[str]:
        """Return which of *coloring_ids* the user has favorited.

        A failed lookup is logged and treated as "no favorites" so the
        gallery stays readable.
        """
        if not coloring_ids:
            return set()
        placeholders = ", ".join("?" for _ in coloring_ids)
        try:
            with self._database.connect() as conn:
                rows = conn.execute(
                    "SELECT coloring_id FROM favorites "
                    f"WHERE user_id = ? AND coloring_id IN ({placeholders})",
                    [user.id, *coloring_ids],
                ).fetchall()
        except sqlite3.Error as e:
            logger.warning(f"Failed to fetch favorites for user {user.id}, continuing without: {e}")
            return set()
        return {row["coloring_id"] for row in rows}

    def query_gallery(
        self,
        params: dict[str, Any] | GalleryQueryParams | None = None,
        user: CurrentUser | None = None,
    ) -> PaginatedResponse[GalleryColoringListItem]:
        """Return one page of the public gallery.

        Args:
            params: Filters, sort order and pagination (raw or validated).
            user: The signed-in user, used to annotate ``is_favorited``.
                Anonymous readers get ``is_favorited=None``.

        Returns:
            The page of list items, without image payloads.

        Raises:
            QueryValidationError: If *params* are invalid.
            StorageError: If the gallery query fails.
        """
        try:
            params = GalleryQueryParams.model_validate(params or {})
        except ValidationError as e:
            logger.error(f"Gallery query params validation failed: {e.error_count()} error(s)")
            raise QueryValidationError(format_validation_error(e)) from e

        clause, values = build_gallery_filters(params)
        offset = (params.page - 1) * params.limit

        try:
            with self._database.connect() as conn:
                total = conn.execute(
                    f"SELECT COUNT(*) FROM public_gallery g {clause}", values
                ).fetchone()[0]
                rows = conn.execute(
                    f"SELECT {_LIST_COLUMNS} FROM public_gallery g {clause} "
                    f"ORDER BY {_ORDER_BY[params.sort_by]} LIMIT ? OFFSET ?",
                    [*values, params.limit, offset],
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to fetch gallery: {e}")
            raise StorageError("Nie udało się pobrać kolorowanek z galerii.") from e

        favorite_ids = self._favorite_ids(user, [row["id"] for row in rows]) if user else set()

        items = [
            GalleryColoringListItem(
                id=row["id"],
                prompt=row["prompt"],
                tags=decode_tags(row["tags"]),
                age_group=row["age_group"],
                style=row["style"],
                created_at=row["created_at"],
                favorites_count=row["favorites_count"],
                is_favorited=(row["id"] in favorite_ids) if user else None,
            )
            for row in rows
        ]
        return PaginatedResponse(
            items=items, pagination=build_pagination(params.page, params.limit, total)
        )

    def get_coloring_by_id(
        self, coloring_id: str, user: CurrentUser | None = None
    ) -> GalleryColoringDTO | None:
        """Return a full coloring for the preview, or None if it doesn't exist.

        Raises:
            QueryValidationError: If *coloring_id* is not a UUID.
            StorageError: If the lookup fails.
        """
        validated_id = parse_coloring_id(coloring_id)
        if validated_id is None:
            logger.error(f"Invalid coloring ID format: {coloring_id!r}")
            raise QueryValidationError("Nieprawidłowy format ID kolorowanki")

        try:
            with self._database.connect() as conn:
                row = conn.execute(
                    "SELECT * FROM public_gallery WHERE id = ?", (validated_id,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to fetch coloring {validated_id}: {e}")
            raise StorageError("Nie udało się pobrać kolorowanki.") from e

        if row is None:
            return None

        self._image_cache.put(row["id"], row["image_url"])
        return GalleryColoringDTO(
            id=row["id"],
            image_url=row["image_url"],
            prompt=row["prompt"],
            tags=decode_tags(row["tags"]),
            age_group=row["age_group"],
            style=row["style"],
            created_at=row["created_at"],
            favorites_count=row["favorites_count"],
            is_favorited=(row["id"] in self._favorite_ids(user, [row["id"]])) if user else None,
        )

    def fetch_image_by_id(self, coloring_id: str) -> ActionResult[str]:
        """Return the image data URL of a coloring.

        Returns:
            The ``data:`` URL, ``VALIDATION_ERROR`` for malformed ids,
            ``NOT_FOUND`` for unknown colorings, or ``INTERNAL_ERROR``.
        """
        validated_id = parse_coloring_id(coloring_id)
        if validated_id is None:
            return action_error(ErrorCode.VALIDATION_ERROR, "Nieprawidłowy format ID kolorowanki")

        cached = self._image_cache.get(validated_id)
        if cached is not None:
            return action_success(cached)

        try:
            with self._database.connect() as conn:
                row = conn.execute(
                    "SELECT image_url FROM public_gallery WHERE id = ?", (validated_id,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to fetch image of coloring {validated_id}: {e}")
            return action_error(
                ErrorCode.INTERNAL_ERROR, "Nie udało się pobrać obrazu kolorowanki."
            )

        if row is None or not row["image_url"]:
            return action_error(ErrorCode.NOT_FOUND)

        self._image_cache.put(validated_id, row["image_url"])
        return action_success(row["image_url"])
