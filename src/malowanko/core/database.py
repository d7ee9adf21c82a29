"""SQLite storage for colorings, favorites, library entries, and quotas.

The store is a single SQLite file.  Every operation opens a short-lived
connection through :meth:`Database.connect`, which commits on success, rolls
back on error, and always closes the connection.

Relations
---------
profiles
    One row per user: daily generation counter and last generation date.
sessions
    Bearer tokens issued to signed-in users.
colorings
    Generated artifacts.  The image is stored inline as a data URL.
favorites
    Global "likes", composite key (user_id, coloring_id).
user_library
    Explicit library entries with the library-local favorite flag.

Views
-----
public_gallery
    Projection of ``colorings`` used by the gallery reader.
user_library_view
    Library membership: explicit ``user_library`` rows joined with their
    coloring, plus every coloring owned by a user who has no explicit row for
    it (a user's own generations are always part of their library).
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS profiles (
    id TEXT PRIMARY KEY,
    generations_today INTEGER NOT NULL DEFAULT 0,
    last_generation_date TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS sessions (
    token TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    email TEXT,
    expires_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS colorings (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    image_url TEXT NOT NULL,
    prompt TEXT NOT NULL CHECK (length(prompt) BETWEEN 1 AND 500),
    tags TEXT NOT NULL DEFAULT '[]',
    age_group TEXT NOT NULL CHECK (age_group IN ('0-3', '4-8', '9-12')),
    style TEXT NOT NULL CHECK (style IN ('prosty', 'klasyczny', 'szczegolowy', 'mandala')),
    created_at TEXT NOT NULL,
    favorites_count INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_colorings_created_at ON colorings(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_colorings_favorites_count ON colorings(favorites_count DESC);
CREATE INDEX IF NOT EXISTS idx_colorings_user_id ON colorings(user_id);

CREATE TABLE IF NOT EXISTS favorites (
    user_id TEXT NOT NULL,
    coloring_id TEXT NOT NULL REFERENCES colorings(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    PRIMARY KEY (user_id, coloring_id)
);

CREATE INDEX IF NOT EXISTS idx_favorites_coloring_id ON favorites(coloring_id);

CREATE TABLE IF NOT EXISTS user_library (
    user_id TEXT NOT NULL,
    coloring_id TEXT NOT NULL REFERENCES colorings(id) ON DELETE CASCADE,
    added_at TEXT NOT NULL,
    is_favorite INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (user_id, coloring_id)
);

CREATE VIEW IF NOT EXISTS public_gallery AS
SELECT id, user_id, image_url, prompt, tags, age_group, style, created_at, favorites_count
FROM colorings;

CREATE VIEW IF NOT EXISTS user_library_view AS
SELECT
    ul.user_id AS user_id,
    ul.coloring_id AS coloring_id,
    ul.added_at AS added_at,
    ul.is_favorite AS library_favorite,
    c.user_id AS owner_id,
    c.image_url AS image_url,
    c.prompt AS prompt,
    c.tags AS tags,
    c.age_group AS age_group,
    c.style AS style,
    c.created_at AS created_at,
    c.favorites_count AS favorites_count,
    EXISTS (
        SELECT 1 FROM favorites f
        WHERE f.user_id = ul.user_id AND f.coloring_id = ul.coloring_id
    ) AS is_global_favorite
FROM user_library ul
LEFT JOIN colorings c ON c.id = ul.coloring_id
UNION ALL
SELECT
    c.user_id,
    c.id,
    c.created_at,
    0,
    c.user_id,
    c.image_url,
    c.prompt,
    c.tags,
    c.age_group,
    c.style,
    c.created_at,
    c.favorites_count,
    EXISTS (
        SELECT 1 FROM favorites f
        WHERE f.user_id = c.user_id AND f.coloring_id = c.id
    )
FROM colorings c
WHERE NOT EXISTS (
    SELECT 1 FROM user_library ul
    WHERE ul.user_id = c.user_id AND ul.coloring_id = c.id
);
"""


def _unicode_lower(value: str | None) -> str | None:
    # SQLite's built-in lower() only folds ASCII; prompts and tags are Polish.
    return value.lower() if value is not None else None


class Database:
    """Connection factory and schema owner for the SQLite store.

    Attributes:
        db_path: Path to the SQLite database file.
        timeout: Seconds a connection waits on a locked database.
    """

    def __init__(self, db_path: str | Path, timeout: float = 10.0):
        """Initialize the database and create the schema if it doesn't exist.

        Args:
            db_path: Path to SQLite database file
            timeout: Busy timeout in seconds for concurrent writers
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()
        logger.info(f"Initialized database at {self.db_path}")

    def _initialize_db(self) -> None:
        """Create tables, indexes, and views."""
        with self.connect() as conn:
            conn.executescript(_SCHEMA)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection for a single unit of work.

        The connection has foreign keys enabled, returns :class:`sqlite3.Row`
        rows, and exposes ``ulower()`` as a Unicode-aware ``lower()``.

        Yields:
            An open connection.  The transaction is committed when the block
            exits normally and rolled back when it raises.
        """
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.create_function("ulower", 1, _unicode_lower, deterministic=True)
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()


def utc_now() -> str:
    """Return the current UTC time as an ISO 8601 string.

    All stored timestamps use this format so they sort lexicographically.
    """
    return datetime.now(timezone.utc).isoformat()
