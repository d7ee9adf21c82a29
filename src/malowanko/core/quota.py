"""Daily generation quota per user.

The ledger enforces a single daily limit shared by all users.  The check and
the increment are one conditional ``UPDATE`` statement, so two concurrent
requests from the same user can never both pass the check before either
increments: SQLite serialises writers and the ``WHERE`` clause is evaluated
against the row the statement is about to modify.

Daily Reset
-----------
The stored ``last_generation_date`` is compared with the current UTC date.
When it is older, the stored counter is treated as zero, both when reserving
and when reporting the remaining quota.  No background job resets counters.

Failure Policy
--------------
Reservations fail closed: if the statement cannot be evaluated the
reservation is denied and flagged as an infrastructure error, since allowing
it would risk unbounded usage.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from malowanko.core.database import Database

logger = logging.getLogger(__name__)

# Counter value that applies today: zero when the last generation happened
# on an earlier day (or never).
_EFFECTIVE_COUNT = """
CASE
    WHEN last_generation_date IS NULL OR last_generation_date < :today THEN 0
    ELSE generations_today
END
"""

_RESERVE_SQL = f"""
UPDATE profiles
SET generations_today = ({_EFFECTIVE_COUNT}) + :count,
    last_generation_date = :today
WHERE id = :user_id
  AND ({_EFFECTIVE_COUNT}) + :count <= :daily_limit
"""

_REFUND_SQL = """
UPDATE profiles
SET generations_today = MAX(generations_today - :count, 0)
WHERE id = :user_id AND last_generation_date = :today
"""

_REMAINING_SQL = f"""
SELECT MAX(:daily_limit - ({_EFFECTIVE_COUNT}), 0) AS remaining
FROM profiles
WHERE id = :user_id
"""


def utc_today() -> date:
    """Return the current date in UTC."""
    return datetime.now(timezone.utc).date()


def next_reset_time(today: date | None = None) -> str:
    """Return the ISO timestamp of the next UTC midnight.

    Args:
        today: Current UTC date.  Defaults to :func:`utc_today`.

    Returns:
        ISO 8601 timestamp, e.g. ``"2026-10-20T00:00:00+00:00"``.
    """
    today = today or utc_today()
    return datetime.combine(today + timedelta(days=1), time.min, tzinfo=timezone.utc).isoformat()


@dataclass(frozen=True)
class QuotaReservation:
    """Outcome of :meth:`QuotaLedger.reserve`.

    Attributes:
        allowed: Whether the generations were reserved.
        error: ``True`` when the reservation was denied because the ledger
            could not be evaluated, rather than because the limit is reached.
    """

    allowed: bool
    error: bool = False


class QuotaLedger:
    """Atomic daily generation counter.

    Attributes:
        daily_limit: Generations allowed per user per UTC day.
    """

    def __init__(
        self,
        database: Database,
        daily_limit: int,
        today: Callable[[], date] = utc_today,
    ) -> None:
        """Initialize the ledger.

        Args:
            database: The SQLite store holding the ``profiles`` table.
            daily_limit: Generations allowed per user per day.
            today: Clock returning the current UTC date.
        """
        self._database = database
        self.daily_limit = daily_limit
        self._today = today

    def current_date(self) -> date:
        """Return the current UTC date as seen by the ledger."""
        return self._today()

    def _params(self, user_id: str, **extra) -> dict:
        return {
            "user_id": user_id,
            "today": self.current_date().isoformat(),
            "daily_limit": self.daily_limit,
            **extra,
        }

    def reserve(self, user_id: str, count: int) -> QuotaReservation:
        """Check the remaining quota and reserve *count* generations.

        The profile row is created on first use.  The reservation either
        applies in full or not at all; a denied reservation leaves the
        counter untouched.

        Args:
            user_id: The requesting user.
            count: Number of generations to reserve.

        Returns:
            A :class:`QuotaReservation`.  ``allowed`` is ``False`` both when
            the limit would be exceeded and when the store failed (in which
            case ``error`` is ``True``).
        """
        if count < 1:
            raise ValueError("count must be positive")

        try:
            with self._database.connect() as conn:
                conn.execute("INSERT OR IGNORE INTO profiles (id) VALUES (?)", (user_id,))
                cursor = conn.execute(_RESERVE_SQL, self._params(user_id, count=count))
                allowed = cursor.rowcount == 1
        except sqlite3.Error as e:
            logger.error(f"Failed to check generation limit for user {user_id}: {e}")
            return QuotaReservation(allowed=False, error=True)

        if allowed:
            logger.info(f"Reserved {count} generation(s) for user {user_id}")
        else:
            logger.info(f"Generation limit exceeded for user {user_id} (requested {count})")
        return QuotaReservation(allowed=allowed)

    def refund(self, user_id: str, count: int) -> None:
        """Give back *count* generations reserved today.

        Used when a reserved batch produced nothing.  Refunds never push the
        counter below zero and never touch a counter from an earlier day.
        Failures are logged, not raised: the caller is already reporting a
        failure of its own.
        """
        try:
            with self._database.connect() as conn:
                conn.execute(_REFUND_SQL, self._params(user_id, count=count))
        except sqlite3.Error as e:
            logger.error(f"Failed to refund {count} generation(s) for user {user_id}: {e}")
            return
        logger.info(f"Refunded {count} generation(s) for user {user_id}")

    def remaining(self, user_id: str) -> int:
        """Return the number of generations the user has left today.

        Users without a profile row have the full limit.  If the store cannot
        be read the result is 0, so the UI shows the limit as exhausted.
        """
        try:
            with self._database.connect() as conn:
                row = conn.execute(_REMAINING_SQL, self._params(user_id)).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to get remaining generations for user {user_id}: {e}")
            return 0

        return self.daily_limit if row is None else int(row["remaining"])
