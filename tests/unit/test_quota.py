"""Tests for malowanko.core.quota — the daily generation ledger.

Tests cover:
- Reservations within and beyond the daily limit.
- All-or-nothing reservations (a denied reservation changes nothing).
- Daily reset on a new UTC date.
- Refunds (never below zero, never across days).
- Concurrent reservations never exceeding the limit.
- Fail-closed behaviour when the store is unavailable.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from malowanko.core.database import Database
from malowanko.core.quota import QuotaLedger, QuotaReservation, next_reset_time


class MutableClock:
    """Clock whose date can be advanced by the test."""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today


def _stored_counter(database: Database, user_id: str) -> tuple[int, str | None]:
    with database.connect() as conn:
        row = conn.execute(
            "SELECT generations_today, last_generation_date FROM profiles WHERE id = ?",
            (user_id,),
        ).fetchone()
    return row["generations_today"], row["last_generation_date"]


class TestReserve:
    """Test QuotaLedger.reserve."""

    def test_new_user_has_full_limit(self, quota: QuotaLedger):
        """A user without a profile row should have the full limit."""
        assert quota.remaining("user-new") == 10

    def test_reserve_within_limit(self, quota: QuotaLedger):
        """A reservation within the limit should be allowed and counted."""
        assert quota.reserve("user-a", 3) == QuotaReservation(allowed=True)
        assert quota.remaining("user-a") == 7

    def test_reserve_up_to_exact_limit(self, quota: QuotaLedger):
        """Reserving exactly the remaining quota should succeed."""
        assert quota.reserve("user-a", 10).allowed
        assert quota.remaining("user-a") == 0

    def test_denied_reservation_leaves_counter_untouched(
        self, quota: QuotaLedger, database: Database
    ):
        """Exceeding the limit should reserve nothing at all."""
        assert quota.reserve("user-a", 8).allowed

        result = quota.reserve("user-a", 3)

        assert result == QuotaReservation(allowed=False, error=False)
        assert quota.remaining("user-a") == 2
        assert _stored_counter(database, "user-a")[0] == 8

    def test_remaining_quota_can_still_be_used_after_denial(self, quota: QuotaLedger):
        """A denied batch should not block a smaller batch that fits."""
        quota.reserve("user-a", 8)
        quota.reserve("user-a", 3)

        assert quota.reserve("user-a", 2).allowed
        assert quota.remaining("user-a") == 0

    def test_users_are_counted_separately(self, quota: QuotaLedger):
        quota.reserve("user-a", 10)
        assert quota.remaining("user-b") == 10

    @pytest.mark.parametrize("count", [0, -1])
    def test_non_positive_count_raises(self, quota: QuotaLedger, count: int):
        """Reserving zero or fewer generations is a programming error."""
        with pytest.raises(ValueError):
            quota.reserve("user-a", count)

    def test_remaining_is_monotonic_within_a_day(self, quota: QuotaLedger):
        """Remaining quota should only decrease between reservations."""
        seen = [quota.remaining("user-a")]
        for _ in range(4):
            quota.reserve("user-a", 2)
            seen.append(quota.remaining("user-a"))
        assert seen == sorted(seen, reverse=True)
        assert seen[-1] == 2


class TestDailyReset:
    """Counters from an earlier UTC date count as zero."""

    def test_new_day_restores_full_limit(self, database: Database):
        clock = MutableClock(date(2026, 1, 1))
        ledger = QuotaLedger(database, 5, today=clock)

        assert ledger.reserve("user-a", 5).allowed
        assert not ledger.reserve("user-a", 1).allowed

        clock.today = date(2026, 1, 2)

        assert ledger.remaining("user-a") == 5
        assert ledger.reserve("user-a", 1).allowed
        assert _stored_counter(database, "user-a") == (1, "2026-01-02")

    def test_reservation_stamps_current_date(self, database: Database):
        ledger = QuotaLedger(database, 5, today=lambda: date(2026, 3, 4))
        ledger.reserve("user-a", 2)
        assert _stored_counter(database, "user-a") == (2, "2026-03-04")


class TestRefund:
    """Test QuotaLedger.refund."""

    def test_refund_restores_reserved_generations(self, quota: QuotaLedger):
        quota.reserve("user-a", 3)
        quota.refund("user-a", 3)
        assert quota.remaining("user-a") == 10

    def test_refund_never_goes_below_zero(self, quota: QuotaLedger, database: Database):
        quota.reserve("user-a", 1)
        quota.refund("user-a", 5)
        assert _stored_counter(database, "user-a")[0] == 0
        assert quota.remaining("user-a") == 10

    def test_refund_does_not_touch_earlier_day(self, database: Database):
        """A refund issued after midnight must not alter yesterday's counter."""
        clock = MutableClock(date(2026, 1, 1))
        ledger = QuotaLedger(database, 5, today=clock)
        ledger.reserve("user-a", 4)

        clock.today = date(2026, 1, 2)
        ledger.refund("user-a", 4)

        assert _stored_counter(database, "user-a") == (4, "2026-01-01")

    def test_refund_unknown_user_is_noop(self, quota: QuotaLedger):
        quota.refund("user-ghost", 2)
        assert quota.remaining("user-ghost") == 10


class TestConcurrency:
    """Concurrent reservations must never overshoot the limit."""

    def test_parallel_reservations_respect_limit(self, quota: QuotaLedger):
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: quota.reserve("user-a", 1), range(25)))

        assert sum(result.allowed for result in results) == 10
        assert not any(result.error for result in results)
        assert quota.remaining("user-a") == 0

    def test_parallel_batches_respect_limit(self, quota: QuotaLedger):
        """Batches of 3 against a limit of 10: at most 3 batches fit."""
        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(lambda _: quota.reserve("user-a", 3), range(6)))

        assert sum(result.allowed for result in results) == 3
        assert quota.remaining("user-a") == 1


class TestFailClosed:
    """Store failures deny reservations and report zero remaining."""

    def test_reserve_denied_with_error_flag(self, quota: QuotaLedger, database: Database):
        with database.connect() as conn:
            conn.execute("DROP TABLE profiles")

        result = quota.reserve("user-a", 1)

        assert result == QuotaReservation(allowed=False, error=True)

    def test_remaining_is_zero_on_failure(self, quota: QuotaLedger, database: Database):
        with database.connect() as conn:
            conn.execute("DROP TABLE profiles")

        assert quota.remaining("user-a") == 0

    def test_refund_failure_does_not_raise(self, quota: QuotaLedger, database: Database):
        with database.connect() as conn:
            conn.execute("DROP TABLE profiles")

        quota.refund("user-a", 1)


class TestNextResetTime:
    def test_next_utc_midnight(self):
        assert next_reset_time(date(2026, 10, 19)) == "2026-10-20T00:00:00+00:00"

    def test_month_rollover(self):
        assert next_reset_time(date(2026, 12, 31)) == "2027-01-01T00:00:00+00:00"
