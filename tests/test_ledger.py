from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from datachat.core.chat import ledger
from datachat.core.chat.errors import QuotaExceeded

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_user(used=0, allowed=100, reset=None):
    return SimpleNamespace(
        queries_used=used,
        queries_allowed=allowed,
        billing_cycle_reset=reset or NOW + timedelta(days=10),
    )


def test_add_months_clamps_day():
    assert ledger.add_months(datetime(2025, 1, 31), 1) == datetime(2025, 2, 28)
    assert ledger.add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
    assert ledger.add_months(datetime(2025, 12, 5), 1) == datetime(2026, 1, 5)
    assert ledger.add_months(datetime(2025, 1, 5), -1) == datetime(2024, 12, 5)


def test_no_rollover_before_reset():
    user = make_user(used=7)
    assert ledger.roll_over(user, NOW) is False
    assert user.queries_used == 7


def test_expired_cycle_resets_counter():
    """A user at their limit whose cycle expired gets a fresh allowance"""
    user = make_user(used=100, reset=NOW - timedelta(days=1))

    ledger.check_and_consume(user, NOW)

    assert user.queries_used == 0
    assert user.billing_cycle_reset == datetime(2025, 4, 14, 12, 0, tzinfo=timezone.utc)


def test_rollover_skips_missed_months_and_is_idempotent():
    user = make_user(used=50, reset=datetime(2024, 11, 1, tzinfo=timezone.utc))

    assert ledger.roll_over(user, NOW) is True
    assert user.billing_cycle_reset == datetime(2025, 4, 1, tzinfo=timezone.utc)

    user.queries_used = 3
    assert ledger.roll_over(user, NOW) is False
    assert user.queries_used == 3
    assert user.billing_cycle_reset == datetime(2025, 4, 1, tzinfo=timezone.utc)


def test_naive_reset_time_is_treated_as_utc():
    user = make_user(used=5, reset=datetime(2025, 3, 1))
    assert ledger.roll_over(user, NOW) is True
    assert user.queries_used == 0


def test_quota_exceeded_leaves_counter_alone():
    user = make_user(used=100)
    with pytest.raises(QuotaExceeded) as info:
        ledger.check_and_consume(user, NOW)

    assert user.queries_used == 100
    assert info.value.used == 100
    assert info.value.allowed == 100


def test_consume_counts_one_query():
    user = make_user(used=99)
    ledger.check_and_consume(user, NOW)
    ledger.consume(user)
    assert user.queries_used == 100

    with pytest.raises(QuotaExceeded):
        ledger.check_and_consume(user, NOW)


def test_usage_summary():
    user = make_user(used=25, allowed=100)
    summary = ledger.usage_summary(user, NOW)

    assert summary["queries_used"] == 25
    assert summary["percentage_used"] == 25.0
    assert summary["days_until_reset"] == 10
    assert summary["billing_cycle_end"] == NOW + timedelta(days=10)
    assert summary["billing_cycle_start"] == datetime(2025, 2, 25, 12, 0, tzinfo=timezone.utc)


def test_usage_summary_with_zero_allowance():
    summary = ledger.usage_summary(make_user(used=0, allowed=0), NOW)
    assert summary["percentage_used"] == 0.0
