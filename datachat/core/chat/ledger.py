"""
USAGE LEDGER - Monthly query quota per user

Purpose:
    1. Roll the billing cycle over lazily when a request arrives after the reset time
    2. Reject a message when the user has used up the cycle's allowance
    3. Count exactly one query per processed message

The counter is a plain read-check-increment on the user row. Two messages sent
at the same moment by one user can both pass the check before either one is
counted; callers that care must serialize per user.
"""

import calendar
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from datachat.core.chat.errors import QuotaExceeded


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive timestamps even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def add_months(value: datetime, months: int) -> datetime:
    """Shift a timestamp by whole calendar months, clamping the day (Jan 31 + 1 -> Feb 28/29)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def first_cycle_reset() -> datetime:
    """Reset time for a freshly created account: one month from now."""
    return add_months(datetime.now(timezone.utc), 1)


def roll_over(user: Any, now: Optional[datetime] = None) -> bool:
    """
    Reset the cycle when it has expired.

    The reset time moves forward one month at a time until it lies in the
    future, so calling this again at the same instant changes nothing.

    Returns:
        True when the counter was reset
    """
    now = _as_utc(now or datetime.now(timezone.utc))
    reset_at = _as_utc(user.billing_cycle_reset)

    if now < reset_at:
        return False

    while reset_at <= now:
        reset_at = add_months(reset_at, 1)

    user.queries_used = 0
    user.billing_cycle_reset = reset_at
    return True


def check_and_consume(user: Any, now: Optional[datetime] = None) -> None:
    """
    Gate a message on the user's quota.

    Raises QuotaExceeded without touching the counter. On success the caller
    still has to call consume() once the turn is stored.
    """
    roll_over(user, now)

    if user.queries_used >= user.queries_allowed:
        raise QuotaExceeded(user.queries_used, user.queries_allowed)


def consume(user: Any) -> None:
    user.queries_used = (user.queries_used or 0) + 1


def usage_summary(user: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Current cycle usage as shown on the usage page."""
    now = _as_utc(now or datetime.now(timezone.utc))
    roll_over(user, now)

    cycle_end = _as_utc(user.billing_cycle_reset)
    cycle_start = add_months(cycle_end, -1)
    days_until_reset = math.ceil((cycle_end - now).total_seconds() / 86400)

    allowed = user.queries_allowed or 0
    percentage_used = (
        round(user.queries_used / allowed * 100, 1) if allowed > 0 else 0.0
    )

    return {
        "queries_used": user.queries_used,
        "queries_allowed": allowed,
        "percentage_used": percentage_used,
        "days_until_reset": max(0, days_until_reset),
        "billing_cycle_start": cycle_start,
        "billing_cycle_end": cycle_end,
    }
