"""Calendar days for caps and streaks.

Every "today" in the ledger is a date in one reference timezone
(LEDGER_TIMEZONE, default UTC), not the client's local date. Timestamps in
the database are naive UTC.
"""

from __future__ import annotations

import os
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


def ledger_tz() -> ZoneInfo:
    return ZoneInfo((os.getenv("LEDGER_TIMEZONE") or "UTC").strip())


def ledger_today(now: datetime | None = None) -> date:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ledger_tz()).date()


def day_bounds_utc(day: date) -> tuple[datetime, datetime]:
    """Naive UTC [start, end) of a ledger day, for filtering created_at columns."""
    tz = ledger_tz()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )
