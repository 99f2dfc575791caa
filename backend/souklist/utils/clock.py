from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    # Naive UTC everywhere; this is what the store persists and returns.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def resolve_now(now: datetime | None = None) -> datetime:
    if now is None:
        return utcnow()
    if now.tzinfo is not None:
        return now.astimezone(timezone.utc).replace(tzinfo=None)
    return now


def start_of_next_month(now: datetime) -> datetime:
    """First instant of the month after ``now``."""
    if now.month == 12:
        return datetime(now.year + 1, 1, 1)
    return datetime(now.year, now.month + 1, 1)


def add_days(now: datetime, days: int) -> datetime:
    return now + timedelta(days=int(days))
