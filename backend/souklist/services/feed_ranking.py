"""Deterministic feed ordering.

Pure functions only: nothing here touches the session, so the same
ordering can be applied to a page fetched from the store or to an
in-memory batch.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable

from souklist.utils.clock import resolve_now


def is_currently_featured(listing, now: datetime) -> bool:
    """Featured status derived from the stored flag and its expiry.

    A null ``featured_until`` on a featured listing means the feature is
    open-ended (only plan-level or admin-set features have no expiry).
    """
    if not bool(getattr(listing, "is_featured", False)):
        return False
    until = getattr(listing, "featured_until", None)
    if until is None:
        return True
    return until > now


def _timestamp(value: datetime | None) -> float:
    return value.timestamp() if value is not None else 0.0


def rank_key(listing, now: datetime) -> tuple:
    featured_now = is_currently_featured(listing, now)
    legacy = bool(getattr(listing, "featured", False))
    position = getattr(listing, "featured_position", None)
    if not (featured_now or legacy) or position is None:
        position_key = (1, 0)
    else:
        position_key = (0, int(position))
    bumped = getattr(listing, "bumped_at", None)
    bumped_key = (1, 0.0) if bumped is None else (0, -_timestamp(bumped))
    return (
        0 if featured_now else 1,
        0 if legacy else 1,
        position_key,
        bumped_key,
        -_timestamp(getattr(listing, "created_at", None)),
        -int(getattr(listing, "id", 0) or 0),
    )


def rank_listings(listings: Iterable, now: datetime | None = None) -> list:
    current = resolve_now(now)
    return sorted(listings, key=lambda row: rank_key(row, current))
