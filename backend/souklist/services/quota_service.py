"""Per-user monthly free-listing ledger.

The counter and its window live on the ``users`` row. Every mutation is a
single conditional ``UPDATE`` so that the "is the window stale? reset :
keep" decision and the increment are evaluated by the store against the
same row version. Two requests crossing the month boundary together can
therefore reset the window only once, and two concurrent free creations
cannot both take the last slot.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import sqlalchemy as sa

from souklist.extensions import db
from souklist.models import User
from souklist.utils.clock import resolve_now, start_of_next_month
from souklist.utils.errors import NotFoundError
from souklist.utils.settings import get_int


@dataclass(frozen=True)
class QuotaSnapshot:
    user_id: int
    user_type: str
    free_listings_per_month: int
    free_listings_used: int
    next_reset_at: datetime | None

    @property
    def remaining(self) -> int:
        return max(0, self.free_listings_per_month - self.free_listings_used)

    @property
    def can_create_free_listing(self) -> bool:
        return self.free_listings_used < self.free_listings_per_month

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "user_type": self.user_type,
            "free_listings_per_month": self.free_listings_per_month,
            "free_listings_used": self.free_listings_used,
            "remaining": self.remaining,
            "can_create_free_listing": self.can_create_free_listing,
            "next_reset_at": self.next_reset_at.isoformat() if self.next_reset_at else None,
        }


def _window_is_stale(now: datetime):
    return sa.or_(User.monthly_reset_at.is_(None), User.monthly_reset_at <= now)


def user_type(user: User) -> str:
    return "BUSINESS" if bool(user.is_business_user) else "INDIVIDUAL"


def free_listing_allotment(user: User, now: datetime) -> int:
    if bool(user.is_business_user) or user.has_active_subscription(now):
        return get_int("FREE_LISTINGS_BUSINESS")
    return get_int("FREE_LISTINGS_INDIVIDUAL")


def refresh_quota_window(user_id: int, *, now: datetime | None = None) -> bool:
    """Reset the counter if the window has passed. Returns True on reset.

    Flushes only; the caller owns the commit.
    """
    current = resolve_now(now)
    result = db.session.execute(
        sa.update(User)
        .where(User.id == int(user_id))
        .where(_window_is_stale(current))
        .values(free_listings_this_month=0, monthly_reset_at=start_of_next_month(current))
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0) == 1


def consume_free_listing(user_id: int, *, now: datetime | None = None, limit: int | None = None) -> bool:
    """Reset-if-stale and increment in one statement.

    With ``limit`` set, the increment only happens while the (possibly
    freshly reset) counter is below it; False means the slot was not
    taken. Flushes only; the caller owns the commit.
    """
    current = resolve_now(now)
    if limit is not None and int(limit) <= 0:
        return False
    stale = _window_is_stale(current)
    stmt = (
        sa.update(User)
        .where(User.id == int(user_id))
        .values(
            free_listings_this_month=sa.case((stale, 1), else_=User.free_listings_this_month + 1),
            monthly_reset_at=sa.case(
                (stale, sa.literal(start_of_next_month(current), sa.DateTime())),
                else_=User.monthly_reset_at,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    if limit is not None:
        stmt = stmt.where(sa.or_(stale, User.free_listings_this_month < int(limit)))
    result = db.session.execute(stmt)
    return int(result.rowcount or 0) == 1


def load_user_fresh(user_id: int) -> User:
    user = db.session.get(User, int(user_id), populate_existing=True)
    if user is None:
        raise NotFoundError("User not found", details={"user_id": int(user_id)})
    return user


def get_quota_snapshot(user_id: int, *, now: datetime | None = None) -> QuotaSnapshot:
    current = resolve_now(now)
    refresh_quota_window(user_id, now=current)
    user = load_user_fresh(user_id)
    return QuotaSnapshot(
        user_id=int(user.id),
        user_type=user_type(user),
        free_listings_per_month=free_listing_allotment(user, current),
        free_listings_used=int(user.free_listings_this_month or 0),
        next_reset_at=user.monthly_reset_at,
    )


def record_free_listing(user_id: int, *, now: datetime | None = None) -> None:
    if not consume_free_listing(user_id, now=now):
        raise NotFoundError("User not found", details={"user_id": int(user_id)})


def reset_expired_quota_windows(*, now: datetime | None = None) -> int:
    """Bulk variant of the lazy reset for the monthly maintenance sweep."""
    current = resolve_now(now)
    result = db.session.execute(
        sa.update(User)
        .where(_window_is_stale(current))
        .values(free_listings_this_month=0, monthly_reset_at=start_of_next_month(current))
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return int(result.rowcount or 0)


def quota_window_status(*, now: datetime | None = None) -> dict:
    current = resolve_now(now)
    needing_reset = db.session.scalar(sa.select(sa.func.count(User.id)).where(_window_is_stale(current))) or 0
    total = db.session.scalar(sa.select(sa.func.count(User.id))) or 0
    average = db.session.scalar(sa.select(sa.func.avg(User.free_listings_this_month)))
    return {
        "users_needing_reset": int(needing_reset),
        "total_users": int(total),
        "average_free_listings_used": float(average) if average is not None else 0.0,
        "next_scheduled_reset": start_of_next_month(current).isoformat(),
        "current_time": current.isoformat(),
    }
