from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

import sqlalchemy as sa

from souklist.extensions import db
from souklist.models import Category, Listing, User
from souklist.services.feed_ranking import rank_listings
from souklist.utils.clock import resolve_now
from souklist.utils.errors import ValidationError


MAX_PAGE_SIZE = 50
DEFAULT_PAGE_SIZE = 12
PUBLIC_STATUS = "ACTIVE"
STATUSES = ("PENDING", "ACTIVE", "ARCHIVED", "FLAGGED")


@dataclass
class FeedQuery:
    category: str = ""
    search: str = ""
    location: str = ""
    min_price: float | None = None
    max_price: float | None = None
    user_id: int | None = None
    status: str = ""
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @classmethod
    def from_args(cls, args) -> "FeedQuery":
        def _float(key):
            raw = (args.get(key) or "").strip()
            if not raw:
                return None
            try:
                value = float(raw)
            except ValueError:
                raise ValidationError(f"{key} must be a number", details={"field": key})
            if not math.isfinite(value):
                raise ValidationError(f"{key} must be a finite number", details={"field": key})
            return value

        def _int(key, default):
            raw = (args.get(key) or "").strip()
            if not raw:
                return default
            try:
                return int(raw)
            except ValueError:
                raise ValidationError(f"{key} must be an integer", details={"field": key})

        return cls(
            category=(args.get("category") or "").strip(),
            search=(args.get("search") or "").strip(),
            location=(args.get("location") or "").strip(),
            min_price=_float("min_price"),
            max_price=_float("max_price"),
            user_id=_int("user_id", None),
            status=(args.get("status") or "").strip().upper(),
            page=max(1, _int("page", 1)),
            limit=max(1, min(_int("limit", DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)),
        )


def normalize_expired_featured(*, now: datetime | None = None, listing_ids: list[int] | None = None) -> int:
    """Write back non-featured state for listings whose feature has lapsed.

    Flushes only. Readers never depend on this having run: ranking and
    serialization derive featured status from ``featured_until`` anyway.
    """
    current = resolve_now(now)
    stmt = (
        sa.update(Listing)
        .where(Listing.is_featured.is_(True))
        .where(Listing.featured_until.isnot(None))
        .where(Listing.featured_until <= current)
        .values(is_featured=False, featured_until=None, featured_position=None)
        .execution_options(synchronize_session=False)
    )
    if listing_ids is not None:
        if not listing_ids:
            return 0
        stmt = stmt.where(Listing.id.in_([int(x) for x in listing_ids]))
    result = db.session.execute(stmt)
    return int(result.rowcount or 0)


def _feed_order():
    featured_any = sa.or_(Listing.is_featured.is_(True), Listing.featured.is_(True))
    position = sa.case(
        (sa.and_(featured_any, Listing.featured_position.isnot(None)), Listing.featured_position),
        else_=None,
    )
    return (
        sa.case((Listing.is_featured.is_(True), 0), else_=1),
        sa.case((Listing.featured.is_(True), 0), else_=1),
        sa.case((position.is_(None), 1), else_=0),
        position.asc(),
        sa.case((Listing.bumped_at.is_(None), 1), else_=0),
        Listing.bumped_at.desc(),
        Listing.created_at.desc(),
        Listing.id.desc(),
    )


def _visible_query(query: FeedQuery, viewer: User | None, now: datetime):
    stmt = sa.select(Listing)
    is_admin = viewer is not None and viewer.is_admin
    own_feed = viewer is not None and query.user_id is not None and int(viewer.id) == int(query.user_id)

    if query.user_id is not None:
        stmt = stmt.where(Listing.user_id == int(query.user_id))

    if is_admin and query.status:
        if query.status not in STATUSES:
            raise ValidationError("Invalid status filter", details={"status": query.status})
        stmt = stmt.where(Listing.status == query.status)
    elif not (is_admin or own_feed):
        stmt = stmt.where(Listing.status == PUBLIC_STATUS)
        stmt = stmt.where(sa.or_(Listing.expires_at.is_(None), Listing.expires_at > now))

    if query.category:
        stmt = stmt.join(Category, Category.id == Listing.category_id).where(Category.slug == query.category)
    if query.search:
        pattern = f"%{query.search}%"
        stmt = stmt.where(sa.or_(Listing.title.ilike(pattern), Listing.description.ilike(pattern)))
    if query.location:
        stmt = stmt.where(Listing.location.ilike(f"%{query.location}%"))
    if query.min_price is not None:
        stmt = stmt.where(Listing.price >= float(query.min_price))
    if query.max_price is not None:
        stmt = stmt.where(Listing.price <= float(query.max_price))
    return stmt


def browse_listings(query: FeedQuery, *, viewer: User | None = None, now: datetime | None = None) -> dict:
    current = resolve_now(now)
    cleared = normalize_expired_featured(now=current)
    if cleared:
        db.session.commit()

    base = _visible_query(query, viewer, current)
    total = db.session.scalar(sa.select(sa.func.count()).select_from(base.subquery())) or 0
    rows = (
        db.session.execute(
            base.order_by(*_feed_order()).offset((query.page - 1) * query.limit).limit(query.limit)
        )
        .scalars()
        .all()
    )
    items = rank_listings(rows, current)
    pages = (int(total) + query.limit - 1) // query.limit
    return {
        "listings": items,
        "pagination": {"page": query.page, "limit": query.limit, "total": int(total), "pages": pages},
    }
