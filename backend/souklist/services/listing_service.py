from __future__ import annotations

import math
from datetime import datetime

import sqlalchemy as sa
from flask import current_app

from souklist.extensions import db
from souklist.models import Listing, User
from souklist.services import catalog_service, quota_service
from souklist.services.feed_service import normalize_expired_featured
from souklist.services.gating_service import evaluate_listing_creation
from souklist.services.listing_lifecycle_service import ListingStatus, get_listing
from souklist.utils.clock import add_days, resolve_now
from souklist.utils.errors import ConflictError, NotFoundError, ValidationError
from souklist.utils.events import log_event
from souklist.utils.settings import coerce_bool, get_int


def _clean_text(data: dict, key: str, *, minimum: int, maximum: int, label: str) -> str:
    value = str(data.get(key) or "").strip()
    if len(value) < minimum or len(value) > maximum:
        raise ValidationError(
            f"{label} must be between {minimum} and {maximum} characters",
            details={"field": key},
        )
    return value


def _parse_price(raw) -> float | None:
    if raw in (None, ""):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError("price must be a number", details={"field": "price"})
    if not math.isfinite(value):
        raise ValidationError("price must be a finite number", details={"field": "price"})
    if value <= 0:
        raise ValidationError("price must be positive", details={"field": "price"})
    return value


def validate_listing_payload(data: dict) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("JSON body required")
    title = _clean_text(data, "title", minimum=1, maximum=100, label="title")
    description = _clean_text(data, "description", minimum=10, maximum=2000, label="description")
    location = _clean_text(data, "location", minimum=1, maximum=120, label="location")
    category_id = data.get("category_id")
    if category_id in (None, ""):
        raise ValidationError("category_id required", details={"field": "category_id"})
    hide_price = coerce_bool(data.get("hide_price"), False)
    price = _parse_price(data.get("price"))
    if price is None and not hide_price:
        raise ValidationError("price required unless the price is hidden", details={"field": "price"})
    return {
        "title": title,
        "description": description,
        "location": location,
        "category_id": category_id,
        "pricing_plan_id": data.get("pricing_plan_id") or None,
        "price": price,
        "hide_price": hide_price,
    }


def create_listing(user_id, data: dict, *, now: datetime | None = None) -> Listing:
    current = resolve_now(now)
    fields = validate_listing_payload(data)
    if db.session.get(User, int(user_id)) is None:
        raise NotFoundError("User not found", details={"user_id": int(user_id)})

    decision = evaluate_listing_creation(
        user_id, fields["category_id"], fields["pricing_plan_id"], now=current
    )
    decision.raise_for_rejection()

    plan = catalog_service.get_pricing_plan(decision.pricing_plan_id)
    if fields["hide_price"] and (plan is None or not bool(plan.can_hide_price)):
        raise ValidationError("This plan does not allow hiding the price", details={"field": "hide_price"})

    if decision.is_free_plan:
        # Reserve the slot in the same transaction as the insert.
        taken = quota_service.consume_free_listing(
            int(user_id), now=current, limit=decision.quota.free_listings_per_month
        )
        if not taken:
            db.session.rollback()
            evaluate_listing_creation(
                user_id, fields["category_id"], fields["pricing_plan_id"], now=current
            ).raise_for_rejection()
            raise ConflictError("Quota changed concurrently; retry", details={"user_id": int(user_id)})

    duration = int(plan.duration_days) if plan is not None else get_int("DEFAULT_LISTING_DURATION_DAYS")
    expires_at = add_days(current, duration)
    listing = Listing(
        user_id=int(user_id),
        category_id=decision.category_id,
        pricing_plan_id=decision.pricing_plan_id,
        title=fields["title"],
        description=fields["description"],
        location=fields["location"],
        price=fields["price"],
        hide_price=fields["hide_price"],
        status=decision.initial_status,
        expires_at=expires_at,
        created_at=current,
        updated_at=current,
    )
    if plan is not None and bool(plan.is_featured):
        listing.is_featured = True
        listing.featured_until = expires_at
    db.session.add(listing)
    db.session.flush()

    log_event(
        "listing_created",
        actor_user_id=int(user_id),
        subject_type="listing",
        subject_id=int(listing.id),
        metadata={
            "is_free_listing": decision.is_free_plan,
            "pricing_plan_id": decision.pricing_plan_id,
            "initial_status": decision.initial_status,
        },
    )
    db.session.commit()
    current_app.logger.info(
        "listing_created user_id=%s listing_id=%s status=%s free=%s",
        int(user_id),
        int(listing.id),
        listing.status,
        decision.is_free_plan,
    )
    return listing


def view_listing(listing_id, *, viewer: User | None = None, now: datetime | None = None) -> Listing:
    """Public detail read: hidden states are only visible to owner and admins."""
    current = resolve_now(now)
    listing = get_listing(listing_id)
    privileged = viewer is not None and (viewer.is_admin or int(viewer.id) == int(listing.user_id))
    expired = listing.expires_at is not None and listing.expires_at <= current
    hidden = listing.status != ListingStatus.ACTIVE or expired
    if hidden and not privileged:
        raise NotFoundError("Listing not found", details={"listing_id": int(listing.id)})

    normalize_expired_featured(now=current, listing_ids=[int(listing.id)])
    if not privileged:
        db.session.execute(
            sa.update(Listing)
            .where(Listing.id == int(listing.id))
            .values(views=Listing.views + 1)
            .execution_options(synchronize_session=False)
        )
    db.session.commit()
    return db.session.get(Listing, int(listing.id), populate_existing=True)
