"""Purchasable listing boosts: pricing, exclusivity, effects and expiry.

Effects are written straight onto the listing row. Whether that happens
when the boost is bought or when its payment is completed is a policy
switch (``ADDON_EFFECTS_POLICY``); either way each add-on row carries an
``effect_applied_at`` marker so an effect lands at most once.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

import sqlalchemy as sa
from flask import current_app

from souklist.extensions import db
from souklist.models import Listing, ListingAddOn, Payment
from souklist.services.feed_ranking import is_currently_featured
from souklist.utils.clock import add_days, resolve_now
from souklist.utils.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from souklist.utils.events import log_event
from souklist.utils.settings import EFFECTS_ON_PURCHASE, addon_effects_policy, get_int, get_setting


class AddOnType:
    FEATURED_WEEK = "FEATURED_WEEK"
    BUMP_TO_TOP = "BUMP_TO_TOP"
    EXTRA_PHOTOS = "EXTRA_PHOTOS"
    VIDEO_SUPPORT = "VIDEO_SUPPORT"
    URGENT_TAG = "URGENT_TAG"
    MAP_LOCATION = "MAP_LOCATION"

    ALL = (FEATURED_WEEK, BUMP_TO_TOP, EXTRA_PHOTOS, VIDEO_SUPPORT, URGENT_TAG, MAP_LOCATION)

    PRICES = {
        FEATURED_WEEK: Decimal("5.00"),
        BUMP_TO_TOP: Decimal("1.00"),
        EXTRA_PHOTOS: Decimal("0.50"),
        VIDEO_SUPPORT: Decimal("3.00"),
        URGENT_TAG: Decimal("2.00"),
        MAP_LOCATION: Decimal("1.00"),
    }

    DESCRIPTIONS = {
        FEATURED_WEEK: "Featured placement at top of listings for 1 week",
        BUMP_TO_TOP: "Instantly move your listing to the top of search results",
        EXTRA_PHOTOS: "Add additional photo slots beyond your plan limit",
        VIDEO_SUPPORT: "Enable video embedding in your listing",
        URGENT_TAG: "Display an URGENT badge on your listing",
        MAP_LOCATION: "Show precise map location with pin",
    }

    # "Has it or doesn't": a second live purchase is a conflict.
    EXCLUSIVE = {FEATURED_WEEK, URGENT_TAG}
    # Days of validity for time-bounded boosts.
    DURATION_DAYS = {FEATURED_WEEK: 7}


MAX_QUANTITY = 10
VOID_PAYMENT_STATUSES = ("CANCELLED", "FAILED", "REFUNDED")


@dataclass
class AddOnPurchase:
    payment: Payment
    add_ons: list[ListingAddOn] = field(default_factory=list)
    effects_applied: bool = False

    def to_dict(self) -> dict:
        return {
            "payment": self.payment.to_dict(include_add_ons=False),
            "add_ons": [row.to_dict() for row in self.add_ons],
            "effects_applied": self.effects_applied,
        }


def available_add_ons() -> list[dict]:
    return [
        {
            "type": kind,
            "price": str(AddOnType.PRICES[kind]),
            "description": AddOnType.DESCRIPTIONS[kind],
            "exclusive": kind in AddOnType.EXCLUSIVE,
            "duration_days": AddOnType.DURATION_DAYS.get(kind),
        }
        for kind in AddOnType.ALL
    ]


def _normalize_type(value) -> str:
    kind = str(value or "").strip().upper()
    if kind not in AddOnType.ALL:
        raise ValidationError("Unknown add-on type", details={"add_on_type": value})
    return kind


def _normalize_quantity(value, kind: str) -> int:
    if value is None:
        return 1
    if isinstance(value, bool):
        raise ValidationError("quantity must be an integer", details={"field": "quantity"})
    try:
        qty = int(value)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be an integer", details={"field": "quantity"})
    if isinstance(value, float) and value != qty:
        raise ValidationError("quantity must be an integer", details={"field": "quantity"})
    if qty < 1 or qty > MAX_QUANTITY:
        raise ValidationError(f"quantity must be between 1 and {MAX_QUANTITY}", details={"field": "quantity"})
    if kind in AddOnType.EXCLUSIVE and qty != 1:
        raise ValidationError(f"{kind} can only be purchased one at a time", details={"field": "quantity"})
    return qty


def _lock_listing(listing_id) -> Listing:
    try:
        lid = int(listing_id)
    except (TypeError, ValueError):
        raise NotFoundError("Listing not found", details={"listing_id": listing_id})
    row = db.session.execute(
        sa.select(Listing).where(Listing.id == lid).with_for_update()
    ).scalar_one_or_none()
    if row is None:
        raise NotFoundError("Listing not found", details={"listing_id": lid})
    return row


def _live_add_ons_query(listing_id: int, now: datetime):
    """Add-ons still backed by a non-void payment and not yet expired."""
    return (
        ListingAddOn.query.outerjoin(Payment, Payment.id == ListingAddOn.payment_id)
        .filter(ListingAddOn.listing_id == int(listing_id))
        .filter(ListingAddOn.revoked_at.is_(None))
        .filter(sa.or_(ListingAddOn.expires_at.is_(None), ListingAddOn.expires_at > now))
        .filter(sa.or_(Payment.id.is_(None), Payment.status.notin_(VOID_PAYMENT_STATUSES)))
    )


def find_conflicting_add_on(listing_id: int, add_on_type: str, now: datetime) -> ListingAddOn | None:
    if add_on_type not in AddOnType.EXCLUSIVE:
        return None
    return _live_add_ons_query(listing_id, now).filter(ListingAddOn.add_on_type == add_on_type).first()


def apply_add_on_effect(add_on: ListingAddOn, *, now: datetime | None = None) -> bool:
    """Write the add-on's benefit onto its listing. Returns False if already done."""
    current = resolve_now(now)
    if add_on.effect_applied_at is not None or add_on.revoked_at is not None:
        return False
    listing = add_on.listing
    if add_on.add_on_type == AddOnType.FEATURED_WEEK:
        until = add_days(current, AddOnType.DURATION_DAYS[AddOnType.FEATURED_WEEK])
        if is_currently_featured(listing, current):
            # Open-ended or later expiry wins; features never stack.
            if listing.featured_until is not None and listing.featured_until < until:
                listing.featured_until = until
        else:
            listing.is_featured = True
            listing.featured_until = until
        add_on.expires_at = until
    elif add_on.add_on_type == AddOnType.BUMP_TO_TOP:
        listing.bumped_at = current
    # Remaining types are presentation flags read from the add-on rows.
    add_on.effect_applied_at = current
    listing.updated_at = current
    log_event(
        "add_on_effect_applied",
        subject_type="listing",
        subject_id=int(listing.id),
        metadata={"add_on_id": int(add_on.id), "type": add_on.add_on_type},
    )
    return True


def purchase_add_on(
    listing_id,
    add_on_type,
    quantity=1,
    actor_user_id=None,
    *,
    now: datetime | None = None,
) -> AddOnPurchase:
    current = resolve_now(now)
    kind = _normalize_type(add_on_type)
    qty = _normalize_quantity(quantity, kind)

    listing = _lock_listing(listing_id)
    if actor_user_id is None or int(actor_user_id) != int(listing.user_id):
        raise ForbiddenError("You can only purchase add-ons for your own listings")

    existing = find_conflicting_add_on(int(listing.id), kind, current)
    if existing is not None:
        db.session.rollback()
        raise ConflictError(
            "This listing already has an active add-on of this type",
            details={"add_on_type": kind, "existing_add_on_id": int(existing.id)},
        )

    unit_price = AddOnType.PRICES[kind]
    total = (unit_price * qty).quantize(Decimal("0.01"))
    duration = AddOnType.DURATION_DAYS.get(kind)
    policy = addon_effects_policy()

    try:
        payment = Payment(
            user_id=int(actor_user_id),
            amount=total,
            currency=str(get_setting("ADDON_CURRENCY") or "USD"),
            status="PENDING",
            payment_method="manual",
            description=f"{kind} add-on for listing: {listing.title}"[:240],
            metadata_json=_metadata_json(
                {
                    "listing_id": int(listing.id),
                    "add_on_type": kind,
                    "quantity": qty,
                    "unit_price": str(unit_price),
                }
            ),
            created_at=current,
            updated_at=current,
        )
        db.session.add(payment)
        db.session.flush()

        rows = []
        for _ in range(qty):
            row = ListingAddOn(
                listing_id=int(listing.id),
                payment_id=int(payment.id),
                add_on_type=kind,
                price=unit_price,
                is_active=False,
                expires_at=add_days(current, duration) if duration else None,
                purchased_at=current,
            )
            row.listing = listing
            rows.append(row)
        db.session.add_all(rows)
        db.session.flush()

        applied = False
        if policy == EFFECTS_ON_PURCHASE:
            for row in rows:
                applied = apply_add_on_effect(row, now=current) or applied

        log_event(
            "add_on_purchased",
            actor_user_id=int(actor_user_id),
            subject_type="listing",
            subject_id=int(listing.id),
            metadata={
                "payment_id": int(payment.id),
                "type": kind,
                "quantity": qty,
                "total": str(total),
                "policy": policy,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "add_on_purchased listing_id=%s type=%s qty=%s payment_id=%s policy=%s",
        int(listing.id),
        kind,
        qty,
        int(payment.id),
        policy,
    )
    return AddOnPurchase(payment=payment, add_ons=rows, effects_applied=applied)


def _metadata_json(data: dict) -> str:
    return json.dumps(data, separators=(",", ":"))


def activate_payment_add_ons(payment: Payment, *, now: datetime | None = None) -> int:
    """Completed payment: apply any deferred effects and mark add-ons active.

    Flushes only; the payment workflow owns the commit. Returns the number
    of effects applied by this call.
    """
    current = resolve_now(now)
    applied = 0
    for row in payment.add_ons:
        if row.revoked_at is not None:
            continue
        if apply_add_on_effect(row, now=current):
            applied += 1
        row.is_active = row.expires_at is None or row.expires_at > current
    db.session.flush()
    return applied


def _recompute_featured(listing: Listing, now: datetime) -> None:
    """Re-derive featured status from the sources that remain."""
    sources = []
    plan = listing.pricing_plan
    if plan is not None and bool(plan.is_featured):
        if listing.expires_at is None or listing.expires_at > now:
            sources.append(listing.expires_at)
    live = (
        _live_add_ons_query(int(listing.id), now)
        .filter(ListingAddOn.add_on_type == AddOnType.FEATURED_WEEK)
        .filter(ListingAddOn.effect_applied_at.isnot(None))
        .all()
    )
    sources.extend(row.expires_at for row in live)
    if not sources:
        listing.is_featured = False
        listing.featured_until = None
        listing.featured_position = None
        return
    listing.is_featured = True
    listing.featured_until = None if any(s is None for s in sources) else max(sources)


def revoke_payment_add_ons(payment: Payment, *, now: datetime | None = None) -> int:
    """Void payment: deactivate its add-ons and withdraw featured placement.

    Bumps are not rolled back; ``bumped_at`` only orders the feed and is
    cleaned up by the retention sweep. Flushes only.
    """
    current = resolve_now(now)
    touched = []
    for row in payment.add_ons:
        row.is_active = False
        if row.revoked_at is None:
            row.revoked_at = current
            touched.append(row)
    db.session.flush()
    listings = {row.listing_id: row.listing for row in touched if row.add_on_type == AddOnType.FEATURED_WEEK}
    for listing in listings.values():
        if listing is not None:
            _recompute_featured(listing, current)
    db.session.flush()
    return len(touched)


def list_listing_add_ons(listing_id, actor_user_id) -> list[ListingAddOn]:
    try:
        lid = int(listing_id)
    except (TypeError, ValueError):
        raise NotFoundError("Listing not found", details={"listing_id": listing_id})
    listing = db.session.get(Listing, lid)
    if listing is None:
        raise NotFoundError("Listing not found", details={"listing_id": lid})
    if actor_user_id is None or int(actor_user_id) != int(listing.user_id):
        raise ForbiddenError("You can only view add-ons of your own listings")
    return (
        ListingAddOn.query.filter_by(listing_id=lid)
        .order_by(ListingAddOn.purchased_at.desc(), ListingAddOn.id.desc())
        .all()
    )


def run_expiry_sweep(*, now: datetime | None = None) -> dict:
    """Periodic cleanup; never the only thing keeping featured state honest."""
    from souklist.services.feed_service import normalize_expired_featured

    current = resolve_now(now)
    expired_featured = normalize_expired_featured(now=current)
    expired_add_ons = db.session.execute(
        sa.update(ListingAddOn)
        .where(ListingAddOn.is_active.is_(True))
        .where(ListingAddOn.expires_at.isnot(None))
        .where(ListingAddOn.expires_at <= current)
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    ).rowcount or 0
    cutoff = current - timedelta(days=get_int("BUMP_RETENTION_DAYS"))
    cleaned_bumped = db.session.execute(
        sa.update(Listing)
        .where(Listing.bumped_at.isnot(None))
        .where(Listing.bumped_at <= cutoff)
        .values(bumped_at=None)
        .execution_options(synchronize_session=False)
    ).rowcount or 0
    result = {
        "expired_featured": int(expired_featured),
        "expired_add_ons": int(expired_add_ons),
        "cleaned_bumped": int(cleaned_bumped),
        "timestamp": current.isoformat(),
    }
    log_event("featured_sweep", subject_type="sweep", metadata=result)
    db.session.commit()
    current_app.logger.info(
        "featured_sweep expired_featured=%s expired_add_ons=%s cleaned_bumped=%s",
        result["expired_featured"],
        result["expired_add_ons"],
        result["cleaned_bumped"],
    )
    return result


def expiry_status(*, now: datetime | None = None) -> dict:
    current = resolve_now(now)

    def _count(stmt) -> int:
        return int(db.session.scalar(stmt) or 0)

    expired_featured = _count(
        sa.select(sa.func.count(Listing.id))
        .where(Listing.is_featured.is_(True))
        .where(Listing.featured_until.isnot(None))
        .where(Listing.featured_until <= current)
    )
    expired_add_ons = _count(
        sa.select(sa.func.count(ListingAddOn.id))
        .where(ListingAddOn.is_active.is_(True))
        .where(ListingAddOn.expires_at.isnot(None))
        .where(ListingAddOn.expires_at <= current)
    )
    active_featured = _count(
        sa.select(sa.func.count(Listing.id))
        .where(Listing.is_featured.is_(True))
        .where(sa.or_(Listing.featured_until.is_(None), Listing.featured_until > current))
    )
    recently_bumped = _count(
        sa.select(sa.func.count(Listing.id)).where(Listing.bumped_at > current - timedelta(hours=24))
    )
    return {
        "expired_featured_count": expired_featured,
        "expired_add_ons_count": expired_add_ons,
        "active_featured_count": active_featured,
        "recently_bumped_count": recently_bumped,
        "needs_cleanup": bool(expired_featured or expired_add_ons),
        "current_time": current.isoformat(),
    }
