from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app

from souklist.extensions import db
from souklist.services import catalog_service, quota_service
from souklist.services.listing_lifecycle_service import ListingStatus
from souklist.services.quota_service import QuotaSnapshot
from souklist.utils.clock import resolve_now
from souklist.utils.errors import GatingRejected
from souklist.utils.events import log_event
from souklist.utils.settings import get_bool


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    quota: QuotaSnapshot
    category_id: int
    pricing_plan_id: int | None = None
    reason: str | None = None
    message: str = ""
    requires_payment: bool = False
    suggested_plan: str | None = None
    is_free_plan: bool = True
    price: Decimal = Decimal("0")
    initial_status: str = ListingStatus.PENDING

    def raise_for_rejection(self) -> None:
        if not self.allowed:
            raise GatingRejected(self)

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "message": self.message,
            "requires_payment": self.requires_payment,
            "suggested_plan": self.suggested_plan,
            "is_free_plan": self.is_free_plan,
            "price": str(self.price),
            "initial_status": self.initial_status,
            "category_id": self.category_id,
            "pricing_plan_id": self.pricing_plan_id,
            "quota": self.quota.to_dict(),
        }


def evaluate_listing_creation(
    user_id,
    category_id,
    pricing_plan_id=None,
    *,
    now: datetime | None = None,
) -> GateDecision:
    """Decide whether a listing submission is allowed and what it costs.

    Category gating runs before the quota check, so a premium-category
    attempt on a free plan is rejected with ``requiresPayment`` even when
    the quota is also exhausted. Evaluation never consumes quota.
    """
    current = resolve_now(now)
    category = catalog_service.get_category(category_id)
    plan = catalog_service.get_pricing_plan(pricing_plan_id)
    free = catalog_service.is_free_plan(plan)

    quota = quota_service.get_quota_snapshot(int(user_id), now=current)
    # The lazy window reset above is a write of its own.
    db.session.commit()

    base = {
        "quota": quota,
        "category_id": int(category.id),
        "pricing_plan_id": int(plan.id) if plan is not None else None,
        "is_free_plan": free,
        "price": Decimal("0") if free else Decimal(plan.price),
    }

    if bool(category.requires_payment) and free:
        return GateDecision(
            allowed=False,
            reason=GatingRejected.REQUIRES_PAYMENT,
            message=(
                f"{category.name} listings require a premium plan. "
                "Please select a paid plan to continue."
            ),
            requires_payment=True,
            suggested_plan=catalog_service.SUGGESTED_PAID_PLAN,
            **base,
        )

    if free and not quota.can_create_free_listing:
        reset_on = quota.next_reset_at.strftime("%B %d, %Y") if quota.next_reset_at else "the first of next month"
        return GateDecision(
            allowed=False,
            reason=GatingRejected.QUOTA_EXCEEDED,
            message=(
                f"You've reached your free listing limit ({quota.free_listings_per_month} per month). "
                f"Your limit resets on {reset_on}. Upgrade to a paid plan to continue posting."
            ),
            requires_payment=True,
            suggested_plan=catalog_service.SUGGESTED_PAID_PLAN,
            **base,
        )

    auto_approve = (not free) and get_bool("AUTO_APPROVE_PAID_LISTINGS")
    return GateDecision(
        allowed=True,
        initial_status=ListingStatus.ACTIVE if auto_approve else ListingStatus.PENDING,
        **base,
    )


def record_listing_created(user_id, pricing_plan_id=None, *, listing_id=None, now: datetime | None = None) -> None:
    """Post-creation hook: free-plan listings take one quota slot."""
    current = resolve_now(now)
    plan = catalog_service.get_pricing_plan(pricing_plan_id)
    free = catalog_service.is_free_plan(plan)
    if free:
        quota_service.record_free_listing(int(user_id), now=current)
    log_event(
        "listing_created",
        actor_user_id=int(user_id),
        subject_type="listing",
        subject_id=listing_id,
        metadata={"is_free_listing": free, "pricing_plan_id": pricing_plan_id},
    )
    db.session.commit()
    current_app.logger.info(
        "listing_created user_id=%s listing_id=%s free=%s", int(user_id), listing_id, free
    )


def business_rules_summary(user_id, *, now: datetime | None = None) -> dict:
    current = resolve_now(now)
    quota = quota_service.get_quota_snapshot(int(user_id), now=current)
    db.session.commit()
    user = quota_service.load_user_fresh(int(user_id))
    has_paid_plan = user.has_active_subscription(current)
    return {
        "limits": quota.to_dict(),
        "user_type": quota.user_type,
        "subscription_plan": user.subscription_plan,
        "subscription_ends_at": user.subscription_ends_at.isoformat() if user.subscription_ends_at else None,
        "rules": {
            "free_listings_per_month": quota.free_listings_per_month,
            "can_post_in_premium_categories": bool(user.is_business_user),
            "has_active_paid_plan": has_paid_plan,
        },
    }
