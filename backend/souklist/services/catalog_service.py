from __future__ import annotations

from decimal import Decimal

from souklist.extensions import db
from souklist.models import Category, PricingPlan
from souklist.utils.errors import NotFoundError


SUGGESTED_PAID_PLAN = "PREMIUM"

DEFAULT_PLANS: tuple[dict, ...] = (
    {
        "name": "BASIC",
        "display_name": "Basic",
        "description": "Free listing with the essentials",
        "price": Decimal("0"),
        "duration_days": 30,
        "max_photos": 5,
    },
    {
        "name": "PREMIUM",
        "display_name": "Premium",
        "description": "Featured placement, map pin and hidden price option",
        "price": Decimal("9.99"),
        "duration_days": 60,
        "max_photos": 15,
        "can_hide_price": True,
        "is_featured": True,
        "has_map_location": True,
    },
    {
        "name": "BUSINESS",
        "display_name": "Business",
        "description": "Long-running listings with priority support",
        "price": Decimal("29.99"),
        "duration_days": 90,
        "max_photos": 30,
        "can_hide_price": True,
        "has_map_location": True,
        "has_priority_support": True,
    },
)


def is_free_plan(plan: PricingPlan | None) -> bool:
    return plan is None or plan.is_free


def get_category(category_id) -> Category:
    try:
        cid = int(category_id)
    except (TypeError, ValueError):
        raise NotFoundError("Category not found", details={"category_id": category_id})
    row = db.session.get(Category, cid)
    if row is None or not bool(row.is_active):
        raise NotFoundError("Category not found", details={"category_id": cid})
    return row


def get_pricing_plan(pricing_plan_id) -> PricingPlan | None:
    """None when no plan was requested; NotFoundError for an unknown id."""
    if pricing_plan_id in (None, ""):
        return None
    try:
        pid = int(pricing_plan_id)
    except (TypeError, ValueError):
        raise NotFoundError("Pricing plan not found", details={"pricing_plan_id": pricing_plan_id})
    row = db.session.get(PricingPlan, pid)
    if row is None or not bool(row.is_active):
        raise NotFoundError("Pricing plan not found", details={"pricing_plan_id": pid})
    return row


def list_active_plans() -> list[PricingPlan]:
    return (
        PricingPlan.query.filter_by(is_active=True)
        .order_by(PricingPlan.price.asc(), PricingPlan.id.asc())
        .all()
    )


def list_active_categories() -> list[Category]:
    return (
        Category.query.filter_by(is_active=True)
        .order_by(Category.sort_order.asc(), Category.name.asc())
        .all()
    )


def seed_default_plans() -> int:
    created = 0
    for plan_fields in DEFAULT_PLANS:
        if PricingPlan.query.filter_by(name=plan_fields["name"]).first() is not None:
            continue
        db.session.add(PricingPlan(**plan_fields))
        created += 1
    db.session.commit()
    return created
