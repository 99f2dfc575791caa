from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa

from souklist.extensions import db
from souklist.services.feed_ranking import is_currently_featured
from souklist.utils.clock import resolve_now, utcnow


class Listing(db.Model):
    __tablename__ = "listings"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    pricing_plan_id = db.Column(db.Integer, db.ForeignKey("pricing_plans.id"), nullable=True, index=True)

    title = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    location = db.Column(db.String(120), nullable=False, default="", server_default="")

    # None means "price on request".
    price = db.Column(db.Float, nullable=True)
    hide_price = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))

    # PENDING, ACTIVE, ARCHIVED or FLAGGED; see listing_lifecycle_service.
    status = db.Column(db.String(16), nullable=False, default="PENDING", server_default="PENDING", index=True)
    moderation_reason = db.Column(db.String(500), nullable=True)

    is_featured = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"), index=True)
    featured_until = db.Column(db.DateTime, nullable=True)
    # Pre-migration flag and manual ordering among co-featured rows.
    featured = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    featured_position = db.Column(db.Integer, nullable=True)
    bumped_at = db.Column(db.DateTime, nullable=True, index=True)

    views = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    expires_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship("User", back_populates="listings")
    category = db.relationship("Category")
    pricing_plan = db.relationship("PricingPlan")
    add_ons = db.relationship(
        "ListingAddOn",
        back_populates="listing",
        cascade="all, delete-orphan",
    )

    def to_dict(self, *, now: datetime | None = None, include_private: bool = False) -> dict:
        current = resolve_now(now)
        hidden = bool(self.hide_price) or self.price is None
        payload = {
            "id": self.id,
            "user_id": self.user_id,
            "category_id": self.category_id,
            "category": self.category.slug if self.category else None,
            "pricing_plan_id": self.pricing_plan_id,
            "title": self.title,
            "description": self.description or "",
            "location": self.location or "",
            "price": None if hidden else float(self.price),
            "price_on_request": hidden,
            "status": self.status,
            "is_featured": is_currently_featured(self, current),
            "featured_until": self.featured_until.isoformat() if self.featured_until else None,
            "featured": bool(self.featured),
            "featured_position": self.featured_position,
            "bumped_at": self.bumped_at.isoformat() if self.bumped_at else None,
            "views": int(self.views or 0),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_private:
            payload["hide_price"] = bool(self.hide_price)
            payload["stored_price"] = float(self.price) if self.price is not None else None
            payload["moderation_reason"] = self.moderation_reason or ""
        return payload
