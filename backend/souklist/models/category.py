from decimal import Decimal

import sqlalchemy as sa

from souklist.extensions import db
from souklist.utils.clock import utcnow


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(140), nullable=False, unique=True, index=True)
    # STANDARD, PREMIUM or BUSINESS; informational for pricing pages.
    pricing_tier = db.Column(db.String(24), nullable=False, default="STANDARD", server_default="STANDARD")
    requires_payment = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    base_price = db.Column(db.Numeric(12, 2), nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.text("true"))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "name": self.name or "",
            "slug": self.slug or "",
            "pricing_tier": self.pricing_tier or "STANDARD",
            "requires_payment": bool(self.requires_payment),
            "base_price": str(Decimal(self.base_price)) if self.base_price is not None else None,
            "sort_order": int(self.sort_order or 0),
            "is_active": bool(self.is_active),
        }
