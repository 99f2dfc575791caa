from decimal import Decimal

import sqlalchemy as sa

from souklist.extensions import db
from souklist.utils.clock import utcnow


class PricingPlan(db.Model):
    __tablename__ = "pricing_plans"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(32), nullable=False, unique=True, index=True)
    display_name = db.Column(db.String(80), nullable=False, default="")
    description = db.Column(db.String(240), nullable=False, default="")

    # A plan is free when its price is zero, whatever it is called.
    price = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"), server_default="0")
    currency = db.Column(db.String(8), nullable=False, default="USD", server_default="USD")
    duration_days = db.Column(db.Integer, nullable=False, default=30, server_default="30")
    max_photos = db.Column(db.Integer, nullable=False, default=5, server_default="5")

    can_hide_price = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    is_featured = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    has_map_location = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    has_priority_support = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))

    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.text("true"))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def is_free(self) -> bool:
        return Decimal(self.price or 0) == 0

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "name": self.name,
            "display_name": self.display_name or self.name,
            "description": self.description or "",
            "price": str(Decimal(self.price or 0)),
            "currency": self.currency or "USD",
            "duration_days": int(self.duration_days or 0),
            "max_photos": int(self.max_photos or 0),
            "can_hide_price": bool(self.can_hide_price),
            "is_featured": bool(self.is_featured),
            "has_map_location": bool(self.has_map_location),
            "has_priority_support": bool(self.has_priority_support),
            "is_free": self.is_free,
        }
