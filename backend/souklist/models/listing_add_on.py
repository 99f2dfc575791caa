from __future__ import annotations

from decimal import Decimal

import sqlalchemy as sa

from souklist.extensions import db
from souklist.utils.clock import utcnow


class ListingAddOn(db.Model):
    __tablename__ = "listing_add_ons"

    id = db.Column(db.Integer, primary_key=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True, index=True)

    add_on_type = db.Column(db.String(32), nullable=False, index=True)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))

    # True once the linked payment is completed.
    is_active = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    # Set exactly once, when the effect is written onto the listing.
    effect_applied_at = db.Column(db.DateTime, nullable=True)
    revoked_at = db.Column(db.DateTime, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True)
    purchased_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    listing = db.relationship("Listing", back_populates="add_ons")
    payment = db.relationship("Payment", back_populates="add_ons")

    def to_dict(self) -> dict:
        payment = self.payment
        return {
            "id": int(self.id),
            "listing_id": int(self.listing_id),
            "payment_id": int(self.payment_id) if self.payment_id is not None else None,
            "type": self.add_on_type,
            "price": str(Decimal(self.price or 0)),
            "is_active": bool(self.is_active),
            "effect_applied": self.effect_applied_at is not None,
            "effect_applied_at": self.effect_applied_at.isoformat() if self.effect_applied_at else None,
            "revoked_at": self.revoked_at.isoformat() if self.revoked_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "purchased_at": self.purchased_at.isoformat() if self.purchased_at else None,
            "payment_status": payment.status if payment is not None else "UNKNOWN",
        }
