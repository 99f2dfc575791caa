from __future__ import annotations

import json
from decimal import Decimal

from souklist.extensions import db
from souklist.utils.clock import utcnow


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="USD", server_default="USD")
    # See payment_workflow_service.PaymentStatus.
    status = db.Column(db.String(32), nullable=False, default="PENDING", server_default="PENDING", index=True)
    payment_method = db.Column(db.String(32), nullable=False, default="manual", server_default="manual")
    # Out-of-band reference, e.g. a mobile-money transaction id.
    reference = db.Column(db.String(120), nullable=True)
    description = db.Column(db.String(240), nullable=False, default="")
    metadata_json = db.Column(db.Text, nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)

    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    add_ons = db.relationship("ListingAddOn", back_populates="payment", lazy="selectin")

    @property
    def meta(self) -> dict:
        raw = (self.metadata_json or "").strip()
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except Exception:
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def to_dict(self, *, include_add_ons: bool = True) -> dict:
        payload = {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "amount": str(Decimal(self.amount or 0)),
            "currency": self.currency or "USD",
            "status": self.status,
            "payment_method": self.payment_method or "manual",
            "reference": self.reference or "",
            "description": self.description or "",
            "metadata": self.meta,
            "admin_notes": self.admin_notes or "",
            "approved_by": int(self.approved_by) if self.approved_by is not None else None,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_add_ons:
            payload["add_ons"] = [row.to_dict() for row in self.add_ons]
        return payload
