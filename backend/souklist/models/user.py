from datetime import datetime

import sqlalchemy as sa
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from souklist.extensions import db
from souklist.utils.clock import utcnow


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False, default="")

    # "user" or "admin"
    role = db.Column(db.String(32), nullable=False, default="user", server_default="user")

    is_business_user = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))

    # Monthly free-listing quota. Never touch these without going through
    # quota_service: the reset check and the increment are one statement.
    free_listings_this_month = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    monthly_reset_at = db.Column(db.DateTime, nullable=True)

    subscription_plan = db.Column(db.String(32), nullable=True)
    subscription_ends_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    listings = db.relationship("Listing", back_populates="user", lazy="dynamic")

    def set_password(self, raw_password: str) -> None:
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str) -> bool:
        return check_password_hash(self.password_hash, raw_password)

    @property
    def is_admin(self) -> bool:
        return (self.role or "").strip().lower() == "admin"

    def has_active_subscription(self, now: datetime) -> bool:
        if not self.subscription_plan or not self.subscription_ends_at:
            return False
        return self.subscription_ends_at > now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role or "user",
            "is_business_user": bool(self.is_business_user),
            "free_listings_this_month": int(self.free_listings_this_month or 0),
            "monthly_reset_at": self.monthly_reset_at.isoformat() if self.monthly_reset_at else None,
            "subscription_plan": self.subscription_plan,
            "subscription_ends_at": self.subscription_ends_at.isoformat() if self.subscription_ends_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
