from __future__ import annotations

import os
import unittest
from datetime import datetime
from decimal import Decimal

from souklist import create_app
from souklist.extensions import db
from souklist.models import Category, Listing, PricingPlan, User
from souklist.utils.jwt_utils import create_token

NOW = datetime(2026, 3, 15, 12, 0, 0)

DB_ENV_KEYS = ("SQLALCHEMY_DATABASE_URI", "DATABASE_URL")


def make_user(*, email: str, role: str = "user", business: bool = False, **extra) -> User:
    row = User(name=email.split("@")[0], email=email, role=role, is_business_user=business, **extra)
    row.set_password("password123")
    db.session.add(row)
    db.session.flush()
    return row


def make_category(*, name: str, slug: str, requires_payment: bool = False) -> Category:
    row = Category(
        name=name,
        slug=slug,
        requires_payment=requires_payment,
        pricing_tier="PREMIUM" if requires_payment else "STANDARD",
    )
    db.session.add(row)
    db.session.flush()
    return row


def make_plan(*, name: str, price: str, **extra) -> PricingPlan:
    row = PricingPlan(name=name, display_name=name.title(), price=Decimal(price), **extra)
    db.session.add(row)
    db.session.flush()
    return row


def make_listing(*, user: User, category: Category, title: str = "Used bicycle", **extra) -> Listing:
    values = {
        "description": "Well kept, new tyres fitted last spring.",
        "location": "Rabat",
        "price": 120.0,
        "status": "ACTIVE",
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(extra)
    row = Listing(user_id=int(user.id), category_id=int(category.id), title=title, **values)
    db.session.add(row)
    db.session.flush()
    return row


def listing_payload(category_id: int, **extra) -> dict:
    body = {
        "title": "Oak dining table",
        "description": "Solid oak table that seats six, minor scratches.",
        "location": "Casablanca",
        "price": 250,
        "category_id": category_id,
    }
    body.update(extra)
    return body


class SoukTestCase(unittest.TestCase):
    """Fresh in-memory database per test, with an app context pushed."""

    def setUp(self):
        self._prev_env = {key: os.getenv(key) for key in DB_ENV_KEYS}
        for key in DB_ENV_KEYS:
            os.environ[key] = "sqlite:///:memory:"
        self.app = create_app()
        self.app.config.update(TESTING=True)
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.create_all()

        self.user = make_user(email="amina@souklist.dev")
        self.other = make_user(email="youssef@souklist.dev")
        self.admin = make_user(email="admin@souklist.dev", role="admin")
        self.general = make_category(name="Furniture", slug="furniture")
        self.premium = make_category(name="Real Estate", slug="real-estate", requires_payment=True)
        self.basic_plan = make_plan(name="BASIC", price="0", duration_days=30, max_photos=5)
        self.premium_plan = make_plan(
            name="PREMIUM",
            price="9.99",
            duration_days=60,
            max_photos=15,
            can_hide_price=True,
            is_featured=True,
            has_map_location=True,
        )
        self.business_plan = make_plan(name="BUSINESS", price="29.99", duration_days=90, max_photos=30)
        db.session.commit()

        self.client = self.app.test_client()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()
        for key, value in self._prev_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    def headers(self, user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_token(int(user.id))}"}

    def reload(self, model, row_id):
        return db.session.get(model, int(row_id), populate_existing=True)
