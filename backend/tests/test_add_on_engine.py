from __future__ import annotations

import unittest
from datetime import timedelta
from decimal import Decimal

from souklist.extensions import db
from souklist.models import Listing, ListingAddOn, Payment
from souklist.services import add_on_service
from souklist.services.add_on_service import AddOnType
from souklist.utils.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from souklist.utils.settings import EFFECTS_ON_PAYMENT_COMPLETED

from _support import NOW, SoukTestCase, make_listing


class AddOnEngineTestCase(SoukTestCase):
    def setUp(self):
        super().setUp()
        self.listing = make_listing(user=self.user, category=self.general)
        db.session.commit()
        self.lid = int(self.listing.id)

    def _buy(self, kind, quantity=1, *, now=NOW, actor=None):
        actor = actor if actor is not None else self.user
        return add_on_service.purchase_add_on(self.lid, kind, quantity, int(actor.id), now=now)

    def test_purchase_creates_pending_payment_and_one_row_per_unit(self):
        result = self._buy(AddOnType.EXTRA_PHOTOS, 4)
        payment = self.reload(Payment, result.payment.id)
        self.assertEqual(payment.status, "PENDING")
        self.assertEqual(Decimal(payment.amount), Decimal("2.00"))
        self.assertEqual(payment.user_id, int(self.user.id))
        self.assertEqual(payment.meta["quantity"], 4)
        self.assertEqual(payment.meta["listing_id"], self.lid)

        rows = ListingAddOn.query.filter_by(payment_id=int(payment.id)).all()
        self.assertEqual(len(rows), 4)
        self.assertTrue(all(not row.is_active for row in rows))
        self.assertTrue(all(Decimal(row.price) == Decimal("0.50") for row in rows))

    def test_only_owner_can_purchase(self):
        with self.assertRaises(ForbiddenError):
            self._buy(AddOnType.BUMP_TO_TOP, actor=self.other)
        self.assertEqual(Payment.query.count(), 0)

    def test_unknown_listing(self):
        with self.assertRaises(NotFoundError):
            add_on_service.purchase_add_on(9999, AddOnType.BUMP_TO_TOP, 1, int(self.user.id), now=NOW)

    def test_input_validation(self):
        with self.assertRaises(ValidationError):
            self._buy("SPARKLES")
        with self.assertRaises(ValidationError):
            self._buy(AddOnType.EXTRA_PHOTOS, 0)
        with self.assertRaises(ValidationError):
            self._buy(AddOnType.EXTRA_PHOTOS, 11)
        with self.assertRaises(ValidationError):
            self._buy(AddOnType.FEATURED_WEEK, 2)
        self.assertEqual(Payment.query.count(), 0)

    def test_featured_week_is_exclusive_while_live(self):
        self._buy(AddOnType.FEATURED_WEEK)
        with self.assertRaises(ConflictError):
            self._buy(AddOnType.FEATURED_WEEK, now=NOW + timedelta(days=1))
        self.assertEqual(Payment.query.count(), 1)

        # Once the first week has lapsed a new one may be bought.
        self._buy(AddOnType.FEATURED_WEEK, now=NOW + timedelta(days=8))
        self.assertEqual(Payment.query.count(), 2)

    def test_urgent_tag_is_exclusive(self):
        self._buy(AddOnType.URGENT_TAG)
        with self.assertRaises(ConflictError):
            self._buy(AddOnType.URGENT_TAG)

    def test_bump_is_repeatable_and_restamps(self):
        self._buy(AddOnType.BUMP_TO_TOP, now=NOW)
        later = NOW + timedelta(hours=3)
        self._buy(AddOnType.BUMP_TO_TOP, now=later)
        self.assertEqual(self.reload(Listing, self.lid).bumped_at, later)
        self.assertEqual(Payment.query.count(), 2)

    def test_featured_effect_applied_on_purchase_by_default(self):
        result = self._buy(AddOnType.FEATURED_WEEK)
        listing = self.reload(Listing, self.lid)
        self.assertTrue(listing.is_featured)
        self.assertEqual(listing.featured_until, NOW + timedelta(days=7))
        self.assertTrue(result.effects_applied)
        row = ListingAddOn.query.filter_by(listing_id=self.lid).one()
        self.assertEqual(row.effect_applied_at, NOW)
        self.assertEqual(row.expires_at, NOW + timedelta(days=7))

    def test_applying_featured_effect_twice_does_not_extend(self):
        self._buy(AddOnType.FEATURED_WEEK)
        row = ListingAddOn.query.filter_by(listing_id=self.lid).one()
        self.assertFalse(add_on_service.apply_add_on_effect(row, now=NOW + timedelta(days=2)))
        db.session.commit()
        self.assertEqual(self.reload(Listing, self.lid).featured_until, NOW + timedelta(days=7))

    def test_featured_week_never_shortens_longer_feature(self):
        listing = self.reload(Listing, self.lid)
        listing.is_featured = True
        listing.featured_until = NOW + timedelta(days=30)
        db.session.commit()
        self._buy(AddOnType.FEATURED_WEEK)
        self.assertEqual(self.reload(Listing, self.lid).featured_until, NOW + timedelta(days=30))

    def test_deferred_policy_waits_for_payment(self):
        self.app.config["ADDON_EFFECTS_POLICY"] = EFFECTS_ON_PAYMENT_COMPLETED
        result = self._buy(AddOnType.FEATURED_WEEK)
        self.assertFalse(result.effects_applied)
        listing = self.reload(Listing, self.lid)
        self.assertFalse(listing.is_featured)
        self.assertIsNone(ListingAddOn.query.filter_by(listing_id=self.lid).one().effect_applied_at)

    def test_descriptive_types_do_not_touch_listing(self):
        self._buy(AddOnType.VIDEO_SUPPORT)
        listing = self.reload(Listing, self.lid)
        self.assertFalse(listing.is_featured)
        self.assertIsNone(listing.bumped_at)

    def test_history_is_owner_only_and_shows_payment_status(self):
        self._buy(AddOnType.MAP_LOCATION)
        rows = add_on_service.list_listing_add_ons(self.lid, int(self.user.id))
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].to_dict()["payment_status"], "PENDING")
        with self.assertRaises(ForbiddenError):
            add_on_service.list_listing_add_ons(self.lid, int(self.other.id))

    def test_catalog_lists_every_type(self):
        items = {item["type"]: item for item in add_on_service.available_add_ons()}
        self.assertEqual(set(items), set(AddOnType.ALL))
        self.assertEqual(items["FEATURED_WEEK"]["price"], "5.00")
        self.assertTrue(items["URGENT_TAG"]["exclusive"])
        self.assertFalse(items["BUMP_TO_TOP"]["exclusive"])


if __name__ == "__main__":
    unittest.main()
