from __future__ import annotations

import unittest
from datetime import timedelta

from souklist.extensions import db
from souklist.models import Listing, ListingAddOn
from souklist.services import add_on_service, listing_service
from souklist.services.add_on_service import AddOnType
from souklist.services.feed_service import FeedQuery, browse_listings, normalize_expired_featured
from souklist.utils.errors import NotFoundError

from _support import NOW, SoukTestCase, make_listing


class FeaturedExpiryTestCase(SoukTestCase):
    def setUp(self):
        super().setUp()
        self.expired = make_listing(
            user=self.user,
            category=self.general,
            title="Expired feature",
            is_featured=True,
            featured_until=NOW - timedelta(seconds=1),
            featured_position=1,
            created_at=NOW - timedelta(days=10),
        )
        self.plain = make_listing(user=self.other, category=self.general, title="Plain", created_at=NOW - timedelta(days=1))
        self.pending = make_listing(user=self.user, category=self.general, title="Waiting", status="PENDING")
        db.session.commit()

    def test_expired_feature_reads_as_not_featured_before_write_back(self):
        listing = self.reload(Listing, self.expired.id)
        self.assertTrue(listing.is_featured)
        self.assertFalse(listing.to_dict(now=NOW)["is_featured"])

    def test_browse_clears_stale_flag_and_orders_by_recency(self):
        page = browse_listings(FeedQuery(), now=NOW)
        self.assertEqual([row.title for row in page["listings"]], ["Plain", "Expired feature"])
        self.assertEqual(page["pagination"]["total"], 2)

        listing = self.reload(Listing, self.expired.id)
        self.assertFalse(listing.is_featured)
        self.assertIsNone(listing.featured_until)
        self.assertIsNone(listing.featured_position)

    def test_public_feed_hides_non_active_and_expired_listings(self):
        make_listing(
            user=self.user,
            category=self.general,
            title="Past its run",
            expires_at=NOW - timedelta(days=1),
        )
        db.session.commit()
        titles = {row.title for row in browse_listings(FeedQuery(), now=NOW)["listings"]}
        self.assertEqual(titles, {"Plain", "Expired feature"})

        own = browse_listings(FeedQuery(user_id=int(self.user.id)), viewer=self.user, now=NOW)
        self.assertEqual({row.title for row in own["listings"]}, {"Expired feature", "Waiting", "Past its run"})

        queue = browse_listings(FeedQuery(status="PENDING"), viewer=self.admin, now=NOW)
        self.assertEqual([row.title for row in queue["listings"]], ["Waiting"])

    def test_filters_and_pagination(self):
        make_listing(user=self.other, category=self.premium, title="Flat in Agdal", price=900.0, location="Rabat Agdal")
        db.session.commit()
        by_category = browse_listings(FeedQuery(category="real-estate"), now=NOW)
        self.assertEqual([row.title for row in by_category["listings"]], ["Flat in Agdal"])
        by_search = browse_listings(FeedQuery(search="plain"), now=NOW)
        self.assertEqual([row.title for row in by_search["listings"]], ["Plain"])
        by_price = browse_listings(FeedQuery(min_price=500), now=NOW)
        self.assertEqual([row.title for row in by_price["listings"]], ["Flat in Agdal"])
        paged = browse_listings(FeedQuery(page=2, limit=2), now=NOW)
        self.assertEqual(paged["pagination"], {"page": 2, "limit": 2, "total": 3, "pages": 2})
        self.assertEqual(len(paged["listings"]), 1)

    def test_feed_query_from_args(self):
        query = FeedQuery.from_args({"category": "furniture", "min_price": "10", "limit": "500", "page": "0"})
        self.assertEqual(query.category, "furniture")
        self.assertEqual(query.min_price, 10.0)
        self.assertEqual(query.limit, 50)
        self.assertEqual(query.page, 1)

    def test_detail_view_counts_and_hides_pending_from_strangers(self):
        listing = listing_service.view_listing(self.plain.id, viewer=self.user, now=NOW)
        self.assertEqual(listing.views, 1)
        listing = listing_service.view_listing(self.plain.id, viewer=self.other, now=NOW)
        self.assertEqual(listing.views, 1)
        with self.assertRaises(NotFoundError):
            listing_service.view_listing(self.pending.id, viewer=self.other, now=NOW)
        self.assertEqual(listing_service.view_listing(self.pending.id, viewer=self.admin, now=NOW).status, "PENDING")

    def test_normalize_is_scoped_when_ids_given(self):
        self.assertEqual(normalize_expired_featured(now=NOW, listing_ids=[int(self.plain.id)]), 0)
        self.assertEqual(normalize_expired_featured(now=NOW, listing_ids=[]), 0)
        self.assertEqual(normalize_expired_featured(now=NOW), 1)

    def test_sweep_expires_features_add_ons_and_old_bumps(self):
        lid = int(self.plain.id)
        add_on_service.purchase_add_on(lid, AddOnType.FEATURED_WEEK, 1, int(self.other.id), now=NOW)
        add_on_service.purchase_add_on(lid, AddOnType.BUMP_TO_TOP, 1, int(self.other.id), now=NOW)
        for row in ListingAddOn.query.filter_by(listing_id=lid).all():
            row.is_active = True
        db.session.commit()

        later = NOW + timedelta(days=8)
        status = add_on_service.expiry_status(now=later)
        self.assertEqual(status["expired_featured_count"], 2)
        self.assertEqual(status["expired_add_ons_count"], 1)
        self.assertTrue(status["needs_cleanup"])

        result = add_on_service.run_expiry_sweep(now=later)
        self.assertEqual(result["expired_featured"], 2)
        self.assertEqual(result["expired_add_ons"], 1)
        self.assertEqual(result["cleaned_bumped"], 1)

        listing = self.reload(Listing, lid)
        self.assertFalse(listing.is_featured)
        self.assertIsNone(listing.bumped_at)
        self.assertFalse(add_on_service.expiry_status(now=later)["needs_cleanup"])


if __name__ == "__main__":
    unittest.main()
