from __future__ import annotations

import unittest
from datetime import datetime, timedelta
from types import SimpleNamespace

from souklist.services.feed_ranking import is_currently_featured, rank_listings

NOW = datetime(2026, 3, 15, 12, 0, 0)


def _row(name, *, id, created, featured=False, until=None, position=None, bumped=None, legacy=False):
    return SimpleNamespace(
        name=name,
        id=id,
        is_featured=featured,
        featured_until=until,
        featured=legacy,
        featured_position=position,
        bumped_at=bumped,
        created_at=created,
    )


class FeedRankingTestCase(unittest.TestCase):
    def test_reference_ordering(self):
        a = _row("A", id=1, created=NOW - timedelta(days=3), featured=True, until=NOW + timedelta(days=2), position=2)
        b = _row("B", id=2, created=NOW - timedelta(days=4), featured=True, until=NOW + timedelta(days=2), position=1)
        c = _row("C", id=3, created=NOW - timedelta(days=5), bumped=NOW - timedelta(hours=1))
        d = _row("D", id=4, created=NOW - timedelta(days=1))
        ranked = rank_listings([d, c, a, b], NOW)
        self.assertEqual([row.name for row in ranked], ["B", "A", "C", "D"])

    def test_ordering_is_stable_for_any_input_order(self):
        rows = [
            _row("A", id=1, created=NOW - timedelta(days=1)),
            _row("B", id=2, created=NOW - timedelta(days=1)),
            _row("C", id=3, created=NOW - timedelta(days=2), bumped=NOW),
        ]
        expected = [row.name for row in rank_listings(rows, NOW)]
        self.assertEqual(expected, ["C", "B", "A"])
        self.assertEqual([row.name for row in rank_listings(list(reversed(rows)), NOW)], expected)

    def test_feature_one_second_past_expiry_is_not_featured(self):
        stale = _row(
            "stale",
            id=1,
            created=NOW - timedelta(days=10),
            featured=True,
            until=NOW - timedelta(seconds=1),
            position=1,
        )
        fresh = _row("fresh", id=2, created=NOW - timedelta(days=1))
        self.assertFalse(is_currently_featured(stale, NOW))
        self.assertEqual([row.name for row in rank_listings([stale, fresh], NOW)], ["fresh", "stale"])

    def test_open_ended_feature_counts(self):
        row = _row("open", id=1, created=NOW, featured=True, until=None)
        self.assertTrue(is_currently_featured(row, NOW))

    def test_legacy_flag_ranks_after_live_feature(self):
        live = _row("live", id=1, created=NOW - timedelta(days=5), featured=True, until=NOW + timedelta(days=1))
        legacy = _row("legacy", id=2, created=NOW, legacy=True, position=1)
        plain = _row("plain", id=3, created=NOW, bumped=NOW)
        self.assertEqual([r.name for r in rank_listings([plain, legacy, live], NOW)], ["live", "legacy", "plain"])

    def test_unpositioned_featured_ranks_after_positioned(self):
        positioned = _row("p", id=1, created=NOW - timedelta(days=9), featured=True, until=None, position=5)
        unpositioned = _row("u", id=2, created=NOW, featured=True, until=None)
        self.assertEqual([r.name for r in rank_listings([unpositioned, positioned], NOW)], ["p", "u"])


if __name__ == "__main__":
    unittest.main()
