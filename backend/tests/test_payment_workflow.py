from __future__ import annotations

import unittest
from datetime import timedelta

from souklist.extensions import db
from souklist.models import Listing, ListingAddOn, Payment, PaymentTransition
from souklist.services import add_on_service, payment_workflow_service as workflow
from souklist.services.add_on_service import AddOnType
from souklist.utils.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from souklist.utils.settings import EFFECTS_ON_PAYMENT_COMPLETED

from _support import NOW, SoukTestCase, make_listing


class PaymentWorkflowTestCase(SoukTestCase):
    def setUp(self):
        super().setUp()
        self.listing = make_listing(user=self.user, category=self.general)
        db.session.commit()
        self.lid = int(self.listing.id)

    def _buy(self, kind=AddOnType.FEATURED_WEEK, *, now=NOW):
        result = add_on_service.purchase_add_on(self.lid, kind, 1, int(self.user.id), now=now)
        return int(result.payment.id)

    def _move(self, pid, status, *, now=NOW, notes=None, key=None):
        return workflow.transition_payment_status(
            pid, status, notes, admin_user_id=int(self.admin.id), idempotency_key=key, now=now
        )

    def test_full_happy_path_sets_each_milestone_once(self):
        pid = self._buy()
        t1, t2, t3 = NOW + timedelta(hours=1), NOW + timedelta(hours=2), NOW + timedelta(hours=3)
        payment = self._move(pid, "APPROVED_AWAITING_PAYMENT", now=t1, notes="Send to wallet 0600")
        self.assertEqual(payment.approved_at, t1)
        self.assertEqual(payment.approved_by, int(self.admin.id))
        self.assertEqual(payment.admin_notes, "Send to wallet 0600")

        payment = self._move(pid, "PAYMENT_RECEIVED", now=t2)
        self.assertEqual(payment.paid_at, t2)
        payment = self._move(pid, "COMPLETED", now=t3)
        self.assertEqual(payment.completed_at, t3)
        self.assertEqual(payment.approved_at, t1)
        self.assertEqual(payment.paid_at, t2)

        history = workflow.payment_history(pid)
        self.assertEqual(
            [(h.from_status, h.to_status) for h in history],
            [
                ("PENDING", "APPROVED_AWAITING_PAYMENT"),
                ("APPROVED_AWAITING_PAYMENT", "PAYMENT_RECEIVED"),
                ("PAYMENT_RECEIVED", "COMPLETED"),
            ],
        )

    def test_completed_at_survives_refund(self):
        pid = self._buy(AddOnType.MAP_LOCATION)
        self._move(pid, "PAYMENT_RECEIVED")
        done = NOW + timedelta(hours=1)
        self._move(pid, "COMPLETED", now=done)
        payment = self._move(pid, "REFUNDED", now=NOW + timedelta(days=2))
        self.assertEqual(payment.status, "REFUNDED")
        self.assertEqual(payment.completed_at, done)
        self.assertEqual(payment.paid_at, NOW)

    def test_disallowed_transition_is_rejected(self):
        pid = self._buy(AddOnType.MAP_LOCATION)
        self._move(pid, "PAYMENT_RECEIVED")
        self._move(pid, "COMPLETED")
        with self.assertRaises(InvalidTransitionError):
            self._move(pid, "PENDING")
        with self.assertRaises(ConflictError):
            self._move(pid, "CANCELLED")
        self.assertEqual(self.reload(Payment, pid).status, "COMPLETED")

    def test_terminal_states_do_not_move(self):
        pid = self._buy(AddOnType.MAP_LOCATION)
        self._move(pid, "CANCELLED")
        with self.assertRaises(InvalidTransitionError):
            self._move(pid, "APPROVED_AWAITING_PAYMENT")

    def test_same_state_update_only_changes_notes(self):
        pid = self._buy(AddOnType.MAP_LOCATION)
        payment = self._move(pid, "PENDING", notes="Customer called, paying tomorrow")
        self.assertEqual(payment.status, "PENDING")
        self.assertEqual(payment.admin_notes, "Customer called, paying tomorrow")
        self.assertIsNone(payment.approved_at)

    def test_unknown_status_and_payment(self):
        pid = self._buy(AddOnType.MAP_LOCATION)
        with self.assertRaises(ValidationError):
            self._move(pid, "PAID")
        with self.assertRaises(NotFoundError):
            self._move(9999, "CANCELLED")

    def test_idempotency_key_replays_without_new_transition(self):
        pid = self._buy(AddOnType.MAP_LOCATION)
        self._move(pid, "APPROVED_AWAITING_PAYMENT", key="approve-1")
        payment = self._move(pid, "APPROVED_AWAITING_PAYMENT", key="approve-1", notes="retry")
        self.assertEqual(payment.status, "APPROVED_AWAITING_PAYMENT")
        self.assertEqual(PaymentTransition.query.filter_by(payment_id=pid).count(), 1)

    def test_idempotency_key_reused_for_other_status_is_conflict(self):
        pid = self._buy(AddOnType.MAP_LOCATION)
        self._move(pid, "APPROVED_AWAITING_PAYMENT", key="k1")
        with self.assertRaises(ConflictError):
            self._move(pid, "CANCELLED", key="k1")
        self.assertEqual(self.reload(Payment, pid).status, "APPROVED_AWAITING_PAYMENT")
        self.assertEqual(PaymentTransition.query.filter_by(payment_id=pid).count(), 1)

    def test_deferred_effects_apply_exactly_once_on_completion(self):
        self.app.config["ADDON_EFFECTS_POLICY"] = EFFECTS_ON_PAYMENT_COMPLETED
        pid = self._buy()
        self.assertFalse(self.reload(Listing, self.lid).is_featured)

        self._move(pid, "PAYMENT_RECEIVED")
        self.assertFalse(self.reload(Listing, self.lid).is_featured)

        done = NOW + timedelta(days=1)
        self._move(pid, "COMPLETED", now=done)
        listing = self.reload(Listing, self.lid)
        self.assertTrue(listing.is_featured)
        self.assertEqual(listing.featured_until, done + timedelta(days=7))
        row = ListingAddOn.query.filter_by(payment_id=pid).one()
        self.assertTrue(row.is_active)
        self.assertEqual(row.effect_applied_at, done)

        # Notes-only update on a completed payment must not re-apply.
        self._move(pid, "COMPLETED", now=done + timedelta(days=1), notes="receipt sent")
        self.assertEqual(self.reload(Listing, self.lid).featured_until, done + timedelta(days=7))

    def test_completion_after_immediate_effect_does_not_extend(self):
        pid = self._buy()
        self._move(pid, "PAYMENT_RECEIVED")
        self._move(pid, "COMPLETED", now=NOW + timedelta(days=3))
        self.assertEqual(self.reload(Listing, self.lid).featured_until, NOW + timedelta(days=7))
        self.assertTrue(ListingAddOn.query.filter_by(payment_id=pid).one().is_active)

    def test_cancelling_revokes_featured_placement(self):
        pid = self._buy()
        self.assertTrue(self.reload(Listing, self.lid).is_featured)
        self._move(pid, "CANCELLED", now=NOW + timedelta(hours=1))
        listing = self.reload(Listing, self.lid)
        self.assertFalse(listing.is_featured)
        self.assertIsNone(listing.featured_until)
        row = ListingAddOn.query.filter_by(payment_id=pid).one()
        self.assertFalse(row.is_active)
        self.assertIsNotNone(row.revoked_at)

    def test_revoke_keeps_plan_level_feature(self):
        listing = self.reload(Listing, self.lid)
        listing.pricing_plan_id = int(self.premium_plan.id)
        listing.is_featured = True
        listing.expires_at = NOW + timedelta(days=60)
        listing.featured_until = NOW + timedelta(days=60)
        db.session.commit()

        pid = self._buy()
        self._move(pid, "FAILED", now=NOW + timedelta(hours=1))
        listing = self.reload(Listing, self.lid)
        self.assertTrue(listing.is_featured)
        self.assertEqual(listing.featured_until, NOW + timedelta(days=60))

    def test_delete_pending_payment_removes_add_ons(self):
        pid = self._buy()
        result = workflow.delete_payment(pid, admin_user_id=int(self.admin.id), now=NOW)
        self.assertTrue(result["deleted"])
        self.assertEqual(result["add_ons_removed"], 1)
        db.session.expire_all()
        self.assertIsNone(db.session.get(Payment, pid))
        self.assertEqual(ListingAddOn.query.count(), 0)
        self.assertFalse(self.reload(Listing, self.lid).is_featured)

    def test_completed_payment_cannot_be_deleted(self):
        pid = self._buy(AddOnType.MAP_LOCATION)
        self._move(pid, "PAYMENT_RECEIVED")
        self._move(pid, "COMPLETED")
        with self.assertRaises(ConflictError):
            workflow.delete_payment(pid, admin_user_id=int(self.admin.id), now=NOW)

    def test_payment_lists(self):
        first = self._buy(AddOnType.MAP_LOCATION)
        self._buy(AddOnType.VIDEO_SUPPORT)
        self._move(first, "CANCELLED")
        self.assertEqual(len(workflow.list_user_payments(int(self.user.id))), 2)
        self.assertEqual(len(workflow.list_user_payments(int(self.other.id))), 0)
        self.assertEqual([p.id for p in workflow.list_admin_payments("CANCELLED")], [first])
        self.assertEqual(workflow.allowed_next("COMPLETED"), ["REFUNDED"])


if __name__ == "__main__":
    unittest.main()
