from __future__ import annotations

import unittest

from souklist.extensions import db
from souklist.models import AuditEvent
from souklist.services import add_on_service, payment_workflow_service as workflow
from souklist.services.add_on_service import AddOnType
from souklist.utils.events import log_event

from _support import NOW, SoukTestCase, make_listing


class AuditTrailTestCase(SoukTestCase):
    def _events(self, event_type):
        return AuditEvent.query.filter_by(event_type=event_type).all()

    def test_purchase_and_transition_are_recorded(self):
        listing = make_listing(user=self.user, category=self.general)
        db.session.commit()
        result = add_on_service.purchase_add_on(int(listing.id), AddOnType.FEATURED_WEEK, 1, int(self.user.id), now=NOW)
        pid = int(result.payment.id)
        workflow.transition_payment_status(pid, "CANCELLED", "duplicate order", admin_user_id=int(self.admin.id), now=NOW)

        purchased = self._events("add_on_purchased")
        self.assertEqual(len(purchased), 1)
        self.assertEqual(purchased[0].metadata_dict()["payment_id"], pid)
        self.assertEqual(len(self._events("add_on_effect_applied")), 1)
        changed = self._events("payment_status_changed")
        self.assertEqual(changed[0].metadata_dict()["to"], "CANCELLED")
        self.assertEqual(changed[0].actor_user_id, int(self.admin.id))

    def test_metadata_values_are_made_json_safe(self):
        log_event("manual_check", subject_type="test", subject_id=1, metadata={"when": NOW, "ids": {3, 4}})
        db.session.commit()
        row = self._events("manual_check")[0]
        self.assertEqual(row.metadata_dict()["when"], NOW.isoformat())
        self.assertEqual(sorted(row.metadata_dict()["ids"]), [3, 4])


if __name__ == "__main__":
    unittest.main()
