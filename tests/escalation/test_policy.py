"""Unit tests for the escalation policy."""

import unittest
from datetime import date, timedelta
from unittest.mock import MagicMock

from conftest import BaseTestCase, RecordingTransport
from rentcycle.db.models import Channel, DeliveryStatus, NotificationType, Obligation, ObligationStatus
from rentcycle.escalation.policy import EscalationPolicy, check_escalation
from rentcycle.notifications.dispatcher import NotificationDispatcher

DUE = date(2025, 5, 1)


def late_obligation(status=ObligationStatus.LATE):
    return Obligation(id=7, tenant_id=3, unit_id=4, due_date=DUE, status=status)


class TestCheckEscalation(unittest.TestCase):
    """Threshold boundaries of the pure check."""

    def forms(self, days_late, has_n4=False, has_l1=False, status=ObligationStatus.LATE):
        events = check_escalation(late_obligation(status), DUE + timedelta(days=days_late), has_n4, has_l1)
        return [e.form_type for e in events]

    def test_nothing_at_13_days(self):
        self.assertEqual(self.forms(13), [])

    def test_n4_at_14_days(self):
        self.assertEqual(self.forms(14), [NotificationType.FORM_N4])

    def test_both_at_15_days(self):
        self.assertEqual(self.forms(15), [NotificationType.FORM_N4, NotificationType.FORM_L1])

    def test_l1_only_when_n4_exists(self):
        self.assertEqual(self.forms(15, has_n4=True), [NotificationType.FORM_L1])

    def test_nothing_when_both_exist(self):
        self.assertEqual(self.forms(40, has_n4=True, has_l1=True), [])

    def test_only_late_obligations(self):
        for status in (ObligationStatus.PENDING, ObligationStatus.PAID, ObligationStatus.PARTIAL):
            self.assertEqual(self.forms(30, status=status), [])

    def test_event_carries_days_late(self):
        event = check_escalation(late_obligation(), DUE + timedelta(days=14), False, False)[0]
        self.assertEqual(event.obligation_id, 7)
        self.assertEqual(event.tenant_id, 3)
        self.assertEqual(event.days_late, 14)

    def test_custom_thresholds(self):
        events = check_escalation(
            late_obligation(), DUE + timedelta(days=5), False, False,
            n4_threshold_days=5, l1_threshold_days=10,
        )
        self.assertEqual([e.form_type for e in events], [NotificationType.FORM_N4])


class TestEscalationPolicy(BaseTestCase):
    """Daily escalation sweep against stored notification records."""

    def setUp(self):
        super().setUp()
        self.transport = RecordingTransport()
        self.renderer = MagicMock()
        self.renderer.render.return_value = b"%PDF-1.4 test"
        self.dispatcher = NotificationDispatcher(
            self.notification_store,
            self.lease_store,
            self.obligation_store,
            transports={Channel.WHATSAPP: self.transport},
            renderer=self.renderer,
        )
        self.policy = EscalationPolicy(self.obligation_store, self.notification_store, self.dispatcher)
        self.obligation = self.add_obligation(self.add_lease(), DUE, status=ObligationStatus.LATE)

    def test_each_form_sent_once_across_runs(self):
        """Days 13 through 20: one N4 on day 14, one L1 on day 15."""
        emitted = []
        for offset in range(13, 21):
            result = self.policy.run(DUE + timedelta(days=offset))
            emitted.extend((offset, e.form_type) for e in result.items)

        self.assertEqual(
            emitted, [(14, NotificationType.FORM_N4), (15, NotificationType.FORM_L1)]
        )
        records = self.notification_store.list_for_obligation(self.obligation.id)
        self.assertEqual(
            [r.type for r in records], [NotificationType.FORM_N4, NotificationType.FORM_L1]
        )
        self.assertEqual(len(self.transport.documents), 2)

    def test_both_forms_on_first_run_past_l1(self):
        result = self.policy.run(DUE + timedelta(days=20))
        self.assertEqual(
            [e.form_type for e in result.items],
            [NotificationType.FORM_N4, NotificationType.FORM_L1],
        )
        self.assertEqual(len(result.notifications), 2)

    def test_failed_form_delivery_still_guards(self):
        """A failed N4 record blocks another N4; resending goes through retry."""
        self.transport.fail = True
        first = self.policy.run(DUE + timedelta(days=14))
        self.assertEqual(first.notifications[0].status, DeliveryStatus.FAILED)

        self.transport.fail = False
        second = self.policy.run(DUE + timedelta(days=14))
        self.assertEqual(second.items, [])

    def test_form_render_crash_can_be_retried(self):
        """A crashing renderer leaves a failed N4 that retry re-sends."""
        today = DUE + timedelta(days=14)
        self.renderer.render.side_effect = RuntimeError("layout error")

        first = self.policy.run(today)

        self.assertEqual([n.status for n in first.notifications], [DeliveryStatus.FAILED])
        self.renderer.render.side_effect = None
        self.assertEqual(self.policy.run(today).items, [])
        resent = self.dispatcher.retry_failed(today=today)
        self.assertEqual([(r.type, r.status) for r in resent], [(NotificationType.FORM_N4, DeliveryStatus.SENT)])

    def test_paid_obligation_not_escalated(self):
        self.obligation_store.update_obligation_status(self.obligation.id, ObligationStatus.PAID)
        result = self.policy.run(DUE + timedelta(days=30))
        self.assertEqual(result.items, [])

    def test_form_fields_passed_to_renderer(self):
        today = DUE + timedelta(days=14)
        self.policy.run(today)

        form_type, fields = self.renderer.render.call_args[0]
        self.assertEqual(form_type, NotificationType.FORM_N4)
        self.assertEqual(fields["tenant_name"], "John Smith")
        self.assertEqual(fields["days_late"], 14)
        self.assertEqual(fields["termination_date"], (today + timedelta(days=14)).isoformat())

    def test_guard_lookup_failure_recorded(self):
        self.notification_store.find_notification = MagicMock(side_effect=RuntimeError("boom"))
        result = self.policy.run(DUE + timedelta(days=14))
        self.assertEqual(result.items, [])
        self.assertEqual(len(result.failures), 1)
        self.assertEqual(result.failures[0].subject_id, self.obligation.id)


if __name__ == '__main__':
    unittest.main()
