"""Unit tests for the obligation state machine."""

import unittest
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

from conftest import BaseTestCase, RecordingTransport
from rentcycle.db.models import Channel, DeliveryStatus, NotificationType, ObligationStatus
from rentcycle.errors import InvalidTransition, NotFound, TransportError, ValidationError
from rentcycle.notifications.dispatcher import NotificationDispatcher
from rentcycle.obligations.state_machine import (
    ObligationStateMachine,
    can_transition,
    payment_status,
)


class TestTransitions(unittest.TestCase):
    """Transition table and payment classification."""

    def test_allowed_transitions(self):
        self.assertTrue(can_transition(ObligationStatus.PENDING, ObligationStatus.LATE))
        self.assertTrue(can_transition(ObligationStatus.PENDING, ObligationStatus.PAID))
        self.assertTrue(can_transition(ObligationStatus.LATE, ObligationStatus.PARTIAL))

    def test_nothing_returns_to_pending(self):
        for status in ObligationStatus.ALL:
            self.assertFalse(can_transition(status, ObligationStatus.PENDING))

    def test_terminal_statuses(self):
        for status in ObligationStatus.TERMINAL:
            for target in ObligationStatus.ALL:
                self.assertFalse(can_transition(status, target))

    def test_payment_status(self):
        self.assertEqual(payment_status(Decimal("1500"), Decimal("1500")), ObligationStatus.PAID)
        self.assertEqual(payment_status(Decimal("1500"), Decimal("1600")), ObligationStatus.PAID)
        self.assertEqual(payment_status(Decimal("1500"), Decimal("1000")), ObligationStatus.PARTIAL)


class TestLateStatus(BaseTestCase):
    """Time-driven pending -> late transition."""

    def setUp(self):
        super().setUp()
        self.transport = RecordingTransport()
        self.dispatcher = NotificationDispatcher(
            self.notification_store,
            self.lease_store,
            self.obligation_store,
            transports={Channel.WHATSAPP: self.transport},
        )
        self.machine = ObligationStateMachine(self.obligation_store, self.dispatcher)
        self.lease = self.add_lease()

    def test_not_late_on_due_date(self):
        self.add_obligation(self.lease, date(2025, 5, 1))
        result = self.machine.update_late_status(date(2025, 5, 1))
        self.assertEqual(result.items, [])
        self.assertEqual(self.all_obligations()[0].status, ObligationStatus.PENDING)

    def test_late_day_after_due_date(self):
        """Due 2025-05-01, unpaid on 2025-05-02: late, one day late."""
        self.add_obligation(self.lease, date(2025, 5, 1))

        result = self.machine.update_late_status(date(2025, 5, 2))

        self.assertEqual(len(result.items), 1)
        obligation = self.all_obligations()[0]
        self.assertEqual(obligation.status, ObligationStatus.LATE)
        self.assertEqual(obligation.late_since, date(2025, 5, 2))
        self.assertEqual(obligation.days_late(date(2025, 5, 2)), 1)

    def test_rent_late_dispatched_once(self):
        self.add_obligation(self.lease, date(2025, 5, 1))

        self.machine.update_late_status(date(2025, 5, 2))
        self.machine.update_late_status(date(2025, 5, 3))

        self.assertEqual(len(self.transport.sent), 1)
        _, template, params = self.transport.sent[0]
        self.assertEqual(template, NotificationType.RENT_LATE)
        self.assertEqual(params["days_late"], 1)

    def test_grace_days(self):
        machine = ObligationStateMachine(self.obligation_store, grace_days=3)
        self.add_obligation(self.lease, date(2025, 5, 1))

        self.assertEqual(machine.update_late_status(date(2025, 5, 4)).items, [])
        self.assertEqual(len(machine.update_late_status(date(2025, 5, 5)).items), 1)

    def test_paid_obligations_untouched(self):
        self.add_obligation(self.lease, date(2025, 5, 1), status=ObligationStatus.PAID)
        result = self.machine.update_late_status(date(2025, 5, 20))
        self.assertEqual(result.items, [])
        self.assertEqual(self.all_obligations()[0].status, ObligationStatus.PAID)

    def test_payment_between_read_and_update_is_skipped(self):
        """A pending obligation paid mid-sweep is not marked late."""
        obligation = self.add_obligation(self.lease, date(2025, 5, 1))
        stale = self.obligation_store.list_open_obligations(date(2025, 5, 2))
        self.obligation_store.update_obligation_status(
            obligation.id, ObligationStatus.PAID, amount_paid=Decimal("1500.00")
        )
        self.obligation_store.list_open_obligations = MagicMock(return_value=stale)

        result = self.machine.update_late_status(date(2025, 5, 2))

        self.assertEqual(result.items, [])
        self.assertEqual(result.skipped, 1)
        self.assertEqual(self.all_obligations()[0].status, ObligationStatus.PAID)

    def test_failed_notice_does_not_undo_transition(self):
        self.transport.fail = True
        self.add_obligation(self.lease, date(2025, 5, 1))

        result = self.machine.update_late_status(date(2025, 5, 2))

        self.assertEqual(len(result.items), 1)
        self.assertEqual(result.notifications_failed, 1)
        self.assertEqual(self.all_obligations()[0].status, ObligationStatus.LATE)


class TestMarkPaid(BaseTestCase):
    """Payment transitions."""

    def setUp(self):
        super().setUp()
        self.transport = RecordingTransport()
        self.dispatcher = NotificationDispatcher(
            self.notification_store,
            self.lease_store,
            self.obligation_store,
            transports={Channel.WHATSAPP: self.transport},
        )
        self.machine = ObligationStateMachine(self.obligation_store, self.dispatcher)
        self.lease = self.add_lease()

    def test_full_payment(self):
        """Amount 1500 paid in full on 2025-05-01."""
        obligation = self.add_obligation(self.lease, date(2025, 5, 1))

        paid = self.machine.mark_paid(obligation.id, date(2025, 5, 1), "e-transfer", Decimal("1500.00"))

        self.assertEqual(paid.status, ObligationStatus.PAID)
        self.assertEqual(paid.payment_date, date(2025, 5, 1))
        self.assertEqual(paid.payment_method, "e-transfer")
        self.assertEqual(paid.amount_paid, Decimal("1500.00"))

    def test_short_payment_is_partial(self):
        """1000 paid against 1500 due."""
        obligation = self.add_obligation(self.lease, date(2025, 5, 1))
        updated = self.machine.mark_paid(obligation.id, date(2025, 5, 3), "cash", "1000")
        self.assertEqual(updated.status, ObligationStatus.PARTIAL)
        self.assertEqual(updated.amount_paid, Decimal("1000.00"))

    def test_overpayment_settles(self):
        obligation = self.add_obligation(self.lease, date(2025, 5, 1))
        updated = self.machine.mark_paid(obligation.id, date(2025, 5, 1), "cash", 1600)
        self.assertEqual(updated.status, ObligationStatus.PAID)

    def test_late_obligation_keeps_late_history(self):
        obligation = self.add_obligation(self.lease, date(2025, 5, 1))
        self.machine.update_late_status(date(2025, 5, 4))

        paid = self.machine.mark_paid(obligation.id, date(2025, 5, 10), "e-transfer", 1500)

        self.assertEqual(paid.status, ObligationStatus.PAID)
        self.assertTrue(paid.was_late)
        self.assertEqual(paid.late_since, date(2025, 5, 4))

    def test_paying_twice_rejected(self):
        """A second payment on a paid obligation changes nothing."""
        obligation = self.add_obligation(self.lease, date(2025, 5, 1))
        self.machine.mark_paid(obligation.id, date(2025, 5, 1), "e-transfer", 1500)

        with self.assertRaises(InvalidTransition) as ctx:
            self.machine.mark_paid(obligation.id, date(2025, 5, 2), "cash", 1500)

        self.assertEqual(ctx.exception.current_status, ObligationStatus.PAID)
        stored = self.obligation_store.get_obligation(obligation.id)
        self.assertEqual(stored.payment_date, date(2025, 5, 1))
        self.assertEqual(stored.payment_method, "e-transfer")

    def test_partial_is_terminal(self):
        obligation = self.add_obligation(self.lease, date(2025, 5, 1))
        self.machine.mark_paid(obligation.id, date(2025, 5, 1), "cash", 500)
        with self.assertRaises(InvalidTransition):
            self.machine.mark_paid(obligation.id, date(2025, 5, 2), "cash", 1000)

    def test_unknown_obligation(self):
        with self.assertRaises(NotFound):
            self.machine.mark_paid(9999, date(2025, 5, 1), "cash", 1500)

    def test_invalid_payment_input(self):
        obligation = self.add_obligation(self.lease, date(2025, 5, 1))
        for amount in (0, -5, "abc"):
            with self.assertRaises(ValidationError):
                self.machine.mark_paid(obligation.id, date(2025, 5, 1), "cash", amount)
        with self.assertRaises(ValidationError):
            self.machine.mark_paid(obligation.id, "2025-05-01", "cash", 1500)
        self.assertEqual(self.all_obligations()[0].status, ObligationStatus.PENDING)

    def test_receipt_dispatched(self):
        obligation = self.add_obligation(self.lease, date(2025, 5, 1))
        self.machine.mark_paid(obligation.id, date(2025, 5, 1), "e-transfer", 1500)

        records = self.notification_store.list_for_obligation(obligation.id)
        self.assertEqual([r.type for r in records], [NotificationType.RECEIPT])
        self.assertEqual(records[0].status, DeliveryStatus.SENT)
        _, _, params = self.transport.sent[0]
        self.assertEqual(params["amount_paid"], Decimal("1500.00"))
        self.assertEqual(params["status"], ObligationStatus.PAID)

    def test_receipt_error_keeps_payment(self):
        dispatcher = MagicMock()
        dispatcher.dispatch.side_effect = TransportError("down")
        machine = ObligationStateMachine(self.obligation_store, dispatcher)
        obligation = self.add_obligation(self.lease, date(2025, 5, 1))

        paid = machine.mark_paid(obligation.id, date(2025, 5, 1), "cash", 1500)

        self.assertEqual(paid.status, ObligationStatus.PAID)
        self.assertEqual(self.all_obligations()[0].status, ObligationStatus.PAID)


if __name__ == '__main__':
    unittest.main()
