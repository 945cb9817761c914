"""Obligation State Machine.

    pending --(time)--> late
    pending --(payment)--> paid | partial
    late    --(payment)--> paid | partial

paid and partial are terminal. Nothing ever returns to pending, and an
obligation that went through late keeps ``late_since`` after payment.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from rentcycle.batch import BatchResult
from rentcycle.db.models import Channel, NotificationType, Obligation, ObligationStatus
from rentcycle.errors import InvalidTransition, ValidationError
from rentcycle.leases.registry import parse_amount
from rentcycle.logging_config import get_logger
from rentcycle.metrics import (
    late_sweep_duration_seconds,
    measure_duration,
    obligations_late_total,
    payments_recorded_total,
)

logger = get_logger(__name__)

TRANSITIONS = {
    ObligationStatus.PENDING: (
        ObligationStatus.LATE,
        ObligationStatus.PAID,
        ObligationStatus.PARTIAL,
    ),
    ObligationStatus.LATE: (ObligationStatus.PAID, ObligationStatus.PARTIAL),
    ObligationStatus.PAID: (),
    ObligationStatus.PARTIAL: (),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, ())


def is_overdue(obligation: Obligation, today: date, grace_days: int = 0) -> bool:
    """True when a pending obligation should be marked late on ``today``."""
    return (today - obligation.due_date).days > grace_days


def payment_status(amount_due: Decimal, amount_paid: Decimal) -> str:
    """Status a payment of ``amount_paid`` puts an obligation in.

    Anything short of the amount due is partial; paying the full amount or
    more settles the obligation.
    """
    if amount_paid >= amount_due:
        return ObligationStatus.PAID
    return ObligationStatus.PARTIAL


class ObligationStateMachine:
    """Applies the time-driven late transition and payment transitions.

    Args:
        obligation_store: Obligation persistence.
        dispatcher (NotificationDispatcher, optional): Sends rent_late and receipt notices.
        grace_days (int): Days past the due date before pending turns late.
        channel (str): Channel for rent_late and receipt notices.
    """

    def __init__(
        self,
        obligation_store,
        dispatcher=None,
        grace_days: int = 0,
        channel: str = Channel.WHATSAPP,
    ):
        self.obligation_store = obligation_store
        self.dispatcher = dispatcher
        self.grace_days = grace_days
        self.channel = channel

    @measure_duration(late_sweep_duration_seconds)
    def update_late_status(self, today: date) -> BatchResult:
        """Mark every overdue pending obligation late.

        Each transition dispatches one rent_late notice carrying the days late
        (today - due_date).

        Returns:
            BatchResult: ``items`` holds the obligations transitioned to late.
        """
        result = BatchResult(stage="late")
        open_obligations = self.obligation_store.list_open_obligations(today)

        for obligation in open_obligations:
            if obligation.status != ObligationStatus.PENDING:
                continue
            if not is_overdue(obligation, today, self.grace_days):
                continue
            try:
                updated = self.obligation_store.update_obligation_status(
                    obligation.id,
                    ObligationStatus.LATE,
                    late_since=today,
                    expected_status=ObligationStatus.PENDING,
                )
            except InvalidTransition as e:
                # Paid between the read and the update.
                logger.info(f"Obligation {obligation.id} no longer pending: {e}")
                result.skipped += 1
                continue
            except Exception as e:
                logger.exception(f"Failed to mark obligation {obligation.id} late: {e}")
                result.record_failure(obligation.id, e)
                continue

            days_late = updated.days_late(today)
            logger.info(
                f"Obligation {updated.id} marked late",
                extra={"context": {"due_date": updated.due_date, "days_late": days_late}},
            )
            result.items.append(updated)
            obligations_late_total.inc()
            self._notify(updated, NotificationType.RENT_LATE, today, result, days_late=days_late)

        logger.info(f"Late sweep complete: latened={len(result.items)}, failed={len(result.failures)}")
        return result

    def mark_paid(
        self,
        obligation_id: int,
        payment_date: date,
        method: Optional[str],
        amount_paid,
    ) -> Obligation:
        """Record a payment against an obligation.

        Args:
            obligation_id (int): Obligation being paid.
            payment_date (date): Date the money was received.
            method (str): Payment method, e.g. 'e-transfer'.
            amount_paid: Amount received; must be positive.

        Returns:
            Obligation: The obligation in its paid or partial state.

        Raises:
            ValidationError: Non-positive amount or missing payment date.
            NotFound: Unknown obligation id.
            InvalidTransition: Obligation already paid or partially paid.
        """
        amount = parse_amount(amount_paid, "amount_paid")
        if amount == 0:
            raise ValidationError("amount_paid must be positive")
        if not isinstance(payment_date, date):
            raise ValidationError("payment_date must be a date")

        obligation = self.obligation_store.get_obligation(obligation_id)
        target = payment_status(obligation.amount_due, amount)
        if not can_transition(obligation.status, target):
            raise InvalidTransition(
                f"Obligation {obligation_id} is already {obligation.status}",
                current_status=obligation.status,
                requested_status=target,
            )

        updated = self.obligation_store.update_obligation_status(
            obligation_id,
            target,
            payment_date=payment_date,
            method=method,
            amount_paid=amount,
            expected_status=ObligationStatus.OPEN,
        )
        payments_recorded_total.labels(status=target).inc()
        logger.info(
            f"Obligation {obligation_id} marked {target}",
            extra={"context": {"amount_paid": amount, "amount_due": updated.amount_due, "method": method}},
        )
        self._notify(updated, NotificationType.RECEIPT, payment_date)
        return updated

    def _notify(self, obligation, notification_type, today, result=None, **params):
        if self.dispatcher is None:
            return
        try:
            record = self.dispatcher.dispatch(
                obligation.tenant_id,
                obligation.id,
                notification_type,
                self.channel,
                today=today,
                **params,
            )
        except Exception as e:
            logger.exception(
                f"Could not dispatch {notification_type} for obligation {obligation.id}: {e}"
            )
            if result is not None:
                result.record_failure(obligation.id, e, stage="notify")
            return
        if result is not None:
            result.notifications.append(record)
