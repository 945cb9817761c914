"""Escalation Policy: legal notice eligibility for late rent.

An obligation late for ``n4_threshold_days`` becomes eligible for an N4
notice, and at ``l1_threshold_days`` for an L1 application. The two are
independent and each fires at most once per obligation, guarded by the
notification records already stored for it.
"""

from dataclasses import dataclass
from datetime import date
from typing import List

from rentcycle.batch import BatchResult
from rentcycle.db.models import Channel, NotificationType, Obligation, ObligationStatus
from rentcycle.logging_config import get_logger
from rentcycle.metrics import escalation_duration_seconds, escalations_total, measure_duration

logger = get_logger(__name__)

N4_THRESHOLD_DAYS = 14
L1_THRESHOLD_DAYS = 15


@dataclass(frozen=True)
class EscalationEvent:
    obligation_id: int
    tenant_id: int
    form_type: str
    days_late: int


def check_escalation(
    obligation: Obligation,
    today: date,
    has_n4: bool,
    has_l1: bool,
    n4_threshold_days: int = N4_THRESHOLD_DAYS,
    l1_threshold_days: int = L1_THRESHOLD_DAYS,
) -> List[EscalationEvent]:
    """Escalation events due for one obligation on ``today``.

    Args:
        obligation (Obligation): Obligation to inspect.
        today (date): Business date.
        has_n4 (bool): An N4 notification already exists for the obligation.
        has_l1 (bool): An L1 notification already exists for the obligation.
        n4_threshold_days (int): Days late for N4 eligibility.
        l1_threshold_days (int): Days late for L1 eligibility.

    Returns:
        List[EscalationEvent]: Zero, one or two events, N4 first.
    """
    if obligation.status != ObligationStatus.LATE:
        return []
    days_late = (today - obligation.due_date).days
    events = []
    if days_late >= n4_threshold_days and not has_n4:
        events.append(
            EscalationEvent(obligation.id, obligation.tenant_id, NotificationType.FORM_N4, days_late)
        )
    if days_late >= l1_threshold_days and not has_l1:
        events.append(
            EscalationEvent(obligation.id, obligation.tenant_id, NotificationType.FORM_L1, days_late)
        )
    return events


class EscalationPolicy:
    """Runs check_escalation over all late obligations and dispatches the forms.

    Args:
        obligation_store: Obligation persistence.
        notification_store: Notification records used as the once-only guard.
        dispatcher (NotificationDispatcher, optional): Renders and delivers the forms.
        n4_threshold_days (int): Days late for N4 eligibility.
        l1_threshold_days (int): Days late for L1 eligibility.
        channel (str): Channel the forms are delivered on.
    """

    def __init__(
        self,
        obligation_store,
        notification_store,
        dispatcher=None,
        n4_threshold_days: int = N4_THRESHOLD_DAYS,
        l1_threshold_days: int = L1_THRESHOLD_DAYS,
        channel: str = Channel.WHATSAPP,
    ):
        self.obligation_store = obligation_store
        self.notification_store = notification_store
        self.dispatcher = dispatcher
        self.n4_threshold_days = n4_threshold_days
        self.l1_threshold_days = l1_threshold_days
        self.channel = channel

    def evaluate(self, obligation: Obligation, today: date) -> List[EscalationEvent]:
        has_n4 = (
            self.notification_store.find_notification(obligation.id, NotificationType.FORM_N4)
            is not None
        )
        has_l1 = (
            self.notification_store.find_notification(obligation.id, NotificationType.FORM_L1)
            is not None
        )
        return check_escalation(
            obligation,
            today,
            has_n4,
            has_l1,
            self.n4_threshold_days,
            self.l1_threshold_days,
        )

    @measure_duration(escalation_duration_seconds)
    def run(self, today: date) -> BatchResult:
        """Emit and dispatch escalation events for every late obligation.

        Returns:
            BatchResult: ``items`` holds the EscalationEvents emitted.
        """
        result = BatchResult(stage="escalate")
        late = self.obligation_store.list_by_status(ObligationStatus.LATE)

        for obligation in late:
            try:
                events = self.evaluate(obligation, today)
            except Exception as e:
                logger.exception(f"Escalation check failed for obligation {obligation.id}: {e}")
                result.record_failure(obligation.id, e)
                continue

            if not events:
                result.skipped += 1
                continue

            for event in events:
                logger.info(
                    f"Obligation {event.obligation_id} eligible for {event.form_type}",
                    extra={"context": {"days_late": event.days_late, "tenant_id": event.tenant_id}},
                )
                result.items.append(event)
                escalations_total.labels(form=event.form_type).inc()
                self._dispatch(event, today, result)

        logger.info(f"Escalation sweep complete: events={len(result.items)}, failed={len(result.failures)}")
        return result

    def _dispatch(self, event: EscalationEvent, today: date, result: BatchResult) -> None:
        if self.dispatcher is None:
            return
        try:
            record = self.dispatcher.dispatch(
                event.tenant_id,
                event.obligation_id,
                event.form_type,
                self.channel,
                today=today,
                days_late=event.days_late,
            )
            result.notifications.append(record)
        except Exception as e:
            logger.exception(f"Could not dispatch {event.form_type} for obligation {event.obligation_id}: {e}")
            result.record_failure(event.obligation_id, e, stage="notify")
