"""Daily rent cycle: generate, mark late, escalate.

``run_daily_cycle`` is the single entry point a scheduler or command line
calls once per day. Every stage runs even if an earlier one failed, and the
summary always comes back.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from rentcycle.batch import BatchResult, ItemFailure
from rentcycle.config import Settings
from rentcycle.db.models import Channel
from rentcycle.db.session import build_session_factory
from rentcycle.db.stores import SqlLeaseStore, SqlNotificationStore, SqlObligationStore
from rentcycle.escalation.policy import EscalationPolicy
from rentcycle.forms.ltb_forms import LtbFormRenderer
from rentcycle.logging_config import get_logger
from rentcycle.metrics import daily_cycle_duration_seconds, measure_duration
from rentcycle.notifications.dispatcher import NotificationDispatcher
from rentcycle.notifications.email import EmailTransport
from rentcycle.notifications.whatsapp import WhatsAppTransport
from rentcycle.obligations.generator import ObligationGenerator
from rentcycle.obligations.state_machine import ObligationStateMachine
from rentcycle.payments.interac import InteracLinkGenerator

logger = get_logger(__name__)


@dataclass
class DailyCycleSummary:
    """Counts and failures of one daily cycle."""

    today: date
    generated: int = 0
    latened: int = 0
    escalated: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    failures: List[ItemFailure] = field(default_factory=list)

    def add(self, result: BatchResult) -> None:
        self.notifications_sent += result.notifications_sent
        self.notifications_failed += result.notifications_failed
        self.failures.extend(result.failures)

    @property
    def succeeded(self) -> int:
        return self.generated + self.latened + self.escalated + self.notifications_sent

    @property
    def failed(self) -> int:
        return len(self.failures) + self.notifications_failed

    @property
    def all_failed(self) -> bool:
        """True when the cycle attempted work and none of it succeeded."""
        return self.failed > 0 and self.succeeded == 0

    @property
    def exit_code(self) -> int:
        return 1 if self.all_failed else 0

    def as_dict(self) -> dict:
        return {
            "today": self.today.isoformat(),
            "generated": self.generated,
            "latened": self.latened,
            "escalated": self.escalated,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
            "failures": [f.as_dict() for f in self.failures],
        }


class RentCycleEngine:
    """Wires stores, transports and the engine components together."""

    def __init__(
        self,
        lease_store,
        obligation_store,
        notification_store,
        dispatcher,
        link_generator=None,
        settings: Optional[Settings] = None,
        channel: str = Channel.WHATSAPP,
    ):
        settings = settings or Settings()
        self.settings = settings
        self.lease_store = lease_store
        self.obligation_store = obligation_store
        self.notification_store = notification_store
        self.dispatcher = dispatcher
        self.generator = ObligationGenerator(
            lease_store, obligation_store, dispatcher, link_generator, channel=channel
        )
        self.state_machine = ObligationStateMachine(
            obligation_store, dispatcher, grace_days=settings.grace_days, channel=channel
        )
        self.escalation = EscalationPolicy(
            obligation_store,
            notification_store,
            dispatcher,
            n4_threshold_days=settings.n4_threshold_days,
            l1_threshold_days=settings.l1_threshold_days,
            channel=channel,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, session_factory=None) -> "RentCycleEngine":
        settings = settings or Settings.from_env()
        session_factory = session_factory or build_session_factory(settings.database_url)
        lease_store = SqlLeaseStore(session_factory)
        obligation_store = SqlObligationStore(session_factory)
        notification_store = SqlNotificationStore(session_factory)
        dispatcher = NotificationDispatcher(
            notification_store,
            lease_store,
            obligation_store,
            transports={
                Channel.WHATSAPP: WhatsAppTransport.from_settings(settings),
                Channel.EMAIL: EmailTransport.from_settings(settings),
            },
            renderer=LtbFormRenderer(),
            landlord_name=settings.landlord_name,
        )
        return cls(
            lease_store,
            obligation_store,
            notification_store,
            dispatcher,
            link_generator=InteracLinkGenerator(settings.interac_request_base_url),
            settings=settings,
        )

    @measure_duration(daily_cycle_duration_seconds)
    def run_daily_cycle(self, today: date) -> DailyCycleSummary:
        """Generate due obligations, mark overdue ones late, then escalate.

        Args:
            today (date): Business date of the run.

        Returns:
            DailyCycleSummary: Counts of each stage plus every per-item failure.
        """
        summary = DailyCycleSummary(today=today)
        logger.info(f"Starting daily rent cycle for {today}")

        result = self._run_stage("generate", self.generator.generate_due, today, summary)
        summary.generated = len(result.items)
        result = self._run_stage("late", self.state_machine.update_late_status, today, summary)
        summary.latened = len(result.items)
        result = self._run_stage("escalate", self.escalation.run, today, summary)
        summary.escalated = len(result.items)

        log = logger.warning if summary.failures or summary.notifications_failed else logger.info
        log(
            f"Daily rent cycle for {today} finished: generated={summary.generated}, "
            f"latened={summary.latened}, escalated={summary.escalated}, "
            f"sent={summary.notifications_sent}, notifications_failed={summary.notifications_failed}, "
            f"failures={len(summary.failures)}"
        )
        return summary

    @staticmethod
    def _run_stage(stage, func, today, summary) -> BatchResult:
        try:
            result = func(today)
        except Exception as e:
            # The stage could not even list its work, e.g. the store is down.
            logger.exception(f"Stage {stage} aborted: {e}")
            result = BatchResult(stage=stage)
            result.record_failure(None, e)
        summary.add(result)
        return result


def run_daily_cycle(today: date, engine: Optional[RentCycleEngine] = None) -> DailyCycleSummary:
    """Run one daily cycle, building the engine from the environment if none is given."""
    engine = engine or RentCycleEngine.from_settings()
    return engine.run_daily_cycle(today)
