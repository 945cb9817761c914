"""Result containers for the daily batches.

A batch never stops on a per-item error: the failure is logged, recorded
here, and the loop moves on to the next lease or obligation.
"""

from dataclasses import dataclass, field
from typing import Any, List

from rentcycle.db.models import DeliveryStatus
from rentcycle.metrics import batch_failures_total


@dataclass
class ItemFailure:
    """One lease or obligation a batch stage could not process."""

    stage: str
    subject_id: Any
    error_type: str
    message: str

    def as_dict(self) -> dict:
        return {
            "stage": self.stage,
            "subject_id": self.subject_id,
            "error_type": self.error_type,
            "message": self.message,
        }


@dataclass
class BatchResult:
    """Outcome of one batch stage.

    Attributes:
        stage (str): Stage name, e.g. 'generate', 'late', 'escalate'.
        items (list): What the stage produced (obligations or escalation events).
        skipped (int): Items examined and intentionally left alone.
        failures (List[ItemFailure]): Items that raised.
        notifications (list): Notification records dispatched by the stage.
    """

    stage: str
    items: List[Any] = field(default_factory=list)
    skipped: int = 0
    failures: List[ItemFailure] = field(default_factory=list)
    notifications: List[Any] = field(default_factory=list)

    def record_failure(self, subject_id, error: Exception, stage: str = None) -> ItemFailure:
        failure = ItemFailure(
            stage=stage or self.stage,
            subject_id=subject_id,
            error_type=type(error).__name__,
            message=str(error),
        )
        self.failures.append(failure)
        batch_failures_total.labels(stage=failure.stage).inc()
        return failure

    @property
    def notifications_sent(self) -> int:
        return sum(1 for n in self.notifications if n.status != DeliveryStatus.FAILED)

    @property
    def notifications_failed(self) -> int:
        return sum(1 for n in self.notifications if n.status == DeliveryStatus.FAILED)
