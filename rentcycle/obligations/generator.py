"""Obligation Generator: creates each billing period's rent obligations."""

from datetime import date
from typing import List, Optional

from rentcycle.batch import BatchResult
from rentcycle.db.models import Channel, Lease, NotificationType
from rentcycle.errors import RentCycleError
from rentcycle.leases.registry import is_active, period_due_date, previous_period_due_date
from rentcycle.logging_config import get_logger
from rentcycle.metrics import (
    generation_duration_seconds,
    measure_duration,
    obligations_generated_total,
)

logger = get_logger(__name__)


def _month(value: date):
    return value.year, value.month


class ObligationGenerator:
    """Creates pending obligations for active leases whose due day has come.

    A lease is billed when this month's due date (clamped to the month's last
    day) is on or before ``today``, the lease had started by then, and no
    obligation exists yet for that (tenant, unit, due date). A lease already
    being billed also gets last period's obligation if the run on its due
    date was missed. Re-running for the same day creates nothing new.

    Args:
        lease_store: Source of active leases.
        obligation_store: Obligation persistence.
        dispatcher (NotificationDispatcher, optional): Sends the rent_due notice.
        link_generator (InteracLinkGenerator, optional): Builds payment request links.
        channel (str): Channel for rent_due notices.
    """

    def __init__(
        self,
        lease_store,
        obligation_store,
        dispatcher=None,
        link_generator=None,
        channel: str = Channel.WHATSAPP,
    ):
        self.lease_store = lease_store
        self.obligation_store = obligation_store
        self.dispatcher = dispatcher
        self.link_generator = link_generator
        self.channel = channel

    @measure_duration(generation_duration_seconds)
    def generate_due(self, today: date) -> BatchResult:
        """Create the obligations due as of ``today``.

        Args:
            today (date): Business date of the run.

        Returns:
            BatchResult: ``items`` holds the obligations created by this call.
        """
        result = BatchResult(stage="generate")
        leases = self.lease_store.list_active_leases(today)
        logger.info(f"Checking {len(leases)} active leases for rent due on {today}")

        for lease in leases:
            created = []
            try:
                for due_date in self.billable_due_dates(lease, today):
                    obligation = self._generate_for_period(lease, due_date)
                    if obligation is not None:
                        created.append(obligation)
            except Exception as e:
                logger.exception(
                    f"Failed to generate obligation for lease {lease.id}: {e}",
                    extra={"context": {"lease_id": lease.id, "tenant_id": lease.tenant_id}},
                )
                result.record_failure(lease.id, e)
            else:
                if not created:
                    result.skipped += 1

            # Obligations committed before a failure still get their notice.
            for obligation in created:
                result.items.append(obligation)
                obligations_generated_total.inc()
                self._notify_due(obligation, today, result)

        logger.info(
            f"Generation complete: created={len(result.items)}, "
            f"skipped={result.skipped}, failed={len(result.failures)}"
        )
        return result

    def billable_due_dates(self, lease: Lease, today: date) -> List[date]:
        """Due dates ``generate_due`` should bill for a lease on ``today``.

        The current period's due date once it has arrived, preceded by the
        previous period's when the lease was billed before that period but
        the run on its due date was missed.
        """
        if not is_active(lease, today):
            return []
        if lease.rent_amount <= 0:
            logger.debug(f"Lease {lease.id} has no rent to bill")
            return []

        due_dates = []
        previous = previous_period_due_date(lease, today)
        if previous >= lease.lease_start:
            latest = self.obligation_store.find_latest_obligation(lease.tenant_id, lease.unit_id)
            # Compared by month so a changed due day does not bill one month twice.
            if latest is not None and _month(latest.due_date) < _month(previous):
                logger.warning(
                    f"Lease {lease.id} was not billed for {previous}; catching up",
                    extra={"context": {"last_due_date": latest.due_date}},
                )
                due_dates.append(previous)

        current = period_due_date(lease, today)
        # A lease that began after this period's due day is first billed next period.
        if lease.lease_start <= current <= today:
            due_dates.append(current)
        return due_dates

    def _generate_for_period(self, lease: Lease, due_date: date):
        existing = self.obligation_store.find_obligation(lease.tenant_id, lease.unit_id, due_date)
        if existing is not None:
            return None

        obligation = self.obligation_store.create_obligation(
            tenant_id=lease.tenant_id,
            unit_id=lease.unit_id,
            amount_due=lease.rent_amount,
            due_date=due_date,
            lease_id=lease.id,
            payment_request_link=self._request_link(lease),
        )
        if obligation is not None:
            logger.info(
                f"Created obligation {obligation.id} for tenant {lease.tenant_id}, unit {lease.unit_id}",
                extra={"context": {"due_date": due_date, "amount_due": lease.rent_amount}},
            )
        return obligation

    def _request_link(self, lease: Lease) -> Optional[str]:
        if self.link_generator is None or lease.tenant is None:
            return None
        unit_number = lease.unit.unit_number if lease.unit is not None else lease.unit_id
        try:
            return self.link_generator.create_request_link(
                lease.tenant.email,
                lease.tenant.first_name,
                lease.rent_amount,
                f"Rent payment for unit {unit_number}",
            )
        except RentCycleError as e:
            logger.error(f"Error generating payment request link for lease {lease.id}: {e}")
            return None

    def _notify_due(self, obligation, today: date, result: BatchResult) -> None:
        if self.dispatcher is None:
            return
        try:
            record = self.dispatcher.dispatch(
                obligation.tenant_id,
                obligation.id,
                NotificationType.RENT_DUE,
                self.channel,
                today=today,
            )
            result.notifications.append(record)
        except Exception as e:
            logger.exception(f"Could not dispatch rent_due for obligation {obligation.id}: {e}")
            result.record_failure(obligation.id, e, stage="notify")
