"""Lease Registry: tenant-to-unit rent terms and due-date arithmetic."""

import calendar
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from rentcycle.db.models import Lease
from rentcycle.errors import ValidationError
from rentcycle.logging_config import get_logger

logger = get_logger(__name__)

CENTS = Decimal("0.01")
_UNSET = object()


def parse_amount(value, field: str = "amount") -> Decimal:
    """Convert a money value to a two-decimal Decimal.

    Raises:
        ValidationError: If the value is not numeric or is negative.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number, got {value!r}")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number, got {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be finite, got {value!r}")
    if amount < 0:
        raise ValidationError(f"{field} must be non-negative, got {amount}")
    return amount.quantize(CENTS)


def validate_lease_terms(rent_amount, rent_due_day, lease_start, lease_end=None) -> Decimal:
    """Check lease invariants and return the normalised rent amount.

    Args:
        rent_amount: Monthly rent, non-negative.
        rent_due_day (int): Day of month rent is due, 1-31.
        lease_start (date): First day of the lease.
        lease_end (date, optional): Last day of the lease; None for month-to-month.

    Returns:
        Decimal: rent_amount rounded to cents.

    Raises:
        ValidationError: On any violated invariant.
    """
    amount = parse_amount(rent_amount, "rent_amount")
    if isinstance(rent_due_day, bool) or not isinstance(rent_due_day, int):
        raise ValidationError(f"rent_due_day must be an integer, got {rent_due_day!r}")
    if not 1 <= rent_due_day <= 31:
        raise ValidationError(f"rent_due_day must be between 1 and 31, got {rent_due_day}")
    if not isinstance(lease_start, date):
        raise ValidationError("lease_start must be a date")
    if lease_end is not None:
        if not isinstance(lease_end, date):
            raise ValidationError("lease_end must be a date or None")
        if lease_end < lease_start:
            raise ValidationError(
                f"lease_end {lease_end} is before lease_start {lease_start}"
            )
    return amount


def due_date_for(year: int, month: int, due_day: int) -> date:
    """Due date for a billing month, clamping the due day to the month's last day."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(due_day, last_day))


def period_due_date(lease: Lease, today: date) -> date:
    """Due date of the lease's billing period containing ``today``."""
    return due_date_for(today.year, today.month, lease.rent_due_day)


def previous_period_due_date(lease: Lease, today: date) -> date:
    """Due date of the billing period before the one containing ``today``."""
    if today.month == 1:
        return due_date_for(today.year - 1, 12, lease.rent_due_day)
    return due_date_for(today.year, today.month - 1, lease.rent_due_day)


def is_active(lease: Lease, today: date) -> bool:
    if lease.lease_start > today:
        return False
    return lease.lease_end is None or lease.lease_end >= today


class LeaseRegistry:
    """Creates and changes leases; never deletes them.

    Args:
        lease_store: Store implementing the lease operations of SqlLeaseStore.
    """

    def __init__(self, lease_store):
        self.lease_store = lease_store

    def assign_tenant(
        self,
        tenant_id: int,
        unit_id: int,
        rent_amount,
        rent_due_day: int,
        lease_start: date,
        lease_end: Optional[date] = None,
        is_primary: bool = False,
    ) -> Lease:
        """Create the lease that places a tenant in a unit."""
        amount = validate_lease_terms(rent_amount, rent_due_day, lease_start, lease_end)
        self.lease_store.get_tenant(tenant_id)
        self.lease_store.get_unit(unit_id)
        if is_primary and self.lease_store.find_primary_lease(tenant_id) is not None:
            raise ValidationError(f"Tenant {tenant_id} already has a primary lease")
        lease = self.lease_store.create_lease(
            tenant_id=tenant_id,
            unit_id=unit_id,
            rent_amount=amount,
            rent_due_day=rent_due_day,
            lease_start=lease_start,
            lease_end=lease_end,
            is_primary=is_primary,
        )
        logger.info(
            "Tenant assigned to unit",
            extra={"context": {"lease_id": lease.id, "tenant_id": tenant_id, "unit_id": unit_id}},
        )
        return lease

    def change_rent_terms(
        self,
        tenant_id: int,
        unit_id: int,
        rent_amount=None,
        rent_due_day: Optional[int] = None,
        lease_end=_UNSET,
    ) -> Lease:
        """Update rent terms, e.g. on renewal.

        Obligations already generated keep their amount; only obligations
        created after the change use the new terms. Pass ``lease_end=None``
        to convert the lease to month-to-month.
        """
        lease = self.lease_store.get_lease(tenant_id, unit_id)
        new_amount = lease.rent_amount if rent_amount is None else rent_amount
        new_due_day = lease.rent_due_day if rent_due_day is None else rent_due_day
        new_end = lease.lease_end if lease_end is _UNSET else lease_end
        amount = validate_lease_terms(new_amount, new_due_day, lease.lease_start, new_end)
        updated = self.lease_store.update_lease(
            lease.id, rent_amount=amount, rent_due_day=new_due_day, lease_end=new_end
        )
        logger.info(
            "Rent terms changed",
            extra={"context": {"lease_id": lease.id, "rent_amount": amount, "rent_due_day": new_due_day}},
        )
        return updated

    def end_lease(self, tenant_id: int, unit_id: int, lease_end: date) -> Lease:
        """Set the last day of a lease; the row itself is retained."""
        return self.change_rent_terms(tenant_id, unit_id, lease_end=lease_end)

    def active_leases(self, today: date) -> List[Lease]:
        return self.lease_store.list_active_leases(today)

    def get_lease(self, tenant_id: int, unit_id: int) -> Lease:
        return self.lease_store.get_lease(tenant_id, unit_id)
