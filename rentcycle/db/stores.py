"""SQLAlchemy-backed stores for leases, obligations and notifications.

Every public method is one unit of work: it opens its own session through
get_db_session, commits on success and hands back detached rows. Database
failures surface as StoreError so batch loops can skip the affected item.
"""

from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import exists
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import aliased

from rentcycle.db.models import (
    DeliveryStatus,
    Lease,
    Notification,
    Obligation,
    ObligationStatus,
    Tenant,
    Unit,
)
from rentcycle.db.session import get_db_session
from rentcycle.errors import InvalidTransition, NotFound, StoreError
from rentcycle.logging_config import get_logger

logger = get_logger(__name__)


class _SqlStore:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        try:
            with get_db_session(self._session_factory) as db:
                yield db
        except SQLAlchemyError as e:
            raise StoreError(f"{type(self).__name__}: {e}") from e


class SqlLeaseStore(_SqlStore):
    """Lease, tenant and unit lookups plus lease writes."""

    def list_active_leases(self, as_of: date) -> List[Lease]:
        with self._session() as db:
            return (
                db.query(Lease)
                .filter(Lease.lease_start <= as_of)
                .filter((Lease.lease_end.is_(None)) | (Lease.lease_end >= as_of))
                .order_by(Lease.id)
                .all()
            )

    def get_lease(self, tenant_id: int, unit_id: int) -> Lease:
        with self._session() as db:
            lease = db.query(Lease).filter_by(tenant_id=tenant_id, unit_id=unit_id).first()
            if lease is None:
                raise NotFound(f"No lease for tenant {tenant_id} in unit {unit_id}")
            return lease

    def find_primary_lease(self, tenant_id: int) -> Optional[Lease]:
        with self._session() as db:
            return db.query(Lease).filter_by(tenant_id=tenant_id, is_primary=True).first()

    def create_lease(self, **fields) -> Lease:
        with self._session() as db:
            lease = Lease(**fields)
            db.add(lease)
            db.flush()
            db.refresh(lease)
            return lease

    def update_lease(self, lease_id: int, **changes) -> Lease:
        with self._session() as db:
            lease = db.get(Lease, lease_id)
            if lease is None:
                raise NotFound(f"Lease {lease_id} not found")
            for name, value in changes.items():
                setattr(lease, name, value)
            db.flush()
            db.refresh(lease)
            return lease

    def get_tenant(self, tenant_id: int) -> Tenant:
        with self._session() as db:
            tenant = db.get(Tenant, tenant_id)
            if tenant is None:
                raise NotFound(f"Tenant {tenant_id} not found")
            return tenant

    def get_unit(self, unit_id: int) -> Unit:
        with self._session() as db:
            unit = db.get(Unit, unit_id)
            if unit is None:
                raise NotFound(f"Unit {unit_id} not found")
            return unit


class SqlObligationStore(_SqlStore):
    """Obligation reads and single-row writes."""

    def find_obligation(self, tenant_id: int, unit_id: int, due_date: date) -> Optional[Obligation]:
        with self._session() as db:
            return (
                db.query(Obligation)
                .filter_by(tenant_id=tenant_id, unit_id=unit_id, due_date=due_date)
                .first()
            )

    def get_obligation(self, obligation_id: int) -> Obligation:
        with self._session() as db:
            obligation = db.get(Obligation, obligation_id)
            if obligation is None:
                raise NotFound(f"Obligation {obligation_id} not found")
            return obligation

    def create_obligation(
        self,
        tenant_id: int,
        unit_id: int,
        amount_due: Decimal,
        due_date: date,
        lease_id: Optional[int] = None,
        payment_request_link: Optional[str] = None,
    ) -> Optional[Obligation]:
        """Insert a pending obligation.

        The (tenant_id, unit_id, due_date) uniqueness constraint decides
        whether the row is new. Returns None when another writer already
        created the same obligation.
        """
        try:
            with self._session() as db:
                obligation = Obligation(
                    tenant_id=tenant_id,
                    unit_id=unit_id,
                    lease_id=lease_id,
                    amount_due=amount_due,
                    due_date=due_date,
                    status=ObligationStatus.PENDING,
                    payment_request_link=payment_request_link,
                )
                db.add(obligation)
                db.flush()
                db.refresh(obligation)
                return obligation
        except StoreError as e:
            if not isinstance(e.__cause__, IntegrityError):
                raise
            if self.find_obligation(tenant_id, unit_id, due_date) is None:
                raise
            logger.info(
                "Obligation already exists, insert skipped",
                extra={"context": {"tenant_id": tenant_id, "unit_id": unit_id, "due_date": due_date}},
            )
            return None

    def update_obligation_status(
        self,
        obligation_id: int,
        status: str,
        payment_date: Optional[date] = None,
        method: Optional[str] = None,
        amount_paid: Optional[Decimal] = None,
        late_since: Optional[date] = None,
        expected_status=None,
    ) -> Obligation:
        """Set the status of one obligation.

        ``expected_status`` (a status or tuple of statuses) makes the update
        conditional on the status read inside the same transaction, so two
        writers cannot both apply a transition.
        """
        with self._session() as db:
            obligation = (
                db.query(Obligation)
                .filter(Obligation.id == obligation_id)
                .with_for_update()
                .first()
            )
            if obligation is None:
                raise NotFound(f"Obligation {obligation_id} not found")
            if expected_status is not None:
                allowed = (expected_status,) if isinstance(expected_status, str) else tuple(expected_status)
                if obligation.status not in allowed:
                    raise InvalidTransition(
                        f"Obligation {obligation_id} is {obligation.status}, expected one of {allowed}",
                        current_status=obligation.status,
                        requested_status=status,
                    )
            obligation.status = status
            if payment_date is not None:
                obligation.payment_date = payment_date
            if method is not None:
                obligation.payment_method = method
            if amount_paid is not None:
                obligation.amount_paid = amount_paid
            if late_since is not None:
                obligation.late_since = late_since
            db.flush()
            db.refresh(obligation)
            return obligation

    def find_latest_obligation(self, tenant_id: int, unit_id: int) -> Optional[Obligation]:
        """Obligation with the latest due date for a tenant and unit, if any."""
        with self._session() as db:
            return (
                db.query(Obligation)
                .filter_by(tenant_id=tenant_id, unit_id=unit_id)
                .order_by(Obligation.due_date.desc())
                .first()
            )

    def list_open_obligations(self, as_of: date) -> List[Obligation]:
        """Pending and late obligations due on or before ``as_of``."""
        with self._session() as db:
            return (
                db.query(Obligation)
                .filter(Obligation.status.in_(ObligationStatus.OPEN))
                .filter(Obligation.due_date <= as_of)
                .order_by(Obligation.due_date, Obligation.id)
                .all()
            )

    def list_by_status(self, status: str) -> List[Obligation]:
        with self._session() as db:
            return (
                db.query(Obligation)
                .filter(Obligation.status == status)
                .order_by(Obligation.due_date, Obligation.id)
                .all()
            )

    def list_for_tenant(self, tenant_id: int) -> List[Obligation]:
        with self._session() as db:
            return (
                db.query(Obligation)
                .filter(Obligation.tenant_id == tenant_id)
                .order_by(Obligation.due_date.desc())
                .all()
            )


class SqlNotificationStore(_SqlStore):
    """Append-only notification records and their delivery updates."""

    def create_notification(
        self,
        tenant_id: int,
        obligation_id: Optional[int],
        type: str,
        channel: str,
        retry_of_id: Optional[int] = None,
    ) -> Notification:
        with self._session() as db:
            record = Notification(
                tenant_id=tenant_id,
                obligation_id=obligation_id,
                type=type,
                channel=channel,
                status=DeliveryStatus.PENDING,
                retry_of_id=retry_of_id,
            )
            db.add(record)
            db.flush()
            db.refresh(record)
            return record

    def update_notification_status(
        self,
        notification_id: int,
        status: str,
        external_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Notification:
        with self._session() as db:
            record = db.get(Notification, notification_id)
            if record is None:
                raise NotFound(f"Notification {notification_id} not found")
            record.status = status
            if external_id is not None:
                record.external_id = external_id
            if error is not None:
                record.error = error
            if status == DeliveryStatus.SENT and record.sent_at is None:
                record.sent_at = datetime.now(timezone.utc).replace(tzinfo=None)
            db.flush()
            db.refresh(record)
            return record

    def get_notification(self, notification_id: int) -> Notification:
        with self._session() as db:
            record = db.get(Notification, notification_id)
            if record is None:
                raise NotFound(f"Notification {notification_id} not found")
            return record

    def find_notification(self, obligation_id: int, type: str) -> Optional[Notification]:
        """Most recent notification of ``type`` for the obligation, any status."""
        with self._session() as db:
            return (
                db.query(Notification)
                .filter_by(obligation_id=obligation_id, type=type)
                .order_by(Notification.id.desc())
                .first()
            )

    def find_by_external_id(self, external_id: str) -> Optional[Notification]:
        with self._session() as db:
            return db.query(Notification).filter_by(external_id=external_id).first()

    def list_failed(self, include_retried: bool = False) -> List[Notification]:
        """Failed notifications; by default only those no later attempt retried."""
        with self._session() as db:
            query = db.query(Notification).filter(Notification.status == DeliveryStatus.FAILED)
            if not include_retried:
                retry = aliased(Notification)
                query = query.filter(~exists().where(retry.retry_of_id == Notification.id))
            return query.order_by(Notification.id).all()

    def list_for_obligation(self, obligation_id: int) -> List[Notification]:
        with self._session() as db:
            return (
                db.query(Notification)
                .filter_by(obligation_id=obligation_id)
                .order_by(Notification.id)
                .all()
            )
