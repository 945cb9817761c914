"""Database ORM models for the rent cycle engine.

This module defines the SQLAlchemy models:
Property, Unit, Tenant, Lease, Obligation and Notification.

A Lease is the single tenant-to-unit relationship carrying rent terms.
Obligations copy the lease amount at creation and never follow later
lease changes.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Enum,
    Date,
    DateTime,
    Numeric,
    Boolean,
    Text,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class ObligationStatus:
    PENDING = "pending"
    LATE = "late"
    PAID = "paid"
    PARTIAL = "partial"

    ALL = (PENDING, PAID, LATE, PARTIAL)
    OPEN = (PENDING, LATE)
    TERMINAL = (PAID, PARTIAL)


class NotificationType:
    RENT_DUE = "rent_due"
    RENT_LATE = "rent_late"
    RECEIPT = "receipt"
    FORM_N4 = "form_n4"
    FORM_L1 = "form_l1"

    ALL = (RENT_DUE, RENT_LATE, RECEIPT, FORM_N4, FORM_L1)
    FORMS = (FORM_N4, FORM_L1)


class Channel:
    WHATSAPP = "whatsapp"
    EMAIL = "email"

    ALL = (WHATSAPP, EMAIL)


class DeliveryStatus:
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"

    ALL = (PENDING, SENT, DELIVERED, READ, FAILED)


class Property(Base):
    """ORM model for properties table.

    Attributes:
        id (int): Primary key.
        name (str): Display name of the property.
        address (str): Street address.
        city (str): City.
        province (str): Province code, e.g. 'ON'.
        postal_code (str): Postal code.
    """

    __tablename__ = "properties"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=False)
    city = Column(String, nullable=False)
    province = Column(String, nullable=False, default="ON")
    postal_code = Column(String, nullable=False)

    @property
    def full_address(self) -> str:
        return f"{self.address}, {self.city}, {self.province} {self.postal_code}"


class Unit(Base):
    """ORM model for units table.

    Attributes:
        id (int): Primary key.
        property_id (int): Foreign key referencing properties.id.
        unit_number (str): Unit label within the property.
    """

    __tablename__ = "units"
    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(
        Integer, ForeignKey("properties.id"), nullable=False, index=True
    )
    unit_number = Column(String, nullable=False)

    building = relationship("Property", lazy="joined")

    @property
    def address(self) -> str:
        if self.building is None:
            return self.unit_number
        return f"{self.unit_number}, {self.building.full_address}"


class Tenant(Base):
    """ORM model for tenants table.

    Attributes:
        id (int): Primary key.
        first_name (str): Given name.
        last_name (str): Family name.
        email (str): E-mail address, also the Interac request recipient.
        phone (str): WhatsApp-enabled phone number.
    """

    __tablename__ = "tenants"
    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Lease(Base):
    """ORM model for leases table (the tenant-unit relationship).

    Attributes:
        id (int): Primary key.
        tenant_id (int): Foreign key referencing tenants.id.
        unit_id (int): Foreign key referencing units.id.
        rent_amount (Decimal): Monthly rent, non-negative.
        rent_due_day (int): Day of month rent is due, 1-31.
        lease_start (date): First day of the lease.
        lease_end (date): Last day of the lease, None for month-to-month.
        is_primary (bool): Tenant's primary lease; at most one per tenant.
    """

    __tablename__ = "leases"
    __table_args__ = (
        UniqueConstraint("tenant_id", "unit_id", name="uq_lease_tenant_unit"),
        CheckConstraint("rent_amount >= 0", name="ck_lease_rent_amount"),
        CheckConstraint("rent_due_day BETWEEN 1 AND 31", name="ck_lease_due_day"),
    )
    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=False, index=True)
    rent_amount = Column(Numeric(10, 2), nullable=False)
    rent_due_day = Column(Integer, nullable=False)
    lease_start = Column(Date, nullable=False)
    lease_end = Column(Date, nullable=True)
    is_primary = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    tenant = relationship("Tenant", lazy="joined")
    unit = relationship("Unit", lazy="joined")


class Obligation(Base):
    """ORM model for rent_obligations table, one billing period's rent.

    Attributes:
        id (int): Primary key.
        tenant_id (int): Foreign key referencing tenants.id.
        unit_id (int): Foreign key referencing units.id.
        lease_id (int): Lease the obligation was generated from (informational).
        amount_due (Decimal): Rent snapshot taken from the lease at creation.
        due_date (date): Calendar due date.
        payment_date (date): Date the payment was received.
        amount_paid (Decimal): Amount received.
        status (str): 'pending', 'late', 'paid' or 'partial'.
        payment_method (str): How the tenant paid, e.g. 'e-transfer'.
        payment_request_link (str): Interac request link sent to the tenant.
        late_since (date): Day the obligation was marked late; kept after payment.
    """

    __tablename__ = "rent_obligations"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "unit_id", "due_date", name="uq_obligation_tenant_unit_due"
        ),
    )
    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=False, index=True)
    lease_id = Column(Integer, ForeignKey("leases.id"), nullable=True)
    amount_due = Column(Numeric(10, 2), nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    payment_date = Column(Date, nullable=True)
    amount_paid = Column(Numeric(10, 2), nullable=True)
    status = Column(
        Enum(*ObligationStatus.ALL, name="obligation_status"),
        nullable=False,
        default=ObligationStatus.PENDING,
        index=True,
    )
    payment_method = Column(String, nullable=True)
    payment_request_link = Column(Text, nullable=True)
    late_since = Column(Date, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @property
    def was_late(self) -> bool:
        return self.late_since is not None

    def days_late(self, today) -> int:
        return max(0, (today - self.due_date).days)


class Notification(Base):
    """ORM model for notifications table; one row per dispatch attempt.

    Attributes:
        id (int): Primary key.
        tenant_id (int): Foreign key referencing tenants.id.
        obligation_id (int): Foreign key referencing rent_obligations.id, optional.
        type (str): rent_due, rent_late, receipt, form_n4 or form_l1.
        channel (str): 'whatsapp' or 'email'.
        status (str): pending, sent, delivered, read or failed.
        external_id (str): Message id returned by the transport.
        sent_at (datetime): When the transport accepted the message.
        error (str): Transport error text for failed attempts.
        retry_of_id (int): Earlier failed attempt this one retries.
    """

    __tablename__ = "notifications"
    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    obligation_id = Column(
        Integer, ForeignKey("rent_obligations.id"), nullable=True, index=True
    )
    type = Column(Enum(*NotificationType.ALL, name="notification_type"), nullable=False)
    channel = Column(Enum(*Channel.ALL, name="notification_channel"), nullable=False)
    status = Column(
        Enum(*DeliveryStatus.ALL, name="delivery_status"),
        nullable=False,
        default=DeliveryStatus.PENDING,
    )
    external_id = Column(String, nullable=True, index=True)
    sent_at = Column(DateTime, nullable=True)
    error = Column(Text, nullable=True)
    retry_of_id = Column(Integer, ForeignKey("notifications.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )
