"""Test configuration and fixtures."""

import os
import sys
import unittest
from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.dirname(os.path.dirname(__file__))))

from rentcycle.db.models import Base, Lease, Obligation, ObligationStatus, Property, Tenant, Unit
from rentcycle.db.session import get_db_session
from rentcycle.db.stores import SqlLeaseStore, SqlNotificationStore, SqlObligationStore
from rentcycle.errors import TransportError

# Use an in-memory SQLite database shared by every session of a test
TEST_DATABASE_URL = "sqlite://"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=test_engine
)


def setup_test_db():
    """Create all tables in the test database."""
    Base.metadata.create_all(bind=test_engine)


def teardown_test_db():
    """Drop all tables from the test database."""
    Base.metadata.drop_all(bind=test_engine)


class RecordingTransport:
    """Transport double that records what it was asked to send."""

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []
        self.documents = []
        self._counter = 0

    def _next_id(self):
        if self.fail:
            raise TransportError("transport unavailable", status_code=503)
        self._counter += 1
        return f"wamid.{self._counter}"

    def send(self, recipient, template_type, params):
        message_id = self._next_id()
        self.sent.append((recipient, template_type, params))
        return message_id

    def send_document(self, recipient, filename, content, caption=""):
        message_id = self._next_id()
        self.documents.append((recipient, filename, content, caption))
        return message_id


class BaseTestCase(unittest.TestCase):
    """Base test case with a fresh database and stores per test."""

    def setUp(self):
        """Create the schema and the stores."""
        setup_test_db()
        self.lease_store = SqlLeaseStore(TestSessionLocal)
        self.obligation_store = SqlObligationStore(TestSessionLocal)
        self.notification_store = SqlNotificationStore(TestSessionLocal)

    def tearDown(self):
        """Drop the schema so each test starts empty."""
        teardown_test_db()

    def add(self, instance):
        with get_db_session(TestSessionLocal) as db:
            db.add(instance)
            db.flush()
            db.refresh(instance)
        return instance

    def add_tenant(self, first_name="John", last_name="Smith", email="john@example.com", phone="14165550100"):
        return self.add(Tenant(first_name=first_name, last_name=last_name, email=email, phone=phone))

    def add_unit(self, unit_number="101"):
        building = self.add(
            Property(
                name="Main Street",
                address="123 Main Street",
                city="Toronto",
                province="ON",
                postal_code="M5V 1A1",
            )
        )
        return self.add(Unit(property_id=building.id, unit_number=unit_number))

    def add_lease(self, tenant=None, unit=None, rent_amount="1500.00", rent_due_day=1,
                  lease_start=date(2025, 1, 1), lease_end=None, is_primary=True):
        tenant = tenant or self.add_tenant()
        unit = unit or self.add_unit()
        return self.add(
            Lease(
                tenant_id=tenant.id,
                unit_id=unit.id,
                rent_amount=Decimal(rent_amount),
                rent_due_day=rent_due_day,
                lease_start=lease_start,
                lease_end=lease_end,
                is_primary=is_primary,
            )
        )

    def add_obligation(self, lease, due_date, status=ObligationStatus.PENDING, amount_due=None):
        return self.add(
            Obligation(
                tenant_id=lease.tenant_id,
                unit_id=lease.unit_id,
                lease_id=lease.id,
                amount_due=Decimal(amount_due) if amount_due else lease.rent_amount,
                due_date=due_date,
                status=status,
            )
        )

    def all_obligations(self):
        with get_db_session(TestSessionLocal) as db:
            return db.query(Obligation).order_by(Obligation.id).all()
