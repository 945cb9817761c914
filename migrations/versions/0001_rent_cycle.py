"""Rent cycle schema

Revision ID: 0001_rent_cycle
Revises:
Create Date: 2025-05-01 00:00:00
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_rent_cycle"
down_revision = None
branch_labels = None
depends_on = None

OBLIGATION_STATUS = ("pending", "paid", "late", "partial")
NOTIFICATION_TYPE = ("rent_due", "rent_late", "receipt", "form_n4", "form_l1")
NOTIFICATION_CHANNEL = ("whatsapp", "email")
DELIVERY_STATUS = ("pending", "sent", "delivered", "read", "failed")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "properties",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("address", sa.String(), nullable=False),
        sa.Column("city", sa.String(), nullable=False),
        sa.Column("province", sa.String(), nullable=False),
        sa.Column("postal_code", sa.String(), nullable=False),
    )
    op.create_table(
        "units",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column(
            "property_id", sa.Integer(), sa.ForeignKey("properties.id"), nullable=False, index=True
        ),
        sa.Column("unit_number", sa.String(), nullable=False),
    )
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("phone", sa.String(), nullable=False),
    )
    op.create_table(
        "leases",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False, index=True),
        sa.Column("unit_id", sa.Integer(), sa.ForeignKey("units.id"), nullable=False, index=True),
        sa.Column("rent_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("rent_due_day", sa.Integer(), nullable=False),
        sa.Column("lease_start", sa.Date(), nullable=False),
        sa.Column("lease_end", sa.Date(), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "unit_id", name="uq_lease_tenant_unit"),
        sa.CheckConstraint("rent_amount >= 0", name="ck_lease_rent_amount"),
        sa.CheckConstraint("rent_due_day BETWEEN 1 AND 31", name="ck_lease_due_day"),
    )
    op.create_table(
        "rent_obligations",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False, index=True),
        sa.Column("unit_id", sa.Integer(), sa.ForeignKey("units.id"), nullable=False, index=True),
        sa.Column("lease_id", sa.Integer(), sa.ForeignKey("leases.id"), nullable=True),
        sa.Column("amount_due", sa.Numeric(10, 2), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False, index=True),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column("amount_paid", sa.Numeric(10, 2), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*OBLIGATION_STATUS, name="obligation_status"),
            nullable=False,
            index=True,
        ),
        sa.Column("payment_method", sa.String(), nullable=True),
        sa.Column("payment_request_link", sa.Text(), nullable=True),
        sa.Column("late_since", sa.Date(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "tenant_id", "unit_id", "due_date", name="uq_obligation_tenant_unit_due"
        ),
    )
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False, index=True),
        sa.Column(
            "obligation_id",
            sa.Integer(),
            sa.ForeignKey("rent_obligations.id"),
            nullable=True,
            index=True,
        ),
        sa.Column("type", sa.Enum(*NOTIFICATION_TYPE, name="notification_type"), nullable=False),
        sa.Column(
            "channel", sa.Enum(*NOTIFICATION_CHANNEL, name="notification_channel"), nullable=False
        ),
        sa.Column("status", sa.Enum(*DELIVERY_STATUS, name="delivery_status"), nullable=False),
        sa.Column("external_id", sa.String(), nullable=True, index=True),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("retry_of_id", sa.Integer(), sa.ForeignKey("notifications.id"), nullable=True),
        *_timestamps(),
    )


def downgrade():
    op.drop_table("notifications")
    op.drop_table("rent_obligations")
    op.drop_table("leases")
    op.drop_table("tenants")
    op.drop_table("units")
    op.drop_table("properties")
    op.execute("DROP TYPE IF EXISTS delivery_status")
    op.execute("DROP TYPE IF EXISTS notification_channel")
    op.execute("DROP TYPE IF EXISTS notification_type")
    op.execute("DROP TYPE IF EXISTS obligation_status")
