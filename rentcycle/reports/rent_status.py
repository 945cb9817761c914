"""Rent status reports over stored obligations."""

from datetime import date

import pandas as pd

from rentcycle.db.models import ObligationStatus
from rentcycle.logging_config import get_logger

logger = get_logger(__name__)

STATUS_COLUMNS = [
    "obligation_id",
    "tenant_id",
    "unit_id",
    "due_date",
    "amount_due",
    "status",
    "days_past_due",
]


def check_rent_status(obligation_store, today: date) -> pd.DataFrame:
    """Open obligations as of ``today`` with their days past due.

    Args:
        obligation_store: Obligation persistence.
        today (date): Business date.

    Returns:
        pd.DataFrame: One row per pending or late obligation, most overdue first.
    """
    rows = [
        {
            "obligation_id": o.id,
            "tenant_id": o.tenant_id,
            "unit_id": o.unit_id,
            "due_date": o.due_date,
            "amount_due": float(o.amount_due),
            "status": o.status,
            "days_past_due": o.days_late(today),
        }
        for o in obligation_store.list_open_obligations(today)
    ]
    if not rows:
        logger.info("No open obligations")
        return pd.DataFrame(columns=STATUS_COLUMNS)
    df = pd.DataFrame(rows, columns=STATUS_COLUMNS)
    return df.sort_values(["days_past_due", "obligation_id"], ascending=[False, True]).reset_index(drop=True)


def tenant_balance(obligation_store, tenant_id: int) -> dict:
    """Totals owed and paid by one tenant across all obligations.

    Partial payments count towards ``paid_amount`` and their shortfall
    towards ``total_owed``.
    """
    obligations = obligation_store.list_for_tenant(tenant_id)
    if not obligations:
        return {
            "tenant_id": tenant_id,
            "total_owed": 0.0,
            "pending_amount": 0.0,
            "late_amount": 0.0,
            "shortfall_amount": 0.0,
            "paid_amount": 0.0,
            "total_obligations": 0,
        }

    df = pd.DataFrame(
        [
            {
                "status": o.status,
                "amount_due": float(o.amount_due),
                "amount_paid": float(o.amount_paid or 0),
            }
            for o in obligations
        ]
    )
    by_status = df.groupby("status")["amount_due"].sum()
    partial = df[df["status"] == ObligationStatus.PARTIAL]
    shortfall = float((partial["amount_due"] - partial["amount_paid"]).sum())
    pending = float(by_status.get(ObligationStatus.PENDING, 0.0))
    late = float(by_status.get(ObligationStatus.LATE, 0.0))

    return {
        "tenant_id": tenant_id,
        "total_owed": round(pending + late + shortfall, 2),
        "pending_amount": round(pending, 2),
        "late_amount": round(late, 2),
        "shortfall_amount": round(shortfall, 2),
        "paid_amount": round(float(df["amount_paid"].sum()), 2),
        "total_obligations": len(df),
    }
