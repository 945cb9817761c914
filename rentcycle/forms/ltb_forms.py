"""Ontario LTB N4 / L1 form rendering with fpdf2."""

from decimal import Decimal

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from rentcycle.db.models import NotificationType
from rentcycle.errors import ValidationError
from rentcycle.logging_config import get_logger

logger = get_logger(__name__)

REQUIRED_FIELDS = {
    NotificationType.FORM_N4: (
        "tenant_name",
        "landlord_name",
        "rental_address",
        "rent_amount",
        "rent_due_date",
        "termination_date",
    ),
    NotificationType.FORM_L1: (
        "tenant_name",
        "landlord_name",
        "rental_address",
        "rent_amount",
        "rent_due_date",
        "reason_for_application",
    ),
}

TITLES = {
    NotificationType.FORM_N4: (
        "Form N4",
        "Notice to End a Tenancy Early for Non-payment of Rent",
    ),
    NotificationType.FORM_L1: (
        "Form L1",
        "Application to Evict a Tenant for Non-payment of Rent and to Collect Rent the Tenant Owes",
    ),
}


def _latin1(value) -> str:
    # Core PDF fonts only cover latin-1.
    return str(value).encode("latin-1", "replace").decode("latin-1")


def format_cad(amount) -> str:
    return f"${Decimal(str(amount)):,.2f}"


class LtbFormRenderer:
    """Fills the N4 and L1 layouts and returns the PDF bytes."""

    def render(self, form_type: str, fields: dict) -> bytes:
        if form_type not in REQUIRED_FIELDS:
            raise ValidationError(f"Unknown form type {form_type!r}")
        missing = [name for name in REQUIRED_FIELDS[form_type] if fields.get(name) in (None, "")]
        if missing:
            raise ValidationError(f"{form_type} is missing fields: {', '.join(missing)}")

        pdf = FPDF(format="letter")
        pdf.set_margins(18, 18, 18)
        pdf.add_page()
        self._header(pdf, form_type)
        self._parties(pdf, fields)
        if form_type == NotificationType.FORM_N4:
            self._n4_body(pdf, fields)
        else:
            self._l1_body(pdf, fields)
        self._signature(pdf, fields)
        logger.debug(f"Rendered {form_type} for {fields['tenant_name']}")
        return bytes(pdf.output())

    def _line(self, pdf, text, size=10, style="", align="L", height=6):
        pdf.set_font("helvetica", style=style, size=size)
        pdf.multi_cell(0, height, _latin1(text), align=align, new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    def _header(self, pdf, form_type):
        code, title = TITLES[form_type]
        self._line(pdf, code, size=16, style="B", align="C", height=8)
        self._line(pdf, title, size=13, style="B", align="C", height=7)
        pdf.ln(2)
        self._line(pdf, "Landlord and Tenant Board", align="C")
        self._line(pdf, "Ontario Ministry of Housing", align="C")
        pdf.ln(6)

    def _parties(self, pdf, fields):
        self._line(pdf, f"To: {fields['tenant_name']} (Tenant)", style="B")
        self._line(pdf, f"From: {fields['landlord_name']} (Landlord)", style="B")
        self._line(pdf, f"Address of the rental unit: {fields['rental_address']}")
        pdf.ln(4)

    def _n4_body(self, pdf, fields):
        period = fields.get("rent_period") or "monthly"
        self._line(
            pdf,
            f"This is a legal notice that could lead to you being evicted from your home. "
            f"You owe {format_cad(fields['rent_amount'])} in {period} rent that was due on "
            f"{fields['rent_due_date']}.",
        )
        pdf.ln(3)
        self._line(
            pdf,
            f"The landlord can apply to the Board to evict you if you do not pay the amount owing "
            f"or move out by {fields['termination_date']} (termination date).",
            style="B",
        )
        pdf.ln(3)
        self._line(
            pdf,
            "This notice becomes void if you pay the full amount owing, plus any rent that "
            "becomes due, before the termination date.",
        )

    def _l1_body(self, pdf, fields):
        self._line(pdf, "Reason for application", style="B")
        self._line(pdf, fields["reason_for_application"])
        pdf.ln(3)
        self._line(
            pdf,
            f"Rent owing: {format_cad(fields['rent_amount'])}, due on {fields['rent_due_date']}.",
        )
        if fields.get("days_late") is not None:
            self._line(pdf, f"Days in arrears: {fields['days_late']}")

    def _signature(self, pdf, fields):
        pdf.ln(10)
        if fields.get("issued_on"):
            self._line(pdf, f"Date issued: {fields['issued_on']}")
        self._line(pdf, f"Signature: {fields['landlord_name']}")
