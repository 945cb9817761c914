"""Interac e-Transfer request links.

No money moves here: the link carries the request details and a unique
reference that a payment confirmation can be matched against.
"""

import uuid
from decimal import Decimal
from urllib.parse import urlencode

from rentcycle.errors import ValidationError
from rentcycle.logging_config import get_logger

logger = get_logger(__name__)


def new_reference() -> str:
    return f"rent-{uuid.uuid4().hex[:16]}"


class InteracLinkGenerator:
    """Builds Interac request links.

    Args:
        base_url (str): Request endpoint the query string is appended to.
        reference_factory (Callable[[], str], optional): Produces the request reference.
    """

    def __init__(self, base_url: str = "https://interac.mock/request", reference_factory=None):
        self.base_url = base_url
        self.reference_factory = reference_factory or new_reference

    def create_request_link(
        self, recipient_email: str, name: str, amount, message: str = "Rent payment"
    ) -> str:
        if not recipient_email:
            raise ValidationError("Interac request needs a recipient e-mail")
        amount = Decimal(str(amount))
        if amount <= 0:
            raise ValidationError(f"Interac request amount must be positive, got {amount}")
        query = urlencode(
            {
                "email": recipient_email,
                "name": name or "",
                "amount": f"{amount:.2f}",
                "message": message,
                "reference": self.reference_factory(),
            }
        )
        logger.debug(f"Generated Interac request link for {recipient_email} for ${amount:.2f}")
        return f"{self.base_url}?{query}"
