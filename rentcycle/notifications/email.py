"""E-mail transport over a transactional mail HTTP API (Brevo-compatible)."""

import base64

import requests

from rentcycle.db.models import NotificationType
from rentcycle.errors import TransportError, ValidationError
from rentcycle.logging_config import get_logger

logger = get_logger(__name__)

SUBJECTS = {
    NotificationType.RENT_DUE: "Rent due",
    NotificationType.RENT_LATE: "Overdue rent notice",
    NotificationType.RECEIPT: "Rent payment receipt",
}


def render_body(template_type: str, params: dict) -> str:
    name = params.get("tenant_name", "")
    if template_type == NotificationType.RENT_DUE:
        return (
            f"<p>Hello {name},</p>"
            f"<p>Your rent payment of ${params.get('amount', 0):,.2f} for "
            f"{params.get('unit_address', 'your unit')} is due on {params.get('due_date', '')}.</p>"
            f"<p>Pay here: {params.get('payment_link', '')}</p>"
        )
    if template_type == NotificationType.RENT_LATE:
        return (
            f"<p>Hello {name},</p>"
            f"<p>Your rent payment is now {params.get('days_late', 0)} days overdue. "
            f"The outstanding amount is ${params.get('amount', 0):,.2f}.</p>"
            f"<p>Pay here: {params.get('payment_link', '')}</p>"
        )
    if template_type == NotificationType.RECEIPT:
        return (
            f"<p>Hello {name},</p>"
            f"<p>We received ${params.get('amount_paid') or 0:,.2f} on {params.get('payment_date', '')}. "
            f"Status: {params.get('status', '')}.</p>"
        )
    raise ValidationError(f"No e-mail template for {template_type!r}")


class EmailTransport:
    """Sends e-mail through an HTTP mail API.

    Args:
        api_url (str): Mail API endpoint.
        api_key (str): API key sent in the ``api-key`` header.
        sender (str): Sender address.
        timeout (int): HTTP timeout in seconds.
    """

    def __init__(self, api_url: str, api_key: str, sender: str, timeout: int = 10, http=None):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self.http = http or requests.Session()

    @classmethod
    def from_settings(cls, settings) -> "EmailTransport":
        return cls(
            api_url=settings.mail_api_url,
            api_key=settings.mail_api_key,
            sender=settings.mail_sender,
            timeout=settings.transport_timeout_seconds,
        )

    def send(self, email: str, template_type: str, params: dict) -> str:
        subject = SUBJECTS.get(template_type, template_type)
        if template_type == NotificationType.RENT_DUE and params.get("due_date"):
            subject = f"{subject} {params['due_date']}"
        return self._post(email, subject, render_body(template_type, params))

    def send_document(self, email: str, filename: str, content: bytes, caption: str = "") -> str:
        attachment = {"name": filename, "content": base64.b64encode(content).decode("ascii")}
        return self._post(email, caption or filename, f"<p>{caption}</p>", attachments=[attachment])

    def _post(self, email: str, subject: str, html: str, attachments=None) -> str:
        if not self.api_url or not self.api_key:
            raise TransportError("Mail API is not configured")
        if not email:
            raise ValidationError("Recipient e-mail is empty")
        payload = {
            "sender": {"email": self.sender},
            "to": [{"email": email}],
            "subject": subject,
            "htmlContent": html,
        }
        if attachments:
            payload["attachment"] = attachments
        try:
            response = self.http.post(
                self.api_url,
                headers={"api-key": self.api_key, "Content-Type": "application/json"},
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"Mail request failed: {e}") from e
        if response.status_code not in (200, 201, 202):
            raise TransportError(
                f"Mail API error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        try:
            message_id = response.json().get("messageId")
        except ValueError:
            message_id = None
        if not message_id:
            raise TransportError("Mail API returned no message id")
        logger.debug(f"E-mail {subject!r} accepted for {email}")
        return message_id
