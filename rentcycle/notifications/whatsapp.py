"""WhatsApp Cloud API transport.

Template messages for rent_due, rent_late and receipt notices, document
messages for N4/L1 forms, message status lookups and webhook parsing.
"""

from decimal import Decimal
from typing import List, Tuple

import requests

from rentcycle.db.models import DeliveryStatus, NotificationType
from rentcycle.errors import TransportError, ValidationError
from rentcycle.logging_config import get_logger

logger = get_logger(__name__)

GRAPH_URL = "https://graph.facebook.com"

TEMPLATE_NAMES = {
    NotificationType.RENT_DUE: "rent_due_notification",
    NotificationType.RENT_LATE: "rent_late_notification",
    NotificationType.RECEIPT: "rent_payment_receipt",
}


def format_phone(phone: str) -> str:
    phone = (phone or "").strip().replace(" ", "").replace("-", "")
    if not phone:
        raise ValidationError("Recipient phone number is empty")
    return phone if phone.startswith("+") else f"+{phone}"


def text_parameter(value) -> dict:
    return {"type": "text", "text": str(value)}


def currency_parameter(amount, code: str = "CAD") -> dict:
    amount = Decimal(str(amount or 0))
    return {
        "type": "currency",
        "currency": {
            "fallback_value": f"${amount:,.2f}",
            "code": code,
            "amount_1000": int(amount * 1000),
        },
    }


def body_parameters(template_type: str, params: dict) -> List[dict]:
    """Ordered body parameters for one of the rent templates."""
    if template_type == NotificationType.RENT_DUE:
        return [
            text_parameter(params["tenant_name"]),
            currency_parameter(params.get("amount")),
            {"type": "date_time", "date_time": {"fallback_value": params.get("due_date", "")}},
            text_parameter(params.get("unit_address", "")),
            text_parameter(params.get("payment_link", "")),
        ]
    if template_type == NotificationType.RENT_LATE:
        return [
            text_parameter(params["tenant_name"]),
            text_parameter(params.get("days_late", 0)),
            currency_parameter(params.get("amount")),
            text_parameter(params.get("payment_link", "")),
            text_parameter(params.get("n4_link") or "N/A"),
        ]
    if template_type == NotificationType.RECEIPT:
        return [
            text_parameter(params["tenant_name"]),
            currency_parameter(params.get("amount_paid")),
            text_parameter(params.get("payment_date", "")),
            text_parameter(params.get("status", "")),
        ]
    raise ValidationError(f"No WhatsApp template for {template_type!r}")


def build_template_message(phone: str, template_type: str, params: dict, language: str = "en_US") -> dict:
    return {
        "messaging_product": "whatsapp",
        "to": format_phone(phone),
        "type": "template",
        "template": {
            "name": TEMPLATE_NAMES[template_type] if template_type in TEMPLATE_NAMES else template_type,
            "language": {"code": language},
            "components": [
                {"type": "body", "parameters": body_parameters(template_type, params)}
            ],
        },
    }


def parse_status_updates(event: dict) -> List[Tuple[str, str]]:
    """Extract (message_id, status) pairs from a WhatsApp webhook payload.

    Statuses outside the notification delivery states are dropped.
    """
    updates = []
    for entry in event.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            for status in value.get("statuses") or []:
                message_id = status.get("id")
                state = status.get("status")
                if not message_id or state not in DeliveryStatus.ALL:
                    logger.debug(f"Skipping webhook status {status}")
                    continue
                updates.append((message_id, state))
    return updates


class WhatsAppTransport:
    """Sends messages through the WhatsApp Cloud API.

    Args:
        phone_number_id (str): Sender phone number id.
        access_token (str): Graph API bearer token.
        api_version (str): Graph API version.
        language (str): Template language code.
        timeout (int): HTTP timeout in seconds.
        http (requests.Session, optional): Session to send requests with.
    """

    def __init__(
        self,
        phone_number_id: str,
        access_token: str,
        api_version: str = "v18.0",
        language: str = "en_US",
        timeout: int = 10,
        http=None,
    ):
        self.phone_number_id = phone_number_id
        self.access_token = access_token
        self.api_version = api_version
        self.language = language
        self.timeout = timeout
        self.http = http or requests.Session()

    @classmethod
    def from_settings(cls, settings) -> "WhatsAppTransport":
        return cls(
            phone_number_id=settings.whatsapp_phone_number_id,
            access_token=settings.whatsapp_access_token,
            api_version=settings.whatsapp_api_version,
            language=settings.whatsapp_template_language,
            timeout=settings.transport_timeout_seconds,
        )

    @property
    def base_url(self) -> str:
        return f"{GRAPH_URL}/{self.api_version}/{self.phone_number_id}"

    def _headers(self) -> dict:
        if not self.phone_number_id or not self.access_token:
            raise TransportError("WhatsApp credentials are not configured")
        return {"Authorization": f"Bearer {self.access_token}"}

    def _request(self, method: str, url: str, **kwargs) -> dict:
        headers = self._headers()
        try:
            response = self.http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TransportError(f"WhatsApp request failed: {e}") from e
        if response.status_code not in (200, 201):
            raise TransportError(
                f"WhatsApp API error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransportError("WhatsApp API returned a non-JSON body") from e

    def send(self, phone: str, template_type: str, params: dict) -> str:
        """Send a template message and return the WhatsApp message id."""
        payload = build_template_message(phone, template_type, params, self.language)
        logger.debug(f"Sending {payload['template']['name']} to {payload['to']}")
        data = self._request("POST", f"{self.base_url}/messages", json=payload)
        return self._message_id(data)

    def send_document(self, phone: str, filename: str, content: bytes, caption: str = "") -> str:
        """Upload a PDF and send it as a document message."""
        upload = self._request(
            "POST",
            f"{self.base_url}/media",
            data={"messaging_product": "whatsapp", "type": "application/pdf"},
            files={"file": (filename, content, "application/pdf")},
        )
        media_id = upload.get("id")
        if not media_id:
            raise TransportError("WhatsApp media upload returned no id")
        payload = {
            "messaging_product": "whatsapp",
            "to": format_phone(phone),
            "type": "document",
            "document": {"id": media_id, "filename": filename, "caption": caption},
        }
        data = self._request("POST", f"{self.base_url}/messages", json=payload)
        return self._message_id(data)

    def check_message_status(self, message_id: str) -> str:
        data = self._request("GET", f"{GRAPH_URL}/{self.api_version}/{message_id}")
        return data.get("status", "")

    @staticmethod
    def _message_id(data: dict) -> str:
        try:
            return data["messages"][0]["id"]
        except (KeyError, IndexError, TypeError) as e:
            raise TransportError(f"Unexpected WhatsApp response: {data}") from e
