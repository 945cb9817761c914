"""Unit tests for the e-mail transport."""

import base64
import unittest
from decimal import Decimal
from unittest.mock import MagicMock

import requests

from rentcycle.db.models import NotificationType
from rentcycle.errors import TransportError, ValidationError
from rentcycle.notifications.email import EmailTransport, render_body


class TestEmailTransport(unittest.TestCase):

    def setUp(self):
        self.http = MagicMock()
        self.http.post.return_value = MagicMock(
            status_code=201, json=MagicMock(return_value={"messageId": "<msg-1@mail>"})
        )
        self.transport = EmailTransport(
            "https://api.brevo.com/v3/smtp/email", "key-123", "rent@example.com", http=self.http
        )

    def test_send_rent_due(self):
        message_id = self.transport.send(
            "john@example.com",
            NotificationType.RENT_DUE,
            {"tenant_name": "John Smith", "amount": Decimal("1500"), "due_date": "May 1, 2025"},
        )

        self.assertEqual(message_id, "<msg-1@mail>")
        kwargs = self.http.post.call_args[1]
        self.assertEqual(kwargs["headers"]["api-key"], "key-123")
        self.assertEqual(kwargs["json"]["to"], [{"email": "john@example.com"}])
        self.assertEqual(kwargs["json"]["subject"], "Rent due May 1, 2025")
        self.assertIn("$1,500.00", kwargs["json"]["htmlContent"])

    def test_send_document_attaches_pdf(self):
        self.transport.send_document("john@example.com", "form_n4_1.pdf", b"%PDF-1.4", "N4 notice")

        payload = self.http.post.call_args[1]["json"]
        self.assertEqual(payload["subject"], "N4 notice")
        self.assertEqual(payload["attachment"][0]["name"], "form_n4_1.pdf")
        self.assertEqual(base64.b64decode(payload["attachment"][0]["content"]), b"%PDF-1.4")

    def test_error_status_raises(self):
        self.http.post.return_value = MagicMock(status_code=401, text="unauthorized")
        with self.assertRaises(TransportError) as ctx:
            self.transport.send("john@example.com", NotificationType.RECEIPT, {"tenant_name": "John"})
        self.assertEqual(ctx.exception.status_code, 401)

    def test_network_error_raises(self):
        self.http.post.side_effect = requests.Timeout("timed out")
        with self.assertRaises(TransportError):
            self.transport.send("john@example.com", NotificationType.RECEIPT, {"tenant_name": "John"})

    def test_unconfigured_or_missing_recipient(self):
        with self.assertRaises(TransportError):
            EmailTransport("", "", "rent@example.com", http=self.http).send(
                "john@example.com", NotificationType.RECEIPT, {}
            )
        with self.assertRaises(ValidationError):
            self.transport.send("", NotificationType.RECEIPT, {})
        self.http.post.assert_not_called()

    def test_render_body_late(self):
        body = render_body(NotificationType.RENT_LATE, {"tenant_name": "John", "days_late": 5, "amount": 1500})
        self.assertIn("5 days overdue", body)
        with self.assertRaises(ValidationError):
            render_body(NotificationType.FORM_L1, {})


if __name__ == '__main__':
    unittest.main()
