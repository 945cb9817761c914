"""Notification Dispatcher.

Turns a (tenant, obligation, type, channel) request into a notification
record and an outbound message or document. The record is written as
pending first, then moved to sent or failed by the transport outcome.
Delivery failures are recorded, never raised, and never retried here;
callers decide when to retry.
"""

from datetime import date, timedelta
from typing import Optional

from rentcycle.db.models import (
    Channel,
    DeliveryStatus,
    Notification,
    NotificationType,
)
from rentcycle.errors import InvalidTransition, RentCycleError, TransportError, ValidationError
from rentcycle.logging_config import get_logger
from rentcycle.metrics import dispatch_duration_seconds, measure_duration, notifications_total
from rentcycle.notifications.whatsapp import parse_status_updates

logger = get_logger(__name__)

N4_TERMINATION_DAYS = 14

# Delivery callbacks only move a record forward.
_DELIVERY_RANK = {
    DeliveryStatus.PENDING: 0,
    DeliveryStatus.SENT: 1,
    DeliveryStatus.DELIVERED: 2,
    DeliveryStatus.READ: 3,
}

FORM_TITLES = {
    NotificationType.FORM_N4: "N4 Notice to End a Tenancy Early for Non-payment of Rent",
    NotificationType.FORM_L1: "L1 Application to Evict a Tenant for Non-payment of Rent",
}


def format_due_date(value: date) -> str:
    return f"{value:%B} {value.day}, {value.year}"


class NotificationDispatcher:
    """Creates notification records and hands them to the transports.

    Args:
        notification_store: Notification persistence.
        lease_store: Tenant and unit lookups for message parameters.
        obligation_store: Obligation lookups for message parameters.
        transports (dict): Channel name -> transport with ``send`` and ``send_document``.
        renderer (LtbFormRenderer, optional): Renders N4/L1 documents.
        landlord_name (str): Landlord printed on forms.
    """

    def __init__(
        self,
        notification_store,
        lease_store,
        obligation_store,
        transports: dict,
        renderer=None,
        landlord_name: str = "Property Management",
    ):
        self.notification_store = notification_store
        self.lease_store = lease_store
        self.obligation_store = obligation_store
        self.transports = transports
        self.renderer = renderer
        self.landlord_name = landlord_name

    def dispatch(
        self,
        tenant_id: int,
        obligation_id: Optional[int],
        type: str,
        channel: str = Channel.WHATSAPP,
        today: Optional[date] = None,
        **params,
    ) -> Notification:
        """Send one notification and return its final record.

        The dispatcher does not deduplicate: callers make sure they do not
        request the same (obligation, type) twice.

        Args:
            tenant_id (int): Recipient tenant.
            obligation_id (int, optional): Obligation the notice is about.
            type (str): One of NotificationType.ALL.
            channel (str): One of Channel.ALL.
            today (date, optional): Business date; required for forms.
            **params: Extra template parameters, e.g. ``days_late``.

        Returns:
            Notification: Record in status sent or failed.

        Raises:
            ValidationError: Unknown type or channel.
            StoreError: The record itself could not be written.
        """
        return self._dispatch(tenant_id, obligation_id, type, channel, today, params)

    def retry(self, notification_id: int, today: Optional[date] = None) -> Notification:
        """Re-send a failed notification as a new record linked to the old one.

        Raises:
            NotFound: Unknown notification id.
            InvalidTransition: The notification did not fail.
        """
        previous = self.notification_store.get_notification(notification_id)
        if previous.status != DeliveryStatus.FAILED:
            raise InvalidTransition(
                f"Notification {notification_id} is {previous.status}; only failed notifications can be retried",
                current_status=previous.status,
            )
        logger.info(f"Retrying notification {notification_id}")
        return self._dispatch(
            previous.tenant_id,
            previous.obligation_id,
            previous.type,
            previous.channel,
            today,
            {},
            retry_of_id=previous.id,
        )

    def retry_failed(self, today: Optional[date] = None) -> list:
        """Retry every failed notification that has not been retried yet.

        Returns:
            list: The new notification records, one per retried failure.
        """
        records = []
        for failed in self.notification_store.list_failed():
            try:
                records.append(self.retry(failed.id, today=today))
            except RentCycleError as e:
                logger.warning(f"Could not retry notification {failed.id}: {e}")
        return records

    def handle_delivery_status(self, external_id: str, status: str) -> Optional[Notification]:
        """Apply a transport delivery callback to the matching record.

        Unknown message ids are logged and ignored. Callbacks that would move
        a record backwards (e.g. 'delivered' after 'read') are ignored.
        """
        if status not in DeliveryStatus.ALL or status == DeliveryStatus.PENDING:
            raise ValidationError(f"Unsupported delivery status {status!r}")
        record = self.notification_store.find_by_external_id(external_id)
        if record is None:
            logger.warning(f"Delivery status for unknown message {external_id}: {status}")
            return None
        if not self._advances(record.status, status):
            logger.debug(f"Ignoring {status} for notification {record.id} in status {record.status}")
            return record
        return self.notification_store.update_notification_status(record.id, status)

    def apply_whatsapp_webhook(self, event: dict) -> list:
        """Apply every status update in a WhatsApp webhook payload."""
        updated = []
        for message_id, status in parse_status_updates(event):
            record = self.handle_delivery_status(message_id, status)
            if record is not None:
                updated.append(record)
        return updated

    @staticmethod
    def _advances(current: str, new: str) -> bool:
        if current in (DeliveryStatus.FAILED, DeliveryStatus.READ):
            return False
        if new == DeliveryStatus.FAILED:
            return True
        return _DELIVERY_RANK[new] > _DELIVERY_RANK[current]

    @measure_duration(dispatch_duration_seconds)
    def _dispatch(self, tenant_id, obligation_id, type, channel, today, params, retry_of_id=None):
        if type not in NotificationType.ALL:
            raise ValidationError(f"Unknown notification type {type!r}")
        if channel not in Channel.ALL:
            raise ValidationError(f"Unknown notification channel {channel!r}")

        record = self.notification_store.create_notification(
            tenant_id=tenant_id,
            obligation_id=obligation_id,
            type=type,
            channel=channel,
            retry_of_id=retry_of_id,
        )
        context = {"tenant_id": tenant_id, "obligation_id": obligation_id, "channel": channel}
        try:
            external_id = self._deliver(tenant_id, obligation_id, type, channel, today, params)
        except RentCycleError as e:
            logger.warning(f"Notification {record.id} ({type}) failed: {e}", extra={"context": context})
            return self._record_failure(record, e)
        except Exception as e:
            # Renderer or transport bug; the record must still leave pending.
            logger.exception(f"Notification {record.id} ({type}) crashed: {e}", extra={"context": context})
            return self._record_failure(record, e)

        notifications_total.labels(type=type, outcome="sent").inc()
        logger.info(
            f"Notification {record.id} ({type}) sent",
            extra={"context": {"tenant_id": tenant_id, "external_id": external_id}},
        )
        return self.notification_store.update_notification_status(
            record.id, DeliveryStatus.SENT, external_id=external_id
        )

    def _record_failure(self, record: Notification, error: Exception) -> Notification:
        notifications_total.labels(type=record.type, outcome="failed").inc()
        message = str(error) or type(error).__name__
        return self.notification_store.update_notification_status(
            record.id, DeliveryStatus.FAILED, error=message
        )

    def _deliver(self, tenant_id, obligation_id, type, channel, today, params) -> str:
        transport = self.transports.get(channel)
        if transport is None:
            raise TransportError(f"No transport configured for channel {channel}")

        tenant = self.lease_store.get_tenant(tenant_id)
        obligation = unit = None
        if obligation_id is not None:
            obligation = self.obligation_store.get_obligation(obligation_id)
            unit = self.lease_store.get_unit(obligation.unit_id)
        recipient = tenant.phone if channel == Channel.WHATSAPP else tenant.email

        if type in NotificationType.FORMS:
            if self.renderer is None:
                raise TransportError("No document renderer configured")
            if obligation is None or today is None:
                raise ValidationError(f"{type} needs an obligation and a business date")
            fields = self.form_fields(type, tenant, obligation, unit, today)
            document = self.renderer.render(type, fields)
            filename = f"{type}_{obligation.id}.pdf"
            return transport.send_document(recipient, filename, document, FORM_TITLES[type])

        message_params = self.message_params(type, tenant, obligation, unit, today, params)
        return transport.send(recipient, type, message_params)

    def message_params(self, type, tenant, obligation, unit, today, extra) -> dict:
        """Template parameters for rent_due, rent_late and receipt messages."""
        params = {"tenant_name": tenant.full_name}
        if unit is not None:
            params["unit_address"] = unit.address
        if obligation is not None:
            params["amount"] = obligation.amount_due
            params["due_date"] = format_due_date(obligation.due_date)
            params["payment_link"] = obligation.payment_request_link or ""
            if type == NotificationType.RENT_LATE and today is not None:
                params["days_late"] = obligation.days_late(today)
            if type == NotificationType.RECEIPT:
                params["amount_paid"] = obligation.amount_paid
                params["payment_date"] = (
                    format_due_date(obligation.payment_date) if obligation.payment_date else ""
                )
                params["status"] = obligation.status
        params.update(extra)
        return params

    def form_fields(self, type, tenant, obligation, unit, today: date) -> dict:
        """Fields for the N4/L1 renderer."""
        fields = {
            "tenant_name": tenant.full_name,
            "landlord_name": self.landlord_name,
            "rental_address": unit.address if unit is not None else "",
            "rent_amount": obligation.amount_due,
            "rent_due_date": obligation.due_date.isoformat(),
            "rent_period": "monthly",
            "days_late": obligation.days_late(today),
            "issued_on": today.isoformat(),
        }
        if type == NotificationType.FORM_N4:
            fields["termination_date"] = (today + timedelta(days=N4_TERMINATION_DAYS)).isoformat()
        else:
            fields["reason_for_application"] = (
                f"Tenant has not paid rent of ${obligation.amount_due:,.2f} "
                f"due on {obligation.due_date.isoformat()}."
            )
        return fields
