"""Environment-driven configuration.

Every setting has a default so the engine runs against a local SQLite file
with no environment at all; transports need their credentials set.
"""

import os
from dataclasses import dataclass
from typing import Optional

from rentcycle.errors import ValidationError


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"Environment variable {name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the engine, transports and scheduler.

    Attributes:
        database_url (str): SQLAlchemy database URL.
        log_level (str): Root log level name.
        grace_days (int): Days after the due date before a pending obligation turns late.
        n4_threshold_days (int): Days late at which an N4 notice becomes eligible.
        l1_threshold_days (int): Days late at which an L1 application becomes eligible.
        cycle_hour (int): Hour (UTC) of the daily cycle trigger.
        cycle_minute (int): Minute of the daily cycle trigger.
        metrics_port (int): Port of the Prometheus metrics endpoint.
        whatsapp_api_version (str): Graph API version used by the WhatsApp transport.
        whatsapp_phone_number_id (str): Sender phone number id.
        whatsapp_access_token (str): Bearer token for the Graph API.
        whatsapp_template_language (str): Template language code.
        mail_api_url (str): HTTP endpoint of the transactional mail API.
        mail_api_key (str): API key for the mail API.
        mail_sender (str): Sender address for outbound e-mail.
        interac_request_base_url (str): Base URL of Interac request links.
        landlord_name (str): Landlord name printed on LTB forms.
        transport_timeout_seconds (int): HTTP timeout for transports.
    """

    database_url: str = "sqlite:///./rentcycle.db"
    log_level: str = "INFO"
    grace_days: int = 0
    n4_threshold_days: int = 14
    l1_threshold_days: int = 15
    cycle_hour: int = 6
    cycle_minute: int = 0
    metrics_port: int = 8000
    whatsapp_api_version: str = "v18.0"
    whatsapp_phone_number_id: Optional[str] = None
    whatsapp_access_token: Optional[str] = None
    whatsapp_template_language: str = "en_US"
    mail_api_url: Optional[str] = None
    mail_api_key: Optional[str] = None
    mail_sender: str = "noreply@rentcycle.local"
    interac_request_base_url: str = "https://interac.mock/request"
    landlord_name: str = "Property Management"
    transport_timeout_seconds: int = 10

    def __post_init__(self):
        if self.grace_days < 0:
            raise ValidationError("grace_days must be non-negative")
        if self.n4_threshold_days < 1:
            raise ValidationError("n4_threshold_days must be at least 1")
        if self.l1_threshold_days < self.n4_threshold_days:
            raise ValidationError("l1_threshold_days must not be lower than n4_threshold_days")
        if not 0 <= self.cycle_hour <= 23 or not 0 <= self.cycle_minute <= 59:
            raise ValidationError("cycle_hour/cycle_minute out of range")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            grace_days=_int_env("RENT_GRACE_DAYS", cls.grace_days),
            n4_threshold_days=_int_env("N4_THRESHOLD_DAYS", cls.n4_threshold_days),
            l1_threshold_days=_int_env("L1_THRESHOLD_DAYS", cls.l1_threshold_days),
            cycle_hour=_int_env("CYCLE_HOUR", cls.cycle_hour),
            cycle_minute=_int_env("CYCLE_MINUTE", cls.cycle_minute),
            metrics_port=_int_env("METRICS_PORT", cls.metrics_port),
            whatsapp_api_version=os.getenv("WHATSAPP_API_VERSION", cls.whatsapp_api_version),
            whatsapp_phone_number_id=os.getenv("WHATSAPP_PHONE_NUMBER_ID"),
            whatsapp_access_token=os.getenv("WHATSAPP_ACCESS_TOKEN"),
            whatsapp_template_language=os.getenv(
                "WHATSAPP_TEMPLATE_LANGUAGE", cls.whatsapp_template_language
            ),
            mail_api_url=os.getenv("MAIL_API_URL"),
            mail_api_key=os.getenv("MAIL_API_KEY"),
            mail_sender=os.getenv("MAIL_SENDER", cls.mail_sender),
            interac_request_base_url=os.getenv(
                "INTERAC_REQUEST_BASE_URL", cls.interac_request_base_url
            ),
            landlord_name=os.getenv("LANDLORD_NAME", cls.landlord_name),
            transport_timeout_seconds=_int_env(
                "TRANSPORT_TIMEOUT_SECONDS", cls.transport_timeout_seconds
            ),
        )
