"""Runtime configuration for the invoice webhook pipeline.

Settings are read from environment variables once per process and cached.
Secrets are not stored here: the webhook secret is resolved lazily by the
authenticator, either from ``INVOICE_WEBHOOK_SECRET`` or from the SSM
parameter named by ``INVOICE_WEBHOOK_SECRET_PARAMETER``.
"""

import os
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


class WebhookSettings(BaseModel):
    """Configuration for the invoice webhook service."""

    model_config = ConfigDict(frozen=True)

    environment: str = Field(default="dev", description="Deployment environment")
    webhook_secret: str | None = Field(
        default=None,
        description="Shared secret expected on inbound events (overrides SSM)",
    )
    webhook_secret_parameter: str | None = Field(
        default=None,
        description="SSM SecureString holding the shared secret",
        examples=["/clinic/dev/invoice-webhook/secret"],
    )
    clinic_subdomain: str = Field(
        default="wellmedr",
        description="Subdomain of the clinic that owns partner invoices",
    )
    source_system: str = Field(
        default="wellmedr-airtable",
        description="Source tag stored on invoices, stubs and idempotency keys",
    )
    invoice_number_prefix: str = Field(default="WM", description="Invoice number prefix")
    default_amount_cents: int = Field(
        default=29900,
        ge=0,
        description="Amount used when the event carries neither amount nor price",
    )
    dollar_amount_threshold: int = Field(
        default=100,
        ge=0,
        description="Explicit amounts below this value are treated as dollars",
    )
    price_match_tolerance: float = Field(
        default=0.10,
        ge=0,
        le=1,
        description="Relative tolerance for price-point medication matching",
    )
    dead_letter_queue_url: str | None = Field(
        default=None,
        description="SQS queue URL for failed events; unset disables dead-lettering",
    )
    processing_timeout_seconds: float = Field(
        default=25.0,
        gt=0,
        description="Overall budget for one event, bounding best-effort calls",
    )
    phi_kms_key_id: str | None = Field(
        default=None,
        description="KMS key used to encrypt PHI fields at rest",
    )
    refill_scheduler_function: str | None = Field(
        default=None,
        description="Lambda function name of the refill scheduling service",
    )
    clinical_note_function: str | None = Field(
        default=None,
        description="Lambda function name of the clinical documentation service",
    )
    attempt_name_match: bool = Field(default=True)
    schedule_refills: bool = Field(default=True)
    ensure_clinical_note: bool = Field(default=True)
    backfill_address: bool = Field(default=True)

    @classmethod
    def from_env(cls) -> "WebhookSettings":
        """Build settings from environment variables.

        Returns:
            WebhookSettings populated from the current environment.
        """
        return cls(
            environment=os.getenv("ENVIRONMENT", "dev"),
            webhook_secret=os.getenv("INVOICE_WEBHOOK_SECRET") or None,
            webhook_secret_parameter=os.getenv("INVOICE_WEBHOOK_SECRET_PARAMETER") or None,
            clinic_subdomain=os.getenv("INVOICE_CLINIC_SUBDOMAIN", "wellmedr"),
            source_system=os.getenv("INVOICE_SOURCE_SYSTEM", "wellmedr-airtable"),
            invoice_number_prefix=os.getenv("INVOICE_NUMBER_PREFIX", "WM"),
            default_amount_cents=_env_int("INVOICE_DEFAULT_AMOUNT_CENTS", 29900),
            dollar_amount_threshold=_env_int("INVOICE_DOLLAR_THRESHOLD_CENTS", 100),
            price_match_tolerance=_env_float("INVOICE_PRICE_MATCH_TOLERANCE", 0.10),
            dead_letter_queue_url=os.getenv("INVOICE_DLQ_URL") or None,
            processing_timeout_seconds=_env_float("INVOICE_PROCESSING_TIMEOUT_SECONDS", 25.0),
            phi_kms_key_id=os.getenv("PHI_KMS_KEY_ID") or None,
            refill_scheduler_function=os.getenv("REFILL_SCHEDULER_FUNCTION") or None,
            clinical_note_function=os.getenv("CLINICAL_NOTE_FUNCTION") or None,
            attempt_name_match=_env_flag("INVOICE_ATTEMPT_NAME_MATCH", True),
            schedule_refills=_env_flag("INVOICE_SCHEDULE_REFILLS", True),
            ensure_clinical_note=_env_flag("INVOICE_ENSURE_CLINICAL_NOTE", True),
            backfill_address=_env_flag("INVOICE_BACKFILL_ADDRESS", True),
        )


@lru_cache(maxsize=1)
def get_settings() -> WebhookSettings:
    """Get the cached settings instance.

    Call ``get_settings.cache_clear()`` in tests after changing the environment.
    """
    return WebhookSettings.from_env()
