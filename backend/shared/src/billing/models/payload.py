"""Inbound invoice event schema and its normalized form.

The partner sends an open-ended JSON document. Only the two required fields
are typed here; every other key is kept in ``model_extra`` and resolved
through the alias table (see billing.services.field_aliases).
"""

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic_core import PydanticCustomError

from .enums import AmountSource

PAYMENT_METHOD_PATTERN = re.compile(r"^pm_[A-Za-z0-9_]+$")

# Column headers and template tokens that automations send instead of a value
PLACEHOLDER_EMAILS = frozenset(
    {
        "customer_email",
        "customeremail",
        "email",
        "email_address",
        "null",
        "none",
        "undefined",
        "n/a",
        "na",
        "test",
    }
)


class InvoiceWebhookPayload(BaseModel):
    """Validated boundary model for one inbound invoice event."""

    model_config = ConfigDict(extra="allow")

    customer_email: EmailStr = Field(
        ...,
        description="Email entered on the partner intake (identity key)",
        examples=["patient@example.com"],
    )
    method_payment_id: str = Field(
        ...,
        description="Payment method reference from the partner's processor",
        examples=["pm_1StwAHDfH4PWyxxdppqIGipS"],
    )

    @field_validator("customer_email", mode="before")
    @classmethod
    def _clean_email(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        cleaned = value.strip().lower()
        if not cleaned:
            raise PydanticCustomError("missing_value", "customer_email is empty")
        if cleaned in PLACEHOLDER_EMAILS or "{" in cleaned or "}" in cleaned:
            raise PydanticCustomError(
                "placeholder_email",
                "customer_email looks like a placeholder: {value}",
                {"value": cleaned},
            )
        return cleaned

    @field_validator("method_payment_id", mode="before")
    @classmethod
    def _check_payment_method(cls, value: Any) -> str:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise PydanticCustomError("missing_value", "method_payment_id is empty")
        cleaned = str(value).strip()
        if not PAYMENT_METHOD_PATTERN.match(cleaned):
            raise PydanticCustomError(
                "invalid_payment_method",
                "method_payment_id must look like pm_...",
            )
        return cleaned

    def extra_fields(self) -> dict[str, Any]:
        """Return the keys that are not part of the typed schema."""
        return dict(self.model_extra or {})


class ParsedAddress(BaseModel):
    """Address split into its components."""

    address1: str = ""
    address2: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""

    def is_empty(self) -> bool:
        return not (self.address1 or self.city or self.state or self.zip)


class NormalizedInvoiceEvent(BaseModel):
    """Canonical view of an inbound invoice event."""

    email: str
    payment_method_id: str
    amount_cents: int = Field(..., ge=0, description="Amount in USD cents")
    amount_source: AmountSource
    product: str = ""
    medication_type: str = ""
    plan: str = ""
    payer_name: str = ""
    payer_first_name: str = ""
    payer_last_name: str = ""
    submission_id: str = ""
    order_status: str = ""
    subscription_status: str = ""
    stripe_price_id: str = ""
    payment_date: datetime
    address: ParsedAddress = Field(default_factory=ParsedAddress)
    address_was_parsed: bool = False
    country: str = ""
    phone: str = ""
    unmapped_fields: list[str] = Field(default_factory=list)
    raw_body: str = Field(default="", description="Original event text, preserved for audit")

    @property
    def full_address(self) -> str:
        parts = [
            self.address.address1,
            self.address.address2,
            self.address.city,
            self.address.state,
            self.address.zip,
            self.country,
        ]
        return ", ".join(p for p in parts if p)
