"""Invoice model for partner-collected payments."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import InvoiceStatus


class InvoiceLineItem(BaseModel):
    """A single billed line."""

    model_config = ConfigDict(strict=True)

    description: str
    quantity: int = Field(default=1, ge=1)
    unit_price: int = Field(..., ge=0, description="Unit price in USD cents")
    product: str = ""
    medication_type: str = ""
    plan: str = ""


class InvoiceSummary(BaseModel):
    """Cents-denominated breakdown stored in invoice metadata."""

    model_config = ConfigDict(strict=True)

    subtotal: int
    discount_amount: int = 0
    tax_amount: int = 0
    total: int
    amount_paid: int
    amount_due: int = 0


class Invoice(BaseModel):
    """A clinic- and patient-scoped billing record.

    Amounts are stored in USD cents. ``payment_method_ref`` together with
    patient and clinic forms the real-world dedup key.
    """

    model_config = ConfigDict(strict=True)

    invoice_id: str = Field(..., description="Unique invoice ID")
    clinic_id: str = Field(..., description="Owning clinic (tenant)")
    patient_id: str = Field(..., description="Billed patient")
    invoice_number: str = Field(..., description="Cosmetic, per-clinic monthly sequence")
    amount: int = Field(..., ge=0, description="Amount in USD cents")
    amount_due: int = Field(default=0, ge=0)
    amount_paid: int = Field(default=0, ge=0)
    currency: str = Field(default="usd")
    status: InvoiceStatus
    paid_at: datetime | None = None
    due_date: datetime | None = None
    description: str = ""
    payment_method_ref: str = Field(..., description="Partner payment method ID (pm_...)")
    line_items: list[InvoiceLineItem] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @property
    def amount_formatted(self) -> str:
        return f"${self.amount / 100:,.2f}"


class InvoiceCreationResult(BaseModel):
    """Invoice plus whether it already existed for this payment."""

    invoice: Invoice
    duplicate: bool = False
