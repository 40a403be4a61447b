"""Response models for the invoice webhook endpoints.

Bodies are produced by the pipeline as plain dicts (they are cached verbatim
for idempotent replays); these models document their shape in OpenAPI.
"""

from typing import Any

from pydantic import BaseModel, Field

from billing.models import WebhookErrorResponse

__all__ = [
    "InvoiceSummaryResponse",
    "PatientSummaryResponse",
    "ClinicalNoteResponse",
    "InvoiceWebhookResponse",
    "QueuedForRetryResponse",
    "WebhookErrorResponse",
    "AcceptedField",
    "InvoiceWebhookDocsResponse",
]


class InvoiceSummaryResponse(BaseModel):
    id: str
    invoice_number: str = Field(..., examples=["WM-202610-0001"])
    amount: int = Field(..., description="Amount in cents", examples=[113400])
    amount_formatted: str = Field(..., examples=["$1,134.00"])
    status: str = Field(..., examples=["PAID"])
    is_paid: bool = True


class PatientSummaryResponse(BaseModel):
    id: str
    resolution: str = Field(..., examples=["identity", "name", "submission", "stub"])
    is_stub: bool


class ClinicalNoteResponse(BaseModel):
    id: str | None = None
    action: str = Field(..., examples=["created", "existing", "skipped"])


class InvoiceWebhookResponse(BaseModel):
    """Invoice recorded, or already recorded for this payment."""

    success: bool = True
    duplicate: bool
    idempotent_replay: bool = False
    request_id: str
    message: str
    invoice: InvoiceSummaryResponse
    patient: PatientSummaryResponse
    product: str
    medication_type: str = ""
    plan: str = ""
    payment_method_id: str
    medication: str | None = None
    medication_source: str | None = None
    address_updated: bool = False
    clinical_note: ClinicalNoteResponse | None = None
    refills: list[str] = Field(default_factory=list, description="Scheduled refill dates")
    processing_time_ms: int


class QueuedForRetryResponse(BaseModel):
    """Recording failed; the event was dead-lettered for asynchronous retry."""

    success: bool = False
    queued_for_retry: bool = True
    dead_letter_id: str
    request_id: str
    message: str


class AcceptedField(BaseModel):
    field: str
    aliases: list[str]
    description: str = ""


class InvoiceWebhookDocsResponse(BaseModel):
    status: str = "ok"
    endpoint: str
    method: str = "POST"
    clinic_subdomain: str
    source: str
    authentication: dict[str, Any]
    required_fields: dict[str, str]
    optional_fields: list[AcceptedField]
    dead_letter_queue_configured: bool
