"""API-specific response models."""

from billing_api.models.webhooks import (
    AcceptedField,
    ClinicalNoteResponse,
    InvoiceSummaryResponse,
    InvoiceWebhookDocsResponse,
    InvoiceWebhookResponse,
    PatientSummaryResponse,
    QueuedForRetryResponse,
    WebhookErrorResponse,
)

__all__ = [
    "AcceptedField",
    "ClinicalNoteResponse",
    "InvoiceSummaryResponse",
    "InvoiceWebhookDocsResponse",
    "InvoiceWebhookResponse",
    "PatientSummaryResponse",
    "QueuedForRetryResponse",
    "WebhookErrorResponse",
]
