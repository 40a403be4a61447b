"""Pydantic models for clinic billing data entities."""

from .clinic import Clinic
from .dead_letter import DeadLetterContext, DeadLetterEntry
from .enums import (
    ACTIVE_PROFILE_STATUSES,
    AmountSource,
    InvoiceStatus,
    MedicationSource,
    ProcessingResult,
    ProfileStatus,
    ResolutionKind,
)
from .errors import (
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    AuthenticationError,
    ConfigurationError,
    ErrorCode,
    PayloadValidationError,
    PersistenceError,
    WebhookError,
    WebhookErrorResponse,
)
from .idempotency import IdempotencyRecord
from .invoice import Invoice, InvoiceCreationResult, InvoiceLineItem, InvoiceSummary
from .patient import NEEDS_MERGE_TAG, STUB_TAG, Patient, PatientCreate
from .payload import InvoiceWebhookPayload, NormalizedInvoiceEvent, ParsedAddress
from .resolution import PatientResolution

__all__ = [
    # Enums
    "ACTIVE_PROFILE_STATUSES",
    "AmountSource",
    "InvoiceStatus",
    "MedicationSource",
    "ProcessingResult",
    "ProfileStatus",
    "ResolutionKind",
    # Errors
    "ERROR_MESSAGES",
    "ERROR_RECOVERY",
    "AuthenticationError",
    "ConfigurationError",
    "ErrorCode",
    "PayloadValidationError",
    "PersistenceError",
    "WebhookError",
    "WebhookErrorResponse",
    # Payload
    "InvoiceWebhookPayload",
    "NormalizedInvoiceEvent",
    "ParsedAddress",
    # Patient
    "NEEDS_MERGE_TAG",
    "STUB_TAG",
    "Patient",
    "PatientCreate",
    "PatientResolution",
    # Invoice
    "Invoice",
    "InvoiceCreationResult",
    "InvoiceLineItem",
    "InvoiceSummary",
    # Tenancy / idempotency / DLQ
    "Clinic",
    "IdempotencyRecord",
    "DeadLetterContext",
    "DeadLetterEntry",
]
