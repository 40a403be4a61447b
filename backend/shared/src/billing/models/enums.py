"""Enumeration types for clinic billing data models."""

from enum import Enum


class InvoiceStatus(str, Enum):
    """Status of an invoice."""

    DRAFT = "DRAFT"
    OPEN = "OPEN"
    PAID = "PAID"
    VOID = "VOID"


class ProfileStatus(str, Enum):
    """Lifecycle status of a patient profile."""

    ACTIVE = "ACTIVE"
    PENDING_COMPLETION = "PENDING_COMPLETION"  # Stub awaiting intake merge
    MERGED = "MERGED"
    ARCHIVED = "ARCHIVED"


# Profiles the resolver may match against
ACTIVE_PROFILE_STATUSES = frozenset(
    {ProfileStatus.ACTIVE.value, ProfileStatus.PENDING_COMPLETION.value}
)


class ResolutionKind(str, Enum):
    """Which patient resolution strategy produced a match."""

    IDENTITY = "identity"
    NAME = "name"
    SUBMISSION = "submission"
    STUB = "stub"
    NONE = "none"


class ProcessingResult(str, Enum):
    """Outcome of processing one inbound event."""

    CREATED = "created"
    DUPLICATE = "duplicate"
    QUEUED = "queued"
    ERROR = "error"


class AmountSource(str, Enum):
    """Where the invoice amount was taken from."""

    AMOUNT = "amount"
    PRICE = "price"
    DEFAULT = "default"


class MedicationSource(str, Enum):
    """How the treatment/medication value was determined."""

    PAYLOAD = "payload"
    INTAKE_DOCUMENT = "intake_document"
    PRICE_THRESHOLD = "price_threshold"
    PRICE_MATCH = "price_match"
