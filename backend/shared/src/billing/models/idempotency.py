"""Idempotency record model for byte-level replay detection."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class IdempotencyRecord(BaseModel):
    """Cached response for one processed inbound event.

    Used for:
    - Idempotency: a byte-identical redelivery returns this response
    - Auditing: when the event was first processed and by which resource

    Two events with different bytes but the same real-world payment are not
    caught here; the invoice service dedups those.
    """

    model_config = ConfigDict(strict=True)

    idempotency_key: str = Field(
        ...,
        description="Namespaced SHA-256 of the raw request body",
        examples=["wellmedr-airtable_9f86d081884c7d65..."],
    )
    resource: str = Field(..., description="Source system that produced the event")
    response_status: int = Field(default=200, description="HTTP status of the cached response")
    response_body: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(..., description="When the event was first processed")
    expires_at: int = Field(..., description="Epoch seconds; DynamoDB TTL attribute")
