"""Dead-letter entry model for events that failed persistence."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class DeadLetterContext(BaseModel):
    """Minimal correlation context for reprocessing a failed event."""

    email: str = ""
    submission_id: str = ""
    treatment_type: str = ""
    request_id: str = ""


class DeadLetterEntry(BaseModel):
    """A failed event queued for asynchronous retry."""

    model_config = ConfigDict(strict=True)

    entry_id: str = Field(..., description="Queue message ID")
    source: str = Field(..., description="Source system of the original event")
    reason: str = Field(..., description="Human-readable failure reason")
    payload: str = Field(..., description="Original raw event body")
    context: DeadLetterContext
    attempt_count: int = Field(default=0, ge=0)
    status: str = Field(default="pending")
    queued_at: datetime
