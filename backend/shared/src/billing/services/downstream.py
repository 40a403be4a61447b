"""Clients for services triggered after an invoice is recorded.

Both services run as separate Lambda functions and are invoked
synchronously. Callers treat every failure here as best effort.
"""

import datetime as dt
import json
import logging
from typing import Any

import boto3
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class DownstreamError(Exception):
    """Raised when a downstream function fails or returns garbage."""


class RefillSchedule(BaseModel):
    scheduled_dates: list[dt.date] = Field(default_factory=list)


class ClinicalNoteResult(BaseModel):
    note_id: str | None = None
    action: str = Field(..., description="created, existing or skipped")


class LambdaInvoker:
    """Synchronous JSON invocation of a Lambda function."""

    def __init__(self, function_name: str | None, client=None) -> None:
        self.function_name = function_name
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.function_name)

    def invoke(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self._client is None:
            self._client = boto3.client("lambda")
        response = self._client.invoke(
            FunctionName=self.function_name,
            InvocationType="RequestResponse",
            Payload=json.dumps(payload).encode("utf-8"),
        )
        raw = response["Payload"].read()
        if response.get("FunctionError"):
            raise DownstreamError(f"{self.function_name} failed: {raw[:200]!r}")
        try:
            result = json.loads(raw or b"{}")
        except json.JSONDecodeError as e:
            raise DownstreamError(f"{self.function_name} returned invalid JSON") from e
        if not isinstance(result, dict):
            raise DownstreamError(f"{self.function_name} returned {type(result).__name__}")
        return result


class RefillScheduler:
    """Schedules future medication refills for a paid plan."""

    def __init__(self, invoker: LambdaInvoker) -> None:
        self._invoker = invoker

    @property
    def is_configured(self) -> bool:
        return self._invoker.is_configured

    def schedule(
        self,
        *,
        clinic_id: str,
        patient_id: str,
        invoice_id: str,
        medication: str,
        plan: str,
        start_date: dt.date,
    ) -> RefillSchedule:
        result = self._invoker.invoke(
            {
                "action": "schedule_refills",
                "clinic_id": clinic_id,
                "patient_id": patient_id,
                "invoice_id": invoice_id,
                "medication": medication,
                "plan": plan,
                "start_date": start_date.isoformat(),
            }
        )
        return RefillSchedule.model_validate(result)


class ClinicalNoteAssurance:
    """Ensures a clinical note exists for a paid invoice."""

    def __init__(self, invoker: LambdaInvoker) -> None:
        self._invoker = invoker

    @property
    def is_configured(self) -> bool:
        return self._invoker.is_configured

    def ensure_note(self, *, patient_id: str, invoice_id: str) -> ClinicalNoteResult:
        result = self._invoker.invoke(
            {"action": "ensure_note", "patient_id": patient_id, "invoice_id": invoice_id}
        )
        return ClinicalNoteResult.model_validate(result)
