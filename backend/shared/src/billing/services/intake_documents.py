"""Read access to patients' intake documents."""

import datetime as dt
from typing import Any

from pydantic import BaseModel, Field

from billing.services.dynamodb import DynamoDBService, from_dynamo, get_dynamodb_service
from billing.services.tenant import require_clinic_id


class IntakeDocument(BaseModel):
    """Answers a patient gave on an intake form."""

    document_id: str
    clinic_id: str
    patient_id: str
    document_type: str = "intake"
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: dt.datetime


class IntakeDocumentStore:
    TABLE = "intake-documents"

    def __init__(self, db: DynamoDBService | None = None) -> None:
        self._db = db or get_dynamodb_service()

    def latest_for_patient(self, patient_id: str) -> IntakeDocument | None:
        """Most recent intake document of a patient in the current clinic."""
        clinic_id = require_clinic_id()
        items = self._db.query_by_gsi(
            self.TABLE,
            "patient_id-index",
            "patient_id",
            patient_id,
            scan_index_forward=False,
        )
        for item in items:
            if item.get("clinic_id") == clinic_id:
                data = from_dynamo(item)
                return IntakeDocument(
                    document_id=data["document_id"],
                    clinic_id=data["clinic_id"],
                    patient_id=data["patient_id"],
                    document_type=data.get("document_type", "intake"),
                    data=data.get("data", {}),
                    created_at=dt.datetime.fromisoformat(data["created_at"]),
                )
        return None
