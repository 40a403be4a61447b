"""Tenant-scoped patient storage with PHI encryption.

PHI fields are encrypted at rest, so lookups by email or name cannot be
pushed down to DynamoDB. The repository fetches the active clinic's
patients through ``clinic_id-index``, decrypts them in memory, and filters.

Each patient created here also gets a row in ``patient-email-refs``
keyed by clinic and email hash, written in the same transaction as the
patient, so concurrent events for one new payer create one patient.
"""

import datetime as dt
import hashlib
import logging
import uuid
from typing import Any

from billing.models import ACTIVE_PROFILE_STATUSES, Patient, PatientCreate, ProfileStatus
from billing.services.dynamodb import DynamoDBService, from_dynamo, get_dynamodb_service
from billing.services.field_cipher import FieldCipher, get_field_cipher
from billing.services.tenant import require_clinic_id

logger = logging.getLogger(__name__)

# Fields the address backfill may write
CONTACT_FIELDS = ("address1", "address2", "city", "state", "zip", "phone")


def email_ref(clinic_id: str, email: str) -> str:
    """Per-clinic email key that does not store the email itself."""
    digest = hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()
    return f"{clinic_id}#{digest}"


class PatientRepository:
    """CRUD for patients of the clinic in the current ``clinic_context``."""

    TABLE = "patients"
    EMAIL_REFS_TABLE = "patient-email-refs"
    CLINIC_INDEX = "clinic_id-index"

    def __init__(
        self,
        db: DynamoDBService | None = None,
        cipher: FieldCipher | None = None,
    ) -> None:
        self._db = db or get_dynamodb_service()
        self._cipher = cipher or get_field_cipher()

    def _to_model(self, item: dict[str, Any]) -> Patient:
        data = self._cipher.decrypt_fields(from_dynamo(item))
        return Patient(
            patient_id=data["patient_id"],
            clinic_id=data["clinic_id"],
            email=data.get("email", ""),
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            phone=data.get("phone", ""),
            dob=data.get("dob", ""),
            address1=data.get("address1", ""),
            address2=data.get("address2", ""),
            city=data.get("city", ""),
            state=data.get("state", ""),
            zip=data.get("zip", ""),
            profile_status=ProfileStatus(data.get("profile_status", ProfileStatus.ACTIVE.value)),
            tags=list(data.get("tags", [])),
            source=data.get("source", ""),
            source_metadata=dict(data.get("source_metadata", {})),
            created_at=dt.datetime.fromisoformat(data["created_at"]),
        )

    def get(self, patient_id: str) -> Patient | None:
        clinic_id = require_clinic_id()
        item = self._db.get_item(self.TABLE, {"patient_id": patient_id})
        if not item or item.get("clinic_id") != clinic_id:
            return None
        return self._to_model(item)

    def list_active(self) -> list[Patient]:
        """All patients of the current clinic that may be matched against."""
        clinic_id = require_clinic_id()
        items = self._db.query_by_gsi(self.TABLE, self.CLINIC_INDEX, "clinic_id", clinic_id)
        return [
            self._to_model(item)
            for item in items
            if item.get("profile_status", ProfileStatus.ACTIVE.value) in ACTIVE_PROFILE_STATUSES
        ]

    def find_by_email(self, email: str) -> list[Patient]:
        target = email.strip().lower()
        return [p for p in self.list_active() if p.email.strip().lower() == target]

    def find_by_name(self, first_name: str, last_name: str) -> list[Patient]:
        first = first_name.strip().lower()
        last = last_name.strip().lower()
        return [
            p
            for p in self.list_active()
            if p.first_name.strip().lower() == first and p.last_name.strip().lower() == last
        ]

    def find_by_submission_id(self, submission_id: str) -> list[Patient]:
        matches = []
        for patient in self.list_active():
            meta = patient.source_metadata
            if meta.get("submission_id") == submission_id or submission_id in meta.get(
                "submission_ids", []
            ):
                matches.append(patient)
        return matches

    def _new_item(self, data: PatientCreate) -> dict[str, Any]:
        clinic_id = require_clinic_id()
        if data.clinic_id != clinic_id:
            raise ValueError("Patient clinic does not match the active clinic context")

        now = dt.datetime.now(dt.UTC)
        return {
            "patient_id": f"pat-{uuid.uuid4().hex[:12]}",
            "clinic_id": clinic_id,
            "email": data.email.strip().lower(),
            "first_name": data.first_name,
            "last_name": data.last_name,
            "phone": data.phone,
            "dob": data.dob,
            "profile_status": data.profile_status.value,
            "tags": list(data.tags),
            "source": data.source,
            "source_metadata": data.source_metadata,
            "created_at": now.isoformat(),
        }

    def find_by_email_ref(self, email: str) -> Patient | None:
        """Patient registered for ``email`` by ``create_unique_by_email``."""
        ref = self._db.get_item(
            self.EMAIL_REFS_TABLE, {"email_ref": email_ref(require_clinic_id(), email)}
        )
        return self.get(ref["patient_id"]) if ref else None

    def create_unique_by_email(self, data: PatientCreate) -> tuple[Patient, bool]:
        """Create a patient unless one was already registered for its email.

        Of several concurrent calls for the same clinic and email, exactly
        one commits; the others get the committed patient.

        Returns:
            The patient and whether this call created it.
        """
        item = self._new_item(data)
        ref = {
            "email_ref": email_ref(item["clinic_id"], item["email"]),
            "patient_id": item["patient_id"],
            "clinic_id": item["clinic_id"],
            "created_at": item["created_at"],
        }
        committed = self._db.put_items_atomically(
            [
                (self.TABLE, self._cipher.encrypt_fields(item), "attribute_not_exists(patient_id)"),
                (self.EMAIL_REFS_TABLE, ref, "attribute_not_exists(email_ref)"),
            ]
        )
        if committed:
            logger.info("Created patient %s in clinic %s", item["patient_id"], item["clinic_id"])
            return self._to_model(item), True

        existing = self.find_by_email_ref(item["email"])
        if existing is None:
            raise RuntimeError("Email is registered to a patient that could not be read")
        logger.info("Patient %s already registered for this email", existing.patient_id)
        return existing, False

    def update_contact(self, patient_id: str, fields: dict[str, str]) -> Patient | None:
        """Write address/phone fields onto an existing patient.

        Returns:
            The updated patient, or None if it is not in the current clinic.
        """
        clinic_id = require_clinic_id()
        updates = {k: v for k, v in fields.items() if k in CONTACT_FIELDS and v}
        if not updates:
            return self.get(patient_id)

        encrypted = self._cipher.encrypt_fields(updates)
        names = {f"#{k}": k for k in encrypted}
        values: dict[str, Any] = {f":{k}": v for k, v in encrypted.items()}
        values[":clinic_id"] = clinic_id
        values[":now"] = dt.datetime.now(dt.UTC).isoformat()
        expression = "SET " + ", ".join(f"#{k} = :{k}" for k in encrypted)
        expression += ", updated_at = :now"

        attrs = self._db.update_item(
            self.TABLE,
            {"patient_id": patient_id},
            expression,
            values,
            names,
            condition_expression="clinic_id = :clinic_id",
        )
        return self._to_model(attrs) if attrs else None
