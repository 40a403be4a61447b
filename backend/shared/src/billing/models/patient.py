"""Patient model as seen by the invoice pipeline."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import ProfileStatus

STUB_TAG = "stub-from-invoice"
NEEDS_MERGE_TAG = "needs-intake-merge"


class Patient(BaseModel):
    """A clinic patient with PHI fields already decrypted.

    Encryption happens in the repository; instances of this model always
    hold plaintext values and must not be logged whole.
    """

    model_config = ConfigDict(strict=True)

    patient_id: str = Field(..., description="Unique patient ID")
    clinic_id: str = Field(..., description="Owning clinic (tenant)")
    email: str = Field(default="", description="Contact email (PHI)")
    first_name: str = Field(default="", description="First name (PHI)")
    last_name: str = Field(default="", description="Last name (PHI)")
    phone: str = Field(default="", description="Phone number (PHI)")
    dob: str = Field(default="", description="Date of birth, YYYY-MM-DD (PHI)")
    address1: str = ""
    address2: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    profile_status: ProfileStatus = ProfileStatus.ACTIVE
    tags: list[str] = Field(default_factory=list)
    source: str = Field(default="", description="How the patient entered the system")
    source_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_stub(self) -> bool:
        return STUB_TAG in self.tags


class PatientCreate(BaseModel):
    """Data required to create a patient."""

    clinic_id: str
    email: str = ""
    first_name: str
    last_name: str
    phone: str
    dob: str
    profile_status: ProfileStatus = ProfileStatus.ACTIVE
    tags: list[str] = Field(default_factory=list)
    source: str = ""
    source_metadata: dict[str, Any] = Field(default_factory=dict)
