"""Tagged result type for patient resolution strategies."""

from pydantic import BaseModel, Field

from .enums import ResolutionKind
from .patient import Patient


class PatientResolution(BaseModel):
    """Result of one resolution strategy.

    ``kind`` is NONE when the strategy did not select a patient; in that case
    ``candidate_count`` tells whether it found nothing (0) or was ambiguous (>1).
    """

    kind: ResolutionKind
    patient: Patient | None = None
    candidate_count: int = Field(default=0, ge=0)

    @property
    def resolved(self) -> bool:
        return self.patient is not None

    @property
    def ambiguous(self) -> bool:
        return self.patient is None and self.candidate_count > 1

    @classmethod
    def unresolved(cls, candidate_count: int = 0) -> "PatientResolution":
        return cls(kind=ResolutionKind.NONE, candidate_count=candidate_count)
