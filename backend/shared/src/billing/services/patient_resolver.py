"""Resolves the patient an invoice event belongs to.

Strategies run in order and stop at the first one that selects a patient:

1. identity   - email match among active clinic patients
2. name       - exact first + last name match (optional)
3. submission - partner submission ID stored on the patient
4. stub       - create a placeholder patient to be merged with the intake later

A stub is always attributable back to its originating event: it carries the
raw event text and the correlation fields in ``source_metadata``.
"""

import logging

from billing.models import (
    NEEDS_MERGE_TAG,
    STUB_TAG,
    NormalizedInvoiceEvent,
    PatientCreate,
    PatientResolution,
    ProfileStatus,
    ResolutionKind,
)
from billing.services.patient_repository import PatientRepository
from billing.utils.logging import mask_email

logger = logging.getLogger(__name__)

STUB_FIRST_NAME = "Unknown"
STUB_LAST_NAME = "Patient"
STUB_DOB = "1900-01-01"
STUB_PHONE = "0000000000"


class PatientResolver:
    """Finds or creates the patient for a normalized event."""

    def __init__(
        self,
        repository: PatientRepository,
        *,
        source: str,
        attempt_name_match: bool = True,
    ) -> None:
        self._repository = repository
        self._source = source
        self._attempt_name_match = attempt_name_match

    def resolve(self, clinic_id: str, event: NormalizedInvoiceEvent) -> PatientResolution:
        """Run the strategies in order. Always returns a resolved patient.

        Repository errors propagate; the pipeline dead-letters them.
        """
        strategies = [self.match_identity, self.match_name, self.match_submission]
        for strategy in strategies:
            resolution = strategy(event)
            if resolution.resolved:
                logger.info(
                    "Resolved patient %s via %s",
                    resolution.patient.patient_id,
                    resolution.kind.value,
                )
                return resolution
        return self.create_stub(clinic_id, event)

    def match_identity(self, event: NormalizedInvoiceEvent) -> PatientResolution:
        matches = self._repository.find_by_email(event.email)
        if not matches:
            return PatientResolution.unresolved()
        if len(matches) > 1:
            matches.sort(key=lambda p: p.created_at, reverse=True)
            logger.warning(
                "Found %d patients for %s, using the most recently created (%s)",
                len(matches),
                mask_email(event.email),
                matches[0].patient_id,
            )
        return PatientResolution(
            kind=ResolutionKind.IDENTITY, patient=matches[0], candidate_count=len(matches)
        )

    def match_name(self, event: NormalizedInvoiceEvent) -> PatientResolution:
        if not self._attempt_name_match:
            return PatientResolution.unresolved()
        if not (event.payer_first_name and event.payer_last_name):
            return PatientResolution.unresolved()

        matches = self._repository.find_by_name(event.payer_first_name, event.payer_last_name)
        if len(matches) == 1:
            return PatientResolution(
                kind=ResolutionKind.NAME, patient=matches[0], candidate_count=1
            )
        if len(matches) > 1:
            logger.warning(
                "Name match is ambiguous (%d candidates); not selecting a patient",
                len(matches),
            )
        return PatientResolution.unresolved(candidate_count=len(matches))

    def match_submission(self, event: NormalizedInvoiceEvent) -> PatientResolution:
        if not event.submission_id:
            return PatientResolution.unresolved()

        matches = self._repository.find_by_submission_id(event.submission_id)
        if len(matches) == 1:
            return PatientResolution(
                kind=ResolutionKind.SUBMISSION, patient=matches[0], candidate_count=1
            )
        if len(matches) > 1:
            logger.warning(
                "Submission %s maps to %d patients; not selecting a patient",
                event.submission_id,
                len(matches),
            )
        return PatientResolution.unresolved(candidate_count=len(matches))

    def create_stub(self, clinic_id: str, event: NormalizedInvoiceEvent) -> PatientResolution:
        """Create a placeholder patient holding everything the event knows.

        A concurrent event for the same email may have created the stub
        first; that patient is returned instead of a second one.
        """
        metadata = {
            "created_by": "invoice-webhook",
            "original_event": event.raw_body,
            "submission_id": event.submission_id,
            "payment_method_id": event.payment_method_id,
            "customer_name": event.payer_name,
            "product": event.product,
            "plan": event.plan,
            "amount_cents": event.amount_cents,
        }
        patient, created = self._repository.create_unique_by_email(
            PatientCreate(
                clinic_id=clinic_id,
                email=event.email,
                first_name=event.payer_first_name or STUB_FIRST_NAME,
                last_name=event.payer_last_name or STUB_LAST_NAME,
                phone=event.phone or STUB_PHONE,
                dob=STUB_DOB,
                profile_status=ProfileStatus.PENDING_COMPLETION,
                tags=[STUB_TAG, NEEDS_MERGE_TAG, self._source],
                source=self._source,
                source_metadata={k: v for k, v in metadata.items() if v not in ("", None)},
            )
        )
        if created:
            logger.warning(
                "Created stub patient %s for %s; needs intake merge",
                patient.patient_id,
                mask_email(event.email),
            )
        else:
            logger.info(
                "Using patient %s already registered for %s",
                patient.patient_id,
                mask_email(event.email),
            )
        return PatientResolution(kind=ResolutionKind.STUB, patient=patient, candidate_count=0)
