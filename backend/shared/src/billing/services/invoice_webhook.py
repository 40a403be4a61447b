"""Invoice webhook processing pipeline.

One inbound event flows through:

    authenticate -> resolve clinic -> idempotency check -> validate
    -> normalize -> resolve patient -> create invoice
    -> [best effort] medication inference, address backfill,
       clinical note, refill scheduling
    -> store idempotency record -> respond

Failures before the idempotency check surface as WebhookErrors. Any
exception while resolving the patient or creating the invoice goes to the
dead-letter queue (202) or, without one, becomes a PersistenceError (500).
Best-effort steps run in worker threads bounded by the event's deadline and
never change the response status.
"""

import contextvars
import logging
import time
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict

from billing.config import WebhookSettings
from billing.models import (
    DeadLetterContext,
    Invoice,
    NormalizedInvoiceEvent,
    Patient,
    PatientResolution,
    PersistenceError,
    ProcessingResult,
)
from billing.services.authenticator import WebhookAuthenticator
from billing.services.dead_letter_queue import DeadLetterQueue, DeadLetterQueueError
from billing.services.downstream import ClinicalNoteAssurance, RefillScheduler
from billing.services.idempotency import IdempotencyGuard, idempotency_key
from billing.services.invoice_service import InvoiceService, build_product_name
from billing.services.medication_inference import MedicationInference, MedicationInferenceEngine
from billing.services.patient_repository import PatientRepository
from billing.services.patient_resolver import PatientResolver
from billing.services.payload_normalizer import normalize_event, parse_payload
from billing.services.tenant import ClinicDirectory, clinic_context
from billing.utils.logging import generate_correlation_id, get_correlation_id, log_webhook_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Shared by all events; a started call that outlives its deadline keeps
# running here but its result is discarded
_best_effort_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="invoice-best-effort")


class PipelineOptions(BaseModel):
    """Behavior flags for the pipeline."""

    model_config = ConfigDict(frozen=True)

    attempt_name_match: bool = True
    schedule_refills: bool = True
    ensure_clinical_note: bool = True
    backfill_address: bool = True

    @classmethod
    def from_settings(cls, settings: WebhookSettings) -> "PipelineOptions":
        return cls(
            attempt_name_match=settings.attempt_name_match,
            schedule_refills=settings.schedule_refills,
            ensure_clinical_note=settings.ensure_clinical_note,
            backfill_address=settings.backfill_address,
        )


class WebhookResult(BaseModel):
    """HTTP status and JSON body for one processed event."""

    status_code: int
    body: dict[str, Any]


class Deadline:
    """Wall-clock budget for one event."""

    def __init__(self, seconds: float) -> None:
        self._expires_at = time.monotonic() + seconds
        self._abandoned = False

    def abandon(self) -> None:
        """Spend the rest of the budget; later steps are skipped."""
        self._abandoned = True

    def remaining(self) -> float:
        if self._abandoned:
            return 0.0
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0


class InvoiceWebhookPipeline:
    """Processes inbound invoice events end to end."""

    def __init__(
        self,
        settings: WebhookSettings,
        *,
        authenticator: WebhookAuthenticator,
        clinics: ClinicDirectory,
        idempotency: IdempotencyGuard,
        patients: PatientRepository,
        invoices: InvoiceService,
        medication: MedicationInferenceEngine,
        dead_letters: DeadLetterQueue,
        refills: RefillScheduler,
        notes: ClinicalNoteAssurance,
        options: PipelineOptions | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._settings = settings
        self._options = options or PipelineOptions.from_settings(settings)
        self._authenticator = authenticator
        self._clinics = clinics
        self._idempotency = idempotency
        self._patients = patients
        self._resolver = PatientResolver(
            patients,
            source=settings.source_system,
            attempt_name_match=self._options.attempt_name_match,
        )
        self._invoices = invoices
        self._medication = medication
        self._dead_letters = dead_letters
        self._refills = refills
        self._notes = notes
        self._executor = executor or _best_effort_executor

    @property
    def source(self) -> str:
        return self._settings.source_system

    def process(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookResult:
        """Process one event.

        Raises:
            AuthenticationError: Missing or wrong secret.
            ConfigurationError: No secret configured, or the clinic is missing.
            PayloadValidationError: Malformed JSON or invalid required fields.
            PersistenceError: Persistence failed and the event could not be queued.
        """
        started = time.monotonic()
        request_id = get_correlation_id() or generate_correlation_id()
        deadline = Deadline(self._settings.processing_timeout_seconds)

        self._authenticator.authenticate(headers)
        clinic = self._clinics.require_by_subdomain(self._settings.clinic_subdomain)

        key = idempotency_key(self.source, raw_body)
        cached = self._idempotency.lookup(key)
        if cached is not None:
            log_webhook_event(
                logger, self.source, request_id, stage="idempotency", result="duplicate"
            )
            return WebhookResult(
                status_code=cached.response_status,
                body=IdempotencyGuard.replay_body(cached),
            )

        payload = parse_payload(raw_body)
        event = normalize_event(payload, raw_body, self._settings)
        log_webhook_event(
            logger,
            self.source,
            request_id,
            stage="received",
            email=event.email,
            amount_cents=event.amount_cents,
            amount_source=event.amount_source.value,
            address_parsed=event.address_was_parsed,
        )

        with clinic_context(clinic.clinic_id):
            try:
                resolution = self._resolver.resolve(clinic.clinic_id, event)
                log_webhook_event(
                    logger,
                    self.source,
                    request_id,
                    stage="patient_resolved",
                    patient_id=resolution.patient.patient_id,
                    resolution=resolution.kind.value,
                )
                creation = self._invoices.create_paid_invoice(
                    clinic.clinic_id, resolution.patient, event
                )
            except Exception as e:
                return self._dead_letter(event, e, request_id)

            invoice = creation.invoice
            patient = resolution.patient
            if creation.duplicate:
                log_webhook_event(
                    logger,
                    self.source,
                    request_id,
                    stage="invoice_exists",
                    result=ProcessingResult.DUPLICATE.value,
                    patient_id=patient.patient_id,
                    invoice_id=invoice.invoice_id,
                )
                body = self._response_body(
                    request_id, event, resolution, invoice, started, duplicate=True
                )
            else:
                log_webhook_event(
                    logger,
                    self.source,
                    request_id,
                    stage="invoice_created",
                    result=ProcessingResult.CREATED.value,
                    patient_id=patient.patient_id,
                    invoice_id=invoice.invoice_id,
                    amount_cents=invoice.amount,
                )
                extras = self._run_best_effort_steps(event, patient, invoice, deadline)
                body = self._response_body(
                    request_id, event, resolution, invoice, started, duplicate=False, **extras
                )

        self._idempotency.record(key, self.source, 200, body)
        return WebhookResult(status_code=200, body=body)

    # Failure recovery

    def _dead_letter(
        self, event: NormalizedInvoiceEvent, error: Exception, request_id: str
    ) -> WebhookResult:
        reason = f"{type(error).__name__}: {error}"
        logger.exception("Invoice persistence failed [%s]", request_id)
        log_webhook_event(
            logger, self.source, request_id, stage="persistence", result="error", error=reason
        )

        if not self._dead_letters.is_configured:
            raise PersistenceError({"request_id": request_id, "queued_for_retry": False})

        context = DeadLetterContext(
            email=event.email,
            submission_id=event.submission_id,
            treatment_type=event.medication_type or event.product,
            request_id=request_id,
        )
        try:
            entry = self._dead_letters.enqueue(
                event.raw_body, source=self.source, reason=reason, context=context
            )
        except DeadLetterQueueError as e:
            logger.error("Could not dead-letter event [%s]: %s", request_id, e)
            raise PersistenceError({"request_id": request_id, "queued_for_retry": False}) from e

        log_webhook_event(
            logger,
            self.source,
            request_id,
            stage="dead_lettered",
            result=ProcessingResult.QUEUED.value,
            dead_letter_id=entry.entry_id,
        )
        return WebhookResult(
            status_code=202,
            body={
                "success": False,
                "queued_for_retry": True,
                "dead_letter_id": entry.entry_id,
                "request_id": request_id,
                "message": "Invoice could not be recorded; event queued for retry",
            },
        )

    # Best-effort steps

    def _best_effort(
        self, name: str, deadline: Deadline, func: Callable[..., T], *args: Any, **kwargs: Any
    ) -> T | None:
        """Run ``func`` in a worker thread within the remaining budget.

        Returns None when the step fails, times out or the budget is spent.
        A step that times out is cancelled if it has not started, and ends
        the budget so no later step is submitted.
        """
        remaining = deadline.remaining()
        if remaining <= 0:
            logger.warning("Skipping %s: processing deadline reached", name)
            return None

        # Worker threads do not inherit context variables (clinic, correlation id)
        ctx = contextvars.copy_context()
        future = self._executor.submit(ctx.run, func, *args, **kwargs)
        try:
            return future.result(timeout=remaining)
        except FutureTimeout:
            deadline.abandon()
            if future.cancel():
                logger.warning(
                    "%s timed out after %.1fs before starting; cancelled", name, remaining
                )
            else:
                logger.warning(
                    "%s timed out after %.1fs; result will be discarded", name, remaining
                )
        except Exception:
            logger.exception("%s failed; continuing", name)
        return None

    def _infer_medication(
        self, patient_id: str, event: NormalizedInvoiceEvent, invoice_id: str
    ) -> MedicationInference:
        inference = self._medication.infer(patient_id, event)
        if inference.resolved or inference.months:
            self._invoices.merge_metadata(invoice_id, inference.as_metadata())
        return inference

    def _backfill_contact(self, patient: Patient, event: NormalizedInvoiceEvent) -> list[str]:
        fields = event.address.model_dump()
        if event.phone:
            fields["phone"] = event.phone
        fields = {k: v for k, v in fields.items() if v}
        if not fields:
            logger.warning("No address in payload for patient %s", patient.patient_id)
            return []
        self._patients.update_contact(patient.patient_id, fields)
        return sorted(fields)

    def _run_best_effort_steps(
        self,
        event: NormalizedInvoiceEvent,
        patient: Patient,
        invoice: Invoice,
        deadline: Deadline,
    ) -> dict[str, Any]:
        inference = self._best_effort(
            "medication inference",
            deadline,
            self._infer_medication,
            patient.patient_id,
            event,
            invoice.invoice_id,
        )

        updated_fields: list[str] | None = None
        if self._options.backfill_address:
            updated_fields = self._best_effort(
                "address backfill", deadline, self._backfill_contact, patient, event
            )

        note = None
        if self._options.ensure_clinical_note and self._notes.is_configured:
            note = self._best_effort(
                "clinical note",
                deadline,
                self._notes.ensure_note,
                patient_id=patient.patient_id,
                invoice_id=invoice.invoice_id,
            )

        refill_dates: list[str] = []
        medication = inference.medication if inference else None
        if self._options.schedule_refills and self._refills.is_configured:
            if medication:
                schedule = self._best_effort(
                    "refill scheduling",
                    deadline,
                    self._refills.schedule,
                    clinic_id=invoice.clinic_id,
                    patient_id=patient.patient_id,
                    invoice_id=invoice.invoice_id,
                    medication=medication,
                    plan=event.plan,
                    start_date=event.payment_date.date(),
                )
                if schedule:
                    refill_dates = [d.isoformat() for d in schedule.scheduled_dates]
            else:
                logger.info("Not scheduling refills: medication unknown")

        return {
            "medication": medication,
            "medication_source": inference.source.value if inference and inference.source else None,
            "address_updated": bool(updated_fields),
            "clinical_note": {
                "id": note.note_id if note else None,
                "action": note.action if note else "skipped",
            },
            "refills": refill_dates,
        }

    def _response_body(
        self,
        request_id: str,
        event: NormalizedInvoiceEvent,
        resolution: PatientResolution,
        invoice: Invoice,
        started: float,
        *,
        duplicate: bool,
        **extras: Any,
    ) -> dict[str, Any]:
        patient = resolution.patient
        body: dict[str, Any] = {
            "success": True,
            "duplicate": duplicate,
            "request_id": request_id,
            "message": (
                "Invoice already exists for this payment"
                if duplicate
                else "Invoice created and marked as paid"
            ),
            "invoice": {
                "id": invoice.invoice_id,
                "invoice_number": invoice.invoice_number,
                "amount": invoice.amount,
                "amount_formatted": invoice.amount_formatted,
                "status": invoice.status.value,
                "is_paid": True,
            },
            "patient": {
                "id": patient.patient_id,
                "resolution": resolution.kind.value,
                "is_stub": patient.is_stub,
            },
            "product": build_product_name(event.product, event.medication_type, event.plan),
            "medication_type": event.medication_type,
            "plan": event.plan,
            "payment_method_id": event.payment_method_id,
            "processing_time_ms": int((time.monotonic() - started) * 1000),
        }
        body.update(extras)
        return body
