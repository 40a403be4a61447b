"""FastAPI dependency providers for the webhook services.

Factories are cached with @lru_cache so every request in a warm Lambda
reuses the same clients.

Service Dependency Graph:
    WebhookSettings (get_settings)
    DynamoDBService (singleton via get_dynamodb_service)
        ├── ClinicDirectory
        ├── IdempotencyGuard
        ├── PatientRepository (+ FieldCipher)
        ├── InvoiceService
        └── IntakeDocumentStore
                └── MedicationInferenceEngine
    DeadLetterQueue (SQS), RefillScheduler / ClinicalNoteAssurance (Lambda)
        └── InvoiceWebhookPipeline

Testing:
    Use reset_services() to clear cached instances between tests.
"""

from functools import lru_cache

from billing.config import get_settings
from billing.services.authenticator import WebhookAuthenticator
from billing.services.dead_letter_queue import DeadLetterQueue
from billing.services.downstream import ClinicalNoteAssurance, LambdaInvoker, RefillScheduler
from billing.services.dynamodb import get_dynamodb_service
from billing.services.field_cipher import get_field_cipher
from billing.services.idempotency import IdempotencyGuard
from billing.services.intake_documents import IntakeDocumentStore
from billing.services.invoice_service import InvoiceService
from billing.services.invoice_webhook import InvoiceWebhookPipeline
from billing.services.medication_inference import MedicationInferenceEngine
from billing.services.patient_repository import PatientRepository
from billing.services.tenant import ClinicDirectory


@lru_cache
def get_authenticator() -> WebhookAuthenticator:
    return WebhookAuthenticator(get_settings())


@lru_cache
def get_dead_letter_queue() -> DeadLetterQueue:
    return DeadLetterQueue(get_settings().dead_letter_queue_url)


@lru_cache
def get_invoice_webhook_pipeline() -> InvoiceWebhookPipeline:
    """Get the cached pipeline with all collaborators wired in.

    Returns:
        InvoiceWebhookPipeline configured from environment settings.
    """
    settings = get_settings()
    db = get_dynamodb_service()
    return InvoiceWebhookPipeline(
        settings,
        authenticator=get_authenticator(),
        clinics=ClinicDirectory(db),
        idempotency=IdempotencyGuard(db),
        patients=PatientRepository(db, get_field_cipher()),
        invoices=InvoiceService(
            db,
            number_prefix=settings.invoice_number_prefix,
            source=settings.source_system,
        ),
        medication=MedicationInferenceEngine(
            IntakeDocumentStore(db),
            tolerance=settings.price_match_tolerance,
        ),
        dead_letters=get_dead_letter_queue(),
        refills=RefillScheduler(LambdaInvoker(settings.refill_scheduler_function)),
        notes=ClinicalNoteAssurance(LambdaInvoker(settings.clinical_note_function)),
    )


def reset_services() -> None:
    """Clear all cached service instances and settings.

    Call this in test fixtures after changing the environment.
    """
    from billing.services.dynamodb import reset_dynamodb_service
    from billing.services.ssm_service import SSMService, get_ssm_service

    get_authenticator.cache_clear()
    get_dead_letter_queue.cache_clear()
    get_invoice_webhook_pipeline.cache_clear()
    get_field_cipher.cache_clear()
    get_settings.cache_clear()
    get_ssm_service.cache_clear()
    SSMService.reset()

    reset_dynamodb_service()
