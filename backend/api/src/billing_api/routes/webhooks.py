"""Webhook endpoints for partner payment events.

Provides endpoints for:
- POST /webhooks/invoice: record a paid invoice for a partner payment
- GET /webhooks/invoice: health check and accepted-schema documentation

These endpoints do NOT use session authentication; callers present the
shared webhook secret instead.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from billing.config import get_settings
from billing.services.authenticator import SECRET_HEADERS
from billing.services.field_aliases import FIELD_ALIASES, FIELD_DESCRIPTIONS
from billing.services.invoice_webhook import InvoiceWebhookPipeline
from billing_api.dependencies import get_dead_letter_queue, get_invoice_webhook_pipeline
from billing_api.models import (
    AcceptedField,
    InvoiceWebhookDocsResponse,
    InvoiceWebhookResponse,
    QueuedForRetryResponse,
    WebhookErrorResponse,
)

router = APIRouter(tags=["webhooks"])

INVOICE_WEBHOOK_PATH = "/webhooks/invoice"


@router.post(
    INVOICE_WEBHOOK_PATH,
    summary="Receive a partner payment event",
    description="""
Records a paid invoice for a payment collected by the partner.

**Authentication**: shared secret in `x-webhook-secret`, `x-api-key` or
`Authorization: Bearer <secret>`.

**Idempotent**: a byte-identical redelivery returns the original response
with `duplicate` and `idempotent_replay` set. A different delivery for the
same payment method and patient returns the existing invoice with
`duplicate: true`.
""",
    response_model=InvoiceWebhookResponse,
    responses={
        200: {"description": "Invoice recorded or already recorded", "model": InvoiceWebhookResponse},
        202: {"description": "Recording failed; queued for retry", "model": QueuedForRetryResponse},
        400: {"description": "Invalid payload", "model": WebhookErrorResponse},
        401: {"description": "Missing or invalid secret", "model": WebhookErrorResponse},
        500: {"description": "Misconfiguration or persistence failure", "model": WebhookErrorResponse},
    },
)
async def handle_invoice_webhook(
    request: Request,
    pipeline: InvoiceWebhookPipeline = Depends(get_invoice_webhook_pipeline),
) -> JSONResponse:
    """Process one invoice event.

    The raw body is passed through unparsed; its exact bytes form the
    idempotency key.
    """
    raw_body = await request.body()
    result = await run_in_threadpool(pipeline.process, raw_body, dict(request.headers))
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get(
    INVOICE_WEBHOOK_PATH,
    summary="Invoice webhook health and schema",
    response_model=InvoiceWebhookDocsResponse,
)
async def describe_invoice_webhook() -> InvoiceWebhookDocsResponse:
    """Describe the accepted payload, generated from the alias table."""
    settings = get_settings()
    optional_fields = [
        AcceptedField(
            field=field,
            aliases=list(aliases),
            description=FIELD_DESCRIPTIONS.get(field, ""),
        )
        for field, aliases in FIELD_ALIASES.items()
        if field in FIELD_DESCRIPTIONS
    ]
    return InvoiceWebhookDocsResponse(
        endpoint=f"/api{INVOICE_WEBHOOK_PATH}",
        clinic_subdomain=settings.clinic_subdomain,
        source=settings.source_system,
        authentication={
            "headers": [
                "x-webhook-secret",
                "x-api-key",
                "Authorization: Bearer <secret>",
            ],
            "checked_in_order": list(SECRET_HEADERS),
            "configured": bool(settings.webhook_secret or settings.webhook_secret_parameter),
        },
        required_fields={
            "customer_email": "Patient email from the intake",
            "method_payment_id": "Payment method ID, e.g. pm_1StwAHDfH4PWyxxdppqIGipS",
        },
        optional_fields=optional_fields,
        dead_letter_queue_configured=get_dead_letter_queue().is_configured,
    )
