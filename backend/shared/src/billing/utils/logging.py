"""Logging helpers: request correlation and PHI-safe pipeline milestones.

The correlation ID lives in a ContextVar, so it follows a request into
``run_in_threadpool`` and into the pipeline's best-effort workers, which run
under a copied context. ``StructuredFormatter`` prefixes every line with it.
"""

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

NO_CORRELATION_ID = "-"

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    return _correlation_id.get()


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """Bind a correlation ID for the enclosed block.

    Uses the caller's ID when given (e.g. an ``X-Correlation-ID`` header),
    otherwise a new one. The previous value is restored on exit.
    """
    cid = correlation_id or generate_correlation_id()
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


class StructuredFormatter(logging.Formatter):
    """``[<correlation id>] <formatted record>``"""

    def format(self, record: logging.LogRecord) -> str:
        return f"[{get_correlation_id() or NO_CORRELATION_ID}] {super().format(record)}"


def mask_email(email: str | None) -> str:
    """Mask an email address for PHI-safe logging.

    Keeps the first character of the local part and the full domain,
    e.g. ``jane.doe@mailbox.org`` -> ``j***@mailbox.org``.

    Args:
        email: Email address (may be None or malformed)

    Returns:
        Masked email, or "<none>" when empty
    """
    if not email:
        return "<none>"
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"


def log_webhook_event(
    logger: logging.Logger,
    source: str,
    request_id: str,
    *,
    stage: str,
    result: str | None = None,
    patient_id: str | None = None,
    invoice_id: str | None = None,
    email: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log an invoice webhook pipeline milestone with structured context.

    Args:
        logger: Logger instance
        source: Source system tag (e.g., "wellmedr-airtable")
        request_id: Per-event request ID
        stage: Pipeline stage (received, patient_resolved, invoice_created, ...)
        result: Processing result (success, duplicate, queued, error)
        patient_id: Resolved patient ID if available
        invoice_id: Created or matched invoice ID if available
        email: Customer email (masked before logging)
        error: Error message if processing failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "source": source,
        "request_id": request_id,
        "stage": stage,
    }

    if result:
        context["result"] = result
    if patient_id:
        context["patient_id"] = patient_id
    if invoice_id:
        context["invoice_id"] = invoice_id
    if email:
        context["email"] = mask_email(email)
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Invoice webhook [{request_id}]: {stage}"]
    if result:
        msg_parts.append(f"result={result}")
    if patient_id:
        msg_parts.append(f"patient={patient_id}")
    if invoice_id:
        msg_parts.append(f"invoice={invoice_id}")
    if error:
        msg_parts.append(f"error={error}")

    message = " | ".join(msg_parts)

    if result == "error":
        logger.error(message, extra=context)
    elif result in ("duplicate", "queued", "skipped"):
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)
