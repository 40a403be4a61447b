"""FastAPI exception handlers for webhook pipeline errors.

Converts WebhookError subclasses into HTTP responses with the shared error
body (success, error_code, message, recovery, details):
- 400 Bad Request: payload validation failures (never retried by the partner)
- 401 Unauthorized: missing or wrong shared secret
- 500 Internal Server Error: misconfiguration, or persistence failed with no
  dead-letter queue

Usage:
    from billing_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from billing.models import ErrorCode, WebhookError

logger = logging.getLogger(__name__)

ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.AUTH_FAILED: HTTP_401_UNAUTHORIZED,
    ErrorCode.SECRET_NOT_CONFIGURED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.CLINIC_NOT_FOUND: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.INVALID_JSON: HTTP_400_BAD_REQUEST,
    ErrorCode.MISSING_REQUIRED_FIELD: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_PAYMENT_METHOD: HTTP_400_BAD_REQUEST,
    ErrorCode.PLACEHOLDER_EMAIL: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_FIELD: HTTP_400_BAD_REQUEST,
    ErrorCode.PERSISTENCE_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """HTTP status for an ErrorCode; unmapped codes are server errors."""
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_500_INTERNAL_SERVER_ERROR)


async def webhook_error_handler(request: Request, exc: WebhookError) -> JSONResponse:
    """Render a WebhookError with its mapped status."""
    status_code = get_http_status_for_error(exc.code)
    if status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code.value)

    return JSONResponse(
        status_code=status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(WebhookError, webhook_error_handler)  # type: ignore[arg-type]
