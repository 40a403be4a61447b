"""Standard error codes for the invoice webhook pipeline.

Every failure the pipeline surfaces to a caller carries one of these codes.
The API layer maps each code to an HTTP status (see billing_api.exceptions).
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard error codes for webhook responses."""

    # Authentication (rejected before any state change)
    AUTH_FAILED = "ERR_AUTH_001"

    # Server misconfiguration
    SECRET_NOT_CONFIGURED = "ERR_CONFIG_001"
    CLINIC_NOT_FOUND = "ERR_CONFIG_002"

    # Payload validation (never retried, never dead-lettered)
    INVALID_JSON = "ERR_VALIDATION_001"
    MISSING_REQUIRED_FIELD = "ERR_VALIDATION_002"
    INVALID_PAYMENT_METHOD = "ERR_VALIDATION_003"
    PLACEHOLDER_EMAIL = "ERR_VALIDATION_004"
    INVALID_FIELD = "ERR_VALIDATION_005"

    # Persistence failure with no dead-letter facility
    PERSISTENCE_FAILED = "ERR_PERSISTENCE_001"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.AUTH_FAILED: "Unauthorized",
    ErrorCode.SECRET_NOT_CONFIGURED: "Server misconfigured: webhook secret is not set",
    ErrorCode.CLINIC_NOT_FOUND: "Server misconfigured: clinic not found",
    ErrorCode.INVALID_JSON: "Invalid JSON payload",
    ErrorCode.MISSING_REQUIRED_FIELD: "Missing required field",
    ErrorCode.INVALID_PAYMENT_METHOD: "Invalid payment method format - expected pm_...",
    ErrorCode.PLACEHOLDER_EMAIL: "customer_email contains a placeholder or header value",
    ErrorCode.INVALID_FIELD: "Invalid field value",
    ErrorCode.PERSISTENCE_FAILED: "Failed to record invoice",
}

# Recovery suggestions for the calling system
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.AUTH_FAILED: "Send the shared secret in x-webhook-secret, x-api-key or Authorization",
    ErrorCode.SECRET_NOT_CONFIGURED: "Set INVOICE_WEBHOOK_SECRET or INVOICE_WEBHOOK_SECRET_PARAMETER",
    ErrorCode.CLINIC_NOT_FOUND: "Verify INVOICE_CLINIC_SUBDOMAIN matches an existing clinic",
    ErrorCode.INVALID_JSON: "Send a JSON object body",
    ErrorCode.MISSING_REQUIRED_FIELD: "Include customer_email and method_payment_id",
    ErrorCode.INVALID_PAYMENT_METHOD: "Send the payment method ID (pm_...)",
    ErrorCode.PLACEHOLDER_EMAIL: "Check the automation field mapping for customer_email",
    ErrorCode.INVALID_FIELD: "Correct the field value and resend",
    ErrorCode.PERSISTENCE_FAILED: "Retry the delivery later",
}


class WebhookErrorResponse(BaseModel):
    """Standard error body returned for every failed webhook call."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    details: Optional[dict[str, Any]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, Any]] = None,
    ) -> "WebhookErrorResponse":
        """Create an error response from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error

        Returns:
            A WebhookErrorResponse with the message and recovery hint for the code.
        """
        return cls(
            error_code=code,
            message=ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            details=details,
        )


class WebhookError(Exception):
    """Base exception raised by the invoice webhook pipeline.

    Caught by the API layer and converted to a WebhookErrorResponse.
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, Any]] = None,
    ):
        self.code = code
        self.message = ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        super().__init__(self.message)

    def to_response(self) -> WebhookErrorResponse:
        """Convert this exception to an error response body."""
        return WebhookErrorResponse.from_code(self.code, self.details)


class AuthenticationError(WebhookError):
    """Missing or wrong shared secret."""

    def __init__(self, details: Optional[dict[str, Any]] = None):
        super().__init__(ErrorCode.AUTH_FAILED, details)


class ConfigurationError(WebhookError):
    """Server-side misconfiguration (no secret, unknown clinic)."""


class PayloadValidationError(WebhookError):
    """Inbound payload failed validation."""


class PersistenceError(WebhookError):
    """A durable write failed and the event could not be dead-lettered."""

    def __init__(self, details: Optional[dict[str, Any]] = None):
        super().__init__(ErrorCode.PERSISTENCE_FAILED, details)
