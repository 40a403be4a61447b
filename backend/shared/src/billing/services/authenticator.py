"""Shared-secret authentication for partner webhook calls."""

import hmac
import logging
from collections.abc import Mapping

from billing.config import WebhookSettings
from billing.models import AuthenticationError, ConfigurationError, ErrorCode
from billing.services.ssm_service import SSMServiceError, get_ssm_service

logger = logging.getLogger(__name__)

# Checked in this order; the first header present wins
SECRET_HEADERS = ("x-webhook-secret", "x-api-key", "authorization")


def extract_secret(headers: Mapping[str, str]) -> str | None:
    """Return the caller-supplied secret, if any.

    ``Authorization`` is only accepted in the ``Bearer <secret>`` form.
    Header names are matched case-insensitively.
    """
    lowered = {k.lower(): v for k, v in headers.items()}
    for name in SECRET_HEADERS:
        value = lowered.get(name)
        if not value:
            continue
        if name == "authorization":
            scheme, _, token = value.partition(" ")
            if scheme.lower() == "bearer" and token.strip():
                return token.strip()
            continue
        return value.strip()
    return None


class WebhookAuthenticator:
    """Verifies the shared secret on inbound partner events."""

    def __init__(self, settings: WebhookSettings) -> None:
        self._settings = settings
        self._secret: str | None = settings.webhook_secret

    def _expected_secret(self) -> str:
        if self._secret:
            return self._secret

        parameter = self._settings.webhook_secret_parameter
        if parameter:
            try:
                self._secret = get_ssm_service().get_parameter(parameter)
            except SSMServiceError as e:
                logger.error("Could not load webhook secret from SSM: %s", e)
        if not self._secret:
            logger.error("Invoice webhook secret is not configured")
            raise ConfigurationError(ErrorCode.SECRET_NOT_CONFIGURED)
        return self._secret

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.webhook_secret or self._settings.webhook_secret_parameter)

    def authenticate(self, headers: Mapping[str, str]) -> None:
        """Check the caller's secret.

        Raises:
            ConfigurationError: If no secret is configured on our side.
            AuthenticationError: If the secret is missing or wrong.
        """
        expected = self._expected_secret()
        supplied = extract_secret(headers)
        if supplied is None:
            logger.warning("Invoice webhook call without a secret header")
            raise AuthenticationError({"reason": "missing secret"})
        if not hmac.compare_digest(supplied.encode(), expected.encode()):
            logger.warning("Invoice webhook call with an invalid secret")
            raise AuthenticationError({"reason": "invalid secret"})
