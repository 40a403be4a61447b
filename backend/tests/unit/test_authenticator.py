"""Unit tests for shared-secret webhook authentication.

Test categories:
- Secret extraction from the accepted headers
- Secret comparison and failure reasons
- Secret resolution from SSM and misconfiguration
"""

from unittest.mock import MagicMock, patch

import pytest

from billing.config import WebhookSettings
from billing.models import AuthenticationError, ConfigurationError, ErrorCode
from billing.services.authenticator import WebhookAuthenticator, extract_secret
from billing.services.ssm_service import SSMServiceError

TEST_SECRET = "whsec_unit_secret"
TEST_PARAMETER = "/clinic/dev/invoice-webhook/secret"


class TestExtractSecret:
    def test_webhook_secret_header(self):
        assert extract_secret({"x-webhook-secret": TEST_SECRET}) == TEST_SECRET

    def test_api_key_header(self):
        assert extract_secret({"X-API-Key": TEST_SECRET}) == TEST_SECRET

    def test_bearer_token(self):
        assert extract_secret({"Authorization": f"Bearer {TEST_SECRET}"}) == TEST_SECRET

    def test_non_bearer_authorization_is_ignored(self):
        assert extract_secret({"Authorization": f"Basic {TEST_SECRET}"}) is None

    def test_header_order(self):
        headers = {"authorization": "Bearer third", "x-api-key": "second", "x-webhook-secret": "first"}

        assert extract_secret(headers) == "first"

    def test_no_secret(self):
        assert extract_secret({"content-type": "application/json"}) is None


class TestAuthenticate:
    def test_valid_secret(self):
        authenticator = WebhookAuthenticator(WebhookSettings(webhook_secret=TEST_SECRET))

        authenticator.authenticate({"x-webhook-secret": TEST_SECRET})

    def test_missing_secret(self):
        authenticator = WebhookAuthenticator(WebhookSettings(webhook_secret=TEST_SECRET))

        with pytest.raises(AuthenticationError) as exc_info:
            authenticator.authenticate({})

        assert exc_info.value.code == ErrorCode.AUTH_FAILED
        assert exc_info.value.details == {"reason": "missing secret"}

    def test_wrong_secret(self):
        authenticator = WebhookAuthenticator(WebhookSettings(webhook_secret=TEST_SECRET))

        with pytest.raises(AuthenticationError) as exc_info:
            authenticator.authenticate({"x-api-key": "wrong"})

        assert exc_info.value.details == {"reason": "invalid secret"}

    def test_no_secret_configured(self):
        """Misconfiguration is reported distinctly from a bad caller secret."""
        authenticator = WebhookAuthenticator(WebhookSettings())

        with pytest.raises(ConfigurationError) as exc_info:
            authenticator.authenticate({"x-webhook-secret": TEST_SECRET})

        assert exc_info.value.code == ErrorCode.SECRET_NOT_CONFIGURED
        assert authenticator.is_configured is False


class TestSecretFromSSM:
    @pytest.fixture
    def mock_ssm(self):
        with patch("billing.services.authenticator.get_ssm_service") as mock_get_ssm:
            ssm = MagicMock()
            mock_get_ssm.return_value = ssm
            yield ssm

    def test_secret_loaded_once(self, mock_ssm):
        mock_ssm.get_parameter.return_value = TEST_SECRET
        authenticator = WebhookAuthenticator(
            WebhookSettings(webhook_secret_parameter=TEST_PARAMETER)
        )

        authenticator.authenticate({"x-webhook-secret": TEST_SECRET})
        authenticator.authenticate({"x-webhook-secret": TEST_SECRET})

        mock_ssm.get_parameter.assert_called_once_with(TEST_PARAMETER)

    def test_ssm_failure_is_misconfiguration(self, mock_ssm):
        mock_ssm.get_parameter.side_effect = SSMServiceError("SSM parameter not found")
        authenticator = WebhookAuthenticator(
            WebhookSettings(webhook_secret_parameter=TEST_PARAMETER)
        )

        with pytest.raises(ConfigurationError) as exc_info:
            authenticator.authenticate({"x-webhook-secret": TEST_SECRET})

        assert exc_info.value.code == ErrorCode.SECRET_NOT_CONFIGURED

    def test_env_secret_takes_precedence(self, mock_ssm):
        authenticator = WebhookAuthenticator(
            WebhookSettings(webhook_secret=TEST_SECRET, webhook_secret_parameter=TEST_PARAMETER)
        )

        authenticator.authenticate({"x-webhook-secret": TEST_SECRET})

        mock_ssm.get_parameter.assert_not_called()
