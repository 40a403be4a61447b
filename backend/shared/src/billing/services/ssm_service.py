"""SSM Parameter Store access for webhook secrets.

The partner shares one secret with the clinic; in deployed environments it
lives in a SecureString parameter rather than in the Lambda environment.
"""

import logging
from functools import lru_cache
from typing import ClassVar

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class SSMServiceError(Exception):
    """Raised when SSM parameter retrieval fails."""


class SSMService:
    """Retrieves and caches decrypted SecureString parameters.

    Usage:
        ssm = SSMService()
        secret = ssm.get_parameter("/clinic/dev/invoice-webhook/secret")
    """

    _instance: ClassVar["SSMService | None"] = None
    _cache: ClassVar[dict[str, str]] = {}

    def __init__(self) -> None:
        self._client = boto3.client("ssm")

    @classmethod
    def get_instance(cls) -> "SSMService":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get_parameter(self, name: str, *, use_cache: bool = True) -> str:
        """Retrieve a parameter value.

        Args:
            name: Full parameter path
            use_cache: Whether to use a cached value if available

        Returns:
            The decrypted parameter value.

        Raises:
            SSMServiceError: If the parameter cannot be retrieved.
        """
        if use_cache and name in self._cache:
            return self._cache[name]

        try:
            logger.info("Fetching SSM parameter: %s", name)
            response = self._client.get_parameter(Name=name, WithDecryption=True)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code == "ParameterNotFound":
                raise SSMServiceError(f"SSM parameter not found: {name}") from e
            raise SSMServiceError(f"Failed to retrieve SSM parameter {name}: {e}") from e

        value: str = response["Parameter"]["Value"]
        self._cache[name] = value
        return value

    @classmethod
    def reset(cls) -> None:
        """Drop the shared instance and cached values (for testing)."""
        cls._instance = None
        cls._cache.clear()


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the shared SSMService instance."""
    return SSMService.get_instance()
