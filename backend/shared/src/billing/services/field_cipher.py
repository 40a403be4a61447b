"""Field-level encryption for patient PHI stored in DynamoDB.

Values are encrypted with the AWS Encryption SDK under a KMS key and stored
as ``enc:v1:<base64 ciphertext>``. Values without that prefix are treated as
plaintext, so records written before encryption was enabled stay readable.
"""

import base64
import logging
from functools import lru_cache

import aws_encryption_sdk
from aws_encryption_sdk import CommitmentPolicy

from billing.config import get_settings

logger = logging.getLogger(__name__)

CIPHERTEXT_PREFIX = "enc:v1:"

# Patient attributes encrypted at rest
PHI_FIELDS = (
    "email",
    "first_name",
    "last_name",
    "phone",
    "dob",
    "address1",
    "address2",
    "city",
    "state",
    "zip",
)


class FieldCipherError(Exception):
    """Raised when a stored value cannot be decrypted."""


class FieldCipher:
    """Encrypts and decrypts individual string fields.

    With no key configured the cipher is a passthrough: it writes plaintext
    and refuses to decrypt ciphertext it cannot read.
    """

    def __init__(self, kms_key_id: str | None = None) -> None:
        self._kms_key_id = kms_key_id
        self._client = None
        self._key_provider = None

    @property
    def enabled(self) -> bool:
        return bool(self._kms_key_id)

    def _sdk(self):
        if self._client is None:
            self._key_provider = aws_encryption_sdk.StrictAwsKmsMasterKeyProvider(
                key_ids=[self._kms_key_id]
            )
            self._client = aws_encryption_sdk.EncryptionSDKClient(
                commitment_policy=CommitmentPolicy.REQUIRE_ENCRYPT_ALLOW_DECRYPT
            )
        return self._client, self._key_provider

    def encrypt(self, value: str) -> str:
        if not value or not self.enabled or value.startswith(CIPHERTEXT_PREFIX):
            return value
        client, key_provider = self._sdk()
        ciphertext, _ = client.encrypt(source=value.encode("utf-8"), key_provider=key_provider)
        return CIPHERTEXT_PREFIX + base64.b64encode(ciphertext).decode("ascii")

    def decrypt(self, value: str) -> str:
        if not value or not value.startswith(CIPHERTEXT_PREFIX):
            return value
        if not self.enabled:
            raise FieldCipherError("Encrypted value found but no KMS key is configured")
        client, key_provider = self._sdk()
        ciphertext = base64.b64decode(value[len(CIPHERTEXT_PREFIX):])
        plaintext, _ = client.decrypt(source=ciphertext, key_provider=key_provider)
        return plaintext.decode("utf-8")

    def encrypt_fields(self, item: dict) -> dict:
        """Return a copy of ``item`` with its PHI fields encrypted."""
        encrypted = dict(item)
        for field in PHI_FIELDS:
            value = encrypted.get(field)
            if isinstance(value, str):
                encrypted[field] = self.encrypt(value)
        return encrypted

    def decrypt_fields(self, item: dict) -> dict:
        """Return a copy of ``item`` with its PHI fields decrypted."""
        decrypted = dict(item)
        for field in PHI_FIELDS:
            value = decrypted.get(field)
            if isinstance(value, str):
                decrypted[field] = self.decrypt(value)
        return decrypted


@lru_cache(maxsize=1)
def get_field_cipher() -> FieldCipher:
    """Get the process-wide cipher for the configured PHI key."""
    key_id = get_settings().phi_kms_key_id
    if not key_id:
        logger.warning("PHI_KMS_KEY_ID is not set; patient fields are stored unencrypted")
    return FieldCipher(key_id)
