"""Byte-level replay detection for inbound events.

The partner retries deliveries on timeouts, so the same body can arrive
several times. The first successful processing stores its response under a
hash of the raw body; later identical deliveries get that response back.
"""

import datetime as dt
import hashlib
import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from billing.models import IdempotencyRecord
from billing.services.dynamodb import DynamoDBService, from_dynamo, get_dynamodb_service

logger = logging.getLogger(__name__)

RECORD_TTL = dt.timedelta(days=7)


def compute_payload_hash(payload: bytes | str) -> str:
    """SHA-256 hex digest of the unparsed body."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def idempotency_key(source: str, payload: bytes | str) -> str:
    return f"{source}_{compute_payload_hash(payload)}"


class IdempotencyGuard:
    """Stores and replays responses keyed by body fingerprint."""

    TABLE = "idempotency-records"

    def __init__(self, db: DynamoDBService | None = None) -> None:
        self._db = db or get_dynamodb_service()

    def lookup(self, key: str) -> IdempotencyRecord | None:
        """Return the cached record, or None.

        Store failures are logged and treated as "not seen" so that a flaky
        idempotency table never blocks processing; the invoice dedup key
        still prevents double billing.
        """
        try:
            item = self._db.get_item(self.TABLE, {"idempotency_key": key})
        except (ClientError, BotoCoreError) as e:
            logger.warning("Idempotency lookup failed, proceeding: %s", e)
            return None
        if not item:
            return None

        item = from_dynamo(item)
        if item["expires_at"] <= int(dt.datetime.now(dt.UTC).timestamp()):
            return None
        return IdempotencyRecord(
            idempotency_key=item["idempotency_key"],
            resource=item.get("resource", ""),
            response_status=item.get("response_status", 200),
            response_body=item.get("response_body", {}),
            created_at=dt.datetime.fromisoformat(item["created_at"]),
            expires_at=item["expires_at"],
        )

    def record(
        self,
        key: str,
        resource: str,
        response_status: int,
        response_body: dict[str, Any],
    ) -> None:
        """Store the response for ``key``.

        A conditional-check conflict means a concurrent identical delivery
        already stored its response; that is success. Other failures are
        logged and swallowed.
        """
        now = dt.datetime.now(dt.UTC)
        item = {
            "idempotency_key": key,
            "resource": resource,
            "response_status": response_status,
            "response_body": response_body,
            "created_at": now.isoformat(),
            "expires_at": int((now + RECORD_TTL).timestamp()),
        }
        try:
            stored = self._db.put_item(
                self.TABLE, item, condition_expression="attribute_not_exists(idempotency_key)"
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to store idempotency record %s: %s", key, e)
            return
        if not stored:
            logger.info("Idempotency record %s already stored by a concurrent request", key)

    @staticmethod
    def replay_body(record: IdempotencyRecord) -> dict[str, Any]:
        """Cached body marked as a replay."""
        return {**record.response_body, "duplicate": True, "idempotent_replay": True}
