"""Dead-letter queue for events whose persistence failed.

Failed events are sent to SQS with the raw body, a failure reason and a
small correlation context, so a retry worker (or a human) can reprocess
them. Queueing does not retry by itself.
"""

import datetime as dt
import json
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from billing.models import DeadLetterContext, DeadLetterEntry
from billing.utils.logging import mask_email

logger = logging.getLogger(__name__)


class DeadLetterQueueError(Exception):
    """Raised when an event could not be queued."""


class DeadLetterQueue:
    """SQS-backed dead-letter queue."""

    def __init__(self, queue_url: str | None, client=None) -> None:
        self._queue_url = queue_url
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self._queue_url)

    def _sqs(self):
        if self._client is None:
            self._client = boto3.client("sqs")
        return self._client

    def enqueue(
        self,
        payload: str,
        *,
        source: str,
        reason: str,
        context: DeadLetterContext,
    ) -> DeadLetterEntry:
        """Queue a failed event.

        Returns:
            The queued entry; ``entry_id`` is the SQS message ID.

        Raises:
            DeadLetterQueueError: If no queue is configured or the send fails.
        """
        if not self.is_configured:
            raise DeadLetterQueueError("Dead-letter queue is not configured")

        queued_at = dt.datetime.now(dt.UTC)
        body = {
            "source": source,
            "reason": reason,
            "payload": payload,
            "context": context.model_dump(),
            "attempt_count": 0,
            "status": "pending",
            "queued_at": queued_at.isoformat(),
        }
        try:
            response = self._sqs().send_message(
                QueueUrl=self._queue_url,
                MessageBody=json.dumps(body),
                MessageAttributes={
                    "source": {"DataType": "String", "StringValue": source},
                },
            )
        except (ClientError, BotoCoreError) as e:
            raise DeadLetterQueueError(f"Failed to queue event: {e}") from e

        entry = DeadLetterEntry(
            entry_id=response["MessageId"],
            source=source,
            reason=reason,
            payload=payload,
            context=context,
            queued_at=queued_at,
        )
        logger.warning(
            "Queued failed event %s for retry (email=%s, reason=%s)",
            entry.entry_id,
            mask_email(context.email),
            reason,
        )
        return entry
