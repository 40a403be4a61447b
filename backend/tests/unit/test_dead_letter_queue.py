"""Unit tests for the SQS dead-letter queue (moto SQS)."""

import json
from typing import Any
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import ClientError

from billing.models import DeadLetterContext
from billing.services.dead_letter_queue import DeadLetterQueue, DeadLetterQueueError

RAW_BODY = '{"customer_email": "a@b.com", "method_payment_id": "pm_123"}'


@pytest.fixture
def context() -> DeadLetterContext:
    return DeadLetterContext(
        email="a@b.com", submission_id="sub_1", treatment_type="tirzepatide", request_id="req-1"
    )


class TestDeadLetterQueue:
    def test_enqueue_sends_original_event(self, dlq_url: str, context: DeadLetterContext):
        queue = DeadLetterQueue(dlq_url, boto3.client("sqs", region_name="eu-west-1"))

        entry = queue.enqueue(
            RAW_BODY, source="wellmedr-airtable", reason="RuntimeError: boom", context=context
        )

        messages = boto3.client("sqs", region_name="eu-west-1").receive_message(
            QueueUrl=dlq_url, MessageAttributeNames=["All"]
        )["Messages"]
        body = json.loads(messages[0]["Body"])
        assert entry.entry_id == messages[0]["MessageId"]
        assert entry.status == "pending"
        assert body["payload"] == RAW_BODY
        assert body["reason"] == "RuntimeError: boom"
        assert body["context"]["submission_id"] == "sub_1"
        assert body["attempt_count"] == 0
        assert messages[0]["MessageAttributes"]["source"]["StringValue"] == "wellmedr-airtable"

    def test_not_configured(self, context: DeadLetterContext):
        queue = DeadLetterQueue(None)

        assert queue.is_configured is False
        with pytest.raises(DeadLetterQueueError):
            queue.enqueue(RAW_BODY, source="wellmedr-airtable", reason="x", context=context)

    def test_send_failure(self, context: DeadLetterContext):
        client = MagicMock()
        client.send_message.side_effect = ClientError(
            {"Error": {"Code": "AWS.SimpleQueueService.NonExistentQueue", "Message": "gone"}},
            "SendMessage",
        )
        queue = DeadLetterQueue("https://sqs.eu-west-1.amazonaws.com/123456789012/dlq", client)

        with pytest.raises(DeadLetterQueueError):
            queue.enqueue(RAW_BODY, source="wellmedr-airtable", reason="x", context=context)

    def test_missing_queue(self, dynamodb_client: Any, context: DeadLetterContext):
        queue = DeadLetterQueue("https://sqs.eu-west-1.amazonaws.com/123456789012/missing")

        with pytest.raises(DeadLetterQueueError):
            queue.enqueue(RAW_BODY, source="wellmedr-airtable", reason="x", context=context)
