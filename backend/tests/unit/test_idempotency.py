"""Unit tests for byte-level replay detection (moto DynamoDB)."""

import datetime as dt
import os
from typing import Any

import boto3
import pytest

from billing.services.dynamodb import DynamoDBService
from billing.services.idempotency import (
    IdempotencyGuard,
    compute_payload_hash,
    idempotency_key,
)

SOURCE = "wellmedr-airtable"
BODY = b'{"customer_email": "a@b.com", "method_payment_id": "pm_123"}'


@pytest.fixture
def guard(create_tables: None) -> IdempotencyGuard:
    return IdempotencyGuard(DynamoDBService())


class TestIdempotencyKey:
    def test_key_is_namespaced_hash(self):
        key = idempotency_key(SOURCE, BODY)

        assert key == f"{SOURCE}_{compute_payload_hash(BODY)}"
        assert len(compute_payload_hash(BODY)) == 64

    def test_str_and_bytes_hash_alike(self):
        assert compute_payload_hash(BODY) == compute_payload_hash(BODY.decode("utf-8"))

    def test_whitespace_changes_key(self):
        """Keys are over raw bytes, not parsed content."""
        assert idempotency_key(SOURCE, BODY) != idempotency_key(SOURCE, BODY + b" ")


class TestIdempotencyGuard:
    def test_unknown_key(self, guard):
        assert guard.lookup(idempotency_key(SOURCE, BODY)) is None

    def test_record_then_lookup(self, guard):
        key = idempotency_key(SOURCE, BODY)
        body = {"success": True, "duplicate": False, "invoice": {"id": "inv-1", "amount": 113400}}

        guard.record(key, SOURCE, 200, body)
        record = guard.lookup(key)

        assert record is not None
        assert record.response_status == 200
        assert record.resource == SOURCE
        assert record.response_body == body

    def test_replay_body_marks_duplicate(self, guard):
        key = idempotency_key(SOURCE, BODY)
        guard.record(key, SOURCE, 200, {"success": True, "duplicate": False})

        replay = IdempotencyGuard.replay_body(guard.lookup(key))

        assert replay == {"success": True, "duplicate": True, "idempotent_replay": True}

    def test_first_record_wins(self, guard):
        key = idempotency_key(SOURCE, BODY)

        guard.record(key, SOURCE, 200, {"request_id": "first"})
        guard.record(key, SOURCE, 200, {"request_id": "second"})

        assert guard.lookup(key).response_body == {"request_id": "first"}

    def test_expired_record_is_ignored(self, guard, dynamodb_client: Any):
        key = idempotency_key(SOURCE, BODY)
        past = dt.datetime.now(dt.UTC) - dt.timedelta(days=8)
        boto3.resource("dynamodb", region_name="eu-west-1").Table(
            f"{os.environ['DYNAMODB_TABLE_PREFIX']}-idempotency-records"
        ).put_item(
            Item={
                "idempotency_key": key,
                "resource": SOURCE,
                "response_status": 200,
                "response_body": {},
                "created_at": past.isoformat(),
                "expires_at": int(past.timestamp()),
            }
        )

        assert guard.lookup(key) is None


class TestStoreFailures:
    def test_lookup_error_is_treated_as_unseen(self, dynamodb_client: Any):
        """Without the table the guard degrades to "not seen"."""
        guard = IdempotencyGuard(DynamoDBService())

        assert guard.lookup(idempotency_key(SOURCE, BODY)) is None

    def test_record_error_is_swallowed(self, dynamodb_client: Any):
        guard = IdempotencyGuard(DynamoDBService())

        guard.record(idempotency_key(SOURCE, BODY), SOURCE, 200, {})
