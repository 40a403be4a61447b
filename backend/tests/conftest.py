"""Pytest configuration and fixtures for clinic billing backend tests.

This module provides reusable fixtures for testing:
- AWS mocking with moto (DynamoDB tables, SQS dead-letter queue)
- A seeded partner clinic
- Sample webhook payloads and normalized events
"""

import datetime as dt
import json
import os
from collections.abc import Callable
from typing import Any, Generator

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-clinic")

# Only set fake credentials for moto if no real credentials are present
if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from billing.models import AmountSource, Clinic, NormalizedInvoiceEvent, ParsedAddress  # noqa: E402
from billing_api.dependencies import reset_services  # noqa: E402

TABLE_PREFIX = os.environ["DYNAMODB_TABLE_PREFIX"]
TEST_WEBHOOK_SECRET = "whsec_invoice_test_secret"
TEST_CLINIC_ID = "clinic-0001"
TEST_CLINIC_SUBDOMAIN = "wellmedr"

# Settings read from the environment; cleared so a developer shell cannot leak in
_SETTINGS_ENV_VARS = (
    "PHI_KMS_KEY_ID",
    "REFILL_SCHEDULER_FUNCTION",
    "CLINICAL_NOTE_FUNCTION",
)


@pytest.fixture(autouse=True)
def reset_cached_services(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Clear cached settings and service singletons around each test.

    Tests using mock_aws need fresh boto3 clients created inside the mock
    context rather than ones cached by a previous test.
    """
    for name in list(os.environ):
        if name.startswith("INVOICE_") or name in _SETTINGS_ENV_VARS:
            monkeypatch.delenv(name, raising=False)
    reset_services()
    yield
    reset_services()


# === AWS Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def dynamodb_client(aws_credentials: None) -> Generator[Any, None, None]:
    """Create a mocked DynamoDB client (keeps mock_aws active for the test)."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        yield client


def _gsi(name: str, hash_key: str, range_key: str | None = None) -> dict[str, Any]:
    key_schema = [{"AttributeName": hash_key, "KeyType": "HASH"}]
    if range_key:
        key_schema.append({"AttributeName": range_key, "KeyType": "RANGE"})
    return {
        "IndexName": name,
        "KeySchema": key_schema,
        "Projection": {"ProjectionType": "ALL"},
    }


@pytest.fixture
def create_tables(dynamodb_client: Any) -> None:
    """Create all required DynamoDB tables for testing."""
    tables = [
        {
            "TableName": f"{TABLE_PREFIX}-idempotency-records",
            "KeySchema": [{"AttributeName": "idempotency_key", "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": "idempotency_key", "AttributeType": "S"},
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": f"{TABLE_PREFIX}-patients",
            "KeySchema": [{"AttributeName": "patient_id", "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": "patient_id", "AttributeType": "S"},
                {"AttributeName": "clinic_id", "AttributeType": "S"},
            ],
            "GlobalSecondaryIndexes": [_gsi("clinic_id-index", "clinic_id")],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": f"{TABLE_PREFIX}-patient-email-refs",
            "KeySchema": [{"AttributeName": "email_ref", "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": "email_ref", "AttributeType": "S"},
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": f"{TABLE_PREFIX}-invoices",
            "KeySchema": [{"AttributeName": "invoice_id", "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": "invoice_id", "AttributeType": "S"},
                {"AttributeName": "patient_id", "AttributeType": "S"},
                {"AttributeName": "clinic_id", "AttributeType": "S"},
                {"AttributeName": "created_at", "AttributeType": "S"},
            ],
            "GlobalSecondaryIndexes": [
                _gsi("patient_id-index", "patient_id", "created_at"),
                _gsi("clinic_id-index", "clinic_id", "created_at"),
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": f"{TABLE_PREFIX}-invoice-payment-refs",
            "KeySchema": [{"AttributeName": "dedup_key", "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": "dedup_key", "AttributeType": "S"},
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": f"{TABLE_PREFIX}-intake-documents",
            "KeySchema": [{"AttributeName": "document_id", "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": "document_id", "AttributeType": "S"},
                {"AttributeName": "patient_id", "AttributeType": "S"},
                {"AttributeName": "created_at", "AttributeType": "S"},
            ],
            "GlobalSecondaryIndexes": [_gsi("patient_id-index", "patient_id", "created_at")],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": f"{TABLE_PREFIX}-clinics",
            "KeySchema": [{"AttributeName": "clinic_id", "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": "clinic_id", "AttributeType": "S"},
                {"AttributeName": "subdomain", "AttributeType": "S"},
            ],
            "GlobalSecondaryIndexes": [_gsi("subdomain-index", "subdomain")],
            "BillingMode": "PAY_PER_REQUEST",
        },
    ]

    for table_config in tables:
        dynamodb_client.create_table(**table_config)

    dynamodb_client.update_time_to_live(
        TableName=f"{TABLE_PREFIX}-idempotency-records",
        TimeToLiveSpecification={"Enabled": True, "AttributeName": "expires_at"},
    )


@pytest.fixture
def clinic(create_tables: None) -> Clinic:
    """The partner clinic, stored in the clinics table."""
    table = boto3.resource("dynamodb", region_name="eu-west-1").Table(f"{TABLE_PREFIX}-clinics")
    table.put_item(
        Item={
            "clinic_id": TEST_CLINIC_ID,
            "subdomain": TEST_CLINIC_SUBDOMAIN,
            "name": "WellMedR Telehealth",
        }
    )
    return Clinic(clinic_id=TEST_CLINIC_ID, subdomain=TEST_CLINIC_SUBDOMAIN, name="WellMedR Telehealth")


@pytest.fixture
def dlq_url(dynamodb_client: Any) -> str:
    """URL of a mocked SQS dead-letter queue."""
    sqs = boto3.client("sqs", region_name="eu-west-1")
    return sqs.create_queue(QueueName="invoice-webhook-dlq")["QueueUrl"]


@pytest.fixture
def webhook_env(monkeypatch: pytest.MonkeyPatch, clinic: Clinic) -> Clinic:
    """Environment for the webhook endpoint: shared secret and partner clinic."""
    monkeypatch.setenv("INVOICE_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET)
    monkeypatch.setenv("INVOICE_CLINIC_SUBDOMAIN", TEST_CLINIC_SUBDOMAIN)
    reset_services()
    return clinic


# === Sample Data Fixtures ===


@pytest.fixture
def sample_payload() -> dict[str, Any]:
    """A realistic partner payload with a combined shipping address."""
    return {
        "customer_email": "Jane.Doe@mailbox.org",
        "method_payment_id": "pm_1StwAHDfH4PWyxxdppqIGipS",
        "customer_name": "Jane Doe",
        "product": "tirzepatide",
        "medication_type": "injections",
        "plan": "3 months",
        "price": "$627.00",
        "submission_id": "sub_8f2k1",
        "shipping_address": "201 ELBRIDGE AVE, APT F, Cloverdale, California, 95425",
        "phone": "+1 (707) 555-0142",
        "payment_date": "2026-01-26T10:00:00Z",
        "airtable_record_id": "recA1b2C3",
    }


@pytest.fixture
def sample_body(sample_payload: dict[str, Any]) -> bytes:
    return json.dumps(sample_payload).encode("utf-8")


@pytest.fixture
def make_event() -> Callable[..., NormalizedInvoiceEvent]:
    """Factory for normalized events with sensible defaults."""

    def _make(**overrides: Any) -> NormalizedInvoiceEvent:
        values: dict[str, Any] = {
            "email": "jane.doe@mailbox.org",
            "payment_method_id": "pm_123",
            "amount_cents": 62700,
            "amount_source": AmountSource.PRICE,
            "product": "tirzepatide",
            "medication_type": "injections",
            "plan": "3 months",
            "payer_name": "Jane Doe",
            "payer_first_name": "Jane",
            "payer_last_name": "Doe",
            "payment_date": dt.datetime(2026, 1, 26, 10, 0, tzinfo=dt.UTC),
            "address": ParsedAddress(
                address1="201 ELBRIDGE AVE",
                address2="APT F",
                city="Cloverdale",
                state="CA",
                zip="95425",
            ),
            "raw_body": '{"customer_email": "jane.doe@mailbox.org", "method_payment_id": "pm_123"}',
        }
        values.update(overrides)
        return NormalizedInvoiceEvent(**values)

    return _make
