"""Unit tests for paid-invoice creation (moto DynamoDB).

Test categories:
- Invoice contents and product naming
- Per-payment dedup, including the lost-race path
- Cosmetic invoice numbering
- Metadata merges
"""

import datetime as dt
from unittest.mock import patch

import pytest

from billing.models import InvoiceStatus, Patient
from billing.services.dynamodb import DynamoDBService
from billing.services.invoice_service import (
    InvoiceService,
    build_product_name,
    dedup_key,
)

CLINIC_ID = "clinic-0001"


@pytest.fixture
def service(create_tables: None) -> InvoiceService:
    return InvoiceService(DynamoDBService(), number_prefix="WM", source="wellmedr-airtable")


@pytest.fixture
def patient() -> Patient:
    return Patient(
        patient_id="pat-1",
        clinic_id=CLINIC_ID,
        email="jane.doe@mailbox.org",
        first_name="Jane",
        last_name="Doe",
        created_at=dt.datetime.now(dt.UTC),
    )


class TestBuildProductName:
    @pytest.mark.parametrize(
        "product,medication,plan,expected",
        [
            ("tirzepatide", "injections", "3 months", "Tirzepatide Injections (3 months)"),
            ("SEMAGLUTIDE", "", "", "Semaglutide"),
            ("", "", "monthly", "GLP-1 (Monthly)"),
        ],
    )
    def test_product_name(self, product, medication, plan, expected):
        assert build_product_name(product, medication, plan) == expected


class TestCreatePaidInvoice:
    def test_creates_paid_invoice(self, service, patient, make_event):
        result = service.create_paid_invoice(CLINIC_ID, patient, make_event())

        invoice = result.invoice
        assert result.duplicate is False
        assert invoice.status is InvoiceStatus.PAID
        assert invoice.amount == 62700
        assert invoice.amount_paid == 62700
        assert invoice.amount_due == 0
        assert invoice.payment_method_ref == "pm_123"
        assert invoice.paid_at == dt.datetime(2026, 1, 26, 10, 0, tzinfo=dt.UTC)
        assert invoice.description == "Tirzepatide Injections (3 months) - Payment received"
        assert invoice.line_items[0].unit_price == 62700
        assert invoice.amount_formatted == "$627.00"

    def test_metadata_keeps_event_context(self, service, patient, make_event):
        event = make_event(submission_id="sub_1", unmapped_fields=["airtable_record_id"])

        invoice = service.create_paid_invoice(CLINIC_ID, patient, event).invoice
        stored = service.get(invoice.invoice_id)

        assert stored.metadata["submission_id"] == "sub_1"
        assert stored.metadata["source"] == "wellmedr-airtable"
        assert stored.metadata["city"] == "Cloverdale"
        assert stored.metadata["amount_source"] == "price"
        assert stored.metadata["unmapped_fields"] == ["airtable_record_id"]
        assert stored.metadata["summary"]["total"] == 62700

    def test_same_payment_is_deduplicated(self, service, patient, make_event):
        first = service.create_paid_invoice(CLINIC_ID, patient, make_event())
        second = service.create_paid_invoice(CLINIC_ID, patient, make_event(amount_cents=1))

        assert second.duplicate is True
        assert second.invoice.invoice_id == first.invoice.invoice_id
        assert len(service.list_for_patient(patient.patient_id)) == 1

    def test_different_payment_method_is_new_invoice(self, service, patient, make_event):
        service.create_paid_invoice(CLINIC_ID, patient, make_event())
        result = service.create_paid_invoice(
            CLINIC_ID, patient, make_event(payment_method_id="pm_456")
        )

        assert result.duplicate is False
        assert len(service.list_for_patient(patient.patient_id)) == 2

    def test_lost_race_returns_winner(self, service, patient, make_event):
        """The atomic ref write rejects a second invoice the pre-check missed."""
        winner = service.create_paid_invoice(CLINIC_ID, patient, make_event()).invoice

        with patch.object(service, "find_existing", return_value=None):
            result = service.create_paid_invoice(CLINIC_ID, patient, make_event())

        assert result.duplicate is True
        assert result.invoice.invoice_id == winner.invoice_id
        assert len(service.list_for_patient(patient.patient_id)) == 1

    def test_rejected_write_without_winner_raises(self, service, patient, make_event):
        with patch.object(service._db, "put_items_atomically", return_value=False):
            with pytest.raises(RuntimeError):
                service.create_paid_invoice(CLINIC_ID, patient, make_event())

    def test_dedup_key(self):
        assert dedup_key(CLINIC_ID, "pat-1", "pm_123") == "clinic-0001#pat-1#pm_123"


class TestInvoiceNumbering:
    def test_first_invoice_of_month(self, service):
        now = dt.datetime(2026, 10, 18, tzinfo=dt.UTC)

        assert service.next_invoice_number(CLINIC_ID, now) == "WM-202610-0001"

    def test_sequence_counts_this_month(self, service, patient, make_event):
        service.create_paid_invoice(CLINIC_ID, patient, make_event())
        service.create_paid_invoice(CLINIC_ID, patient, make_event(payment_method_id="pm_456"))

        number = service.next_invoice_number(CLINIC_ID)

        assert number.endswith("-0003")

    def test_count_failure_falls_back_to_first(self, dynamodb_client):
        """Numbering is cosmetic; a store error does not block invoicing."""
        service = InvoiceService(DynamoDBService(), number_prefix="WM")
        now = dt.datetime(2026, 10, 18, tzinfo=dt.UTC)

        assert service.next_invoice_number(CLINIC_ID, now) == "WM-202610-0001"


class TestMergeMetadata:
    def test_adds_keys_without_replacing_metadata(self, service, patient, make_event):
        invoice = service.create_paid_invoice(CLINIC_ID, patient, make_event()).invoice

        service.merge_metadata(
            invoice.invoice_id,
            {"inferred_medication": "tirzepatide", "inferred_plan_months": 3},
        )

        metadata = service.get(invoice.invoice_id).metadata
        assert metadata["inferred_medication"] == "tirzepatide"
        assert metadata["inferred_plan_months"] == 3
        assert metadata["payment_method_id"] == "pm_123"
