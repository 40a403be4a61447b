"""Creation of paid invoices for partner-collected payments.

At most one invoice exists per (clinic, patient, payment method). The
pre-check below is an optimization; the guarantee comes from writing the
invoice together with an ``invoice-payment-refs`` item in one transaction,
conditioned on that ref not existing yet.
"""

import datetime as dt
import logging
import uuid
from typing import Any

from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from billing.models import (
    Invoice,
    InvoiceCreationResult,
    InvoiceLineItem,
    InvoiceStatus,
    InvoiceSummary,
    NormalizedInvoiceEvent,
    Patient,
)
from billing.services.dynamodb import DynamoDBService, from_dynamo, get_dynamodb_service

logger = logging.getLogger(__name__)

DEFAULT_PRODUCT = "GLP-1"


def _capitalize(value: str) -> str:
    return value[:1].upper() + value[1:].lower()


def build_product_name(product: str, medication_type: str, plan: str) -> str:
    """E.g. "Tirzepatide Injections (3 months)"."""
    name = _capitalize(product) if product else DEFAULT_PRODUCT
    if medication_type:
        name += f" {_capitalize(medication_type)}"
    if plan:
        name += f" ({_capitalize(plan)})"
    return name


def dedup_key(clinic_id: str, patient_id: str, payment_method_id: str) -> str:
    return f"{clinic_id}#{patient_id}#{payment_method_id}"


class InvoiceService:
    """Creates and reads invoices."""

    TABLE = "invoices"
    REFS_TABLE = "invoice-payment-refs"

    def __init__(
        self,
        db: DynamoDBService | None = None,
        *,
        number_prefix: str = "WM",
        source: str = "wellmedr-airtable",
    ) -> None:
        self._db = db or get_dynamodb_service()
        self._number_prefix = number_prefix
        self._source = source

    def _to_model(self, item: dict[str, Any]) -> Invoice:
        data = from_dynamo(item)
        return Invoice(
            invoice_id=data["invoice_id"],
            clinic_id=data["clinic_id"],
            patient_id=data["patient_id"],
            invoice_number=data["invoice_number"],
            amount=data["amount"],
            amount_due=data.get("amount_due", 0),
            amount_paid=data.get("amount_paid", 0),
            currency=data.get("currency", "usd"),
            status=InvoiceStatus(data["status"]),
            paid_at=dt.datetime.fromisoformat(data["paid_at"]) if data.get("paid_at") else None,
            due_date=dt.datetime.fromisoformat(data["due_date"]) if data.get("due_date") else None,
            description=data.get("description", ""),
            payment_method_ref=data["payment_method_ref"],
            line_items=[InvoiceLineItem(**li) for li in data.get("line_items", [])],
            metadata=data.get("metadata", {}),
            created_at=dt.datetime.fromisoformat(data["created_at"]),
        )

    def get(self, invoice_id: str) -> Invoice | None:
        item = self._db.get_item(self.TABLE, {"invoice_id": invoice_id})
        return self._to_model(item) if item else None

    def list_for_patient(self, patient_id: str) -> list[Invoice]:
        items = self._db.query_by_gsi(self.TABLE, "patient_id-index", "patient_id", patient_id)
        return [self._to_model(item) for item in items]

    def find_existing(
        self, clinic_id: str, patient_id: str, payment_method_id: str
    ) -> Invoice | None:
        """Invoice already recorded for this real-world payment, if any."""
        for invoice in self.list_for_patient(patient_id):
            if invoice.clinic_id == clinic_id and invoice.payment_method_ref == payment_method_id:
                return invoice
        return None

    def _find_by_ref(self, clinic_id: str, patient_id: str, payment_method_id: str) -> Invoice | None:
        ref = self._db.get_item(
            self.REFS_TABLE, {"dedup_key": dedup_key(clinic_id, patient_id, payment_method_id)}
        )
        if not ref:
            return None
        return self.get(ref["invoice_id"])

    def next_invoice_number(self, clinic_id: str, now: dt.datetime | None = None) -> str:
        """``{prefix}-{YYYY}{MM}-{NNNN}`` from this month's count.

        The sequence is cosmetic; two concurrent events may get the same
        number. Invoice identity is ``invoice_id``.
        """
        now = now or dt.datetime.now(dt.UTC)
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        try:
            count = len(
                self._db.query_by_gsi(
                    self.TABLE,
                    "clinic_id-index",
                    "clinic_id",
                    clinic_id,
                    sort_key_condition=Key("created_at").gte(month_start.isoformat()),
                )
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning("Could not count invoices for numbering: %s", e)
            count = 0
        return f"{self._number_prefix}-{now:%Y%m}-{count + 1:04d}"

    def _build_metadata(
        self, event: NormalizedInvoiceEvent, patient: Patient, invoice_number: str, now: dt.datetime
    ) -> dict[str, Any]:
        address = event.address
        summary = InvoiceSummary(
            subtotal=event.amount_cents,
            total=event.amount_cents,
            amount_paid=event.amount_cents,
        )
        return {
            "invoice_number": invoice_number,
            "source": self._source,
            "payment_method_id": event.payment_method_id,
            "stripe_price_id": event.stripe_price_id,
            "submission_id": event.submission_id,
            "order_status": event.order_status,
            "subscription_status": event.subscription_status,
            "customer_name": event.payer_name or patient.full_name,
            "product": event.product or DEFAULT_PRODUCT,
            "medication_type": event.medication_type,
            "plan": event.plan,
            "address": event.full_address,
            "address_line1": address.address1,
            "address_line2": address.address2,
            "city": address.city,
            "state": address.state,
            "zip_code": address.zip,
            "country": event.country,
            "payment_date": event.payment_date.isoformat(),
            "amount_source": event.amount_source.value,
            "unmapped_fields": event.unmapped_fields,
            "processed_at": now.isoformat(),
            "summary": summary.model_dump(),
        }

    def create_paid_invoice(
        self, clinic_id: str, patient: Patient, event: NormalizedInvoiceEvent
    ) -> InvoiceCreationResult:
        """Record a paid invoice for the event, or return the one already recorded."""
        pm = event.payment_method_id

        try:
            existing = self.find_existing(clinic_id, patient.patient_id, pm)
        except (ClientError, BotoCoreError) as e:
            logger.warning("Duplicate pre-check failed, relying on the atomic write: %s", e)
            existing = None
        if existing:
            logger.info("Invoice %s already exists for this payment", existing.invoice_id)
            return InvoiceCreationResult(invoice=existing, duplicate=True)

        now = dt.datetime.now(dt.UTC)
        invoice_number = self.next_invoice_number(clinic_id, now)
        product_name = build_product_name(event.product, event.medication_type, event.plan)

        invoice = Invoice(
            invoice_id=f"inv-{uuid.uuid4().hex[:12]}",
            clinic_id=clinic_id,
            patient_id=patient.patient_id,
            invoice_number=invoice_number,
            amount=event.amount_cents,
            amount_due=0,
            amount_paid=event.amount_cents,
            status=InvoiceStatus.PAID,
            paid_at=event.payment_date,
            due_date=now,
            description=f"{product_name} - Payment received",
            payment_method_ref=pm,
            line_items=[
                InvoiceLineItem(
                    description=product_name,
                    unit_price=event.amount_cents,
                    product=event.product or DEFAULT_PRODUCT,
                    medication_type=event.medication_type,
                    plan=event.plan,
                )
            ],
            metadata=self._build_metadata(event, patient, invoice_number, now),
            created_at=now,
        )

        ref = {
            "dedup_key": dedup_key(clinic_id, patient.patient_id, pm),
            "invoice_id": invoice.invoice_id,
            "created_at": now.isoformat(),
        }
        committed = self._db.put_items_atomically(
            [
                (self.TABLE, invoice.model_dump(mode="json"), "attribute_not_exists(invoice_id)"),
                (self.REFS_TABLE, ref, "attribute_not_exists(dedup_key)"),
            ]
        )
        if not committed:
            winner = self._find_by_ref(clinic_id, patient.patient_id, pm)
            if winner is None:
                raise RuntimeError("Invoice write was rejected but no existing invoice was found")
            logger.info("Lost invoice race; returning %s", winner.invoice_id)
            return InvoiceCreationResult(invoice=winner, duplicate=True)

        logger.info(
            "Created invoice %s (%s) for patient %s",
            invoice.invoice_id,
            invoice.amount_formatted,
            patient.patient_id,
        )
        return InvoiceCreationResult(invoice=invoice, duplicate=False)

    def merge_metadata(self, invoice_id: str, updates: dict[str, Any]) -> None:
        """Set top-level keys inside the invoice's metadata map."""
        if not updates:
            return
        names = {"#metadata": "metadata"}
        values = {}
        assignments = []
        for i, (key, value) in enumerate(updates.items()):
            names[f"#k{i}"] = key
            values[f":v{i}"] = value
            assignments.append(f"#metadata.#k{i} = :v{i}")
        self._db.update_item(
            self.TABLE,
            {"invoice_id": invoice_id},
            "SET " + ", ".join(assignments),
            values,
            names,
            condition_expression="attribute_exists(invoice_id)",
        )
