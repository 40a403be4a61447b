"""Recovers the treatment family when the payload does not name it.

Partner products are often sent as "GLP-1" or a plan name only. The engine
tries, in order:
- the payload's own product/medication text
- the patient's most recent intake document
- per-plan-duration price thresholds
- the closest known price point within a tolerance band

Every step is best effort. An unresolved result is logged, never raised.
"""

import logging
import re
from typing import Any

from pydantic import BaseModel

from billing.models import AmountSource, MedicationSource, NormalizedInvoiceEvent
from billing.services.field_aliases import resolve_text
from billing.services.intake_documents import IntakeDocumentStore

logger = logging.getLogger(__name__)

MEDICATION_FAMILIES: dict[str, tuple[str, ...]] = {
    "tirzepatide": ("tirzepatide", "mounjaro", "zepbound"),
    "semaglutide": ("semaglutide", "ozempic", "wegovy"),
}

_FAMILY_PATTERNS = {
    family: re.compile(r"\b(" + "|".join(names) + r")\b", re.IGNORECASE)
    for family, names in MEDICATION_FAMILIES.items()
}

# Plan prices in cents, by plan duration in months
PLAN_PRICES: dict[int, dict[str, int]] = {
    1: {"tirzepatide": 26900, "semaglutide": 19900},
    3: {"tirzepatide": 62700, "semaglutide": 43500},
    6: {"tirzepatide": 113400, "semaglutide": 72000},
    12: {"tirzepatide": 198000, "semaglutide": 114000},
}

# At or above: tirzepatide. Below: semaglutide.
PRICE_THRESHOLDS: dict[int, int] = {1: 23000, 3: 53000, 6: 92000, 12: 155000}

_PLAN_PATTERNS: list[tuple[int, re.Pattern[str]]] = [
    (12, re.compile(r"\b(12[\s-]*months?|twelve[\s-]*months?|yearly|annual(ly)?|1[\s-]*year)\b", re.I)),
    (6, re.compile(r"\b(6[\s-]*months?|six[\s-]*months?|semester|semi[\s-]*annual(ly)?)\b", re.I)),
    (3, re.compile(r"\b(3[\s-]*months?|three[\s-]*months?|quarterly)\b", re.I)),
    (1, re.compile(r"\b(1[\s-]*months?|one[\s-]*month|monthly)\b", re.I)),
]


class MedicationInference(BaseModel):
    medication: str | None = None
    months: int | None = None
    source: MedicationSource | None = None

    @property
    def resolved(self) -> bool:
        return self.medication is not None

    def as_metadata(self) -> dict[str, Any]:
        return {
            "inferred_medication": self.medication or "",
            "inferred_plan_months": self.months or 0,
            "medication_source": self.source.value if self.source else "",
        }


def detect_family(text: str | None) -> str | None:
    """Return the single treatment family named in ``text``, if exactly one is."""
    if not text:
        return None
    found = [family for family, pattern in _FAMILY_PATTERNS.items() if pattern.search(text)]
    return found[0] if len(found) == 1 else None


def infer_plan_months(text: str | None) -> int | None:
    if not text:
        return None
    for months, pattern in _PLAN_PATTERNS:
        if pattern.search(text):
            return months
    return None


def family_from_threshold(amount_cents: int, months: int) -> str | None:
    threshold = PRICE_THRESHOLDS.get(months)
    if threshold is None:
        return None
    return "tirzepatide" if amount_cents >= threshold else "semaglutide"


def family_from_price_match(amount_cents: int, tolerance: float) -> tuple[str, int] | None:
    """Closest known price point within ``tolerance`` (relative)."""
    best: tuple[float, str, int] | None = None
    for months, prices in PLAN_PRICES.items():
        for family, price in prices.items():
            distance = abs(amount_cents - price) / price
            if distance <= tolerance and (best is None or distance < best[0]):
                best = (distance, family, months)
    if best is None:
        return None
    return best[1], best[2]


class MedicationInferenceEngine:
    """Best-effort medication resolution for an invoice event."""

    def __init__(self, intake_store: IntakeDocumentStore, *, tolerance: float = 0.10) -> None:
        self._intake_store = intake_store
        self._tolerance = tolerance

    def _from_intake(self, patient_id: str) -> str | None:
        document = self._intake_store.latest_for_patient(patient_id)
        if document is None:
            return None

        family = detect_family(resolve_text(document.data, "intake_medication"))
        if family:
            return family

        answers = [v for v in document.data.values() if isinstance(v, str)]
        families = {f for f in map(detect_family, answers) if f}
        if len(families) == 1:
            return families.pop()
        if len(families) > 1:
            logger.info("Intake document names several treatments; ignoring it")
        return None

    def infer(self, patient_id: str, event: NormalizedInvoiceEvent) -> MedicationInference:
        months = infer_plan_months(f"{event.plan} {event.product}")

        family = detect_family(f"{event.product} {event.medication_type}")
        if family:
            return MedicationInference(
                medication=family, months=months, source=MedicationSource.PAYLOAD
            )

        family = self._from_intake(patient_id)
        if family:
            return MedicationInference(
                medication=family, months=months, source=MedicationSource.INTAKE_DOCUMENT
            )

        if event.amount_source is AmountSource.DEFAULT:
            logger.info("No medication found and amount is a default; leaving unset")
            return MedicationInference(months=months)

        if months is not None:
            family = family_from_threshold(event.amount_cents, months)
            if family:
                return MedicationInference(
                    medication=family, months=months, source=MedicationSource.PRICE_THRESHOLD
                )

        match = family_from_price_match(event.amount_cents, self._tolerance)
        if match:
            family, matched_months = match
            return MedicationInference(
                medication=family, months=matched_months, source=MedicationSource.PRICE_MATCH
            )

        logger.info(
            "Could not infer medication for %s cents (plan=%r)", event.amount_cents, event.plan
        )
        return MedicationInference(months=months)
