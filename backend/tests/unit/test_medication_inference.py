"""Unit tests for best-effort medication inference.

Test categories:
- Text helpers (family detection, plan duration)
- Price heuristics
- Engine fallback order
"""

import datetime as dt
from unittest.mock import MagicMock

import pytest

from billing.models import AmountSource, MedicationSource
from billing.services.intake_documents import IntakeDocument
from billing.services.medication_inference import (
    MedicationInferenceEngine,
    detect_family,
    family_from_price_match,
    family_from_threshold,
    infer_plan_months,
)


def _document(**answers) -> IntakeDocument:
    return IntakeDocument(
        document_id="doc-1",
        clinic_id="clinic-0001",
        patient_id="pat-1",
        data=answers,
        created_at=dt.datetime.now(dt.UTC),
    )


@pytest.fixture
def intake_store() -> MagicMock:
    store = MagicMock()
    store.latest_for_patient.return_value = None
    return store


@pytest.fixture
def engine(intake_store: MagicMock) -> MedicationInferenceEngine:
    return MedicationInferenceEngine(intake_store, tolerance=0.10)


class TestTextHelpers:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Tirzepatide Injections", "tirzepatide"),
            ("zepbound", "tirzepatide"),
            ("Wegovy pen", "semaglutide"),
            ("GLP-1", None),
            ("semaglutide or tirzepatide", None),
            ("", None),
        ],
    )
    def test_detect_family(self, text, expected):
        assert detect_family(text) == expected

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("3 months", 3),
            ("Quarterly plan", 3),
            ("6-month", 6),
            ("annual", 12),
            ("monthly", 1),
            ("starter kit", None),
        ],
    )
    def test_infer_plan_months(self, text, expected):
        assert infer_plan_months(text) == expected


class TestPriceHeuristics:
    def test_threshold(self):
        assert family_from_threshold(62700, 3) == "tirzepatide"
        assert family_from_threshold(43500, 3) == "semaglutide"
        assert family_from_threshold(43500, 2) is None

    def test_price_match_within_tolerance(self):
        assert family_from_price_match(113000, 0.10) == ("tirzepatide", 6)

    def test_price_match_outside_tolerance(self):
        assert family_from_price_match(5000, 0.10) is None


class TestEngine:
    def test_payload_names_medication(self, engine, intake_store, make_event):
        result = engine.infer("pat-1", make_event(product="Tirzepatide"))

        assert result.medication == "tirzepatide"
        assert result.months == 3
        assert result.source is MedicationSource.PAYLOAD
        intake_store.latest_for_patient.assert_not_called()

    def test_intake_preference_field(self, engine, intake_store, make_event):
        intake_store.latest_for_patient.return_value = _document(
            **{"preferred-meds": "Semaglutide (Ozempic)"}
        )

        result = engine.infer("pat-1", make_event(product="GLP-1", medication_type=""))

        assert result.medication == "semaglutide"
        assert result.source is MedicationSource.INTAKE_DOCUMENT

    def test_intake_free_text_must_be_unanimous(self, engine, intake_store, make_event):
        intake_store.latest_for_patient.return_value = _document(
            goals="lose weight with tirzepatide", history="tried semaglutide before"
        )

        result = engine.infer(
            "pat-1", make_event(product="GLP-1", medication_type="", plan="", amount_cents=5000)
        )

        assert result.medication is None
        assert result.source is None

    def test_default_amount_is_not_used_for_pricing(self, engine, make_event):
        result = engine.infer(
            "pat-1",
            make_event(
                product="GLP-1",
                medication_type="",
                amount_cents=62700,
                amount_source=AmountSource.DEFAULT,
            ),
        )

        assert result.resolved is False
        assert result.months == 3

    def test_price_threshold_with_known_plan(self, engine, make_event):
        result = engine.infer(
            "pat-1", make_event(product="GLP-1", medication_type="", amount_cents=43500)
        )

        assert result.medication == "semaglutide"
        assert result.source is MedicationSource.PRICE_THRESHOLD

    def test_price_match_without_plan(self, engine, make_event):
        result = engine.infer(
            "pat-1", make_event(product="GLP-1", medication_type="", plan="", amount_cents=198000)
        )

        assert result.medication == "tirzepatide"
        assert result.months == 12
        assert result.source is MedicationSource.PRICE_MATCH

    def test_unresolved_metadata(self, engine, make_event):
        result = engine.infer(
            "pat-1", make_event(product="GLP-1", medication_type="", plan="", amount_cents=5000)
        )

        assert result.as_metadata() == {
            "inferred_medication": "",
            "inferred_plan_months": 0,
            "medication_source": "",
        }
