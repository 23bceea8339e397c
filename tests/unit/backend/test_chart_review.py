"""
Unit tests for the chart review engine: confidence arithmetic and the
persisted review shape.
"""

import pytest
from unittest.mock import MagicMock

from isynera.errors import ValidationError
from isynera.services.chart_review import (
    ChartReviewEngine,
    calculate_coding_confidence,
    severity_distribution,
)
from isynera.services.patient_service import PatientService


# =============================================================================
# Confidence arithmetic
# =============================================================================

class TestCodingConfidence:

    def test_no_codes_is_zero(self):
        assert calculate_coding_confidence([], [{"severity": "low"}]) == 0

    def test_average_minus_severity_penalties(self):
        codes = [{"confidence": 90}, {"confidence": 80}]
        discrepancies = [{"severity": "high"}, {"severity": "low"}]

        assert calculate_coding_confidence(codes, discrepancies) == pytest.approx(85 - 15 - 5)

    def test_clamped_at_zero(self):
        codes = [{"confidence": 30}]
        discrepancies = [{"severity": "critical"}, {"severity": "critical"}]

        assert calculate_coding_confidence(codes, discrepancies) == 0

    def test_unknown_severity_and_bad_confidence(self):
        codes = [{"confidence": "n/a"}, {"confidence": 100}]

        assert calculate_coding_confidence(codes, [{"severity": "weird"}]) == pytest.approx(50)

    def test_severity_distribution(self):
        distribution = severity_distribution([
            {"severity": "High"}, {"severity": "high"}, {"severity": "low"}, {"severity": "other"},
        ])

        assert distribution == {"low": 1, "medium": 0, "high": 2, "critical": 0}


# =============================================================================
# Full review
# =============================================================================

class TestConductChartReview:

    @pytest.fixture
    def patient(self, make_user):
        user = make_user(role="doctor")
        return PatientService().create_patient(
            {"patient_name": "Jane Doe", "date_of_birth": "1940-01-01"}, user_id=user["id"]
        )

    @pytest.fixture
    def llm(self):
        client = MagicMock()
        client.complete_json.side_effect = [
            {"codes": [
                {"type": "ICD-10", "code": "I50.22", "confidence": 95},
                {"type": "CPT", "code": "99214", "confidence": 75},
                "not-a-code",
            ]},
            {"discrepancies": [{"type": "unsupported", "severity": "medium"}]},
            {"flags": ["Missing frequency for skilled visits"]},
            {"flags": ["DOCUMENTATION_NEEDED", "MAKE_IT_UP"]},
            {"cms_guidelines": True, "issues": []},
        ]
        client.complete_text.return_value = "Codes are supported by the HPI and exam."
        return client

    def test_review_is_persisted_with_summary_fields(self, patient, llm):
        review = ChartReviewEngine(llm=llm).conduct_chart_review(
            patient["id"], ["Progress note: CHF exacerbation, office visit."], reviewer_id=None
        )

        assert review["id"] is not None
        assert review["extracted_codes"]["total_codes"] == 2
        assert review["coding_discrepancies"]["total_issues"] == 1
        assert review["coding_discrepancies"]["severity_distribution"]["medium"] == 1
        assert review["coding_confidence_score"] == pytest.approx(85 - 10)
        assert review["recommended_flags"] == ["DOCUMENTATION_NEEDED"]
        assert review["medical_necessity_flags"] == ["Missing frequency for skilled visits"]
        assert review["compliance_validation"] == {"cms_guidelines": True, "issues": []}
        assert review["coding_justification"] == "Codes are supported by the HPI and exam."

    def test_code_extraction_and_necessity_use_anthropic(self, patient, llm):
        ChartReviewEngine(llm=llm).conduct_chart_review(patient["id"], ["note"])

        providers = [c.kwargs.get("provider", "openai") for c in llm.complete_json.call_args_list]
        assert providers == ["anthropic", "openai", "anthropic", "openai", "anthropic"]

    def test_blank_documents_rejected(self, patient, llm):
        with pytest.raises(ValidationError):
            ChartReviewEngine(llm=llm).conduct_chart_review(patient["id"], ["  ", ""])

        llm.complete_json.assert_not_called()
