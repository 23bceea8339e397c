"""
Unit tests for BillingService: claim lifecycle, denials and appeal rules.
"""

import re
import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

from isynera.db.postgres import get_db_session
from isynera.errors import AIServiceError, NotFoundError, ValidationError
from isynera.models import Payer
from isynera.services.billing_service import BillingService
from isynera.services.patient_service import PatientService


DENIED_ON = datetime(2026, 1, 1)


@pytest.fixture
def billing():
    return BillingService()


@pytest.fixture
def claim(billing, make_user):
    user = make_user(role="billing")
    patient = PatientService().create_patient(
        {"patient_name": "Jane Doe", "date_of_birth": "1940-01-01"}, user_id=user["id"]
    )
    return billing.create_claim(
        {"patient_id": patient["id"], "service_date": "2025-12-15", "total_amount": 50000},
        provider_id=user["id"],
    )


@pytest.fixture
def denial(billing, claim):
    return billing.record_denial(
        claim["id"], "CO-50", "Not medically necessary", 20000,
        category="coding", denial_date=DENIED_ON,
    )


class TestClaims:

    def test_new_claim_is_draft(self, claim):
        assert claim["status"] == "draft"
        assert re.fullmatch(r"CLM-\d{8}-[0-9A-F]{8}", claim["claim_id"])
        assert claim["total_amount"] == 50000

    def test_amount_must_be_integer_cents(self, billing, claim):
        with pytest.raises(ValidationError, match="cents"):
            billing.create_claim({"patient_id": claim["patient_id"], "service_date": "2025-12-15", "total_amount": "12.50"})
        with pytest.raises(ValidationError, match="negative"):
            billing.create_claim({"patient_id": claim["patient_id"], "service_date": "2025-12-15", "total_amount": -1})

    @pytest.mark.parametrize("amount", [12.5, True, False])
    def test_fractional_and_boolean_amounts_rejected(self, billing, claim, amount):
        with pytest.raises(ValidationError, match="integer amount in cents"):
            billing.create_claim({"patient_id": claim["patient_id"], "service_date": "2025-12-15", "total_amount": amount})
        with pytest.raises(ValidationError, match="integer amount in cents"):
            billing.record_denial(claim["id"], "CO-16", None, amount)

    def test_whole_float_amount_accepted(self, billing, claim):
        created = billing.create_claim(
            {"patient_id": claim["patient_id"], "service_date": "2025-12-15", "total_amount": 1200.0}
        )

        assert created["total_amount"] == 1200

    def test_service_date_accepts_utc_suffix(self, billing, claim):
        created = billing.create_claim(
            {"patient_id": claim["patient_id"], "service_date": "2025-12-15T14:30:00Z", "total_amount": 100}
        )
        offset = billing.create_claim(
            {"patient_id": claim["patient_id"], "service_date": "2025-12-15T09:30:00-05:00", "total_amount": 100}
        )

        assert created["service_date"] == "2025-12-15T14:30:00"
        assert offset["service_date"] == "2025-12-15T14:30:00"

    def test_bad_service_date(self, billing, claim):
        with pytest.raises(ValidationError, match="Invalid datetime for service_date"):
            billing.create_claim({"patient_id": claim["patient_id"], "service_date": "12/15/2025", "total_amount": 100})

    def test_unknown_patient(self, billing):
        with pytest.raises(NotFoundError):
            billing.create_claim({"patient_id": 999, "service_date": "2025-12-15", "total_amount": 100})

    def test_submit_only_once(self, billing, claim):
        submitted = billing.submit_claim(claim["id"])

        assert submitted["status"] == "submitted"
        assert submitted["submission_date"] is not None
        with pytest.raises(ValidationError, match="Only draft"):
            billing.submit_claim(claim["id"])

    def test_list_by_status(self, billing, claim):
        assert [c["id"] for c in billing.list_claims(status="draft")] == [claim["id"]]
        assert billing.list_claims(status="paid") == []
        with pytest.raises(ValidationError):
            billing.list_claims(status="lost")


class TestDenials:

    def test_deadline_is_sixty_days_after_denial(self, denial, billing, claim):
        assert denial["appeal_deadline"] == "2026-03-02T00:00:00"
        assert denial["status"] == "pending"
        assert billing.list_claims(status="denied")[0]["denied_amount"] == 20000
        assert billing.list_denials(claim["id"])[0]["id"] == denial["id"]

    def test_denied_amount_cannot_exceed_claim(self, billing, claim):
        with pytest.raises(ValidationError, match="exceeds"):
            billing.record_denial(claim["id"], "CO-50", None, 60000)

    def test_invalid_category(self, billing, claim):
        with pytest.raises(ValidationError, match="category"):
            billing.record_denial(claim["id"], "CO-50", None, 100, category="weather")


class TestAppeals:

    def test_appeal_within_window(self, billing, denial):
        appeal = billing.file_appeal(
            denial["id"], "reconsideration", letter="Please reconsider.",
            supporting_docs=["progress-note.pdf"], now=DENIED_ON + timedelta(days=59),
        )

        assert appeal["status"] == "submitted"
        assert appeal["supporting_docs"] == ["progress-note.pdf"]
        assert billing.list_denials(denial["claim_id"])[0]["status"] == "appealed"
        assert billing.list_claims(status="appealed")[0]["id"] == denial["claim_id"]

    def test_appeal_after_deadline_rejected(self, billing, denial):
        with pytest.raises(ValidationError, match="deadline"):
            billing.file_appeal(denial["id"], "reconsideration", now=DENIED_ON + timedelta(days=61))

    def test_second_appeal_rejected(self, billing, denial):
        billing.file_appeal(denial["id"], "redetermination", now=DENIED_ON)

        with pytest.raises(ValidationError, match="already been filed"):
            billing.file_appeal(denial["id"], "redetermination", now=DENIED_ON)

    def test_non_appealable_denial(self, billing, claim):
        denial = billing.record_denial(claim["id"], "CO-29", None, 100, category="timely_filing", is_appealable=False)

        with pytest.raises(ValidationError, match="not appealable"):
            billing.file_appeal(denial["id"], "reconsideration")

    def test_unknown_appeal_type(self, billing, denial):
        with pytest.raises(ValidationError, match="appeal type"):
            billing.file_appeal(denial["id"], "complaint")


CLEAN_CLAIM_DATA = {
    "npi": "1234567893",
    "line_items": [{"service_code": "G0299", "diagnosis_code": "I50.9"}],
}


@pytest.fixture
def llm():
    client = MagicMock()
    client.complete_json.return_value = {"riskScore": 35, "recommendations": ["Attach the plan of care"], "flags": []}
    client.complete_text.return_value = "  Dear Medical Review Department,\n\nPlease reconsider.  "
    return client


@pytest.fixture
def reviewer(llm):
    return BillingService(llm=llm)


@pytest.fixture
def payer():
    with get_db_session() as session:
        payer = Payer(
            payer_name="Sunshine Health",
            payer_type="mco",
            billing_rules={"requires_authorization": True, "max_amount": 40000, "timely_filing_days": 90},
        )
        session.add(payer)
        session.commit()
        return payer.to_dict()


def _review_claim(billing, claim, **overrides):
    data = {
        "patient_id": claim["patient_id"],
        "service_date": "2025-12-15",
        "total_amount": 30000,
        "claim_data": dict(CLEAN_CLAIM_DATA),
    }
    data.update(overrides)
    return billing.create_claim(data)


class TestClaimReview:

    def test_clean_claim_passes_scrub(self, reviewer, claim, llm):
        review_claim = _review_claim(reviewer, claim)

        result = reviewer.validate_claim(review_claim["id"], now=datetime(2026, 1, 10))

        assert result["is_valid"] is True
        assert result["errors"] == []
        assert {r["rule"] for r in result["rules"]} == {"npi", "line_items", "icd10", "cpt", "timely_filing"}
        assert result["risk_score"] == 35
        assert result["recommendations"] == ["Attach the plan of care"]
        assert "G0299" in llm.complete_json.call_args.args[1]

    def test_payer_rules_are_applied(self, reviewer, claim, payer):
        review_claim = _review_claim(reviewer, claim, payer_id=payer["id"], total_amount=45000)

        rules = reviewer.apply_billing_rules(review_claim["id"], now=datetime(2026, 1, 10))

        failed = {r["rule"] for r in rules if not r["passed"]}
        assert failed == {"authorization", "max_amount"}

    def test_payer_filing_window(self, reviewer, claim, payer):
        review_claim = _review_claim(reviewer, claim, payer_id=payer["id"],
                                     claim_data={**CLEAN_CLAIM_DATA, "authorization_number": "AUTH-1"})

        result = reviewer.validate_claim(review_claim["id"], now=datetime(2026, 4, 1))

        assert result["is_valid"] is False
        assert result["errors"] == ["Service date is outside the 90-day timely filing window"]

    def test_bad_codes_and_missing_npi(self, reviewer, claim):
        review_claim = _review_claim(reviewer, claim, claim_data={
            "line_items": [{"service_code": "9921", "diagnosis_code": "250.00"}],
        })

        result = reviewer.validate_claim(review_claim["id"], now=datetime(2026, 1, 10))

        failed = {r["rule"] for r in result["rules"] if not r["passed"]}
        assert failed == {"npi", "icd10", "cpt"}

    def test_scrub_stands_when_ai_is_unavailable(self, reviewer, claim, llm):
        llm.complete_json.side_effect = AIServiceError("OpenAI API key is not configured")
        review_claim = _review_claim(reviewer, claim)

        result = reviewer.validate_claim(review_claim["id"], now=datetime(2026, 1, 10))

        assert result["is_valid"] is True
        assert result["risk_score"] is None
        assert result["flags"] == ["ai_validation_failed"]

    def test_unknown_claim(self, reviewer):
        with pytest.raises(NotFoundError):
            reviewer.validate_claim(999)


class TestDenialAssistance:

    def test_analysis_is_clamped_to_the_denial(self, reviewer, denial, llm):
        llm.complete_json.return_value = {
            "category": "coding",
            "rootCause": "Diagnosis does not support skilled nursing",
            "remediationSteps": ["Add the face-to-face encounter note"],
            "appealable": True,
            "successProbability": 140,
            "estimatedRecovery": 99999999,
        }

        analysis = reviewer.analyze_denial(denial["id"])

        assert analysis["category"] == "coding"
        assert analysis["success_probability"] == 100
        assert analysis["estimated_recovery"] == 20000
        assert analysis["appeal_deadline"] == "2026-03-02T00:00:00"
        assert "CO-50" in llm.complete_json.call_args.args[1]

    def test_non_appealable_denial_stays_non_appealable(self, reviewer, claim, llm):
        llm.complete_json.return_value = {"category": "weather", "appealable": True}
        denial = reviewer.record_denial(claim["id"], "CO-29", None, 100, category="timely_filing", is_appealable=False)

        analysis = reviewer.analyze_denial(denial["id"])

        assert analysis["appealable"] is False
        assert analysis["category"] == "timely_filing"
        assert analysis["success_probability"] is None

    def test_analysis_propagates_ai_errors(self, reviewer, denial, llm):
        llm.complete_json.side_effect = AIServiceError("AI service request failed: timeout")

        with pytest.raises(AIServiceError):
            reviewer.analyze_denial(denial["id"])

    def test_appeal_letter(self, reviewer, denial, claim, llm):
        result = reviewer.generate_appeal_letter(
            denial["id"], "redetermination", supporting_evidence=["Signed plan of care"]
        )

        assert result["letter"] == "Dear Medical Review Department,\n\nPlease reconsider."
        prompt = llm.complete_text.call_args.args[1]
        assert claim["claim_id"] in prompt
        assert "Jane Doe" in prompt
        assert "- Signed plan of care" in prompt
        assert "redetermination" in prompt

    def test_appeal_letter_rejects_unknown_type(self, reviewer, denial, llm):
        with pytest.raises(ValidationError, match="appeal type"):
            reviewer.generate_appeal_letter(denial["id"], "complaint")
        llm.complete_text.assert_not_called()
