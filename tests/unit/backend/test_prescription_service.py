"""
Unit tests for PrescriptionService.

Tests:
- Interaction warnings against active medications
- Prescription numbering and validation
- Sending to the pharmacy (eFax mocked) and audit rows
- Refill approve/deny
- AI dosing recommendations (LLM mocked)
- Pharmacy directory search
"""

import re
import pytest
from datetime import date
from unittest.mock import MagicMock

from isynera.db.postgres import get_db_session
from isynera.errors import AIServiceError, NotFoundError, ValidationError
from isynera.models import MedicationInteraction
from isynera.services.patient_service import PatientService
from isynera.services.prescription_service import PrescriptionService, patient_age


FAX_SENT = {"success": True, "message_id": "<fax-1>", "delivery_status": "sent", "sent_at": "2026-10-17T09:00:00"}
FAX_FAILED = {"success": False, "error": "Email service not configured", "delivery_status": "failed"}


@pytest.fixture
def efax():
    client = MagicMock()
    client.send_prescription.return_value = dict(FAX_SENT)
    client.send_refill_authorization.return_value = dict(FAX_SENT)
    return client


@pytest.fixture
def service(efax):
    return PrescriptionService(efax=efax)


@pytest.fixture
def doctor(make_user):
    return make_user(role="doctor")


@pytest.fixture
def pharmacy(service):
    return service.create_pharmacy({
        "name": "Main Street Pharmacy",
        "address": "1 Main St",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62701",
        "fax_number": "217-555-0199",
    })


@pytest.fixture
def patient(doctor):
    patients = PatientService()
    patient = patients.create_patient(
        {"patient_name": "Jane Doe", "date_of_birth": "1940-01-01", "current_medications": ["Aspirin 81mg"]},
        user_id=doctor["id"],
    )
    patients.add_medication(patient["id"], {"medication_name": "Warfarin"}, user_id=doctor["id"])
    return patient


@pytest.fixture
def interactions():
    with get_db_session() as session:
        session.add_all([
            MedicationInteraction(drug_a="ibuprofen", drug_b="warfarin", severity="high",
                                  description="Increased bleeding risk"),
            MedicationInteraction(drug_a="clopidogrel", drug_b="aspirin", severity="medium"),
            MedicationInteraction(drug_a="sildenafil", drug_b="nitroglycerin", severity="critical"),
        ])
        session.commit()


def _order(patient, **overrides):
    data = {
        "patient_id": patient["id"],
        "medication_name": "Furosemide",
        "dosage": "20mg",
        "quantity": 30,
        "instructions": "Take one tablet by mouth daily",
        "refills_remaining": 2,
    }
    data.update(overrides)
    return data


class TestInteractions:

    def test_matches_both_directions(self, service, patient, interactions):
        warfarin = service.check_interactions(patient["id"], "Ibuprofen 400mg")
        aspirin = service.check_interactions(patient["id"], "Clopidogrel")

        assert [w["severity"] for w in warfarin] == ["high"]
        assert [w["drug_b"] for w in aspirin] == ["aspirin"]
        assert service.check_interactions(patient["id"], "Sildenafil") == []


class TestPrescriptions:

    def test_create_assigns_number_and_warnings(self, service, patient, doctor, interactions):
        rx = service.create_prescription(_order(patient, medication_name="Ibuprofen"), doctor["id"])

        assert re.fullmatch(r"RX-\d{8}-[0-9A-F]{6}", rx["prescription_number"])
        assert rx["status"] == "pending"
        assert len(rx["interaction_warnings"]) == 1
        assert service.get_audit_logs(rx["id"])[0]["action"] == "created"

    def test_missing_fields_and_bad_quantity(self, service, patient, doctor):
        with pytest.raises(ValidationError, match="instructions"):
            service.create_prescription(_order(patient, instructions=""), doctor["id"])
        with pytest.raises(ValidationError, match="positive"):
            service.create_prescription(_order(patient, quantity=0), doctor["id"])

    def test_send_requires_pharmacy(self, service, patient, doctor, efax):
        rx = service.create_prescription(_order(patient), doctor["id"])

        with pytest.raises(ValidationError, match="No pharmacy"):
            service.send_to_pharmacy(rx["id"], doctor["id"])
        efax.send_prescription.assert_not_called()

    def test_send_marks_sent(self, service, patient, doctor, pharmacy, efax):
        rx = service.create_prescription(_order(patient, pharmacy_id=pharmacy["id"]), doctor["id"])

        result = service.send_to_pharmacy(rx["id"], doctor["id"])

        assert result["fax"]["success"] is True
        assert result["prescription"]["status"] == "sent"
        assert result["prescription"]["fax_status"] == "sent"
        assert efax.send_prescription.call_args.args[2]["name"] == "Main Street Pharmacy"
        assert [log["action"] for log in service.get_audit_logs(rx["id"])][0] == "sent"

    def test_fax_failure_keeps_prescription_pending(self, service, patient, doctor, pharmacy, efax):
        efax.send_prescription.return_value = dict(FAX_FAILED)
        rx = service.create_prescription(_order(patient, pharmacy_id=pharmacy["id"]), doctor["id"])

        result = service.send_to_pharmacy(rx["id"], doctor["id"])

        assert result["prescription"]["status"] == "pending"
        assert result["prescription"]["fax_status"] == "failed"
        assert "fax_failed" in [log["action"] for log in service.get_audit_logs(rx["id"])]

    def test_sent_prescription_is_not_faxed_again(self, service, patient, doctor, pharmacy, efax):
        rx = service.create_prescription(_order(patient, pharmacy_id=pharmacy["id"]), doctor["id"])
        service.send_to_pharmacy(rx["id"], doctor["id"])

        with pytest.raises(ValidationError, match="Only pending prescriptions"):
            service.send_to_pharmacy(rx["id"], doctor["id"])

        efax.send_prescription.assert_called_once()
        assert [log["action"] for log in service.get_audit_logs(rx["id"])].count("sent") == 1

    def test_failed_fax_can_be_retried(self, service, patient, doctor, pharmacy, efax):
        efax.send_prescription.return_value = dict(FAX_FAILED)
        rx = service.create_prescription(_order(patient, pharmacy_id=pharmacy["id"]), doctor["id"])
        service.send_to_pharmacy(rx["id"], doctor["id"])
        efax.send_prescription.return_value = dict(FAX_SENT)

        result = service.send_to_pharmacy(rx["id"], doctor["id"])

        assert result["prescription"]["status"] == "sent"


class TestRefills:

    def test_approve_sends_authorization(self, service, patient, doctor, pharmacy, efax):
        rx = service.create_prescription(_order(patient, pharmacy_id=pharmacy["id"]), doctor["id"])
        refill = service.create_refill_request(rx["id"])

        result = service.approve_refill(refill["id"], doctor["id"], doctor_notes="Continue")

        assert result["refill"]["status"] == "approved"
        assert result["refill"]["approved_by"] == doctor["id"]
        assert result["refill"]["fax_status"] == "sent"
        efax.send_refill_authorization.assert_called_once()

    def test_approve_without_pharmacy_skips_fax(self, service, patient, doctor, efax):
        rx = service.create_prescription(_order(patient), doctor["id"])
        refill = service.create_refill_request(rx["id"])

        result = service.approve_refill(refill["id"], doctor["id"])

        assert result["fax"] is None
        efax.send_refill_authorization.assert_not_called()

    def test_deny_requires_reason_and_is_final(self, service, patient, doctor):
        rx = service.create_prescription(_order(patient), doctor["id"])
        refill = service.create_refill_request(rx["id"])

        with pytest.raises(ValidationError, match="reason"):
            service.deny_refill(refill["id"], doctor["id"], "  ")

        denied = service.deny_refill(refill["id"], doctor["id"], "Needs follow-up visit")
        assert denied["status"] == "denied"
        assert denied["denial_reason"] == "Needs follow-up visit"

        with pytest.raises(ValidationError, match="already denied"):
            service.approve_refill(refill["id"], doctor["id"])
        assert [r["status"] for r in service.list_refill_requests(status="denied")] == ["denied"]


class TestPharmacies:

    def test_zip_filter_and_required_fields(self, service, pharmacy):
        assert [p["id"] for p in service.list_pharmacies(zip_code="62701")] == [pharmacy["id"]]
        assert [p["id"] for p in service.list_pharmacies(zip_code="627")] == [pharmacy["id"]]
        assert service.list_pharmacies(zip_code="10001") == []
        with pytest.raises(ValidationError, match="fax_number"):
            service.create_pharmacy({"name": "No Fax", "address": "x", "city": "y", "state": "IL", "zip_code": "1"})

    def test_search_by_city_state_and_chain(self, service, pharmacy):
        cvs = service.create_pharmacy({
            "name": "CVS Pharmacy #4521", "address": "200 Broadway", "city": "New York",
            "state": "NY", "zip_code": "10007", "fax_number": "212-555-0101", "chain_type": "CVS",
        })
        walgreens = service.create_pharmacy({
            "name": "Walgreens #1029", "address": "145 4th Ave", "city": "New York",
            "state": "NY", "zip_code": "10003", "fax_number": "212-555-0102", "chain_type": "Walgreens",
        })

        assert [p["id"] for p in service.list_pharmacies(city="new york")] == [cvs["id"], walgreens["id"]]
        assert [p["id"] for p in service.list_pharmacies(city="York", chain_type="walgreens")] == [walgreens["id"]]
        assert [p["id"] for p in service.list_pharmacies(state="il")] == [pharmacy["id"]]
        assert [p["id"] for p in service.list_pharmacies(search="broadway")] == [cvs["id"]]
        assert service.list_pharmacies(city="Miami") == []


DOSING_REPLY = {
    "recommendedDosage": "2.5 mg",
    "frequency": "once daily",
    "duration": "30 days",
    "route": "oral",
    "warnings": ["Monitor for bleeding"],
    "interactions": {"severity": "major", "interactingMedications": ["warfarin"], "recommendations": ["Check INR"]},
    "confidence": 180,
    "reasoning": "Elderly patient on anticoagulation",
}


@pytest.fixture
def llm():
    client = MagicMock()
    client.complete_json.return_value = dict(DOSING_REPLY)
    return client


class TestDosingRecommendations:

    def test_recommendation_uses_patient_profile(self, efax, llm, patient, interactions):
        service = PrescriptionService(efax=efax, llm=llm)

        result = service.generate_dosing_recommendation(patient["id"], "Ibuprofen", indication="Knee pain")

        assert result["recommended_dosage"] == "2.5 mg"
        assert result["interactions"]["interacting_medications"] == ["warfarin"]
        assert result["confidence"] == 100
        assert [w["severity"] for w in result["known_interactions"]] == ["high"]
        prompt = llm.complete_json.call_args.args[1]
        assert "aspirin 81mg, warfarin" in prompt
        assert "ibuprofen/warfarin (high)" in prompt
        assert "Knee pain" in prompt

    def test_missing_fields_get_safe_defaults(self, efax, llm, patient):
        llm.complete_json.return_value = {}
        service = PrescriptionService(efax=efax, llm=llm)

        result = service.generate_dosing_recommendation(patient["id"], "Furosemide")

        assert result["recommended_dosage"] == "Consult prescribing information"
        assert result["interactions"]["severity"] == "none"
        assert result["confidence"] == 0

    def test_ai_failure_propagates(self, efax, llm, patient):
        llm.complete_json.side_effect = AIServiceError("OpenAI API key is not configured")
        service = PrescriptionService(efax=efax, llm=llm)

        with pytest.raises(AIServiceError):
            service.generate_dosing_recommendation(patient["id"], "Furosemide")

    def test_requires_patient_and_medication(self, efax, llm, patient):
        service = PrescriptionService(efax=efax, llm=llm)

        with pytest.raises(ValidationError, match="medication_name"):
            service.generate_dosing_recommendation(patient["id"], "  ")
        with pytest.raises(NotFoundError):
            service.generate_dosing_recommendation(999, "Furosemide")
        llm.complete_json.assert_not_called()


def test_patient_age():
    assert patient_age("1940-06-15", today=date(2026, 6, 14)) == 85
    assert patient_age("1940-06-15", today=date(2026, 6, 15)) == 86
    assert patient_age("06/15/1940") is None
    assert patient_age(None) is None
