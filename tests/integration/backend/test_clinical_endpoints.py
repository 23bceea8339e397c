"""
Integration tests for clinical endpoints: ambient scribe, SOAP notes, AI
agents, prescriptions, billing and documents.

No AI or email keys are configured, so provider-backed paths either fall
back or report 502; success paths patch the service singletons.
"""

import io
import pytest
from unittest.mock import MagicMock, patch

from isynera.agents.clinical_agents.base import AgentResponse
from isynera.agents.clinical_agents.orchestrator import WorkflowResult
from isynera.services.transcription_service import SessionCache, TranscriptionService


SOAP_REPLY = {
    "subjective": "Shortness of breath",
    "objective": "Crackles",
    "assessment": "Heart failure diagnosis",
    "plan": "Diuretics",
    "confidence": {"subjective": 90, "objective": 90, "assessment": 90, "plan": 90},
}


@pytest.fixture
def doctor(make_user):
    return make_user(role="doctor")


@pytest.fixture
def doctor_headers(doctor, login):
    return login(doctor)


@pytest.fixture
def patient(client, doctor_headers):
    response = client.post(
        "/api/patients", json={"patient_name": "Jane Doe", "date_of_birth": "1940-01-01"}, headers=doctor_headers
    )
    return response.get_json()["patient"]


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json() == {"status": "ok", "firestore_enabled": False}


def test_unknown_route_is_json_404(client):
    response = client.get("/api/nothing-here")

    assert response.status_code == 404
    assert response.get_json()["ok"] is False


# =============================================================================
# Ambient scribe
# =============================================================================

class TestTranscription:

    def test_session_requires_clinician(self, client, auth_headers):
        response = client.post("/api/ai/transcription/sessions", json={}, headers=auth_headers("billing"))

        assert response.status_code == 403

    def test_transcript_without_ai_key_is_502(self, client, doctor_headers):
        session = client.post(
            "/api/ai/transcription/sessions", json={}, headers=doctor_headers
        ).get_json()["session"]

        response = client.post(
            f"/api/ai/transcription/sessions/{session['session_id']}/transcript",
            json={"transcript": "Patient reports chest pain."},
            headers=doctor_headers,
        )

        assert response.status_code == 502
        assert "not configured" in response.get_json()["error"]

    @patch("isynera.api.transcription.get_transcription_service")
    def test_transcript_produces_soap_notes(self, mock_get_service, client, doctor_headers):
        llm = MagicMock()
        llm.complete_json.return_value = dict(SOAP_REPLY)
        mock_get_service.return_value = TranscriptionService(llm=llm, email=MagicMock(), cache=SessionCache())

        session = client.post(
            "/api/ai/transcription/sessions", json={}, headers=doctor_headers
        ).get_json()["session"]
        response = client.post(
            f"/api/ai/transcription/sessions/{session['session_id']}/transcript",
            json={"transcript": "Patient with CHF. Physical exam done.", "duration": 300},
            headers=doctor_headers,
        )

        assert response.status_code == 200
        result = response.get_json()["session"]
        assert result["status"] == "completed"
        assert result["soap_notes"]["plan"] == "Diuretics"
        fetched = client.get(f"/api/ai/transcription/sessions/{session['session_id']}", headers=doctor_headers)
        assert fetched.get_json()["session"]["duration"] == 300

    def test_audio_file_required(self, client, doctor_headers):
        session = client.post(
            "/api/ai/transcription/sessions", json={}, headers=doctor_headers
        ).get_json()["session"]

        response = client.post(
            f"/api/ai/transcription/sessions/{session['session_id']}/audio",
            data={}, content_type="multipart/form-data", headers=doctor_headers,
        )

        assert response.status_code == 400

    def test_unknown_session_is_404(self, client, doctor_headers):
        assert client.get("/api/ai/transcription/sessions/session_x", headers=doctor_headers).status_code == 404


class TestSoapNotes:

    SECTIONS = {"subjective": "Knee pain", "objective": "Swelling", "assessment": "OA", "plan": "PT"}

    def test_nurse_cannot_write_notes(self, client, auth_headers, patient):
        response = client.post(
            "/api/doctor/soap-notes", json={"patient_id": patient["id"], **self.SECTIONS}, headers=auth_headers("nurse")
        )

        assert response.status_code == 403

    def test_create_sign_then_locked(self, client, doctor_headers, patient):
        note = client.post(
            "/api/doctor/soap-notes", json={"patient_id": patient["id"], **self.SECTIONS}, headers=doctor_headers
        ).get_json()["note"]

        signed = client.post(f"/api/doctor/soap-notes/{note['id']}/sign", headers=doctor_headers)
        locked = client.put(f"/api/doctor/soap-notes/{note['id']}", json={"plan": "changed"}, headers=doctor_headers)

        assert signed.get_json()["note"]["status"] == "signed"
        assert locked.status_code == 400
        listed = client.get(f"/api/doctor/soap-notes?patient_id={patient['id']}", headers=doctor_headers)
        assert [n["id"] for n in listed.get_json()["notes"]] == [note["id"]]

    def test_signed_note_rejects_new_transcript(self, client, doctor_headers, patient):
        note = client.post(
            "/api/doctor/soap-notes", json={"patient_id": patient["id"], **self.SECTIONS}, headers=doctor_headers
        ).get_json()["note"]
        client.post(f"/api/doctor/soap-notes/{note['id']}/sign", headers=doctor_headers)

        response = client.post(
            f"/api/ai/transcription/sessions/{note['session_id']}/transcript",
            json={"transcript": "new transcript text"},
            headers=doctor_headers,
        )

        assert response.status_code == 400
        assert response.get_json()["error"] == "Signed notes cannot be edited"
        stored = client.get(f"/api/ai/transcription/sessions/{note['session_id']}", headers=doctor_headers)
        assert stored.get_json()["session"]["status"] == "signed"


# =============================================================================
# AI agents, chart review and RAG
# =============================================================================

class TestAI:

    def test_list_agents(self, client, doctor_headers):
        agents = client.get("/api/ai/agents", headers=doctor_headers).get_json()["agents"]

        assert len(agents) == 6

    def test_unknown_agent_is_404(self, client, doctor_headers):
        assert client.get("/api/ai/agents/astrologer", headers=doctor_headers).status_code == 404

    @patch("isynera.api.ai.get_orchestrator")
    def test_workflow(self, mock_orchestrator, client, doctor_headers):
        mock_orchestrator.return_value.orchestrate_workflow.return_value = WorkflowResult(
            workflow_type="care_coordination",
            responses=[AgentResponse(agent_id="smart-scheduler", recommendation="Schedule Tuesday")],
        )

        response = client.post(
            "/api/ai/agents/workflow",
            json={"workflow_type": "care_coordination", "data": {"patient_id": 1}},
            headers=doctor_headers,
        )

        assert response.status_code == 200
        assert response.get_json()["workflow"]["responses"][0]["recommendation"] == "Schedule Tuesday"
        mock_orchestrator.return_value.orchestrate_workflow.assert_called_once_with("care_coordination", {"patient_id": 1})

    def test_unknown_workflow_is_400(self, client, doctor_headers):
        response = client.post("/api/ai/agents/workflow", json={"workflow_type": "teleport"}, headers=doctor_headers)

        assert response.status_code == 400

    def test_chart_review_validation(self, client, doctor_headers, auth_headers, patient):
        not_a_list = client.post(
            "/api/ai/chart-review", json={"patient_id": patient["id"], "chart_documents": "note"}, headers=doctor_headers
        )
        as_nurse = client.post(
            "/api/ai/chart-review", json={"patient_id": patient["id"], "chart_documents": ["note"]},
            headers=auth_headers("nurse"),
        )
        no_key = client.post(
            "/api/ai/chart-review", json={"patient_id": patient["id"], "chart_documents": ["note"]}, headers=doctor_headers
        )

        assert not_a_list.status_code == 400
        assert as_nurse.status_code == 403
        assert no_key.status_code == 502

    def test_rag_failure_answer(self, client, doctor_headers):
        response = client.post("/api/ai/rag/query", json={"question": "Who needs a visit?"}, headers=doctor_headers)

        assert response.status_code == 200
        assert response.get_json()["confidence"] == 0

    def test_rag_question_required(self, client, doctor_headers):
        assert client.post("/api/ai/rag/query", json={"question": " "}, headers=doctor_headers).status_code == 400


# =============================================================================
# Prescriptions
# =============================================================================

class TestPrescriptions:

    @pytest.fixture
    def pharmacy(self, client, doctor_headers):
        return client.post("/api/prescriptions/pharmacies", json={
            "name": "Main Street Pharmacy", "address": "1 Main St", "city": "Springfield",
            "state": "IL", "zip_code": "62701", "fax_number": "217-555-0199",
        }, headers=doctor_headers).get_json()["pharmacy"]

    def _prescribe(self, client, headers, patient, **extra):
        body = {
            "patient_id": patient["id"], "medication_name": "Furosemide", "dosage": "20mg",
            "quantity": 30, "instructions": "Once daily",
        }
        body.update(extra)
        return client.post("/api/prescriptions", json=body, headers=headers)

    def test_only_doctors_prescribe(self, client, auth_headers, patient):
        assert self._prescribe(client, auth_headers("nurse"), patient).status_code == 403

    def test_send_without_email_key_reports_fax_failure(self, client, doctor_headers, patient, pharmacy):
        rx = self._prescribe(client, doctor_headers, patient, pharmacy_id=pharmacy["id"]).get_json()["prescription"]

        response = client.post(f"/api/prescriptions/{rx['id']}/send", headers=doctor_headers)

        assert response.status_code == 200
        result = response.get_json()
        assert result["ok"] is False
        assert result["prescription"]["fax_status"] == "failed"
        detail = client.get(f"/api/prescriptions/{rx['id']}", headers=doctor_headers).get_json()
        assert "fax_failed" in [log["action"] for log in detail["audit_logs"]]

    def test_refill_deny(self, client, doctor_headers, patient):
        rx = self._prescribe(client, doctor_headers, patient).get_json()["prescription"]
        refill = client.post(
            "/api/prescriptions/refills", json={"prescription_id": rx["id"]}, headers=doctor_headers
        ).get_json()["refill"]

        response = client.post(
            f"/api/prescriptions/refills/{refill['id']}/deny", json={"reason": "Needs visit"}, headers=doctor_headers
        )

        assert response.get_json()["refill"]["status"] == "denied"

    def test_pharmacies_by_zip(self, client, doctor_headers, pharmacy):
        found = client.get("/api/prescriptions/pharmacies?zip_code=62701", headers=doctor_headers).get_json()

        assert [p["id"] for p in found["pharmacies"]] == [pharmacy["id"]]

    def test_pharmacies_by_city_and_chain(self, client, doctor_headers, pharmacy):
        found = client.get("/api/prescriptions/pharmacies?city=springfield&state=IL", headers=doctor_headers).get_json()
        none = client.get("/api/prescriptions/pharmacies?city=springfield&chain=CVS", headers=doctor_headers).get_json()

        assert [p["id"] for p in found["pharmacies"]] == [pharmacy["id"]]
        assert none["pharmacies"] == []

    def test_dosing_recommendation_without_ai_key_is_502(self, client, doctor_headers, patient):
        response = client.post("/api/prescriptions/dosing-recommendation", json={
            "patient_id": patient["id"], "medication_name": "Furosemide",
        }, headers=doctor_headers)

        assert response.status_code == 502
        assert response.get_json()["ok"] is False

    def test_dosing_recommendation_is_doctor_only(self, client, auth_headers, patient):
        response = client.post("/api/prescriptions/dosing-recommendation", json={
            "patient_id": patient["id"], "medication_name": "Furosemide",
        }, headers=auth_headers("nurse"))

        assert response.status_code == 403


# =============================================================================
# Billing
# =============================================================================

class TestBilling:

    def test_claim_denial_appeal(self, client, auth_headers, patient):
        headers = auth_headers("billing")

        claim = client.post("/api/billing/claims", json={
            "patient_id": patient["id"], "service_date": "2026-10-01", "total_amount": 25000,
        }, headers=headers).get_json()["claim"]
        submitted = client.post(f"/api/billing/claims/{claim['id']}/submit", headers=headers)
        denial = client.post(f"/api/billing/claims/{claim['id']}/denials", json={
            "reason_code": "CO-16", "amount": 25000, "category": "coding",
        }, headers=headers).get_json()["denial"]
        appeal = client.post(f"/api/billing/denials/{denial['id']}/appeals", json={
            "appeal_type": "reconsideration", "appeal_letter": "Documentation attached.",
        }, headers=headers)

        assert submitted.get_json()["claim"]["status"] == "submitted"
        assert appeal.status_code == 201
        assert client.get("/api/billing/claims?status=appealed", headers=headers).get_json()["claims"][0]["id"] == claim["id"]

    def test_billing_role_required(self, client, doctor_headers):
        assert client.get("/api/billing/claims", headers=doctor_headers).status_code == 403

    def test_denial_fields_required(self, client, auth_headers):
        response = client.post("/api/billing/claims/1/denials", json={"reason_code": "CO-16"}, headers=auth_headers("billing"))

        assert response.status_code == 400
        assert response.get_json()["error"] == "Missing required fields: amount"

    def test_claim_review_and_denial_analysis_without_ai_key(self, client, auth_headers, patient):
        headers = auth_headers("billing")
        claim = client.post("/api/billing/claims", json={
            "patient_id": patient["id"], "service_date": "2026-10-01", "total_amount": 25000,
            "claim_data": {"npi": "1234567893", "line_items": [{"service_code": "G0299", "diagnosis_code": "I50.9"}]},
        }, headers=headers).get_json()["claim"]
        denial = client.post(f"/api/billing/claims/{claim['id']}/denials", json={
            "reason_code": "CO-16", "amount": 25000,
        }, headers=headers).get_json()["denial"]

        review = client.get(f"/api/billing/claims/{claim['id']}/validation", headers=headers)
        analysis = client.post(f"/api/billing/denials/{denial['id']}/analysis", headers=headers)

        assert review.status_code == 200
        assert review.get_json()["validation"]["flags"] == ["ai_validation_failed"]
        assert analysis.status_code == 502


# =============================================================================
# Documents
# =============================================================================

class TestDocuments:

    def test_upload_then_process_without_ai_key(self, client, doctor_headers, patient):
        upload = client.post(
            "/api/documents/upload",
            data={
                "file": (io.BytesIO(b"Referral for Jane Doe, CHF."), "referral.txt"),
                "document_type": "referral",
                "patient_id": str(patient["id"]),
            },
            content_type="multipart/form-data",
            headers=doctor_headers,
        )
        assert upload.status_code == 201
        document = upload.get_json()["document"]
        assert document["patient_id"] == patient["id"]

        processed = client.post(f"/api/documents/{document['id']}/process", headers=doctor_headers).get_json()

        assert processed["ok"] is False
        assert processed["document"]["status"] == "failed"

    def test_upload_requires_file(self, client, doctor_headers):
        response = client.post(
            "/api/documents/upload", data={}, content_type="multipart/form-data", headers=doctor_headers
        )

        assert response.status_code == 400
