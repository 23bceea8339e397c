"""
Integration tests for intake endpoints: patients, referrals, eligibility,
homebound assessment and the recycle area.
"""

import pytest
from unittest.mock import MagicMock, patch

from isynera.agents.clinical_agents.base import AgentResponse


PATIENT = {"patient_name": "Jane Doe", "date_of_birth": "1940-01-01", "diagnosis": "CHF"}


@pytest.fixture
def headers(auth_headers):
    return auth_headers("intake_coordinator")


@pytest.fixture
def patient(client, headers):
    return client.post("/api/patients", json=PATIENT, headers=headers).get_json()["patient"]


# =============================================================================
# Patients
# =============================================================================

class TestPatients:

    def test_create_requires_name_and_dob(self, client, headers):
        response = client.post("/api/patients", json={"patient_name": "No Dob"}, headers=headers)

        assert response.status_code == 400
        assert response.get_json() == {"ok": False, "error": "Missing required fields: date_of_birth"}

    def test_create_get_update(self, client, headers, patient):
        assert patient["id"] is not None

        fetched = client.get(f"/api/patients/{patient['id']}", headers=headers)
        assert fetched.get_json()["patient"]["patient_name"] == "Jane Doe"

        updated = client.put(f"/api/patients/{patient['id']}", json={"diagnosis": "CHF, COPD"}, headers=headers)
        assert updated.status_code == 200
        assert updated.get_json()["patient"]["diagnosis"] == "CHF, COPD"

    def test_unknown_patient_is_404(self, client, headers):
        response = client.get("/api/patients/4040", headers=headers)

        assert response.status_code == 404
        assert response.get_json()["ok"] is False

    def test_search(self, client, headers, patient):
        found = client.get("/api/patients?search=jane", headers=headers).get_json()["patients"]

        assert [p["id"] for p in found] == [patient["id"]]

    def test_requires_authentication(self, client):
        assert client.get("/api/patients").status_code == 401

    def test_medications_need_clinician(self, client, headers, patient, auth_headers):
        url = f"/api/patients/{patient['id']}/medications"

        denied = client.post(url, json={"medication_name": "Warfarin"}, headers=headers)
        created = client.post(url, json={"medication_name": "Warfarin"}, headers=auth_headers("nurse"))

        assert denied.status_code == 403
        assert created.status_code == 201
        listed = client.get(f"{url}?active=true", headers=headers).get_json()["medications"]
        assert [m["medication_name"] for m in listed] == ["Warfarin"]


# =============================================================================
# Referrals
# =============================================================================

class TestReferrals:

    def test_create_and_filter_by_status(self, client, headers, patient):
        created = client.post(
            "/api/referrals",
            json={"patient_id": patient["id"], "referring_provider": "Dr. Smith"},
            headers=headers,
        )

        assert created.status_code == 201
        assert created.get_json()["referral"]["status"] == "pending"
        pending = client.get("/api/referrals?status=pending", headers=headers).get_json()["referrals"]
        assert len(pending) == 1

    def test_invalid_status(self, client, headers):
        response = client.post("/api/referrals", json={"status": "lost"}, headers=headers)

        assert response.status_code == 400

    @patch("isynera.api.referrals.get_orchestrator")
    def test_analyze_stores_result(self, mock_orchestrator, client, headers, patient):
        referral = client.post(
            "/api/referrals", json={"patient_id": patient["id"]}, headers=headers
        ).get_json()["referral"]
        agent = MagicMock()
        agent.analyze_referral.return_value = AgentResponse(
            agent_id="referral-intelligence", recommendation="Accept referral", confidence=0.9
        )
        agent.identify_missing_information.return_value = ["physician_orders"]
        mock_orchestrator.return_value.get_agent.return_value = agent

        response = client.post(f"/api/referrals/{referral['id']}/analyze", json={}, headers=headers)

        assert response.status_code == 200
        result = response.get_json()
        assert result["missing_fields"] == ["physician_orders"]
        assert result["referral"]["status"] == "missing_info"
        assert result["referral"]["ai_analysis"]["recommendation"] == "Accept referral"
        sent = agent.analyze_referral.call_args.args[0]
        assert sent["patient"]["patient_name"] == "Jane Doe"


# =============================================================================
# Eligibility and homebound
# =============================================================================

class TestEligibility:

    def test_sandbox_verification_is_recorded(self, client, headers, patient):
        response = client.post(
            "/api/eligibility/verify",
            json={"patient_id": patient["id"], "insurance_type": "Medicare"},
            headers=headers,
        )

        assert response.status_code == 200
        result = response.get_json()
        assert result["eligibility"]["sandbox"] is True
        assert result["verification"]["patient_id"] == patient["id"]
        assert result["verification"]["insurance_type"] == "medicare"

    def test_without_patient_nothing_is_recorded(self, client, headers):
        response = client.post("/api/eligibility/verify", json={"insurance_type": "mco"}, headers=headers)

        assert response.get_json()["verification"] is None

    def test_insurance_type_required(self, client, headers):
        response = client.post("/api/eligibility/verify", json={}, headers=headers)

        assert response.status_code == 400


class TestHomebound:

    def test_rule_based_fallback_without_ai_keys(self, client, headers, patient):
        response = client.post("/api/homebound/assess", json={
            "patient_id": patient["id"],
            "assessment_data": {
                "mobilityLimitations": "Requires walker and assistance of one person for all ambulation beyond ten feet",
                "leavesHomeFrequency": "rarely",
                "requiresAssistance": True,
                "medicalConditions": "CHF with exertional dyspnea, COPD on home oxygen",
            },
        }, headers=headers)

        assert response.status_code == 201
        result = response.get_json()
        assert result["analysis"]["metadata"]["source"] == "rule_based"
        assert result["analysis"]["metadata"]["determination"] == "qualified"
        assert result["assessment"]["status"] == "qualified"
        assert result["assessment"]["patient_id"] == patient["id"]

    def test_patient_required(self, client, headers):
        assert client.post("/api/homebound/assess", json={}, headers=headers).status_code == 400


# =============================================================================
# Recycle area
# =============================================================================

class TestRecycle:

    def test_recycle_restore_cycle(self, client, headers, patient):
        moved = client.post(
            "/api/recycle", json={"table": "patients", "item_id": patient["id"], "reason": "duplicate"}, headers=headers
        )
        assert moved.status_code == 201
        item = moved.get_json()["item"]
        assert client.get(f"/api/patients/{patient['id']}", headers=headers).status_code == 404

        listed = client.get("/api/recycle?mine=true", headers=headers).get_json()
        assert listed["count"] == 1

        restored = client.post(f"/api/recycle/{item['id']}/restore", headers=headers)
        assert restored.status_code == 200
        assert client.get(f"/api/patients/{patient['id']}", headers=headers).status_code == 200

    def test_delete_needs_final_confirmation(self, client, headers, patient):
        item = client.post(
            "/api/recycle", json={"table": "patients", "item_id": patient["id"]}, headers=headers
        ).get_json()["item"]

        refused = client.delete(f"/api/recycle/{item['id']}", json={}, headers=headers)
        deleted = client.delete(f"/api/recycle/{item['id']}", json={"final_confirmation": True}, headers=headers)

        assert refused.status_code == 400
        assert deleted.status_code == 200
        assert client.get("/api/recycle", headers=headers).get_json()["count"] == 0

    def test_bulk_restore_reports_failures(self, client, headers):
        response = client.post("/api/recycle/bulk-restore", json={"ids": [77]}, headers=headers)

        assert response.status_code == 200
        assert response.get_json()["failed"] == 1

    def test_table_and_item_required(self, client, headers):
        assert client.post("/api/recycle", json={"table": "patients"}, headers=headers).status_code == 400
