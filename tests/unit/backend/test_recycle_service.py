"""
Unit tests for RecycleService.

Tests:
- Round trip: recycle then restore yields the original row
- Permanent deletion requires confirmation and is audited
- Conflicts and bulk result accounting
"""

import pytest

from isynera.errors import ConflictError, NotFoundError, ValidationError
from isynera.services.audit_service import AuditService
from isynera.services.patient_service import PatientService
from isynera.services.recycle_service import RecycleService
from isynera.services.transcription_service import get_transcription_service


@pytest.fixture
def user(make_user):
    return make_user(role="intake_coordinator")


@pytest.fixture
def patient(user):
    return PatientService().create_patient({
        "patient_name": "Jane Doe",
        "date_of_birth": "1940-01-01",
        "patient_id": "EXT-1",
        "insurance_info": {"provider": "Medicare", "policy_number": "1EG4"},
        "allergies": ["penicillin"],
    }, user_id=user["id"])


def _recycle(patient, user):
    return RecycleService().move_to_recycle_area(
        "patients", patient["id"], "patient", patient["patient_name"], user["id"], reason="duplicate"
    )


class TestMoveAndRestore:

    def test_round_trip_restores_original_row(self, patient, user):
        entry = _recycle(patient, user)

        assert entry["item_data"]["patient_name"] == "Jane Doe"
        assert entry["metadata"]["deletion_reason"] == "duplicate"
        with pytest.raises(NotFoundError):
            PatientService().get_patient(patient["id"])

        restored = RecycleService().restore(entry["id"], user["id"])

        assert restored == patient
        assert PatientService().get_patient(patient["id"]) == patient
        assert RecycleService().list_items() == []

    def test_actions_are_audited(self, patient, user):
        entry = _recycle(patient, user)
        RecycleService().restore(entry["id"], user["id"])

        audit = AuditService()
        soft = audit.get_audit_logs(action="SOFT_DELETE")[0]
        assert soft["resource"] == "patients"
        assert soft["resource_id"] == str(patient["id"])
        assert soft["details"]["recycle_id"] == entry["id"]
        assert audit.get_audit_logs(action="RESTORE")[0]["user_id"] == user["id"]

    def test_unsupported_table_and_missing_row(self, user):
        with pytest.raises(ValidationError):
            RecycleService().move_to_recycle_area("users", 1, "user", "x", user["id"])
        with pytest.raises(NotFoundError, match="Item not found in patients"):
            RecycleService().move_to_recycle_area("patients", 999, "patient", "x", user["id"])

    def test_patient_with_medications_cannot_be_recycled(self, patient, user):
        PatientService().add_medication(patient["id"], {"medication_name": "warfarin"}, user_id=user["id"])

        with pytest.raises(ConflictError):
            _recycle(patient, user)

        assert PatientService().get_patient(patient["id"])["patient_name"] == "Jane Doe"
        assert RecycleService().list_items() == []

    def test_list_filters_by_deleting_user(self, patient, user, make_user):
        other = make_user()
        _recycle(patient, user)

        assert len(RecycleService().list_items(user_id=user["id"])) == 1
        assert RecycleService().list_items(user_id=other["id"]) == []


class TestTranscriptionSessions:

    def test_recycled_session_is_not_served_from_cache(self, user):
        transcription = get_transcription_service()
        started = transcription.start_session(user["id"])
        assert transcription.get_session(started["session_id"])["status"] == "processing"

        entry = RecycleService().move_to_recycle_area(
            "ai_transcription_sessions", started["id"], "transcription", started["session_id"], user["id"]
        )

        with pytest.raises(NotFoundError):
            transcription.get_session(started["session_id"])

        RecycleService().restore(entry["id"], user["id"])
        assert transcription.get_session(started["session_id"])["id"] == started["id"]

    def test_permanently_deleted_session_stays_gone(self, user):
        transcription = get_transcription_service()
        started = transcription.start_session(user["id"])
        entry = RecycleService().move_to_recycle_area(
            "ai_transcription_sessions", started["id"], "transcription", started["session_id"], user["id"]
        )

        RecycleService().permanently_delete(entry["id"], user["id"], final_confirmation=True)

        with pytest.raises(NotFoundError):
            transcription.get_session(started["session_id"])


class TestPermanentDelete:

    def test_confirmation_required(self, patient, user):
        entry = _recycle(patient, user)

        with pytest.raises(ValidationError, match="Final confirmation"):
            RecycleService().permanently_delete(entry["id"], user["id"], final_confirmation=False)

        assert len(RecycleService().list_items()) == 1

    def test_permanent_delete_is_irreversible_and_audited(self, patient, user):
        entry = _recycle(patient, user)

        result = RecycleService().permanently_delete(entry["id"], user["id"], final_confirmation=True)

        assert result["id"] == entry["id"]
        with pytest.raises(NotFoundError):
            RecycleService().restore(entry["id"], user["id"])
        log = AuditService().get_audit_logs(action="PERMANENT_DELETE")[0]
        assert log["details"]["irreversible"] is True


class TestBulk:

    def test_bulk_restore_reports_each_item(self, patient, user):
        entry = _recycle(patient, user)

        result = RecycleService().bulk_restore([entry["id"], 424242], user["id"])

        assert result["successful"] == 1
        assert result["failed"] == 1
        assert result["details"][1] == {
            "id": 424242, "success": False, "message": "Item not found in Recycle Area",
        }

    def test_bulk_delete_without_confirmation_fails_every_item(self, patient, user):
        entry = _recycle(patient, user)

        result = RecycleService().bulk_permanent_delete([entry["id"]], user["id"], final_confirmation=False)

        assert result["successful"] == 0
        assert result["failed"] == 1
