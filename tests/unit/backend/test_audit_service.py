"""
Unit tests for AuditService: PHI redaction and query filters.
"""

from isynera.services.audit_service import AuditService, AuditContext
from isynera.services.patient_service import PatientService


class TestAuditService:

    def test_phi_keys_are_redacted_recursively(self, make_user):
        user = make_user()
        audit = AuditService()

        audit.log_user_action(
            "export",
            AuditContext(user_id=user["id"], ip_address="10.0.0.1"),
            resource="patients",
            details={"patient": {"SSN": "123-45-6789", "name": "Jane"}, "rows": [{"dob": "1940-01-01"}]},
        )

        row = audit.get_audit_logs(action="export")[0]
        assert row["details"]["patient"] == {"SSN": "[REDACTED]", "name": "Jane"}
        assert row["details"]["rows"] == [{"dob": "[REDACTED]"}]
        assert row["ip_address"] == "10.0.0.1"

    def test_filters_by_user_and_resource(self, make_user):
        first, second = make_user(), make_user()
        audit = AuditService()
        audit.log_user_action("view", AuditContext(user_id=first["id"]), resource="patients")
        audit.log_user_action("view", AuditContext(user_id=second["id"]), resource="referrals")

        assert len(audit.get_audit_logs(user_id=first["id"], action="view")) == 1
        assert audit.get_audit_logs(resource="referrals")[0]["user_id"] == second["id"]

    def test_patient_field_changes_are_trailed(self, make_user):
        user = make_user(role="nurse")
        patients = PatientService()
        patient = patients.create_patient(
            {"patient_name": "Jane Doe", "date_of_birth": "1940-01-01", "diagnosis": "CHF"},
            user_id=user["id"],
        )

        patients.update_patient(
            patient["id"],
            {"diagnosis": "CHF, COPD", "date_of_birth": "1940-02-02"},
            user_id=user["id"],
        )

        trail = AuditService().get_patient_audit_trail(patient["id"])
        changes = {row["field_changed"]: row for row in trail if row["action"] == "update"}
        assert changes["diagnosis"]["old_value"] == "CHF"
        assert changes["diagnosis"]["new_value"] == "CHF, COPD"
        assert changes["date_of_birth"]["new_value"] == "[REDACTED]"
        assert any(row["action"] == "create" for row in trail)
