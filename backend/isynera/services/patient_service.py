"""
PatientService: patient records and their medication lists.

Every create and per-field update is written to the patient audit trail.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_

from isynera.db.postgres import get_db_session
from isynera.errors import NotFoundError, ValidationError
from isynera.models import Patient, PatientMedication
from isynera.services.audit_service import AuditService

logger = logging.getLogger("isynera.patients")

# Columns a client may set directly
EDITABLE_FIELDS = (
    "patient_name",
    "date_of_birth",
    "patient_id",
    "diagnosis",
    "physician",
    "insurance_info",
    "gender",
    "phone",
    "email",
    "address",
    "emergency_contact",
    "allergies",
    "medical_history",
    "current_medications",
    "risk_factors",
    "special_notes",
    "preferred_pharmacy_id",
    "is_active",
)
REQUIRED_FIELDS = ("patient_name", "date_of_birth")


class PatientService:

    def __init__(self, audit: Optional[AuditService] = None):
        self.audit = audit or AuditService()

    def list_patients(self, include_deleted: bool = False) -> List[Dict[str, Any]]:
        with get_db_session() as session:
            query = session.query(Patient)
            if not include_deleted:
                query = query.filter(Patient.is_deleted.is_(False))
            return [p.to_dict() for p in query.order_by(Patient.created_at.desc(), Patient.id.desc()).all()]

    def get_patient(self, patient_id: int, user_id: Optional[int] = None) -> Dict[str, Any]:
        with get_db_session() as session:
            patient = session.query(Patient).filter(
                Patient.id == patient_id,
                Patient.is_deleted.is_(False),
            ).first()
            if not patient:
                raise NotFoundError(f"Patient not found: {patient_id}")
            result = patient.to_dict()

        if user_id is not None:
            self.audit.log_patient_access(patient_id, user_id, "view")
        return result

    def search_patients(self, term: str) -> List[Dict[str, Any]]:
        """Case-insensitive match on name, external id and diagnosis."""
        term = (term or "").strip()
        if not term:
            return self.list_patients()

        pattern = f"%{term}%"
        with get_db_session() as session:
            rows = (
                session.query(Patient)
                .filter(Patient.is_deleted.is_(False))
                .filter(or_(
                    Patient.patient_name.ilike(pattern),
                    Patient.patient_id.ilike(pattern),
                    Patient.diagnosis.ilike(pattern),
                ))
                .order_by(Patient.patient_name)
                .all()
            )
            return [p.to_dict() for p in rows]

    def create_patient(self, data: Dict[str, Any], user_id: Optional[int] = None) -> Dict[str, Any]:
        missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        with get_db_session() as session:
            external_id = data.get("patient_id")
            if external_id and session.query(Patient).filter(Patient.patient_id == external_id).first():
                raise ValidationError(f"Patient ID already exists: {external_id}")

            patient = Patient(**{k: data[k] for k in EDITABLE_FIELDS if k in data})
            patient.last_modified_by = user_id
            session.add(patient)
            session.commit()
            result = patient.to_dict()

        self.audit.log_patient_access(result["id"], user_id, "create")
        logger.info("Created patient %s", result["id"])
        return result

    def update_patient(self, patient_id: int, data: Dict[str, Any], user_id: Optional[int] = None) -> Dict[str, Any]:
        changes = []
        with get_db_session() as session:
            patient = session.query(Patient).filter(
                Patient.id == patient_id,
                Patient.is_deleted.is_(False),
            ).first()
            if not patient:
                raise NotFoundError(f"Patient not found: {patient_id}")

            for field in EDITABLE_FIELDS:
                if field not in data:
                    continue
                if field in REQUIRED_FIELDS and not data[field]:
                    raise ValidationError(f"{field} cannot be empty")
                old = getattr(patient, field)
                if old != data[field]:
                    changes.append((field, old, data[field]))
                    setattr(patient, field, data[field])

            if changes:
                patient.last_modified_by = user_id
                session.commit()
            result = patient.to_dict()

        for field, old, new in changes:
            self.audit.log_patient_access(patient_id, user_id, "update", field, old, new)
        return result

    # -------------------------------------------------------------------------
    # Medications
    # -------------------------------------------------------------------------

    def list_medications(self, patient_id: int, active_only: bool = False) -> List[Dict[str, Any]]:
        self._require_patient(patient_id)
        with get_db_session() as session:
            query = session.query(PatientMedication).filter(PatientMedication.patient_id == patient_id)
            if active_only:
                query = query.filter(PatientMedication.is_active.is_(True))
            return [m.to_dict() for m in query.order_by(PatientMedication.id).all()]

    def add_medication(self, patient_id: int, data: Dict[str, Any], user_id: Optional[int] = None) -> Dict[str, Any]:
        if not data.get("medication_name"):
            raise ValidationError("medication_name is required")
        self._require_patient(patient_id)

        with get_db_session() as session:
            medication = PatientMedication(
                patient_id=patient_id,
                medication_name=data["medication_name"],
                dosage=data.get("dosage"),
                frequency=data.get("frequency"),
                route=data.get("route"),
                prescribed_by=data.get("prescribed_by"),
                start_date=data.get("start_date"),
                end_date=data.get("end_date"),
                notes=data.get("notes"),
                is_active=data.get("is_active", True),
            )
            session.add(medication)
            session.commit()
            result = medication.to_dict()

        self.audit.log_patient_access(
            patient_id, user_id, "update", "medications", None, data["medication_name"]
        )
        return result

    def _require_patient(self, patient_id: int) -> None:
        with get_db_session() as session:
            exists = session.query(Patient.id).filter(
                Patient.id == patient_id,
                Patient.is_deleted.is_(False),
            ).first()
        if not exists:
            raise NotFoundError(f"Patient not found: {patient_id}")
