"""
ReferralService: referral intake records and the per-patient records the
intake workflow produces (eligibility checks, homebound assessments,
appointments, tasks, consent forms).
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from isynera.db.postgres import get_db_session
from isynera.errors import NotFoundError, ValidationError
from isynera.models import (
    Patient,
    Referral,
    EligibilityVerification,
    HomeboundAssessment,
    Appointment,
    Task,
    ConsentForm,
)
from isynera.models.referral import REFERRAL_STATUSES

logger = logging.getLogger("isynera.referrals")

REFERRAL_FIELDS = (
    "patient_id",
    "referring_provider",
    "status",
    "ocr_status",
    "document_url",
    "extracted_data",
    "missing_fields",
    "ai_analysis",
    "notes",
)

# Agent determination -> homebound_assessments.status
HOMEBOUND_STATUS_BY_DETERMINATION = {
    "qualified": "qualified",
    "not_qualified": "not_qualified",
    "needs_review": "review_needed",
}


def parse_datetime(value: Any, field: str) -> Optional[datetime]:
    """ISO 8601 text (trailing Z allowed) to a naive UTC datetime."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Invalid datetime for {field}: {value}")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class ReferralService:

    # =========================================================================
    # Referrals
    # =========================================================================

    def list_referrals(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        with get_db_session() as session:
            query = session.query(Referral)
            if status:
                query = query.filter(Referral.status == status)
            return [r.to_dict() for r in query.order_by(Referral.referral_date.desc(), Referral.id.desc()).all()]

    def get_referral(self, referral_id: int) -> Dict[str, Any]:
        with get_db_session() as session:
            referral = session.get(Referral, referral_id)
            if not referral:
                raise NotFoundError(f"Referral not found: {referral_id}")
            return referral.to_dict()

    def create_referral(self, data: Dict[str, Any], user_id: Optional[int] = None) -> Dict[str, Any]:
        status = data.get("status", "pending")
        if status not in REFERRAL_STATUSES:
            raise ValidationError(f"Invalid referral status: {status}")
        if data.get("patient_id") is not None:
            self._require_patient(data["patient_id"])

        with get_db_session() as session:
            referral = Referral(**{k: data[k] for k in REFERRAL_FIELDS if k in data})
            referral.status = status
            if data.get("referral_date"):
                referral.referral_date = parse_datetime(data["referral_date"], "referral_date")
            referral.created_by = user_id
            session.add(referral)
            session.commit()
            result = referral.to_dict()

        logger.info("Created referral %s (status=%s)", result["id"], status)
        return result

    def update_referral(self, referral_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        if "status" in data and data["status"] not in REFERRAL_STATUSES:
            raise ValidationError(f"Invalid referral status: {data['status']}")

        with get_db_session() as session:
            referral = session.get(Referral, referral_id)
            if not referral:
                raise NotFoundError(f"Referral not found: {referral_id}")
            for key in REFERRAL_FIELDS:
                if key in data:
                    setattr(referral, key, data[key])
            session.commit()
            return referral.to_dict()

    def mark_missing_info(self, referral_id: int, missing_fields: List[str]) -> Dict[str, Any]:
        return self.update_referral(referral_id, {
            "missing_fields": list(missing_fields),
            "status": "missing_info" if missing_fields else "complete",
        })

    def save_analysis(self, referral_id: int, analysis: Dict[str, Any], missing_fields: List[str]) -> Dict[str, Any]:
        """Store an agent analysis and the missing-field list on the referral."""
        return self.update_referral(referral_id, {
            "ai_analysis": analysis,
            "missing_fields": list(missing_fields),
            "status": "missing_info" if missing_fields else "complete",
        })

    # =========================================================================
    # Eligibility verifications
    # =========================================================================

    def record_eligibility(self, patient_id: int, insurance_type: str, result: Dict[str, Any]) -> Dict[str, Any]:
        self._require_patient(patient_id)
        with get_db_session() as session:
            verification = EligibilityVerification(
                patient_id=patient_id,
                insurance_type=insurance_type,
                status="verified" if result.get("is_eligible") else "failed",
                verification_data=result,
                verified_at=datetime.utcnow(),
            )
            session.add(verification)
            session.commit()
            return verification.to_dict()

    def list_eligibility(self, patient_id: int) -> List[Dict[str, Any]]:
        with get_db_session() as session:
            rows = (
                session.query(EligibilityVerification)
                .filter(EligibilityVerification.patient_id == patient_id)
                .order_by(EligibilityVerification.created_at.desc(), EligibilityVerification.id.desc())
                .all()
            )
            return [r.to_dict() for r in rows]

    # =========================================================================
    # Homebound assessments
    # =========================================================================

    def record_homebound_assessment(
        self,
        patient_id: int,
        assessment_data: Dict[str, Any],
        agent_response: Dict[str, Any],
        user_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Persist an agent response (AgentResponse.to_dict())."""
        self._require_patient(patient_id)
        determination = (agent_response.get("metadata") or {}).get("determination", "needs_review")

        with get_db_session() as session:
            assessment = HomeboundAssessment(
                patient_id=patient_id,
                assessment_data=assessment_data,
                status=HOMEBOUND_STATUS_BY_DETERMINATION.get(determination, "review_needed"),
                ai_recommendation=agent_response.get("recommendation"),
                ai_verdict=agent_response,
                confidence=agent_response.get("confidence"),
                cms_compliant=determination == "qualified",
                rationale=agent_response.get("reasoning"),
                assessed_by=user_id,
                assessed_at=datetime.utcnow(),
            )
            session.add(assessment)
            session.commit()
            return assessment.to_dict()

    def list_homebound_assessments(self, patient_id: int) -> List[Dict[str, Any]]:
        with get_db_session() as session:
            rows = (
                session.query(HomeboundAssessment)
                .filter(HomeboundAssessment.patient_id == patient_id)
                .order_by(HomeboundAssessment.created_at.desc(), HomeboundAssessment.id.desc())
                .all()
            )
            return [r.to_dict() for r in rows]

    # =========================================================================
    # Appointments, tasks, consent forms
    # =========================================================================

    def create_appointment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("patient_id") or not data.get("scheduled_date"):
            raise ValidationError("patient_id and scheduled_date are required")
        self._require_patient(data["patient_id"])

        with get_db_session() as session:
            appointment = Appointment(
                patient_id=data["patient_id"],
                staff_id=data.get("staff_id"),
                scheduled_date=parse_datetime(data["scheduled_date"], "scheduled_date"),
                duration_minutes=data.get("duration_minutes", 60),
                visit_type=data.get("visit_type", "skilled_nursing"),
                location=data.get("location"),
                notes=data.get("notes"),
            )
            session.add(appointment)
            session.commit()
            return appointment.to_dict()

    def list_appointments(self, patient_id: int) -> List[Dict[str, Any]]:
        with get_db_session() as session:
            rows = (
                session.query(Appointment)
                .filter(Appointment.patient_id == patient_id)
                .order_by(Appointment.scheduled_date)
                .all()
            )
            return [r.to_dict() for r in rows]

    def create_task(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("title"):
            raise ValidationError("title is required")

        with get_db_session() as session:
            task = Task(
                title=data["title"],
                description=data.get("description"),
                patient_id=data.get("patient_id"),
                assigned_to=data.get("assigned_to"),
                priority=data.get("priority", "medium"),
                due_date=parse_datetime(data.get("due_date"), "due_date"),
            )
            session.add(task)
            session.commit()
            return task.to_dict()

    def list_tasks(self, patient_id: Optional[int] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
        with get_db_session() as session:
            query = session.query(Task)
            if patient_id is not None:
                query = query.filter(Task.patient_id == patient_id)
            if status:
                query = query.filter(Task.status == status)
            return [t.to_dict() for t in query.order_by(Task.created_at.desc(), Task.id.desc()).all()]

    def create_consent_form(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("patient_id") or not data.get("form_type"):
            raise ValidationError("patient_id and form_type are required")
        self._require_patient(data["patient_id"])

        with get_db_session() as session:
            form = ConsentForm(
                patient_id=data["patient_id"],
                form_type=data["form_type"],
                content=data.get("content"),
                requirements=data.get("requirements"),
            )
            session.add(form)
            session.commit()
            return form.to_dict()

    def list_consent_forms(self, patient_id: int) -> List[Dict[str, Any]]:
        with get_db_session() as session:
            rows = session.query(ConsentForm).filter(ConsentForm.patient_id == patient_id).all()
            return [r.to_dict() for r in rows]

    def dashboard_counters(self) -> Dict[str, int]:
        with get_db_session() as session:
            counters = {
                f"referrals_{status}": session.query(Referral).filter(Referral.status == status).count()
                for status in REFERRAL_STATUSES
            }
            counters["pending_tasks"] = session.query(Task).filter(Task.status == "pending").count()
            counters["active_patients"] = session.query(Patient).filter(
                Patient.is_deleted.is_(False), Patient.is_active.is_(True)
            ).count()
        return counters

    # -------------------------------------------------------------------------

    def _require_patient(self, patient_id: int) -> None:
        with get_db_session() as session:
            exists = session.query(Patient.id).filter(
                Patient.id == patient_id,
                Patient.is_deleted.is_(False),
            ).first()
        if not exists:
            raise NotFoundError(f"Patient not found: {patient_id}")
