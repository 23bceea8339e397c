"""
PrescriptionService: prescriptions, refill requests and pharmacies.

Prescriptions are faxed to the pharmacy through EFaxService. Every action
(create, send, fax failure, refill approve/deny) writes a
prescription_audit_logs row.
"""

import logging
import secrets
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_

from isynera.db.postgres import get_db_session
from isynera.errors import NotFoundError, ValidationError
from isynera.models import (
    AppUser,
    Patient,
    PatientMedication,
    MedicationInteraction,
    Pharmacy,
    Prescription,
    RefillRequest,
    PrescriptionAuditLog,
)
from isynera.services.audit_service import AuditContext
from isynera.services.efax_service import EFaxService
from isynera.services.llm import LLMClient, get_llm_client

logger = logging.getLogger("isynera.prescriptions")

PRESCRIPTION_EXPIRE_DAYS = 365
REQUIRED_FIELDS = ("patient_id", "medication_name", "dosage", "quantity", "instructions")
PHARMACY_FIELDS = ("name", "address", "city", "state", "zip_code", "fax_number")

DOSING_SYSTEM_PROMPT = (
    "You are an expert clinical pharmacist. Give evidence-based, patient-specific dosing "
    "recommendations considering age, organ function, allergies and current medications. "
    "Respond only with a JSON object."
)


def generate_prescription_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    return f"RX-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


def _medication_names(patient: Patient, medications: List[PatientMedication]) -> List[str]:
    names = [m.medication_name for m in medications]
    for entry in patient.current_medications or []:
        if isinstance(entry, dict):
            entry = entry.get("name") or entry.get("medication_name")
        if entry:
            names.append(str(entry))
    return [n.strip().lower() for n in names if n and n.strip()]


def patient_age(date_of_birth: Optional[str], today: Optional[date] = None) -> Optional[int]:
    """Whole years from a YYYY-MM-DD birth date, or None if it does not parse."""
    try:
        born = datetime.strptime((date_of_birth or "").strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        return None
    today = today or date.today()
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


class PrescriptionService:

    def __init__(self, efax: Optional[EFaxService] = None, llm: Optional[LLMClient] = None):
        self.efax = efax or EFaxService()
        self.llm = llm or get_llm_client()

    # =========================================================================
    # Prescriptions
    # =========================================================================

    def list_prescriptions(self, patient_id: Optional[int] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
        with get_db_session() as session:
            query = session.query(Prescription)
            if patient_id is not None:
                query = query.filter(Prescription.patient_id == patient_id)
            if status:
                query = query.filter(Prescription.status == status)
            rows = query.order_by(Prescription.prescribed_date.desc(), Prescription.id.desc()).all()
            return [r.to_dict() for r in rows]

    def get_prescription(self, prescription_id: int) -> Dict[str, Any]:
        with get_db_session() as session:
            row = session.get(Prescription, prescription_id)
            if not row:
                raise NotFoundError(f"Prescription not found: {prescription_id}")
            return row.to_dict()

    def check_interactions(self, patient_id: int, medication_name: str) -> List[Dict[str, Any]]:
        """Known interactions between a new medication and the patient's active ones."""
        new_name = (medication_name or "").strip().lower()
        with get_db_session() as session:
            patient = session.get(Patient, patient_id)
            if not patient:
                raise NotFoundError(f"Patient not found: {patient_id}")
            active = session.query(PatientMedication).filter(
                PatientMedication.patient_id == patient_id,
                PatientMedication.is_active.is_(True),
            ).all()
            current = _medication_names(patient, active)
            interactions = session.query(MedicationInteraction).filter(
                MedicationInteraction.is_active.is_(True)
            ).all()

            warnings = []
            for interaction in interactions:
                for new_drug, other_drug in ((interaction.drug_a, interaction.drug_b),
                                             (interaction.drug_b, interaction.drug_a)):
                    if new_drug.lower() in new_name and any(other_drug.lower() in m for m in current):
                        warnings.append(interaction.to_dict())
                        break
            return warnings

    def generate_dosing_recommendation(
        self, patient_id: int, medication_name: str, indication: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Patient-specific dosing guidance for a medication from the LLM.

        Known interactions from the interaction table are passed to the model
        and returned alongside its answer. AIServiceError propagates; there is
        no canned dosing fallback.
        """
        medication_name = (medication_name or "").strip()
        if not medication_name:
            raise ValidationError("medication_name is required")

        with get_db_session() as session:
            patient = session.get(Patient, patient_id)
            if not patient:
                raise NotFoundError(f"Patient not found: {patient_id}")
            active = session.query(PatientMedication).filter(
                PatientMedication.patient_id == patient_id,
                PatientMedication.is_active.is_(True),
            ).all()
            current = sorted(set(_medication_names(patient, active)))
            profile = {
                "age": patient_age(patient.date_of_birth),
                "allergies": patient.allergies or [],
                "medical_history": patient.medical_history or [],
            }
        known = self.check_interactions(patient_id, medication_name)
        age = profile["age"] if profile["age"] is not None else "Unknown"
        allergies = ", ".join(str(a) for a in profile["allergies"]) or "None known"
        known_text = "; ".join(
            "%s/%s (%s)" % (w["drug_a"], w["drug_b"], w["severity"]) for w in known
        ) or "None on file"
        medications = ", ".join(current) or "None"
        history = profile["medical_history"] or "Not specified"

        prompt = f"""
Provide dosing recommendations for this patient.

PATIENT:
- Age: {age}
- Allergies: {allergies}
- Current medications: {medications}
- Medical history: {history}
- Known interactions: {known_text}

MEDICATION: {medication_name}
INDICATION: {indication or "Standard indication"}

Respond in JSON:
{{
  "recommendedDosage": "", "frequency": "", "duration": "", "route": "",
  "warnings": [], "contraindications": [],
  "interactions": {{"severity": "none|minor|moderate|major|contraindicated",
                    "interactingMedications": [], "recommendations": []}},
  "monitoring": [], "alternatives": [{{"medication": "", "reason": ""}}],
  "confidence": 0-100, "reasoning": ""
}}
"""
        raw = self.llm.complete_json(DOSING_SYSTEM_PROMPT, prompt)
        interactions = raw.get("interactions") if isinstance(raw.get("interactions"), dict) else {}
        try:
            confidence = max(0, min(100, int(raw.get("confidence", 0))))
        except (TypeError, ValueError):
            confidence = 0

        logger.info("Dosing recommendation for patient %s: %s", patient_id, medication_name)
        return {
            "medication_name": medication_name,
            "recommended_dosage": raw.get("recommendedDosage") or "Consult prescribing information",
            "frequency": raw.get("frequency") or "As directed",
            "duration": raw.get("duration") or "",
            "route": raw.get("route") or "",
            "warnings": list(raw.get("warnings") or []),
            "contraindications": list(raw.get("contraindications") or []),
            "interactions": {
                "severity": interactions.get("severity") or "none",
                "interacting_medications": list(interactions.get("interactingMedications") or []),
                "recommendations": list(interactions.get("recommendations") or []),
            },
            "known_interactions": known,
            "monitoring": list(raw.get("monitoring") or []),
            "alternatives": list(raw.get("alternatives") or []),
            "confidence": confidence,
            "reasoning": raw.get("reasoning") or "",
        }

    def create_prescription(self, data: Dict[str, Any], prescriber_id: int, context: Optional[AuditContext] = None) -> Dict[str, Any]:
        missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        try:
            quantity = int(data["quantity"])
            refills = int(data.get("refills_remaining", 0))
        except (TypeError, ValueError):
            raise ValidationError("quantity and refills_remaining must be integers")
        if quantity <= 0 or refills < 0:
            raise ValidationError("quantity must be positive and refills_remaining non-negative")

        warnings = self.check_interactions(data["patient_id"], data["medication_name"])
        now = datetime.utcnow()

        with get_db_session() as session:
            prescription = Prescription(
                prescription_number=generate_prescription_number(now),
                patient_id=data["patient_id"],
                medication_name=data["medication_name"],
                dosage=data["dosage"],
                quantity=quantity,
                instructions=data["instructions"],
                refills_remaining=refills,
                prescribed_by=prescriber_id,
                prescribed_date=now,
                expiration_date=now + timedelta(days=PRESCRIPTION_EXPIRE_DAYS),
                pharmacy_id=data.get("pharmacy_id"),
                doctor_notes=data.get("doctor_notes"),
                interaction_warnings=warnings,
                status="pending",
            )
            session.add(prescription)
            session.flush()
            self._audit(session, prescriber_id, "created", context, prescription_id=prescription.id, details={
                "medication": prescription.medication_name,
                "interaction_warnings": len(warnings),
            })
            session.commit()
            result = prescription.to_dict()

        if warnings:
            logger.warning("Prescription %s created with %d interaction warnings", result["id"], len(warnings))
        return result

    def send_to_pharmacy(self, prescription_id: int, user_id: int, context: Optional[AuditContext] = None) -> Dict[str, Any]:
        with get_db_session() as session:
            prescription = session.get(Prescription, prescription_id)
            if not prescription:
                raise NotFoundError(f"Prescription not found: {prescription_id}")
            if prescription.status != "pending":
                raise ValidationError(
                    f"Only pending prescriptions can be sent (status: {prescription.status})"
                )

            patient = session.get(Patient, prescription.patient_id)
            pharmacy_id = prescription.pharmacy_id or (patient.preferred_pharmacy_id if patient else None)
            pharmacy = session.get(Pharmacy, pharmacy_id) if pharmacy_id else None
            if pharmacy is None:
                raise ValidationError("No pharmacy selected for this prescription")
            prescriber = session.get(AppUser, prescription.prescribed_by)

            result = self.efax.send_prescription(
                prescription.to_dict(),
                patient.to_dict() if patient else {},
                pharmacy.to_dict(),
                prescriber.to_dict() if prescriber else None,
            )

            prescription.pharmacy_id = pharmacy.id
            prescription.fax_status = result["delivery_status"]
            prescription.fax_delivery_confirmation = result
            if result["success"]:
                prescription.status = "sent"
            self._audit(
                session, user_id, "sent" if result["success"] else "fax_failed", context,
                prescription_id=prescription.id,
                details={"pharmacy_id": pharmacy.id, "fax_result": result},
            )
            session.commit()
            return {"prescription": prescription.to_dict(), "fax": result}

    # =========================================================================
    # Refills
    # =========================================================================

    def list_refill_requests(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        with get_db_session() as session:
            query = session.query(RefillRequest)
            if status:
                query = query.filter(RefillRequest.status == status)
            rows = query.order_by(RefillRequest.requested_date.desc(), RefillRequest.id.desc()).all()
            return [r.to_dict() for r in rows]

    def create_refill_request(self, prescription_id: int, pharmacy_id: Optional[int] = None) -> Dict[str, Any]:
        with get_db_session() as session:
            prescription = session.get(Prescription, prescription_id)
            if not prescription:
                raise NotFoundError(f"Prescription not found: {prescription_id}")
            refill = RefillRequest(
                prescription_id=prescription.id,
                patient_id=prescription.patient_id,
                pharmacy_id=pharmacy_id or prescription.pharmacy_id,
                status="pending",
            )
            session.add(refill)
            session.commit()
            return refill.to_dict()

    def approve_refill(
        self,
        refill_id: int,
        user_id: int,
        dosage_changes: Optional[str] = None,
        doctor_notes: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        with get_db_session() as session:
            refill = self._pending_refill(session, refill_id)
            prescription = session.get(Prescription, refill.prescription_id)
            patient = session.get(Patient, refill.patient_id)
            pharmacy_id = refill.pharmacy_id or prescription.pharmacy_id
            pharmacy = session.get(Pharmacy, pharmacy_id) if pharmacy_id else None
            prescriber = session.get(AppUser, user_id)

            refill.status = "approved"
            refill.approved_by = user_id
            refill.approval_date = datetime.utcnow()
            refill.dosage_changes = dosage_changes
            refill.doctor_notes = doctor_notes

            fax = None
            if pharmacy is not None:
                fax = self.efax.send_refill_authorization(
                    refill.to_dict(),
                    prescription.to_dict(),
                    patient.to_dict() if patient else {},
                    pharmacy.to_dict(),
                    prescriber.to_dict() if prescriber else None,
                )
                refill.pharmacy_id = pharmacy.id
                refill.fax_status = fax["delivery_status"]
                refill.fax_delivery_confirmation = fax

            self._audit(session, user_id, "approved", context,
                        prescription_id=prescription.id, refill_request_id=refill.id,
                        details={"dosage_changes": dosage_changes, "fax_result": fax})
            if fax is not None and not fax["success"]:
                self._audit(session, user_id, "fax_failed", context,
                            prescription_id=prescription.id, refill_request_id=refill.id,
                            details={"error": fax.get("error")})
            session.commit()
            return {"refill": refill.to_dict(), "fax": fax}

    def deny_refill(self, refill_id: int, user_id: int, reason: str, context: Optional[AuditContext] = None) -> Dict[str, Any]:
        if not (reason or "").strip():
            raise ValidationError("A denial reason is required")

        with get_db_session() as session:
            refill = self._pending_refill(session, refill_id)
            refill.status = "denied"
            refill.approved_by = user_id
            refill.approval_date = datetime.utcnow()
            refill.denial_reason = reason
            self._audit(session, user_id, "denied", context,
                        prescription_id=refill.prescription_id, refill_request_id=refill.id,
                        details={"reason": reason})
            session.commit()
            return refill.to_dict()

    def _pending_refill(self, session, refill_id: int) -> RefillRequest:
        refill = session.get(RefillRequest, refill_id)
        if not refill:
            raise NotFoundError(f"Refill request not found: {refill_id}")
        if refill.status != "pending":
            raise ValidationError(f"Refill request is already {refill.status}")
        return refill

    # =========================================================================
    # Pharmacies
    # =========================================================================

    def list_pharmacies(
        self,
        zip_code: Optional[str] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
        chain_type: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Active pharmacies. City, chain and free-text matches are case-insensitive substrings."""
        with get_db_session() as session:
            query = session.query(Pharmacy).filter(Pharmacy.is_active.is_(True))
            if zip_code:
                query = query.filter(Pharmacy.zip_code.startswith(zip_code.strip()))
            if city:
                query = query.filter(Pharmacy.city.ilike(f"%{city.strip()}%"))
            if state:
                query = query.filter(func.lower(Pharmacy.state) == state.strip().lower())
            if chain_type:
                query = query.filter(Pharmacy.chain_type.ilike(f"%{chain_type.strip()}%"))
            if search:
                term = f"%{search.strip()}%"
                query = query.filter(or_(
                    Pharmacy.name.ilike(term),
                    Pharmacy.address.ilike(term),
                    Pharmacy.city.ilike(term),
                    Pharmacy.zip_code.ilike(term),
                    Pharmacy.chain_type.ilike(term),
                ))
            return [p.to_dict() for p in query.order_by(Pharmacy.name, Pharmacy.id).all()]

    def create_pharmacy(self, data: Dict[str, Any]) -> Dict[str, Any]:
        missing = [f for f in PHARMACY_FIELDS if not data.get(f)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        with get_db_session() as session:
            pharmacy = Pharmacy(
                **{f: data[f] for f in PHARMACY_FIELDS},
                phone_number=data.get("phone_number"),
                email=data.get("email"),
                chain_type=data.get("chain_type"),
            )
            session.add(pharmacy)
            session.commit()
            return pharmacy.to_dict()

    # =========================================================================
    # Audit
    # =========================================================================

    def get_audit_logs(self, prescription_id: int) -> List[Dict[str, Any]]:
        with get_db_session() as session:
            rows = (
                session.query(PrescriptionAuditLog)
                .filter(PrescriptionAuditLog.prescription_id == prescription_id)
                .order_by(PrescriptionAuditLog.created_at.desc(), PrescriptionAuditLog.id.desc())
                .all()
            )
            return [r.to_dict() for r in rows]

    @staticmethod
    def _audit(
        session,
        user_id: int,
        action: str,
        context: Optional[AuditContext],
        prescription_id: Optional[int] = None,
        refill_request_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or AuditContext()
        session.add(PrescriptionAuditLog(
            prescription_id=prescription_id,
            refill_request_id=refill_request_id,
            user_id=user_id,
            action=action,
            details=details,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        ))
        logger.info("Prescription audit: %s by user %s", action, user_id)
