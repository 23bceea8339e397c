"""
Prescription, refill and pharmacy models.

Every state change on a prescription or refill writes a
PrescriptionAuditLog row (HIPAA / EPCS trail).
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Boolean

from isynera.db.postgres import Base, JSONType


class Pharmacy(Base):
    __tablename__ = "pharmacies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    address = Column(Text, nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(2), nullable=False)
    zip_code = Column(String(10), nullable=False, index=True)
    phone_number = Column(String(30), nullable=True)
    fax_number = Column(String(30), nullable=False)
    email = Column(String(255), nullable=True)
    chain_type = Column(String(50), nullable=True)  # cvs | walgreens | rite_aid | independent
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "phone_number": self.phone_number,
            "fax_number": self.fax_number,
            "email": self.email,
            "chain_type": self.chain_type,
            "is_active": self.is_active,
        }


class Prescription(Base):
    __tablename__ = "prescriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    prescription_number = Column(String(50), nullable=True, unique=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    medication_name = Column(String(255), nullable=False)
    dosage = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    instructions = Column(Text, nullable=False)
    refills_remaining = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="pending")  # pending | sent | filled | cancelled
    prescribed_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    prescribed_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    expiration_date = Column(DateTime, nullable=False)
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), nullable=True)
    doctor_notes = Column(Text, nullable=True)
    interaction_warnings = Column(JSONType, nullable=True)
    fax_status = Column(String(20), nullable=True)  # pending | sent | delivered | failed
    fax_delivery_confirmation = Column(JSONType, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "prescription_number": self.prescription_number,
            "patient_id": self.patient_id,
            "medication_name": self.medication_name,
            "dosage": self.dosage,
            "quantity": self.quantity,
            "instructions": self.instructions,
            "refills_remaining": self.refills_remaining,
            "status": self.status,
            "prescribed_by": self.prescribed_by,
            "prescribed_date": self.prescribed_date.isoformat() if self.prescribed_date else None,
            "expiration_date": self.expiration_date.isoformat() if self.expiration_date else None,
            "pharmacy_id": self.pharmacy_id,
            "doctor_notes": self.doctor_notes,
            "interaction_warnings": self.interaction_warnings or [],
            "fax_status": self.fax_status,
            "fax_delivery_confirmation": self.fax_delivery_confirmation,
        }


class RefillRequest(Base):
    __tablename__ = "refill_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    prescription_id = Column(Integer, ForeignKey("prescriptions.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    requested_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending | approved | denied | filled
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    approval_date = Column(DateTime, nullable=True)
    denial_reason = Column(Text, nullable=True)
    dosage_changes = Column(Text, nullable=True)
    doctor_notes = Column(Text, nullable=True)
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), nullable=True)
    fax_status = Column(String(20), nullable=True)
    fax_delivery_confirmation = Column(JSONType, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prescription_id": self.prescription_id,
            "patient_id": self.patient_id,
            "requested_date": self.requested_date.isoformat() if self.requested_date else None,
            "status": self.status,
            "approved_by": self.approved_by,
            "approval_date": self.approval_date.isoformat() if self.approval_date else None,
            "denial_reason": self.denial_reason,
            "dosage_changes": self.dosage_changes,
            "doctor_notes": self.doctor_notes,
            "pharmacy_id": self.pharmacy_id,
            "fax_status": self.fax_status,
            "fax_delivery_confirmation": self.fax_delivery_confirmation,
        }


class PrescriptionAuditLog(Base):
    __tablename__ = "prescription_audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    prescription_id = Column(Integer, ForeignKey("prescriptions.id"), nullable=True, index=True)
    refill_request_id = Column(Integer, ForeignKey("refill_requests.id"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    action = Column(String(30), nullable=False)  # created | approved | denied | sent | fax_failed | cancelled
    details = Column(JSONType, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prescription_id": self.prescription_id,
            "refill_request_id": self.refill_request_id,
            "user_id": self.user_id,
            "action": self.action,
            "details": self.details,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
