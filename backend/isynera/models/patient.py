"""
Patient demographics and medication models.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Boolean
from sqlalchemy.orm import relationship

from isynera.db.postgres import Base, JSONType


class Patient(Base):
    """Patient record.

    `patient_id` is the external identifier printed on referrals and
    insurance paperwork; `id` is the surrogate key used by every foreign key.
    """

    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_name = Column(String(255), nullable=False)
    date_of_birth = Column(String(20), nullable=False)
    patient_id = Column(String(50), nullable=True, unique=True)
    diagnosis = Column(Text, nullable=True)
    physician = Column(String(255), nullable=True)
    insurance_info = Column(JSONType, nullable=True)

    # Demographics
    gender = Column(String(20), nullable=True)
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    emergency_contact = Column(JSONType, nullable=True)

    # Clinical profile
    allergies = Column(JSONType, nullable=True)
    medical_history = Column(JSONType, nullable=True)
    current_medications = Column(JSONType, nullable=True)
    risk_factors = Column(JSONType, nullable=True)
    special_notes = Column(Text, nullable=True)
    preferred_pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    deleted_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    last_modified_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    medications = relationship("PatientMedication", back_populates="patient")

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "patient_name": self.patient_name,
            "date_of_birth": self.date_of_birth,
            "patient_id": self.patient_id,
            "diagnosis": self.diagnosis,
            "physician": self.physician,
            "insurance_info": self.insurance_info,
            "gender": self.gender,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "emergency_contact": self.emergency_contact,
            "allergies": self.allergies or [],
            "medical_history": self.medical_history or [],
            "current_medications": self.current_medications or [],
            "risk_factors": self.risk_factors or [],
            "special_notes": self.special_notes,
            "preferred_pharmacy_id": self.preferred_pharmacy_id,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class PatientMedication(Base):
    __tablename__ = "patient_medications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    medication_name = Column(String(255), nullable=False)
    dosage = Column(String(100), nullable=True)
    frequency = Column(String(100), nullable=True)
    route = Column(String(50), nullable=True)
    prescribed_by = Column(String(255), nullable=True)
    start_date = Column(String(20), nullable=True)
    end_date = Column(String(20), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    patient = relationship("Patient", back_populates="medications")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "medication_name": self.medication_name,
            "dosage": self.dosage,
            "frequency": self.frequency,
            "route": self.route,
            "prescribed_by": self.prescribed_by,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "is_active": self.is_active,
            "notes": self.notes,
        }


class MedicationInteraction(Base):
    """Known drug-drug interaction pair (names stored lowercase)."""

    __tablename__ = "medication_interactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    drug_a = Column(String(255), nullable=False, index=True)
    drug_b = Column(String(255), nullable=False, index=True)
    severity = Column(String(20), nullable=False, default="medium")  # critical | high | medium | low
    description = Column(Text, nullable=True)
    recommendation = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "drug_a": self.drug_a,
            "drug_b": self.drug_b,
            "severity": self.severity,
            "description": self.description,
            "recommendation": self.recommendation,
        }
