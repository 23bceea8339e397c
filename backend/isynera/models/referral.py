"""
Referral intake models: referrals, eligibility verifications and
homebound assessments.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Boolean, Float

from isynera.db.postgres import Base, JSONType


REFERRAL_STATUSES = ("pending", "processing", "complete", "missing_info")
ELIGIBILITY_STATUSES = ("pending", "verified", "failed")
HOMEBOUND_STATUSES = ("qualified", "not_qualified", "pending", "review_needed")


class Referral(Base):
    __tablename__ = "referrals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True, index=True)
    referral_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    referring_provider = Column(String(255), nullable=True)
    status = Column(String(30), nullable=False, default="pending")
    ocr_status = Column(String(30), nullable=True)  # pending | processing | complete | failed
    document_url = Column(Text, nullable=True)
    extracted_data = Column(JSONType, nullable=True)
    missing_fields = Column(JSONType, nullable=True)
    ai_analysis = Column(JSONType, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "referral_date": self.referral_date.isoformat() if self.referral_date else None,
            "referring_provider": self.referring_provider,
            "status": self.status,
            "ocr_status": self.ocr_status,
            "document_url": self.document_url,
            "extracted_data": self.extracted_data,
            "missing_fields": self.missing_fields or [],
            "ai_analysis": self.ai_analysis,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class EligibilityVerification(Base):
    __tablename__ = "eligibility_verifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    insurance_type = Column(String(20), nullable=False)  # medicaid | medicare | mco
    status = Column(String(20), nullable=False, default="pending")
    verification_data = Column(JSONType, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "insurance_type": self.insurance_type,
            "status": self.status,
            "verification_data": self.verification_data,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class HomeboundAssessment(Base):
    __tablename__ = "homebound_assessments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    assessment_data = Column(JSONType, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    ai_recommendation = Column(Text, nullable=True)
    ai_verdict = Column(JSONType, nullable=True)
    confidence = Column(Float, nullable=True)
    cms_compliant = Column(Boolean, nullable=False, default=False)
    rationale = Column(Text, nullable=True)
    assessed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    assessed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "assessment_data": self.assessment_data,
            "status": self.status,
            "ai_recommendation": self.ai_recommendation,
            "ai_verdict": self.ai_verdict,
            "confidence": self.confidence,
            "cms_compliant": self.cms_compliant,
            "rationale": self.rationale,
            "assessed_at": self.assessed_at.isoformat() if self.assessed_at else None,
        }
