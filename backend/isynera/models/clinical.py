"""
AI clinical documentation models: transcription sessions (SOAP notes)
and chart reviews.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Float

from isynera.db.postgres import Base, JSONType


class TranscriptionSession(Base):
    """Ambient scribe session. Also the storage for doctor SOAP notes.

    soap_notes holds {subjective, objective, assessment, plan, confidence}.
    """

    __tablename__ = "ai_transcription_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True, index=True)
    transcription_text = Column(Text, nullable=True)
    soap_notes = Column(JSONType, nullable=True)
    ai_summary = Column(Text, nullable=True)
    confidence_scores = Column(JSONType, nullable=True)
    cpt_codes = Column(JSONType, nullable=True)
    icd_codes = Column(JSONType, nullable=True)
    voice_commands = Column(JSONType, nullable=True)
    duration = Column(Integer, nullable=True)  # seconds
    status = Column(String(20), nullable=False, default="processing")  # processing | completed | signed
    signed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    signed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "user_id": self.user_id,
            "patient_id": self.patient_id,
            "transcription_text": self.transcription_text,
            "soap_notes": self.soap_notes,
            "ai_summary": self.ai_summary,
            "confidence_scores": self.confidence_scores,
            "cpt_codes": self.cpt_codes or [],
            "icd_codes": self.icd_codes or [],
            "voice_commands": self.voice_commands or [],
            "duration": self.duration,
            "status": self.status,
            "signed_by": self.signed_by,
            "signed_at": self.signed_at.isoformat() if self.signed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class ChartReview(Base):
    __tablename__ = "ai_chart_reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    chart_documents = Column(JSONType, nullable=True)
    extracted_codes = Column(JSONType, nullable=True)
    coding_discrepancies = Column(JSONType, nullable=True)
    coding_justification = Column(JSONType, nullable=True)
    medical_necessity_flags = Column(JSONType, nullable=True)
    coding_confidence_score = Column(Float, nullable=True)
    recommended_flags = Column(JSONType, nullable=True)
    compliance_validation = Column(JSONType, nullable=True)
    status = Column(String(20), nullable=False, default="completed")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "reviewer_id": self.reviewer_id,
            "chart_documents": self.chart_documents or [],
            "extracted_codes": self.extracted_codes or [],
            "coding_discrepancies": self.coding_discrepancies or [],
            "coding_justification": self.coding_justification or [],
            "medical_necessity_flags": self.medical_necessity_flags or [],
            "coding_confidence_score": self.coding_confidence_score,
            "recommended_flags": self.recommended_flags or [],
            "compliance_validation": self.compliance_validation,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
