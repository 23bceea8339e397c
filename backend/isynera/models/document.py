"""
Uploaded documents (referral packets, CCD/C-CDA exports, scanned forms).
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text

from isynera.db.postgres import Base, JSONType


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String(255), nullable=False)
    content_type = Column(String(100), nullable=True)
    size = Column(Integer, nullable=False, default=0)
    storage_path = Column(String(500), nullable=False)
    document_type = Column(String(50), nullable=False, default="referral")  # referral | ccd | insurance_card | other
    status = Column(String(20), nullable=False, default="uploaded")  # uploaded | processing | processed | failed
    extracted_text = Column(Text, nullable=True)
    extracted_data = Column(JSONType, nullable=True)
    missing_fields = Column(JSONType, nullable=True)
    error_message = Column(Text, nullable=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True, index=True)
    referral_id = Column(Integer, ForeignKey("referrals.id"), nullable=True, index=True)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    processed_at = Column(DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "filename": self.filename,
            "content_type": self.content_type,
            "size": self.size,
            "document_type": self.document_type,
            "status": self.status,
            "extracted_data": self.extracted_data,
            "missing_fields": self.missing_fields or [],
            "error_message": self.error_message,
            "patient_id": self.patient_id,
            "referral_id": self.referral_id,
            "uploaded_by": self.uploaded_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }
