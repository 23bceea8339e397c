"""
Billing models: payers, claims, denials and appeals.

All monetary amounts are stored as integer cents.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Boolean

from isynera.db.postgres import Base, JSONType


class Payer(Base):
    __tablename__ = "payers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payer_name = Column(String(200), nullable=False)
    payer_type = Column(String(50), nullable=False)  # medicare | medicaid | commercial | mco
    payer_code = Column(String(100), nullable=True, unique=True)
    billing_rules = Column(JSONType, nullable=True)
    contact_info = Column(JSONType, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payer_name": self.payer_name,
            "payer_type": self.payer_type,
            "payer_code": self.payer_code,
            "is_active": self.is_active,
        }


class Claim(Base):
    __tablename__ = "claims"

    id = Column(Integer, primary_key=True, autoincrement=True)
    claim_id = Column(String(50), nullable=False, unique=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    payer_id = Column(Integer, ForeignKey("payers.id"), nullable=True)
    claim_type = Column(String(20), nullable=False, default="cms1500")  # cms1500 | ub04
    status = Column(String(30), nullable=False, default="draft")  # draft | submitted | paid | denied | appealed
    service_date = Column(DateTime, nullable=False)
    submission_date = Column(DateTime, nullable=True)
    total_amount = Column(Integer, nullable=False)
    paid_amount = Column(Integer, nullable=False, default=0)
    denied_amount = Column(Integer, nullable=False, default=0)
    claim_data = Column(JSONType, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "claim_id": self.claim_id,
            "patient_id": self.patient_id,
            "provider_id": self.provider_id,
            "payer_id": self.payer_id,
            "claim_type": self.claim_type,
            "status": self.status,
            "service_date": self.service_date.isoformat() if self.service_date else None,
            "submission_date": self.submission_date.isoformat() if self.submission_date else None,
            "total_amount": self.total_amount,
            "paid_amount": self.paid_amount,
            "denied_amount": self.denied_amount,
            "claim_data": self.claim_data,
        }


class Denial(Base):
    __tablename__ = "denials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    claim_id = Column(Integer, ForeignKey("claims.id"), nullable=False, index=True)
    denial_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    denial_reason = Column(String(10), nullable=False)  # CARC code, e.g. CO-50
    denial_description = Column(Text, nullable=True)
    denial_amount = Column(Integer, nullable=False)
    category = Column(String(50), nullable=False)  # eligibility | coding | authorization | timely_filing | other
    is_appealable = Column(Boolean, nullable=False, default=True)
    appeal_deadline = Column(DateTime, nullable=True)
    status = Column(String(30), nullable=False, default="pending")  # pending | appealed | written_off
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "claim_id": self.claim_id,
            "denial_date": self.denial_date.isoformat() if self.denial_date else None,
            "denial_reason": self.denial_reason,
            "denial_description": self.denial_description,
            "denial_amount": self.denial_amount,
            "category": self.category,
            "is_appealable": self.is_appealable,
            "appeal_deadline": self.appeal_deadline.isoformat() if self.appeal_deadline else None,
            "status": self.status,
        }


class Appeal(Base):
    __tablename__ = "appeals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    denial_id = Column(Integer, ForeignKey("denials.id"), nullable=False, index=True)
    appeal_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    appeal_type = Column(String(30), nullable=False)  # reconsideration | redetermination | external_review
    appeal_letter = Column(Text, nullable=True)
    supporting_docs = Column(JSONType, nullable=True)
    status = Column(String(30), nullable=False, default="submitted")
    outcome = Column(Text, nullable=True)
    recovered_amount = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "denial_id": self.denial_id,
            "appeal_date": self.appeal_date.isoformat() if self.appeal_date else None,
            "appeal_type": self.appeal_type,
            "appeal_letter": self.appeal_letter,
            "supporting_docs": self.supporting_docs or [],
            "status": self.status,
            "outcome": self.outcome,
            "recovered_amount": self.recovered_amount,
        }
