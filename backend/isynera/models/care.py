"""
Care coordination models: appointments, work queue tasks, consent forms.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text

from isynera.db.postgres import Base, JSONType


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    staff_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    scheduled_date = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    visit_type = Column(String(50), nullable=False, default="skilled_nursing")
    status = Column(String(20), nullable=False, default="scheduled")  # scheduled | completed | cancelled | missed
    location = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "staff_id": self.staff_id,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "duration_minutes": self.duration_minutes,
            "visit_type": self.visit_type,
            "status": self.status,
            "location": self.location,
            "notes": self.notes,
        }


class Task(Base):
    """Work queue item shown on the intake dashboard."""

    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True, index=True)
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True)
    priority = Column(String(20), nullable=False, default="medium")  # low | medium | high | urgent
    status = Column(String(20), nullable=False, default="pending")  # pending | in_progress | completed
    due_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "patient_id": self.patient_id,
            "assigned_to": self.assigned_to,
            "priority": self.priority,
            "status": self.status,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class ConsentForm(Base):
    __tablename__ = "consent_forms"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    form_type = Column(String(50), nullable=False)  # home_health | hipaa | treatment | financial
    status = Column(String(20), nullable=False, default="pending")  # pending | signed | declined
    content = Column(Text, nullable=True)
    requirements = Column(JSONType, nullable=True)
    signed_at = Column(DateTime, nullable=True)
    signed_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "form_type": self.form_type,
            "status": self.status,
            "content": self.content,
            "requirements": self.requirements,
            "signed_at": self.signed_at.isoformat() if self.signed_at else None,
            "signed_by": self.signed_by,
        }
