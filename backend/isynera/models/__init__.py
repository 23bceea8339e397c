"""
SQLAlchemy models for the iSynera platform.

These are the authoritative PostgreSQL tables.
"""

from .user import AppUser, UserSession, PasswordResetToken, ADMIN_ROLES, USER_ROLES
from .patient import Patient, PatientMedication, MedicationInteraction
from .referral import Referral, EligibilityVerification, HomeboundAssessment
from .care import Appointment, Task, ConsentForm
from .prescription import Pharmacy, Prescription, RefillRequest, PrescriptionAuditLog
from .clinical import TranscriptionSession, ChartReview
from .document import Document
from .billing import Payer, Claim, Denial, Appeal
from .audit import AuditLog, UserActivityLog, PatientAuditLog
from .recycle import RecycleItem

__all__ = [
    # Users
    "AppUser",
    "UserSession",
    "PasswordResetToken",
    "ADMIN_ROLES",
    "USER_ROLES",
    # Patients
    "Patient",
    "PatientMedication",
    "MedicationInteraction",
    # Referral intake
    "Referral",
    "EligibilityVerification",
    "HomeboundAssessment",
    # Care coordination
    "Appointment",
    "Task",
    "ConsentForm",
    # Prescriptions
    "Pharmacy",
    "Prescription",
    "RefillRequest",
    "PrescriptionAuditLog",
    # AI documentation
    "TranscriptionSession",
    "ChartReview",
    "Document",
    # Billing
    "Payer",
    "Claim",
    "Denial",
    "Appeal",
    # Audit
    "AuditLog",
    "UserActivityLog",
    "PatientAuditLog",
    "RecycleItem",
]
