"""
Backend services for iSynera.

- AuthService: authentication, sessions and user administration
- AuditService: HIPAA audit trail
- PatientService / ReferralService: intake records
- EligibilityService: insurance eligibility checks
- TranscriptionService: ambient scribe sessions and SOAP notes
- ChartReviewEngine / RAGAssistant: AI coding review and record Q&A
- PrescriptionService / EFaxService / EmailService: prescriptions and delivery
- DocumentService: referral packet upload and extraction
- RecycleService: soft deletion with restore
- BillingService: claims, denials and appeals
- ProjectionService: realtime Firestore projection updates
"""

from .audit_service import AuditService, AuditContext
from .auth_service import AuthService, get_auth_service
from .llm import LLMClient, get_llm_client
from .patient_service import PatientService
from .referral_service import ReferralService
from .eligibility_service import EligibilityService
from .email_service import EmailService, get_email_service
from .efax_service import EFaxService
from .transcription_service import TranscriptionService, SessionCache, get_transcription_service
from .chart_review import ChartReviewEngine, get_chart_review_engine
from .rag_assistant import RAGAssistant, get_rag_assistant
from .prescription_service import PrescriptionService
from .document_service import DocumentService
from .recycle_service import RecycleService
from .billing_service import BillingService
from .projection import ProjectionService, get_projection_service

__all__ = [
    "AuditService",
    "AuditContext",
    "AuthService",
    "get_auth_service",
    "LLMClient",
    "get_llm_client",
    "PatientService",
    "ReferralService",
    "EligibilityService",
    "EmailService",
    "get_email_service",
    "EFaxService",
    "TranscriptionService",
    "SessionCache",
    "get_transcription_service",
    "ChartReviewEngine",
    "get_chart_review_engine",
    "RAGAssistant",
    "get_rag_assistant",
    "PrescriptionService",
    "DocumentService",
    "RecycleService",
    "BillingService",
    "ProjectionService",
    "get_projection_service",
]
