"""
Domain API blueprints.

Each module owns one URL prefix; common.py holds the bearer-token guard
and request helpers they share.
"""

from .patients import patients_bp
from .referrals import referrals_bp, intake_bp
from .transcription import transcription_bp, soap_notes_bp
from .ai import ai_bp
from .prescriptions import prescriptions_bp
from .documents import documents_bp
from .recycle import recycle_bp
from .billing import billing_bp

ALL_BLUEPRINTS = (
    patients_bp,
    referrals_bp,
    intake_bp,
    transcription_bp,
    soap_notes_bp,
    ai_bp,
    prescriptions_bp,
    documents_bp,
    recycle_bp,
    billing_bp,
)

__all__ = [
    "patients_bp",
    "referrals_bp",
    "intake_bp",
    "transcription_bp",
    "soap_notes_bp",
    "ai_bp",
    "prescriptions_bp",
    "documents_bp",
    "recycle_bp",
    "billing_bp",
    "ALL_BLUEPRINTS",
]
