"""
TranscriptionService: ambient scribe sessions and doctor SOAP notes.

A session is a row in ai_transcription_sessions. The transcript (typed,
dictated or transcribed from audio with Whisper) is turned into SOAP notes
by the LLM; CPT/ICD suggestions, voice commands and quality scores are
rule-based.

The database row is authoritative. SessionCache only keeps recent session
dicts in memory for the polling UI.
"""

import logging
import random
import re
import string
import threading
import time
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional

from isynera.config import config
from isynera.db.postgres import get_db_session
from isynera.errors import NotFoundError, ValidationError
from isynera.models import TranscriptionSession
from isynera.services.email_service import EmailService, get_email_service
from isynera.services.llm import LLMClient, get_llm_client

logger = logging.getLogger("isynera.transcription")

SOAP_SECTIONS = ("subjective", "objective", "assessment", "plan")

SOAP_SYSTEM_PROMPT = (
    "You are a medical scribe. Convert clinical encounter transcripts into "
    "accurate SOAP notes. Do not invent findings that are not in the transcript. "
    "Respond only with a JSON object."
)

VOICE_COMMAND_PATTERNS = [
    re.compile(r"order\s+(.*?)\s+for\s+patient", re.IGNORECASE),
    re.compile(r"prescribe\s+(.*?)\s+\d+mg", re.IGNORECASE),
    re.compile(r"schedule\s+(.*?)\s+appointment", re.IGNORECASE),
    re.compile(r"refer\s+to\s+(.*?)\s+specialist", re.IGNORECASE),
]

# (phrases, code, description, confidence, rationale)
CPT_RULES = [
    (("examination", "physical exam"), "99213",
     "Office visit, established patient, low complexity", 85,
     "Physical examination documented in transcript"),
    (("shortness of breath", "chest pain"), "93000",
     "Electrocardiogram, routine ECG", 78,
     "Cardiac symptoms may warrant ECG evaluation"),
]
ICD_RULES = [
    (("heart failure", "CHF"), "I50.9",
     "Heart failure, unspecified", 90,
     "Heart failure mentioned in assessment"),
    (("hypertension", "high blood pressure"), "I10",
     "Essential hypertension", 95,
     "Hypertension documented in medical history"),
    (("diabetes", "DM"), "E11.9",
     "Type 2 diabetes mellitus without complications", 88,
     "Diabetes mellitus type 2 mentioned in history"),
]


def generate_session_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


def _mentions(text: str, phrase: str) -> bool:
    # Acronyms (CHF, DM) match case-sensitively on word boundaries
    if phrase.isupper():
        return re.search(rf"\b{re.escape(phrase)}\b", text) is not None
    return phrase in text.lower()


def _apply_rules(text: str, rules) -> List[Dict[str, Any]]:
    return [
        {"code": code, "description": description, "confidence": confidence, "rationale": rationale}
        for phrases, code, description, confidence, rationale in rules
        if any(_mentions(text, p) for p in phrases)
    ]


def suggest_cpt_codes(transcript: str) -> List[Dict[str, Any]]:
    return _apply_rules(transcript or "", CPT_RULES)


def suggest_icd_codes(transcript: str) -> List[Dict[str, Any]]:
    return _apply_rules(transcript or "", ICD_RULES)


def extract_voice_commands(transcript: str) -> List[Dict[str, Any]]:
    commands = []
    now_ms = int(time.time() * 1000)
    for pattern in VOICE_COMMAND_PATTERNS:
        for match in pattern.finditer(transcript or ""):
            commands.append({
                "command": match.group(0),
                "action": match.group(1) or "unknown",
                "timestamp": now_ms,
                "executed": False,
            })
    return commands


def build_clinical_summary(transcript: str) -> str:
    return (
        "Clinical Summary: Patient encounter documented with comprehensive transcription and "
        f"SOAP note generation. Transcript length: {len(transcript)} characters. SOAP notes include "
        "structured subjective, objective, assessment, and plan sections with confidence scoring. "
        "Recommended for clinical review and integration into patient medical record."
    )


def format_soap_notes(soap: Dict[str, Any]) -> str:
    confidence = soap.get("confidence") or {}
    blocks = [f"{section.upper()}:\n{soap.get(section, '')}" for section in SOAP_SECTIONS]
    scores = "\n".join(
        f"- {section.title()}: {confidence.get(section, 'n/a')}%" for section in SOAP_SECTIONS
    )
    return "\n\n".join(blocks) + f"\n\nCONFIDENCE SCORES:\n{scores}"


# =============================================================================
# Quality scores (0-100)
# =============================================================================

MEDICAL_TERMS = ("patient", "examination", "diagnosis", "treatment", "medication", "symptom")
CLINICAL_ELEMENTS = (
    "vital signs", "blood pressure", "heart rate", "physical exam",
    "diagnosis", "treatment", "medication", "follow-up",
)
DIAGNOSTIC_TERMS = ("diagnosis", "condition", "disease", "disorder", "syndrome")
PROCEDURE_TERMS = ("examination", "test", "procedure", "surgery", "treatment")


def _clamp_score(score: float) -> float:
    return max(0, min(100, score))


def assess_transcription_quality(transcript: str) -> float:
    lowered = transcript.lower()
    score = 80 + 3 * sum(term in lowered for term in MEDICAL_TERMS)

    sentences = [s for s in re.split(r"[.!?]+", transcript) if s.strip()]
    if len(sentences) > 3:
        score += 10

    counts: Dict[str, int] = {}
    for word in lowered.split():
        counts[word] = counts.get(word, 0) + 1
    score -= 5 * sum(1 for c in counts.values() if c > 5)
    return _clamp_score(score)


def assess_clinical_clarity(soap: Dict[str, Any]) -> float:
    score = 75
    minimums = {"subjective": 50, "objective": 50, "assessment": 30, "plan": 30}
    for section, minimum in minimums.items():
        if len(str(soap.get(section) or "")) > minimum:
            score += 5
    full_text = " ".join(str(soap.get(s) or "") for s in SOAP_SECTIONS).lower()
    score += 2 * sum(element in full_text for element in CLINICAL_ELEMENTS)
    return _clamp_score(score)


def assess_coding_accuracy(transcript: str, soap: Dict[str, Any]) -> float:
    assessment = str(soap.get("assessment") or "").lower()
    score = 70 + 8 * sum(term in assessment for term in DIAGNOSTIC_TERMS)
    full_text = f"{transcript} {soap.get('plan') or ''}".lower()
    score += 5 * sum(term in full_text for term in PROCEDURE_TERMS)
    return _clamp_score(score)


# =============================================================================
# Session cache
# =============================================================================

class SessionCache:
    """Thread-safe, bounded, TTL-expiring map of session_id -> session dict."""

    def __init__(self, ttl_seconds: int = 3600, max_sessions: int = 500, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, tuple]" = OrderedDict()

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[session_id]
                return None
            return dict(value)

    def put(self, session_id: str, value: Dict[str, Any]) -> None:
        with self._lock:
            self._entries.pop(session_id, None)
            self._entries[session_id] = (self._clock(), dict(value))
            self._evict_locked()

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._entries.pop(session_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict_locked(self) -> None:
        now = self._clock()
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at > self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        while len(self._entries) > self.max_sessions:
            self._entries.popitem(last=False)


# =============================================================================
# Service
# =============================================================================

class TranscriptionService:

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        email: Optional[EmailService] = None,
        cache: Optional[SessionCache] = None,
    ):
        self.llm = llm or get_llm_client()
        self.email = email or get_email_service()
        self.cache = cache or SessionCache(
            ttl_seconds=config.TRANSCRIPTION_CACHE_TTL_SECONDS,
            max_sessions=config.TRANSCRIPTION_CACHE_MAX_SESSIONS,
        )

    # -------------------------------------------------------------------------
    # Scribe sessions
    # -------------------------------------------------------------------------

    def start_session(self, user_id: int, patient_id: Optional[int] = None) -> Dict[str, Any]:
        with get_db_session() as session:
            row = TranscriptionSession(
                session_id=generate_session_id(),
                user_id=user_id,
                patient_id=patient_id,
                transcription_text="",
                soap_notes={},
                cpt_codes=[],
                icd_codes=[],
                voice_commands=[],
                confidence_scores={},
                duration=0,
                status="processing",
            )
            session.add(row)
            session.commit()
            result = row.to_dict()

        self.cache.put(result["session_id"], result)
        logger.info("Started transcription session %s for user %s", result["session_id"], user_id)
        return result

    def get_session(self, session_id: str) -> Dict[str, Any]:
        cached = self.cache.get(session_id)
        if cached is not None:
            return cached

        with get_db_session() as session:
            row = session.query(TranscriptionSession).filter(
                TranscriptionSession.session_id == session_id
            ).first()
            if not row:
                raise NotFoundError(f"Transcription session not found: {session_id}")
            result = row.to_dict()

        self.cache.put(session_id, result)
        return result

    def process_transcript(self, session_id: str, transcript: str, duration: Optional[int] = None) -> Dict[str, Any]:
        """Generate SOAP notes, summary, codes and commands; mark the session completed."""
        transcript = (transcript or "").strip()
        if not transcript:
            raise ValidationError("Transcript is empty")

        self._ensure_editable(session_id)
        soap = self.generate_soap_notes(transcript)

        updates = {
            "transcription_text": transcript,
            "soap_notes": soap,
            "ai_summary": build_clinical_summary(transcript),
            "cpt_codes": suggest_cpt_codes(transcript),
            "icd_codes": suggest_icd_codes(transcript),
            "voice_commands": extract_voice_commands(transcript),
            "confidence_scores": {
                "transcription_quality": assess_transcription_quality(transcript),
                "clinical_clarity": assess_clinical_clarity(soap),
                "coding_accuracy": assess_coding_accuracy(transcript, soap),
            },
            "status": "completed",
            "completed_at": datetime.utcnow(),
        }
        if duration is not None:
            updates["duration"] = duration

        return self._update_session(session_id, updates)

    def transcribe_audio(self, session_id: str, audio_bytes: bytes, filename: str = "audio.webm") -> Dict[str, Any]:
        if not audio_bytes:
            raise ValidationError("Audio file is empty")
        self._ensure_editable(session_id)
        transcript = self.llm.transcribe(audio_bytes, filename)
        return self.process_transcript(session_id, transcript)

    def generate_soap_notes(self, transcript: str) -> Dict[str, Any]:
        prompt = f"""
Convert this clinical encounter transcript into SOAP notes.

Transcript:
{transcript}

Respond in JSON:
{{
  "subjective": "patient-reported history and symptoms",
  "objective": "exam findings, vitals, test results",
  "assessment": "diagnoses and clinical impression",
  "plan": "treatment, orders, follow-up",
  "confidence": {{"subjective": 0-100, "objective": 0-100, "assessment": 0-100, "plan": 0-100}}
}}
"""
        raw = self.llm.complete_json(SOAP_SYSTEM_PROMPT, prompt, model=config.OPENAI_SOAP_MODEL)
        soap = {section: str(raw.get(section) or "") for section in SOAP_SECTIONS}
        confidence = raw.get("confidence") if isinstance(raw.get("confidence"), dict) else {}
        soap["confidence"] = {section: confidence.get(section, 0) for section in SOAP_SECTIONS}
        return soap

    def email_summary(self, session_id: str, to: str, subject: Optional[str] = None) -> Dict[str, Any]:
        if not to:
            raise ValidationError("Recipient email is required")
        data = self.get_session(session_id)

        parts = []
        if data.get("ai_summary"):
            parts.append(data["ai_summary"])
        if data.get("soap_notes"):
            parts.append(format_soap_notes(data["soap_notes"]))
        if not parts:
            raise ValidationError("Session has no notes to send yet")

        return self.email.send_transcription_summary(
            to=to,
            subject=subject or f"iSynera Transcription Summary - {session_id}",
            content="\n\n".join(parts),
            session_id=session_id,
        )

    # -------------------------------------------------------------------------
    # Doctor SOAP notes
    # -------------------------------------------------------------------------

    def list_soap_notes(self, patient_id: Optional[int] = None) -> List[Dict[str, Any]]:
        with get_db_session() as session:
            query = session.query(TranscriptionSession)
            if patient_id is not None:
                query = query.filter(TranscriptionSession.patient_id == patient_id)
            rows = query.order_by(TranscriptionSession.created_at.desc(), TranscriptionSession.id.desc()).all()
            return [r.to_dict() for r in rows]

    def create_soap_note(self, user_id: int, patient_id: int, sections: Dict[str, Any]) -> Dict[str, Any]:
        missing = [s for s in SOAP_SECTIONS if not str(sections.get(s) or "").strip()]
        if missing:
            raise ValidationError(f"Missing SOAP sections: {', '.join(missing)}")

        with get_db_session() as session:
            row = TranscriptionSession(
                session_id=generate_session_id(),
                user_id=user_id,
                patient_id=patient_id,
                transcription_text=sections.get("transcription_text") or "",
                soap_notes={s: sections[s] for s in SOAP_SECTIONS},
                status="completed",
                completed_at=datetime.utcnow(),
            )
            session.add(row)
            session.commit()
            return row.to_dict()

    def update_soap_note(self, note_id: int, sections: Dict[str, Any]) -> Dict[str, Any]:
        with get_db_session() as session:
            row = session.get(TranscriptionSession, note_id)
            if not row:
                raise NotFoundError(f"SOAP note not found: {note_id}")
            if row.status == "signed":
                raise ValidationError("Signed notes cannot be edited")

            soap = dict(row.soap_notes or {})
            for section in SOAP_SECTIONS:
                if section in sections:
                    soap[section] = sections[section]
            row.soap_notes = soap
            session.commit()
            result = row.to_dict()

        self.cache.discard(result["session_id"])
        return result

    def sign_soap_note(self, note_id: int, user_id: int) -> Dict[str, Any]:
        with get_db_session() as session:
            row = session.get(TranscriptionSession, note_id)
            if not row:
                raise NotFoundError(f"SOAP note not found: {note_id}")
            if row.status == "signed":
                raise ValidationError("Note is already signed")
            row.status = "signed"
            row.signed_by = user_id
            row.signed_at = datetime.utcnow()
            session.commit()
            result = row.to_dict()

        self.cache.discard(result["session_id"])
        return result

    # -------------------------------------------------------------------------

    def _ensure_editable(self, session_id: str) -> None:
        # Status is read from the row; a cached copy may predate signing
        with get_db_session() as session:
            row = session.query(TranscriptionSession).filter(
                TranscriptionSession.session_id == session_id
            ).first()
            if not row:
                self.cache.discard(session_id)
                raise NotFoundError(f"Transcription session not found: {session_id}")
            if row.status == "signed":
                raise ValidationError("Signed notes cannot be edited")

    def _update_session(self, session_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        with get_db_session() as session:
            row = session.query(TranscriptionSession).filter(
                TranscriptionSession.session_id == session_id
            ).first()
            if not row:
                self.cache.discard(session_id)
                raise NotFoundError(f"Transcription session not found: {session_id}")
            if row.status == "signed":
                self.cache.discard(session_id)
                raise ValidationError("Signed notes cannot be edited")
            for key, value in updates.items():
                setattr(row, key, value)
            session.commit()
            result = row.to_dict()

        self.cache.put(session_id, result)
        return result


# Singleton instance
_transcription_service = None


def get_transcription_service() -> TranscriptionService:
    global _transcription_service
    if _transcription_service is None:
        _transcription_service = TranscriptionService()
    return _transcription_service


def evict_cached_session(session_id: str) -> None:
    """Drop a session from the shared cache after its row changed elsewhere."""
    if _transcription_service is not None:
        _transcription_service.cache.discard(session_id)
