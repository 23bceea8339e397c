"""
RAGAssistant: question answering over patient records.

Retrieval is keyword based: words longer than two characters are matched
against each patient's name, diagnosis, physician and external id. The
focus patient (if any) contributes referral, eligibility and appointment
lines. The LLM answers from those sources only.

query() never raises; on any failure the caller gets an apology answer
with confidence 0.
"""

import logging
from typing import Any, Dict, List, Optional

from isynera.db.postgres import get_db_session
from isynera.models import (
    Patient,
    Referral,
    EligibilityVerification,
    HomeboundAssessment,
    Appointment,
    Task,
)
from isynera.services.llm import LLMClient, get_llm_client

logger = logging.getLogger("isynera.rag")

MAX_SOURCES = 10
MAX_REPLY_SOURCES = 5
MAX_RELATED_PATIENTS = 5
DEFAULT_CONFIDENCE = 50

FAILURE_RESPONSE = {
    "answer": "I'm unable to process that request at the moment. Please try again or contact support.",
    "confidence": 0,
    "sources": [],
    "related_patients": [],
    "suggested_actions": ["Please rephrase your question", "Check system connectivity"],
    "medical_insights": [],
}

SYSTEM_PROMPT = """You are a medical AI assistant with access to patient healthcare records.
Provide accurate, professional medical insights based on the available data.

IMPORTANT GUIDELINES:
- Only use information from the provided sources
- Maintain patient confidentiality and HIPAA compliance
- Provide actionable recommendations when appropriate
- Indicate confidence levels in your responses
- Never diagnose; only provide insights and recommendations

Available Data Sources:
{sources}

System Context:
- Total Patients: {total_patients}
- Total Referrals: {total_referrals}
- Pending Tasks: {pending_tasks}

Respond only with a JSON object."""


def query_keywords(question: str) -> List[str]:
    return [w for w in question.lower().split() if len(w) > 2]


def is_relevant(keywords: List[str], patient: Dict[str, Any]) -> bool:
    haystack = " ".join(
        str(patient.get(k) or "") for k in ("patient_name", "diagnosis", "physician", "patient_id")
    ).lower()
    return any(k in haystack for k in keywords)


def _clamp_confidence(value: Any) -> float:
    try:
        number = float(value) if value is not None else DEFAULT_CONFIDENCE
    except (TypeError, ValueError):
        number = DEFAULT_CONFIDENCE
    return max(0, min(100, number))


class RAGAssistant:

    def __init__(self, llm: Optional[LLMClient] = None):
        self.llm = llm or get_llm_client()

    def query(self, question: str, patient_id: Optional[int] = None) -> Dict[str, Any]:
        try:
            context = self.build_context(patient_id)
            sources = self.search_relevant_data(question, context)
            return self.generate_response(question, sources, context)
        except Exception as e:
            logger.exception("RAG query failed: %s", e)
            return {**FAILURE_RESPONSE, "suggested_actions": list(FAILURE_RESPONSE["suggested_actions"])}

    # -------------------------------------------------------------------------

    def build_context(self, patient_id: Optional[int] = None) -> Dict[str, Any]:
        with get_db_session() as session:
            patients = [
                p.to_dict() for p in session.query(Patient).filter(Patient.is_deleted.is_(False)).all()
            ]
            system = {
                "total_patients": len(patients),
                "total_referrals": session.query(Referral).count(),
                "pending_tasks": session.query(Task).filter(Task.status == "pending").count(),
            }

            focus = None
            if patient_id is not None:
                patient = session.get(Patient, patient_id)
                if patient is not None and not patient.is_deleted:
                    focus = {
                        "patient": patient.to_dict(),
                        "referrals": [
                            r.to_dict() for r in session.query(Referral).filter(Referral.patient_id == patient_id)
                        ],
                        "eligibility": [
                            e.to_dict() for e in session.query(EligibilityVerification)
                            .filter(EligibilityVerification.patient_id == patient_id)
                        ],
                        "homebound": [
                            h.to_dict() for h in session.query(HomeboundAssessment)
                            .filter(HomeboundAssessment.patient_id == patient_id)
                        ],
                        "appointments": [
                            a.to_dict() for a in session.query(Appointment)
                            .filter(Appointment.patient_id == patient_id)
                        ],
                    }

        return {"patients": patients, "focus": focus, "system": system}

    def search_relevant_data(self, question: str, context: Dict[str, Any]) -> List[str]:
        keywords = query_keywords(question)
        sources = [
            f"Patient: {p['patient_name']} - {p.get('diagnosis')} - {p.get('physician')}"
            for p in context["patients"]
            if is_relevant(keywords, p)
        ]

        focus = context.get("focus")
        if focus:
            patient = focus["patient"]
            sources.append(
                f"Patient Details: {patient['patient_name']}, DOB: {patient['date_of_birth']}, "
                f"Diagnosis: {patient.get('diagnosis')}"
            )
            if focus["referrals"]:
                sources.append("Referrals: " + ", ".join(
                    f"{r.get('referring_provider') or 'referral'} - {r['status']}" for r in focus["referrals"]
                ))
            if focus["eligibility"]:
                sources.append("Insurance Status: " + ", ".join(
                    f"{e['insurance_type']} - {e['status']}" for e in focus["eligibility"]
                ))
            if focus["homebound"]:
                sources.append("Homebound Assessments: " + ", ".join(
                    f"{h['status']} ({h.get('confidence')})" for h in focus["homebound"]
                ))
            if focus["appointments"]:
                sources.append("Appointments: " + ", ".join(
                    f"{a['visit_type']} on {a['scheduled_date']}" for a in focus["appointments"]
                ))

        return sources[:MAX_SOURCES]

    def generate_response(self, question: str, sources: List[str], context: Dict[str, Any]) -> Dict[str, Any]:
        system = SYSTEM_PROMPT.format(sources="\n".join(sources), **context["system"])
        prompt = f"""
Please answer this healthcare question: "{question}"

Respond in JSON:
{{
  "answer": "detailed response",
  "confidence": 0-100,
  "medicalInsights": [],
  "suggestedActions": [],
  "relatedPatientIds": []
}}
"""
        result = self.llm.complete_json(system, prompt)

        related_ids = set()
        for value in result.get("relatedPatientIds") or []:
            try:
                related_ids.add(int(value))
            except (TypeError, ValueError):
                continue
        related = [p for p in context["patients"] if p["id"] in related_ids]

        return {
            "answer": result.get("answer") or "Unable to generate response",
            "confidence": _clamp_confidence(result.get("confidence")),
            "sources": sources[:MAX_REPLY_SOURCES],
            "related_patients": related[:MAX_RELATED_PATIENTS],
            "suggested_actions": list(result.get("suggestedActions") or []),
            "medical_insights": list(result.get("medicalInsights") or []),
        }


# Singleton instance
_rag_assistant = None


def get_rag_assistant() -> RAGAssistant:
    global _rag_assistant
    if _rag_assistant is None:
        _rag_assistant = RAGAssistant()
    return _rag_assistant
