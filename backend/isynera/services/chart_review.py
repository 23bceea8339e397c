"""
ChartReviewEngine: AI-assisted coding review of clinical documentation.

Pipeline per review:
1. Extract ICD-10 / CPT / HCPCS codes from each document (Anthropic)
2. Identify coding discrepancies (OpenAI)
3. Coding justification narrative
4. Medical-necessity flags (Anthropic)
5. Coding confidence score (deterministic)
6. Recommended action flags
7. Compliance validation (Anthropic)

The review is persisted to ai_chart_reviews.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from isynera.db.postgres import get_db_session
from isynera.errors import ValidationError
from isynera.models import ChartReview
from isynera.services.llm import LLMClient, get_llm_client

logger = logging.getLogger("isynera.chart_review")

CODING_SYSTEM_PROMPT = (
    "You are a certified medical coding specialist (CPC, CCS). "
    "Respond only with a JSON object."
)

SEVERITY_PENALTIES = {"critical": 20, "high": 15, "medium": 10, "low": 5}

RECOMMENDED_FLAGS = (
    "REVIEW_REQUIRED",
    "DOCUMENTATION_NEEDED",
    "CODING_CORRECTION",
    "MEDICAL_NECESSITY",
    "COMPLIANCE_RISK",
    "AUDIT_FLAG",
    "EDUCATION_NEEDED",
    "PRIOR_AUTH",
)


def calculate_coding_confidence(codes: List[Dict[str, Any]], discrepancies: List[Dict[str, Any]]) -> float:
    """Average code confidence minus a per-discrepancy severity penalty, in [0, 100]."""
    if not codes:
        return 0
    confidences = []
    for code in codes:
        try:
            confidences.append(float(code.get("confidence") or 0))
        except (TypeError, ValueError):
            confidences.append(0.0)
    average = sum(confidences) / len(confidences)
    penalty = sum(SEVERITY_PENALTIES.get(str(d.get("severity", "")).lower(), 0) for d in discrepancies)
    return max(0, min(100, average - penalty))


def severity_distribution(discrepancies: List[Dict[str, Any]]) -> Dict[str, int]:
    distribution = {"low": 0, "medium": 0, "high": 0, "critical": 0}
    for discrepancy in discrepancies:
        severity = str(discrepancy.get("severity", "")).lower()
        if severity in distribution:
            distribution[severity] += 1
    return distribution


def _dict_list(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


class ChartReviewEngine:

    def __init__(self, llm: Optional[LLMClient] = None):
        self.llm = llm or get_llm_client()

    def conduct_chart_review(
        self,
        patient_id: int,
        chart_documents: List[str],
        reviewer_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        documents = [d for d in (chart_documents or []) if isinstance(d, str) and d.strip()]
        if not documents:
            raise ValidationError("At least one chart document is required")

        started = time.monotonic()
        codes = self.extract_medical_codes(documents)
        discrepancies = self.identify_coding_discrepancies(documents, codes)
        justification = self.generate_coding_justification(documents, codes)
        necessity_flags = self.flag_medical_necessity_issues(documents, codes)
        confidence = calculate_coding_confidence(codes, discrepancies)
        recommended = self.generate_recommended_flags(discrepancies, necessity_flags)
        compliance = self.validate_compliance(documents, codes, justification)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        with get_db_session() as session:
            review = ChartReview(
                patient_id=patient_id,
                reviewer_id=reviewer_id,
                chart_documents=documents,
                extracted_codes={"codes": codes, "total_codes": len(codes), "processing_ms": elapsed_ms},
                coding_discrepancies={
                    "discrepancies": discrepancies,
                    "total_issues": len(discrepancies),
                    "severity_distribution": severity_distribution(discrepancies),
                },
                coding_justification=justification,
                medical_necessity_flags=necessity_flags,
                coding_confidence_score=confidence,
                recommended_flags=recommended,
                compliance_validation=compliance,
            )
            session.add(review)
            session.commit()
            result = review.to_dict()

        logger.info(
            "Chart review %s for patient %s: %d codes, %d discrepancies, confidence %.1f",
            result["id"], patient_id, len(codes), len(discrepancies), confidence,
        )
        return result

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def extract_medical_codes(self, documents: List[str]) -> List[Dict[str, Any]]:
        codes = []
        for document in documents:
            prompt = f"""
Extract all medical codes from this clinical documentation:
1. ICD-10-CM diagnosis codes
2. CPT procedure codes
3. HCPCS supply/equipment codes

Document: {document}

Respond in JSON as {{"codes": [{{"type": "ICD-10|CPT|HCPCS", "code": "", "description": "",
"confidence": 0-100, "sourceEvidence": "", "billable": true}}]}}
"""
            raw = self.llm.complete_json(CODING_SYSTEM_PROMPT, prompt, provider="anthropic")
            codes.extend(_dict_list(raw.get("codes")))
        return codes

    def identify_coding_discrepancies(self, documents: List[str], codes: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        prompt = f"""
Analyze the documentation and extracted codes for discrepancies:
- missing: documented conditions/procedures without a code
- incorrect: codes that do not match documentation
- unsupported: codes without adequate documentation
- conflicting: contradictory or mutually exclusive codes

Chart Documentation: {documents}
Extracted Codes: {codes}

Respond in JSON as {{"discrepancies": [{{"type": "", "description": "", "severity": "low|medium|high|critical",
"impact": "", "recommendation": "", "evidence": []}}]}}
"""
        raw = self.llm.complete_json(CODING_SYSTEM_PROMPT, prompt)
        return _dict_list(raw.get("discrepancies"))

    def generate_coding_justification(self, documents: List[str], codes: List[Dict[str, Any]]) -> str:
        prompt = f"""
Write a coding justification covering clinical rationale for each code, documentation support,
medical necessity and compliance with coding guidelines.

Extracted Codes: {codes}
Chart Documentation: {documents}
"""
        return self.llm.complete_text(
            "You are a certified medical coding specialist.", prompt
        )

    def flag_medical_necessity_issues(self, documents: List[str], codes: List[Dict[str, Any]]) -> List[str]:
        prompt = f"""
Identify medical necessity issues that could affect reimbursement: insufficient documentation,
missing supporting findings, missing frequency/duration, inadequate physician orders,
non-covered or duplicate services.

Chart: {documents}
Codes: {codes}

Respond in JSON as {{"flags": ["..."]}}
"""
        raw = self.llm.complete_json(CODING_SYSTEM_PROMPT, prompt, provider="anthropic")
        return _str_list(raw.get("flags"))

    def generate_recommended_flags(self, discrepancies: List[Dict[str, Any]], necessity_flags: List[str]) -> List[str]:
        prompt = f"""
Recommend action flags from this list: {", ".join(RECOMMENDED_FLAGS)}.

Discrepancies: {discrepancies}
Medical Necessity Flags: {necessity_flags}

Respond in JSON as {{"flags": ["..."]}}
"""
        raw = self.llm.complete_json(CODING_SYSTEM_PROMPT, prompt)
        return [f for f in _str_list(raw.get("flags")) if f in RECOMMENDED_FLAGS]

    def validate_compliance(self, documents: List[str], codes: List[Dict[str, Any]], justification: str) -> Dict[str, Any]:
        prompt = f"""
Validate compliance: CMS guidelines, coding standards (ICD-10, CPT), medical necessity,
documentation adequacy, billing accuracy.

Codes: {codes}
Documentation: {documents}
Justification: {justification}

Respond in JSON as {{"cms_guidelines": bool, "coding_standards": bool, "medical_necessity": bool,
"documentation_adequacy": bool, "billing_accuracy": bool, "issues": [], "recommendations": []}}
"""
        return self.llm.complete_json(CODING_SYSTEM_PROMPT, prompt, provider="anthropic")


# Singleton instance
_chart_review_engine = None


def get_chart_review_engine() -> ChartReviewEngine:
    global _chart_review_engine
    if _chart_review_engine is None:
        _chart_review_engine = ChartReviewEngine()
    return _chart_review_engine
