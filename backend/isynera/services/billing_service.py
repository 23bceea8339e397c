"""
BillingService: claims, denials and appeals.

Amounts are integer cents. Denials carry an appeal deadline of denial date
plus 60 days; appeals are refused once the deadline has passed.
"""

import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from isynera.db.postgres import get_db_session
from isynera.errors import AIServiceError, NotFoundError, ValidationError
from isynera.models import Patient, Payer, Claim, Denial, Appeal
from isynera.services.llm import LLMClient, get_llm_client
from isynera.services.prescription_service import patient_age
from isynera.services.referral_service import parse_datetime

logger = logging.getLogger("isynera.billing")

APPEAL_WINDOW_DAYS = 60
CLAIM_TYPES = ("cms1500", "ub04")
CLAIM_STATUSES = ("draft", "submitted", "paid", "denied", "appealed")
DENIAL_CATEGORIES = ("eligibility", "coding", "authorization", "timely_filing", "other")
APPEAL_TYPES = ("reconsideration", "redetermination", "external_review")
DEFAULT_TIMELY_FILING_DAYS = 365

NPI_RE = re.compile(r"^\d{10}$")
ICD10_RE = re.compile(r"^[A-TV-Z][0-9][0-9A-Z](\.[0-9A-Z]{1,4})?$")
CPT_RE = re.compile(r"^(\d{4}[0-9FTU]|[A-V]\d{4})$")

BILLING_SYSTEM_PROMPT = (
    "You are a home health billing specialist familiar with CMS regulations and payer "
    "policies. Respond only with a JSON object."
)
APPEAL_SYSTEM_PROMPT = (
    "You are a healthcare billing appeal specialist. Write formal, professional appeal "
    "letters that cite CMS regulations and justify medical necessity."
)


def generate_claim_id(now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    return f"CLM-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


def _cents(value: Any, field: str) -> int:
    # int() would accept True and truncate 12.5
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"{field} must be an integer amount in cents")
    try:
        cents = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer amount in cents")
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    return cents


class BillingService:

    def __init__(self, llm: Optional[LLMClient] = None):
        self.llm = llm or get_llm_client()

    # -------------------------------------------------------------------------
    # Claims
    # -------------------------------------------------------------------------

    def create_claim(self, data: Dict[str, Any], provider_id: Optional[int] = None) -> Dict[str, Any]:
        for field in ("patient_id", "service_date", "total_amount"):
            if data.get(field) in (None, ""):
                raise ValidationError(f"{field} is required")
        claim_type = data.get("claim_type", "cms1500")
        if claim_type not in CLAIM_TYPES:
            raise ValidationError(f"Invalid claim type: {claim_type}")

        with get_db_session() as session:
            if not session.get(Patient, data["patient_id"]):
                raise NotFoundError(f"Patient not found: {data['patient_id']}")

            claim = Claim(
                claim_id=generate_claim_id(),
                patient_id=data["patient_id"],
                provider_id=provider_id,
                payer_id=data.get("payer_id"),
                claim_type=claim_type,
                status="draft",
                service_date=parse_datetime(data["service_date"], "service_date"),
                total_amount=_cents(data["total_amount"], "total_amount"),
                claim_data=data.get("claim_data"),
            )
            session.add(claim)
            session.commit()
            result = claim.to_dict()

        logger.info("Created claim %s for patient %s", result["claim_id"], result["patient_id"])
        return result

    def list_claims(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        if status and status not in CLAIM_STATUSES:
            raise ValidationError(f"Invalid claim status: {status}")
        with get_db_session() as session:
            query = session.query(Claim)
            if status:
                query = query.filter(Claim.status == status)
            return [c.to_dict() for c in query.order_by(Claim.created_at.desc(), Claim.id.desc()).all()]

    def submit_claim(self, claim_id: int) -> Dict[str, Any]:
        with get_db_session() as session:
            claim = session.get(Claim, claim_id)
            if not claim:
                raise NotFoundError(f"Claim not found: {claim_id}")
            if claim.status != "draft":
                raise ValidationError(f"Only draft claims can be submitted (status: {claim.status})")
            claim.status = "submitted"
            claim.submission_date = datetime.utcnow()
            session.commit()
            return claim.to_dict()

    # -------------------------------------------------------------------------
    # Denials and appeals
    # -------------------------------------------------------------------------

    def record_denial(
        self,
        claim_id: int,
        reason_code: str,
        description: Optional[str],
        amount: Any,
        category: str = "other",
        is_appealable: bool = True,
        denial_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        if not reason_code:
            raise ValidationError("reason_code is required")
        if category not in DENIAL_CATEGORIES:
            raise ValidationError(f"Invalid denial category: {category}")
        cents = _cents(amount, "amount")
        denial_date = denial_date or datetime.utcnow()

        with get_db_session() as session:
            claim = session.get(Claim, claim_id)
            if not claim:
                raise NotFoundError(f"Claim not found: {claim_id}")
            if cents > claim.total_amount:
                raise ValidationError("Denied amount exceeds claim total")

            denial = Denial(
                claim_id=claim.id,
                denial_date=denial_date,
                denial_reason=reason_code,
                denial_description=description,
                denial_amount=cents,
                category=category,
                is_appealable=is_appealable,
                appeal_deadline=denial_date + timedelta(days=APPEAL_WINDOW_DAYS),
                status="pending",
            )
            claim.status = "denied"
            claim.denied_amount = cents
            session.add(denial)
            session.commit()
            return denial.to_dict()

    def file_appeal(
        self,
        denial_id: int,
        appeal_type: str,
        letter: Optional[str] = None,
        supporting_docs: Optional[List[str]] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        if appeal_type not in APPEAL_TYPES:
            raise ValidationError(f"Invalid appeal type: {appeal_type}")
        now = now or datetime.utcnow()

        with get_db_session() as session:
            denial = session.get(Denial, denial_id)
            if not denial:
                raise NotFoundError(f"Denial not found: {denial_id}")
            if not denial.is_appealable:
                raise ValidationError("This denial is not appealable")
            if denial.status == "appealed":
                raise ValidationError("An appeal has already been filed for this denial")
            if denial.appeal_deadline and now > denial.appeal_deadline:
                raise ValidationError("Appeal deadline has passed")

            appeal = Appeal(
                denial_id=denial.id,
                appeal_date=now,
                appeal_type=appeal_type,
                appeal_letter=letter,
                supporting_docs=supporting_docs or [],
                status="submitted",
            )
            denial.status = "appealed"
            claim = session.get(Claim, denial.claim_id)
            if claim is not None:
                claim.status = "appealed"
            session.add(appeal)
            session.commit()
            return appeal.to_dict()

    def list_denials(self, claim_id: int) -> List[Dict[str, Any]]:
        with get_db_session() as session:
            rows = session.query(Denial).filter(Denial.claim_id == claim_id).order_by(Denial.id).all()
            return [d.to_dict() for d in rows]

    # -------------------------------------------------------------------------
    # Claim scrubbing and AI assistance
    # -------------------------------------------------------------------------

    def apply_billing_rules(self, claim_id: int, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Evaluate the coding checks and the payer's billing_rules against a claim.

        Payer rules are a JSON object with optional keys timely_filing_days,
        requires_authorization and max_amount (cents). Returns one
        {"rule", "passed", "message"} entry per rule evaluated.
        """
        now = now or datetime.utcnow()
        with get_db_session() as session:
            claim = session.get(Claim, claim_id)
            if not claim:
                raise NotFoundError(f"Claim not found: {claim_id}")
            payer = session.get(Payer, claim.payer_id) if claim.payer_id else None
            payer_rules = dict(payer.billing_rules or {}) if payer else {}
            data = dict(claim.claim_data or {})
            service_date = claim.service_date
            total_amount = claim.total_amount

        line_items = [item for item in data.get("line_items") or [] if isinstance(item, dict)]
        diagnosis_codes = [str(i.get("diagnosis_code") or "").upper() for i in line_items]
        service_codes = [str(i.get("service_code") or "").upper() for i in line_items]
        filing_days = int(payer_rules.get("timely_filing_days") or DEFAULT_TIMELY_FILING_DAYS)

        results = [
            _rule("npi", NPI_RE.match(str(data.get("npi") or "")) is not None,
                  "Rendering provider NPI must be 10 digits"),
            _rule("line_items", bool(line_items), "Claim has no line items"),
            _rule("icd10", all(ICD10_RE.match(c) for c in diagnosis_codes),
                  "Invalid ICD-10 diagnosis codes"),
            _rule("cpt", all(CPT_RE.match(c) for c in service_codes),
                  "Invalid CPT/HCPCS procedure codes"),
            _rule("timely_filing", now - service_date <= timedelta(days=filing_days),
                  f"Service date is outside the {filing_days}-day timely filing window"),
        ]
        if payer_rules.get("requires_authorization"):
            results.append(_rule("authorization", bool(data.get("authorization_number")),
                                 "Payer requires a prior authorization number"))
        if payer_rules.get("max_amount") is not None:
            limit = _cents(payer_rules["max_amount"], "max_amount")
            results.append(_rule("max_amount", total_amount <= limit,
                                 f"Claim total exceeds the payer limit of {limit} cents"))
        return results

    def validate_claim(self, claim_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Rule scrub plus an AI denial-risk review. The scrub stands alone when the AI is unavailable."""
        rules = self.apply_billing_rules(claim_id, now=now)
        errors = [r["message"] for r in rules if not r["passed"]]

        with get_db_session() as session:
            claim = session.get(Claim, claim_id)
            patient = session.get(Patient, claim.patient_id)
            payer = session.get(Payer, claim.payer_id) if claim.payer_id else None
            line_items = [i for i in (claim.claim_data or {}).get("line_items") or [] if isinstance(i, dict)]
            summary = {
                "age": patient_age(patient.date_of_birth) if patient else None,
                "payer_type": payer.payer_type if payer else "unknown",
                "service_codes": ", ".join(str(i.get("service_code") or "") for i in line_items) or "none",
                "diagnosis_codes": ", ".join(str(i.get("diagnosis_code") or "") for i in line_items) or "none",
                "amount": f"{claim.total_amount / 100:.2f}",
            }

        prompt = f"""
Analyze this home health claim for denial risk.

Patient age: {summary["age"]}
Payer type: {summary["payer_type"]}
Service codes: {summary["service_codes"]}
Diagnosis codes: {summary["diagnosis_codes"]}
Claim amount: ${summary["amount"]}
Scrub errors: {"; ".join(errors) or "none"}

Respond in JSON:
{{"riskScore": 0-100, "recommendations": [], "flags": []}}
"""
        try:
            raw = self.llm.complete_json(BILLING_SYSTEM_PROMPT, prompt)
            risk_score = _percent(raw.get("riskScore"))
            recommendations = list(raw.get("recommendations") or [])
            flags = list(raw.get("flags") or [])
        except AIServiceError as e:
            logger.warning("AI claim review unavailable for claim %s: %s", claim_id, e)
            risk_score, recommendations, flags = None, [], ["ai_validation_failed"]

        return {
            "claim_id": claim_id,
            "is_valid": not errors,
            "errors": errors,
            "rules": rules,
            "risk_score": risk_score,
            "recommendations": recommendations,
            "flags": flags,
        }

    def analyze_denial(self, denial_id: int) -> Dict[str, Any]:
        """Root cause, remediation steps and appeal outlook for a denial."""
        with get_db_session() as session:
            denial = session.get(Denial, denial_id)
            if not denial:
                raise NotFoundError(f"Denial not found: {denial_id}")
            claim = session.get(Claim, denial.claim_id)
            payer = session.get(Payer, claim.payer_id) if claim and claim.payer_id else None
            result = denial.to_dict()
            payer_type = payer.payer_type if payer else "unknown"

        prompt = f"""
Analyze this claim denial and give remediation guidance.

Denial reason code: {result["denial_reason"]}
Description: {result["denial_description"] or "none"}
Denied amount: ${result["denial_amount"] / 100:.2f}
Category on file: {result["category"]}
Payer type: {payer_type}
Appeal deadline: {result["appeal_deadline"]}

Respond in JSON:
{{
  "category": "{"|".join(DENIAL_CATEGORIES)}",
  "rootCause": "", "remediationSteps": [], "appealable": true,
  "successProbability": 0-100, "estimatedRecovery": amount_in_cents
}}
"""
        raw = self.llm.complete_json(BILLING_SYSTEM_PROMPT, prompt)
        category = raw.get("category") if raw.get("category") in DENIAL_CATEGORIES else result["category"]
        try:
            recovery = min(_cents(raw.get("estimatedRecovery", result["denial_amount"]), "estimatedRecovery"),
                           result["denial_amount"])
        except ValidationError:
            recovery = result["denial_amount"]

        logger.info("Analyzed denial %s (%s)", denial_id, result["denial_reason"])
        return {
            "denial_id": denial_id,
            "category": category,
            "root_cause": raw.get("rootCause") or "Unknown denial reason",
            "remediation_steps": list(raw.get("remediationSteps") or []),
            # A denial recorded as not appealable stays that way
            "appealable": bool(result["is_appealable"]) and raw.get("appealable") is not False,
            "appeal_deadline": result["appeal_deadline"],
            "success_probability": _percent(raw.get("successProbability")),
            "estimated_recovery": recovery,
        }

    def generate_appeal_letter(
        self,
        denial_id: int,
        appeal_type: str = "reconsideration",
        supporting_evidence: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Draft an appeal letter; the result can be passed to file_appeal as the letter."""
        if appeal_type not in APPEAL_TYPES:
            raise ValidationError(f"Invalid appeal type: {appeal_type}")
        with get_db_session() as session:
            denial = session.get(Denial, denial_id)
            if not denial:
                raise NotFoundError(f"Denial not found: {denial_id}")
            claim = session.get(Claim, denial.claim_id)
            patient = session.get(Patient, claim.patient_id)
            payer = session.get(Payer, claim.payer_id) if claim.payer_id else None
            facts = {
                "claim": claim.claim_id,
                "patient": patient.patient_name if patient else "Unknown",
                "service_date": f"{claim.service_date:%Y-%m-%d}",
                "reason": f"{denial.denial_reason} - {denial.denial_description or ''}".rstrip(" -"),
                "amount": f"{denial.denial_amount / 100:.2f}",
                "payer": f"{payer.payer_name} ({payer.payer_type})" if payer else "Unknown payer",
            }

        evidence = "\n".join(f"- {item}" for item in supporting_evidence or []) or "- Clinical documentation on file"
        prompt = f"""
Write a {appeal_type} appeal letter for this denied home health claim.

Claim ID: {facts["claim"]}
Patient: {facts["patient"]}
Service date: {facts["service_date"]}
Denial: {facts["reason"]}
Denied amount: ${facts["amount"]}
Payer: {facts["payer"]}

Supporting evidence:
{evidence}
"""
        letter = self.llm.complete_text(APPEAL_SYSTEM_PROMPT, prompt).strip()
        if not letter:
            raise AIServiceError("AI service returned an empty appeal letter")
        return {"denial_id": denial_id, "appeal_type": appeal_type, "letter": letter}


def _rule(name: str, passed: bool, message: str) -> Dict[str, Any]:
    return {"rule": name, "passed": bool(passed), "message": None if passed else message}


def _percent(value: Any) -> Optional[int]:
    try:
        return max(0, min(100, int(value)))
    except (TypeError, ValueError):
        return None
