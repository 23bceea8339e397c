"""
Referral intake API Blueprint

Referrals:
- GET  /api/referrals - List referrals (?status=pending|processing|complete|missing_info)
- POST /api/referrals - Create referral
- GET  /api/referrals/<id> - Referral detail
- PUT  /api/referrals/<id> - Update referral
- POST /api/referrals/<id>/analyze - Run the referral agent and record missing fields

Intake checks:
- POST /api/eligibility/verify - Verify insurance eligibility
- POST /api/homebound/assess - CMS homebound assessment (rule-based fallback)
"""

import logging

from flask import Blueprint, request, jsonify

from isynera.agents.clinical_agents import get_orchestrator
from isynera.api.common import require_auth, current_user, json_body, require_fields
from isynera.services.eligibility_service import EligibilityService
from isynera.services.patient_service import PatientService
from isynera.services.projection import get_projection_service
from isynera.services.referral_service import ReferralService

logger = logging.getLogger("isynera.api.referrals")

referrals_bp = Blueprint("referrals", __name__, url_prefix="/api/referrals")
intake_bp = Blueprint("intake", __name__, url_prefix="/api")


def _push_counters(service: ReferralService, source: str):
    projection = get_projection_service()
    if projection.enabled:
        projection.update_dashboard_counters(service.dashboard_counters(), source=source)


# =============================================================================
# Referrals
# =============================================================================

@referrals_bp.route("", methods=["GET"])
@require_auth()
def list_referrals():
    referrals = ReferralService().list_referrals(status=request.args.get("status"))
    return jsonify({"ok": True, "referrals": referrals, "count": len(referrals)})


@referrals_bp.route("", methods=["POST"])
@require_auth()
def create_referral():
    service = ReferralService()
    referral = service.create_referral(json_body(), user_id=current_user()["id"])
    _push_counters(service, source="referral_created")
    return jsonify({"ok": True, "referral": referral}), 201


@referrals_bp.route("/<int:referral_id>", methods=["GET"])
@require_auth()
def get_referral(referral_id):
    return jsonify({"ok": True, "referral": ReferralService().get_referral(referral_id)})


@referrals_bp.route("/<int:referral_id>", methods=["PUT"])
@require_auth()
def update_referral(referral_id):
    service = ReferralService()
    referral = service.update_referral(referral_id, json_body())
    _push_counters(service, source="referral_updated")
    return jsonify({"ok": True, "referral": referral})


@referrals_bp.route("/<int:referral_id>/analyze", methods=["POST"])
@require_auth()
def analyze_referral(referral_id):
    """
    Analyze a referral with the referral agent.

    The agent sees the extracted document data, any overrides from the
    request body and the linked patient record.
    """
    service = ReferralService()
    referral = service.get_referral(referral_id)

    referral_data = dict(referral.get("extracted_data") or {})
    referral_data.update(json_body())
    if referral.get("patient_id"):
        referral_data.setdefault("patient", PatientService().get_patient(referral["patient_id"]))
    if referral.get("referring_provider"):
        referral_data.setdefault("referring_provider", referral["referring_provider"])

    agent = get_orchestrator().get_agent("referral")
    analysis = agent.analyze_referral(referral_data)
    missing = agent.identify_missing_information(referral_data)

    updated = service.save_analysis(referral_id, analysis.to_dict(), missing)
    _push_counters(service, source="referral_analyzed")
    return jsonify({"ok": True, "referral": updated, "analysis": analysis.to_dict(), "missing_fields": missing})


# =============================================================================
# Eligibility / Homebound
# =============================================================================

@intake_bp.route("/eligibility/verify", methods=["POST"])
@require_auth()
def verify_eligibility():
    data = json_body()
    require_fields(data, "insurance_type")

    patient_id = data.get("patient_id")
    patient_info = data.get("patient_info") or {}
    if patient_id:
        patient_info = {**PatientService().get_patient(patient_id), **patient_info}

    result = EligibilityService().verify_eligibility(patient_info, data["insurance_type"])

    verification = None
    if patient_id:
        verification = ReferralService().record_eligibility(patient_id, data["insurance_type"].lower(), result)

    return jsonify({"ok": True, "eligibility": result, "verification": verification})


@intake_bp.route("/homebound/assess", methods=["POST"])
@require_auth()
def assess_homebound():
    data = json_body()
    require_fields(data, "patient_id")
    assessment_data = data.get("assessment_data") or {
        k: v for k, v in data.items() if k != "patient_id"
    }

    response = get_orchestrator().get_agent("homebound").assess_homebound_status(assessment_data)
    assessment = ReferralService().record_homebound_assessment(
        data["patient_id"], assessment_data, response.to_dict(), user_id=current_user()["id"]
    )
    logger.info(
        "Homebound assessment %s for patient %s: %s",
        assessment["id"], data["patient_id"], response.metadata.get("determination"),
    )
    return jsonify({"ok": True, "assessment": assessment, "analysis": response.to_dict()}), 201
