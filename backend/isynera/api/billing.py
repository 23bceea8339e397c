"""
Billing API Blueprint

- GET  /api/billing/claims - List claims (?status=)
- POST /api/billing/claims - Create draft claim
- POST /api/billing/claims/<id>/submit - Submit a draft claim
- GET  /api/billing/claims/<id>/validation - Rule scrub plus AI denial-risk review
- GET  /api/billing/claims/<id>/denials - Denials for a claim
- POST /api/billing/claims/<id>/denials - Record a payer denial
- POST /api/billing/denials/<id>/analysis - AI denial analysis
- POST /api/billing/denials/<id>/appeal-letter - Draft an appeal letter
- POST /api/billing/denials/<id>/appeals - File an appeal
"""

from flask import Blueprint, request, jsonify

from isynera.api.common import require_auth, current_user, json_body, require_fields
from isynera.services.billing_service import BillingService

BILLING_ROLES = ("billing",)

billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")


@billing_bp.route("/claims", methods=["GET"])
@require_auth(BILLING_ROLES)
def list_claims():
    return jsonify({"ok": True, "claims": BillingService().list_claims(status=request.args.get("status"))})


@billing_bp.route("/claims", methods=["POST"])
@require_auth(BILLING_ROLES)
def create_claim():
    claim = BillingService().create_claim(json_body(), provider_id=current_user()["id"])
    return jsonify({"ok": True, "claim": claim}), 201


@billing_bp.route("/claims/<int:claim_id>/submit", methods=["POST"])
@require_auth(BILLING_ROLES)
def submit_claim(claim_id):
    return jsonify({"ok": True, "claim": BillingService().submit_claim(claim_id)})


@billing_bp.route("/claims/<int:claim_id>/validation", methods=["GET"])
@require_auth(BILLING_ROLES)
def validate_claim(claim_id):
    return jsonify({"ok": True, "validation": BillingService().validate_claim(claim_id)})


@billing_bp.route("/claims/<int:claim_id>/denials", methods=["GET"])
@require_auth(BILLING_ROLES)
def list_denials(claim_id):
    return jsonify({"ok": True, "denials": BillingService().list_denials(claim_id)})


@billing_bp.route("/claims/<int:claim_id>/denials", methods=["POST"])
@require_auth(BILLING_ROLES)
def record_denial(claim_id):
    data = json_body()
    require_fields(data, "reason_code", "amount")
    denial = BillingService().record_denial(
        claim_id,
        reason_code=data["reason_code"],
        description=data.get("description"),
        amount=data["amount"],
        category=data.get("category", "other"),
        is_appealable=bool(data.get("is_appealable", True)),
    )
    return jsonify({"ok": True, "denial": denial}), 201


@billing_bp.route("/denials/<int:denial_id>/appeals", methods=["POST"])
@require_auth(BILLING_ROLES)
def file_appeal(denial_id):
    data = json_body()
    require_fields(data, "appeal_type")
    appeal = BillingService().file_appeal(
        denial_id,
        data["appeal_type"],
        letter=data.get("appeal_letter"),
        supporting_docs=data.get("supporting_docs"),
    )
    return jsonify({"ok": True, "appeal": appeal}), 201


@billing_bp.route("/denials/<int:denial_id>/analysis", methods=["POST"])
@require_auth(BILLING_ROLES)
def analyze_denial(denial_id):
    return jsonify({"ok": True, "analysis": BillingService().analyze_denial(denial_id)})


@billing_bp.route("/denials/<int:denial_id>/appeal-letter", methods=["POST"])
@require_auth(BILLING_ROLES)
def appeal_letter(denial_id):
    data = json_body()
    letter = BillingService().generate_appeal_letter(
        denial_id,
        appeal_type=data.get("appeal_type", "reconsideration"),
        supporting_evidence=data.get("supporting_evidence"),
    )
    return jsonify({"ok": True, **letter})
