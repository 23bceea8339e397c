"""
Prescriptions API Blueprint

- GET  /api/prescriptions - List (?patient_id=&status=)
- POST /api/prescriptions - Create prescription (interaction check runs first)
- GET  /api/prescriptions/<id> - Detail with audit trail
- POST /api/prescriptions/<id>/send - eFax to pharmacy
- GET  /api/prescriptions/refills - Refill queue (?status=)
- POST /api/prescriptions/refills - Create refill request
- POST /api/prescriptions/refills/<id>/approve
- POST /api/prescriptions/refills/<id>/deny
- POST /api/prescriptions/dosing-recommendation - AI dosing guidance (doctor)
- GET  /api/prescriptions/pharmacies - Pharmacy directory (?zip_code=&city=&state=&chain=&q=)
- POST /api/prescriptions/pharmacies - Add pharmacy
"""

from flask import Blueprint, request, jsonify

from isynera.api.common import require_auth, current_user, json_body, require_fields, audit_context
from isynera.services.prescription_service import PrescriptionService

PRESCRIBER_ROLES = ("doctor",)

prescriptions_bp = Blueprint("prescriptions", __name__, url_prefix="/api/prescriptions")


@prescriptions_bp.route("", methods=["GET"])
@require_auth()
def list_prescriptions():
    prescriptions = PrescriptionService().list_prescriptions(
        patient_id=request.args.get("patient_id", type=int),
        status=request.args.get("status"),
    )
    return jsonify({"ok": True, "prescriptions": prescriptions})


@prescriptions_bp.route("", methods=["POST"])
@require_auth(PRESCRIBER_ROLES)
def create_prescription():
    prescription = PrescriptionService().create_prescription(
        json_body(), prescriber_id=current_user()["id"], context=audit_context()
    )
    return jsonify({"ok": True, "prescription": prescription}), 201


@prescriptions_bp.route("/<int:prescription_id>", methods=["GET"])
@require_auth()
def get_prescription(prescription_id):
    service = PrescriptionService()
    return jsonify({
        "ok": True,
        "prescription": service.get_prescription(prescription_id),
        "audit_logs": service.get_audit_logs(prescription_id),
    })


@prescriptions_bp.route("/<int:prescription_id>/send", methods=["POST"])
@require_auth(PRESCRIBER_ROLES)
def send_prescription(prescription_id):
    result = PrescriptionService().send_to_pharmacy(prescription_id, current_user()["id"], context=audit_context())
    return jsonify({"ok": result["fax"]["success"], **result})


@prescriptions_bp.route("/dosing-recommendation", methods=["POST"])
@require_auth(PRESCRIBER_ROLES)
def dosing_recommendation():
    data = json_body()
    require_fields(data, "patient_id", "medication_name")
    recommendation = PrescriptionService().generate_dosing_recommendation(
        data["patient_id"], data["medication_name"], indication=data.get("indication")
    )
    return jsonify({"ok": True, "recommendation": recommendation})


# =============================================================================
# Refills
# =============================================================================

@prescriptions_bp.route("/refills", methods=["GET"])
@require_auth()
def list_refills():
    refills = PrescriptionService().list_refill_requests(status=request.args.get("status"))
    return jsonify({"ok": True, "refills": refills})


@prescriptions_bp.route("/refills", methods=["POST"])
@require_auth()
def create_refill():
    data = json_body()
    require_fields(data, "prescription_id")
    refill = PrescriptionService().create_refill_request(data["prescription_id"], data.get("pharmacy_id"))
    return jsonify({"ok": True, "refill": refill}), 201


@prescriptions_bp.route("/refills/<int:refill_id>/approve", methods=["POST"])
@require_auth(PRESCRIBER_ROLES)
def approve_refill(refill_id):
    data = json_body()
    result = PrescriptionService().approve_refill(
        refill_id,
        current_user()["id"],
        dosage_changes=data.get("dosage_changes"),
        doctor_notes=data.get("doctor_notes"),
        context=audit_context(),
    )
    return jsonify({"ok": True, **result})


@prescriptions_bp.route("/refills/<int:refill_id>/deny", methods=["POST"])
@require_auth(PRESCRIBER_ROLES)
def deny_refill(refill_id):
    refill = PrescriptionService().deny_refill(
        refill_id, current_user()["id"], json_body().get("reason", ""), context=audit_context()
    )
    return jsonify({"ok": True, "refill": refill})


# =============================================================================
# Pharmacies
# =============================================================================

@prescriptions_bp.route("/pharmacies", methods=["GET"])
@require_auth()
def list_pharmacies():
    pharmacies = PrescriptionService().list_pharmacies(
        zip_code=request.args.get("zip_code"),
        city=request.args.get("city"),
        state=request.args.get("state"),
        chain_type=request.args.get("chain"),
        search=request.args.get("q"),
    )
    return jsonify({"ok": True, "pharmacies": pharmacies})


@prescriptions_bp.route("/pharmacies", methods=["POST"])
@require_auth()
def create_pharmacy():
    return jsonify({"ok": True, "pharmacy": PrescriptionService().create_pharmacy(json_body())}), 201
