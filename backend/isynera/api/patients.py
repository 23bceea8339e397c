"""
Patients API Blueprint

- GET  /api/patients - List patients (?search=term)
- POST /api/patients - Create patient
- GET  /api/patients/<id> - Patient detail (PHI access is audited)
- PUT  /api/patients/<id> - Update patient
- GET  /api/patients/<id>/medications - Medication list (?active=true)
- POST /api/patients/<id>/medications - Add medication
"""

from flask import Blueprint, request, jsonify

from isynera.api.common import require_auth, current_user, json_body
from isynera.services.patient_service import PatientService

patients_bp = Blueprint("patients", __name__, url_prefix="/api/patients")


@patients_bp.route("", methods=["GET"])
@require_auth()
def list_patients():
    term = (request.args.get("search") or "").strip()
    service = PatientService()
    patients = service.search_patients(term) if term else service.list_patients()
    return jsonify({"ok": True, "patients": patients, "count": len(patients)})


@patients_bp.route("", methods=["POST"])
@require_auth()
def create_patient():
    patient = PatientService().create_patient(json_body(), user_id=current_user()["id"])
    return jsonify({"ok": True, "patient": patient}), 201


@patients_bp.route("/<int:patient_id>", methods=["GET"])
@require_auth()
def get_patient(patient_id):
    patient = PatientService().get_patient(patient_id, user_id=current_user()["id"])
    return jsonify({"ok": True, "patient": patient})


@patients_bp.route("/<int:patient_id>", methods=["PUT"])
@require_auth()
def update_patient(patient_id):
    patient = PatientService().update_patient(patient_id, json_body(), user_id=current_user()["id"])
    return jsonify({"ok": True, "patient": patient})


@patients_bp.route("/<int:patient_id>/medications", methods=["GET"])
@require_auth()
def list_medications(patient_id):
    active_only = request.args.get("active", "").lower() == "true"
    medications = PatientService().list_medications(patient_id, active_only=active_only)
    return jsonify({"ok": True, "medications": medications})


@patients_bp.route("/<int:patient_id>/medications", methods=["POST"])
@require_auth(("doctor", "nurse"))
def add_medication(patient_id):
    medication = PatientService().add_medication(patient_id, json_body(), user_id=current_user()["id"])
    return jsonify({"ok": True, "medication": medication}), 201
