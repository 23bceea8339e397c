"""
Ambient scribe and SOAP note API Blueprints

Transcription (/api/ai/transcription):
- POST /sessions - Start a scribe session
- POST /sessions/<sid>/transcript - Process a browser transcript
- POST /sessions/<sid>/audio - Upload recorded audio (multipart, field "audio")
- GET  /sessions/<sid> - Session state
- POST /sessions/<sid>/email - Email the summary and SOAP notes

Doctor SOAP notes (/api/doctor/soap-notes):
- GET  ?patient_id= - List notes
- POST - Create note from four SOAP sections
- PUT  /<id> - Edit an unsigned note
- POST /<id>/sign - Sign a note
"""

from flask import Blueprint, request, jsonify

from isynera.api.common import require_auth, current_user, json_body, require_fields
from isynera.errors import ValidationError
from isynera.services.projection import get_projection_service
from isynera.services.transcription_service import get_transcription_service

CLINICIAN_ROLES = ("doctor", "nurse")

transcription_bp = Blueprint("transcription", __name__, url_prefix="/api/ai/transcription")
soap_notes_bp = Blueprint("soap_notes", __name__, url_prefix="/api/doctor/soap-notes")


def _project(session: dict) -> dict:
    get_projection_service().update_transcription_session(session)
    return session


# =============================================================================
# Scribe sessions
# =============================================================================

@transcription_bp.route("/sessions", methods=["POST"])
@require_auth(CLINICIAN_ROLES)
def start_session():
    data = json_body()
    session = get_transcription_service().start_session(
        user_id=current_user()["id"],
        patient_id=data.get("patient_id"),
    )
    return jsonify({"ok": True, "session": _project(session)}), 201


@transcription_bp.route("/sessions/<session_id>/transcript", methods=["POST"])
@require_auth(CLINICIAN_ROLES)
def process_transcript(session_id):
    data = json_body()
    session = get_transcription_service().process_transcript(
        session_id,
        data.get("transcript", ""),
        duration=data.get("duration"),
    )
    return jsonify({"ok": True, "session": _project(session)})


@transcription_bp.route("/sessions/<session_id>/audio", methods=["POST"])
@require_auth(CLINICIAN_ROLES)
def upload_audio(session_id):
    audio = request.files.get("audio")
    if audio is None or not audio.filename:
        raise ValidationError("No audio file provided")

    session = get_transcription_service().transcribe_audio(
        session_id, audio.read(), filename=audio.filename
    )
    return jsonify({"ok": True, "session": _project(session)})


@transcription_bp.route("/sessions/<session_id>", methods=["GET"])
@require_auth(CLINICIAN_ROLES)
def get_session(session_id):
    return jsonify({"ok": True, "session": get_transcription_service().get_session(session_id)})


@transcription_bp.route("/sessions/<session_id>/email", methods=["POST"])
@require_auth(CLINICIAN_ROLES)
def email_summary(session_id):
    data = json_body()
    result = get_transcription_service().email_summary(session_id, data.get("to"), data.get("subject"))
    if not result.get("success"):
        return jsonify({"ok": False, "error": result.get("error", "Email delivery failed")}), 502
    return jsonify({"ok": True, "message_id": result.get("message_id")})


# =============================================================================
# SOAP notes
# =============================================================================

@soap_notes_bp.route("", methods=["GET"])
@require_auth(CLINICIAN_ROLES)
def list_soap_notes():
    notes = get_transcription_service().list_soap_notes(patient_id=request.args.get("patient_id", type=int))
    return jsonify({"ok": True, "notes": notes})


@soap_notes_bp.route("", methods=["POST"])
@require_auth(("doctor",))
def create_soap_note():
    data = json_body()
    require_fields(data, "patient_id")
    note = get_transcription_service().create_soap_note(current_user()["id"], data["patient_id"], data)
    return jsonify({"ok": True, "note": note}), 201


@soap_notes_bp.route("/<int:note_id>", methods=["PUT"])
@require_auth(("doctor",))
def update_soap_note(note_id):
    note = get_transcription_service().update_soap_note(note_id, json_body())
    return jsonify({"ok": True, "note": note})


@soap_notes_bp.route("/<int:note_id>/sign", methods=["POST"])
@require_auth(("doctor",))
def sign_soap_note(note_id):
    note = get_transcription_service().sign_soap_note(note_id, current_user()["id"])
    return jsonify({"ok": True, "note": note})
