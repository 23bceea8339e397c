"""
Documents API Blueprint

- POST /api/documents/upload - Multipart upload (field "file"; optional
  document_type, patient_id, referral_id form fields)
- POST /api/documents/<id>/process - Extract text and referral fields
- GET  /api/documents/<id> - Document detail
"""

from flask import Blueprint, request, jsonify

from isynera.api.common import require_auth, current_user
from isynera.errors import ValidationError
from isynera.services.document_service import DocumentService

documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


@documents_bp.route("/upload", methods=["POST"])
@require_auth()
def upload_document():
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise ValidationError("No file provided")

    document = DocumentService().upload(
        upload,
        user_id=current_user()["id"],
        document_type=request.form.get("document_type", "referral"),
        patient_id=request.form.get("patient_id", type=int),
        referral_id=request.form.get("referral_id", type=int),
    )
    return jsonify({"ok": True, "document": document}), 201


@documents_bp.route("/<int:document_id>/process", methods=["POST"])
@require_auth()
def process_document(document_id):
    document = DocumentService().process(document_id)
    return jsonify({"ok": document["status"] == "processed", "document": document})


@documents_bp.route("/<int:document_id>", methods=["GET"])
@require_auth()
def get_document(document_id):
    return jsonify({"ok": True, "document": DocumentService().get_document(document_id)})
