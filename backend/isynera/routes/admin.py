"""
Administrator Routes (administrator / admin roles only).

Endpoints:
- GET  /api/admin/users - List users (?pending=true for approval queue)
- POST /api/admin/users/<id>/approve
- POST /api/admin/users/<id>/activate
- POST /api/admin/users/<id>/deactivate
- PUT  /api/admin/users/<id>/role
- POST /api/admin/users/<id>/reset-password
- GET  /api/admin/audit-logs
"""

from flask import Blueprint, request, jsonify

from isynera.api.common import require_auth, current_user, json_body
from isynera.models import ADMIN_ROLES
from isynera.services.auth_service import get_auth_service
from isynera.services.audit_service import AuditService

bp = Blueprint("admin", __name__, url_prefix="/api/admin")

admin_only = require_auth(ADMIN_ROLES)


def _result(user, error):
    if error:
        status = 404 if error == "User not found" else 400
        return jsonify({"error": error}), status
    return jsonify({"ok": True, "user": user})


@bp.route("/users", methods=["GET"])
@admin_only
def list_users():
    pending = request.args.get("pending", "").lower() == "true"
    return jsonify({"ok": True, "users": get_auth_service().list_users(pending_only=pending)})


@bp.route("/users/<int:user_id>/approve", methods=["POST"])
@admin_only
def approve_user(user_id):
    return _result(*get_auth_service().approve_user(user_id, current_user()["id"]))


@bp.route("/users/<int:user_id>/activate", methods=["POST"])
@admin_only
def activate_user(user_id):
    return _result(*get_auth_service().set_user_active(user_id, current_user()["id"], True))


@bp.route("/users/<int:user_id>/deactivate", methods=["POST"])
@admin_only
def deactivate_user(user_id):
    return _result(*get_auth_service().set_user_active(user_id, current_user()["id"], False))


@bp.route("/users/<int:user_id>/role", methods=["PUT"])
@admin_only
def update_role(user_id):
    role = (json_body().get("role") or "").strip()
    if not role:
        return jsonify({"error": "Role is required"}), 400
    return _result(*get_auth_service().update_user_role(user_id, current_user()["id"], role))


@bp.route("/users/<int:user_id>/reset-password", methods=["POST"])
@admin_only
def reset_password(user_id):
    temporary, error = get_auth_service().admin_reset_password(user_id, current_user()["id"])
    if error:
        status = 404 if error == "User not found" else 400
        return jsonify({"error": error}), status
    return jsonify({"ok": True, "temporary_password": temporary, "require_password_change": True})


@bp.route("/audit-logs", methods=["GET"])
@admin_only
def audit_logs():
    user_id = request.args.get("user_id", type=int)
    limit = min(request.args.get("limit", default=100, type=int), 1000)
    logs = AuditService().get_audit_logs(
        user_id=user_id,
        action=request.args.get("action"),
        resource=request.args.get("resource"),
        limit=limit,
    )
    return jsonify({"ok": True, "logs": logs})
