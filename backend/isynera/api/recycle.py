"""
Recycle Area API Blueprint

- GET    /api/recycle - Items in the recycle area (?mine=true for own deletions)
- POST   /api/recycle - Move a row to the recycle area
- POST   /api/recycle/<id>/restore - Restore a row
- DELETE /api/recycle/<id> - Permanent delete (body: {"final_confirmation": true})
- POST   /api/recycle/bulk-restore - {"ids": [...]}
- POST   /api/recycle/bulk-delete - {"ids": [...], "final_confirmation": true}
"""

from flask import Blueprint, request, jsonify

from isynera.api.common import require_auth, current_user, json_body, require_fields, audit_context
from isynera.errors import ValidationError
from isynera.services.recycle_service import RecycleService

recycle_bp = Blueprint("recycle", __name__, url_prefix="/api/recycle")


def _ids(data: dict) -> list:
    ids = data.get("ids")
    if not isinstance(ids, list) or not ids:
        raise ValidationError("ids must be a non-empty list")
    return ids


@recycle_bp.route("", methods=["GET"])
@require_auth()
def list_items():
    mine = request.args.get("mine", "").lower() == "true"
    items = RecycleService().list_items(user_id=current_user()["id"] if mine else None)
    return jsonify({"ok": True, "items": items, "count": len(items)})


@recycle_bp.route("", methods=["POST"])
@require_auth()
def move_to_recycle():
    data = json_body()
    require_fields(data, "table", "item_id")
    item = RecycleService().move_to_recycle_area(
        table=data["table"],
        item_id=data["item_id"],
        item_type=data.get("item_type") or data["table"],
        item_title=data.get("item_title") or f"{data['table']} #{data['item_id']}",
        user_id=current_user()["id"],
        reason=data.get("reason"),
        context=audit_context(),
    )
    return jsonify({"ok": True, "item": item}), 201


@recycle_bp.route("/<int:recycle_id>/restore", methods=["POST"])
@require_auth()
def restore_item(recycle_id):
    restored = RecycleService().restore(recycle_id, current_user()["id"], context=audit_context())
    return jsonify({"ok": True, "restored": restored})


@recycle_bp.route("/<int:recycle_id>", methods=["DELETE"])
@require_auth()
def delete_item(recycle_id):
    result = RecycleService().permanently_delete(
        recycle_id,
        current_user()["id"],
        bool(json_body().get("final_confirmation")),
        context=audit_context(),
    )
    return jsonify({"ok": True, **result})


@recycle_bp.route("/bulk-restore", methods=["POST"])
@require_auth()
def bulk_restore():
    result = RecycleService().bulk_restore(_ids(json_body()), current_user()["id"], context=audit_context())
    return jsonify({"ok": True, **result})


@recycle_bp.route("/bulk-delete", methods=["POST"])
@require_auth()
def bulk_delete():
    data = json_body()
    result = RecycleService().bulk_permanent_delete(
        _ids(data),
        current_user()["id"],
        bool(data.get("final_confirmation")),
        context=audit_context(),
    )
    return jsonify({"ok": True, **result})
