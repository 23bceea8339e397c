"""
Shared helpers for API blueprints: bearer-token guard, JSON body access,
audit context from the request.
"""

from functools import wraps
from typing import Iterable, Optional

from flask import request, jsonify, g

from isynera.models import ADMIN_ROLES
from isynera.services.auth_service import get_auth_service
from isynera.services.audit_service import AuditContext
from isynera.errors import ValidationError


def _get_current_user():
    """Get current user from Authorization header."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]  # Remove "Bearer " prefix
    return get_auth_service().validate_access_token(token)


def require_auth(roles: Optional[Iterable[str]] = None):
    """Route decorator.

    401 without a valid bearer token, 403 when the user's role is not in
    roles. Administrators pass every role check. The user dict is stored
    on flask.g.current_user.
    """
    allowed = set(roles or ())

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            user = _get_current_user()
            if user is None:
                return jsonify({"ok": False, "error": "Authentication required"}), 401
            if allowed and user["role"] not in allowed and user["role"] not in ADMIN_ROLES:
                return jsonify({"ok": False, "error": "Insufficient permissions"}), 403
            g.current_user = user
            return view(*args, **kwargs)
        return wrapped

    return decorator


def current_user() -> dict:
    return g.current_user


def audit_context() -> AuditContext:
    user = getattr(g, "current_user", None)
    return AuditContext(
        user_id=user["id"] if user else None,
        ip_address=request.headers.get("X-Forwarded-For", request.remote_addr),
        user_agent=request.headers.get("User-Agent"),
    )


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_fields(data: dict, *fields: str) -> None:
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
