"""
Authentication Routes.

Endpoints:
- POST /api/auth/register - Create account (non-admin roles await approval)
- POST /api/auth/login - Login with email/password
- POST /api/auth/refresh - Refresh access token
- POST /api/auth/logout - Invalidate session
- POST /api/auth/forgot-password - Start a password reset
- POST /api/auth/reset-password - Complete a password reset
- GET /api/auth/me - Get current user profile
"""

import logging

from flask import Blueprint, request, jsonify

from isynera.api.common import _get_current_user, audit_context
from isynera.models import ADMIN_ROLES
from isynera.services.auth_service import get_auth_service
from isynera.services.email_service import get_email_service

logger = logging.getLogger("isynera.routes.auth")

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


# =============================================================================
# Registration
# =============================================================================

@bp.route("/register", methods=["POST"])
def register():
    """Register a new user."""
    data = request.get_json(silent=True) or {}
    username = (data.get("username") or "").strip()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    role = (data.get("role") or "staff").strip()

    if not username:
        return jsonify({"error": "Username is required"}), 400
    if not email:
        return jsonify({"error": "Email is required"}), 400
    if not password:
        return jsonify({"error": "Password is required"}), 400

    auth_service = get_auth_service()

    # Administrator accounts are created by an administrator, except the very first one
    if role in ADMIN_ROLES and auth_service.admin_exists():
        requester = _get_current_user()
        if not requester or requester["role"] not in ADMIN_ROLES:
            return jsonify({"error": "Insufficient permissions"}), 403

    user, error = auth_service.register_user(
        username=username,
        email=email,
        password=password,
        role=role,
        department=data.get("department"),
        license_number=data.get("license_number"),
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
    )
    if error:
        return jsonify({"error": error}), 400

    message = (
        "Registration successful"
        if user["is_approved"]
        else "Registration successful. Your account is pending administrator approval."
    )
    return jsonify({"ok": True, "message": message, "user": user}), 201


# =============================================================================
# Login / Refresh / Logout
# =============================================================================

@bp.route("/login", methods=["POST"])
def login():
    """Login with email/password."""
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email:
        return jsonify({"error": "Email is required"}), 400
    if not password:
        return jsonify({"error": "Password is required"}), 400

    auth_response, error = get_auth_service().authenticate(
        email=email,
        password=password,
        context=audit_context(),
        device_info=data.get("device_info"),
    )
    if error:
        return jsonify({"error": error}), 401

    return jsonify({"ok": True, **auth_response})


@bp.route("/refresh", methods=["POST"])
def refresh():
    """Refresh access token."""
    data = request.get_json(silent=True) or {}
    refresh_token = data.get("refresh_token")
    if not refresh_token:
        return jsonify({"error": "Refresh token is required"}), 400

    auth_response, error = get_auth_service().refresh_access_token(refresh_token)
    if error:
        return jsonify({"error": error}), 401

    return jsonify({"ok": True, **auth_response})


@bp.route("/logout", methods=["POST"])
def logout():
    """Invalidate the session behind a refresh token."""
    data = request.get_json(silent=True) or {}
    refresh_token = data.get("refresh_token")
    if not refresh_token:
        return jsonify({"error": "Refresh token is required"}), 400

    get_auth_service().logout(refresh_token)
    return jsonify({"ok": True, "message": "Logged out successfully"})


# =============================================================================
# Password reset
# =============================================================================

@bp.route("/forgot-password", methods=["POST"])
def forgot_password():
    """Start a password reset. The response never reveals whether the email exists."""
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    if not email:
        return jsonify({"error": "Email is required"}), 400

    token = get_auth_service().initiate_password_reset(email)
    if token:
        result = get_email_service().send_email(
            to=email,
            subject="iSynera password reset",
            text=f"Use this token to reset your password within one hour:\n\n{token}",
        )
        if not result.get("success"):
            logger.warning("Password reset email to %s not sent: %s", email, result.get("error"))

    return jsonify({
        "ok": True,
        "message": "If an account exists for that email, reset instructions have been sent.",
    })


@bp.route("/reset-password", methods=["POST"])
def reset_password():
    data = request.get_json(silent=True) or {}
    token = data.get("token")
    new_password = data.get("new_password") or data.get("password")
    if not token or not new_password:
        return jsonify({"error": "Token and new password are required"}), 400

    ok, error = get_auth_service().reset_password(token, new_password)
    if not ok:
        return jsonify({"error": error}), 400

    return jsonify({"ok": True, "message": "Password has been reset"})


# =============================================================================
# Profile
# =============================================================================

@bp.route("/me", methods=["GET"])
def me():
    """Get current user profile."""
    user = _get_current_user()
    if not user:
        return jsonify({"error": "Not authenticated"}), 401

    return jsonify({"ok": True, "user": user})
