"""
Authentication Service.

Handles:
- Password hashing (bcrypt)
- JWT access/refresh tokens and refresh sessions
- Registration with administrator approval
- Login auditing
- Administrator user management and password resets
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple, List, Dict, Any

import bcrypt
import jwt

from isynera.config import config
from isynera.db.postgres import get_db_session
from isynera.models import AppUser, UserSession, PasswordResetToken, ADMIN_ROLES, USER_ROLES
from isynera.services.audit_service import AuditService, AuditContext

logger = logging.getLogger("isynera.auth")

JWT_ALGORITHM = "HS256"
PASSWORD_RESET_EXPIRE_HOURS = 1
MIN_PASSWORD_LENGTH = 8


class AuthService:
    """Service for handling user authentication."""

    def __init__(self, audit: Optional[AuditService] = None):
        self.jwt_secret = config.JWT_SECRET
        self.jwt_algorithm = JWT_ALGORITHM
        self.audit = audit or AuditService()

    # =========================================================================
    # Password Hashing
    # =========================================================================

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt."""
        salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a password against its hash."""
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            # Malformed stored hash
            return False

    # =========================================================================
    # JWT Token Management
    # =========================================================================

    def create_access_token(self, user: AppUser) -> str:
        """Create a short-lived access token."""
        expire = datetime.utcnow() + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
        payload = {
            "sub": str(user.id),
            "username": user.username,
            "role": user.role,
            "exp": expire,
            "type": "access",
        }
        return jwt.encode(payload, self.jwt_secret, algorithm=self.jwt_algorithm)

    def create_refresh_token(self, user_id: int, session_id: int) -> str:
        """Create a long-lived refresh token."""
        expire = datetime.utcnow() + timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS)
        payload = {
            "sub": str(user_id),
            "session_id": str(session_id),
            "exp": expire,
            "type": "refresh",
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self.jwt_secret, algorithm=self.jwt_algorithm)

    def decode_token(self, token: str) -> Optional[dict]:
        """Decode and validate a JWT token."""
        try:
            return jwt.decode(token, self.jwt_secret, algorithms=[self.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

    def hash_refresh_token(self, refresh_token: str) -> str:
        """Hash refresh token for storage."""
        return hashlib.sha256(refresh_token.encode()).hexdigest()

    # =========================================================================
    # Registration
    # =========================================================================

    def register_user(
        self,
        username: str,
        email: str,
        password: str,
        role: str = "staff",
        department: Optional[str] = None,
        license_number: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> Tuple[Optional[dict], Optional[str]]:
        """Register a new user.

        Administrators are approved immediately; other roles must be
        approved before they can log in.

        Returns:
            Tuple of (user_dict, error_message). Error is None on success.
        """
        if role not in USER_ROLES:
            return None, f"Invalid role: {role}"
        if len(password) < MIN_PASSWORD_LENGTH:
            return None, f"Password must be at least {MIN_PASSWORD_LENGTH} characters"

        with get_db_session() as session:
            if session.query(AppUser).filter(AppUser.username == username).first():
                return None, "Username already exists"
            if session.query(AppUser).filter(AppUser.email == email).first():
                return None, "Email already registered"

            user = AppUser(
                username=username,
                email=email,
                password_hash=self.hash_password(password),
                role=role,
                department=department,
                license_number=license_number,
                first_name=first_name,
                last_name=last_name,
                is_active=True,
                is_approved=role in ADMIN_ROLES,
            )
            session.add(user)
            session.commit()
            user_dict = user.to_dict()

        logger.info("Registered user %s (role=%s, approved=%s)", username, role, user_dict["is_approved"])
        return user_dict, None

    # =========================================================================
    # Authentication
    # =========================================================================

    def authenticate(
        self,
        email: str,
        password: str,
        context: Optional[AuditContext] = None,
        device_info: Optional[dict] = None,
    ) -> Tuple[Optional[dict], Optional[str]]:
        """Authenticate user with email/password.

        Returns:
            Tuple of (auth_response, error_message)
        """
        context = context or AuditContext()

        with get_db_session() as session:
            user = session.query(AppUser).filter(AppUser.email == email).first()

            if not user:
                self.audit.log_security_event(
                    "login_attempt_failed", context, {"email": email, "reason": "User not found"}
                )
                return None, "Invalid email or password"

            if not self.verify_password(password, user.password_hash):
                self.audit.log_security_event(
                    "login_attempt_failed",
                    AuditContext(user.id, context.ip_address, context.user_agent),
                    {"email": email, "reason": "Invalid password"},
                )
                return None, "Invalid email or password"

            if not user.is_active:
                self.audit.log_security_event(
                    "login_attempt_failed",
                    AuditContext(user.id, context.ip_address, context.user_agent),
                    {"email": email, "reason": "Account inactive"},
                )
                return None, "Account is inactive"

            if not user.is_approved:
                self.audit.log_security_event(
                    "login_attempt_failed",
                    AuditContext(user.id, context.ip_address, context.user_agent),
                    {"email": email, "reason": "Account pending approval"},
                )
                return None, "Account pending administrator approval"

            user_session = UserSession(
                user_id=user.id,
                device_info=device_info,
                expires_at=datetime.utcnow() + timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS),
            )
            session.add(user_session)
            session.flush()

            access_token = self.create_access_token(user)
            refresh_token = self.create_refresh_token(user.id, user_session.id)
            user_session.refresh_token_hash = self.hash_refresh_token(refresh_token)
            user.last_login = datetime.utcnow()
            session.commit()

            user_dict = user.to_dict()

        success_context = AuditContext(user_dict["id"], context.ip_address, context.user_agent)
        self.audit.log_user_action(
            "login_successful", success_context, resource="auth",
            details={"role": user_dict["role"]},
        )
        self.audit.log_user_activity(user_dict["id"], "login", context=success_context)

        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_in": config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            "user": user_dict,
        }, None

    def refresh_access_token(self, refresh_token: str) -> Tuple[Optional[dict], Optional[str]]:
        """Refresh an access token using a refresh token.

        Returns:
            Tuple of (auth_response, error_message)
        """
        payload = self.decode_token(refresh_token)
        if not payload or payload.get("type") != "refresh":
            return None, "Invalid refresh token"

        session_id = payload.get("session_id")
        user_id = payload.get("sub")
        if not session_id or not user_id:
            return None, "Invalid refresh token"

        with get_db_session() as session:
            user_session = session.query(UserSession).filter(
                UserSession.id == int(session_id),
                UserSession.user_id == int(user_id),
                UserSession.revoked_at.is_(None),
            ).first()

            if not user_session or not user_session.is_valid:
                return None, "Session expired or revoked"

            if user_session.refresh_token_hash != self.hash_refresh_token(refresh_token):
                return None, "Invalid refresh token"

            user = session.query(AppUser).filter(
                AppUser.id == int(user_id),
                AppUser.is_active.is_(True),
            ).first()
            if not user:
                return None, "User not found"

            return {
                "access_token": self.create_access_token(user),
                "token_type": "bearer",
                "expires_in": config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            }, None

    def logout(self, refresh_token: str) -> bool:
        """Revoke the session behind a refresh token."""
        payload = self.decode_token(refresh_token)
        if not payload or payload.get("type") != "refresh":
            return False

        session_id = payload.get("session_id")
        if not session_id:
            return False

        with get_db_session() as session:
            user_session = session.query(UserSession).filter(
                UserSession.id == int(session_id)
            ).first()
            if not user_session:
                return False

            user_session.revoked_at = datetime.utcnow()
            user_id = user_session.user_id
            session.commit()

        self.audit.log_user_activity(user_id, "logout")
        return True

    # =========================================================================
    # User Context Validation
    # =========================================================================

    def validate_access_token(self, access_token: str) -> Optional[dict]:
        """Validate an access token and return the user dict.

        The user must still exist and be active and approved; a token
        issued before deactivation stops working immediately.
        """
        payload = self.decode_token(access_token)
        if not payload or payload.get("type") != "access":
            return None

        user_id = payload.get("sub")
        if not user_id:
            return None

        with get_db_session() as session:
            user = session.query(AppUser).filter(
                AppUser.id == int(user_id),
                AppUser.is_active.is_(True),
                AppUser.is_approved.is_(True),
            ).first()
            return user.to_dict() if user else None

    # =========================================================================
    # Administration
    # =========================================================================

    def list_users(self, pending_only: bool = False) -> List[Dict[str, Any]]:
        with get_db_session() as session:
            query = session.query(AppUser)
            if pending_only:
                query = query.filter(AppUser.is_approved.is_(False))
            return [u.to_dict() for u in query.order_by(AppUser.created_at.desc(), AppUser.id.desc()).all()]

    def admin_exists(self) -> bool:
        with get_db_session() as session:
            return session.query(AppUser.id).filter(AppUser.role.in_(ADMIN_ROLES)).first() is not None

    def _update_user(self, user_id: int, admin_id: int, action: str, details: dict, **changes):
        with get_db_session() as session:
            user = session.query(AppUser).filter(AppUser.id == user_id).first()
            if not user:
                return None, "User not found"
            for key, value in changes.items():
                setattr(user, key, value)
            session.commit()
            user_dict = user.to_dict()

        self.audit.log_admin_action(action, admin_id, user_id, details)
        return user_dict, None

    def approve_user(self, user_id: int, admin_id: int) -> Tuple[Optional[dict], Optional[str]]:
        return self._update_user(user_id, admin_id, "user_approved", {}, is_approved=True)

    def set_user_active(self, user_id: int, admin_id: int, active: bool) -> Tuple[Optional[dict], Optional[str]]:
        if user_id == admin_id and not active:
            return None, "Administrators cannot deactivate their own account"
        action = "user_activated" if active else "user_deactivated"
        return self._update_user(user_id, admin_id, action, {}, is_active=active)

    def update_user_role(self, user_id: int, admin_id: int, role: str) -> Tuple[Optional[dict], Optional[str]]:
        if role not in USER_ROLES:
            return None, f"Invalid role: {role}"
        return self._update_user(user_id, admin_id, "role_changed", {"new_role": role}, role=role)

    def admin_reset_password(self, user_id: int, admin_id: int) -> Tuple[Optional[str], Optional[str]]:
        """Set a temporary password that must be changed at next login.

        Returns:
            Tuple of (temporary_password, error_message)
        """
        temporary = secrets.token_urlsafe(9)
        user, error = self._update_user(
            user_id, admin_id, "password_reset_by_admin", {},
            password_hash=self.hash_password(temporary),
            require_password_change=True,
        )
        if error:
            return None, error
        return temporary, None

    # =========================================================================
    # Password Reset
    # =========================================================================

    def initiate_password_reset(self, email: str) -> Optional[str]:
        """Create a one-hour reset token. Returns None for unknown emails."""
        with get_db_session() as session:
            user = session.query(AppUser).filter(AppUser.email == email).first()
            if not user:
                self.audit.log_security_event("password_reset_unknown_email", details={"email": email})
                return None

            token = secrets.token_urlsafe(32)
            session.add(PasswordResetToken(
                user_id=user.id,
                token=token,
                expires_at=datetime.utcnow() + timedelta(hours=PASSWORD_RESET_EXPIRE_HOURS),
            ))
            session.commit()
            user_id = user.id

        self.audit.log_user_action(
            "password_reset_requested", AuditContext(user_id=user_id), resource="auth"
        )
        return token

    def reset_password(self, token: str, new_password: str) -> Tuple[bool, Optional[str]]:
        if len(new_password) < MIN_PASSWORD_LENGTH:
            return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters"

        with get_db_session() as session:
            reset = session.query(PasswordResetToken).filter(
                PasswordResetToken.token == token
            ).first()
            if not reset or reset.used or reset.expires_at < datetime.utcnow():
                return False, "Invalid or expired reset token"

            user = session.query(AppUser).filter(AppUser.id == reset.user_id).first()
            if not user:
                return False, "Invalid or expired reset token"

            user.password_hash = self.hash_password(new_password)
            user.require_password_change = False
            reset.used = True
            session.commit()
            user_id = user.id

        self.audit.log_user_action(
            "password_reset_completed", AuditContext(user_id=user_id), resource="auth"
        )
        return True, None

    def create_default_admin(self) -> dict:
        """Create the bootstrap administrator if no admin account exists."""
        with get_db_session() as session:
            existing = session.query(AppUser).filter(AppUser.username == "admin").first()
            if existing:
                return existing.to_dict()

        user, error = self.register_user(
            username="admin",
            email="admin@isynera.com",
            password=config.DEFAULT_ADMIN_PASSWORD,
            role="administrator",
            department="Administration",
        )
        if error:
            raise RuntimeError(f"Could not create default admin: {error}")
        print("[iSynera] Default administrator created (username: admin)")
        return user


# Singleton instance
_auth_service = None


def get_auth_service() -> AuthService:
    """Get the singleton auth service instance."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service
