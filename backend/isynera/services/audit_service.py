"""
AuditService: append-only audit logging for HIPAA traceability.

Payloads are PHI-safe: identifying keys (SSN, MRN, DOB, address) are
redacted before they reach the table.

Audit writes never fail the calling request. When constructed with an
explicit session the rows join the caller's transaction; otherwise each
write commits on its own.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session as DbSession

from isynera.db.postgres import get_db_session
from isynera.models import AuditLog, UserActivityLog, PatientAuditLog

logger = logging.getLogger("isynera.audit")

PHI_KEYS = {"mrn", "ssn", "social_security", "dob", "date_of_birth", "address"}


@dataclass
class AuditContext:
    """Who did it and from where. Built per request by the API layer."""

    user_id: Optional[int] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditService:
    """
    Action types used across the platform:
    - auth: login_successful, login_attempt_failed, logout, password_reset_*
    - admin: user_approved, user_deactivated, user_activated, role_changed
    - recycle: SOFT_DELETE, RESTORE, PERMANENT_DELETE
    """

    def __init__(self, db_session: Optional[DbSession] = None):
        self._explicit_db = db_session

    @property
    def db(self) -> DbSession:
        if self._explicit_db is not None:
            return self._explicit_db
        return get_db_session()

    def _write(self, row) -> bool:
        try:
            self.db.add(row)
            if self._explicit_db is None:
                self.db.commit()
            else:
                self.db.flush()
            return True
        except Exception as e:
            logger.error("Failed to write audit row %s: %s", type(row).__name__, e)
            if self._explicit_db is None:
                self.db.rollback()
            return False

    # -------------------------------------------------------------------------
    # Writers
    # -------------------------------------------------------------------------

    def log_user_action(
        self,
        action: str,
        context: Optional[AuditContext] = None,
        resource: str = "system",
        resource_id: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
        success: bool = True,
        error_message: Optional[str] = None,
    ) -> bool:
        context = context or AuditContext()
        return self._write(AuditLog(
            user_id=context.user_id,
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=self._sanitize_payload(details) if details else None,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            success=success,
            error_message=error_message,
        ))

    def log_security_event(
        self,
        action: str,
        context: Optional[AuditContext] = None,
        details: Optional[Dict[str, Any]] = None,
        success: bool = False,
    ) -> bool:
        """Authentication failures and other security-relevant events."""
        return self.log_user_action(
            action,
            context=context,
            resource="auth",
            details={**(details or {}), "security_event": True},
            success=success,
        )

    def log_admin_action(
        self,
        action: str,
        admin_user_id: int,
        target_user_id: int,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[AuditContext] = None,
    ) -> bool:
        context = context or AuditContext(user_id=admin_user_id)
        return self.log_user_action(
            action,
            context=context,
            resource="user",
            resource_id=target_user_id,
            details={**(details or {}), "admin_user_id": admin_user_id},
        )

    def log_user_activity(
        self,
        user_id: int,
        activity_type: str,
        module_name: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[AuditContext] = None,
    ) -> bool:
        context = context or AuditContext()
        return self._write(UserActivityLog(
            user_id=user_id,
            activity_type=activity_type,
            module_name=module_name,
            resource_type=resource_type,
            resource_id=resource_id,
            action_details=self._sanitize_payload(details) if details else None,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        ))

    def log_patient_access(
        self,
        patient_id: int,
        user_id: Optional[int],
        action: str,
        field_changed: Optional[str] = None,
        old_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
        reason: Optional[str] = None,
    ) -> bool:
        """Field-level values are stored, except PHI fields which are redacted."""
        if field_changed and field_changed.lower() in PHI_KEYS:
            old_value = "[REDACTED]" if old_value is not None else None
            new_value = "[REDACTED]" if new_value is not None else None
        return self._write(PatientAuditLog(
            patient_id=patient_id,
            user_id=user_id,
            action=action,
            field_changed=field_changed,
            old_value=str(old_value) if old_value is not None else None,
            new_value=str(new_value) if new_value is not None else None,
            reason=reason,
        ))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_audit_logs(
        self,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        resource: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        query = self.db.query(AuditLog)
        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)
        if action:
            query = query.filter(AuditLog.action == action)
        if resource:
            query = query.filter(AuditLog.resource == resource)
        rows = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
        return [r.to_dict() for r in rows]

    def get_user_activity(self, user_id: int, limit: int = 100) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(UserActivityLog)
            .filter(UserActivityLog.user_id == user_id)
            .order_by(UserActivityLog.created_at.desc(), UserActivityLog.id.desc())
            .limit(limit)
            .all()
        )
        return [r.to_dict() for r in rows]

    def get_patient_audit_trail(self, patient_id: int, limit: int = 100) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(PatientAuditLog)
            .filter(PatientAuditLog.patient_id == patient_id)
            .order_by(PatientAuditLog.created_at.desc(), PatientAuditLog.id.desc())
            .limit(limit)
            .all()
        )
        return [r.to_dict() for r in rows]

    # -------------------------------------------------------------------------

    def _sanitize_payload(self, payload: Any) -> Any:
        """Recursively redact PHI keys."""
        if isinstance(payload, dict):
            return {
                k: "[REDACTED]" if k.lower() in PHI_KEYS else self._sanitize_payload(v)
                for k, v in payload.items()
            }
        if isinstance(payload, list):
            return [self._sanitize_payload(v) for v in payload]
        return payload
