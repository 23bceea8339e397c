"""
RecycleService: soft deletion with restore and audited permanent deletion.

Moving an item to the recycle area copies the full row (JSON-safe) into
recycle_items and deletes the original. Restore re-inserts the row with its
original primary key.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, inspect
from sqlalchemy.exc import IntegrityError

from isynera.db.postgres import get_db_session
from isynera.errors import ConflictError, NotFoundError, ValidationError
from isynera.models import Patient, Referral, TranscriptionSession, ChartReview, RecycleItem
from isynera.services.audit_service import AuditService, AuditContext
from isynera.services.transcription_service import evict_cached_session

logger = logging.getLogger("isynera.recycle")

RECYCLABLE_MODELS = {
    "patients": Patient,
    "referrals": Referral,
    "ai_transcription_sessions": TranscriptionSession,
    "ai_chart_reviews": ChartReview,
}


def serialize_row(row) -> Dict[str, Any]:
    data = {}
    for attr in inspect(row).mapper.column_attrs:
        value = getattr(row, attr.key)
        data[attr.key] = value.isoformat() if isinstance(value, datetime) else value
    return data


def _evict_cached(table: str, data: Dict[str, Any]) -> None:
    # Transcription sessions are also held in the in-process session cache
    if table == "ai_transcription_sessions" and data.get("session_id"):
        evict_cached_session(data["session_id"])


def deserialize_row(model, data: Dict[str, Any]) -> Dict[str, Any]:
    values = {}
    for attr in inspect(model).column_attrs:
        if attr.key not in data:
            continue
        value = data[attr.key]
        column = attr.columns[0]
        if isinstance(column.type, DateTime) and isinstance(value, str):
            value = datetime.fromisoformat(value)
        values[attr.key] = value
    return values


class RecycleService:

    def move_to_recycle_area(
        self,
        table: str,
        item_id: int,
        item_type: str,
        item_title: str,
        user_id: int,
        reason: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        model = RECYCLABLE_MODELS.get(table)
        if model is None:
            raise ValidationError(f"Unsupported table: {table}")

        with get_db_session() as session:
            row = session.get(model, item_id)
            if row is None:
                raise NotFoundError(f"Item not found in {table}")

            entry = RecycleItem(
                original_table=table,
                original_id=str(item_id),
                item_type=item_type,
                item_title=item_title,
                item_data=serialize_row(row),
                deleted_by=user_id,
                deleted_at=datetime.utcnow(),
                can_restore=True,
                item_metadata={
                    "deletion_reason": reason or "User requested deletion",
                    "original_timestamp": datetime.utcnow().isoformat(),
                },
            )
            session.add(entry)
            session.delete(row)
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                raise ConflictError(f"Item in {table} has dependent records and cannot be deleted")

            AuditService(db_session=session).log_user_action(
                "SOFT_DELETE",
                context or AuditContext(user_id=user_id),
                resource=table,
                resource_id=item_id,
                details={"recycle_id": entry.id, "reason": reason, "can_restore": True},
            )
            session.commit()
            result = entry.to_dict()

        _evict_cached(table, result["item_data"])
        logger.info("Moved %s/%s to recycle area (%s)", table, item_id, result["id"])
        return result

    def list_items(self, user_id: Optional[int] = None) -> List[Dict[str, Any]]:
        with get_db_session() as session:
            query = session.query(RecycleItem)
            if user_id is not None:
                query = query.filter(RecycleItem.deleted_by == user_id)
            return [r.to_dict() for r in query.order_by(RecycleItem.deleted_at, RecycleItem.id).all()]

    def restore(self, recycle_id: int, user_id: int, context: Optional[AuditContext] = None) -> Dict[str, Any]:
        with get_db_session() as session:
            entry = session.get(RecycleItem, recycle_id)
            if entry is None:
                raise NotFoundError("Item not found in Recycle Area")
            if not entry.can_restore:
                raise ValidationError("This item cannot be restored")

            model = RECYCLABLE_MODELS[entry.original_table]
            if session.get(model, int(entry.original_id)) is not None:
                raise ConflictError(f"{entry.original_table} row {entry.original_id} already exists")

            restored = model(**deserialize_row(model, entry.item_data))
            session.add(restored)
            session.delete(entry)
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                raise ConflictError(f"Item in {entry.original_table} can no longer be restored")

            AuditService(db_session=session).log_user_action(
                "RESTORE",
                context or AuditContext(user_id=user_id),
                resource=entry.original_table,
                resource_id=entry.original_id,
                details={"recycle_id": recycle_id, "restored_at": datetime.utcnow().isoformat()},
            )
            session.commit()
            result = restored.to_dict()

        _evict_cached(entry.original_table, entry.item_data)
        logger.info("Restored recycle item %s", recycle_id)
        return result

    def permanently_delete(
        self,
        recycle_id: int,
        user_id: int,
        final_confirmation: bool,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        if not final_confirmation:
            raise ValidationError("Final confirmation required for permanent deletion")

        with get_db_session() as session:
            entry = session.get(RecycleItem, recycle_id)
            if entry is None:
                raise NotFoundError("Item not found in Recycle Area")

            AuditService(db_session=session).log_user_action(
                "PERMANENT_DELETE",
                context or AuditContext(user_id=user_id),
                resource=entry.original_table,
                resource_id=entry.original_id,
                details={
                    "recycle_id": recycle_id,
                    "item_type": entry.item_type,
                    "final_deletion_timestamp": datetime.utcnow().isoformat(),
                    "irreversible": True,
                },
            )
            session.delete(entry)
            session.commit()

        _evict_cached(entry.original_table, entry.item_data)
        logger.info("Permanently deleted recycle item %s", recycle_id)
        return {"id": recycle_id, "message": "Item permanently deleted. This action cannot be undone."}

    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------

    def bulk_restore(self, recycle_ids: List[int], user_id: int, context: Optional[AuditContext] = None) -> Dict[str, Any]:
        return self._bulk(recycle_ids, lambda rid: self.restore(rid, user_id, context))

    def bulk_permanent_delete(
        self,
        recycle_ids: List[int],
        user_id: int,
        final_confirmation: bool,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        return self._bulk(
            recycle_ids, lambda rid: self.permanently_delete(rid, user_id, final_confirmation, context)
        )

    @staticmethod
    def _bulk(recycle_ids: List[int], operation) -> Dict[str, Any]:
        successful, failed, details = 0, 0, []
        for recycle_id in recycle_ids:
            try:
                operation(recycle_id)
            except (ValidationError, NotFoundError, ConflictError) as e:
                failed += 1
                details.append({"id": recycle_id, "success": False, "message": e.message})
                continue
            successful += 1
            details.append({"id": recycle_id, "success": True})
        return {"successful": successful, "failed": failed, "details": details}
