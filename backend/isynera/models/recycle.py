"""
Recycle area: soft-deleted rows held for restore or permanent deletion.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean

from isynera.db.postgres import Base, JSONType


class RecycleItem(Base):
    """Full copy of a deleted row.

    item_data is the column dict of the original row, JSON-safe
    (datetimes as ISO strings).
    """

    __tablename__ = "recycle_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    original_table = Column(String(100), nullable=False)
    original_id = Column(String(100), nullable=False)
    item_type = Column(String(50), nullable=False)
    item_title = Column(String(255), nullable=False)
    item_data = Column(JSONType, nullable=False)
    deleted_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    deleted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    can_restore = Column(Boolean, nullable=False, default=True)
    # "metadata" is reserved on declarative classes
    item_metadata = Column("metadata", JSONType, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "original_table": self.original_table,
            "original_id": self.original_id,
            "item_type": self.item_type,
            "item_title": self.item_title,
            "item_data": self.item_data,
            "deleted_by": self.deleted_by,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "can_restore": self.can_restore,
            "metadata": self.item_metadata,
        }
