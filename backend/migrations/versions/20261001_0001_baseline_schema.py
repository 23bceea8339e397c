"""Baseline iSynera schema

Creates every table registered on isynera.db.postgres.Base: users and
sessions, patients and medications, referral intake records, clinical AI
records, prescriptions, documents, recycle area, billing and audit logs.

Revision ID: 5e1a0b9c2d34
Revises:
Create Date: 2026-10-01 00:01:00.000000

"""
from typing import Sequence, Union

from alembic import op

from isynera.db.postgres import Base
from isynera import models  # noqa: F401 - registers models with Base

# revision identifiers, used by Alembic.
revision: str = '5e1a0b9c2d34'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    Base.metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    Base.metadata.drop_all(bind=op.get_bind())
