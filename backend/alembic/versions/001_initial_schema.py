"""initial schema: catalog, estate, licensing, notifications, audit

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from alembic import op

from update_manager import models

revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Snapshot of the models at this revision; later revisions use op.* DDL.
    models.Base.metadata.create_all(bind=op.get_bind(), checkfirst=True)


def downgrade() -> None:
    models.Base.metadata.drop_all(bind=op.get_bind())
