"""Create deleted_drive_files table

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 15:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    if 'deleted_drive_files' in inspect(conn).get_table_names():
        return

    op.create_table(
        'deleted_drive_files',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('owner_id', sa.String(length=64), nullable=False),
        sa.Column('drive_file_id', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_deleted_drive_files_owner_id', 'deleted_drive_files', ['owner_id'])
    op.create_index('ix_deleted_drive_files_owner_file', 'deleted_drive_files',
                    ['owner_id', 'drive_file_id'], unique=True)


def downgrade() -> None:
    conn = op.get_bind()
    if 'deleted_drive_files' in inspect(conn).get_table_names():
        op.drop_table('deleted_drive_files')
