"""Create folders, videos and oauth_tokens tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Tables may already exist when init_db() ran first
    conn = op.get_bind()
    existing_tables = inspect(conn).get_table_names()

    if 'folders' not in existing_tables:
        op.create_table(
            'folders',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('drive_folder_id', sa.String(length=128), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('color', sa.String(length=16), nullable=False, server_default='#3b82f6'),
            sa.Column('icon', sa.String(length=64), nullable=False, server_default='folder'),
            sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_folders_user_id', 'folders', ['user_id'])
        op.create_index('ix_folders_drive_folder_id', 'folders', ['drive_folder_id'])
        op.create_index('ix_folders_user_created', 'folders', ['user_id', 'created_at'])

    if 'videos' not in existing_tables:
        op.create_table(
            'videos',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('owner_id', sa.String(length=64), nullable=False),
            sa.Column('folder_id', sa.String(length=36), nullable=True),
            sa.Column('title', sa.String(length=255), nullable=False),
            sa.Column('caption', sa.Text(), nullable=True),
            sa.Column('tags', sa.JSON(), nullable=True),
            sa.Column('mime_type', sa.String(length=100), nullable=True),
            sa.Column('original_size', sa.BigInteger(), nullable=True),
            sa.Column('compressed_size', sa.BigInteger(), nullable=True),
            sa.Column('duration_seconds', sa.Float(), nullable=True),
            sa.Column('drive_file_id', sa.String(length=128), nullable=True),
            sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('views_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['folder_id'], ['folders.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_videos_owner_id', 'videos', ['owner_id'])
        op.create_index('ix_videos_folder_id', 'videos', ['folder_id'])
        op.create_index('ix_videos_drive_file_id', 'videos', ['drive_file_id'])
        op.create_index('ix_videos_owner_status', 'videos', ['owner_id', 'status'])
        op.create_index('ix_videos_public_created', 'videos', ['is_public', 'created_at'])

    if 'oauth_tokens' not in existing_tables:
        op.create_table(
            'oauth_tokens',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('provider', sa.String(length=50), nullable=False),
            sa.Column('access_token', sa.Text(), nullable=False),
            sa.Column('refresh_token', sa.Text(), nullable=True),
            sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('extra_data', sa.JSON(), nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_oauth_tokens_id', 'oauth_tokens', ['id'])
        op.create_index('ix_oauth_tokens_user_id', 'oauth_tokens', ['user_id'])
        op.create_index('ix_oauth_tokens_user_provider', 'oauth_tokens', ['user_id', 'provider'], unique=True)


def downgrade() -> None:
    conn = op.get_bind()
    existing_tables = inspect(conn).get_table_names()

    if 'oauth_tokens' in existing_tables:
        op.drop_table('oauth_tokens')
    if 'videos' in existing_tables:
        op.drop_table('videos')
    if 'folders' in existing_tables:
        op.drop_table('folders')
