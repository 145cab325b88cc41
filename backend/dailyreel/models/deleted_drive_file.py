"""Deleted Drive file model"""
from sqlalchemy import Column, String, DateTime, Index
from datetime import datetime, timezone
from dailyreel.models.base import Base, generate_id


class DeletedDriveFile(Base):
    """Drive file whose video row was deleted while the Drive delete failed

    Sync never adopts these files back and retries the Drive delete instead.
    """
    __tablename__ = "deleted_drive_files"

    id = Column(String(36), primary_key=True, default=generate_id)
    owner_id = Column(String(64), nullable=False, index=True)
    drive_file_id = Column(String(128), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index('ix_deleted_drive_files_owner_file', 'owner_id', 'drive_file_id', unique=True),
    )
