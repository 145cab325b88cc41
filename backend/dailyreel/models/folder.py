"""Folder model"""
from sqlalchemy import Column, String, DateTime, Boolean, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from dailyreel.models.base import Base, generate_id


class Folder(Base):
    """Owner folder mirrored from a Google Drive folder"""
    __tablename__ = "folders"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(64), nullable=False, index=True)  # Owner id from the auth provider
    drive_folder_id = Column(String(128), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    color = Column(String(16), nullable=False, default="#3b82f6")
    icon = Column(String(64), nullable=False, default="folder")
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Weak back-reference: deleting a folder sets videos.folder_id to NULL
    videos = relationship("Video", back_populates="folder", passive_deletes=True)

    __table_args__ = (
        Index('ix_folders_user_created', 'user_id', 'created_at'),
    )
