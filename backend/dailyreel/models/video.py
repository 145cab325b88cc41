"""Video model"""
import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, Index, BigInteger, Boolean, Float
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from dailyreel.models.base import Base, generate_id


class VideoStatus(str, enum.Enum):
    PENDING = "pending"
    COMPRESSING = "compressing"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


# Forward-only lifecycle; failed is terminal until a manual retry sends it back to pending
STATUS_TRANSITIONS = {
    VideoStatus.PENDING: {VideoStatus.COMPRESSING, VideoStatus.UPLOADING, VideoStatus.COMPLETED, VideoStatus.FAILED},
    VideoStatus.COMPRESSING: {VideoStatus.UPLOADING, VideoStatus.COMPLETED, VideoStatus.FAILED},
    VideoStatus.UPLOADING: {VideoStatus.COMPLETED, VideoStatus.FAILED},
    VideoStatus.COMPLETED: set(),
    VideoStatus.FAILED: {VideoStatus.PENDING},
}


def can_transition(current: str, new: str) -> bool:
    """Check whether a status change respects the video lifecycle"""
    if current == new:
        return True
    return VideoStatus(new) in STATUS_TRANSITIONS[VideoStatus(current)]


class Video(Base):
    """Daily video journal entry stored in Google Drive"""
    __tablename__ = "videos"

    id = Column(String(36), primary_key=True, default=generate_id)
    owner_id = Column(String(64), nullable=False, index=True)
    folder_id = Column(String(36), ForeignKey("folders.id", ondelete="SET NULL"), nullable=True, index=True)  # NULL = root
    title = Column(String(255), nullable=False)
    caption = Column(Text)
    tags = Column(JSON, default=list)
    mime_type = Column(String(100), default="video/mp4")
    original_size = Column(BigInteger, nullable=True)  # Bytes before compression
    compressed_size = Column(BigInteger, nullable=True)  # Bytes actually stored in Drive
    duration_seconds = Column(Float, nullable=True)
    drive_file_id = Column(String(128), nullable=True, index=True)  # Always set once completed
    is_public = Column(Boolean, nullable=False, default=False)
    views_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=VideoStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    folder = relationship("Folder", back_populates="videos")

    __table_args__ = (
        Index('ix_videos_owner_status', 'owner_id', 'status'),
        Index('ix_videos_public_created', 'is_public', 'created_at'),
    )

    @property
    def compression_ratio(self):
        """Percentage saved by compression, None when sizes are unknown"""
        if not self.original_size or self.compressed_size is None:
            return None
        return round((1 - self.compressed_size / self.original_size) * 100, 2)
