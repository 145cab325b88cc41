"""Pydantic schemas for uploads, sync and Drive credentials"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from dailyreel.core.config import DRIVE_SCOPES


class UploadStateResponse(BaseModel):
    """Final state of an upload session"""
    phase: str
    progress: int
    message: Optional[str] = None
    error_kind: Optional[str] = None
    split_brain: bool = False
    remote_file_id: Optional[str] = None
    video_id: Optional[str] = None
    original_size: Optional[int] = None
    compressed_size: Optional[int] = None
    compression_ratio: Optional[float] = None


class SyncResponse(BaseModel):
    adopted_folders: List[str]
    adopted_videos: List[str]
    relinked_videos: List[str]
    cleared_folder_refs: int
    purged_files: List[str]
    changed: bool


class DriveCredentials(BaseModel):
    """Google Drive credentials obtained by the front end's OAuth flow"""
    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scopes: List[str] = Field(default_factory=lambda: list(DRIVE_SCOPES))
