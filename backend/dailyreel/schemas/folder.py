"""Pydantic schemas for folder API"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from dailyreel.core.config import DEFAULT_FOLDER_COLOR, DEFAULT_FOLDER_ICON


class FolderCreate(BaseModel):
    """Schema for creating a folder"""
    name: str = Field(..., min_length=1, max_length=255)
    color: str = Field(DEFAULT_FOLDER_COLOR, pattern=r"^#[0-9a-fA-F]{6}$")
    icon: str = Field(DEFAULT_FOLDER_ICON, min_length=1, max_length=50)
    is_default: bool = False


class FolderResponse(BaseModel):
    id: str
    name: str
    color: str
    icon: str
    drive_folder_id: str
    is_default: bool
    video_count: int = 0
    created_at: Optional[datetime] = None
