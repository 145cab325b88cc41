"""Pydantic schemas for video operations"""
from typing import List, Optional

from pydantic import BaseModel, Field


class VideoUpdate(BaseModel):
    """Schema for editing video details (only sent fields change)"""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    caption: Optional[str] = None
    tags: Optional[List[str]] = None
    is_public: Optional[bool] = None


class VideoMove(BaseModel):
    """Target folder for a move, null for root"""
    folder_id: Optional[str] = None
