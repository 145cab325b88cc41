"""Video library operations: listing, details, privacy, deletion and view counting"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dailyreel.core.errors import LocalPersistError, RemoteMutationError, ResourceNotFoundError
from dailyreel.db.helpers import (
    ANY_FOLDER, delete_video_row, get_video, increment_views, list_videos, update_video
)
from dailyreel.models.video import Video, VideoStatus
from dailyreel.services.drive.client import DriveClient

logger = logging.getLogger(__name__)

DRIVE_PREVIEW_URL = "https://drive.google.com/file/d/{file_id}/preview"

EDITABLE_FIELDS = ("title", "caption", "tags")


def playback_url(video: Video) -> Optional[str]:
    """Embeddable Drive preview URL, None until the file is in Drive"""
    if not video.drive_file_id:
        return None
    return DRIVE_PREVIEW_URL.format(file_id=video.drive_file_id)


def build_video_response(video: Video) -> Dict[str, Any]:
    """Build the API representation of a video"""
    return {
        "id": video.id,
        "owner_id": video.owner_id,
        "folder_id": video.folder_id,
        "title": video.title,
        "caption": video.caption,
        "tags": list(video.tags or []),
        "mime_type": video.mime_type,
        "original_size": video.original_size,
        "compressed_size": video.compressed_size,
        "compression_ratio": video.compression_ratio,
        "duration_seconds": video.duration_seconds,
        "drive_file_id": video.drive_file_id,
        "playback_url": playback_url(video),
        "is_public": video.is_public,
        "views_count": video.views_count,
        "status": video.status,
        "created_at": video.created_at,
    }


def list_library(owner_id: str, db: Session, folder_id: Any = ANY_FOLDER, status: Optional[str] = None,
                 is_public: Optional[bool] = None, search: Optional[str] = None,
                 sort: str = "newest") -> List[Video]:
    """Owner's own videos, optionally narrowed to a folder (None = root)"""
    return list_videos(
        db, owner_id=owner_id, status=status, is_public=is_public,
        folder_id=folder_id, search=search, sort=sort
    )


def list_public_feed(db: Session, search: Optional[str] = None, sort: str = "newest") -> List[Video]:
    """Completed public videos from every owner"""
    return list_videos(db, public_only=True, status=VideoStatus.COMPLETED.value, search=search, sort=sort)


def get_visible_video(video_id: str, viewer_id: Optional[str], db: Session) -> Video:
    """A video the viewer may see: their own, or anyone's public video

    Raises:
        ResourceNotFoundError: If it does not exist or is private to someone else
    """
    video = get_video(video_id, db=db)
    if not video or (not video.is_public and video.owner_id != viewer_id):
        raise ResourceNotFoundError("video", video_id)
    return video


def update_video_details(video_id: str, owner_id: str, db: Session, **changes) -> Video:
    """Rename or re-caption a video

    Raises:
        ValueError: On a blank title or a field that cannot be edited
        ResourceNotFoundError: If the owner has no such video
    """
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot edit field(s): {', '.join(sorted(unknown))}")
    if "title" in changes:
        title = (changes["title"] or "").strip()
        if not title:
            raise ValueError("Title cannot be empty")
        changes["title"] = title
    if "tags" in changes:
        changes["tags"] = [t.strip() for t in (changes["tags"] or []) if t and t.strip()]

    video = update_video(video_id, owner_id, db=db, **changes)
    if not video:
        raise ResourceNotFoundError("video", video_id)
    return video


def set_privacy(video_id: str, owner_id: str, is_public: bool, db: Session) -> Video:
    video = update_video(video_id, owner_id, db=db, is_public=is_public)
    if not video:
        raise ResourceNotFoundError("video", video_id)
    logger.info(f"Video {video_id} is now {'public' if is_public else 'private'}")
    return video


async def delete_video(video_id: str, owner_id: str, db: Session, drive: Optional[DriveClient]) -> None:
    """Delete a video: Drive file first (best effort), then the row

    When the Drive delete fails the file id is remembered so sync retries the
    delete instead of adopting the file back.

    Raises:
        ResourceNotFoundError: If the owner has no such video
        LocalPersistError: If the row could not be deleted
    """
    video = get_video(video_id, owner_id, db=db)
    if not video:
        raise ResourceNotFoundError("video", video_id)

    drive_file_id = video.drive_file_id
    remote_deleted = False
    if drive_file_id and drive is not None:
        try:
            await drive.delete_file(drive_file_id)
            remote_deleted = True
        except RemoteMutationError as e:
            logger.warning(f"Could not delete Drive file {drive_file_id} for video {video_id}, sync will retry: {e}")

    try:
        delete_video_row(video_id, owner_id, db=db, keep_deleted_marker=not remote_deleted)
    except SQLAlchemyError as e:
        logger.error(f"Failed to delete video {video_id}: {e}")
        raise LocalPersistError("delete video", remote_id=drive_file_id if remote_deleted else None, cause=e)


def record_view(video_id: str, viewer_id: Optional[str], db: Session) -> Video:
    """Count a playback of a public video; owners viewing their own videos are not counted

    Raises:
        ResourceNotFoundError: If the video is not visible to the viewer
    """
    video = get_visible_video(video_id, viewer_id, db)
    if video.is_public and video.owner_id != viewer_id:
        increment_views(video.id, db=db)
        db.refresh(video)
    return video
