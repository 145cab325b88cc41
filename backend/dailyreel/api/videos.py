"""Videos API routes"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from dailyreel.api.deps import get_drive_client, get_folder_service
from dailyreel.core.security import require_auth
from dailyreel.db.helpers import ANY_FOLDER
from dailyreel.db.session import get_db
from dailyreel.schemas.video import VideoMove, VideoUpdate
from dailyreel.services.drive.client import DriveClient
from dailyreel.services.folder_service import FolderDirectoryService
from dailyreel.services.video_service import (
    build_video_response, delete_video, get_visible_video, list_library, list_public_feed,
    record_view, set_privacy, update_video_details
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/videos", tags=["videos"])

# Query value selecting videos without a folder
ROOT_FOLDER_PARAM = "root"


@router.get("")
def get_library(
    folder_id: Optional[str] = Query(None, description="Folder id, or 'root' for videos without a folder"),
    status: Optional[str] = Query(None),
    is_public: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    sort: str = Query("newest"),
    user_id: str = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """List the owner's videos"""
    if folder_id is None:
        folder_filter = ANY_FOLDER
    elif folder_id == ROOT_FOLDER_PARAM:
        folder_filter = None
    else:
        folder_filter = folder_id

    try:
        videos = list_library(
            user_id, db, folder_id=folder_filter, status=status,
            is_public=is_public, search=search, sort=sort
        )
    except ValueError as e:
        raise HTTPException(400, str(e))
    return [build_video_response(v) for v in videos]


@router.get("/public")
def get_public_feed(
    search: Optional[str] = Query(None),
    sort: str = Query("newest"),
    db: Session = Depends(get_db)
):
    """Public videos from every owner (no login required)"""
    try:
        videos = list_public_feed(db, search=search, sort=sort)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return [build_video_response(v) for v in videos]


@router.get("/{video_id}")
def get_video_detail(
    video_id: str,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db)
):
    """A public video, or one of the caller's own"""
    return build_video_response(get_visible_video(video_id, x_user_id, db))


@router.patch("/{video_id}")
def update_video_route(
    video_id: str,
    request: VideoUpdate,
    user_id: str = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Edit title, caption, tags or visibility"""
    changes = request.model_dump(exclude_unset=True)
    is_public = changes.pop("is_public", None)
    try:
        video = None
        if changes:
            video = update_video_details(video_id, user_id, db, **changes)
        if is_public is not None:
            video = set_privacy(video_id, user_id, is_public, db)
    except ValueError as e:
        raise HTTPException(400, str(e))

    if video is None:
        video = get_visible_video(video_id, user_id, db)
    return build_video_response(video)


@router.delete("/{video_id}")
async def delete_video_route(
    video_id: str,
    user_id: str = Depends(require_auth),
    drive: DriveClient = Depends(get_drive_client),
    db: Session = Depends(get_db)
):
    """Delete a video from Drive (best effort) and from the library"""
    await delete_video(video_id, user_id, db, drive)
    return {"ok": True}


@router.put("/{video_id}/folder")
async def move_video_route(
    video_id: str,
    request: VideoMove,
    folders: FolderDirectoryService = Depends(get_folder_service)
):
    """Move a video into a folder, or to root with folder_id null"""
    video = await folders.move_video(video_id, request.folder_id)
    return build_video_response(video)


@router.post("/{video_id}/views")
def record_view_route(
    video_id: str,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db)
):
    """Count a playback of a public video"""
    video = record_view(video_id, x_user_id, db)
    return {"views_count": video.views_count}
