"""Folders API routes"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from dailyreel.api.deps import get_folder_service
from dailyreel.models.folder import Folder
from dailyreel.schemas.folder import FolderCreate, FolderResponse
from dailyreel.services.folder_service import FolderDirectoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/folders", tags=["folders"])


def build_folder_response(folder: Folder, video_count: int = 0) -> FolderResponse:
    return FolderResponse(
        id=folder.id,
        name=folder.name,
        color=folder.color,
        icon=folder.icon,
        drive_folder_id=folder.drive_folder_id,
        is_default=folder.is_default,
        video_count=video_count,
        created_at=folder.created_at,
    )


@router.get("")
def list_folders(
    search: Optional[str] = Query(None),
    sort: str = Query("date"),
    folders: FolderDirectoryService = Depends(get_folder_service)
):
    """List the owner's folders with video counts"""
    try:
        listings = folders.list_folders(search=search, sort=sort)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return [build_folder_response(item.folder, item.video_count) for item in listings]


@router.post("", status_code=201)
async def create_folder(
    request: FolderCreate,
    folders: FolderDirectoryService = Depends(get_folder_service)
):
    """Create a folder in Google Drive, then locally"""
    try:
        folder = await folders.create_folder(request.name, request.color, request.icon, request.is_default)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return build_folder_response(folder)


# Registered before /{folder_id} so "default" is not taken for an id
@router.delete("/default")
def clear_default_folder(folders: FolderDirectoryService = Depends(get_folder_service)):
    """Uploads without a folder go to root again"""
    folders.set_default_folder(None)
    return {"ok": True}


@router.put("/{folder_id}/default")
def set_default_folder(
    folder_id: str,
    folders: FolderDirectoryService = Depends(get_folder_service)
):
    folder = folders.set_default_folder(folder_id)
    return build_folder_response(folder)


@router.delete("/{folder_id}")
async def delete_folder(
    folder_id: str,
    folders: FolderDirectoryService = Depends(get_folder_service)
):
    """Delete a folder; its videos move to root. Deleting twice is not an error."""
    deleted = await folders.delete_folder(folder_id)
    return {"ok": True, "deleted": deleted}
