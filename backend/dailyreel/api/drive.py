"""Google Drive connection and sync routes"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from dailyreel.api.deps import get_auth_provider, get_drive_client
from dailyreel.core.security import AuthProvider, require_auth
from dailyreel.db.helpers import save_oauth_token
from dailyreel.db.session import get_db
from dailyreel.schemas.upload import DriveCredentials, SyncResponse
from dailyreel.services.drive.client import DriveClient
from dailyreel.services.reconciliation import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/drive", tags=["drive"])
sync_router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.put("/credentials")
def link_drive(
    request: DriveCredentials,
    user_id: str = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Store the owner's Google Drive credentials (encrypted)"""
    save_oauth_token(
        user_id=user_id,
        access_token=request.access_token,
        refresh_token=request.refresh_token,
        expires_at=request.expires_at,
        extra_data={"scopes": request.scopes},
        db=db
    )
    logger.info(f"Google Drive linked for user {user_id}")
    return {"connected": True}


@router.delete("/credentials")
def unlink_drive(auth: AuthProvider = Depends(get_auth_provider)):
    """Sign out of Google Drive"""
    auth.sign_out()
    return {"connected": False}


@router.get("/status")
def drive_status(auth: AuthProvider = Depends(get_auth_provider)):
    return {"connected": auth.current_access_token() is not None}


@sync_router.post("")
async def sync_now(
    user_id: str = Depends(require_auth),
    drive: DriveClient = Depends(get_drive_client),
    db: Session = Depends(get_db)
):
    """Repair differences between Google Drive and the library"""
    report = await ReconciliationService(drive, db, user_id).sync()
    return SyncResponse(
        adopted_folders=report.adopted_folders,
        adopted_videos=report.adopted_videos,
        relinked_videos=report.relinked_videos,
        cleared_folder_refs=report.cleared_folder_refs,
        purged_files=report.purged_files,
        changed=report.changed,
    )
