"""Upload API routes"""
import logging
from typing import Optional, Set

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from dailyreel.api.deps import (
    get_auth_provider, get_compression_engine, get_drive_client, get_folder_service,
    get_selection_validator
)
from dailyreel.api.errors import error_body, status_for_kind
from dailyreel.core.config import settings
from dailyreel.core.errors import NotAuthenticatedError
from dailyreel.core.security import AuthProvider, require_auth
from dailyreel.db.session import get_db
from dailyreel.schemas.upload import UploadStateResponse
from dailyreel.services.compression import CompressionEngine, get_preset
from dailyreel.services.drive.client import DriveClient
from dailyreel.services.folder_service import FolderDirectoryService
from dailyreel.services.media import VideoBlob
from dailyreel.services.upload_pipeline import UploadDestination, UploadPipeline
from dailyreel.services.upload_session import UploadSession
from dailyreel.services.upload_state import UploadPhase, UploadState

upload_logger = logging.getLogger("upload")

router = APIRouter(prefix="/api/uploads", tags=["uploads"])

# Owners with a session currently compressing or uploading
_active_uploads: Set[str] = set()

CHUNK_SIZE = 1024 * 1024  # 1MB


async def read_upload(file: UploadFile, limit: int) -> bytes:
    """Read an uploaded file in chunks, rejecting it once it passes limit bytes"""
    chunks = []
    size = 0
    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > limit:
            raise HTTPException(
                413,
                f"File too large: {file.filename} exceeds the {limit / (1024 * 1024):.0f} MB limit"
            )
        chunks.append(chunk)
    return b"".join(chunks)


def parse_tags(tags: Optional[str]):
    if not tags:
        return []
    return [t.strip() for t in tags.split(",") if t.strip()]


def build_state_response(session: UploadSession, state: UploadState) -> UploadStateResponse:
    result = session.result
    return UploadStateResponse(
        phase=state.phase.value,
        progress=state.progress,
        message=state.message,
        error_kind=state.error_kind,
        split_brain=state.split_brain,
        remote_file_id=state.remote_file_id,
        video_id=state.video_id,
        original_size=result.original_size if result else None,
        compressed_size=result.compressed_size if result else None,
        compression_ratio=result.compression_ratio if result else None,
    )


@router.post("")
async def upload_video(
    file: UploadFile = File(...),
    title: str = Form(...),
    caption: Optional[str] = Form(None),
    tags: Optional[str] = Form(None, description="Comma-separated"),
    folder_id: Optional[str] = Form(None),
    use_default_folder: bool = Form(True),
    preset: Optional[str] = Form(None),
    is_public: bool = Form(False),
    user_id: str = Depends(require_auth),
    auth: AuthProvider = Depends(get_auth_provider),
    drive: DriveClient = Depends(get_drive_client),
    folders: FolderDirectoryService = Depends(get_folder_service),
    engine: CompressionEngine = Depends(get_compression_engine),
    validate=Depends(get_selection_validator),
    db: Session = Depends(get_db)
):
    """Validate, compress and upload one video to the owner's Google Drive"""
    if not title.strip():
        raise HTTPException(400, "Title is required")
    try:
        preset = get_preset(preset or settings.DEFAULT_COMPRESSION_PRESET).name
    except ValueError as e:
        raise HTTPException(400, str(e))

    if user_id in _active_uploads:
        raise HTTPException(409, "An upload is already in progress. Wait for it to finish.")

    # Nothing is compressed for an owner who could not upload the result
    if not auth.current_access_token():
        raise NotAuthenticatedError()

    _active_uploads.add(user_id)
    try:
        data = await read_upload(file, settings.MAX_UPLOAD_BYTES)
        blob = VideoBlob(
            data=data,
            mime_type=file.content_type or "video/mp4",
            name=file.filename or "video.mp4"
        )
        upload_logger.info(f"Upload started for user {user_id}: {blob.name} ({blob.size} bytes, preset '{preset}')")

        session = UploadSession(engine, UploadPipeline(auth, drive, db, folders), validate=validate)
        state = await session.select_file(blob)
        if state.phase is not UploadPhase.FILE_SELECTED:
            return JSONResponse(
                status_code=status_for_kind(state.error_kind),
                content=error_body(state.error_kind, state.message)
            )

        destination = UploadDestination(
            title=title.strip(),
            folder_id=folder_id or None,
            use_default_folder=use_default_folder,
            caption=caption,
            tags=parse_tags(tags),
            is_public=is_public,
        )
        state = await session.start(destination, preset)
    finally:
        _active_uploads.discard(user_id)

    response = build_state_response(session, state)
    if state.phase is UploadPhase.ERROR:
        return JSONResponse(
            status_code=status_for_kind(state.error_kind),
            content={**error_body(state.error_kind, state.message, state.split_brain), "state": response.model_dump()}
        )
    return JSONResponse(status_code=201, content=response.model_dump())
