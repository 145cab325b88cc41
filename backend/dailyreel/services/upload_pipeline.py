"""Upload pipeline: token check, multipart body, Drive upload with retry, metadata write"""
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dailyreel.core.config import settings
from dailyreel.core.errors import (
    AuthRejectedError, DriveAPIError, MetadataPersistError, NotAuthenticatedError, UploadFailedError
)
from dailyreel.core.metrics import split_brain_counter, successful_uploads_counter, upload_attempts_counter
from dailyreel.core.otel import get_tracer
from dailyreel.core.security import AuthProvider
from dailyreel.db.helpers import add_video
from dailyreel.services.drive.client import DriveClient, DriveFile
from dailyreel.services.drive.multipart import build_multipart_related
from dailyreel.services.folder_service import FolderDirectoryService
from dailyreel.services.media import VideoBlob
from dailyreel.services.retry import linear_backoff, retry_async

upload_logger = logging.getLogger("upload")
tracer = get_tracer()

# Errors worth another attempt; anything else fails the upload at once
RETRYABLE_ERRORS = (DriveAPIError, httpx.HTTPError)

# Stamped into Drive appProperties so sync can rebuild a lost row
APP_PROPERTY_MARKER = "dailyreel"
APP_PROPERTY_MAX_LEN = 100

PROGRESS_TOKEN_ACQUIRED = 60
PROGRESS_UPLOADED = 90
PROGRESS_PERSISTED = 100


@dataclass
class UploadDestination:
    title: str
    folder_id: Optional[str] = None  # None = default folder or root, see use_default_folder
    use_default_folder: bool = True
    caption: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    is_public: bool = False
    mime_type: Optional[str] = None  # Defaults to the blob's
    original_size: Optional[int] = None  # Bytes before compression, defaults to the blob size
    duration_seconds: Optional[float] = None


@dataclass
class UploadResult:
    remote_file_id: str
    video_id: str
    folder_id: Optional[str]
    original_size: int
    compressed_size: int
    compression_ratio: Optional[float]
    attempts: int


def drive_file_name(title: str, blob: VideoBlob) -> str:
    """Drive file name from the title, keeping the blob's extension"""
    stem = re.sub(r'[\\/:*?"<>|\r\n]+', " ", title).strip() or "video"
    suffix = Path(blob.name).suffix or ".mp4"
    return f"{stem}{suffix}"


def build_app_properties(owner_id: str, destination: UploadDestination, original_size: int,
                         duration_seconds: Optional[float]) -> Dict[str, str]:
    props = {
        "app": APP_PROPERTY_MARKER,
        "owner_id": owner_id,
        "title": destination.title[:APP_PROPERTY_MAX_LEN],
        "original_size": str(original_size),
        "is_public": "true" if destination.is_public else "false",
    }
    if duration_seconds is not None:
        props["duration_seconds"] = f"{duration_seconds:.3f}"
    return props


class UploadPipeline:
    """Uploads one compressed blob to Drive and records it locally

    Args:
        auth: Auth collaborator, asked for the token before any network I/O
        drive: Drive client (re-reads the token on every request)
        db: Database session for the metadata write
        folders: Folder service used to resolve the destination folder
        max_attempts: Upload attempts before giving up
        backoff_base: Delay after attempt n is backoff_base * n seconds
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(self, auth: AuthProvider, drive: DriveClient, db: Session,
                 folders: FolderDirectoryService, max_attempts: int = None,
                 backoff_base: float = None, sleep: Callable[[float], Awaitable[None]] = None):
        self.auth = auth
        self.drive = drive
        self.db = db
        self.folders = folders
        self.max_attempts = max_attempts or settings.UPLOAD_MAX_ATTEMPTS
        self.backoff_base = settings.UPLOAD_BACKOFF_BASE_SECONDS if backoff_base is None else backoff_base
        self.sleep = sleep

    async def upload(self, blob: VideoBlob, destination: UploadDestination,
                     on_progress: Optional[Callable[[int], None]] = None) -> UploadResult:
        """Upload blob to Drive and write its video row

        Raises:
            NotAuthenticatedError: No access token (raised before any network I/O)
            AuthRejectedError: Drive answered 401/403 (never retried)
            UploadFailedError: Every attempt failed
            MetadataPersistError: The file is in Drive but the video row was not written
            ResourceNotFoundError: The requested folder does not exist
        """
        report = on_progress or (lambda percent: None)
        owner_id = self.auth.current_user_id()

        if not self.auth.current_access_token():
            upload_logger.warning(f"Upload refused for user {owner_id}: Drive is not connected")
            raise NotAuthenticatedError()
        if not blob:
            raise ValueError("Cannot upload an empty video")
        report(PROGRESS_TOKEN_ACQUIRED)

        folder = self.folders.resolve_destination(destination.folder_id, destination.use_default_folder)
        mime_type = destination.mime_type or blob.mime_type
        original_size = destination.original_size or blob.size

        metadata = {
            "name": drive_file_name(destination.title, blob),
            "mimeType": mime_type,
            "appProperties": build_app_properties(owner_id, destination, original_size, destination.duration_seconds),
        }
        if folder is not None:
            metadata["parents"] = [folder.drive_folder_id]
        if destination.caption:
            metadata["description"] = destination.caption

        body, content_type = build_multipart_related(metadata, blob.data, mime_type)

        attempts = 0

        async def send(attempt: int) -> DriveFile:
            nonlocal attempts
            attempts = attempt
            upload_logger.info(
                f"Uploading '{metadata['name']}' ({blob.size} bytes) for user {owner_id}, "
                f"attempt {attempt}/{self.max_attempts}"
            )
            with tracer.start_as_current_span("drive.upload") as span:
                span.set_attribute("dailyreel.attempt", attempt)
                span.set_attribute("dailyreel.upload_bytes", blob.size)
                return await self.drive.upload_multipart(body, content_type)

        def record_failure(attempt: int, exc: BaseException) -> None:
            upload_attempts_counter.labels(outcome="failure").inc()
            upload_logger.warning(f"Upload attempt {attempt} failed for user {owner_id}: {exc}")

        retry_kwargs = {}
        if self.sleep is not None:
            retry_kwargs["sleep"] = self.sleep
        try:
            remote = await retry_async(
                send,
                max_attempts=self.max_attempts,
                backoff=linear_backoff(self.backoff_base),
                is_non_retryable=lambda exc: not isinstance(exc, RETRYABLE_ERRORS),
                on_failure=record_failure,
                **retry_kwargs
            )
        except (AuthRejectedError, NotAuthenticatedError):
            raise
        except Exception as e:
            upload_logger.error(f"Upload failed for user {owner_id} after {attempts} attempt(s): {e}")
            raise UploadFailedError(attempts, e) from e

        upload_attempts_counter.labels(outcome="success").inc()
        report(PROGRESS_UPLOADED)
        upload_logger.info(f"Uploaded '{metadata['name']}' to Drive as {remote.id} after {attempts} attempt(s)")

        try:
            video = add_video(
                owner_id=owner_id,
                title=destination.title,
                drive_file_id=remote.id,
                compressed_size=blob.size,
                original_size=original_size,
                folder_id=folder.id if folder is not None else None,
                caption=destination.caption,
                tags=destination.tags,
                is_public=destination.is_public,
                mime_type=mime_type,
                duration_seconds=destination.duration_seconds,
                db=self.db
            )
        except SQLAlchemyError as e:
            split_brain_counter.labels(resource="video").inc()
            upload_logger.error(
                f"Drive file {remote.id} uploaded but video row failed for user {owner_id}: {e}",
                extra={"drive_file_id": remote.id, "user_id": owner_id}
            )
            raise MetadataPersistError(remote.id, e) from e

        successful_uploads_counter.inc()
        report(PROGRESS_PERSISTED)

        return UploadResult(
            remote_file_id=remote.id,
            video_id=video.id,
            folder_id=video.folder_id,
            original_size=original_size,
            compressed_size=blob.size,
            compression_ratio=video.compression_ratio,
            attempts=attempts,
        )
