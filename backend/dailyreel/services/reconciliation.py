"""Reconciliation ("sync now") between Google Drive and the local database

Repairs the split-brain states left behind by remote-then-local writes:

- Drive folders with no local row are adopted as folders
- Drive video files with no local row are adopted as completed videos,
  using the appProperties stamped at upload time
- Tracked videos whose Drive parent differs from their folder_id are relinked
- Folder references that point at deleted folders are reset to root
- Files of deleted videos whose Drive delete failed are deleted again, never adopted

Running it twice with no remote changes reports no changes the second time.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dailyreel.core.config import DEFAULT_FOLDER_COLOR, DEFAULT_FOLDER_ICON
from dailyreel.core.errors import LocalPersistError, RemoteMutationError
from dailyreel.core.metrics import sync_adopted_counter
from dailyreel.db.helpers import (
    add_folder, add_video, clear_dangling_folder_refs, forget_deleted_drive_file, get_deleted_drive_file_ids,
    get_folders_by_drive_id
)
from dailyreel.models.folder import Folder
from dailyreel.models.video import Video
from dailyreel.services.drive.client import DriveClient, DriveFile
from dailyreel.services.upload_pipeline import APP_PROPERTY_MARKER

sync_logger = logging.getLogger("sync")


@dataclass
class SyncReport:
    adopted_folders: List[str] = field(default_factory=list)  # local folder ids
    adopted_videos: List[str] = field(default_factory=list)  # local video ids
    relinked_videos: List[str] = field(default_factory=list)
    cleared_folder_refs: int = 0
    purged_files: List[str] = field(default_factory=list)  # Drive file ids of deleted videos

    @property
    def changed(self) -> bool:
        return bool(self.adopted_folders or self.adopted_videos or self.relinked_videos
                    or self.cleared_folder_refs or self.purged_files)


def _parse_created_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_duration(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _is_ours(remote: DriveFile, owner_id: str) -> bool:
    """Video files uploaded by this app for this owner"""
    props = remote.app_properties
    if props.get("app") != APP_PROPERTY_MARKER:
        return remote.mime_type.startswith("video/")
    return props.get("owner_id") in (None, owner_id)


class ReconciliationService:

    def __init__(self, drive: DriveClient, db: Session, owner_id: str):
        self.drive = drive
        self.db = db
        self.owner_id = owner_id

    async def sync(self) -> SyncReport:
        """Compare Drive with the local rows and repair the differences

        Raises:
            NotAuthenticatedError, AuthRejectedError, DriveAPIError: Drive could not be listed
            LocalPersistError: A repair could not be written
        """
        report = SyncReport()
        remote_files = await self.drive.list_files()
        sync_logger.info(f"Sync for user {self.owner_id}: {len(remote_files)} Drive object(s)")

        try:
            remote_files = await self._purge_deleted_files(remote_files, report)
            folders_by_drive_id = self._adopt_folders(remote_files, report)
            self._adopt_and_relink_videos(remote_files, folders_by_drive_id, report)
            report.cleared_folder_refs = clear_dangling_folder_refs(self.owner_id, db=self.db)
        except SQLAlchemyError as e:
            self.db.rollback()
            sync_logger.error(f"Sync failed for user {self.owner_id}: {e}")
            raise LocalPersistError("sync", cause=e)

        sync_logger.info(
            f"Sync done for user {self.owner_id}: {len(report.adopted_folders)} folder(s) and "
            f"{len(report.adopted_videos)} video(s) adopted, {len(report.relinked_videos)} relinked, "
            f"{report.cleared_folder_refs} dangling folder ref(s) cleared, {len(report.purged_files)} deleted file(s) purged"
        )
        return report

    async def _purge_deleted_files(self, remote_files: List[DriveFile], report: SyncReport) -> List[DriveFile]:
        """Retry Drive deletes for deleted videos; returns the files left to reconcile"""
        deleted_ids = get_deleted_drive_file_ids(self.owner_id, db=self.db)
        if not deleted_ids:
            return remote_files

        remaining = []
        present = set()
        for remote in remote_files:
            if remote.id not in deleted_ids or remote.is_folder:
                remaining.append(remote)
                continue
            present.add(remote.id)
            try:
                await self.drive.delete_file(remote.id)
            except RemoteMutationError as e:
                sync_logger.warning(f"Drive file {remote.id} of a deleted video is still there: {e}")
                continue
            forget_deleted_drive_file(self.owner_id, remote.id, db=self.db)
            report.purged_files.append(remote.id)
            sync_logger.info(f"Purged Drive file {remote.id} of a deleted video")

        # Already gone from Drive
        for drive_file_id in deleted_ids - present:
            forget_deleted_drive_file(self.owner_id, drive_file_id, db=self.db)
        return remaining

    def _adopt_folders(self, remote_files: List[DriveFile], report: SyncReport) -> Dict[str, Folder]:
        folders = get_folders_by_drive_id(self.owner_id, db=self.db)
        for remote in remote_files:
            if not remote.is_folder or remote.id in folders:
                continue
            folder = add_folder(
                user_id=self.owner_id,
                drive_folder_id=remote.id,
                name=remote.name or "Untitled folder",
                color=DEFAULT_FOLDER_COLOR,
                icon=DEFAULT_FOLDER_ICON,
                db=self.db
            )
            folders[remote.id] = folder
            report.adopted_folders.append(folder.id)
            sync_adopted_counter.labels(resource="folder").inc()
            sync_logger.info(f"Adopted Drive folder '{remote.name}' ({remote.id}) as {folder.id}")
        return folders

    def _folder_for_parents(self, parents: List[str], folders_by_drive_id: Dict[str, Folder]) -> Optional[Folder]:
        for parent in parents:
            if parent in folders_by_drive_id:
                return folders_by_drive_id[parent]
        return None

    def _adopt_and_relink_videos(self, remote_files: List[DriveFile], folders_by_drive_id: Dict[str, Folder],
                                 report: SyncReport) -> None:
        tracked = {
            video.drive_file_id: video
            for video in self.db.query(Video).filter(
                Video.owner_id == self.owner_id,
                Video.drive_file_id.isnot(None)
            ).all()
        }

        for remote in remote_files:
            if remote.is_folder:
                continue
            folder = self._folder_for_parents(remote.parents, folders_by_drive_id)
            folder_id = folder.id if folder is not None else None

            video = tracked.get(remote.id)
            if video is not None:
                if video.folder_id != folder_id:
                    sync_logger.info(f"Relinking video {video.id} from {video.folder_id or 'root'} to {folder_id or 'root'}")
                    video.folder_id = folder_id
                    self.db.commit()
                    report.relinked_videos.append(video.id)
                continue

            if not _is_ours(remote, self.owner_id):
                continue
            report.adopted_videos.append(self._adopt_video(remote, folder_id).id)

    def _adopt_video(self, remote: DriveFile, folder_id: Optional[str]) -> Video:
        props = remote.app_properties
        original_size = props.get("original_size")
        duration = props.get("duration_seconds")
        title = props.get("title") or (remote.name.rsplit(".", 1)[0] if remote.name else "Untitled video")

        video = add_video(
            owner_id=self.owner_id,
            title=title,
            drive_file_id=remote.id,
            compressed_size=remote.size,
            original_size=int(original_size) if original_size and original_size.isdigit() else remote.size,
            folder_id=folder_id,
            is_public=props.get("is_public") == "true",
            mime_type=remote.mime_type or "video/mp4",
            duration_seconds=_parse_duration(duration),
            created_at=_parse_created_time(remote.created_time),
            db=self.db
        )
        sync_adopted_counter.labels(resource="video").inc()
        sync_logger.info(f"Adopted Drive file '{remote.name}' ({remote.id}) as video {video.id}")
        return video
