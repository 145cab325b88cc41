"""Folder directory service: Drive folder tree mirrored by local folder rows

Every mutation runs remote first, then local. A local row never claims a
Drive location the remote object is not actually in. Root is the Drive root
and is represented locally by folder_id = None.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dailyreel.core.config import DEFAULT_FOLDER_COLOR, DEFAULT_FOLDER_ICON, DRIVE_ROOT
from dailyreel.core.errors import LocalPersistError, RemoteMutationError, ResourceNotFoundError
from dailyreel.core.metrics import split_brain_counter
from dailyreel.db.helpers import (
    add_folder, delete_folder_row, get_default_folder, get_folder, get_video,
    list_folders_with_counts, set_default_folder_flag
)
from dailyreel.models.folder import Folder
from dailyreel.models.video import Video
from dailyreel.services.drive.client import DriveClient

folders_logger = logging.getLogger("folders")


@dataclass
class FolderListing:
    folder: Folder
    video_count: int


class FolderDirectoryService:

    def __init__(self, drive: DriveClient, db: Session, owner_id: str):
        self.drive = drive
        self.db = db
        self.owner_id = owner_id

    def _get_folder_or_raise(self, folder_id: str) -> Folder:
        folder = get_folder(folder_id, self.owner_id, db=self.db)
        if not folder:
            raise ResourceNotFoundError("folder", folder_id)
        return folder

    def _drive_parent_of(self, video: Video) -> str:
        """Drive parent id of a video; a missing or dangling folder ref means root"""
        if video.folder_id:
            folder = get_folder(video.folder_id, self.owner_id, db=self.db)
            if folder:
                return folder.drive_folder_id
        return DRIVE_ROOT

    async def create_folder(self, name: str, color: str = DEFAULT_FOLDER_COLOR,
                            icon: str = DEFAULT_FOLDER_ICON, is_default: bool = False) -> Folder:
        """Create the Drive folder, then the local row

        Raises:
            ValueError: If the name is blank
            RemoteMutationError: If Drive refused the folder (no local row is written)
            LocalPersistError: If the local row could not be written after Drive succeeded
                (split-brain), or the new folder could not be made the default (not split-brain)
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("Folder name is required")

        remote = await self.drive.create_folder(name)
        folders_logger.info(f"Created Drive folder '{name}' ({remote.id}) for user {self.owner_id}")

        try:
            folder = add_folder(
                user_id=self.owner_id,
                drive_folder_id=remote.id,
                name=name,
                color=color or DEFAULT_FOLDER_COLOR,
                icon=icon or DEFAULT_FOLDER_ICON,
                db=self.db
            )
        except SQLAlchemyError as e:
            split_brain_counter.labels(resource="folder").inc()
            folders_logger.error(
                f"Drive folder {remote.id} created but local row failed for user {self.owner_id}: {e}",
                extra={"drive_folder_id": remote.id, "user_id": self.owner_id}
            )
            raise LocalPersistError("create folder", remote_id=remote.id, cause=e)

        if is_default:
            # The folder exists on both sides by now; only the flag can be missing
            try:
                folder = set_default_folder_flag(self.owner_id, folder.id, db=self.db)
            except SQLAlchemyError as e:
                folders_logger.error(f"Folder {folder.id} created but could not be made the default: {e}")
                raise LocalPersistError("set default folder", cause=e)

        return folder

    async def delete_folder(self, folder_id: str) -> bool:
        """Delete a folder, keeping its videos at root

        Videos are moved to root in Drive first since deleting a Drive folder
        deletes its children. Returns False when the folder does not exist locally.

        Raises:
            RemoteMutationError: If a Drive move or the Drive delete failed
            LocalPersistError: If the local delete failed after Drive succeeded
        """
        folder = get_folder(folder_id, self.owner_id, db=self.db)
        if not folder:
            folders_logger.info(f"Folder {folder_id} already deleted for user {self.owner_id}")
            return False

        contained = self.db.query(Video).filter(
            Video.owner_id == self.owner_id,
            Video.folder_id == folder.id
        ).all()
        for video in contained:
            if video.drive_file_id:
                try:
                    await self.drive.move_file(video.drive_file_id, DRIVE_ROOT, folder.drive_folder_id)
                except RemoteMutationError as e:
                    if e.status_code != 404:
                        raise
                    folders_logger.warning(f"Drive file {video.drive_file_id} of video {video.id} is gone, skipping move")
            try:
                video.folder_id = None
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                if video.drive_file_id:
                    split_brain_counter.labels(resource="video").inc()
                folders_logger.error(f"Video {video.id} moved to Drive root but its folder ref was not cleared: {e}")
                raise LocalPersistError("move video to root", remote_id=video.drive_file_id, cause=e)

        if not await self.drive.delete_file(folder.drive_folder_id):
            folders_logger.info(f"Drive folder {folder.drive_folder_id} was already gone")

        try:
            delete_folder_row(folder.id, self.owner_id, db=self.db)
        except SQLAlchemyError as e:
            split_brain_counter.labels(resource="folder").inc()
            folders_logger.error(f"Drive folder {folder.drive_folder_id} deleted but local row remains: {e}")
            raise LocalPersistError("delete folder", remote_id=folder.drive_folder_id, cause=e)

        folders_logger.info(f"Deleted folder '{folder.name}' ({folder_id}) for user {self.owner_id}, {len(contained)} video(s) moved to root")
        return True

    async def move_video(self, video_id: str, target_folder_id: Optional[str]) -> Video:
        """Move a video into a folder (None for root)

        The local folder reference changes only after Drive confirms the move.

        Raises:
            ResourceNotFoundError: If the video or target folder does not exist
            RemoteMutationError: If the video has no Drive file or Drive refused the move
            LocalPersistError: If the local update failed after Drive moved the file
        """
        video = get_video(video_id, self.owner_id, db=self.db)
        if not video:
            raise ResourceNotFoundError("video", video_id)
        if not video.drive_file_id:
            raise RemoteMutationError("move video", message="This video is not stored in Google Drive yet")

        previous_parent = self._drive_parent_of(video)
        target_parent = DRIVE_ROOT
        if target_folder_id is not None:
            target_parent = self._get_folder_or_raise(target_folder_id).drive_folder_id

        if previous_parent != target_parent:
            await self.drive.move_file(video.drive_file_id, add_parent=target_parent, remove_parent=previous_parent)

        try:
            video.folder_id = target_folder_id
            self.db.commit()
            self.db.refresh(video)
        except SQLAlchemyError as e:
            self.db.rollback()
            split_brain_counter.labels(resource="video").inc()
            folders_logger.error(f"Drive moved {video.drive_file_id} but video {video_id} was not updated: {e}")
            raise LocalPersistError("move video", remote_id=video.drive_file_id, cause=e)

        folders_logger.info(f"Moved video {video_id} to {target_folder_id or 'root'}")
        return video

    def set_default_folder(self, folder_id: Optional[str]) -> Optional[Folder]:
        """Make folder_id the only default folder; None clears the default"""
        if folder_id is not None:
            self._get_folder_or_raise(folder_id)
        try:
            return set_default_folder_flag(self.owner_id, folder_id, db=self.db)
        except SQLAlchemyError as e:
            folders_logger.error(f"Failed to set default folder for user {self.owner_id}: {e}")
            raise LocalPersistError("set default folder", cause=e)

    def list_folders(self, search: Optional[str] = None, sort: str = "date") -> List[FolderListing]:
        rows = list_folders_with_counts(self.owner_id, db=self.db, search=search, sort=sort)
        return [FolderListing(folder=folder, video_count=count) for folder, count in rows]

    def resolve_destination(self, folder_id: Optional[str], use_default_folder: bool = True) -> Optional[Folder]:
        """Folder an upload lands in, None for root

        An explicit folder wins. Without one the owner's default folder is used
        unless the caller asked for root explicitly (use_default_folder=False).
        """
        if folder_id is not None:
            return self._get_folder_or_raise(folder_id)
        if use_default_folder:
            return get_default_folder(self.owner_id, db=self.db)
        return None
