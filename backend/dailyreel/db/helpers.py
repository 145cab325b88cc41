"""Database helper functions for videos, folders and stored provider credentials

All reads and writes are scoped to an owner id. Write helpers roll the session
back before re-raising so a failed write never leaves the session unusable.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dailyreel.core.errors import InvalidTransitionError
from dailyreel.models.deleted_drive_file import DeletedDriveFile
from dailyreel.models.folder import Folder
from dailyreel.models.oauth_token import OAuthToken
from dailyreel.models.video import Video, VideoStatus, can_transition
from dailyreel.utils.encryption import decrypt, encrypt

logger = logging.getLogger(__name__)

# Sentinel for "no folder filter" (None means root)
ANY_FOLDER = object()

VIDEO_SORTS = {
    "newest": [Video.created_at.desc()],
    "oldest": [Video.created_at.asc()],
    "largest": [Video.original_size.desc(), Video.created_at.desc()],
    "smallest": [Video.original_size.asc(), Video.created_at.desc()],
    "most_views": [Video.views_count.desc(), Video.created_at.desc()],
}

FOLDER_SORTS = ("date", "name", "videos")


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise


# --- Videos ---

def add_video(owner_id: str, title: str, drive_file_id: str, compressed_size: Optional[int],
              original_size: Optional[int] = None, folder_id: Optional[str] = None,
              caption: Optional[str] = None, tags: Optional[List[str]] = None,
              is_public: bool = False, mime_type: str = "video/mp4",
              duration_seconds: Optional[float] = None,
              status: str = VideoStatus.COMPLETED.value,
              created_at: Optional[datetime] = None, db: Session = None) -> Video:
    """Insert a video row referencing a Drive file

    Args:
        owner_id: Owner id from the auth provider
        title: Display title
        drive_file_id: Drive file id returned by the upload
        compressed_size: Bytes stored in Drive
        original_size: Bytes before compression
        folder_id: Local folder id, None for root
        db: Database session
    """
    video = Video(
        owner_id=owner_id,
        title=title,
        drive_file_id=drive_file_id,
        compressed_size=compressed_size,
        original_size=original_size,
        folder_id=folder_id,
        caption=caption,
        tags=list(tags or []),
        is_public=is_public,
        mime_type=mime_type,
        duration_seconds=duration_seconds,
        status=status,
    )
    if created_at is not None:
        video.created_at = created_at
    db.add(video)
    _commit(db)
    db.refresh(video)
    return video


def get_video(video_id: str, owner_id: Optional[str] = None, db: Session = None) -> Optional[Video]:
    """Get a video by id, optionally restricted to an owner"""
    query = db.query(Video).filter(Video.id == video_id)
    if owner_id is not None:
        query = query.filter(Video.owner_id == owner_id)
    return query.first()


def list_videos(db: Session, owner_id: Optional[str] = None, public_only: bool = False,
                status: Optional[str] = None, is_public: Optional[bool] = None,
                folder_id: Any = ANY_FOLDER, search: Optional[str] = None,
                sort: str = "newest") -> List[Video]:
    """List videos for an owner's library or for the public feed

    Args:
        db: Database session
        owner_id: Restrict to this owner (library view)
        public_only: Restrict to public videos (feed view, used when owner_id is None)
        status: Filter by lifecycle status
        is_public: Filter by visibility
        folder_id: Local folder id, None for root, ANY_FOLDER for no filter
        search: Case-insensitive match on title or caption
        sort: One of VIDEO_SORTS
    """
    if sort not in VIDEO_SORTS:
        raise ValueError(f"Unknown sort '{sort}'. Expected one of: {', '.join(VIDEO_SORTS)}")

    query = db.query(Video)
    if owner_id is not None:
        query = query.filter(Video.owner_id == owner_id)
    if public_only or owner_id is None:
        query = query.filter(Video.is_public.is_(True))
    if status is not None:
        query = query.filter(Video.status == status)
    if is_public is not None:
        query = query.filter(Video.is_public.is_(is_public))
    if folder_id is None:
        query = query.filter(Video.folder_id.is_(None))
    elif folder_id is not ANY_FOLDER:
        query = query.filter(Video.folder_id == folder_id)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(or_(
            func.lower(Video.title).like(pattern),
            func.lower(func.coalesce(Video.caption, "")).like(pattern),
        ))

    return query.order_by(*VIDEO_SORTS[sort]).all()


def update_video(video_id: str, owner_id: str, db: Session = None, **kwargs) -> Optional[Video]:
    """Update a video owned by owner_id

    Args:
        video_id: Video ID
        owner_id: Owner ID
        db: Database session
        **kwargs: Column values to set. A status change must follow the video lifecycle.

    Raises:
        InvalidTransitionError: If the requested status change goes backwards
    """
    video = get_video(video_id, owner_id, db=db)
    if not video:
        return None

    new_status = kwargs.get("status")
    if new_status is not None and not can_transition(video.status, new_status):
        raise InvalidTransitionError(
            f"Cannot change video status from '{video.status}' to '{new_status}'"
        )

    for key, value in kwargs.items():
        if not hasattr(video, key):
            raise AttributeError(f"Video has no field '{key}'")
        setattr(video, key, value)

    _commit(db)
    db.refresh(video)
    return video


def delete_video_row(video_id: str, owner_id: str, db: Session = None, keep_deleted_marker: bool = False) -> bool:
    """Delete a video row, returns False when it does not exist

    With keep_deleted_marker the Drive file id is recorded in the same commit so
    sync does not adopt a file whose Drive delete failed.
    """
    video = get_video(video_id, owner_id, db=db)
    if not video:
        return False
    if keep_deleted_marker and video.drive_file_id:
        db.add(DeletedDriveFile(owner_id=owner_id, drive_file_id=video.drive_file_id))
    db.delete(video)
    _commit(db)
    return True


def increment_views(video_id: str, db: Session = None) -> int:
    """Atomically increment views_count, returns the new count"""
    db.execute(
        update(Video)
        .where(Video.id == video_id)
        .values(views_count=Video.views_count + 1)
    )
    _commit(db)
    return db.query(Video.views_count).filter(Video.id == video_id).scalar()


def clear_dangling_folder_refs(owner_id: str, db: Session = None) -> int:
    """Reset folder_id to root on videos whose folder row no longer exists"""
    existing = select(Folder.id).where(Folder.user_id == owner_id)
    dangling = db.query(Video).filter(
        Video.owner_id == owner_id,
        Video.folder_id.isnot(None),
        Video.folder_id.notin_(existing)
    ).all()
    for video in dangling:
        video.folder_id = None
    if dangling:
        _commit(db)
    return len(dangling)


def get_deleted_drive_file_ids(owner_id: str, db: Session = None) -> Set[str]:
    rows = db.query(DeletedDriveFile.drive_file_id).filter(DeletedDriveFile.owner_id == owner_id).all()
    return {row[0] for row in rows}


def forget_deleted_drive_file(owner_id: str, drive_file_id: str, db: Session = None) -> None:
    """Drop the deleted marker once the Drive file is really gone"""
    db.query(DeletedDriveFile).filter(
        DeletedDriveFile.owner_id == owner_id,
        DeletedDriveFile.drive_file_id == drive_file_id
    ).delete(synchronize_session=False)
    _commit(db)


# --- Folders ---

def add_folder(user_id: str, drive_folder_id: str, name: str, color: str, icon: str,
               is_default: bool = False, db: Session = None) -> Folder:
    """Insert a folder row mirroring a Drive folder"""
    folder = Folder(
        user_id=user_id,
        drive_folder_id=drive_folder_id,
        name=name,
        color=color,
        icon=icon,
        is_default=is_default,
    )
    db.add(folder)
    _commit(db)
    db.refresh(folder)
    return folder


def get_folder(folder_id: str, user_id: str, db: Session = None) -> Optional[Folder]:
    return db.query(Folder).filter(
        Folder.id == folder_id,
        Folder.user_id == user_id
    ).first()


def get_default_folder(user_id: str, db: Session = None) -> Optional[Folder]:
    return db.query(Folder).filter(
        Folder.user_id == user_id,
        Folder.is_default.is_(True)
    ).order_by(Folder.created_at.desc()).first()


def get_folders_by_drive_id(user_id: str, db: Session = None) -> Dict[str, Folder]:
    """Map of drive_folder_id -> Folder for the owner"""
    folders = db.query(Folder).filter(Folder.user_id == user_id).all()
    return {folder.drive_folder_id: folder for folder in folders}


def list_folders_with_counts(user_id: str, db: Session = None, search: Optional[str] = None,
                             sort: str = "date") -> List[Tuple[Folder, int]]:
    """List folders with their video counts

    Args:
        user_id: Owner ID
        db: Database session
        search: Case-insensitive name filter
        sort: "date" (newest first), "name" or "videos" (most first)
    """
    if sort not in FOLDER_SORTS:
        raise ValueError(f"Unknown sort '{sort}'. Expected one of: {', '.join(FOLDER_SORTS)}")

    video_count = func.count(Video.id).label("video_count")
    query = (
        db.query(Folder, video_count)
        .outerjoin(Video, Video.folder_id == Folder.id)
        .filter(Folder.user_id == user_id)
        .group_by(Folder.id)
    )
    if search:
        query = query.filter(func.lower(Folder.name).like(f"%{search.lower()}%"))

    if sort == "name":
        query = query.order_by(func.lower(Folder.name).asc())
    elif sort == "videos":
        query = query.order_by(video_count.desc(), Folder.created_at.desc())
    else:
        query = query.order_by(Folder.created_at.desc())

    return [(folder, count) for folder, count in query.all()]


def delete_folder_row(folder_id: str, user_id: str, db: Session = None) -> bool:
    """Delete a folder row and move its videos to root in the same transaction

    Returns False when the folder does not exist.
    """
    folder = get_folder(folder_id, user_id, db=db)
    if not folder:
        return False
    db.query(Video).filter(
        Video.owner_id == user_id,
        Video.folder_id == folder_id
    ).update({Video.folder_id: None}, synchronize_session=False)
    db.delete(folder)
    _commit(db)
    return True


def set_default_folder_flag(user_id: str, folder_id: Optional[str], db: Session = None) -> Optional[Folder]:
    """Clear the default flag on all owner folders, then set it on folder_id

    Both writes share one transaction. Passing None only clears.
    """
    db.query(Folder).filter(Folder.user_id == user_id).update(
        {Folder.is_default: False}, synchronize_session=False
    )
    target = None
    if folder_id is not None:
        target = get_folder(folder_id, user_id, db=db)
        if target is not None:
            target.is_default = True
    _commit(db)
    if target is not None:
        db.refresh(target)
    return target


def count_default_folders(user_id: str, db: Session = None) -> int:
    return db.query(func.count(Folder.id)).filter(
        Folder.user_id == user_id,
        Folder.is_default.is_(True)
    ).scalar()


# --- Provider credentials ---

def get_oauth_token(user_id: str, provider: str = "google_drive", db: Session = None) -> Optional[OAuthToken]:
    """Get stored credentials (still encrypted)"""
    return db.query(OAuthToken).filter(
        OAuthToken.user_id == user_id,
        OAuthToken.provider == provider
    ).first()


def get_decrypted_oauth_token(user_id: str, provider: str = "google_drive",
                              db: Session = None) -> Optional[Dict[str, Any]]:
    """Get stored credentials as a plain dict with decrypted tokens

    Returns None when nothing is stored or the stored tokens cannot be decrypted.
    """
    token = get_oauth_token(user_id, provider, db=db)
    if not token:
        return None
    try:
        return {
            "access_token": decrypt(token.access_token),
            "refresh_token": decrypt(token.refresh_token) if token.refresh_token else None,
            "expires_at": token.expires_at,
            "extra_data": token.extra_data or {},
        }
    except ValueError as e:
        logger.warning(f"Failed to decrypt {provider} token for user {user_id}: {e}")
        return None


def save_oauth_token(user_id: str, access_token: str, refresh_token: Optional[str] = None,
                     expires_at: Optional[datetime] = None, extra_data: Optional[Dict] = None,
                     provider: str = "google_drive", db: Session = None) -> OAuthToken:
    """Save or update stored credentials (tokens are encrypted)

    A None refresh_token keeps the previously stored one.
    """
    token = get_oauth_token(user_id, provider, db=db)
    if token is None:
        token = OAuthToken(user_id=user_id, provider=provider)
        db.add(token)

    token.access_token = encrypt(access_token)
    if refresh_token:
        token.refresh_token = encrypt(refresh_token)
    token.expires_at = expires_at
    if extra_data is not None:
        token.extra_data = extra_data

    _commit(db)
    db.refresh(token)
    return token


def delete_oauth_token(user_id: str, provider: str = "google_drive", db: Session = None) -> bool:
    token = get_oauth_token(user_id, provider, db=db)
    if not token:
        return False
    db.delete(token)
    _commit(db)
    return True
