"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from dailyreel.models.base import Base
from dailyreel.models.folder import Folder
from dailyreel.models.video import Video, VideoStatus
from dailyreel.models.oauth_token import OAuthToken
from dailyreel.models.deleted_drive_file import DeletedDriveFile

__all__ = ["Base", "Folder", "Video", "VideoStatus", "OAuthToken", "DeletedDriveFile"]
