"""Google Drive REST client"""
from dailyreel.services.drive.client import DriveClient, DriveFile
from dailyreel.services.drive.multipart import build_multipart_related, make_boundary

__all__ = ["DriveClient", "DriveFile", "build_multipart_related", "make_boundary"]
