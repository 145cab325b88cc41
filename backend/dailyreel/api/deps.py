"""Shared FastAPI dependencies"""
import httpx
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from dailyreel.core.security import AuthProvider, StoredCredentialsAuthProvider, require_auth
from dailyreel.db.session import get_db
from dailyreel.services.capture import validate_selection
from dailyreel.services.compression import CompressionEngine
from dailyreel.services.drive.client import DriveClient
from dailyreel.services.folder_service import FolderDirectoryService


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Process-wide HTTP client created in the app lifespan"""
    return request.app.state.http_client


def get_compression_engine(request: Request) -> CompressionEngine:
    """Process-wide compression engine created in the app lifespan"""
    return request.app.state.compression_engine


def get_auth_provider(
    user_id: str = Depends(require_auth),
    db: Session = Depends(get_db)
) -> AuthProvider:
    return StoredCredentialsAuthProvider(user_id, db)


def get_drive_client(
    auth: AuthProvider = Depends(get_auth_provider),
    http: httpx.AsyncClient = Depends(get_http_client)
) -> DriveClient:
    return DriveClient(auth, http)


def get_folder_service(
    user_id: str = Depends(require_auth),
    drive: DriveClient = Depends(get_drive_client),
    db: Session = Depends(get_db)
) -> FolderDirectoryService:
    return FolderDirectoryService(drive, db, user_id)


def get_selection_validator():
    """Duration check applied to uploaded files"""
    return validate_selection
