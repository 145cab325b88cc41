"""Google Drive v3 REST calls used by the upload pipeline, folder service and sync"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from dailyreel.core.config import DRIVE_FILES_URL, DRIVE_FOLDER_MIME_TYPE, DRIVE_ROOT, DRIVE_UPLOAD_URL
from dailyreel.core.errors import AuthRejectedError, DriveAPIError, NotAuthenticatedError, RemoteMutationError
from dailyreel.core.security import AuthProvider

drive_logger = logging.getLogger("drive")

FILE_FIELDS = "id,name,mimeType,parents,size,appProperties,createdTime"


@dataclass
class DriveFile:
    id: str
    name: str = ""
    mime_type: str = ""
    parents: List[str] = field(default_factory=list)
    size: Optional[int] = None
    app_properties: Dict[str, str] = field(default_factory=dict)
    created_time: Optional[str] = None

    @property
    def is_folder(self) -> bool:
        return self.mime_type == DRIVE_FOLDER_MIME_TYPE

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "DriveFile":
        size = data.get("size")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType", ""),
            parents=list(data.get("parents") or []),
            size=int(size) if size is not None else None,
            app_properties=dict(data.get("appProperties") or {}),
            created_time=data.get("createdTime"),
        )


class DriveClient:
    """Thin async wrapper over the Drive REST API

    The access token is read from the auth provider before every request.
    401/403 always raise AuthRejectedError since retrying with the same token
    cannot succeed.
    """

    def __init__(self, auth: AuthProvider, http: httpx.AsyncClient,
                 files_url: str = DRIVE_FILES_URL, upload_url: str = DRIVE_UPLOAD_URL):
        self.auth = auth
        self.http = http
        self.files_url = files_url
        self.upload_url = upload_url

    def _headers(self) -> Dict[str, str]:
        token = self.auth.current_access_token()
        if not token:
            raise NotAuthenticatedError()
        return {"Authorization": f"Bearer {token}"}

    @staticmethod
    def _check(response: httpx.Response, operation: str) -> None:
        if response.status_code in (401, 403):
            drive_logger.warning(f"Drive {operation} rejected with HTTP {response.status_code}")
            raise AuthRejectedError(response.status_code)
        if not response.is_success:
            raise DriveAPIError(response.status_code, response.text, operation=operation)

    async def upload_multipart(self, body: bytes, content_type: str) -> DriveFile:
        """Send one multipart upload request (no retry here)

        Raises:
            NotAuthenticatedError, AuthRejectedError, DriveAPIError, httpx.HTTPError
        """
        headers = self._headers()
        headers["Content-Type"] = content_type
        response = await self.http.post(
            self.upload_url,
            params={"fields": FILE_FIELDS},
            headers=headers,
            content=body,
        )
        self._check(response, "upload")
        data = response.json()
        if not data.get("id"):
            raise DriveAPIError(response.status_code, "Response did not include a file id", operation="upload")
        return DriveFile.from_api(data)

    async def create_folder(self, name: str, parent_id: str = DRIVE_ROOT) -> DriveFile:
        """Create a folder under parent_id and return it"""
        try:
            response = await self.http.post(
                self.files_url,
                params={"fields": FILE_FIELDS},
                headers=self._headers(),
                json={"name": name, "mimeType": DRIVE_FOLDER_MIME_TYPE, "parents": [parent_id]},
            )
            self._check(response, "create folder")
            data = response.json()
            if not data.get("id"):
                raise RemoteMutationError("create folder", response.status_code, "Google Drive did not return the new folder id")
            return DriveFile.from_api(data)
        except DriveAPIError as e:
            raise RemoteMutationError("create folder", e.status_code)
        except httpx.HTTPError as e:
            drive_logger.error(f"Network error creating Drive folder '{name}': {e}")
            raise RemoteMutationError("create folder", message=f"Failed to create folder in Google Drive: {e}")

    async def delete_file(self, file_id: str) -> bool:
        """Delete a file or folder; returns False when it was already gone (404)"""
        try:
            response = await self.http.delete(f"{self.files_url}/{file_id}", headers=self._headers())
            if response.status_code == 404:
                drive_logger.info(f"Drive object {file_id} already deleted")
                return False
            self._check(response, "delete")
            return True
        except DriveAPIError as e:
            raise RemoteMutationError("delete", e.status_code)
        except httpx.HTTPError as e:
            drive_logger.error(f"Network error deleting Drive object {file_id}: {e}")
            raise RemoteMutationError("delete", message=f"Failed to delete from Google Drive: {e}")

    async def move_file(self, file_id: str, add_parent: str, remove_parent: str) -> DriveFile:
        """Swap a file's parent in a single PATCH"""
        try:
            response = await self.http.patch(
                f"{self.files_url}/{file_id}",
                params={"addParents": add_parent, "removeParents": remove_parent, "fields": FILE_FIELDS},
                headers=self._headers(),
            )
            self._check(response, "move")
            return DriveFile.from_api(response.json())
        except DriveAPIError as e:
            raise RemoteMutationError("move video", e.status_code)
        except httpx.HTTPError as e:
            drive_logger.error(f"Network error moving Drive file {file_id}: {e}")
            raise RemoteMutationError("move video", message=f"Failed to move video in Google Drive: {e}")

    async def list_files(self, query: str = "trashed = false", page_size: int = 100) -> List[DriveFile]:
        """List every file visible to the app, following pagination"""
        files: List[DriveFile] = []
        page_token = None
        while True:
            params = {
                "q": query,
                "pageSize": page_size,
                "fields": f"nextPageToken,files({FILE_FIELDS})",
            }
            if page_token:
                params["pageToken"] = page_token
            response = await self.http.get(self.files_url, params=params, headers=self._headers())
            self._check(response, "list")
            data = response.json()
            files.extend(DriveFile.from_api(item) for item in data.get("files", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                return files
