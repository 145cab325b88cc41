"""Shared pytest fixtures for test suite"""
import itertools
import json
import os
import sys
from pathlib import Path
from typing import Dict, Generator, List, Optional
from unittest.mock import patch

import httpx
import pytest
from cryptography.fernet import Fernet
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("ENVIRONMENT", "test")

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from dailyreel.api import deps
from dailyreel.api import uploads as uploads_api
from dailyreel.core.config import DRIVE_FOLDER_MIME_TYPE
from dailyreel.core.security import AuthProvider, require_auth
from dailyreel.db.session import get_db
from dailyreel.main import app
from dailyreel.models import Base
from dailyreel.services.capture import Recorder, validate_selection
from dailyreel.services.drive.client import DriveClient
from dailyreel.services.folder_service import FolderDirectoryService
from dailyreel.services.media import VideoBlob
from dailyreel.services.upload_pipeline import UploadPipeline


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

OWNER_ID = "user-1"
OTHER_OWNER_ID = "user-2"
VALID_TOKEN = "ya29.test-token"


class FakeDrive:
    """In-memory Google Drive served through httpx.MockTransport

    Deleting a folder deletes its children, like Drive does.
    Failures are injected per operation with fail_next().
    """

    def __init__(self):
        self.files: Dict[str, dict] = {}
        self.requests: List[httpx.Request] = []
        self.upload_calls = 0
        self.valid_token = VALID_TOKEN
        self._ids = itertools.count(1)
        self._failures: Dict[str, List[int]] = {}

    # --- Test helpers ---

    def fail_next(self, operation: str, *status_codes: int):
        """Answer the next calls of operation (upload/create/delete/move/list) with these statuses"""
        self._failures.setdefault(operation, []).extend(status_codes)

    def add_file(self, name: str, mime_type: str = "video/mp4", parents: Optional[List[str]] = None,
                 size: int = 1000, app_properties: Optional[dict] = None, file_id: Optional[str] = None) -> dict:
        file_id = file_id or f"drv{next(self._ids)}"
        self.files[file_id] = {
            "id": file_id,
            "name": name,
            "mimeType": mime_type,
            "parents": list(parents or ["root"]),
            "size": str(size),
            "appProperties": dict(app_properties or {}),
            "createdTime": "2026-10-01T08:30:00.000Z",
        }
        return self.files[file_id]

    def add_folder(self, name: str, file_id: Optional[str] = None) -> dict:
        folder = self.add_file(name, mime_type=DRIVE_FOLDER_MIME_TYPE, file_id=file_id)
        folder.pop("size")
        return folder

    def calls(self, method: str, path_prefix: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.startswith(path_prefix)]

    # --- Transport ---

    def _pop_failure(self, operation: str) -> Optional[httpx.Response]:
        pending = self._failures.get(operation)
        if pending:
            status = pending.pop(0)
            return httpx.Response(status, json={"error": {"code": status, "message": "injected failure"}})
        return None

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"Bearer {self.valid_token}":
            return httpx.Response(401, json={"error": {"code": 401, "message": "Invalid Credentials"}})

        path = request.url.path
        if path == "/upload/drive/v3/files" and request.method == "POST":
            self.upload_calls += 1
            return self._pop_failure("upload") or self._upload(request)
        if path == "/drive/v3/files":
            if request.method == "POST":
                return self._pop_failure("create") or self._create(request)
            if request.method == "GET":
                return self._pop_failure("list") or self._list(request)
        if path.startswith("/drive/v3/files/"):
            file_id = path.rsplit("/", 1)[-1]
            if request.method == "DELETE":
                return self._pop_failure("delete") or self._delete(file_id)
            if request.method == "PATCH":
                return self._pop_failure("move") or self._move(file_id, request)
        return httpx.Response(404, json={"error": {"code": 404, "message": "Not Found"}})

    def _upload(self, request: httpx.Request) -> httpx.Response:
        boundary = request.headers["Content-Type"].split("boundary=", 1)[1]
        parts = request.content.split(f"--{boundary}".encode())
        meta_part, file_part = parts[1], parts[2]
        metadata = json.loads(meta_part.split(b"\r\n\r\n", 1)[1][:-2])
        payload = file_part.split(b"\r\n\r\n", 1)[1][:-2]
        created = self.add_file(
            metadata["name"],
            mime_type=metadata.get("mimeType", "application/octet-stream"),
            parents=metadata.get("parents"),
            size=len(payload),
            app_properties=metadata.get("appProperties"),
        )
        created["description"] = metadata.get("description")
        created["payload"] = payload
        return httpx.Response(200, json={k: v for k, v in created.items() if k != "payload"})

    def _create(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        folder = self.add_folder(body["name"])
        folder["parents"] = body.get("parents", ["root"])
        return httpx.Response(200, json=folder)

    def _list(self, request: httpx.Request) -> httpx.Response:
        page_size = int(request.url.params.get("pageSize", 100))
        offset = int(request.url.params.get("pageToken", 0))
        items = [
            {k: v for k, v in f.items() if k not in ("payload", "description")}
            for f in self.files.values()
        ]
        page = items[offset:offset + page_size]
        data = {"files": page}
        if offset + page_size < len(items):
            data["nextPageToken"] = str(offset + page_size)
        return httpx.Response(200, json=data)

    def _delete(self, file_id: str) -> httpx.Response:
        if file_id not in self.files:
            return httpx.Response(404, json={"error": {"code": 404, "message": "File not found"}})
        del self.files[file_id]
        for child_id in [fid for fid, f in self.files.items() if file_id in f["parents"]]:
            self._delete(child_id)
        return httpx.Response(204)

    def _move(self, file_id: str, request: httpx.Request) -> httpx.Response:
        if file_id not in self.files:
            return httpx.Response(404, json={"error": {"code": 404, "message": "File not found"}})
        entry = self.files[file_id]
        remove = request.url.params.get("removeParents")
        add = request.url.params.get("addParents")
        entry["parents"] = [p for p in entry["parents"] if p != remove]
        if add and add not in entry["parents"]:
            entry["parents"].append(add)
        return httpx.Response(200, json={k: v for k, v in entry.items() if k not in ("payload", "description")})


class FakeAuth(AuthProvider):
    def __init__(self, user_id: str = OWNER_ID, token: Optional[str] = VALID_TOKEN):
        self.user_id = user_id
        self.token = token
        self.token_reads = 0

    def current_user_id(self) -> str:
        return self.user_id

    def current_access_token(self) -> Optional[str]:
        self.token_reads += 1
        return self.token

    def sign_out(self) -> None:
        self.token = None


class FakeCompressionEngine:
    """Stands in for CompressionEngine: output is ratio x input size"""

    def __init__(self, ratio: float = 0.4, error: Optional[Exception] = None):
        self.ratio = ratio
        self.error = error
        self.calls = []

    async def compress(self, blob: VideoBlob, preset: str = "medium") -> VideoBlob:
        self.calls.append((blob, preset))
        if self.error is not None:
            raise self.error
        return VideoBlob(data=b"c" * int(blob.size * self.ratio), mime_type="video/mp4", name="video.mp4")


class FakeRecorder(Recorder):
    def __init__(self, data: bytes = b"webm-bytes", start_error: Optional[Exception] = None):
        self.data = data
        self.start_error = start_error
        self.start_calls = 0
        self.stop_calls = 0

    async def start(self) -> None:
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error

    async def stop(self) -> VideoBlob:
        self.stop_calls += 1
        return VideoBlob(data=self.data, mime_type="video/webm", name="recording.webm")


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def fake_drive() -> FakeDrive:
    return FakeDrive()


@pytest.fixture
def http_client(fake_drive: FakeDrive) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_drive.handle))


@pytest.fixture
def fake_auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def drive_client(fake_auth: FakeAuth, http_client: httpx.AsyncClient) -> DriveClient:
    return DriveClient(fake_auth, http_client)


@pytest.fixture
def folder_service(drive_client: DriveClient, db_session: Session) -> FolderDirectoryService:
    return FolderDirectoryService(drive_client, db_session, OWNER_ID)


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def pipeline(fake_auth, drive_client, db_session, folder_service, sleeps) -> UploadPipeline:
    async def record_sleep(delay: float):
        sleeps.append(delay)

    return UploadPipeline(
        fake_auth, drive_client, db_session, folder_service,
        max_attempts=3, backoff_base=0.5, sleep=record_sleep
    )


@pytest.fixture
def fake_engine() -> FakeCompressionEngine:
    return FakeCompressionEngine()


@pytest.fixture(scope="function")
def client(db_session: Session, http_client: httpx.AsyncClient, fake_engine: FakeCompressionEngine,
           fake_drive: FakeDrive) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database, fake Drive and fake compression engine

    The X-User-Id header is the owner; the stored Drive credentials are bypassed
    by a FakeAuth that always holds the fake Drive's valid token.
    """

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    def override_auth_provider(user_id: str = Depends(require_auth)):
        return FakeAuth(user_id=user_id, token=fake_drive.valid_token)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_http_client] = lambda: http_client
    app.dependency_overrides[deps.get_compression_engine] = lambda: fake_engine
    app.dependency_overrides[deps.get_auth_provider] = override_auth_provider
    app.dependency_overrides[deps.get_selection_validator] = lambda: fake_validate

    try:
        # Disable OpenTelemetry and real resources in tests
        with patch('dailyreel.main.initialize_otel', return_value=False):
            with patch('dailyreel.main.instrument_sqlalchemy'):
                with TestClient(app) as test_client:
                    yield test_client
    finally:
        # Cleanup - always clear overrides
        app.dependency_overrides.clear()
        uploads_api._active_uploads.clear()


@pytest.fixture
def owner_headers() -> Dict[str, str]:
    return {"X-User-Id": OWNER_ID}


@pytest.fixture
def other_headers() -> Dict[str, str]:
    return {"X-User-Id": OTHER_OWNER_ID}


async def fake_probe(blob: VideoBlob) -> float:
    """Duration encoded in the test bytes as b"dur:<seconds>|..." """
    head = blob.data.split(b"|", 1)[0]
    if not head.startswith(b"dur:"):
        raise ValueError("not a video")
    return float(head[4:])


async def fake_validate(blob: VideoBlob):
    return await validate_selection(blob, probe=fake_probe)


def make_video_bytes(duration: float, size: int) -> bytes:
    head = f"dur:{duration:g}|".encode()
    return head + b"v" * (size - len(head))
