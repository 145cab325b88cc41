"""API route tests (FastAPI TestClient against the fake Drive)"""
import pytest

from dailyreel.api import deps
from dailyreel.api import uploads as uploads_api
from dailyreel.main import app
from dailyreel.models.oauth_token import OAuthToken
from dailyreel.models.video import Video

from conftest import OWNER_ID, FakeAuth, make_video_bytes


def upload(client, headers, duration=30, size=1000, **form):
    form.setdefault("title", "Morning walk")
    return client.post(
        "/api/uploads",
        files={"file": ("clip.mp4", make_video_bytes(duration, size), "video/mp4")},
        data=form,
        headers=headers,
    )


@pytest.mark.critical
class TestAuthentication:

    def test_missing_user_header_is_rejected(self, client):
        assert client.get("/api/videos").status_code == 401
        assert client.get("/api/folders").status_code == 401
        assert client.post("/api/sync").status_code == 401

    def test_public_routes_need_no_login(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
        assert client.get("/api/videos/public").status_code == 200


@pytest.mark.critical
class TestUploadRoute:

    def test_upload_completes_with_compression_ratio(self, client, owner_headers, fake_drive, db_session):
        response = upload(client, owner_headers, caption="first light", tags="sun, walk")

        assert response.status_code == 201
        body = response.json()
        assert body["phase"] == "completed"
        assert body["progress"] == 100
        assert body["original_size"] == 1000
        assert body["compressed_size"] == 400
        assert body["compression_ratio"] == 60.0
        assert body["remote_file_id"] in fake_drive.files

        video = db_session.query(Video).one()
        assert video.id == body["video_id"]
        assert video.tags == ["sun", "walk"]
        assert video.duration_seconds == 30

    def test_overlong_video_never_reaches_compression_or_drive(self, client, owner_headers, fake_drive,
                                                               fake_engine):
        response = upload(client, owner_headers, duration=95)

        assert response.status_code == 422
        assert response.json()["error"] == "DurationExceededError"
        assert fake_engine.calls == []
        assert fake_drive.requests == []

    def test_unreadable_file_is_rejected(self, client, owner_headers, fake_drive):
        response = client.post(
            "/api/uploads",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            data={"title": "Oops"},
            headers=owner_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"] == "InvalidFileError"
        assert fake_drive.requests == []

    def test_drive_not_connected_fails_before_compression(self, client, owner_headers, fake_engine):
        app.dependency_overrides[deps.get_auth_provider] = lambda: FakeAuth(token=None)

        response = upload(client, owner_headers)

        assert response.status_code == 401
        assert response.json()["error"] == "NotAuthenticatedError"
        assert fake_engine.calls == []

    def test_second_concurrent_upload_is_refused(self, client, owner_headers, fake_engine):
        uploads_api._active_uploads.add(OWNER_ID)

        response = upload(client, owner_headers)

        assert response.status_code == 409
        assert fake_engine.calls == []

    def test_upload_failure_reports_error_state(self, client, owner_headers, fake_drive, db_session):
        fake_drive.fail_next("upload", 500, 500, 500)

        response = upload(client, owner_headers)

        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "UploadFailedError"
        assert body["state"]["phase"] == "error"
        assert fake_drive.upload_calls == 3
        assert db_session.query(Video).count() == 0
        assert OWNER_ID not in uploads_api._active_uploads

    def test_unknown_preset_is_rejected(self, client, owner_headers, fake_engine):
        response = upload(client, owner_headers, preset="ultra")

        assert response.status_code == 400
        assert fake_engine.calls == []

    def test_upload_into_folder(self, client, owner_headers, fake_drive):
        folder = client.post("/api/folders", json={"name": "Trips"}, headers=owner_headers).json()

        body = upload(client, owner_headers, folder_id=folder["id"]).json()

        assert fake_drive.files[body["remote_file_id"]]["parents"] == [folder["drive_folder_id"]]
        listing = client.get("/api/folders", headers=owner_headers).json()
        assert listing[0]["video_count"] == 1


@pytest.mark.high
class TestFolderRoutes:

    def test_folder_lifecycle(self, client, owner_headers, fake_drive):
        created = client.post(
            "/api/folders", json={"name": "Trips", "color": "#ff0000", "icon": "plane"}, headers=owner_headers
        )
        assert created.status_code == 201
        folder = created.json()
        assert folder["drive_folder_id"] in fake_drive.files

        made_default = client.put(f"/api/folders/{folder['id']}/default", headers=owner_headers)
        assert made_default.json()["is_default"] is True

        assert client.delete("/api/folders/default", headers=owner_headers).json() == {"ok": True}
        assert client.get("/api/folders", headers=owner_headers).json()[0]["is_default"] is False

        first = client.delete(f"/api/folders/{folder['id']}", headers=owner_headers)
        second = client.delete(f"/api/folders/{folder['id']}", headers=owner_headers)
        assert first.json() == {"ok": True, "deleted": True}
        assert second.json() == {"ok": True, "deleted": False}
        assert folder["drive_folder_id"] not in fake_drive.files

    def test_invalid_color_is_rejected(self, client, owner_headers):
        response = client.post("/api/folders", json={"name": "Trips", "color": "red"}, headers=owner_headers)

        assert response.status_code == 422

    def test_drive_failure_creates_nothing(self, client, owner_headers, fake_drive):
        fake_drive.fail_next("create", 500)

        response = client.post("/api/folders", json={"name": "Trips"}, headers=owner_headers)

        assert response.status_code == 502
        assert response.json()["error"] == "RemoteMutationError"
        assert client.get("/api/folders", headers=owner_headers).json() == []

    def test_unknown_folder_is_404(self, client, owner_headers):
        assert client.put("/api/folders/missing/default", headers=owner_headers).status_code == 404


@pytest.mark.high
class TestVideoRoutes:

    def test_edit_share_view_move_and_delete(self, client, owner_headers, other_headers, fake_drive):
        video_id = upload(client, owner_headers).json()["video_id"]

        # Private: hidden from others
        assert client.get(f"/api/videos/{video_id}", headers=other_headers).status_code == 404

        patched = client.patch(
            f"/api/videos/{video_id}", json={"title": "Evening walk", "is_public": True}, headers=owner_headers
        )
        assert patched.status_code == 200
        assert patched.json()["title"] == "Evening walk"
        assert patched.json()["is_public"] is True

        feed = client.get("/api/videos/public").json()
        assert [v["id"] for v in feed] == [video_id]
        assert feed[0]["playback_url"].startswith("https://drive.google.com/file/d/")

        assert client.post(f"/api/videos/{video_id}/views", headers=other_headers).json() == {"views_count": 1}
        assert client.post(f"/api/videos/{video_id}/views", headers=owner_headers).json() == {"views_count": 1}

        folder = client.post("/api/folders", json={"name": "Walks"}, headers=owner_headers).json()
        moved = client.put(f"/api/videos/{video_id}/folder", json={"folder_id": folder["id"]}, headers=owner_headers)
        assert moved.json()["folder_id"] == folder["id"]
        in_folder = client.get("/api/videos", params={"folder_id": folder["id"]}, headers=owner_headers).json()
        assert [v["id"] for v in in_folder] == [video_id]
        assert client.get("/api/videos", params={"folder_id": "root"}, headers=owner_headers).json() == []

        remote_id = moved.json()["drive_file_id"]
        assert client.delete(f"/api/videos/{video_id}", headers=owner_headers).json() == {"ok": True}
        assert remote_id not in fake_drive.files
        assert client.get("/api/videos", headers=owner_headers).json() == []

    def test_blank_title_is_rejected(self, client, owner_headers):
        video_id = upload(client, owner_headers).json()["video_id"]

        response = client.patch(f"/api/videos/{video_id}", json={"title": "   "}, headers=owner_headers)

        assert response.status_code == 400

    def test_other_owner_cannot_edit(self, client, owner_headers, other_headers):
        video_id = upload(client, owner_headers).json()["video_id"]

        response = client.patch(f"/api/videos/{video_id}", json={"title": "Mine now"}, headers=other_headers)

        assert response.status_code == 404

    def test_unknown_sort_is_400(self, client, owner_headers):
        assert client.get("/api/videos", params={"sort": "random"}, headers=owner_headers).status_code == 400


@pytest.mark.high
class TestDriveRoutes:

    def test_link_drive_stores_encrypted_credentials(self, client, owner_headers, db_session):
        response = client.put(
            "/api/drive/credentials",
            json={"access_token": "ya29.abc", "refresh_token": "1//r", "scopes": ["drive.file"]},
            headers=owner_headers,
        )

        assert response.json() == {"connected": True}
        token = db_session.query(OAuthToken).one()
        assert token.user_id == OWNER_ID
        assert token.access_token != "ya29.abc"
        assert token.extra_data == {"scopes": ["drive.file"]}

    def test_status_reports_connection(self, client, owner_headers):
        assert client.get("/api/drive/status", headers=owner_headers).json() == {"connected": True}

    def test_unlink_drive(self, client, owner_headers):
        assert client.delete("/api/drive/credentials", headers=owner_headers).json() == {"connected": False}

    def test_sync_adopts_unknown_drive_video(self, client, owner_headers, fake_drive):
        fake_drive.add_file("lost.mp4")

        first = client.post("/api/sync", headers=owner_headers).json()
        second = client.post("/api/sync", headers=owner_headers).json()

        assert len(first["adopted_videos"]) == 1
        assert first["changed"] is True
        assert first["purged_files"] == []
        assert second["changed"] is False
        listing = client.get("/api/videos", headers=owner_headers).json()
        assert listing[0]["title"] == "lost"


@pytest.mark.medium
class TestMetricsEndpoint:

    def test_metrics_exposes_upload_counters(self, client, owner_headers):
        upload(client, owner_headers)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "dailyreel_successful_uploads_total" in response.text
