"""API tests driving one session through upload, edit, download and reset."""

import io
import time

from fastapi.testclient import TestClient
from PIL import Image

from nanovision.config.settings import ProgressSettings, Settings
from nanovision.controller.main_controller import create_app


def make_png(size=(5, 4), color=(30, 60, 90)):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def mock_app(tmp_path):
    settings = Settings(
        provider="mock",
        run_mode="mock",
        progress=ProgressSettings(interval_seconds=0.01),
        download_dir=tmp_path,
    )
    return create_app(settings=settings)


def wait_until_settled(client, attempts=300):
    for _ in range(attempts):
        data = client.get("/api/session").json()
        if data["status"] != "generating":
            return data
        time.sleep(0.01)
    raise AssertionError("edit never settled")


class TestHealth:
    def test_health_reports_provider(self, tmp_path):
        with TestClient(mock_app(tmp_path)) as client:
            data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["provider"] == "mock"
        assert data["mode"] == "mock"


class TestSessionFlow:
    def test_full_edit_cycle(self, tmp_path):
        with TestClient(mock_app(tmp_path)) as client:
            resp = client.post(
                "/api/session/upload",
                files={"file": ("photo.png", make_png(), "image/png")},
            )
            assert resp.status_code == 200
            snap = resp.json()
            assert snap["status"] == "idle"
            assert snap["original"]["filename"] == "photo.png"
            assert snap["original"]["width"] == 5
            original_handle = snap["original"]["handle"]

            shown = client.get(f"/api/session/display/{original_handle}")
            assert shown.status_code == 200
            assert shown.headers["content-type"] == "image/png"
            assert shown.content == make_png()

            resp = client.put(
                "/api/session/instruction", json={"instruction": "make it black and white"}
            )
            assert resp.json()["can_submit"] is True

            resp = client.post("/api/session/submit")
            body = resp.json()
            assert body["accepted"] is True
            assert body["session"]["status"] == "generating"

            snap = wait_until_settled(client)
            assert snap["status"] == "succeeded"
            assert snap["progress"] == 100
            assert snap["generated"]["media_type"] == "image/png"

            download = client.get("/api/session/download")
            assert download.status_code == 200
            disposition = download.headers["content-disposition"]
            assert 'filename="nanovision-edit-' in disposition
            assert Image.open(io.BytesIO(download.content)).mode == "L"

            exported = client.post("/api/session/export").json()
            assert (tmp_path / exported["filename"]).exists()

            snap = client.post("/api/session/reset").json()
            assert snap["status"] == "idle"
            assert snap["original"] is None and snap["generated"] is None
            assert client.get(f"/api/session/display/{original_handle}").status_code == 404

    def test_blank_instruction_is_not_accepted(self, tmp_path):
        with TestClient(mock_app(tmp_path)) as client:
            client.post(
                "/api/session/upload",
                files={"file": ("photo.png", make_png(), "image/png")},
            )
            client.put("/api/session/instruction", json={"instruction": "   "})
            body = client.post("/api/session/submit").json()

        assert body["accepted"] is False
        assert body["session"]["status"] == "idle"

    def test_pdf_upload_is_rejected(self, tmp_path):
        with TestClient(mock_app(tmp_path)) as client:
            snap = client.post(
                "/api/session/upload",
                files={"file": ("document.pdf", b"%PDF-1.7", "application/pdf")},
            ).json()

        assert snap["status"] == "failed"
        assert snap["failure"]["error_type"] == "invalid_media_type"
        assert snap["original"] is None

    def test_download_before_edit_is_conflict(self, tmp_path):
        with TestClient(mock_app(tmp_path)) as client:
            resp = client.get("/api/session/download")

        assert resp.status_code == 409
        assert resp.json()["error_type"] == "nothing_to_download"

    def test_export_before_edit_is_conflict(self, tmp_path):
        with TestClient(mock_app(tmp_path)) as client:
            resp = client.post("/api/session/export")

        assert resp.status_code == 409
        assert resp.json()["error_type"] == "nothing_to_download"
        assert list(tmp_path.glob("*.png")) == []

    def test_oversized_upload_is_accepted(self, tmp_path):
        buf = io.BytesIO()
        Image.new("1", (20000, 10000)).save(buf, format="PNG")

        with TestClient(mock_app(tmp_path)) as client:
            resp = client.post(
                "/api/session/upload",
                files={"file": ("huge.png", buf.getvalue(), "image/png")},
            )
            client.put("/api/session/instruction", json={"instruction": "tidy it"})
            can_submit = client.get("/api/session").json()["can_submit"]

        assert resp.status_code == 200
        snap = resp.json()
        assert snap["status"] == "idle"
        assert snap["original"]["width"] is None
        assert can_submit is True
