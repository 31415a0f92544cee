import pytest
from fastapi.testclient import TestClient

import educhat.main as main_module
from educhat.config import Config
from educhat.routers.uploads import get_upload_service
from educhat.services.upload_service import UploadService
from educhat.utils.security import create_access_token

from conftest import STUDENT_ID


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(Config, "UPLOAD_DIR", str(tmp_path))
    app = main_module.create_app()
    app.dependency_overrides[get_upload_service] = lambda: UploadService(upload_dir=str(tmp_path), max_mb=0.001)
    return TestClient(app)


HEADERS = {"Authorization": f"Bearer {create_access_token(STUDENT_ID, 'student')}"}


def test_upload_image_returns_attachment(client, tmp_path):
    resp = client.post("/chat/upload-image", files={"image": ("cat.png", b"\x89PNG data", "image/png")}, headers=HEADERS)

    assert resp.status_code == 201
    attachment = resp.json()["data"]["attachment"]
    assert attachment["type"] == "image"
    assert attachment["filename"] == "cat.png"
    assert attachment["size"] == 9
    assert attachment["url"].startswith(Config.UPLOAD_BASE_URL + "/") and attachment["url"].endswith(".png")
    assert len(list(tmp_path.iterdir())) == 1


def test_upload_without_file_is_rejected(client):
    resp = client.post("/chat/upload-image", headers=HEADERS)
    assert resp.status_code == 400
    assert resp.json()["message"] == "No image file provided"


def test_upload_rejects_other_types_and_oversize(client, tmp_path):
    resp = client.post("/chat/upload-image", files={"image": ("notes.txt", b"hi", "text/plain")}, headers=HEADERS)
    assert resp.status_code == 400

    resp = client.post("/chat/upload-image", files={"image": ("big.png", b"x" * 4096, "image/png")}, headers=HEADERS)
    assert resp.status_code == 400
    assert resp.json()["errors"] == ["image"]
    assert list(tmp_path.iterdir()) == []


def test_uploaded_image_url_is_served(client):
    resp = client.post("/chat/upload-image", files={"image": ("cat.png", b"\x89PNG data", "image/png")}, headers=HEADERS)
    url = resp.json()["data"]["attachment"]["url"]

    served = client.get(url)

    assert served.status_code == 200
    assert served.content == b"\x89PNG data"
    assert client.get(f"{Config.UPLOAD_BASE_URL}/missing.png").status_code == 404
