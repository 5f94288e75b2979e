import os

import cloudinary.uploader
import pytest

import config
import uploads
from errors import NotFoundError

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def post_image(client, name="photo.png", content=PNG, mimetype="image/png"):
    return client.post("/api/upload/image", files={"image": (name, content, mimetype)})


@pytest.fixture
def cdn(monkeypatch):
    monkeypatch.setattr(config, "CLOUDINARY_CLOUD_NAME", "demo")
    monkeypatch.setattr(config, "CLOUDINARY_API_KEY", "key")
    monkeypatch.setattr(config, "CLOUDINARY_API_SECRET", "secret")
    calls = []

    def fake_upload(path, **options):
        calls.append((path, options))
        return {"secure_url": "https://res.cloudinary.com/demo/image/upload/x.png", "public_id": "medtrap/x"}

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
    return calls


def test_local_upload(client):
    res = post_image(client)
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["storage"] == "local"
    assert data["filename"].startswith("image-") and data["filename"].endswith(".png")
    assert data["url"] == f"/uploads/{data['filename']}"
    assert data["size"] == len(PNG)
    assert os.path.isfile(data["path"])


def test_rejects_non_image(client):
    res = post_image(client, name="notes.txt", content=b"hello", mimetype="text/plain")
    assert res.status_code == 400
    assert res.json()["message"] == "Only image files are allowed"


def test_rejects_oversized(client, monkeypatch):
    monkeypatch.setattr(config, "MAX_FILE_SIZE", 16)
    res = post_image(client)
    assert res.status_code == 400
    assert res.json()["message"].startswith("File too large")


def test_cloudinary_replaces_url(client, cdn):
    data = post_image(client).json()["data"]
    assert data["storage"] == "cloudinary"
    assert data["url"].startswith("https://res.cloudinary.com/")
    assert data["publicId"] == "medtrap/x"
    assert cdn[0][1]["folder"] == "medtrap"
    assert os.path.isfile(data["path"])


def test_cloudinary_delete_local(client, cdn, monkeypatch):
    monkeypatch.setattr(config, "CLOUDINARY_DELETE_LOCAL", True)
    data = post_image(client).json()["data"]
    assert data["path"] is None
    assert os.listdir(config.UPLOAD_PATH) == []


def test_cloudinary_failure_falls_back_to_local(client, cdn, monkeypatch, caplog):
    def broken(path, **options):
        raise RuntimeError("cdn down")

    monkeypatch.setattr(cloudinary.uploader, "upload", broken)
    res = post_image(client)
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["storage"] == "local"
    assert data["url"].startswith("/uploads/")
    assert "Cloudinary upload failed" in caplog.text


def test_multiple_upload_requires_auth(client, owner_headers):
    files = [("images", (f"p{i}.png", PNG, "image/png")) for i in range(3)]
    assert client.post("/api/upload/images", files=files).status_code == 401
    res = client.post("/api/upload/images", files=files, headers=owner_headers)
    assert res.status_code == 200
    assert res.json()["count"] == 3


def test_multiple_upload_limit(client, owner_headers):
    files = [("images", (f"p{i}.png", PNG, "image/png")) for i in range(11)]
    res = client.post("/api/upload/images", files=files, headers=owner_headers)
    assert res.status_code == 400
    assert not os.path.isdir(config.UPLOAD_PATH) or os.listdir(config.UPLOAD_PATH) == []


def test_list_info_delete(client, owner_headers):
    filename = post_image(client).json()["data"]["filename"]

    listed = client.get("/api/upload", headers=owner_headers).json()
    assert [f["filename"] for f in listed["data"]] == [filename]

    info = client.get(f"/api/upload/{filename}", headers=owner_headers).json()["data"]
    assert info["size"] == len(PNG)

    assert client.delete(f"/api/upload/{filename}", headers=owner_headers).status_code == 200
    again = client.delete(f"/api/upload/{filename}", headers=owner_headers)
    assert again.status_code == 404
    assert again.json()["message"] == "File not found"


def test_path_components_are_not_found(client):
    with pytest.raises(NotFoundError):
        uploads.file_info("../pyproject.toml")


def test_rejects_content_that_is_not_the_declared_image(client):
    res = post_image(client, name="x.html", content=b"<script>alert(1)</script>", mimetype="image/png")
    assert res.status_code == 400
    assert res.json()["message"] == "Only image files are allowed"
    assert not os.path.isdir(config.UPLOAD_PATH) or os.listdir(config.UPLOAD_PATH) == []


def test_rejects_svg(client):
    svg = b'<svg xmlns="http://www.w3.org/2000/svg"><script>alert(1)</script></svg>'
    assert post_image(client, name="logo.svg", content=svg, mimetype="image/svg+xml").status_code == 400


def test_extension_follows_content_type(client):
    res = post_image(client, name="photo.html")
    assert res.status_code == 200
    assert res.json()["data"]["filename"].endswith(".png")


def test_serves_uploaded_file(client):
    url = post_image(client).json()["data"]["url"]
    res = client.get(url)
    assert res.status_code == 200
    assert res.content == PNG
    assert res.headers["content-type"] == "image/png"
    assert res.headers["x-content-type-options"] == "nosniff"


def test_missing_file_is_not_found(client):
    res = client.get("/uploads/missing.png")
    assert res.status_code == 404
    assert res.json() == {"success": False, "message": "File not found"}
