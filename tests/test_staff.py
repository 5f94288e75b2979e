import os

import pytest
from bson import ObjectId

import config

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 32


@pytest.fixture(autouse=True)
def public_base(monkeypatch):
    monkeypatch.setattr(config, "PUBLIC_BASE_URL", "https://medtrap.example")


def staff_form():
    data = {"fullName": "Kiran Patil", "contact": "9900112233", "email": "Kiran@Example.com", "address": "Hubballi"}
    files = {"image": ("face.png", PNG, "image/png"), "aadharCard": ("card.png", PNG, "image/png")}
    return data, files


def test_staff_create_requires_auth(client):
    data, files = staff_form()
    assert client.post("/api/staff", data=data, files=files).status_code == 401


def test_staff_create_list_get(client, owner, owner_headers, db):
    data, files = staff_form()
    res = client.post("/api/staff", data=data, files=files, headers=owner_headers)
    assert res.status_code == 201, res.text
    staff = res.json()["data"]
    assert staff["email"] == "kiran@example.com"
    assert staff["image"].startswith("/uploads/image-")
    assert staff["aadharCard"].startswith("/uploads/aadharCard-")
    assert staff["qrValue"] == f"https://medtrap.example/staff/{staff['id']}"
    assert staff["createdBy"] == str(owner["_id"])
    assert isinstance(db["staff"].find_one()["createdBy"], ObjectId)

    listed = client.get("/api/staff").json()
    assert listed["count"] == 1
    assert client.get(f"/api/staff/{staff['id']}").json()["data"]["fullName"] == "Kiran Patil"


def test_staff_invalid_contact_writes_nothing(client, owner_headers, db):
    data, files = staff_form()
    res = client.post("/api/staff", data={**data, "contact": "call me"}, files=files, headers=owner_headers)
    assert res.status_code == 400
    assert res.json()["errors"][0]["param"] == "contact"
    assert db["staff"].count_documents({}) == 0


def test_staff_bad_second_image_leaves_no_files(client, owner_headers, db):
    data, files = staff_form()
    files["aadharCard"] = ("card.png", b"not really a png", "image/png")
    res = client.post("/api/staff", data=data, files=files, headers=owner_headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Only image files are allowed"
    assert not os.path.isdir(config.UPLOAD_PATH) or os.listdir(config.UPLOAD_PATH) == []
    assert db["staff"].count_documents({}) == 0


def test_purchaser_create(client):
    res = client.post(
        "/api/purchaser",
        data={"fullName": "Meera Iyer", "contactNo": "044-2233445", "address": "Chennai"},
        files={"photo": ("p.png", PNG, "image/png"), "aadharImage": ("a.jpg", JPEG, "image/jpeg")},
    )
    assert res.status_code == 201, res.text
    purchaser = res.json()["data"]
    assert purchaser["qrValue"] == f"https://medtrap.example/purchaser/{purchaser['id']}"
    assert client.get(f"/api/purchaser/{purchaser['id']}").status_code == 200
    assert client.get("/api/purchaser/unknown").status_code == 404
