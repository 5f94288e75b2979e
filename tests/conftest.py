import mongomock
import pytest
from fastapi.testclient import TestClient

import config
from database import create_document, ensure_indexes, get_db
from main import app
from schemas import User
from security import generate_token, hash_password

PASSWORD = "secret123"


@pytest.fixture
def db():
    database = mongomock.MongoClient().medtrap_test
    ensure_indexes(database, text=False)
    return database


@pytest.fixture
def client(db, tmp_path, monkeypatch):
    monkeypatch.setattr(config, "UPLOAD_PATH", str(tmp_path / "uploads"))
    monkeypatch.setattr(config, "CLOUDINARY_CLOUD_NAME", None)
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, email="owner@example.com", license_no="DL-001", role="owner", status="active"):
    doc = User(
        medical_name="City Medicals",
        owner_name="Asha Rao",
        email=email,
        contact_no="+91 98450 12345",
        address={"street": "12 MG Road", "city": "Bengaluru", "state": "Karnataka", "pincode": "560001"},
        drug_license_no=license_no,
        password_hash=hash_password(PASSWORD),
        role=role,
        status=status,
    ).model_dump(by_alias=True, exclude_none=True)
    doc["_id"] = create_document(db, "user", doc)
    return doc


def auth_header(user) -> dict:
    return {"Authorization": f"Bearer {generate_token(user['_id'])}"}


@pytest.fixture
def owner(db):
    return make_user(db)


@pytest.fixture
def admin(db):
    return make_user(db, email="admin@example.com", license_no="DL-ADMIN", role="admin")


@pytest.fixture
def owner_headers(owner):
    return auth_header(owner)


@pytest.fixture
def admin_headers(admin):
    return auth_header(admin)


def company_payload(name="Acme Pharma", license_no="LIC001", **extra):
    payload = {
        "name": name,
        "licenseNumber": license_no,
        "licenseExpiry": "2035-01-01T00:00:00Z",
        "category": "national",
    }
    payload.update(extra)
    return payload


def medicine_payload(company_id, name="Paracetamol 500", **extra):
    payload = {
        "name": name,
        "company": company_id,
        "category": "painkillers",
        "dosageForm": "tablet",
        "strength": "500mg",
        "packSize": "10 tablets",
        "price": {"mrp": 25.5},
        "expiryDate": "2030-06-30T00:00:00Z",
        "batchNumber": "B-1001",
    }
    payload.update(extra)
    return payload


def stockist_payload(name="Sri Sai Distributors", license_no="STK-01", **extra):
    payload = {
        "name": name,
        "contactPerson": "Ravi Kumar",
        "phone": "080-2345678",
        "address": {"street": "4 Market Road", "city": "Mysuru", "state": "Karnataka", "pincode": "570001"},
        "licenseNumber": license_no,
        "licenseExpiry": "2033-03-31T00:00:00Z",
    }
    payload.update(extra)
    return payload
