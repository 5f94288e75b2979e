from bson import ObjectId

from conftest import company_payload, medicine_payload, stockist_payload
from database import create_document
from routers.medicines import medicine_query


def setup_catalog(client, headers):
    company = client.post("/api/company", json=company_payload(), headers=headers).json()["data"]
    medicine = client.post("/api/medicine", json=medicine_payload(company["id"]), headers=headers)
    assert medicine.status_code == 201, medicine.text
    return company, medicine.json()["data"]


def test_create_requires_existing_company(client, admin_headers):
    res = client.post("/api/medicine", json=medicine_payload(str(ObjectId())), headers=admin_headers)
    assert res.status_code == 404
    assert res.json()["message"] == "Company not found"

    res = client.post("/api/medicine", json=medicine_payload("nope"), headers=admin_headers)
    assert res.status_code == 400
    assert {"param": "company", "msg": "Valid company ID is required"} in res.json()["errors"]


def test_get_populates_company(client, admin_headers):
    company, medicine = setup_catalog(client, admin_headers)
    res = client.get(f"/api/medicine/{medicine['id']}")
    data = res.json()["data"]
    assert data["company"]["name"] == company["name"]
    assert data["totalStock"] == 0
    assert data["isExpired"] is False


def test_second_review_rejected(client, admin_headers, owner_headers):
    _, medicine = setup_catalog(client, admin_headers)
    url = f"/api/medicine/{medicine['id']}/review"

    first = client.post(url, json={"rating": 4, "comment": "ok"}, headers=owner_headers)
    assert first.status_code == 200
    second = client.post(url, json={"rating": 2}, headers=owner_headers)
    assert second.status_code == 400
    assert second.json()["message"] == "You have already reviewed this medicine"

    data = client.get(f"/api/medicine/{medicine['id']}").json()["data"]
    assert len(data["reviews"]) == 1
    assert data["totalRatings"] == 1
    assert data["averageRating"] == 4.0


def test_stock_update_in_place(client, admin_headers):
    _, medicine = setup_catalog(client, admin_headers)
    stockist = client.post("/api/stockist", json=stockist_payload(), headers=admin_headers).json()["data"]
    url = f"/api/medicine/{medicine['id']}/stock"

    client.put(url, json={"stockistId": stockist["id"], "stock": 10}, headers=admin_headers)
    res = client.put(url, json={"stockistId": stockist["id"], "stock": 40}, headers=admin_headers)
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["totalStock"] == 40
    assert len(data["stockists"]) == 1

    bad = client.put(url, json={"stockistId": stockist["id"], "stock": -5}, headers=admin_headers)
    assert bad.status_code == 400


def test_list_filters(client, admin_headers):
    company, _ = setup_catalog(client, admin_headers)
    client.post("/api/medicine", headers=admin_headers, json=medicine_payload(
        company["id"], name="Amoxicillin 250", category="antibiotics", dosageForm="capsule",
        price={"mrp": 80}, prescriptionRequired=True))

    by_price = client.get("/api/medicine", params={"minPrice": 50}).json()["data"]
    assert [m["name"] for m in by_price] == ["Amoxicillin 250"]

    by_company = client.get("/api/medicine", params={"company": "acme"}).json()
    assert by_company["pagination"]["total"] == 2

    unknown_company = client.get("/api/medicine", params={"company": "nobody"}).json()
    assert unknown_company["pagination"]["total"] == 2

    by_rx = client.get("/api/medicine", params={"prescriptionRequired": "true"}).json()["data"]
    assert [m["name"] for m in by_rx] == ["Amoxicillin 250"]

    by_price_desc = client.get("/api/medicine", params={"sortBy": "price", "sortOrder": "desc"}).json()["data"]
    assert by_price_desc[0]["name"] == "Amoxicillin 250"


def test_verify_and_delete(client, admin_headers):
    _, medicine = setup_catalog(client, admin_headers)
    res = client.put(f"/api/medicine/{medicine['id']}/verify", headers=admin_headers)
    assert res.json()["data"]["isVerified"] is True
    client.delete(f"/api/medicine/{medicine['id']}", headers=admin_headers)
    assert client.get(f"/api/medicine/{medicine['id']}").status_code == 404


def test_search_query(db):
    company_id = create_document(db, "company", {"name": "Acme Pharma"})
    query = medicine_query(db, search="paracetamol", company="acme", max_price=50)
    assert query["$text"] == {"$search": "paracetamol"}
    assert query["company"] == company_id
    assert query["price.mrp"] == {"$lte": 50}
    assert "company" not in medicine_query(db, company="Unknown Labs")
