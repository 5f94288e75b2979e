from conftest import company_payload, make_user, stockist_payload
from routers.stockists import stockist_query


def test_stockist_lifecycle(client, admin_headers, owner_headers):
    company = client.post("/api/company", json=company_payload(), headers=admin_headers).json()["data"]
    res = client.post("/api/stockist", json=stockist_payload(companies=[company["id"]]), headers=admin_headers)
    assert res.status_code == 201, res.text
    stockist = res.json()["data"]
    assert stockist["fullAddress"] == "4 Market Road, Mysuru, Karnataka - 570001"

    detail = client.get(f"/api/stockist/{stockist['id']}").json()["data"]
    assert detail["companies"][0]["name"] == "Acme Pharma"

    rated = client.post(f"/api/stockist/{stockist['id']}/rate", json={"rating": 3}, headers=owner_headers)
    assert rated.json()["data"] == {"rating": 3, "totalRatings": 1, "averageRating": 3.0}

    dup = client.post("/api/stockist", json=stockist_payload(name="Copy"), headers=admin_headers)
    assert dup.status_code == 400


def test_stockist_city_filter_is_case_insensitive(client, admin_headers):
    client.post("/api/stockist", json=stockist_payload(), headers=admin_headers)
    client.post("/api/stockist", headers=admin_headers, json=stockist_payload(
        name="Coastal Pharma", license_no="STK-02",
        address={"street": "1 Beach Rd", "city": "Mangaluru", "state": "Karnataka", "pincode": "575001"}))

    res = client.get("/api/stockist", params={"city": "mysuru"}).json()
    assert [s["name"] for s in res["data"]] == ["Sri Sai Distributors"]


def test_stockist_search_query():
    query = stockist_query(search="sai", city="mysuru")
    assert query["$text"] == {"$search": "sai"}
    assert query["address.city"] == {"$regex": "mysuru", "$options": "i"}


def test_stockist_stats(client, admin_headers, owner_headers):
    stockist = client.post("/api/stockist", json=stockist_payload(), headers=admin_headers).json()["data"]
    client.post(f"/api/stockist/{stockist['id']}/rate", json={"rating": 5}, headers=owner_headers)
    data = client.get("/api/stockist/stats/overview", headers=admin_headers).json()["data"]
    assert data["totalStockists"] == 1
    assert data["averageRating"] == 5


def test_user_admin_routes_require_admin(client, owner_headers):
    assert client.get("/api/user", headers=owner_headers).status_code == 403


def test_user_list_and_role_filter(client, db, admin, admin_headers):
    for i in range(3):
        make_user(db, email=f"owner{i}@example.com", license_no=f"DL-{i}")
    res = client.get("/api/user", params={"role": "owner", "limit": 2}, headers=admin_headers).json()
    assert res["pagination"]["total"] == 3
    assert res["pagination"]["hasNext"] is True
    assert all("passwordHash" not in u for u in res["data"])


def test_user_update_delete_verify(client, db, owner, admin_headers):
    uid = str(owner["_id"])
    res = client.put(f"/api/user/{uid}", json={"role": "staff"}, headers=admin_headers)
    assert res.json()["data"]["role"] == "staff"

    verified = client.put(f"/api/user/{uid}/verify", headers=admin_headers).json()["data"]
    assert verified == {"id": uid, "medicalName": "City Medicals", "isVerified": True}

    client.delete(f"/api/user/{uid}", headers=admin_headers)
    assert client.get(f"/api/user/{uid}", headers=admin_headers).status_code == 404
    assert db["user"].find_one({"_id": owner["_id"]})["status"] == "inactive"


def test_user_update_rejects_taken_email(client, db, owner, admin, admin_headers):
    res = client.put(f"/api/user/{owner['_id']}", json={"email": admin["email"]}, headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Email already registered"


def test_user_stats(client, owner, admin_headers):
    data = client.get("/api/user/stats/overview", headers=admin_headers).json()["data"]
    assert data["totalUsers"] == 2
    assert data["roleBreakdown"] == {"owners": 1, "staff": 0, "admins": 1}
