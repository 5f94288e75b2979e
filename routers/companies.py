from datetime import timedelta
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from pymongo.database import Database

import store
from database import create_document, get_db, now
from errors import BadRequestError
from schemas import Company, CompanyPatch, RatingRequest
from security import get_current_user, require_admin

router = APIRouter(prefix="/api/company", tags=["company"])

REFS = ("medicines", "stockists")


def _populate(db: Database, docs, detailed: bool = False):
    medicine_fields = ["name", "genericName", "brandName", "dosageForm", "strength"]
    stockist_fields = ["name", "contactPerson", "phone", "address"]
    if detailed:
        medicine_fields += ["price", "category"]
        stockist_fields += ["specializations"]
    store.populate(db, docs, "medicines", "medicine", medicine_fields)
    store.populate(db, docs, "stockists", "stockist", stockist_fields)
    return docs


def _check_unique(db: Database, name: Optional[str], license_number: Optional[str], exclude=None):
    base = {"_id": {"$ne": exclude}} if exclude else {}
    if license_number and db["company"].find_one({**base, "licenseNumber": license_number}, {"_id": 1}):
        raise BadRequestError("License number already registered")
    if name and db["company"].find_one({**base, "name": name}, {"_id": 1}):
        raise BadRequestError("Company name already registered")


def company_query(search: Optional[str] = None, category: Optional[str] = None,
                  specialization: Optional[str] = None, rating: Optional[float] = None) -> dict:
    query = {"status": store.ACTIVE}
    if search and search.strip():
        query["$text"] = {"$search": search.strip()}
    if category:
        query["category"] = category.strip()
    if specialization:
        query["specializations"] = {"$in": [specialization.strip()]}
    if rating is not None:
        query["rating"] = {"$gte": rating}
    return query


@router.get("")
def list_companies(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    category: Optional[str] = None,
    specialization: Optional[str] = None,
    rating: Optional[float] = Query(None, ge=0, le=5),
    sort_by: Literal["name", "rating", "createdAt"] = Query("name", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("asc", alias="sortOrder"),
    db: Database = Depends(get_db),
):
    query = company_query(search, category, specialization, rating)
    sort = [(sort_by, -1 if sort_order == "desc" else 1)]
    docs, pages = store.paginate(db, "company", query, sort, page, limit)
    _populate(db, docs)
    return {"success": True, "count": len(docs), "pagination": pages, "data": store.serialize_many(docs, "company")}


@router.get("/stats/overview")
def company_stats(admin=Depends(require_admin), db: Database = Depends(get_db)):
    coll = db["company"]
    active = {"status": store.ACTIVE}
    by_category = list(coll.aggregate([
        {"$match": active},
        {"$group": {"_id": "$category", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
    ]))
    by_specialization = list(coll.aggregate([
        {"$match": active},
        {"$unwind": "$specializations"},
        {"$group": {"_id": "$specializations", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
        {"$limit": 10},
    ]))
    top = coll.find(active, {"name": 1, "shortName": 1, "rating": 1, "totalRatings": 1}).sort([("rating", -1)]).limit(5)
    current = now()
    expiring = coll.find(
        {**active, "licenseExpiry": {"$gte": current, "$lte": current + timedelta(days=30)}},
        {"name": 1, "licenseNumber": 1, "licenseExpiry": 1},
    )
    return {
        "success": True,
        "data": {
            "totalCompanies": coll.count_documents({}),
            "activeCompanies": coll.count_documents(active),
            "verifiedCompanies": coll.count_documents({"isVerified": True}),
            "companiesByCategory": by_category,
            "companiesBySpecialization": by_specialization,
            "topCompanies": store.serialize_many(top, "company"),
            "expiringLicenses": store.serialize_many(expiring),
        },
    }


@router.get("/{company_id}")
def get_company(company_id: str, db: Database = Depends(get_db)):
    doc = store.find_by_id(db, "company", company_id, "Company")
    _populate(db, [doc], detailed=True)
    return {"success": True, "data": store.serialize(doc, "company")}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_company(payload: Company, admin=Depends(require_admin), db: Database = Depends(get_db)):
    _check_unique(db, payload.name, payload.license_number)
    doc = store.new_entity(payload.model_dump(by_alias=True, exclude_none=True), REFS)
    inserted_id = create_document(db, "company", doc)
    created = db["company"].find_one({"_id": inserted_id})
    return {"success": True, "message": "Company created successfully", "data": store.serialize(created, "company")}


@router.put("/{company_id}")
def update_company(company_id: str, payload: CompanyPatch, admin=Depends(require_admin),
                   db: Database = Depends(get_db)):
    fields = payload.model_dump(by_alias=True, exclude_unset=True)
    for ref in REFS:
        if ref in fields:
            fields[ref] = store.to_obj_ids(fields[ref] or [])
    current = store.find_by_id(db, "company", company_id, "Company", active_only=False)
    _check_unique(db, fields.get("name"), fields.get("licenseNumber"), exclude=current["_id"])
    doc = store.update_fields(db, "company", company_id, fields, "Company")
    return {"success": True, "message": "Company updated successfully", "data": store.serialize(doc, "company")}


@router.delete("/{company_id}")
def delete_company(company_id: str, admin=Depends(require_admin), db: Database = Depends(get_db)):
    store.soft_delete(db, "company", company_id, "Company")
    return {"success": True, "message": "Company deleted successfully"}


@router.post("/{company_id}/rate")
def rate_company(company_id: str, payload: RatingRequest, current_user=Depends(get_current_user),
                 db: Database = Depends(get_db)):
    doc = store.add_rating(db, "company", company_id, payload.rating, "Company")
    return {"success": True, "message": "Rating added successfully", "data": store.rating_summary(doc)}


@router.put("/{company_id}/verify")
def verify_company(company_id: str, admin=Depends(require_admin), db: Database = Depends(get_db)):
    doc = store.mark_verified(db, "company", company_id, "Company")
    return {
        "success": True,
        "message": "Company verified successfully",
        "data": {"id": str(doc["_id"]), "name": doc.get("name"), "isVerified": doc["isVerified"]},
    }
