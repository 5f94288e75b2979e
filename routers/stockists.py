import re
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pymongo.database import Database

import store
from database import create_document, get_db
from errors import BadRequestError
from schemas import RatingRequest, Stockist, StockistPatch
from security import get_current_user, require_admin

router = APIRouter(prefix="/api/stockist", tags=["stockist"])

REFS = ("companies", "medicines")


def _check_unique(db: Database, license_number: Optional[str], exclude=None):
    if not license_number:
        return
    query = {"licenseNumber": license_number}
    if exclude:
        query["_id"] = {"$ne": exclude}
    if db["stockist"].find_one(query, {"_id": 1}):
        raise BadRequestError("License number already registered")


def stockist_query(search: Optional[str] = None, city: Optional[str] = None, state: Optional[str] = None,
                   specialization: Optional[str] = None, rating: Optional[float] = None) -> dict:
    query = {"status": store.ACTIVE}
    if search and search.strip():
        query["$text"] = {"$search": search.strip()}
    if city and city.strip():
        query["address.city"] = {"$regex": re.escape(city.strip()), "$options": "i"}
    if state and state.strip():
        query["address.state"] = {"$regex": re.escape(state.strip()), "$options": "i"}
    if specialization:
        query["specializations"] = {"$in": [specialization.strip()]}
    if rating is not None:
        query["rating"] = {"$gte": rating}
    return query


@router.get("")
def list_stockists(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    specialization: Optional[str] = None,
    rating: Optional[float] = Query(None, ge=0, le=5),
    db: Database = Depends(get_db),
):
    query = stockist_query(search, city, state, specialization, rating)
    docs, pages = store.paginate(db, "stockist", query, [("rating", -1), ("name", 1)], page, limit)
    store.populate(db, docs, "companies", "company", ["name", "shortName"])
    store.populate(db, docs, "medicines", "medicine", ["name", "genericName", "brandName"])
    return {"success": True, "count": len(docs), "pagination": pages, "data": store.serialize_many(docs, "stockist")}


@router.get("/stats/overview")
def stockist_stats(admin=Depends(require_admin), db: Database = Depends(get_db)):
    coll = db["stockist"]
    active = {"status": store.ACTIVE}
    avg = list(coll.aggregate([
        {"$match": active},
        {"$group": {"_id": None, "avgRating": {"$avg": "$rating"}}},
    ]))
    top = coll.find(active, {"name": 1, "rating": 1, "totalRatings": 1}).sort([("rating", -1)]).limit(5)
    return {
        "success": True,
        "data": {
            "totalStockists": coll.count_documents({}),
            "activeStockists": coll.count_documents(active),
            "verifiedStockists": coll.count_documents({"isVerified": True}),
            "averageRating": round(avg[0]["avgRating"] or 0, 2) if avg else 0,
            "topStockists": store.serialize_many(top, "stockist"),
        },
    }


@router.get("/{stockist_id}")
def get_stockist(stockist_id: str, db: Database = Depends(get_db)):
    doc = store.find_by_id(db, "stockist", stockist_id, "Stockist")
    store.populate(db, [doc], "companies", "company", ["name", "shortName", "description", "logo"])
    store.populate(db, [doc], "medicines", "medicine", ["name", "genericName", "brandName", "dosageForm",
                                                        "strength", "price"])
    return {"success": True, "data": store.serialize(doc, "stockist")}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_stockist(payload: Stockist, admin=Depends(require_admin), db: Database = Depends(get_db)):
    _check_unique(db, payload.license_number)
    doc = store.new_entity(payload.model_dump(by_alias=True, exclude_none=True), REFS)
    inserted_id = create_document(db, "stockist", doc)
    created = db["stockist"].find_one({"_id": inserted_id})
    return {"success": True, "message": "Stockist created successfully", "data": store.serialize(created, "stockist")}


@router.put("/{stockist_id}")
def update_stockist(stockist_id: str, payload: StockistPatch, admin=Depends(require_admin),
                    db: Database = Depends(get_db)):
    fields = payload.model_dump(by_alias=True, exclude_unset=True)
    for ref in REFS:
        if ref in fields:
            fields[ref] = store.to_obj_ids(fields[ref] or [])
    current = store.find_by_id(db, "stockist", stockist_id, "Stockist", active_only=False)
    _check_unique(db, fields.get("licenseNumber"), exclude=current["_id"])
    doc = store.update_fields(db, "stockist", stockist_id, fields, "Stockist")
    return {"success": True, "message": "Stockist updated successfully", "data": store.serialize(doc, "stockist")}


@router.delete("/{stockist_id}")
def delete_stockist(stockist_id: str, admin=Depends(require_admin), db: Database = Depends(get_db)):
    store.soft_delete(db, "stockist", stockist_id, "Stockist")
    return {"success": True, "message": "Stockist deleted successfully"}


@router.post("/{stockist_id}/rate")
def rate_stockist(stockist_id: str, payload: RatingRequest, current_user=Depends(get_current_user),
                  db: Database = Depends(get_db)):
    doc = store.add_rating(db, "stockist", stockist_id, payload.rating, "Stockist")
    return {"success": True, "message": "Rating added successfully", "data": store.rating_summary(doc)}


@router.put("/{stockist_id}/verify")
def verify_stockist(stockist_id: str, admin=Depends(require_admin), db: Database = Depends(get_db)):
    doc = store.mark_verified(db, "stockist", stockist_id, "Stockist")
    return {
        "success": True,
        "message": "Stockist verified successfully",
        "data": {"id": str(doc["_id"]), "name": doc.get("name"), "isVerified": doc["isVerified"]},
    }
