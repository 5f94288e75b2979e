import re
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from pymongo.database import Database

import store
from database import create_document, get_db
from errors import BadRequestError, NotFoundError
from schemas import Medicine, MedicinePatch, ObjectIdStr
from security import get_current_user, require_admin

router = APIRouter(prefix="/api/medicine", tags=["medicine"])

SORT_FIELDS = {"name": "name", "price": "price.mrp", "rating": "rating", "createdAt": "createdAt"}


class ReviewRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)


class StockRequest(BaseModel):
    stockist_id: ObjectIdStr = Field(..., alias="stockistId")
    stock: int = Field(..., ge=0)


def medicine_query(db: Database, search: Optional[str] = None, category: Optional[str] = None,
                   company: Optional[str] = None, dosage_form: Optional[str] = None,
                   min_price: Optional[float] = None, max_price: Optional[float] = None,
                   prescription_required: Optional[bool] = None) -> dict:
    query = {"status": store.ACTIVE}
    if search and search.strip():
        query["$text"] = {"$search": search.strip()}
    if category:
        query["category"] = category.strip()
    if company and company.strip():
        match = db["company"].find_one({"name": {"$regex": re.escape(company.strip()), "$options": "i"}}, {"_id": 1})
        # an unknown company name leaves the filter off
        if match:
            query["company"] = match["_id"]
    if dosage_form:
        query["dosageForm"] = dosage_form.strip()
    if min_price is not None or max_price is not None:
        price_filter = {}
        if min_price is not None:
            price_filter["$gte"] = min_price
        if max_price is not None:
            price_filter["$lte"] = max_price
        query["price.mrp"] = price_filter
    if prescription_required is not None:
        query["prescriptionRequired"] = prescription_required
    return query


@router.get("")
def list_medicines(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    category: Optional[str] = None,
    company: Optional[str] = None,
    dosage_form: Optional[str] = Query(None, alias="dosageForm"),
    min_price: Optional[float] = Query(None, ge=0, alias="minPrice"),
    max_price: Optional[float] = Query(None, ge=0, alias="maxPrice"),
    prescription_required: Optional[bool] = Query(None, alias="prescriptionRequired"),
    sort_by: Literal["name", "price", "rating", "createdAt"] = Query("name", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("asc", alias="sortOrder"),
    db: Database = Depends(get_db),
):
    query = medicine_query(db, search, category, company, dosage_form, min_price, max_price, prescription_required)
    sort =[(SORT_FIELDS[sort_by], -1 if sort_order == "desc" else 1)]
    docs, pages = store.paginate(db, "medicine", query, sort, page, limit)
    store.populate(db, docs, "company", "company", ["name", "shortName", "logo"])
    return {"success": True, "count": len(docs), "pagination": pages, "data": store.serialize_many(docs, "medicine")}


@router.get("/stats/overview")
def medicine_stats(admin=Depends(require_admin), db: Database = Depends(get_db)):
    coll = db["medicine"]
    active = {"status": store.ACTIVE}

    def count_by(field):
        return list(coll.aggregate([
            {"$match": active},
            {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
            {"$sort": {"count": -1}},
        ]))

    top = coll.find(active, {"name": 1, "genericName": 1, "brandName": 1, "rating": 1, "totalRatings": 1})
    return {
        "success": True,
        "data": {
            "totalMedicines": coll.count_documents({}),
            "activeMedicines": coll.count_documents(active),
            "verifiedMedicines": coll.count_documents({"isVerified": True}),
            "medicinesByCategory": count_by("category"),
            "medicinesByDosageForm": count_by("dosageForm"),
            "topMedicines": store.serialize_many(top.sort([("rating", -1)]).limit(5), "medicine"),
        },
    }


@router.get("/{medicine_id}")
def get_medicine(medicine_id: str, db: Database = Depends(get_db)):
    doc = store.find_by_id(db, "medicine", medicine_id, "Medicine")
    store.populate(db, [doc], "company", "company", ["name", "shortName", "description", "logo", "website"])
    store.populate(db, [doc], "stockists.stockist", "stockist", ["name", "contactPerson", "phone", "address"])
    store.populate(db, [doc], "reviews.user", "user", ["medicalName", "ownerName"])
    return {"success": True, "data": store.serialize(doc, "medicine")}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_medicine(payload: Medicine, admin=Depends(require_admin), db: Database = Depends(get_db)):
    company_id = store.to_obj_id(payload.company)
    if not db["company"].find_one({"_id": company_id}, {"_id": 1}):
        raise NotFoundError("Company not found")
    doc = store.new_entity(payload.model_dump(by_alias=True, exclude_none=True), ("company",))
    doc.setdefault("stockists", [])
    doc.setdefault("reviews", [])
    inserted_id = create_document(db, "medicine", doc)
    created = db["medicine"].find_one({"_id": inserted_id})
    return {"success": True, "message": "Medicine created successfully", "data": store.serialize(created, "medicine")}


@router.put("/{medicine_id}")
def update_medicine(medicine_id: str, payload: MedicinePatch, admin=Depends(require_admin),
                    db: Database = Depends(get_db)):
    fields = payload.model_dump(by_alias=True, exclude_unset=True)
    if "company" in fields:
        company_id = store.to_obj_id(fields["company"])
        if not company_id or not db["company"].find_one({"_id": company_id}, {"_id": 1}):
            raise NotFoundError("Company not found")
        fields["company"] = company_id
    doc = store.update_fields(db, "medicine", medicine_id, fields, "Medicine")
    return {"success": True, "message": "Medicine updated successfully", "data": store.serialize(doc, "medicine")}


@router.delete("/{medicine_id}")
def delete_medicine(medicine_id: str, admin=Depends(require_admin), db: Database = Depends(get_db)):
    store.soft_delete(db, "medicine", medicine_id, "Medicine")
    return {"success": True, "message": "Medicine deleted successfully"}


@router.post("/{medicine_id}/review")
def review_medicine(medicine_id: str, payload: ReviewRequest, current_user=Depends(get_current_user),
                    db: Database = Depends(get_db)):
    medicine = store.find_by_id(db, "medicine", medicine_id, "Medicine")
    user_id = current_user["_id"]
    if any(r.get("user") == user_id for r in medicine.get("reviews") or []):
        raise BadRequestError("You have already reviewed this medicine")
    doc = store.add_review(db, medicine["_id"], user_id, payload.rating, payload.comment)
    if doc is None:
        # lost a race with a concurrent review by the same user
        raise BadRequestError("You have already reviewed this medicine")
    return {"success": True, "message": "Review added successfully", "data": store.rating_summary(doc)}


@router.put("/{medicine_id}/stock")
def update_medicine_stock(medicine_id: str, payload: StockRequest, admin=Depends(require_admin),
                          db: Database = Depends(get_db)):
    medicine = store.find_by_id(db, "medicine", medicine_id, "Medicine", active_only=False)
    doc = store.update_stock(db, medicine["_id"], store.to_obj_id(payload.stockist_id), payload.stock)
    return {
        "success": True,
        "message": "Stock updated successfully",
        "data": {"totalStock": store.total_stock(doc), "stockists": store.serialize_many(doc.get("stockists") or [])},
    }


@router.put("/{medicine_id}/verify")
def verify_medicine(medicine_id: str, admin=Depends(require_admin), db: Database = Depends(get_db)):
    doc = store.mark_verified(db, "medicine", medicine_id, "Medicine")
    return {
        "success": True,
        "message": "Medicine verified successfully",
        "data": {"id": str(doc["_id"]), "name": doc.get("name"), "isVerified": doc["isVerified"]},
    }
