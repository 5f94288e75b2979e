import re
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

import store
from database import get_db
from errors import BadRequestError
from schemas import Role, UserAdminPatch
from security import require_admin

router = APIRouter(prefix="/api/user", tags=["user"], dependencies=[Depends(require_admin)])


@router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    role: Optional[Role] = None,
    db: Database = Depends(get_db),
):
    query = {}
    if search and search.strip():
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        query["$or"] = [{"medicalName": pattern}, {"ownerName": pattern}, {"email": pattern}]
    if role:
        query["role"] = role
    docs, pages = store.paginate(db, "user", query, [("createdAt", -1)], page, limit)
    return {"success": True, "count": len(docs), "pagination": pages, "data": store.serialize_many(docs, "user")}


@router.get("/stats/overview")
def user_stats(db: Database = Depends(get_db)):
    coll = db["user"]
    active = {"status": store.ACTIVE}
    by_state = list(coll.aggregate([
        {"$match": active},
        {"$group": {"_id": "$address.state", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
        {"$limit": 10},
    ]))
    recent = coll.find(active, {"medicalName": 1, "ownerName": 1, "email": 1, "createdAt": 1})
    return {
        "success": True,
        "data": {
            "totalUsers": coll.count_documents({}),
            "activeUsers": coll.count_documents(active),
            "verifiedUsers": coll.count_documents({"isVerified": True}),
            "roleBreakdown": {
                "owners": coll.count_documents({"role": "owner"}),
                "staff": coll.count_documents({"role": "staff"}),
                "admins": coll.count_documents({"role": "admin"}),
            },
            "usersByState": by_state,
            "recentUsers": store.serialize_many(recent.sort([("createdAt", -1)]).limit(5)),
        },
    }


@router.get("/{user_id}")
def get_user(user_id: str, db: Database = Depends(get_db)):
    doc = store.find_by_id(db, "user", user_id, "User")
    return {"success": True, "data": store.serialize(doc, "user")}


@router.put("/{user_id}")
def update_user(user_id: str, payload: UserAdminPatch, db: Database = Depends(get_db)):
    fields = payload.model_dump(by_alias=True, exclude_unset=True)
    current = store.find_by_id(db, "user", user_id, "User", active_only=False)
    if fields.get("email") and db["user"].find_one({"email": fields["email"], "_id": {"$ne": current["_id"]}}):
        raise BadRequestError("Email already registered")
    doc = store.update_fields(db, "user", user_id, fields, "User")
    return {"success": True, "message": "User updated successfully", "data": store.serialize(doc, "user")}


@router.delete("/{user_id}")
def delete_user(user_id: str, db: Database = Depends(get_db)):
    store.soft_delete(db, "user", user_id, "User")
    return {"success": True, "message": "User deleted successfully"}


@router.put("/{user_id}/verify")
def verify_user(user_id: str, db: Database = Depends(get_db)):
    doc = store.mark_verified(db, "user", user_id, "User")
    return {
        "success": True,
        "message": "User verified successfully",
        "data": {"id": str(doc["_id"]), "medicalName": doc.get("medicalName"), "isVerified": doc["isVerified"]},
    }
