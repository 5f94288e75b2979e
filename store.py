"""
Data-access helpers shared by the routers: serialization with computed
fields, reference population, pagination, and the single-document atomic
mutations (ratings, stock, reviews).
"""
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database

import config
from database import now
from errors import NotFoundError

ACTIVE = "active"
INACTIVE = "inactive"

# Fields that never leave the API
PRIVATE_FIELDS = ("passwordHash", "resetPasswordToken", "resetPasswordExpire")


def to_obj_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if value is None or not ObjectId.is_valid(str(value)):
        return None
    return ObjectId(str(value))


def to_obj_ids(values: Iterable[Any]) -> List[ObjectId]:
    return [oid for oid in (to_obj_id(v) for v in values) if oid is not None]


def flatten_update(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Turn nested dicts into dotted $set paths so partial nested updates merge."""
    out: Dict[str, Any] = {}
    for key, value in data.items():
        path = f"{prefix}{key}"
        if isinstance(value, dict):
            # an empty subdocument sets nothing
            out.update(flatten_update(value, f"{path}."))
        else:
            out[path] = value
    return out


# Computed fields

def average_rating(doc: dict) -> float:
    total = doc.get("totalRatings") or 0
    if total <= 0:
        return 0
    return round((doc.get("rating") or 0) / total, 1)


def total_stock(doc: dict) -> int:
    return sum(entry.get("stock") or 0 for entry in doc.get("stockists") or [] if isinstance(entry, dict))


def is_past(value: Optional[datetime]) -> bool:
    if not isinstance(value, datetime):
        return False
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return now() > value


def full_address(address: Optional[dict], with_country: bool = False) -> str:
    if not address:
        return ""
    street, city, state = address.get("street") or "", address.get("city") or "", address.get("state") or ""
    pincode = address.get("pincode") or ""
    if with_country:
        text = f"{street}, {city}, {state}, {address.get('country') or ''} - {pincode}"
        return text.strip().strip(",").strip()
    return f"{street}, {city}, {state} - {pincode}"


def qr_value(kind: str, doc_id: str) -> str:
    return f"{config.PUBLIC_BASE_URL}/{kind}/{doc_id}"


def _virtuals(kind: str, doc: dict) -> Dict[str, Any]:
    extra: Dict[str, Any] = {}
    if kind in ("company", "medicine", "stockist"):
        extra["averageRating"] = average_rating(doc)
    if kind == "company":
        extra["fullAddress"] = full_address((doc.get("contactInfo") or {}).get("address"), with_country=True)
        extra["isLicenseExpired"] = is_past(doc.get("licenseExpiry"))
    elif kind == "medicine":
        extra["totalStock"] = total_stock(doc)
        extra["isExpired"] = is_past(doc.get("expiryDate"))
    elif kind == "stockist":
        extra["fullAddress"] = full_address(doc.get("address"))
    elif kind == "user":
        extra["fullName"] = doc.get("ownerName")
        extra["fullAddress"] = full_address(doc.get("address"))
    elif kind in ("staff", "purchaser") and "_id" in doc:
        extra["qrValue"] = qr_value(kind, str(doc["_id"]))
    return extra


def _jsonable(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def serialize(doc: Optional[dict], kind: Optional[str] = None) -> Optional[dict]:
    if doc is None:
        return None
    d = {k: v for k, v in doc.items() if k not in PRIVATE_FIELDS}
    if kind:
        d.update(_virtuals(kind, doc))
    if "status" in d:
        d["isActive"] = d["status"] == ACTIVE
    d = _jsonable(d)
    if "_id" in d:
        d["id"] = d["_id"]
    return d


def serialize_many(docs: Iterable[dict], kind: Optional[str] = None) -> List[dict]:
    return [serialize(doc, kind) for doc in docs]


# Population of references

def populate(db: Database, docs: List[dict], path: str, collection: str, fields: Iterable[str]) -> List[dict]:
    """Replace ObjectId references at ``path`` by the referenced documents.

    ``path`` is either a top-level field holding one id or a list of ids
    ("company", "medicines") or "<array>.<field>" for references inside an
    array of subdocuments ("stockists.stockist"). Dangling single references
    become None; dangling list entries are dropped.
    """
    outer, _, inner = path.partition(".")
    ids = set()
    for doc in docs:
        value = doc.get(outer)
        if inner:
            ids.update(e.get(inner) for e in value or [] if isinstance(e, dict) and isinstance(e.get(inner), ObjectId))
        elif isinstance(value, list):
            ids.update(v for v in value if isinstance(v, ObjectId))
        elif isinstance(value, ObjectId):
            ids.add(value)
    if not ids:
        return docs

    projection = {f: 1 for f in fields}
    found = {d["_id"]: d for d in db[collection].find({"_id": {"$in": list(ids)}}, projection)}

    for doc in docs:
        value = doc.get(outer)
        if inner:
            for entry in value or []:
                if isinstance(entry, dict) and isinstance(entry.get(inner), ObjectId):
                    entry[inner] = found.get(entry[inner])
        elif isinstance(value, list):
            doc[outer] = [found[v] if isinstance(v, ObjectId) else v for v in value
                          if not isinstance(v, ObjectId) or v in found]
        elif isinstance(value, ObjectId):
            doc[outer] = found.get(value)
    return docs


# Pagination

def pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
    pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": pages,
        "hasNext": page < pages,
        "hasPrev": page > 1,
    }


def paginate(db: Database, collection: str, query: dict, sort: List[tuple], page: int, limit: int):
    """Return one page of raw documents plus the pagination block."""
    total = db[collection].count_documents(query)
    cursor = db[collection].find(query)
    if sort:
        cursor = cursor.sort(sort)
    docs = list(cursor.skip((page - 1) * limit).limit(limit))
    return docs, pagination(page, limit, total)


# Lookups

def find_by_id(db: Database, collection: str, doc_id: str, label: str, active_only: bool = True) -> dict:
    """Fetch a document or raise 404. Inactive documents look exactly like missing ones."""
    oid = to_obj_id(doc_id)
    doc = db[collection].find_one({"_id": oid}) if oid else None
    if not doc or (active_only and doc.get("status") != ACTIVE):
        raise NotFoundError(f"{label} not found")
    return doc


def soft_delete(db: Database, collection: str, doc_id: str, label: str) -> None:
    oid = to_obj_id(doc_id)
    res = db[collection].update_one({"_id": oid}, {"$set": {"status": INACTIVE, "updatedAt": now()}}) if oid else None
    if res is None or res.matched_count == 0:
        raise NotFoundError(f"{label} not found")


def mark_verified(db: Database, collection: str, doc_id: str, label: str) -> dict:
    oid = to_obj_id(doc_id)
    doc = db[collection].find_one_and_update(
        {"_id": oid}, {"$set": {"isVerified": True, "updatedAt": now()}}, return_document=ReturnDocument.AFTER,
    ) if oid else None
    if not doc:
        raise NotFoundError(f"{label} not found")
    return doc


def update_fields(db: Database, collection: str, doc_id: str, fields: Dict[str, Any], label: str) -> dict:
    oid = to_obj_id(doc_id)
    if not oid or not db[collection].find_one({"_id": oid}, {"_id": 1}):
        raise NotFoundError(f"{label} not found")
    update = flatten_update(fields)
    update["updatedAt"] = now()
    return db[collection].find_one_and_update({"_id": oid}, {"$set": update}, return_document=ReturnDocument.AFTER)


# Atomic single-document mutations

def add_rating(db: Database, collection: str, doc_id: str, value: int, label: str) -> dict:
    """Add ``value`` to the running rating total and bump the counter in one $inc."""
    oid = to_obj_id(doc_id)
    doc = db[collection].find_one_and_update(
        {"_id": oid, "status": ACTIVE},
        {"$inc": {"rating": value, "totalRatings": 1}, "$set": {"updatedAt": now()}},
        return_document=ReturnDocument.AFTER,
    ) if oid else None
    if not doc:
        raise NotFoundError(f"{label} not found")
    return doc


def rating_summary(doc: dict) -> Dict[str, Any]:
    return {
        "rating": doc.get("rating", 0),
        "totalRatings": doc.get("totalRatings", 0),
        "averageRating": average_rating(doc),
    }


def update_stock(db: Database, medicine_id: ObjectId, stockist_id: ObjectId, stock: int) -> dict:
    """Set the stock held by one stockist, updating its entry in place or appending it."""
    if stock < 0:
        raise ValueError("stock must be a non-negative integer")
    stamp = now()
    coll = db["medicine"]
    res = coll.update_one(
        {"_id": medicine_id, "stockists.stockist": stockist_id},
        {"$set": {"stockists.$.stock": stock, "stockists.$.lastUpdated": stamp, "updatedAt": stamp}},
    )
    if res.matched_count == 0:
        coll.update_one(
            {"_id": medicine_id, "stockists.stockist": {"$ne": stockist_id}},
            {
                "$push": {"stockists": {"stockist": stockist_id, "stock": stock, "lastUpdated": stamp}},
                "$set": {"updatedAt": stamp},
            },
        )
    return coll.find_one({"_id": medicine_id})


def add_review(db: Database, medicine_id: ObjectId, user_id: ObjectId, rating: int,
               comment: Optional[str] = None) -> Optional[dict]:
    """Append a review and bump the rating counters together.

    Returns None when the user already reviewed this medicine.
    """
    review = {"user": user_id, "rating": rating, "date": now()}
    if comment is not None:
        review["comment"] = comment
    return db["medicine"].find_one_and_update(
        {"_id": medicine_id, "status": ACTIVE, "reviews.user": {"$ne": user_id}},
        {
            "$push": {"reviews": review},
            "$inc": {"rating": rating, "totalRatings": 1},
            "$set": {"updatedAt": review["date"]},
        },
        return_document=ReturnDocument.AFTER,
    )


def new_entity(data: Dict[str, Any], refs: Iterable[str] = ()) -> Dict[str, Any]:
    """System fields every rated/verifiable entity starts with."""
    doc = dict(data)
    for field in refs:
        if field in doc:
            value = doc[field]
            doc[field] = to_obj_ids(value) if isinstance(value, list) else to_obj_id(value)
    doc.setdefault("isVerified", False)
    doc.setdefault("status", ACTIVE)
    doc.setdefault("rating", 0)
    doc.setdefault("totalRatings", 0)
    return doc
