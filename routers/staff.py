"""
Staff and purchaser identity records. Both are created from a multipart form
carrying text fields plus two images; the images go through the upload
pipeline and the stored document keeps their URLs. Serialized records carry
the QR value a card for the record would encode.
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from pymongo.database import Database

import store
import uploads
from database import create_document, get_db
from errors import UploadError
from schemas import Purchaser, Staff
from security import get_current_user

router = APIRouter(tags=["staff"])


def _validated(model, data: dict):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise RequestValidationError(e.errors())


def _save_images(files: dict) -> dict:
    """Store each ``field -> UploadFile`` pair and return ``field -> url``.

    Every file is checked before any is written, and files already written
    are removed again if a later one fails.
    """
    uploads.validate_uploads(list(files.values()))
    saved = []
    try:
        for field, upload in files.items():
            saved.append((field, uploads.save_upload(upload, field)))
    except UploadError:
        for _, info in saved:
            uploads.discard(info)
        raise
    return {field: info["url"] for field, info in saved}


def _list(db: Database, collection: str):
    docs = db[collection].find({"status": store.ACTIVE}).sort([("createdAt", -1)])
    data = store.serialize_many(docs, collection)
    return {"success": True, "count": len(data), "data": data}


def _create(db: Database, collection: str, record, refs=()) -> dict:
    doc = record.model_dump(by_alias=True, exclude_none=True)
    for field in refs:
        if field in doc:
            doc[field] = store.to_obj_id(doc[field])
    doc["status"] = store.ACTIVE
    doc["_id"] = create_document(db, collection, doc)
    return store.serialize(db[collection].find_one({"_id": doc["_id"]}), collection)


@router.get("/api/staff")
def list_staff(db: Database = Depends(get_db)):
    return _list(db, "staff")


@router.get("/api/staff/{staff_id}")
def get_staff(staff_id: str, db: Database = Depends(get_db)):
    doc = store.find_by_id(db, "staff", staff_id, "Staff")
    return {"success": True, "data": store.serialize(doc, "staff")}


@router.post("/api/staff", status_code=status.HTTP_201_CREATED)
def create_staff(
    full_name: str = Form(..., alias="fullName"),
    contact: str = Form(...),
    address: str = Form(...),
    email: Optional[str] = Form(None),
    image: UploadFile = File(...),
    aadhar_card: UploadFile = File(..., alias="aadharCard"),
    current_user=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    fields = {"fullName": full_name, "contact": contact, "address": address, "email": email or None,
              "createdBy": str(current_user["_id"])}
    # validate the text fields before anything is written to disk
    _validated(Staff, {**fields, "image": "pending", "aadharCard": "pending"})
    fields.update(_save_images({"image": image, "aadharCard": aadhar_card}))
    data = _create(db, "staff", _validated(Staff, fields), refs=("createdBy",))
    return {"success": True, "message": "Staff created successfully", "data": data}


@router.get("/api/purchaser")
def list_purchasers(db: Database = Depends(get_db)):
    return _list(db, "purchaser")


@router.get("/api/purchaser/{purchaser_id}")
def get_purchaser(purchaser_id: str, db: Database = Depends(get_db)):
    doc = store.find_by_id(db, "purchaser", purchaser_id, "Purchaser")
    return {"success": True, "data": store.serialize(doc, "purchaser")}


@router.post("/api/purchaser", status_code=status.HTTP_201_CREATED)
def create_purchaser(
    full_name: str = Form(..., alias="fullName"),
    contact_no: str = Form(..., alias="contactNo"),
    address: str = Form(...),
    photo: UploadFile = File(...),
    aadhar_image: UploadFile = File(..., alias="aadharImage"),
    db: Database = Depends(get_db),
):
    fields = {"fullName": full_name, "contactNo": contact_no, "address": address}
    _validated(Purchaser, {**fields, "photo": "pending", "aadharImage": "pending"})
    fields.update(_save_images({"photo": photo, "aadharImage": aadhar_image}))
    data = _create(db, "purchaser", _validated(Purchaser, fields))
    return {"success": True, "message": "Purchaser created successfully", "data": data}
