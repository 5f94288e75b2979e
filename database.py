"""
MongoDB access for MedTrap.

The pymongo client is created once at import time from DATABASE_URL and
DATABASE_NAME. Endpoints receive the database through the ``get_db``
dependency so tests can swap in an in-memory database.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Union

from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, TEXT, MongoClient
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
db: Optional[Database] = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def now() -> datetime:
    # pymongo hands dates back as naive UTC, so store them that way too
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True, exclude_none=True)
    return dict(data)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> Any:
    """Insert a document stamped with createdAt/updatedAt and return its ObjectId."""
    doc = _to_dict(data)
    stamp = now()
    doc.setdefault("createdAt", stamp)
    doc["updatedAt"] = stamp
    return database[collection_name].insert_one(doc).inserted_id



UNIQUE_INDEXES = {
    "user": [("email", {}), ("drugLicenseNo", {})],
    "company": [("name", {}), ("licenseNumber", {"sparse": True})],
    "stockist": [("licenseNumber", {})],
}

TEXT_INDEXES = {
    "company": ["name", "shortName", "description", "specializations"],
    "medicine": ["name", "genericName", "brandName", "description", "category"],
    "stockist": ["name", "address.city", "address.state", "specializations"],
}


def fix_company_license_index(database: Database) -> None:
    """Replace a legacy non-sparse unique licenseNumber index with a sparse one."""
    coll = database["company"]
    for name, info in coll.index_information().items():
        key = dict(info.get("key", []))
        if key.get("licenseNumber") == ASCENDING and info.get("unique") and not info.get("sparse"):
            logger.info("Dropping non-sparse index %s on company", name)
            coll.drop_index(name)


def ensure_indexes(database: Database, text: bool = True) -> None:
    fix_company_license_index(database)
    for collection, fields in UNIQUE_INDEXES.items():
        for field, opts in fields:
            database[collection].create_index([(field, ASCENDING)], unique=True, **opts)
    if text:
        for collection, fields in TEXT_INDEXES.items():
            database[collection].create_index([(f, TEXT) for f in fields], name=f"{collection}_text")
    logger.info("Indexes ensured on %s", database.name)


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL)
    ensure_indexes(get_db())
