"""
MongoDB access.

The client is created once from DATABASE_URL/DATABASE_NAME. Route handlers
receive the handle through the `get_db` dependency so tests can swap in an
in-memory database.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Union

from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

import settings

logger = logging.getLogger(__name__)

client = None
db = None

if settings.DATABASE_URL and settings.DATABASE_NAME:
    client = MongoClient(settings.DATABASE_URL)
    db = client[settings.DATABASE_NAME]


def get_db():
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


def create_document(database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    stamp = datetime.now(timezone.utc)
    doc.setdefault("created_at", stamp)
    doc["updated_at"] = stamp
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def ensure_indexes(database):
    database["user"].create_index("email", unique=True)
    database["user"].create_index("role")
    database["product"].create_index("sku", unique=True, sparse=True)
    database["product"].create_index("seller")
    database["product"].create_index([("category", ASCENDING), ("status", ASCENDING)])
    database["product"].create_index([("created_at", DESCENDING)])
    database["category"].create_index("slug", unique=True)
    database["category"].create_index("parent")
    database["category"].create_index("ancestors")
    database["order"].create_index("order_number", unique=True)
    database["order"].create_index([("customer", ASCENDING), ("created_at", DESCENDING)])
    database["order"].create_index("sellers")
    database["order"].create_index("shipping.tracking_number")
    database["coupon"].create_index("code", unique=True)
    database["review"].create_index([("user", ASCENDING), ("product", ASCENDING)], unique=True)
    database["sellerapplication"].create_index("user_id", unique=True)
    database["sellerapplication"].create_index("application_id", unique=True)
    logger.info("MongoDB indexes ensured")
