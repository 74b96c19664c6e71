import math
import re
import unicodedata
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from bson.objectid import ObjectId
from fastapi import HTTPException, Query


def now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """MongoDB hands back naive UTC datetimes; make them comparable with now()."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def oid(value: Any, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(str(value)):
        raise HTTPException(status_code=400, detail=f"Invalid {label}")
    return ObjectId(str(value))


def serialize_doc(doc):
    """Turn a Mongo document into JSON-friendly data: _id -> id, ObjectId -> str, datetimes -> ISO."""
    if doc is None:
        return doc
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return as_utc(doc).isoformat()
    if isinstance(doc, list):
        return [serialize_doc(v) for v in doc]
    if isinstance(doc, dict):
        out = {}
        for k, v in doc.items():
            if k == "_id":
                out["id"] = serialize_doc(v)
            else:
                out[k] = serialize_doc(v)
        return out
    return doc


def populate(db, docs, field: str, collection: str, fields=("name",)):
    """Replace the ObjectId in `field` of each doc with a projection of the referenced document."""
    ids = list({d.get(field) for d in docs if isinstance(d.get(field), ObjectId)})
    if not ids:
        return docs
    projection = {f: 1 for f in fields}
    found = {ref["_id"]: ref for ref in db[collection].find({"_id": {"$in": ids}}, projection)}
    for d in docs:
        ref = found.get(d.get(field))
        if ref is not None:
            d[field] = ref
    return docs


def slugify(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value or "").encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug or uuid4().hex[:8]


def ok(data=None, message: Optional[str] = None) -> dict:
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


# ----------------------- Pagination -----------------------
MAX_PAGE_SIZE = 100


class Page:
    def __init__(self, page: int, limit: int):
        self.page = max(page, 1)
        self.limit = min(max(limit, 1), MAX_PAGE_SIZE)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def result(self, items, total: int) -> dict:
        return {
            "items": items,
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": total,
                "pages": math.ceil(total / self.limit) if total else 0,
            },
        }


def page_params(page: int = Query(1, ge=1), limit: int = Query(20, ge=1)) -> Page:
    return Page(page, limit)


def paginate(collection, filt: dict, page: Page, sort=None) -> tuple:
    """Return (documents, total) for one page of a query."""
    total = collection.count_documents(filt)
    cursor = collection.find(filt)
    if sort:
        cursor = cursor.sort(sort)
    docs = list(cursor.skip(page.skip).limit(page.limit))
    return docs, total


def regex(term: str) -> dict:
    return {"$regex": re.escape(term.strip()), "$options": "i"}
