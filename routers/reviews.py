import logging

from bson.objectid import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from database import create_document, get_db
from schemas import Review as ReviewSchema
from security import get_current_user
from utils import Page, now, oid, ok, page_params, paginate, populate, serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["reviews"])


class ReviewBody(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=1000)


def refresh_rating(db, product_id: ObjectId):
    ratings = [r["rating"] for r in db["review"].find({"product": product_id}, {"rating": 1})]
    average = round(sum(ratings) / len(ratings), 1) if ratings else 0
    db["product"].update_one(
        {"_id": product_id},
        {"$set": {"average_rating": average, "review_count": len(ratings), "updated_at": now()}},
    )


@router.post("/{product_id}/reviews", status_code=201)
def add_review(product_id: str, body: ReviewBody, user=Depends(get_current_user), db=Depends(get_db)):
    _id = oid(product_id, "product id")
    if not db["product"].find_one({"_id": _id}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="Product not found")

    delivered = db["order"].find_one({"customer": user["_id"], "items.product": _id, "status": "delivered"}, {"_id": 1})
    if not delivered:
        raise HTTPException(status_code=403, detail="You can only review products you have purchased and received")
    if db["review"].find_one({"user": user["_id"], "product": _id}, {"_id": 1}):
        raise HTTPException(status_code=400, detail="You have already reviewed this product")

    review = ReviewSchema(user=user["_id"], product=_id, rating=body.rating, comment=body.comment, verified=True)
    review_id = create_document(db, "review", review)
    refresh_rating(db, _id)

    doc = db["review"].find_one({"_id": ObjectId(review_id)})
    populate(db, [doc], "user", "user", ("name",))
    return ok({"review": serialize_doc(doc)}, "Review added successfully")


@router.get("/{product_id}/reviews")
def list_reviews(product_id: str, page: Page = Depends(page_params), db=Depends(get_db)):
    filt = {"product": oid(product_id, "product id")}
    docs, total = paginate(db["review"], filt, page, [("created_at", -1)])
    populate(db, docs, "user", "user", ("name",))
    return ok(page.result(serialize_doc(docs), total))
