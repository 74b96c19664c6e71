import logging
from datetime import datetime
from typing import List, Optional

from bson.objectid import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, model_validator
from pymongo.errors import DuplicateKeyError

from database import create_document, get_db
from ordering import check_coupon
from schemas import Coupon as CouponSchema, CouponType
from security import get_current_user, require_roles
from utils import as_utc, now, oid, ok, serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/coupons", tags=["coupons"])

coupon_manager = require_roles("admin", "seller")


class CouponCreateBody(BaseModel):
    code: str = Field(..., min_length=3, max_length=20)
    description: str = Field(..., min_length=1)
    type: CouponType
    value: float = Field(..., ge=0)
    minimum_order_amount: float = Field(0, ge=0)
    maximum_discount: Optional[float] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    valid_from: datetime
    valid_until: datetime
    is_active: bool = True
    applicable_products: List[str] = []
    applicable_categories: List[str] = []

    @model_validator(mode="after")
    def check_window(self):
        if as_utc(self.valid_until) <= as_utc(self.valid_from):
            raise ValueError("valid_until must be after valid_from")
        if self.type == "percentage" and self.value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class CouponUpdateBody(BaseModel):
    code: Optional[str] = Field(None, min_length=3, max_length=20)
    description: Optional[str] = None
    value: Optional[float] = Field(None, ge=0)
    minimum_order_amount: Optional[float] = Field(None, ge=0)
    maximum_discount: Optional[float] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None


class CouponItem(BaseModel):
    product: Optional[str] = None
    category: Optional[str] = None


class CouponValidateBody(BaseModel):
    code: str = Field(..., min_length=1)
    order_amount: float = Field(..., ge=0)
    items: List[CouponItem] = []


def _owner_filter(coupon_id: str, user: dict) -> dict:
    filt = {"_id": oid(coupon_id, "coupon id")}
    if user.get("role") == "seller":
        filt["created_by"] = user["_id"]
    return filt


@router.post("", status_code=201)
def create_coupon(body: CouponCreateBody, user=Depends(coupon_manager), db=Depends(get_db)):
    code = body.code.strip().upper()
    if db["coupon"].find_one({"code": code}, {"_id": 1}):
        raise HTTPException(status_code=400, detail="Coupon code already exists")
    coupon = CouponSchema(
        **body.model_dump(exclude={"code", "valid_from", "valid_until", "applicable_products", "applicable_categories"}),
        code=code,
        valid_from=as_utc(body.valid_from),
        valid_until=as_utc(body.valid_until),
        applicable_products=[oid(p, "product id") for p in body.applicable_products],
        applicable_categories=[oid(c, "category id") for c in body.applicable_categories],
        created_by=user["_id"],
        created_by_role=user.get("role"),
    )
    try:
        coupon_id = create_document(db, "coupon", coupon)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Coupon code already exists")
    logger.info("Coupon %s created by %s", code, user["_id"])
    return ok({"coupon": serialize_doc(db["coupon"].find_one({"_id": ObjectId(coupon_id)}))}, "Coupon created successfully")


@router.get("")
def list_coupons(user=Depends(coupon_manager), db=Depends(get_db)):
    filt = {"created_by": user["_id"]} if user.get("role") == "seller" else {}
    coupons = list(db["coupon"].find(filt).sort("created_at", -1))
    return ok({"coupons": serialize_doc(coupons)})


@router.post("/validate")
def validate_coupon(body: CouponValidateBody, user=Depends(get_current_user), db=Depends(get_db)):
    coupon, discount = check_coupon(db, body.code, body.order_amount, [i.model_dump() for i in body.items])
    return ok({
        "coupon": {
            "code": coupon["code"],
            "description": coupon.get("description"),
            "type": coupon["type"],
            "value": coupon["value"],
        },
        "discount": discount,
        "final_amount": max(0, body.order_amount - discount),
    })


@router.put("/{coupon_id}")
def update_coupon(coupon_id: str, body: CouponUpdateBody, user=Depends(coupon_manager), db=Depends(get_db)):
    filt = _owner_filter(coupon_id, user)
    coupon = db["coupon"].find_one(filt)
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")
    update = body.model_dump(exclude_none=True)
    if coupon.get("type") == "percentage" and update.get("value", 0) > 100:
        raise HTTPException(status_code=400, detail="Percentage discount cannot exceed 100")
    if "code" in update:
        update["code"] = update["code"].strip().upper()
        if db["coupon"].find_one({"code": update["code"], "_id": {"$ne": coupon["_id"]}}, {"_id": 1}):
            raise HTTPException(status_code=400, detail="Coupon code already exists")
    for field in ("valid_from", "valid_until"):
        if field in update:
            update[field] = as_utc(update[field])
    valid_from = update.get("valid_from") or as_utc(coupon["valid_from"])
    valid_until = update.get("valid_until") or as_utc(coupon["valid_until"])
    if valid_until <= valid_from:
        raise HTTPException(status_code=400, detail="valid_until must be after valid_from")
    update["updated_at"] = now()
    db["coupon"].update_one({"_id": coupon["_id"]}, {"$set": update})
    return ok({"coupon": serialize_doc(db["coupon"].find_one({"_id": coupon["_id"]}))}, "Coupon updated successfully")


@router.delete("/{coupon_id}")
def delete_coupon(coupon_id: str, user=Depends(coupon_manager), db=Depends(get_db)):
    result = db["coupon"].delete_one(_owner_filter(coupon_id, user))
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return ok(message="Coupon deleted successfully")
