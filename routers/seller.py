import logging
import random
import re
import string
import time
from typing import List, Literal, Optional

from bson.objectid import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

import notifications
import settings
from catalog import total_inventory
from database import create_document, get_db
from ordering import PERIOD_DAYS, daily_sales, placed_time
from schemas import PINCODE_PATTERN, SellerApplication as SellerApplicationSchema
from security import get_current_user, require_admin, require_seller
from utils import Page, now, oid, ok, page_params, paginate, populate, regex, serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/seller", tags=["seller"])

BUSINESS_TYPES = (
    "Individual/Proprietorship", "Partnership", "Private Limited Company", "Public Limited Company",
    "LLP", "Others", "individual", "proprietorship", "partnership", "private_limited",
)
BUSINESS_CATEGORIES = (
    "Electronics & Gadgets", "Fashion & Apparel", "Home & Kitchen", "Books & Stationery",
    "Sports & Fitness", "Beauty & Personal Care", "Automotive", "Others", "General",
)
PAN_PATTERN = r"^[A-Z]{5}[0-9]{4}[A-Z]$"
IFSC_PATTERN = r"^[A-Z]{4}0[A-Z0-9]{6}$"
GST_PATTERN = r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$"
APPLICATION_USER_FIELDS = ("name", "email", "phone")


class ApplicationBody(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    business_name: str = Field(..., min_length=2, max_length=100)
    business_type: Literal[BUSINESS_TYPES]
    business_category: Literal[BUSINESS_CATEGORIES]
    business_description: str = Field(..., min_length=10, max_length=1000)
    established_year: int = Field(..., ge=1900)
    business_email: EmailStr
    business_phone: str = Field(..., pattern=r"^[+]?[\d\s\-\(\)]+$")
    business_address: str = Field(..., min_length=10, max_length=500)
    city: str = Field(..., min_length=2, max_length=50)
    state: str = Field(..., min_length=2, max_length=50)
    pincode: str = Field(..., pattern=PINCODE_PATTERN)
    has_physical_store: bool = False
    gst_number: Optional[str] = Field(None, pattern=GST_PATTERN)
    pan_number: Optional[str] = Field(None, pattern=PAN_PATTERN)
    bank_account_number: str = Field(..., min_length=5, max_length=25)
    bank_ifsc: Optional[str] = None
    bank_name: str = Field(..., min_length=2, max_length=100)
    account_holder_name: str = Field(..., min_length=2, max_length=100)
    expected_monthly_revenue: Optional[str] = None
    product_categories: List[str] = []
    agree_to_terms: bool

    @field_validator("established_year")
    @classmethod
    def not_in_future(cls, value):
        if value > now().year:
            raise ValueError("Invalid established year")
        return value

    @field_validator("bank_ifsc")
    @classmethod
    def ifsc_format(cls, value):
        if not value:
            return None
        if not re.match(IFSC_PATTERN, value):
            raise ValueError("Invalid IFSC code format")
        return value

    @field_validator("agree_to_terms")
    @classmethod
    def terms_accepted(cls, value):
        if not value:
            raise ValueError("You must agree to the terms and conditions")
        return value


class ReasonBody(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)


class ReviewNotesBody(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


def application_number() -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"SA{str(int(time.time() * 1000))[-6:]}{suffix}"


def _mirror(application: dict) -> dict:
    return {
        "status": application["status"],
        "application_id": application["application_id"],
        "business_name": application["business_name"],
        "submitted_at": application.get("submitted_at"),
        "reviewed_at": application.get("reviewed_at"),
        "rejection_reason": application.get("rejection_reason"),
    }


def _get_application(db, application_id: str) -> dict:
    application = db["sellerapplication"].find_one({"_id": oid(application_id, "application id")})
    if not application:
        raise HTTPException(status_code=404, detail="Application not found")
    return application


def _review(db, application: dict, reviewer: dict, **fields) -> dict:
    """Stamp a review decision on the application and mirror it onto the applicant."""
    update = dict(fields, reviewed_by=reviewer["_id"], reviewed_at=now(), updated_at=now())
    db["sellerapplication"].update_one({"_id": application["_id"]}, {"$set": update})
    application = db["sellerapplication"].find_one({"_id": application["_id"]})
    user_update = {"seller_application": _mirror(application), "updated_at": now()}
    if application["status"] == "approved":
        user_update["role"] = "seller"
    db["user"].update_one({"_id": application["user_id"]}, {"$set": user_update})
    logger.info("Seller application %s marked %s by %s", application["application_id"], application["status"], reviewer["_id"])
    return application


def _notify_applicant(db, application: dict, template, *args):
    applicant = db["user"].find_one({"_id": application["user_id"]}, {"name": 1, "email": 1})
    if not applicant:
        return
    subject, body = template(applicant.get("name"), application, *args)
    notifications.send_email(applicant["email"], subject, body)


# ----------------------- Applications -----------------------
@router.post("/apply", status_code=201)
def apply(body: ApplicationBody, user=Depends(get_current_user), db=Depends(get_db)):
    if user.get("role") == "seller":
        raise HTTPException(status_code=400, detail="You are already a seller")

    existing = db["sellerapplication"].find_one({"user_id": user["_id"]})
    if existing:
        if existing["status"] != "rejected":
            raise HTTPException(status_code=400, detail={
                "message": "You have already submitted a seller application",
                "application_id": existing["application_id"],
                "status": existing["status"],
            })
        db["sellerapplication"].delete_one({"_id": existing["_id"]})

    application = SellerApplicationSchema(
        **body.model_dump(),
        user_id=user["_id"],
        application_id=application_number(),
        submitted_at=now(),
    )
    application_id = create_document(db, "sellerapplication", application)
    doc = db["sellerapplication"].find_one({"_id": ObjectId(application_id)})
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"seller_application": _mirror(doc), "updated_at": now()}})
    logger.info("Seller application %s submitted by %s", doc["application_id"], user["_id"])

    subject, html = notifications.application_received(user.get("name"), doc)
    notifications.send_email(user["email"], subject, html)
    review_url = f"{settings.FRONTEND_URL}/admin/seller-applications/{application_id}"
    for admin in db["user"].find({"role": "admin", "is_active": True}, {"name": 1, "email": 1}):
        subject, html = notifications.new_application_for_admin(admin.get("name"), user.get("name"), doc, review_url)
        notifications.send_email(admin["email"], subject, html)

    return ok(
        {"application_id": doc["application_id"], "status": doc["status"]},
        "Seller application submitted successfully",
    )


@router.get("/application/status")
def application_status(user=Depends(get_current_user), db=Depends(get_db)):
    application = db["sellerapplication"].find_one(
        {"user_id": user["_id"]},
        {"application_id": 1, "status": 1, "submitted_at": 1, "reviewed_at": 1, "rejection_reason": 1, "review_notes": 1},
    )
    if not application:
        return ok({"has_application": False, "can_apply": user.get("role") != "seller"})
    return ok({
        "has_application": True,
        "application": serialize_doc(application),
        "can_apply": application["status"] == "rejected" and user.get("role") != "seller",
    })


@router.get("/applications")
def list_applications(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: Page = Depends(page_params),
    user=Depends(require_admin),
    db=Depends(get_db),
):
    filt = {}
    if status and status != "all":
        filt["status"] = status
    if search:
        pattern = regex(search)
        filt["$or"] = [{"business_name": pattern}, {"application_id": pattern}, {"business_email": pattern}]
    docs, total = paginate(db["sellerapplication"], filt, page, [("submitted_at", -1)])
    populate(db, docs, "user_id", "user", APPLICATION_USER_FIELDS)
    return ok(page.result(serialize_doc(docs), total))


@router.get("/applications/stats")
def application_stats(user=Depends(require_admin), db=Depends(get_db)):
    stats = {"total": 0, "pending": 0, "under_review": 0, "approved": 0, "rejected": 0, "requires_changes": 0}
    for application in db["sellerapplication"].find({}, {"status": 1}):
        stats[application["status"]] = stats.get(application["status"], 0) + 1
        stats["total"] += 1
    return ok(stats)


@router.get("/applications/{application_id}")
def get_application(application_id: str, user=Depends(require_admin), db=Depends(get_db)):
    application = _get_application(db, application_id)
    populate(db, [application], "user_id", "user", APPLICATION_USER_FIELDS)
    populate(db, [application], "reviewed_by", "user", ("name", "email"))
    return ok({"application": serialize_doc(application)})


@router.put("/applications/{application_id}/approve")
def approve_application(
    application_id: str, body: Optional[ReviewNotesBody] = None, user=Depends(require_admin), db=Depends(get_db)
):
    application = _get_application(db, application_id)
    if application["status"] == "approved":
        raise HTTPException(status_code=400, detail="Application is already approved")
    application = _review(db, application, user, status="approved", review_notes=body.notes if body else None)
    _notify_applicant(db, application, notifications.application_approved)
    return ok({"application": serialize_doc(application)}, "Seller application approved successfully")


@router.put("/applications/{application_id}/reject")
def reject_application(application_id: str, body: ReasonBody, user=Depends(require_admin), db=Depends(get_db)):
    application = _get_application(db, application_id)
    if application["status"] == "rejected":
        raise HTTPException(status_code=400, detail="Application is already rejected")
    application = _review(
        db, application, user, status="rejected", rejection_reason=body.reason, review_notes=body.notes
    )
    _notify_applicant(db, application, notifications.application_rejected, body.reason)
    return ok({"application": serialize_doc(application)}, "Seller application rejected")


@router.put("/applications/{application_id}/request-changes")
def request_changes(application_id: str, body: ReasonBody, user=Depends(require_admin), db=Depends(get_db)):
    application = _get_application(db, application_id)
    application = _review(db, application, user, status="requires_changes", review_notes=body.notes or body.reason)
    _notify_applicant(db, application, notifications.application_changes_requested, body.reason)
    return ok({"application": serialize_doc(application)}, "Changes requested from applicant")


@router.put("/applications/{application_id}/under-review")
def mark_under_review(application_id: str, user=Depends(require_admin), db=Depends(get_db)):
    application = _get_application(db, application_id)
    if application["status"] != "pending":
        raise HTTPException(status_code=400, detail="Only pending applications can be moved to review")
    application = _review(db, application, user, status="under_review")
    return ok({"application": serialize_doc(application)}, "Application marked as under review")


# ----------------------- Dashboard -----------------------
def _seller_items(order: dict, seller_id: ObjectId) -> list:
    return [i for i in order.get("items", []) if i.get("seller") == seller_id]


@router.get("/dashboard")
def dashboard(user=Depends(require_seller), db=Depends(get_db)):
    seller_id = user["_id"]
    month_start = now().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    stats = {
        "total_products": db["product"].count_documents({"seller": seller_id}),
        "active_products": db["product"].count_documents({"seller": seller_id, "status": "active"}),
        "draft_products": db["product"].count_documents({"seller": seller_id, "status": "draft"}),
        "total_orders": 0,
        "pending_orders": 0,
        "delivered_orders": 0,
        "total_revenue": 0,
        "monthly_revenue": 0,
    }
    for order in db["order"].find({"sellers": seller_id}):
        stats["total_orders"] += 1
        if order["status"] == "pending":
            stats["pending_orders"] += 1
        if order["status"] == "delivered":
            stats["delivered_orders"] += 1
            revenue = sum(i.get("subtotal", 0) for i in _seller_items(order, seller_id))
            stats["total_revenue"] += revenue
            placed = placed_time(order)
            if placed and placed >= month_start:
                stats["monthly_revenue"] += revenue
    return ok({"stats": stats})


@router.get("/dashboard/sales")
def dashboard_sales(
    period: Literal["7d", "30d", "90d"] = "7d", user=Depends(require_seller), db=Depends(get_db)
):
    orders = db["order"].find({"sellers": user["_id"], "status": {"$ne": "cancelled"}})
    series = daily_sales(
        orders,
        PERIOD_DAYS[period],
        amount=lambda order: sum(i.get("subtotal", 0) for i in _seller_items(order, user["_id"])),
    )
    return ok(series)


@router.get("/orders/recent")
def recent_orders(limit: int = Query(5, ge=1, le=50), user=Depends(require_seller), db=Depends(get_db)):
    orders = list(db["order"].find({"sellers": user["_id"]}).sort("created_at", -1).limit(limit))
    populate(db, orders, "customer", "user", ("name", "email"))
    data = []
    for order in orders:
        items = _seller_items(order, user["_id"])
        data.append({
            "id": str(order["_id"]),
            "order_number": order["order_number"],
            "customer": serialize_doc(order.get("customer")),
            "amount": sum(i.get("subtotal", 0) for i in items),
            "status": order["status"],
            "created_at": serialize_doc(order.get("created_at")),
            "items": [{"name": i["name"], "quantity": i["quantity"]} for i in items],
        })
    return ok(data)


@router.get("/products/recent")
def recent_products(limit: int = Query(5, ge=1, le=50), user=Depends(require_seller), db=Depends(get_db)):
    projection = {"name": 1, "price": 1, "status": 1, "images": 1, "created_at": 1}
    products = list(db["product"].find({"seller": user["_id"]}, projection).sort("created_at", -1).limit(limit))
    return ok(serialize_doc(products))


@router.get("/products/low-stock")
def low_stock(user=Depends(require_seller), db=Depends(get_db)):
    projection = {"name": 1, "sku": 1, "sizes": 1, "price": 1, "low_stock_threshold": 1}
    products = []
    for product in db["product"].find({"seller": user["_id"], "status": {"$in": ["active", "out_of_stock"]}}, projection):
        stock = total_inventory(product)
        if stock <= product.get("low_stock_threshold", 10):
            products.append(dict(serialize_doc(product), stock=stock))
    products.sort(key=lambda p: p["stock"])
    return ok(products)
