import logging
from datetime import timedelta
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from database import get_db
from ordering import PERIOD_DAYS, daily_sales, placed_time
from schemas import ProductStatus, Role
from security import public_user, require_admin
from utils import Page, as_utc, now, oid, ok, page_params, paginate, populate, regex, serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

Period = Literal["7d", "30d", "90d"]


class ProductStatusBody(BaseModel):
    status: Optional[ProductStatus] = None
    is_approved: Optional[bool] = None


class RoleBody(BaseModel):
    role: Role


class UserStatusBody(BaseModel):
    is_active: bool


def _since(period: str):
    return now() - timedelta(days=PERIOD_DAYS[period])


# ----------------------- Dashboard -----------------------
@router.get("/dashboard/stats")
def dashboard_stats(period: Period = "7d", db=Depends(get_db)):
    since = _since(period)
    orders = list(db["order"].find({}, {"status": 1, "total": 1, "placed_at": 1, "created_at": 1}))
    recent = [o for o in orders if (placed_time(o) or since) > since]
    new_users = sum(1 for u in db["user"].find({}, {"created_at": 1}) if (as_utc(u.get("created_at")) or since) > since)
    return ok({
        "total_revenue": sum(o.get("total", 0) for o in orders if o["status"] == "delivered"),
        "total_orders": len(orders),
        "active_sellers": db["user"].count_documents({"role": "seller", "is_active": True}),
        "total_users": db["user"].count_documents({}),
        "period": {
            "name": period,
            "orders": len(recent),
            "users": new_users,
            "revenue": sum(o.get("total", 0) for o in recent if o["status"] != "cancelled"),
        },
    })


@router.get("/dashboard/sales")
def dashboard_sales(period: Period = "7d", db=Depends(get_db)):
    orders = db["order"].find({"status": {"$ne": "cancelled"}}, {"total": 1, "placed_at": 1, "created_at": 1})
    return ok(daily_sales(orders, PERIOD_DAYS[period]))


@router.get("/dashboard/categories")
def dashboard_categories(db=Depends(get_db)):
    counts = {}
    for product in db["product"].find({}, {"category": 1}):
        counts[product.get("category")] = counts.get(product.get("category"), 0) + 1
    names = {c["_id"]: c["name"] for c in db["category"].find({"_id": {"$in": list(counts)}}, {"name": 1})}
    total = sum(counts.values())
    data = [
        {
            "id": str(category_id),
            "name": names[category_id],
            "count": count,
            "percentage": round(count / total * 100) if total else 0,
        }
        for category_id, count in counts.items()
        if category_id in names
    ]
    data.sort(key=lambda c: c["count"], reverse=True)
    return ok(data)


@router.get("/dashboard/pending-actions")
def pending_actions(db=Depends(get_db)):
    actions = []
    for application in db["sellerapplication"].find({"status": "pending"}).sort("submitted_at", -1).limit(5):
        actions.append({
            "id": str(application["_id"]),
            "type": "seller_application",
            "title": "New Seller Application",
            "description": f"{application['business_name']} - Business verification required",
            "priority": "high",
            "created_at": serialize_doc(application.get("submitted_at")),
        })
    for product in db["product"].find({"is_approved": False}).sort("created_at", -1).limit(5):
        actions.append({
            "id": str(product["_id"]),
            "type": "product_approval",
            "title": "Product Awaiting Approval",
            "description": product["name"],
            "priority": "medium",
            "created_at": serialize_doc(product.get("created_at")),
        })
    return ok(actions)


# ----------------------- Products -----------------------
@router.get("/products")
def list_products(
    status: Optional[str] = None,
    search: Optional[str] = None,
    category: Optional[str] = None,
    page: Page = Depends(page_params),
    db=Depends(get_db),
):
    filt = {}
    if status and status != "all":
        filt["status"] = status
    if search:
        pattern = regex(search)
        filt["$or"] = [{"name": pattern}, {"description": pattern}, {"sku": pattern}]
    if category:
        filt["category"] = oid(category, "category id")
    docs, total = paginate(db["product"], filt, page, [("created_at", -1)])
    populate(db, docs, "seller", "user", ("name", "email"))
    populate(db, docs, "category", "category", ("name",))
    return ok(page.result(serialize_doc(docs), total))


@router.put("/products/{product_id}/status")
def update_product_status(
    product_id: str, body: ProductStatusBody, admin=Depends(require_admin), db=Depends(get_db)
):
    _id = oid(product_id, "product id")
    if not db["product"].find_one({"_id": _id}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="Product not found")
    update = body.model_dump(exclude_none=True)
    if body.is_approved:
        update["approved_at"] = now()
        update["approved_by"] = admin["_id"]
    update["updated_at"] = now()
    db["product"].update_one({"_id": _id}, {"$set": update})
    logger.info("Product %s moderated by %s: %s", _id, admin["_id"], body.model_dump(exclude_none=True))
    return ok({"product": serialize_doc(db["product"].find_one({"_id": _id}))}, "Product status updated successfully")


# ----------------------- Users -----------------------
@router.get("/users")
def list_users(
    role: Optional[str] = None,
    status: Optional[Literal["all", "active", "inactive"]] = None,
    search: Optional[str] = None,
    page: Page = Depends(page_params),
    db=Depends(get_db),
):
    filt = {}
    if role and role != "all":
        filt["role"] = role
    if status and status != "all":
        filt["is_active"] = status == "active"
    if search:
        pattern = regex(search)
        filt["$or"] = [{"name": pattern}, {"email": pattern}]
    docs, total = paginate(db["user"], filt, page, [("created_at", -1)])
    return ok(page.result([public_user(u) for u in docs], total))


def _get_user(db, user_id: str) -> dict:
    user = db["user"].find_one({"_id": oid(user_id, "user id")})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.patch("/users/{user_id}/role")
def update_user_role(user_id: str, body: RoleBody, admin=Depends(require_admin), db=Depends(get_db)):
    user = _get_user(db, user_id)
    if user["_id"] == admin["_id"] and body.role != "admin":
        raise HTTPException(status_code=400, detail="You cannot change your own admin role")
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"role": body.role, "updated_at": now()}})
    logger.info("User %s role set to %s by %s", user["_id"], body.role, admin["_id"])
    return ok({"user": public_user(db["user"].find_one({"_id": user["_id"]}))}, "User role updated successfully")


@router.patch("/users/{user_id}/status")
def update_user_status(user_id: str, body: UserStatusBody, admin=Depends(require_admin), db=Depends(get_db)):
    user = _get_user(db, user_id)
    if user["_id"] == admin["_id"] and not body.is_active:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"is_active": body.is_active, "updated_at": now()}})
    logger.info("User %s is_active=%s by %s", user["_id"], body.is_active, admin["_id"])
    return ok({"user": public_user(db["user"].find_one({"_id": user["_id"]}))}, "User status updated successfully")


# ----------------------- Sellers -----------------------
@router.get("/sellers")
def list_sellers(search: Optional[str] = None, page: Page = Depends(page_params), db=Depends(get_db)):
    filt = {"role": "seller"}
    if search:
        pattern = regex(search)
        filt["$or"] = [{"name": pattern}, {"email": pattern}, {"seller_application.business_name": pattern}]
    docs, total = paginate(db["user"], filt, page, [("created_at", -1)])
    sellers = []
    for seller in docs:
        data = public_user(seller)
        data["product_count"] = db["product"].count_documents({"seller": seller["_id"]})
        data["active_product_count"] = db["product"].count_documents({"seller": seller["_id"], "status": "active"})
        sellers.append(data)
    return ok(page.result(sellers, total))
