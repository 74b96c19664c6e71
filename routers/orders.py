import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

import notifications
from database import get_db
from ordering import (
    CANCELLABLE_STATUSES,
    notify_order_placed,
    place_order,
    release_stock,
    seller_ids,
    status_update,
    tracking_update,
)
from schemas import OrderStatus, PaymentMethod, ShippingAddress, ShippingMethod
from security import get_current_user, is_admin, require_admin, require_seller
from shipping_gateway import WEBHOOK_STATUS_MAP, NimbusPostClient, get_shipping_client, parse_webhook
from utils import Page, now, oid, ok, page_params, paginate, populate, regex, serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


# ----------------------- Models -----------------------
class OrderLineBody(BaseModel):
    product: str
    quantity: int = Field(..., ge=1)
    variants: dict = {}


class OrderCreateBody(BaseModel):
    items: List[OrderLineBody] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    billing_address: Optional[ShippingAddress] = None
    payment_method: PaymentMethod
    shipping_method: ShippingMethod = "standard"
    customer_notes: Optional[str] = Field(None, max_length=500)
    coupon_code: Optional[str] = None


class OrderStatusBody(BaseModel):
    status: OrderStatus
    notes: Optional[str] = None


class CancelBody(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


# ----------------------- Helpers -----------------------
def _get_order(db, order_id: str) -> dict:
    order = db["order"].find_one({"_id": oid(order_id, "order id")})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def _is_customer(order: dict, user: dict) -> bool:
    return order.get("customer") == user["_id"]


def _is_seller(order: dict, user: dict) -> bool:
    return str(user["_id"]) in seller_ids(order)


def _customer_of(db, order: dict) -> Optional[dict]:
    return db["user"].find_one({"_id": order["customer"]}, {"name": 1, "email": 1})


def _for_seller(order: dict, seller_id) -> dict:
    order = dict(order)
    order["items"] = [i for i in order.get("items", []) if i.get("seller") == seller_id]
    return order


def _ship(db, order: dict, client: NimbusPostClient) -> dict:
    result = client.create_shipment(order)
    if result.get("success"):
        db["order"].update_one({"_id": order["_id"]}, {"$set": tracking_update(order, result)})
    return result


# ----------------------- Customer -----------------------
@router.post("", status_code=201)
def create_order(body: OrderCreateBody, user=Depends(get_current_user), db=Depends(get_db)):
    order = place_order(
        db,
        user,
        [{"product_id": i.product, "quantity": i.quantity, "variants": i.variants} for i in body.items],
        shipping_address=body.shipping_address.model_dump(),
        billing_address=body.billing_address.model_dump() if body.billing_address else None,
        payment_method=body.payment_method,
        shipping_method=body.shipping_method,
        coupon_code=body.coupon_code,
        customer_notes=body.customer_notes,
    )
    notify_order_placed(db, user, order)
    return ok({"order": serialize_doc(order)}, "Order created successfully")


@router.get("/my-orders")
def my_orders(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: Page = Depends(page_params),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    filt = {"customer": user["_id"]}
    if status and status != "all":
        filt["status"] = status
    if search:
        filt["order_number"] = regex(search)
    docs, total = paginate(db["order"], filt, page, [("created_at", -1)])
    return ok(page.result(serialize_doc(docs), total))


# ----------------------- Seller -----------------------
@router.get("/seller/my-orders")
def seller_orders(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: Page = Depends(page_params),
    user=Depends(require_seller),
    db=Depends(get_db),
):
    filt = {"sellers": user["_id"]}
    if status and status != "all":
        filt["status"] = status
    if search:
        filt["$or"] = [{"order_number": regex(search)}, {"shipping_address.name": regex(search)}]
    docs, total = paginate(db["order"], filt, page, [("created_at", -1)])
    docs = [_for_seller(o, user["_id"]) for o in docs]
    populate(db, docs, "customer", "user", ("name", "email", "phone"))
    return ok(page.result(serialize_doc(docs), total))


@router.get("/seller/stats")
def seller_order_stats(user=Depends(require_seller), db=Depends(get_db)):
    by_status = {}
    revenue = 0
    orders = list(db["order"].find({"sellers": user["_id"]}, {"status": 1, "items": 1}))
    for order in orders:
        by_status[order["status"]] = by_status.get(order["status"], 0) + 1
        if order["status"] != "cancelled":
            revenue += sum(i.get("subtotal", 0) for i in order["items"] if i.get("seller") == user["_id"])
    return ok({"total_orders": len(orders), "orders_by_status": by_status, "total_revenue": revenue})


# ----------------------- Admin -----------------------
@router.get("/admin/all")
def admin_orders(
    status: Optional[str] = None,
    search: Optional[str] = None,
    seller: Optional[str] = None,
    customer: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: Page = Depends(page_params),
    user=Depends(require_admin),
    db=Depends(get_db),
):
    filt = {}
    if status and status != "all":
        filt["status"] = status
    if search:
        filt["order_number"] = regex(search)
    if seller:
        filt["sellers"] = oid(seller, "seller id")
    if customer:
        filt["customer"] = oid(customer, "customer id")
    if date_from or date_to:
        created = {}
        if date_from:
            created["$gte"] = date_from
        if date_to:
            created["$lte"] = date_to
        filt["created_at"] = created
    docs, total = paginate(db["order"], filt, page, [("created_at", -1)])
    populate(db, docs, "customer", "user", ("name", "email"))
    return ok(page.result(serialize_doc(docs), total))


@router.get("/admin/stats")
def admin_order_stats(user=Depends(require_admin), db=Depends(get_db)):
    by_status = {}
    total_orders = 0
    revenue = 0
    paid = 0
    for order in db["order"].find({}, {"status": 1, "payment_status": 1, "total": 1}):
        total_orders += 1
        by_status[order["status"]] = by_status.get(order["status"], 0) + 1
        if order.get("payment_status") == "paid":
            revenue += order.get("total", 0)
            paid += 1
    return ok({
        "total_orders": total_orders,
        "orders_by_status": by_status,
        "total_revenue": revenue,
        "average_order_value": round(revenue / paid, 2) if paid else 0,
    })


# ----------------------- Webhooks -----------------------
@router.post("/webhook/nimbus")
def nimbus_webhook(payload: dict, db=Depends(get_db)):
    event = parse_webhook(payload)
    if not event["tracking_number"]:
        raise HTTPException(status_code=400, detail="Missing tracking number")
    order = db["order"].find_one({"shipping.tracking_number": event["tracking_number"]})
    if not order:
        logger.warning("NimbusPost webhook for unknown AWB %s", event["tracking_number"])
        return ok(message="Ignored")

    update = {"shipping.status": event["status"], "updated_at": now()}
    if event["estimated_delivery"]:
        update["shipping.estimated_delivery"] = event["estimated_delivery"]
    new_status = WEBHOOK_STATUS_MAP.get((event["status_code"] or "").upper())
    if new_status and new_status != order["status"]:
        update.update(status_update(new_status))
    db["order"].update_one({"_id": order["_id"]}, {"$set": update})
    logger.info("Order %s updated via NimbusPost webhook (%s)", order["order_number"], event["status_code"])
    return ok()


# ----------------------- Single order -----------------------
@router.get("/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    order = _get_order(db, order_id)
    if not (_is_customer(order, user) or _is_seller(order, user) or is_admin(user)):
        raise HTTPException(status_code=403, detail="Access denied")
    populate(db, [order], "customer", "user", ("name", "email", "phone"))
    return ok({"order": serialize_doc(order)})


@router.put("/{order_id}/status")
def update_order_status(
    order_id: str,
    body: OrderStatusBody,
    user=Depends(get_current_user),
    db=Depends(get_db),
    shipping: NimbusPostClient = Depends(get_shipping_client),
):
    order = _get_order(db, order_id)
    if not (_is_seller(order, user) or is_admin(user)):
        raise HTTPException(status_code=403, detail="Access denied")
    if order["status"] == "cancelled":
        raise HTTPException(status_code=400, detail="Cannot change the status of a cancelled order")

    update = status_update(body.status, body.notes)
    if body.status == "cancelled":
        release_stock(db, order)
        update["cancellation_reason"] = body.notes or "Cancelled by seller"
    db["order"].update_one({"_id": order["_id"]}, {"$set": update})
    order["status"] = body.status

    if body.status == "confirmed" and order.get("payment_method") != "cod":
        result = _ship(db, order, shipping)
        if not result.get("success"):
            logger.error("Auto-shipping failed for %s: %s", order["order_number"], result.get("error"))

    customer = _customer_of(db, order)
    if customer:
        subject, html_body = notifications.order_status_update(customer.get("name"), order, body.status, body.notes)
        notifications.send_email(customer["email"], subject, html_body)

    updated = db["order"].find_one({"_id": order["_id"]})
    return ok({"order": serialize_doc(updated)}, "Order status updated successfully")


@router.put("/{order_id}/items/{item_id}/status")
def update_item_status(order_id: str, item_id: str, body: OrderStatusBody, user=Depends(get_current_user), db=Depends(get_db)):
    order = _get_order(db, order_id)
    items = order.get("items", [])
    item = next((i for i in items if i.get("id") == item_id), None)
    if item is None:
        raise HTTPException(status_code=404, detail="Order item not found")
    if item.get("seller") != user["_id"] and not is_admin(user):
        raise HTTPException(status_code=403, detail="Access denied")
    item["status"] = body.status
    db["order"].update_one({"_id": order["_id"]}, {"$set": {"items": items, "updated_at": now()}})
    return ok({"item": serialize_doc(item)}, "Item status updated successfully")


@router.post("/{order_id}/ship")
def ship_order(
    order_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
    shipping: NimbusPostClient = Depends(get_shipping_client),
):
    order = _get_order(db, order_id)
    if not (_is_seller(order, user) or is_admin(user)):
        raise HTTPException(status_code=403, detail="Access denied")
    if order["status"] not in ("confirmed", "processing"):
        raise HTTPException(status_code=400, detail="Order must be confirmed or processing to create shipping")
    result = _ship(db, order, shipping)
    if not result.get("success"):
        raise HTTPException(status_code=400, detail=result.get("error") or "Failed to create shipping")
    return ok({
        "tracking_number": result.get("tracking_number"),
        "nimbus_order_id": result.get("nimbus_order_id"),
        "estimated_delivery": result.get("estimated_delivery"),
        "tracking_url": result.get("tracking_url"),
    }, "Shipping created successfully")


@router.get("/{order_id}/track")
def track_order(
    order_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
    shipping: NimbusPostClient = Depends(get_shipping_client),
):
    order = _get_order(db, order_id)
    if not (_is_customer(order, user) or _is_seller(order, user) or is_admin(user)):
        raise HTTPException(status_code=403, detail="Access denied")
    awb = (order.get("shipping") or {}).get("tracking_number")
    if not awb:
        raise HTTPException(status_code=400, detail="No tracking information available")
    result = shipping.track_shipment(awb)
    if not result.get("success"):
        raise HTTPException(status_code=400, detail=result.get("error") or "Failed to track shipment")
    return ok({"order_number": order["order_number"], "tracking": result})


@router.put("/{order_id}/cancel")
def cancel_order(
    order_id: str,
    body: CancelBody,
    user=Depends(get_current_user),
    db=Depends(get_db),
    shipping: NimbusPostClient = Depends(get_shipping_client),
):
    order = _get_order(db, order_id)
    if not (_is_customer(order, user) or is_admin(user)):
        raise HTTPException(status_code=403, detail="Access denied")
    if order["status"] not in CANCELLABLE_STATUSES:
        raise HTTPException(status_code=400, detail="Order cannot be cancelled at this stage")

    shipment_id = (order.get("shipping") or {}).get("nimbus_order_id")
    if shipment_id:
        result = shipping.cancel_shipment(shipment_id, body.reason)
        if not result.get("success"):
            logger.warning("Could not cancel shipment %s for %s", shipment_id, order["order_number"])

    release_stock(db, order)
    update = status_update("cancelled")
    update["cancellation_reason"] = body.reason
    db["order"].update_one({"_id": order["_id"]}, {"$set": update})

    customer = _customer_of(db, order)
    if customer:
        subject, html_body = notifications.order_cancelled(customer.get("name"), order, body.reason)
        notifications.send_email(customer["email"], subject, html_body)

    updated = db["order"].find_one({"_id": order["_id"]})
    return ok({"order": serialize_doc(updated)}, "Order cancelled successfully")
