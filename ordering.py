"""
Order construction shared by POST /orders and the cart checkout:
pricing, coupon discounts, tax, stock reservation and notifications.
"""
import logging
import random
import string
import time
from datetime import timedelta
from typing import Iterable, List, Optional

from bson.objectid import ObjectId
from fastapi import HTTPException

import notifications
import settings
from catalog import StockError, available_stock, primary_image, return_stock, take_stock, unit_price
from database import create_document
from schemas import Order, OrderItem
from utils import as_utc, now, oid

logger = logging.getLogger(__name__)

STATUS_TIMESTAMPS = {
    "confirmed": "confirmed_at",
    "shipped": "shipped_at",
    "delivered": "delivered_at",
    "cancelled": "cancelled_at",
}
CANCELLABLE_STATUSES = ("pending", "confirmed")


def order_number() -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def shipping_cost_for(method: str) -> float:
    return settings.SHIPPING_RATES.get(method, settings.SHIPPING_RATES["standard"])


def tax_for(subtotal: float) -> float:
    return round(subtotal * settings.TAX_RATE)


# ----------------------- Coupons -----------------------
def coupon_is_valid(coupon: dict, at=None) -> bool:
    at = at or now()
    if not coupon.get("is_active", True):
        return False
    if as_utc(coupon["valid_from"]) > at or as_utc(coupon["valid_until"]) < at:
        return False
    limit = coupon.get("usage_limit")
    return limit is None or coupon.get("used_count", 0) < limit


def coupon_applies(coupon: dict, items: Iterable[dict]) -> bool:
    products = {str(p) for p in coupon.get("applicable_products") or []}
    categories = {str(c) for c in coupon.get("applicable_categories") or []}
    if not products and not categories:
        return True
    return any(
        str(item.get("product")) in products or str(item.get("category")) in categories
        for item in items
    )


def coupon_discount(coupon: dict, amount: float) -> float:
    if coupon["type"] == "percentage":
        discount = round(amount * coupon["value"] / 100)
        if coupon.get("maximum_discount"):
            discount = min(discount, coupon["maximum_discount"])
        return discount
    if coupon["type"] == "fixed":
        return min(coupon["value"], amount)
    return 0


def check_coupon(db, code: str, amount: float, items: Iterable[dict]):
    """Look up `code` and make sure it can be used on this order. Returns (coupon, discount)."""
    coupon = db["coupon"].find_one({"code": code.strip().upper(), "is_active": True})
    if not coupon:
        raise HTTPException(status_code=404, detail="Invalid coupon code")
    if not coupon_is_valid(coupon):
        raise HTTPException(status_code=400, detail="Coupon has expired or reached usage limit")
    if amount < coupon.get("minimum_order_amount", 0):
        raise HTTPException(
            status_code=400,
            detail=f"Minimum order amount of ₹{coupon['minimum_order_amount']} required",
        )
    if not coupon_applies(coupon, items):
        raise HTTPException(status_code=400, detail="Coupon not applicable to selected items")
    return coupon, coupon_discount(coupon, amount)


# ----------------------- Orders -----------------------
def price_items(db, lines: List[dict], missing_status: int = 404):
    """Resolve requested lines against the catalog.

    Returns (order items, subtotal, products keyed by id).
    """
    items = []
    products = {}
    subtotal = 0
    for line in lines:
        product_id = oid(line["product_id"], "product id")
        product = products.get(product_id) or db["product"].find_one({"_id": product_id})
        if not product:
            raise HTTPException(status_code=missing_status, detail=f"Product not found: {product_id}")
        products[product_id] = product
        variants = line.get("variants") or {}
        quantity = int(line["quantity"])
        if available_stock(product, variants.get("size")) < quantity:
            raise HTTPException(status_code=400, detail=f"Insufficient stock for {product['name']}")
        price = unit_price(product)
        line_total = price * quantity
        subtotal += line_total
        items.append(
            OrderItem(
                product=product_id,
                seller=product["seller"],
                name=product["name"],
                image=primary_image(product),
                price=price,
                quantity=quantity,
                variants=variants,
                subtotal=line_total,
            ).model_dump()
        )
    return items, subtotal, products


def _reserve(items: List[dict], products: dict) -> dict:
    pending = {}
    for item in items:
        product = products[item["product"]]
        sizes = pending.get(item["product"], product.get("sizes") or [])
        try:
            pending[item["product"]] = take_stock(sizes, item["quantity"], (item.get("variants") or {}).get("size"))
        except StockError:
            raise HTTPException(status_code=400, detail=f"Insufficient stock for {product['name']}")
    return pending


def place_order(
    db,
    customer: dict,
    lines: List[dict],
    shipping_address: Optional[dict],
    billing_address: Optional[dict] = None,
    payment_method: str = "razorpay",
    shipping_method: str = "standard",
    coupon_code: Optional[str] = None,
    customer_notes: Optional[str] = None,
    shipping_cost: Optional[float] = None,
    missing_status: int = 404,
) -> dict:
    items, subtotal, products = price_items(db, lines, missing_status)
    if shipping_cost is None:
        shipping_cost = shipping_cost_for(shipping_method)

    coupon = None
    discount = 0
    if coupon_code:
        coupon_items = [{"product": i["product"], "category": products[i["product"]].get("category")} for i in items]
        coupon, discount = check_coupon(db, coupon_code, subtotal, coupon_items)
        if coupon["type"] == "shipping":
            shipping_cost = 0

    reserved = _reserve(items, products)
    tax = tax_for(subtotal)
    total = max(0, subtotal + shipping_cost + tax - discount)

    sellers = []
    for item in items:
        if item["seller"] not in sellers:
            sellers.append(item["seller"])

    order = Order(
        order_number=order_number(),
        customer=customer["_id"],
        items=items,
        sellers=sellers,
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        tax=tax,
        discount=discount,
        total=total,
        coupon_code=coupon["code"] if coupon else None,
        shipping_address=shipping_address,
        billing_address=billing_address or shipping_address,
        payment_method=payment_method,
        customer_notes=customer_notes,
        shipping={"method": shipping_method},
        placed_at=now(),
    ).model_dump()
    order["_id"] = ObjectId(create_document(db, "order", order))

    for product_id, sizes in reserved.items():
        sold = sum(i["quantity"] for i in items if i["product"] == product_id)
        db["product"].update_one({"_id": product_id}, {"$set": {"sizes": sizes}, "$inc": {"sales": sold}})
    if coupon:
        db["coupon"].update_one({"_id": coupon["_id"]}, {"$inc": {"used_count": 1}})

    logger.info("Order %s placed by %s (total %s)", order["order_number"], customer["_id"], total)
    return order


def release_stock(db, order: dict):
    for item in order.get("items", []):
        product = db["product"].find_one({"_id": item["product"]}, {"sizes": 1})
        if not product:
            continue
        sizes = return_stock(product.get("sizes") or [], item["quantity"], (item.get("variants") or {}).get("size"))
        db["product"].update_one({"_id": item["product"]}, {"$set": {"sizes": sizes}, "$inc": {"sales": -item["quantity"]}})


def status_update(status: str, notes: Optional[str] = None) -> dict:
    """$set document for moving an order to `status`."""
    update = {"status": status, "updated_at": now()}
    stamp = STATUS_TIMESTAMPS.get(status)
    if stamp:
        update[stamp] = now()
    if notes:
        update["admin_notes"] = notes
    return update


def tracking_update(order: dict, result: dict) -> dict:
    update = {
        "shipping.provider": "nimbuspost",
        "shipping.tracking_number": result.get("tracking_number"),
        "shipping.nimbus_order_id": result.get("nimbus_order_id"),
        "shipping.tracking_url": result.get("tracking_url"),
        "shipping.estimated_delivery": result.get("estimated_delivery"),
        "updated_at": now(),
    }
    if result.get("tracking_number") and order.get("status") == "processing":
        update["status"] = "shipped"
        update["shipped_at"] = now()
    return update


def seller_ids(order: dict) -> set:
    return {str(i["seller"]) for i in order.get("items", [])}


def notify_order_placed(db, customer: dict, order: dict):
    subject, body = notifications.order_confirmation(customer.get("name"), order)
    notifications.send_email(customer["email"], subject, body)
    for seller_id in seller_ids(order):
        seller = db["user"].find_one({"_id": ObjectId(seller_id)}, {"name": 1, "email": 1})
        if not seller:
            continue
        items = [i for i in order["items"] if str(i["seller"]) == seller_id]
        subject, body = notifications.new_seller_order(seller.get("name"), order, items)
        notifications.send_email(seller["email"], subject, body)


# ----------------------- Reporting -----------------------
PERIOD_DAYS = {"7d": 7, "30d": 30, "90d": 90}


def placed_time(order: dict):
    return as_utc(order.get("placed_at") or order.get("created_at"))


def daily_sales(orders: Iterable[dict], days: int, amount=lambda order: order.get("total", 0)) -> List[dict]:
    """Bucket orders into one {date, sales, orders} row per day for the last `days` days, oldest first."""
    today = now().date()
    series = {(today - timedelta(days=n)).isoformat(): {"sales": 0, "orders": 0} for n in range(days - 1, -1, -1)}
    for order in orders:
        placed = placed_time(order)
        bucket = series.get(placed.date().isoformat()) if placed else None
        if bucket is None:
            continue
        bucket["sales"] += amount(order)
        bucket["orders"] += 1
    return [{"date": day, **values} for day, values in series.items()]
