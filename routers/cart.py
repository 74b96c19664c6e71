import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

import session_cart
import settings
from catalog import available_stock, primary_image, product_view, unit_price
from database import get_db
from ordering import notify_order_placed, place_order, release_stock, status_update
from payment_gateway import PaymentGatewayError, RazorpayGateway, get_payment_gateway
from schemas import ShippingAddress
from security import get_current_user
from utils import now, oid, ok, serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cart", tags=["cart"])


class CartAddBody(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    variants: dict = {}


class CartUpdateBody(BaseModel):
    product_id: str
    quantity: int
    variants: dict = {}


class CartRemoveBody(BaseModel):
    product_id: str
    variants: dict = {}


class CheckoutBody(BaseModel):
    shipping_address: ShippingAddress
    billing_address: Optional[ShippingAddress] = None
    payment_method: Literal["razorpay", "cod"] = "razorpay"
    coupon_code: Optional[str] = None
    customer_notes: Optional[str] = Field(None, max_length=500)


def _cart(request: Request, user: dict) -> list:
    return session_cart.load(request.session, str(user["_id"]))


@router.get("")
def get_cart(request: Request, user=Depends(get_current_user), db=Depends(get_db)):
    cart = _cart(request, user)
    refreshed = []
    lines = []
    for line in cart:
        product = db["product"].find_one({"_id": oid(line["product_id"], "product id")})
        if not product:
            continue
        line = dict(line, price=unit_price(product), name=product["name"], image=primary_image(product))
        refreshed.append(line)
        view = product_view(product)
        lines.append(dict(line, product={
            "id": view["id"],
            "name": view["name"],
            "images": view.get("images", []),
            "price": line["price"],
            "total_inventory": view["total_inventory"],
            "sizes": view.get("sizes", []),
            "colors": view.get("colors", []),
        }))
    session_cart.save(request.session, refreshed)
    return ok({"cart": lines, "cart_total": session_cart.cart_total(refreshed), "cart_count": session_cart.cart_count(refreshed)})


@router.post("/add")
def add_to_cart(body: CartAddBody, request: Request, user=Depends(get_current_user), db=Depends(get_db)):
    product = db["product"].find_one({"_id": oid(body.product_id, "product id")})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if product.get("status") != "active":
        raise HTTPException(status_code=400, detail="Product is not available")

    cart = _cart(request, user)
    wanted = session_cart.quantity_in_cart(cart, body.product_id, body.variants) + body.quantity
    if available_stock(product, body.variants.get("size")) < wanted:
        raise HTTPException(status_code=400, detail="Insufficient stock")

    cart = session_cart.add_item(cart, {
        "product_id": body.product_id,
        "quantity": body.quantity,
        "variants": body.variants,
        "price": unit_price(product),
        "name": product["name"],
        "image": primary_image(product),
        "seller": str(product["seller"]),
    })
    session_cart.save(request.session, cart)
    return ok(session_cart.summary(cart), "Item added to cart")


@router.put("/update")
def update_cart(body: CartUpdateBody, request: Request, user=Depends(get_current_user)):
    cart = _cart(request, user)
    if not cart:
        raise HTTPException(status_code=404, detail="Cart is empty")
    try:
        cart = session_cart.update_quantity(cart, body.product_id, body.variants, body.quantity)
    except session_cart.CartLineNotFound:
        raise HTTPException(status_code=404, detail="Item not found in cart")
    session_cart.save(request.session, cart)
    return ok(session_cart.summary(cart), "Cart updated")


@router.delete("/remove")
def remove_from_cart(body: CartRemoveBody, request: Request, user=Depends(get_current_user)):
    cart = _cart(request, user)
    try:
        cart = session_cart.remove_item(cart, body.product_id, body.variants)
    except session_cart.CartLineNotFound:
        raise HTTPException(status_code=404, detail="Item not found in cart")
    session_cart.save(request.session, cart)
    return ok(session_cart.summary(cart), "Item removed from cart")


@router.post("/clear")
def clear_cart(request: Request, user=Depends(get_current_user)):
    _cart(request, user)
    session_cart.save(request.session, [])
    return ok(session_cart.summary([]), "Cart cleared successfully")


@router.get("/checkout")
def checkout_get():
    raise HTTPException(status_code=405, detail="Use POST to initiate checkout")


@router.post("/checkout")
def checkout(
    body: CheckoutBody,
    request: Request,
    user=Depends(get_current_user),
    db=Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    cart = _cart(request, user)
    if not cart:
        raise HTTPException(status_code=400, detail="Cart is empty")

    order = place_order(
        db,
        user,
        [{"product_id": line["product_id"], "quantity": line["quantity"], "variants": line.get("variants")} for line in cart],
        shipping_address=body.shipping_address.model_dump(),
        billing_address=body.billing_address.model_dump() if body.billing_address else None,
        payment_method=body.payment_method,
        coupon_code=body.coupon_code,
        customer_notes=body.customer_notes,
        shipping_cost=0,
        missing_status=400,
    )

    payment = {}
    if body.payment_method == "razorpay":
        try:
            gateway_order = gateway.create_order(
                order["total"],
                receipt=order["order_number"],
                notes={"order_id": str(order["_id"]), "customer": str(user["_id"])},
            )
        except PaymentGatewayError as exc:
            update = status_update("cancelled")
            update.update({
                "payment_status": "failed",
                "payment_details.failure_reason": str(exc),
                "cancellation_reason": "Payment order could not be created",
            })
            db["order"].update_one({"_id": order["_id"]}, {"$set": update})
            release_stock(db, order)
            if order.get("coupon_code"):
                db["coupon"].update_one({"code": order["coupon_code"]}, {"$inc": {"used_count": -1}})
            raise HTTPException(status_code=400, detail=str(exc))
        db["order"].update_one(
            {"_id": order["_id"]},
            {"$set": {
                "payment_details.transaction_id": gateway_order["order_id"],
                "payment_details.gateway_response": gateway_order,
                "updated_at": now(),
            }},
        )
        order["payment_details"]["transaction_id"] = gateway_order["order_id"]
        payment = {
            "razorpay_order_id": gateway_order["order_id"],
            "razorpay_key_id": gateway_order["key_id"],
            "amount": gateway_order["amount"],
            "currency": gateway_order.get("currency", settings.CURRENCY),
        }

    session_cart.save(request.session, [])
    notify_order_placed(db, user, order)
    return ok(dict(order=serialize_doc(order), **payment), "Order created successfully")
