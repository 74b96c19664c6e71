import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

import settings
from database import get_db
from ordering import status_update
from payment_gateway import RazorpayGateway, get_payment_gateway
from security import get_current_user, is_admin
from utils import now, oid, ok, serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


class VerifyBody(BaseModel):
    razorpay_payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    razorpay_signature: Optional[str] = None


def _mark_paid(db, order: dict, payment_id: str):
    update = status_update("confirmed") if order.get("status") == "pending" else {"updated_at": now()}
    update.update({
        "payment_status": "paid",
        "payment_details.payment_id": payment_id,
        "payment_details.paid_at": now(),
    })
    db["order"].update_one({"_id": order["_id"]}, {"$set": update})


@router.post("/verify")
def verify_payment(
    body: VerifyBody,
    user=Depends(get_current_user),
    db=Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    if not (body.razorpay_payment_id and body.razorpay_order_id and body.razorpay_signature):
        raise HTTPException(status_code=400, detail="Missing payment verification data")
    if not gateway.verify_payment_signature(body.razorpay_order_id, body.razorpay_payment_id, body.razorpay_signature):
        logger.warning("Invalid payment signature for gateway order %s", body.razorpay_order_id)
        raise HTTPException(status_code=400, detail="Invalid payment signature")

    order = db["order"].find_one({"payment_details.transaction_id": body.razorpay_order_id})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    _mark_paid(db, order, body.razorpay_payment_id)
    logger.info("Payment verified for order %s", order["order_number"])
    return ok(
        {"order_id": str(order["_id"]), "order_number": order["order_number"], "payment_status": "paid"},
        "Payment verified successfully",
    )


@router.post("/webhook/razorpay")
async def razorpay_webhook(
    request: Request,
    db=Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    raw = await request.body()
    if not gateway.verify_webhook_signature(raw, request.headers.get("X-Razorpay-Signature")):
        raise HTTPException(status_code=400, detail="Invalid webhook signature")
    try:
        event = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    name = event.get("event")
    payment = ((event.get("payload") or {}).get("payment") or {}).get("entity") or {}
    logger.info("Razorpay webhook %s for gateway order %s", name, payment.get("order_id"))
    order = None
    if payment.get("order_id"):
        order = db["order"].find_one({"payment_details.transaction_id": payment["order_id"]})

    if order and name == "payment.captured" and order.get("payment_status") != "paid":
        _mark_paid(db, order, payment.get("id"))
    elif order and name == "payment.failed":
        db["order"].update_one({"_id": order["_id"]}, {"$set": {
            "payment_status": "failed",
            "payment_details.failure_reason": payment.get("error_description") or "Payment failed",
            "updated_at": now(),
        }})
    return ok(message="Webhook processed successfully")


@router.get("/status/{order_id}")
def payment_status(order_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    order = db["order"].find_one({"_id": oid(order_id, "order id")})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if not is_admin(user) and order.get("customer") != user["_id"]:
        raise HTTPException(status_code=403, detail="Access denied")
    details = order.get("payment_details") or {}
    return ok(serialize_doc({
        "order_id": order["_id"],
        "order_number": order["order_number"],
        "payment_status": order.get("payment_status"),
        "payment_method": order.get("payment_method"),
        "amount": order.get("total"),
        "currency": settings.CURRENCY,
        "razorpay_order_id": details.get("transaction_id"),
        "paid_at": details.get("paid_at"),
        "created_at": order.get("created_at"),
    }))
