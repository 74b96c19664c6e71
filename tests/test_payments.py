import hashlib
import hmac
import json

import pytest

from utils import now

API = "/api/v1/payments"


def sign(secret, message):
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


@pytest.fixture
def order(db, customer):
    doc = {
        "order_number": "ORD-PAY-1",
        "customer": customer["_id"],
        "items": [],
        "status": "pending",
        "total": 2360,
        "payment_method": "razorpay",
        "payment_status": "pending",
        "payment_details": {"method": "razorpay", "transaction_id": "order_0001"},
        "created_at": now(),
    }
    doc["_id"] = db["order"].insert_one(doc).inserted_id
    return doc


def verify(client, headers, order_id="order_0001", payment_id="pay_0001", signature=None):
    if signature is None:
        signature = sign("rzp_test_secret", f"{order_id}|{payment_id}".encode())
    body = {"razorpay_order_id": order_id, "razorpay_payment_id": payment_id, "razorpay_signature": signature}
    return client.post(f"{API}/verify", json=body, headers=headers)


def test_verify_marks_order_paid(client, customer, order, db, auth):
    res = verify(client, auth(customer))
    assert res.status_code == 200
    assert res.json()["data"] == {"order_id": str(order["_id"]), "order_number": "ORD-PAY-1", "payment_status": "paid"}

    stored = db["order"].find_one({"_id": order["_id"]})
    assert stored["payment_status"] == "paid"
    assert stored["status"] == "confirmed"
    assert stored["payment_details"]["payment_id"] == "pay_0001"
    assert stored["payment_details"]["paid_at"] is not None
    assert stored["confirmed_at"] is not None


def test_verify_rejects_bad_signature(client, customer, order, db, auth):
    res = verify(client, auth(customer), signature="deadbeef")
    assert res.status_code == 400
    assert res.json()["error"]["message"] == "Invalid payment signature"
    assert db["order"].find_one({"_id": order["_id"]})["payment_status"] == "pending"


def test_verify_requires_all_fields(client, customer, auth):
    res = client.post(f"{API}/verify", json={"razorpay_order_id": "order_0001"}, headers=auth(customer))
    assert res.status_code == 400
    assert res.json()["error"]["message"] == "Missing payment verification data"


def test_verify_unknown_order(client, customer, auth):
    assert verify(client, auth(customer), order_id="order_9999").status_code == 404


def webhook(client, event, secret="rzp_webhook_secret"):
    raw = json.dumps(event).encode()
    return client.post(
        f"{API}/webhook/razorpay",
        content=raw,
        headers={"Content-Type": "application/json", "X-Razorpay-Signature": sign(secret, raw)},
    )


def captured(order_id="order_0001", payment_id="pay_0002"):
    return {"event": "payment.captured", "payload": {"payment": {"entity": {"id": payment_id, "order_id": order_id}}}}


def test_webhook_captures_payment(client, order, db):
    res = webhook(client, captured())
    assert res.status_code == 200
    stored = db["order"].find_one({"_id": order["_id"]})
    assert stored["payment_status"] == "paid"
    assert stored["status"] == "confirmed"
    assert stored["payment_details"]["payment_id"] == "pay_0002"

    assert webhook(client, captured(payment_id="pay_0009")).status_code == 200
    assert db["order"].find_one({"_id": order["_id"]})["payment_details"]["payment_id"] == "pay_0002"


def test_webhook_rejects_bad_signature(client, order, db):
    assert webhook(client, captured(), secret="wrong").status_code == 400
    assert db["order"].find_one({"_id": order["_id"]})["payment_status"] == "pending"


def test_webhook_records_failure(client, order, db):
    event = {
        "event": "payment.failed",
        "payload": {"payment": {"entity": {"id": "pay_0003", "order_id": "order_0001", "error_description": "Card declined"}}},
    }
    assert webhook(client, event).status_code == 200
    stored = db["order"].find_one({"_id": order["_id"]})
    assert stored["payment_status"] == "failed"
    assert stored["payment_details"]["failure_reason"] == "Card declined"
    assert stored["status"] == "pending"


def test_webhook_ignores_unknown_orders(client):
    assert webhook(client, captured("order_missing")).status_code == 200


def test_payment_status_visibility(client, customer, admin, make_user, order, auth):
    res = client.get(f"{API}/status/{order['_id']}", headers=auth(customer))
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["razorpay_order_id"] == "order_0001"
    assert data["amount"] == 2360
    assert data["currency"] == "INR"

    assert client.get(f"{API}/status/{order['_id']}", headers=auth(admin)).status_code == 200
    assert client.get(f"{API}/status/{order['_id']}", headers=auth(make_user("user"))).status_code == 403
    assert client.get(f"{API}/status/not-an-id", headers=auth(customer)).status_code == 400
