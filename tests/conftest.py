import os

os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "rzp_webhook_secret"
os.environ["RESEND_API_KEY"] = ""
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_NAME", None)

from datetime import timedelta  # noqa: E402

import mongomock  # noqa: E402
import pytest  # noqa: E402
from bson.objectid import ObjectId  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import notifications  # noqa: E402
from catalog import lineage  # noqa: E402
from database import create_document, get_db  # noqa: E402
from main import app  # noqa: E402
from payment_gateway import PaymentGatewayError, RazorpayGateway, get_payment_gateway  # noqa: E402
from schemas import Category, Product, User  # noqa: E402
from security import create_token, hash_password  # noqa: E402
from shipping_gateway import get_shipping_client  # noqa: E402
from utils import now, slugify  # noqa: E402

PASSWORD = "password123"

SHIPPING_ADDRESS = {
    "name": "Asha Rao",
    "phone": "9876543210",
    "email": "asha@example.com",
    "address_line1": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
}


class FakeRazorpay(RazorpayGateway):
    def __init__(self):
        super().__init__(
            key_id="rzp_test_key",
            key_secret="rzp_test_secret",
            webhook_secret="rzp_webhook_secret",
            base_url="https://razorpay.test/v1",
        )
        self.fail = False
        self.orders = []

    def create_order(self, amount, receipt, notes=None):
        if self.fail:
            raise PaymentGatewayError("Payment gateway is unreachable")
        gateway_id = f"order_{len(self.orders) + 1:04d}"
        self.orders.append({"id": gateway_id, "amount": amount, "receipt": receipt})
        return {"order_id": gateway_id, "amount": int(round(amount * 100)), "currency": "INR", "key_id": self.key_id}


class FakeNimbus:
    def __init__(self):
        self.shipments = []
        self.cancelled = []
        self.fail = False

    def create_shipment(self, order):
        if self.fail:
            return {"success": False, "error": "Courier unavailable"}
        self.shipments.append(order["order_number"])
        awb = f"AWB{len(self.shipments):06d}"
        return {
            "success": True,
            "nimbus_order_id": str(9000 + len(self.shipments)),
            "tracking_number": awb,
            "estimated_delivery": "2026-01-05",
            "tracking_url": f"https://track.nimbuspost.com/{awb}",
        }

    def track_shipment(self, awb):
        return {"success": True, "tracking_number": awb, "status": "In Transit", "status_code": "IT", "tracking_history": []}

    def cancel_shipment(self, shipment_id, reason="Customer request"):
        self.cancelled.append(shipment_id)
        return {"success": True, "refund_amount": 0}


@pytest.fixture
def db():
    return mongomock.MongoClient()["marketplace_test"]


@pytest.fixture
def razorpay():
    return FakeRazorpay()


@pytest.fixture
def nimbus():
    return FakeNimbus()


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    def fake_send(to, subject, html_body, text=None):
        sent.append({"to": to, "subject": subject, "html": html_body, "text": text})
        return True

    monkeypatch.setattr(notifications, "send_email", fake_send)
    monkeypatch.setattr(notifications, "send_email_or_raise", fake_send)
    return sent


@pytest.fixture
def client(db, razorpay, nimbus, sent_emails):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_payment_gateway] = lambda: razorpay
    app.dependency_overrides[get_shipping_client] = lambda: nimbus
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ----------------------- Factories -----------------------
@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def factory(role="user", **fields):
        counter["n"] += 1
        data = {
            "name": f"{role.title()} {counter['n']}",
            "email": f"{role}{counter['n']}@example.com",
            "password_hash": hash_password(PASSWORD),
            "role": role,
        }
        data.update(fields)
        user_id = create_document(db, "user", User(**data))
        return db["user"].find_one({"_id": ObjectId(user_id)})

    return factory


def auth_headers(user):
    return {"Authorization": f"Bearer {create_token(user)}"}


@pytest.fixture
def customer(make_user):
    return make_user("user")


@pytest.fixture
def seller(make_user):
    return make_user("seller")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def make_category(db):
    def factory(name="Fashion", parent=None, **fields):
        ancestors, level = lineage(parent)
        category = Category(
            name=name,
            slug=slugify(name),
            parent=parent["_id"] if parent else None,
            ancestors=ancestors,
            level=level,
            **fields,
        )
        category_id = create_document(db, "category", category)
        return db["category"].find_one({"_id": ObjectId(category_id)})

    return factory


@pytest.fixture
def category(make_category):
    return make_category("Fashion")


@pytest.fixture
def make_product(db, category):
    counter = {"n": 0}

    def factory(seller, **fields):
        counter["n"] += 1
        data = {
            "name": f"Cotton Shirt {counter['n']}",
            "description": "A comfortable cotton shirt for everyday wear.",
            "price": 1000,
            "category": category["_id"],
            "seller": seller["_id"],
            "images": [{"url": "https://cdn.example.com/shirt.jpg", "is_primary": True}],
            "sizes": [{"size": "M", "stock": 5}, {"size": "L", "stock": 3}],
            "status": "active",
            "sku": f"SHIRT-{counter['n']:04d}",
        }
        data.update(fields)
        product_id = create_document(db, "product", Product(**data))
        return db["product"].find_one({"_id": ObjectId(product_id)})

    return factory


@pytest.fixture
def make_coupon(db):
    def factory(code="SAVE10", type="percentage", value=10, **fields):
        data = {
            "code": code,
            "description": f"{code} discount",
            "type": type,
            "value": value,
            "minimum_order_amount": 0,
            "used_count": 0,
            "valid_from": now() - timedelta(days=1),
            "valid_until": now() + timedelta(days=30),
            "is_active": True,
            "applicable_products": [],
            "applicable_categories": [],
        }
        data.update(fields)
        db["coupon"].insert_one(data)
        return db["coupon"].find_one({"code": code})

    return factory


@pytest.fixture
def auth():
    return auth_headers
