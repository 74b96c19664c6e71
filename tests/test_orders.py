from tests.conftest import SHIPPING_ADDRESS

API = "/api/v1/orders"


def place(client, headers, product, quantity=2, **fields):
    body = {
        "items": [{"product": str(product["_id"]), "quantity": quantity, "variants": {"size": "M"}}],
        "shipping_address": SHIPPING_ADDRESS,
        "payment_method": "razorpay",
    }
    body.update(fields)
    return client.post(API, json=body, headers=headers)


def test_create_order_prices_and_reserves_stock(client, customer, seller, make_product, db, sent_emails, auth):
    product = make_product(seller)
    res = place(client, auth(customer), product)
    assert res.status_code == 201
    order = res.json()["data"]["order"]
    assert order["order_number"].startswith("ORD-")
    assert order["subtotal"] == 2000
    assert order["shipping_cost"] == 50
    assert order["tax"] == 360
    assert order["total"] == 2410
    assert order["status"] == "pending"
    assert order["sellers"] == [str(seller["_id"])]
    assert order["items"][0]["id"]
    assert order["billing_address"]["pincode"] == "560001"

    stored = db["product"].find_one({"_id": product["_id"]})
    assert stored["sizes"][0]["stock"] == 3
    assert stored["sales"] == 2
    assert len(sent_emails) == 2


def test_create_order_validation(client, customer, seller, make_product, auth):
    product = make_product(seller)
    headers = auth(customer)
    assert place(client, headers, product, items=[]).status_code == 400
    bad_address = dict(SHIPPING_ADDRESS, pincode="1234")
    assert place(client, headers, product, shipping_address=bad_address).status_code == 400
    assert place(client, headers, product, payment_method="barter").status_code == 400


def test_create_order_insufficient_stock(client, customer, seller, make_product, auth):
    product = make_product(seller)
    res = place(client, auth(customer), product, quantity=6)
    assert res.status_code == 400
    assert res.json()["error"]["message"].startswith("Insufficient stock")


def test_create_order_with_coupons(client, customer, seller, make_product, make_coupon, db, auth):
    product = make_product(seller)
    make_coupon("SAVE10", value=10)
    make_coupon("FREESHIP", type="shipping", value=0)
    headers = auth(customer)

    order = place(client, headers, product, coupon_code="save10").json()["data"]["order"]
    assert order["discount"] == 200
    assert order["total"] == 2000 + 50 + 360 - 200
    assert order["coupon_code"] == "SAVE10"
    assert db["coupon"].find_one({"code": "SAVE10"})["used_count"] == 1

    order = place(client, headers, product, quantity=1, coupon_code="FREESHIP").json()["data"]["order"]
    assert order["shipping_cost"] == 0


def test_unknown_coupon(client, customer, seller, make_product, auth):
    product = make_product(seller)
    res = place(client, auth(customer), product, coupon_code="NOPE")
    assert res.status_code == 404


def test_customer_cancels_pending_order(client, customer, seller, make_product, db, auth):
    product = make_product(seller)
    headers = auth(customer)
    order = place(client, headers, product).json()["data"]["order"]

    res = client.put(f"{API}/{order['id']}/cancel", json={"reason": "Changed my mind"}, headers=headers)
    assert res.status_code == 200
    cancelled = res.json()["data"]["order"]
    assert cancelled["status"] == "cancelled"
    assert cancelled["cancellation_reason"] == "Changed my mind"
    assert cancelled["cancelled_at"]
    stored = db["product"].find_one({"_id": product["_id"]})
    assert stored["sizes"][0]["stock"] == 5
    assert stored["sales"] == 0


def test_shipped_order_cannot_be_cancelled(client, customer, seller, make_product, db, auth):
    product = make_product(seller)
    headers = auth(customer)
    order = place(client, headers, product).json()["data"]["order"]
    db["order"].update_one({"order_number": order["order_number"]}, {"$set": {"status": "shipped"}})
    res = client.put(f"{API}/{order['id']}/cancel", json={"reason": "Too late"}, headers=headers)
    assert res.status_code == 400


def test_order_visibility(client, customer, seller, admin, make_user, make_product, auth):
    product = make_product(seller)
    order = place(client, auth(customer), product).json()["data"]["order"]
    stranger = make_user("user")
    assert client.get(f"{API}/{order['id']}", headers=auth(customer)).status_code == 200
    assert client.get(f"{API}/{order['id']}", headers=auth(seller)).status_code == 200
    assert client.get(f"{API}/{order['id']}", headers=auth(admin)).status_code == 200
    assert client.get(f"{API}/{order['id']}", headers=auth(stranger)).status_code == 403


def test_confirming_prepaid_order_creates_shipment(client, customer, seller, make_product, nimbus, sent_emails, auth):
    product = make_product(seller)
    order = place(client, auth(customer), product).json()["data"]["order"]

    res = client.put(f"{API}/{order['id']}/status", json={"status": "confirmed"}, headers=auth(seller))
    assert res.status_code == 200
    updated = res.json()["data"]["order"]
    assert updated["status"] == "confirmed"
    assert updated["confirmed_at"]
    assert updated["shipping"]["tracking_number"] == "AWB000001"
    assert updated["shipping"]["provider"] == "nimbuspost"
    assert nimbus.shipments == [order["order_number"]]
    assert sent_emails[-1]["to"] == customer["email"]


def test_status_change_permissions(client, customer, seller, make_user, make_product, auth):
    product = make_product(seller)
    order = place(client, auth(customer), product).json()["data"]["order"]
    outsider = make_user("seller")
    res = client.put(f"{API}/{order['id']}/status", json={"status": "confirmed"}, headers=auth(outsider))
    assert res.status_code == 403
    res = client.put(f"{API}/{order['id']}/status", json={"status": "confirmed"}, headers=auth(customer))
    assert res.status_code == 403


def test_cancelled_order_status_is_frozen(client, customer, seller, make_product, auth):
    product = make_product(seller)
    headers = auth(customer)
    order = place(client, headers, product).json()["data"]["order"]
    client.put(f"{API}/{order['id']}/cancel", json={"reason": "No longer needed"}, headers=headers)
    res = client.put(f"{API}/{order['id']}/status", json={"status": "confirmed"}, headers=auth(seller))
    assert res.status_code == 400


def test_item_status_update(client, customer, seller, make_product, db, auth):
    product = make_product(seller)
    order = place(client, auth(customer), product).json()["data"]["order"]
    item_id = order["items"][0]["id"]
    res = client.put(f"{API}/{order['id']}/items/{item_id}/status", json={"status": "processing"}, headers=auth(seller))
    assert res.status_code == 200
    assert db["order"].find_one({"order_number": order["order_number"]})["items"][0]["status"] == "processing"
    res = client.put(f"{API}/{order['id']}/items/missing/status", json={"status": "processing"}, headers=auth(seller))
    assert res.status_code == 404


def test_manual_ship_and_track(client, customer, seller, make_product, nimbus, auth):
    product = make_product(seller)
    order = place(client, auth(customer), product, payment_method="cod").json()["data"]["order"]

    assert client.post(f"{API}/{order['id']}/ship", headers=auth(seller)).status_code == 400
    assert client.get(f"{API}/{order['id']}/track", headers=auth(customer)).status_code == 400

    client.put(f"{API}/{order['id']}/status", json={"status": "confirmed"}, headers=auth(seller))
    assert nimbus.shipments == []

    res = client.post(f"{API}/{order['id']}/ship", headers=auth(seller))
    assert res.status_code == 200
    assert res.json()["data"]["tracking_number"] == "AWB000001"

    res = client.get(f"{API}/{order['id']}/track", headers=auth(customer))
    assert res.json()["data"]["tracking"]["status"] == "In Transit"


def test_ship_failure_is_reported(client, customer, seller, make_product, nimbus, db, auth):
    product = make_product(seller)
    order = place(client, auth(customer), product, payment_method="cod").json()["data"]["order"]
    db["order"].update_one({"order_number": order["order_number"]}, {"$set": {"status": "processing"}})
    nimbus.fail = True
    res = client.post(f"{API}/{order['id']}/ship", headers=auth(seller))
    assert res.status_code == 400
    assert res.json()["error"]["message"] == "Courier unavailable"


def test_nimbus_webhook_marks_delivered(client, customer, seller, make_product, db, auth):
    product = make_product(seller)
    order = place(client, auth(customer), product).json()["data"]["order"]
    client.put(f"{API}/{order['id']}/status", json={"status": "confirmed"}, headers=auth(seller))

    res = client.post(f"{API}/webhook/nimbus", json={"awb": "AWB000001", "current_status": "Delivered", "current_status_code": "DEL"})
    assert res.status_code == 200
    stored = db["order"].find_one({"order_number": order["order_number"]})
    assert stored["status"] == "delivered"
    assert stored["delivered_at"] is not None
    assert stored["shipping"]["status"] == "Delivered"

    assert client.post(f"{API}/webhook/nimbus", json={"current_status": "Delivered"}).status_code == 400


def test_listings(client, customer, seller, admin, make_user, make_product, auth):
    product = make_product(seller)
    other_seller = make_user("seller")
    other_product = make_product(other_seller)
    body = {
        "items": [
            {"product": str(product["_id"]), "quantity": 1},
            {"product": str(other_product["_id"]), "quantity": 1},
        ],
        "shipping_address": SHIPPING_ADDRESS,
        "payment_method": "cod",
    }
    assert client.post(API, json=body, headers=auth(customer)).status_code == 201

    mine = client.get(f"{API}/my-orders", headers=auth(customer)).json()["data"]
    assert mine["pagination"]["total"] == 1

    seller_view = client.get(f"{API}/seller/my-orders", headers=auth(seller)).json()["data"]["items"]
    assert len(seller_view[0]["items"]) == 1
    assert seller_view[0]["items"][0]["product"] == str(product["_id"])

    stats = client.get(f"{API}/seller/stats", headers=auth(seller)).json()["data"]
    assert stats == {"total_orders": 1, "orders_by_status": {"pending": 1}, "total_revenue": 1000}

    assert client.get(f"{API}/admin/all", headers=auth(seller)).status_code == 403
    everything = client.get(f"{API}/admin/all", params={"seller": str(other_seller["_id"])}, headers=auth(admin))
    assert everything.json()["data"]["pagination"]["total"] == 1

    admin_stats = client.get(f"{API}/admin/stats", headers=auth(admin)).json()["data"]
    assert admin_stats["total_orders"] == 1
    assert admin_stats["total_revenue"] == 0


def test_cancelling_through_status_route_releases_stock(client, customer, seller, make_product, db, auth):
    product = make_product(seller)
    order = place(client, auth(customer), product, payment_method="cod").json()["data"]["order"]
    assert db["product"].find_one({"_id": product["_id"]})["sizes"][0]["stock"] == 3

    res = client.put(f"{API}/{order['id']}/status", json={"status": "cancelled", "notes": "Out of fabric"}, headers=auth(seller))
    assert res.status_code == 200
    cancelled = res.json()["data"]["order"]
    assert cancelled["status"] == "cancelled"
    assert cancelled["cancellation_reason"] == "Out of fabric"
    assert cancelled["cancelled_at"]

    stored = db["product"].find_one({"_id": product["_id"]})
    assert stored["sizes"][0]["stock"] == 5
    assert stored["sales"] == 0
