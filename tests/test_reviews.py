from utils import now

API = "/api/v1/products"


def deliver(db, customer, product):
    db["order"].insert_one({
        "order_number": "ORD-1-DELIVERED",
        "customer": customer["_id"],
        "items": [{"product": product["_id"], "seller": product["seller"], "quantity": 1}],
        "status": "delivered",
        "created_at": now(),
    })


def test_review_requires_delivered_purchase(client, customer, seller, make_product, auth):
    product = make_product(seller)
    res = client.post(f"{API}/{product['_id']}/reviews", json={"rating": 5, "comment": "Great"}, headers=auth(customer))
    assert res.status_code == 403


def test_review_updates_product_rating(client, customer, make_user, seller, make_product, db, auth):
    product = make_product(seller)
    other = make_user("user")
    deliver(db, customer, product)
    deliver(db, other, product)

    res = client.post(f"{API}/{product['_id']}/reviews", json={"rating": 5, "comment": "  Great fit  "}, headers=auth(customer))
    assert res.status_code == 201
    review = res.json()["data"]["review"]
    assert review["comment"] == "Great fit"
    assert review["verified"] is True
    assert review["user"]["name"] == customer["name"]

    client.post(f"{API}/{product['_id']}/reviews", json={"rating": 4, "comment": "Good"}, headers=auth(other))
    stored = db["product"].find_one({"_id": product["_id"]})
    assert stored["average_rating"] == 4.5
    assert stored["review_count"] == 2


def test_second_review_is_rejected(client, customer, seller, make_product, db, auth):
    product = make_product(seller)
    deliver(db, customer, product)
    url = f"{API}/{product['_id']}/reviews"
    assert client.post(url, json={"rating": 3, "comment": "Okay"}, headers=auth(customer)).status_code == 201
    res = client.post(url, json={"rating": 1, "comment": "Changed my mind"}, headers=auth(customer))
    assert res.status_code == 400
    assert res.json()["error"]["message"] == "You have already reviewed this product"


def test_review_validation(client, customer, seller, make_product, auth):
    product = make_product(seller)
    url = f"{API}/{product['_id']}/reviews"
    assert client.post(url, json={"rating": 6, "comment": "Wow"}, headers=auth(customer)).status_code == 400
    assert client.post(url, json={"rating": 4, "comment": "   "}, headers=auth(customer)).status_code == 400


def test_list_reviews(client, customer, seller, make_product, db, auth):
    product = make_product(seller)
    deliver(db, customer, product)
    client.post(f"{API}/{product['_id']}/reviews", json={"rating": 4, "comment": "Nice"}, headers=auth(customer))
    data = client.get(f"{API}/{product['_id']}/reviews").json()["data"]
    assert data["pagination"]["total"] == 1
    assert data["items"][0]["user"]["name"] == customer["name"]
