from datetime import timedelta

from utils import now

API = "/api/v1/coupons"


def coupon_body(**fields):
    body = {
        "code": "summer20",
        "description": "Summer sale",
        "type": "percentage",
        "value": 20,
        "valid_from": (now() - timedelta(days=1)).isoformat(),
        "valid_until": (now() + timedelta(days=10)).isoformat(),
    }
    body.update(fields)
    return body


def test_seller_creates_coupon(client, seller, db, auth):
    res = client.post(API, json=coupon_body(), headers=auth(seller))
    assert res.status_code == 201
    coupon = res.json()["data"]["coupon"]
    assert coupon["code"] == "SUMMER20"
    assert coupon["created_by"] == str(seller["_id"])
    assert coupon["created_by_role"] == "seller"
    assert db["coupon"].count_documents({}) == 1


def test_duplicate_code(client, admin, make_coupon, auth):
    make_coupon("SUMMER20")
    res = client.post(API, json=coupon_body(), headers=auth(admin))
    assert res.status_code == 400
    assert res.json()["error"]["message"] == "Coupon code already exists"


def test_coupon_body_checks(client, admin, auth):
    res = client.post(API, json=coupon_body(value=150), headers=auth(admin))
    assert res.status_code == 400
    later, earlier = now() + timedelta(days=5), now() + timedelta(days=1)
    res = client.post(API, json=coupon_body(valid_from=later.isoformat(), valid_until=earlier.isoformat()), headers=auth(admin))
    assert res.status_code == 400


def test_customers_cannot_manage_coupons(client, customer, auth):
    assert client.post(API, json=coupon_body(), headers=auth(customer)).status_code == 403
    assert client.get(API, headers=auth(customer)).status_code == 403


def test_sellers_only_see_their_coupons(client, seller, make_user, admin, auth):
    other = make_user("seller")
    client.post(API, json=coupon_body(code="MINE10"), headers=auth(seller))
    client.post(API, json=coupon_body(code="THEIRS10"), headers=auth(other))

    codes = [c["code"] for c in client.get(API, headers=auth(seller)).json()["data"]["coupons"]]
    assert codes == ["MINE10"]
    assert len(client.get(API, headers=auth(admin)).json()["data"]["coupons"]) == 2


def test_validate(client, customer, make_coupon, auth):
    make_coupon("SAVE10", value=10, maximum_discount=50, minimum_order_amount=200)
    res = client.post(f"{API}/validate", json={"code": "save10", "order_amount": 1000}, headers=auth(customer))
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["discount"] == 50
    assert data["final_amount"] == 950

    res = client.post(f"{API}/validate", json={"code": "SAVE10", "order_amount": 100}, headers=auth(customer))
    assert res.status_code == 400


def test_validate_expired(client, customer, make_coupon, auth):
    make_coupon("OLD10", valid_from=now() - timedelta(days=10), valid_until=now() - timedelta(days=1))
    res = client.post(f"{API}/validate", json={"code": "OLD10", "order_amount": 1000}, headers=auth(customer))
    assert res.status_code == 400
    assert res.json()["error"]["message"] == "Coupon has expired or reached usage limit"


def test_validate_unknown(client, customer, auth):
    res = client.post(f"{API}/validate", json={"code": "MISSING", "order_amount": 1000}, headers=auth(customer))
    assert res.status_code == 404


def test_update_and_delete_are_scoped_to_owner(client, seller, make_user, auth):
    created = client.post(API, json=coupon_body(), headers=auth(seller)).json()["data"]["coupon"]
    other = make_user("seller")

    assert client.put(f"{API}/{created['id']}", json={"value": 5}, headers=auth(other)).status_code == 404
    assert client.delete(f"{API}/{created['id']}", headers=auth(other)).status_code == 404

    res = client.put(f"{API}/{created['id']}", json={"value": 25, "code": "summer25"}, headers=auth(seller))
    assert res.status_code == 200
    assert res.json()["data"]["coupon"]["code"] == "SUMMER25"
    assert client.delete(f"{API}/{created['id']}", headers=auth(seller)).status_code == 200


def test_update_keeps_percentage_cap(client, seller, customer, auth):
    created = client.post(API, json=coupon_body(), headers=auth(seller)).json()["data"]["coupon"]
    res = client.put(f"{API}/{created['id']}", json={"value": 150}, headers=auth(seller))
    assert res.status_code == 400
    assert res.json()["error"]["message"] == "Percentage discount cannot exceed 100"

    res = client.post(f"{API}/validate", json={"code": "SUMMER20", "order_amount": 1000}, headers=auth(customer))
    assert res.json()["data"]["discount"] == 200
