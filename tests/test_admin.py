from utils import now

API = "/api/v1/admin"


def test_admin_routes_require_admin(client, customer, seller, auth):
    assert client.get(f"{API}/users").status_code == 401
    assert client.get(f"{API}/users", headers=auth(customer)).status_code == 403
    assert client.get(f"{API}/dashboard/stats", headers=auth(seller)).status_code == 403


def test_dashboard_stats(client, customer, seller, admin, db, auth):
    placed = now()
    db["order"].insert_many([
        {"order_number": "ORD-A", "customer": customer["_id"], "status": "delivered", "total": 1200, "placed_at": placed},
        {"order_number": "ORD-B", "customer": customer["_id"], "status": "cancelled", "total": 800, "placed_at": placed},
        {"order_number": "ORD-C", "customer": customer["_id"], "status": "pending", "total": 500, "placed_at": placed},
    ])
    data = client.get(f"{API}/dashboard/stats", params={"period": "30d"}, headers=auth(admin)).json()["data"]
    assert data["total_revenue"] == 1200
    assert data["total_orders"] == 3
    assert data["active_sellers"] == 1
    assert data["total_users"] == 3
    assert data["period"] == {"name": "30d", "orders": 3, "users": 3, "revenue": 1700}

    sales = client.get(f"{API}/dashboard/sales", headers=auth(admin)).json()["data"]
    assert len(sales) == 7
    assert sales[-1] == {"date": placed.date().isoformat(), "sales": 1700, "orders": 2}

    assert client.get(f"{API}/dashboard/stats", params={"period": "1y"}, headers=auth(admin)).status_code == 400


def test_category_distribution(client, admin, seller, make_category, make_product, auth):
    books = make_category("Books")
    make_product(seller)
    make_product(seller)
    make_product(seller, category=books["_id"])
    data = client.get(f"{API}/dashboard/categories", headers=auth(admin)).json()["data"]
    assert [(c["name"], c["count"], c["percentage"]) for c in data] == [("Fashion", 2, 67), ("Books", 1, 33)]


def test_pending_actions(client, admin, customer, seller, make_product, db, auth):
    db["sellerapplication"].insert_one({
        "user_id": customer["_id"],
        "application_id": "SA123456ABCD",
        "business_name": "Rao Handlooms",
        "status": "pending",
        "submitted_at": now(),
    })
    make_product(seller, is_approved=False, name="Unreviewed Kurta")
    make_product(seller)
    actions = client.get(f"{API}/dashboard/pending-actions", headers=auth(admin)).json()["data"]
    assert [a["type"] for a in actions] == ["seller_application", "product_approval"]
    assert actions[1]["description"] == "Unreviewed Kurta"


def test_product_moderation(client, admin, seller, make_product, db, auth):
    product = make_product(seller, is_approved=False)
    res = client.put(
        f"{API}/products/{product['_id']}/status",
        json={"is_approved": True, "status": "inactive"},
        headers=auth(admin),
    )
    assert res.status_code == 200
    stored = db["product"].find_one({"_id": product["_id"]})
    assert stored["is_approved"] is True
    assert stored["status"] == "inactive"
    assert stored["approved_by"] == admin["_id"]
    assert stored["approved_at"] is not None

    res = client.put(f"{API}/products/{product['_id']}/status", json={"status": "sold"}, headers=auth(admin))
    assert res.status_code == 400
    res = client.put(f"{API}/products/64b7f0c2a1b2c3d4e5f6a7b8/status", json={"status": "active"}, headers=auth(admin))
    assert res.status_code == 404


def test_product_listing(client, admin, seller, make_product, auth):
    make_product(seller, name="Linen Kurta", status="draft")
    make_product(seller)
    data = client.get(f"{API}/products", params={"status": "draft"}, headers=auth(admin)).json()["data"]
    assert data["pagination"]["total"] == 1
    item = data["items"][0]
    assert item["name"] == "Linen Kurta"
    assert item["seller"]["email"] == seller["email"]
    assert item["category"]["name"] == "Fashion"


def test_user_listing(client, admin, customer, make_user, auth):
    make_user("seller", name="Meera Textiles")
    make_user("user", is_active=False)

    data = client.get(f"{API}/users", params={"role": "seller"}, headers=auth(admin)).json()["data"]
    assert [u["name"] for u in data["items"]] == ["Meera Textiles"]
    assert "password_hash" not in data["items"][0]

    data = client.get(f"{API}/users", params={"status": "inactive"}, headers=auth(admin)).json()["data"]
    assert data["pagination"]["total"] == 1

    data = client.get(f"{API}/users", params={"search": "meera"}, headers=auth(admin)).json()["data"]
    assert data["pagination"]["total"] == 1


def test_role_change(client, admin, customer, db, auth):
    res = client.patch(f"{API}/users/{customer['_id']}/role", json={"role": "seller"}, headers=auth(admin))
    assert res.status_code == 200
    assert res.json()["data"]["user"]["role"] == "seller"
    assert db["user"].find_one({"_id": customer["_id"]})["role"] == "seller"

    res = client.patch(f"{API}/users/{admin['_id']}/role", json={"role": "user"}, headers=auth(admin))
    assert res.status_code == 400
    assert res.json()["error"]["message"] == "You cannot change your own admin role"

    res = client.patch(f"{API}/users/{customer['_id']}/role", json={"role": "superuser"}, headers=auth(admin))
    assert res.status_code == 400


def test_deactivated_user_loses_access(client, admin, customer, auth):
    assert client.get("/api/v1/auth/me", headers=auth(customer)).status_code == 200
    res = client.patch(f"{API}/users/{customer['_id']}/status", json={"is_active": False}, headers=auth(admin))
    assert res.status_code == 200
    assert client.get("/api/v1/auth/me", headers=auth(customer)).status_code == 401

    res = client.patch(f"{API}/users/{admin['_id']}/status", json={"is_active": False}, headers=auth(admin))
    assert res.status_code == 400


def test_seller_listing_counts_products(client, admin, seller, make_user, make_product, auth):
    make_product(seller)
    make_product(seller, status="draft")
    make_user("seller")
    data = client.get(f"{API}/sellers", headers=auth(admin)).json()["data"]
    assert data["pagination"]["total"] == 2
    counts = {s["id"]: (s["product_count"], s["active_product_count"]) for s in data["items"]}
    assert counts[str(seller["_id"])] == (2, 1)
