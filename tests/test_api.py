import pytest

SHIPPING = {
    "full_name": "Asha Verma",
    "email": "asha@example.com",
    "phone": "9876543210",
    "address": "12 MG Road",
    "city": "Jaipur",
    "state": "Rajasthan",
    "pincode": "302001",
}


@pytest.fixture
def seeded(client):
    assert client.post("/api/seed", json={}).json()["seeded"] is True
    return client


@pytest.fixture
def session(seeded):
    response = seeded.post("/api/cart")
    assert response.status_code == 201
    return {"X-Session-Id": response.json()["session_id"]}


def add_shirts(client, session, quantity=2):
    return client.post("/api/cart/items", headers=session, json={
        "product_slug": "classic-white-shirt",
        "color": "White",
        "sleeve_type": "Short Sleeve",
        "size": "M",
        "quantity": quantity,
    })


def place_cod_order(client, session):
    add_shirts(client, session)
    response = client.post("/api/checkout", headers=session, json={"shipping_address": SHIPPING})
    assert response.status_code == 200
    return response.json()


def test_root(client):
    assert client.get("/").json() == {"brand": "Zuree", "status": "running"}


def test_seed_is_not_repeated(seeded):
    assert seeded.post("/api/seed", json={}).json()["seeded"] is False


def test_list_and_get_products(seeded):
    products = seeded.get("/api/products").json()
    assert {p["slug"] for p in products} == {"classic-white-shirt", "handblock-cotton-kurta", "everyday-cotton-tee"}

    kurta = seeded.get("/api/products/handblock-cotton-kurta").json()
    assert kurta["price"] == "1299"
    assert len(kurta["variants"]) == 4

    assert [p["slug"] for p in seeded.get("/api/products", params={"q": "tee"}).json()] == ["everyday-cotton-tee"]


def test_unknown_product_is_structured_404(seeded):
    response = seeded.get("/api/products/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Product not found", "details": {"slug": "nope"}}


def test_options_default_selection(seeded):
    body = seeded.get("/api/products/classic-white-shirt/options").json()
    assert body["selection"]["color"] == "White"
    assert body["selection"]["sleeve_type"] == "Short Sleeve"
    assert body["selection"]["size"] == "S"
    assert body["max_quantity"] == 10
    assert body["in_stock"] is True


def test_options_cascade_and_gray_out(seeded):
    body = seeded.get("/api/products/handblock-cotton-kurta/options",
                      params={"color": "Maroon", "size": "S"}).json()
    assert body["selection"]["size"] == "L"
    assert body["max_quantity"] == 5
    sizes = {o["value"]: o for o in body["options"]["size"]}
    assert sizes["XL"] == {"value": "XL", "stock": 0, "selectable": False}
    assert sizes["S"]["selectable"] is False


def test_options_unset_policy(seeded):
    body = seeded.get("/api/products/classic-white-shirt/options",
                      params={"sleeve_type": "Full Sleeve", "size": "XL", "reset": "unset"}).json()
    assert body["selection"]["size"] is None
    assert body["variant"] is None
    assert body["quantity"] == 0


def test_options_reject_unknown_reset_policy(seeded):
    response = seeded.get("/api/products/classic-white-shirt/options", params={"reset": "sometimes"})
    assert response.status_code == 422
    assert response.json()["error"] == "Invalid request"


def test_cart_add_and_totals(seeded, session):
    body = add_shirts(seeded, session).json()
    assert body["item_count"] == 2
    assert body["totals"] == {"subtotal": "2998", "shipping": "0", "tax": "539.64", "total": "3537.64"}
    assert body["display"]["total"] == "3537.64"
    assert body["items"][0]["line_id"].endswith("-M-White-Short Sleeve-")

    assert seeded.get("/api/cart", headers=session).json()["item_count"] == 2


def test_cart_quantity_is_clamped(seeded, session):
    body = add_shirts(seeded, session, quantity=40).json()
    assert body["items"][0]["quantity"] == 15


def test_cart_update_and_remove(seeded, session):
    line_id = add_shirts(seeded, session).json()["items"][0]["line_id"]

    body = seeded.patch(f"/api/cart/items/{line_id}", headers=session, json={"quantity": 1}).json()
    assert body["item_count"] == 1
    assert body["totals"]["subtotal"] == "1499"

    body = seeded.delete(f"/api/cart/items/{line_id}", headers=session).json()
    assert body["items"] == []


def test_cart_rejects_unavailable_combination(seeded, session):
    response = seeded.post("/api/cart/items", headers=session, json={
        "product_slug": "classic-white-shirt", "color": "White", "sleeve_type": "Full Sleeve", "size": "XL",
    })
    assert response.status_code == 400
    assert response.json()["error"] == "Selected combination is out of stock"

    response = seeded.post("/api/cart/items", headers=session, json={
        "product_slug": "handblock-cotton-kurta", "color": "Maroon", "size": "S",
    })
    assert response.status_code == 400
    assert response.json()["error"] == "Selected combination is not available"


def test_unknown_cart_session(seeded):
    response = seeded.get("/api/cart", headers={"X-Session-Id": "missing"})
    assert response.status_code == 404
    assert response.json()["error"] == "Cart session not found"


def test_cod_checkout(seeded, session):
    result = place_cod_order(seeded, session)
    assert result["cart_cleared"] is True
    assert result["amount"] == "3537.64"
    assert result["redirect"].startswith("/order-success?orderNumber=ORD-")
    assert seeded.get("/api/cart", headers=session).json()["items"] == []


def test_checkout_with_empty_cart(seeded, session):
    response = seeded.post("/api/checkout", headers=session, json={"shipping_address": SHIPPING})
    assert response.status_code == 400
    assert response.json()["error"] == "Order must contain at least one item"


def test_checkout_with_missing_shipping_field(seeded, session):
    add_shirts(seeded, session)
    response = seeded.post("/api/checkout", headers=session,
                           json={"shipping_address": {**SHIPPING, "phone": ""}})
    assert response.status_code == 400
    assert response.json()["details"] == {"missing_fields": ["phone"]}


def test_gateway_checkout_flow(seeded, session):
    add_shirts(seeded, session)
    placed = seeded.post("/api/checkout", headers=session,
                         json={"shipping_address": SHIPPING, "payment_method": "gateway"}).json()
    assert placed["payment_required"] is True
    number = placed["order_number"]

    failed = seeded.post(f"/api/checkout/{number}/payment-failure", headers=session, json={"reason": "declined"})
    assert failed.status_code == 402
    assert seeded.get("/api/cart", headers=session).json()["item_count"] == 2

    paid = seeded.post(f"/api/checkout/{number}/payment-success", headers=session,
                       json={"transaction_id": "pay_42"}).json()
    assert paid["cart_cleared"] is True
    assert "transactionId=pay_42" in paid["redirect"]
    assert seeded.get("/api/cart", headers=session).json()["items"] == []


def test_track_order(seeded, session):
    number = place_cod_order(seeded, session)["order_number"]
    body = seeded.post("/api/orders/track", json={"order_number": number, "email": "Asha@Example.com"}).json()
    assert body["order"]["order_number"] == number

    response = seeded.post("/api/orders/track", json={"order_number": number, "email": "x@example.com"})
    assert response.status_code == 404


def test_admin_status_update_sends_mail(seeded, session, mailer, db):
    place_cod_order(seeded, session)
    order = seeded.get("/api/admin/orders").json()["orders"][0]

    response = seeded.patch(f"/api/admin/orders/{order['id']}/status",
                            json={"status": "shipped", "tracking_number": "TRK1"})

    assert response.status_code == 200
    body = response.json()["order"]
    assert body["status"] == "shipped"
    assert body["item_count"] == 1
    assert body["customer"]["email"] == "asha@example.com"
    assert len(mailer.sent) == 1
    assert mailer.sent[0]["To"] == "asha@example.com"
    assert "20 October 2026" in mailer.sent[0].get_content()
    assert db["notification"].find_one({"kind": "order_status"})["state"] == "sent"


def test_admin_status_update_rejects_unknown_status(seeded, session):
    place_cod_order(seeded, session)
    order_id = seeded.get("/api/admin/orders").json()["orders"][0]["id"]
    response = seeded.patch(f"/api/admin/orders/{order_id}/status", json={"status": "teleported"})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid order status"


def test_admin_unknown_order(seeded):
    response = seeded.get("/api/admin/orders/ffffffffffffffffffffffff")
    assert response.status_code == 404
    assert response.json()["error"] == "Order not found"


def test_bulk_order_endpoints(seeded, mailer):
    payload = {
        "company_name": "Acme Textiles",
        "contact_person": "Ravi Kumar",
        "email": "ravi@acme.in",
        "phone": "9811122233",
        "product_type": "Polo T-Shirts",
        "quantity": 5,
    }
    response = seeded.post("/api/bulk-order", json=payload)
    assert response.status_code == 400

    response = seeded.post("/api/bulk-order", json={**payload, "quantity": 25})
    assert response.status_code == 201
    request = response.json()["request"]
    assert request["status"] == "pending"
    assert {m["To"] for m in mailer.sent} == {"ravi@acme.in", "admin@zuree.in"}

    updated = seeded.patch(f"/api/admin/bulk-orders/{request['id']}",
                           json={"status": "contacted", "send_status_email": True}).json()
    assert updated["request"]["status"] == "contacted"
    assert len(mailer.sent) == 3

    listed = seeded.get("/api/admin/bulk-orders", params={"status": "contacted"}).json()
    assert listed["pagination"]["total"] == 1


def test_custom_design_endpoints(seeded):
    response = seeded.post("/api/custom-design", json={
        "customer_name": "Meera",
        "phone_number": "9000011111",
        "design_description": "Angrakha style kurta",
        "fabric_pattern": "Ikat",
    })
    assert response.status_code == 201
    request = response.json()["request"]
    assert request["notes"] == "Fabric Pattern: Ikat"

    fetched = seeded.get(f"/api/admin/custom-designs/{request['id']}").json()
    assert fetched["request"]["request_id"] == request["request_id"]

    response = seeded.patch(f"/api/admin/custom-designs/{request['id']}", json={"priority": "critical"})
    assert response.status_code == 400
