from datetime import datetime


def product(client, product_id):
    r = client.get(f"/api/products/{product_id}")
    assert r.status_code == 200, r.text
    return r.json()


def test_checkout_happy_path(client):
    before_phone = product(client, 1)["stock"]
    before_shoes = product(client, 4)["stock"]

    r = client.post(
        "/api/orders",
        json={"customer_id": 1, "notes": "leave at the door", "items": [
            {"product_id": 1, "quantity": 2},
            {"product_id": 4, "quantity": 1},
        ]},
    )
    assert r.status_code == 201, r.text
    data = r.json()
    assert r.headers["location"] == f"/api/orders/{data['id']}"

    assert data["status"] == "Pending"
    assert data["customer"]["name"] == "João Silva"
    assert data["notes"] == "leave at the door"
    assert data["total_amount"] == 2999.97
    lines = {item["product_id"]: item for item in data["items"]}
    assert lines[1]["unit_price"] == 1299.99
    assert lines[1]["line_total"] == 2599.98
    assert lines[4]["product"]["name"] == "Nike Air Max"
    assert round(sum(i["line_total"] for i in data["items"]), 2) == data["total_amount"]

    assert product(client, 1)["stock"] == before_phone - 2
    assert product(client, 4)["stock"] == before_shoes - 1


def test_checkout_insufficient_stock_changes_nothing(client):
    orders_before = client.get("/api/orders").json()

    r = client.post(
        "/api/orders",
        json={"customer_id": 1, "items": [
            {"product_id": 3, "quantity": 1},
            {"product_id": 5, "quantity": 31},
        ]},
    )
    assert r.status_code == 400
    assert "Clean Code" in r.json()["detail"]
    assert "Available: 30" in r.json()["detail"]

    assert product(client, 3)["stock"] == 100
    assert product(client, 5)["stock"] == 30
    assert client.get("/api/orders").json() == orders_before


def test_checkout_counts_repeated_lines_together(client):
    r = client.post(
        "/api/orders",
        json={"customer_id": 2, "items": [
            {"product_id": 5, "quantity": 20},
            {"product_id": 5, "quantity": 20},
        ]},
    )
    assert r.status_code == 400
    assert product(client, 5)["stock"] == 30


def test_checkout_rejects_unknown_or_inactive_references(client):
    assert client.post("/api/orders", json={"customer_id": 999, "items": [
        {"product_id": 1, "quantity": 1}]}).status_code == 400
    assert client.post("/api/orders", json={"customer_id": 1, "items": [
        {"product_id": 999, "quantity": 1}]}).status_code == 400

    assert client.delete("/api/products/2").status_code == 204
    assert client.post("/api/orders", json={"customer_id": 1, "items": [
        {"product_id": 2, "quantity": 1}]}).status_code == 400

    assert client.delete("/api/customers/3").status_code == 204
    assert client.post("/api/orders", json={"customer_id": 3, "items": [
        {"product_id": 1, "quantity": 1}]}).status_code == 400


def test_checkout_validates_payload(client):
    assert client.post("/api/orders", json={"customer_id": 1, "items": []}).status_code == 422
    assert client.post("/api/orders", json={"customer_id": 1, "items": [
        {"product_id": 1, "quantity": 0}]}).status_code == 422


def test_price_change_does_not_touch_history(client, place_order):
    order = place_order(1, (3, 2))
    phone = product(client, 3)
    phone.update(id=3, price=10.0, is_active=True)
    phone.pop("category")
    assert client.put("/api/products/3", json=phone).status_code == 200

    again = client.get(f"/api/orders/{order['id']}").json()
    assert again["total_amount"] == 179.98
    assert again["items"][0]["unit_price"] == 89.99


def test_history_resolves_deactivated_rows(client, place_order):
    order = place_order(2, (5, 1))
    assert client.delete("/api/products/5").status_code == 204
    assert client.delete("/api/customers/2").status_code == 204

    r = client.get(f"/api/orders/{order['id']}")
    assert r.status_code == 200
    data = r.json()
    assert data["customer"]["name"] == "Maria Santos"
    assert data["items"][0]["product"]["name"] == "Clean Code"


def test_cancel_restores_stock(client, place_order):
    order = place_order(1, (1, 3), (4, 5))
    assert product(client, 1)["stock"] == 47

    r = client.post(f"/api/orders/{order['id']}/cancel")
    assert r.status_code == 200
    assert r.json()["status"] == "Cancelled"
    assert product(client, 1)["stock"] == 50
    assert product(client, 4)["stock"] == 75

    # second cancel is rejected and restores nothing
    r = client.post(f"/api/orders/{order['id']}/cancel")
    assert r.status_code == 400
    assert product(client, 1)["stock"] == 50


def test_cancel_rejects_delivered_and_missing(client, place_order):
    order = place_order(1, (3, 4))
    assert client.patch(f"/api/orders/{order['id']}/status", json="Delivered").status_code == 200

    assert client.post(f"/api/orders/{order['id']}/cancel").status_code == 400
    assert product(client, 3)["stock"] == 96
    assert client.post("/api/orders/999/cancel").status_code == 404


def test_status_update(client, place_order):
    order = place_order(1, (5, 1))

    r = client.patch(f"/api/orders/{order['id']}/status", json="Shipped")
    assert r.status_code == 200
    assert r.json()["status"] == "Shipped"

    r = client.patch(f"/api/orders/{order['id']}/status", json="shipped")
    assert r.status_code == 400
    assert "Pending, Processing, Shipped, Delivered, Cancelled" in r.json()["detail"]

    assert client.patch("/api/orders/999/status", json="Shipped").status_code == 404


def test_order_listings(client, place_order):
    first = place_order(1, (5, 1))
    second = place_order(2, (3, 1))
    client.patch(f"/api/orders/{second['id']}/status", json="Processing")

    all_orders = client.get("/api/orders").json()
    assert [o["id"] for o in all_orders] == [second["id"], first["id"]]

    by_customer = client.get("/api/orders/customer/1").json()
    assert [o["id"] for o in by_customer] == [first["id"]]

    by_status = client.get("/api/orders/status/processing").json()
    assert [o["id"] for o in by_status] == [second["id"]]

    assert client.get("/api/orders/999").status_code == 404


def test_orders_by_period(client, place_order, set_order_date):
    old = place_order(1, (5, 1))
    recent = place_order(1, (3, 1))
    set_order_date(old["id"], datetime(2025, 1, 10, 12, 0))
    set_order_date(recent["id"], datetime(2025, 3, 5, 9, 30))

    r = client.get("/api/orders/period", params={"startDate": "2025-03-01T00:00:00", "endDate": "2025-03-31T23:59:59"})
    assert r.status_code == 200
    assert [o["id"] for o in r.json()] == [recent["id"]]

    # offsets are converted to UTC before comparing
    r = client.get("/api/orders/period", params={
        "startDate": "2025-01-10T13:00:00+02:00", "endDate": "2025-01-10T14:00:00+02:00"})
    assert [o["id"] for o in r.json()] == [old["id"]]

    assert client.get("/api/orders/period", params={"startDate": "2025-01-01T00:00:00"}).status_code == 422


def test_sales_report(client, place_order):
    place_order(1, (1, 1), (3, 2))
    cancelled = place_order(2, (4, 1))
    client.post(f"/api/orders/{cancelled['id']}/cancel")

    report = client.get("/api/orders/sales-report").json()
    assert report["total_orders"] == 2
    assert report["total_revenue"] == 1879.96
    assert report["average_order_value"] == 939.98
    statuses = {row["status"]: row for row in report["orders_by_status"]}
    assert statuses["Cancelled"]["count"] == 1
    assert statuses["Pending"]["revenue"] == 1479.97
    assert report["top_products"][0]["product_name"] == "Samsung Galaxy Smartphone"
    assert report["top_categories"][0]["category_name"] == "Electronics"

    empty = client.get("/api/orders/sales-report", params={"startDate": "2000-01-01T00:00:00", "endDate": "2000-12-31T00:00:00"}).json()
    assert empty["total_orders"] == 0
    assert empty["average_order_value"] == 0
    assert empty["top_products"] == []
