def test_list_categories_with_product_counts(client):
    r = client.get("/api/categories")
    assert r.status_code == 200
    counts = {c["name"]: c["product_count"] for c in r.json()}
    assert counts == {"Electronics": 2, "Clothing": 1, "Home & Garden": 0, "Books": 1, "Sports": 1}

    # inactive products are not counted
    client.delete("/api/products/2")
    electronics = client.get("/api/categories").json()[0]
    assert electronics["product_count"] == 1


def test_get_category_includes_active_products(client):
    r = client.get("/api/categories/1")
    assert r.status_code == 200
    data = r.json()
    assert data["name"] == "Electronics"
    assert data["product_count"] == 2
    assert [p["name"] for p in data["products"]] == ["Samsung Galaxy Smartphone", "Dell Inspiron Notebook"]
    assert data["products"][0]["category"]["id"] == 1

    assert client.get("/api/categories/999").status_code == 404


def test_category_stats(client):
    stats = client.get("/api/categories/1/stats").json()
    assert stats["category_name"] == "Electronics"
    assert stats["total_products"] == 2
    assert stats["average_price"] == 1899.99
    assert stats["total_stock"] == 75
    assert stats["average_rating"] == 4.35
    assert stats["top_brands"] == [{"brand": "Dell", "count": 1}, {"brand": "Samsung", "count": 1}]

    empty = client.get("/api/categories/3/stats").json()
    assert empty["total_products"] == 0
    assert empty["average_price"] == 0
    assert empty["average_rating"] == 0
    assert empty["top_brands"] == []


def test_create_and_update_category(client):
    r = client.post("/api/categories", json={"name": "Toys", "description": "Games and toys"})
    assert r.status_code == 201, r.text
    created = r.json()
    assert r.headers["location"] == f"/api/categories/{created['id']}"
    assert created["product_count"] == 0
    assert created["is_active"] is True

    body = {"id": created["id"], "name": "Toys & Games", "description": "", "is_active": True}
    r = client.put(f"/api/categories/{created['id']}", json=body)
    assert r.status_code == 200
    assert r.json()["name"] == "Toys & Games"

    assert client.put("/api/categories/1", json=body).status_code == 400
    assert client.put("/api/categories/999", json={**body, "id": 999}).status_code == 404
    assert client.post("/api/categories", json={"name": "x" * 51}).status_code == 422


def test_delete_category_with_active_products_is_rejected(client):
    r = client.delete("/api/categories/1")
    assert r.status_code == 400
    assert client.get("/api/categories/1").status_code == 200


def test_delete_category_after_products_are_gone(client):
    assert client.delete("/api/categories/3").status_code == 204
    assert client.get("/api/categories/3").status_code == 404
    assert 3 not in [c["id"] for c in client.get("/api/categories").json()]

    client.delete("/api/products/5")
    assert client.delete("/api/categories/4").status_code == 204
    assert client.delete("/api/categories/999").status_code == 404


def test_update_cannot_deactivate_category_with_active_products(client):
    r = client.put(
        "/api/categories/1",
        json={"id": 1, "name": "Electronics", "description": "x", "is_active": False},
    )
    assert r.status_code == 400
    assert "active products" in r.json()["detail"]

    category = client.get("/api/categories/1").json()
    assert category["is_active"] is True
    assert category["description"] != "x"


def test_update_deactivates_empty_category(client):
    r = client.put(
        "/api/categories/3",
        json={"id": 3, "name": "Home", "description": "", "is_active": False},
    )
    assert r.status_code == 200
    assert r.json()["is_active"] is False
    assert client.get("/api/categories/3").status_code == 404
