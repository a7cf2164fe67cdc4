NEW_PRODUCT = {
    "name": "Kindle Paperwhite",
    "description": "E-reader with a 6.8 inch screen",
    "price": 599.9,
    "stock": 8,
    "category_id": 1,
    "brand": "Amazon",
    "rating": 4.6,
}


def test_list_products_returns_seeded_catalog(client):
    r = client.get("/api/products")
    assert r.status_code == 200
    data = r.json()
    assert [p["id"] for p in data] == [1, 2, 3, 4, 5]
    assert data[0]["category"] == {"id": 1, "name": "Electronics"}
    assert data[0]["price"] == 1299.99


def test_create_product(client):
    r = client.post("/api/products", json=NEW_PRODUCT)
    assert r.status_code == 201, r.text
    created = r.json()
    assert r.headers["location"] == f"/api/products/{created['id']}"
    assert created["is_active"] is True
    assert created["category"]["name"] == "Electronics"
    assert created["created_at"] and created["updated_at"]

    assert client.get(f"/api/products/{created['id']}").json()["name"] == "Kindle Paperwhite"


def test_create_product_validation(client):
    assert client.post("/api/products", json={**NEW_PRODUCT, "category_id": 99}).status_code == 400
    assert client.post("/api/products", json={**NEW_PRODUCT, "price": -1}).status_code == 422
    assert client.post("/api/products", json={**NEW_PRODUCT, "rating": 5.5}).status_code == 422
    assert client.post("/api/products", json={**NEW_PRODUCT, "name": ""}).status_code == 422
    assert client.post("/api/products", json={**NEW_PRODUCT, "brand": "x" * 51}).status_code == 422


def test_create_product_in_inactive_category(client):
    r = client.post("/api/categories", json={"name": "Toys", "description": ""})
    toys = r.json()["id"]
    assert client.delete(f"/api/categories/{toys}").status_code == 204

    assert client.post("/api/products", json={**NEW_PRODUCT, "category_id": toys}).status_code == 400


def test_update_product(client):
    body = {**NEW_PRODUCT, "id": 3, "price": 99.5, "stock": 7, "category_id": 2}
    r = client.put("/api/products/3", json=body)
    assert r.status_code == 200, r.text
    updated = r.json()
    assert updated["price"] == 99.5
    assert updated["stock"] == 7
    assert updated["name"] == "Kindle Paperwhite"

    assert client.put("/api/products/4", json=body).status_code == 400
    assert client.put("/api/products/999", json={**body, "id": 999}).status_code == 404


def test_delete_is_soft(client):
    assert client.delete("/api/products/2").status_code == 204
    assert client.get("/api/products/2").status_code == 404
    assert 2 not in [p["id"] for p in client.get("/api/products").json()]
    assert client.delete("/api/products/999").status_code == 404

    # reactivating through an update brings it back
    body = {**NEW_PRODUCT, "id": 2, "is_active": True}
    assert client.put("/api/products/2", json=body).status_code == 200
    assert client.get("/api/products/2").status_code == 200


def test_simple_search(client):
    names = lambda r: [p["name"] for p in r.json()]  # noqa: E731

    assert names(client.get("/api/products/search", params={"query": "NOTEBOOK"})) == ["Dell Inspiron Notebook"]
    # description matches too
    assert names(client.get("/api/products/search", params={"query": "running"})) == ["Nike Air Max"]
    assert names(client.get("/api/products/search", params={"minPrice": 100, "maxPrice": 1500})) == [
        "Samsung Galaxy Smartphone", "Nike Air Max"]
    assert names(client.get("/api/products/search", params={"categoryId": 1, "brand": "dell"})) == [
        "Dell Inspiron Notebook"]
    assert names(client.get("/api/products/search", params={"minRating": 4.6})) == ["Nike Air Max", "Clean Code"]
    # LIKE wildcards are taken literally
    assert names(client.get("/api/products/search", params={"query": "%"})) == []


def test_products_by_category(client):
    r = client.get("/api/products/category/1")
    assert [p["id"] for p in r.json()] == [1, 2]
    assert client.get("/api/products/category/3").json() == []


def test_low_stock_and_top_rated(client):
    assert client.get("/api/products/low-stock").json() == []
    low = client.get("/api/products/low-stock", params={"threshold": 30}).json()
    assert [p["id"] for p in low] == [2, 5]

    top = client.get("/api/products/top-rated", params={"count": 2}).json()
    assert [p["name"] for p in top] == ["Clean Code", "Nike Air Max"]
    assert client.get("/api/products/top-rated", params={"count": 0}).status_code == 422


def test_update_stock_takes_a_bare_number(client):
    r = client.patch("/api/products/1/stock", json=7)
    assert r.status_code == 200, r.text
    assert r.json()["stock"] == 7
    assert client.get("/api/products/1").json()["stock"] == 7

    assert client.patch("/api/products/1/stock", json=-1).status_code == 422
    assert client.patch("/api/products/999/stock", json=5).status_code == 404
