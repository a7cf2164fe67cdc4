from catalog_api.config import Settings


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_swagger_served_outside_production(client):
    assert client.get("/").status_code == 200
    assert client.get("/openapi.json").json()["info"]["title"] == "Product Catalog API"


def test_cors_allows_any_origin(client):
    r = client.get("/health", headers={"Origin": "http://shop.example"})
    assert r.headers["access-control-allow-origin"] in ("*", "http://shop.example")


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("CATALOG_ENVIRONMENT", "Production")
    monkeypatch.setenv("CATALOG_LOW_STOCK_THRESHOLD", "3")
    settings = Settings()
    assert settings.is_production
    assert settings.low_stock_threshold == 3
    assert Settings(environment="development").is_production is False
