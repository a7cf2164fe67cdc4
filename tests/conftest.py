import os
import sqlite3
import tempfile
from datetime import datetime
from pathlib import Path

# Settings are read once at import time, so point them at SQLite first.
DB_PATH = Path(tempfile.gettempdir()) / f"catalog_api_test_{os.getpid()}.db"
os.environ["CATALOG_DATABASE_URL"] = f"sqlite+aiosqlite:///{DB_PATH}"
os.environ["CATALOG_ENVIRONMENT"] = "test"
os.environ["CATALOG_CREATE_TABLES"] = "true"
os.environ["CATALOG_SEED_DATA"] = "true"

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from catalog_api.clients import get_http_client  # noqa: E402
from catalog_api.main import app  # noqa: E402


class FakeUpstream:
    """Stand-in for the third-party APIs behind ``httpx.MockTransport``.

    Routes match by URL prefix; the latest registration wins.
    """

    def __init__(self):
        self.routes = []
        self.requests = []

    def add(self, url_prefix, *, json=None, status_code=200, raises=None, text=None):
        self.routes.append((url_prefix, json, status_code, raises, text))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        for prefix, json, status_code, raises, text in reversed(self.routes):
            if url.startswith(prefix):
                if raises is not None:
                    raise raises
                if text is not None:
                    return httpx.Response(status_code, text=text)
                return httpx.Response(status_code, json=json)
        return httpx.Response(404, json={"detail": f"no fake route for {url}"})


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def client(upstream):
    # fresh database per test; the startup hook creates and seeds it
    if DB_PATH.exists():
        DB_PATH.unlink()

    async def fake_http_client():
        async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as http:
            yield http

    app.dependency_overrides[get_http_client] = fake_http_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def set_order_date(client):
    """Rewrite an order's timestamp directly in the database."""
    def _set(order_id: int, moment: datetime):
        conn = sqlite3.connect(DB_PATH)
        try:
            conn.execute(
                "UPDATE orders SET order_date = ? WHERE id = ?",
                (moment.strftime("%Y-%m-%d %H:%M:%S.%f"), order_id),
            )
            conn.commit()
        finally:
            conn.close()
    return _set


@pytest.fixture
def place_order(client):
    def _place(customer_id, *items, notes=None):
        payload = {
            "customer_id": customer_id,
            "notes": notes,
            "items": [{"product_id": pid, "quantity": qty} for pid, qty in items],
        }
        r = client.post("/api/orders", json=payload)
        assert r.status_code == 201, r.text
        return r.json()
    return _place
