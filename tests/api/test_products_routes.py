"""Tests for /api/v1/products endpoints over a synced catalog."""

from fastapi.testclient import TestClient

from src.clients.models import ProductType
from tests.helpers import OTHER_OWNER_ID, make_item
from tests.helpers.polling import wait_for_terminal


def _sync(client: TestClient, connection_id: str) -> None:
    job_id = client.post(f"/api/v1/connections/{connection_id}/sync").json()["job_id"]
    job = wait_for_terminal(client, f"/api/v1/sync/jobs/{job_id}")
    assert job["status"] == "completed"


def test_products_and_variations(client: TestClient, fake_source, connection_id):
    fake_source.items = [
        make_item(1, name="Apron"),
        make_item(2, product_type=ProductType.VARIABLE.value, name="Mug"),
    ]
    fake_source.children = {
        "2": [
            make_item(20, product_type=ProductType.VARIATION.value, name="", options=["Red"]),
            make_item(21, product_type=ProductType.VARIATION.value, name="", options=["Blue"]),
        ]
    }
    _sync(client, connection_id)

    products = client.get("/api/v1/products").json()
    assert [p["name"] for p in products] == ["Apron", "Mug"]

    mug = products[1]
    assert client.get(f"/api/v1/products/{mug['id']}").json()["external_id"] == "2"
    variations = client.get(f"/api/v1/products/{mug['id']}/variations").json()
    assert sorted(v["name"] for v in variations) == ["Mug - Blue", "Mug - Red"]
    assert all(v["parent_id"] == mug["id"] for v in variations)

    everything = client.get("/api/v1/products", params={"include_variations": True}).json()
    assert len(everything) == 4


def test_products_are_owner_scoped(client: TestClient, fake_source, connection_id):
    fake_source.items = [make_item(1)]
    _sync(client, connection_id)
    product_id = client.get("/api/v1/products").json()[0]["id"]

    other = {"X-User-Id": OTHER_OWNER_ID}
    assert client.get("/api/v1/products", headers=other).json() == []
    assert client.get(f"/api/v1/products/{product_id}", headers=other).status_code == 404
