"""
API tests for the order endpoints.

Collaborators are swapped for the in-memory fakes via dependency overrides;
the app is used without its lifespan so no database or bucket is touched.
"""

import copy
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError

from order_assets.dependencies import get_order_image_service, get_order_store
from order_assets.main import app
from tests.conftest import FakeOrderStore, folder_key, make_config, make_order, upload_key


class CreatingOrderStore(FakeOrderStore):
    async def create_order(self, data):
        if any(o["order_number"] == data["order_number"] for o in self.orders.values()):
            raise IntegrityError("INSERT INTO orders", {}, Exception("UNIQUE constraint failed"))
        order = {**copy.deepcopy(data), "id": f"order-{len(self.orders) + 1}", "backup_images": []}
        self.orders[order["id"]] = order
        return copy.deepcopy(order)


@pytest.fixture
def order_store():
    return CreatingOrderStore()


@pytest.fixture
def client(service, order_store):
    app.dependency_overrides[get_order_store] = lambda: order_store
    app.dependency_overrides[get_order_image_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def queued_task():
    with patch("order_assets.api.v1.routers.orders.backup_order_images_task") as task:
        yield task


class TestCreateOrder:

    def test_enqueues_backup(self, client, queued_task):
        response = client.post("/api/v1/orders", json={
            "orderNumber": "1001",
            "customerInfo": {"name": "Test Customer"},
            "items": [{"jacketConfig": make_config(logos=["a.png"])}],
        })

        assert response.status_code == 201
        body = response.json()
        assert body["image_backup"] == "queued"
        queued_task.delay.assert_called_once_with(body["order"]["id"])

    def test_falls_back_to_background_backup(self, client, queued_task, asset_store):
        queued_task.delay.side_effect = ConnectionError("broker down")
        asset_store.add(upload_key("a.png"))

        response = client.post("/api/v1/orders", json={
            "order_number": "1001",
            "items": [{"jacket_config": make_config(logos=["a.png"])}],
        })

        assert response.status_code == 201
        assert response.json()["image_backup"] == "scheduled"
        assert folder_key("1001", "a.png") in asset_store.objects

    def test_duplicate_order_number(self, client, queued_task, order_store):
        order_store.add(make_order(order_number="1001"))

        response = client.post("/api/v1/orders", json={"order_number": "1001"})

        assert response.status_code == 409

    def test_rejects_missing_order_number(self, client, queued_task):
        response = client.post("/api/v1/orders", json={"items": []})
        assert response.status_code == 422


class TestOrderImages:

    def test_update_configuration(self, client, asset_store, order_store):
        order_store.add(make_order(config=make_config(logos=["A.png"])))
        asset_store.add(upload_key("B.png"))

        response = client.put(
            "/api/v1/orders/order-1/configuration",
            json={"jacketConfig": make_config(logos=["B.png"]), "updatedBy": "admin"},
        )

        assert response.status_code == 200
        assert response.json()["image_sync"]["has_changes"] is True
        assert folder_key("1001", "B.png") in asset_store.objects

    def test_update_unknown_order(self, client):
        response = client.put("/api/v1/orders/missing/configuration", json={"jacket_config": {}})

        assert response.status_code == 404
        assert response.json()["error_code"] == "ORDER_NOT_FOUND"

    def test_validation_and_auto_fix(self, client, asset_store, order_store):
        order_store.add(make_order(config=make_config(logos=["A.png"])))
        asset_store.add(upload_key("A.png"))
        asset_store.add(folder_key("1001", "A.png"))
        asset_store.add(folder_key("1001", "X.png"))

        validation = client.get("/api/v1/orders/order-1/images/validation").json()
        fixed = client.post("/api/v1/orders/order-1/images/auto-fix").json()
        after = client.get("/api/v1/orders/order-1/images/validation").json()

        assert validation["is_in_sync"] is False
        assert validation["differences"]["extra"] == ["X"]
        assert fixed["was_fixed"] is True
        assert after["is_in_sync"] is True

    def test_images_info(self, client, asset_store, order_store):
        order_store.add(make_order())
        asset_store.add(folder_key("1001", "A.png"))

        response = client.get("/api/v1/orders/order-1/images")

        assert response.status_code == 200
        assert response.json()["total_count"] == 1

    def test_report(self, client, order_store):
        order_store.add(make_order())

        response = client.get("/api/v1/orders/images/report")

        assert response.status_code == 200
        assert response.json()["report"]["total_orders"] == 1

    def test_delete_order(self, client, asset_store, order_store):
        order_store.add(make_order())
        asset_store.add(folder_key("1001", "A.png"))

        response = client.delete("/api/v1/orders/order-1")

        assert response.status_code == 200
        assert response.json()["log"]["steps"][-1]["name"] == "delete_order_record"
        assert order_store.orders == {}
        assert client.delete("/api/v1/orders/order-1").status_code == 404
