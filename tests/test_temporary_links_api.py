"""
API tests for the temporary edit link endpoints.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from order_assets.core.shared.errors import LinkNotFoundError
from order_assets.dependencies import get_link_store, get_order_store
from order_assets.main import app
from tests.conftest import make_order


@pytest.fixture
def links():
    store = AsyncMock()
    store.create_link.return_value = {
        "id": "temp-link-1",
        "order_id": "order-1",
        "token": "abc",
        "expires_at": "2024-01-01T01:00:00",
    }
    return store


@pytest.fixture
def client(order_store, links):
    app.dependency_overrides[get_order_store] = lambda: order_store
    app.dependency_overrides[get_link_store] = lambda: links
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestTemporaryLinks:

    def test_create_link(self, client, order_store, links):
        order_store.add(make_order())

        response = client.post("/api/v1/temporary-links/orders/order-1", json={"durationHours": 24})

        assert response.status_code == 201
        assert response.json()["link"]["token"] == "abc"
        links.create_link.assert_awaited_once_with("order-1", created_by="admin", duration_hours=24)

    def test_create_link_for_unknown_order(self, client, links):
        response = client.post("/api/v1/temporary-links/orders/missing")

        assert response.status_code == 404
        links.create_link.assert_not_awaited()

    def test_validate_link(self, client, links):
        links.validate_link.return_value = {"is_valid": True, "order_id": "order-1", "link": {}}

        response = client.get("/api/v1/temporary-links/validate/abc", headers={"User-Agent": "pytest"})

        assert response.status_code == 200
        assert response.json()["order_id"] == "order-1"
        assert links.validate_link.await_args.kwargs["user_agent"] == "pytest"

    def test_invalid_link(self, client, links):
        links.validate_link.return_value = {"is_valid": False, "reason": "INVALID_OR_EXPIRED"}

        assert client.get("/api/v1/temporary-links/validate/nope").status_code == 404

    def test_invalidate_link(self, client, links):
        links.mark_link_used.return_value = {"token": "abc", "is_used": True}

        response = client.put("/api/v1/temporary-links/invalidate/abc")

        assert response.status_code == 200
        assert response.json()["link"]["is_used"] is True

    def test_invalidate_unknown_link(self, client, links):
        links.mark_link_used.side_effect = LinkNotFoundError("Temporary link not found")

        assert client.put("/api/v1/temporary-links/invalidate/nope").status_code == 404

    def test_order_links_and_stats(self, client, links):
        links.get_order_links.return_value = [{"token": "abc"}]
        links.get_link_stats.return_value = {"total": 1, "active": 1, "used": 0, "expired": 0}

        listed = client.get("/api/v1/temporary-links/orders/order-1").json()
        stats = client.get("/api/v1/temporary-links/stats").json()

        assert listed["count"] == 1
        assert stats["stats"]["active"] == 1

    def test_cleanup(self, client, links):
        links.cleanup_expired_links.return_value = 3

        response = client.post("/api/v1/temporary-links/cleanup")

        assert response.json()["deleted_count"] == 3
