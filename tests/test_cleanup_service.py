"""
Tests for CleanupOrchestrator and the order deletion flow.
"""

from unittest.mock import AsyncMock

import pytest

from order_assets.core.shared.errors import RemoteStoreError
from order_assets.core.sync.cleanup_service import CleanupOrchestrator
from tests.conftest import folder_key, make_order


@pytest.fixture
def cleanup(asset_store, link_store):
    return CleanupOrchestrator(asset_store, link_store, order_delay_seconds=0)


@pytest.fixture
def order_with_assets(asset_store, order_store, link_store):
    order = make_order()
    order_store.add(order)
    asset_store.add(folder_key("1001", "a.png"), data=b"1234")
    asset_store.add(folder_key("1001", "b.png"), data=b"12")
    asset_store.add(folder_key("2002", "other.png"))
    link_store.links["order-1"] = 2
    return order


class TestDeleteOrderAssets:

    @pytest.mark.asyncio
    async def test_fixed_step_sequence(self, cleanup, asset_store, order_with_assets):
        log = await cleanup.delete_order_assets(order_with_assets)

        assert [s.name for s in log.steps] == [
            "delete_order_assets",
            "delete_temporary_links",
            "cleanup_extra_data",
        ]
        assert log.success is True
        assert log.sealed is True
        assert log.steps[0].details["deleted_count"] == 2
        assert log.steps[0].details["freed_bytes"] == 6
        assert log.steps[1].details["deleted_count"] == 2
        assert folder_key("2002", "other.png") in asset_store.objects

    @pytest.mark.asyncio
    async def test_link_failure_does_not_stop_cleanup(self, cleanup, link_store, order_with_assets):
        link_store.fail = True

        log = await cleanup.delete_order_assets(order_with_assets)

        assert log.success is False
        assert [s.success for s in log.steps] == [True, False, True]

    @pytest.mark.asyncio
    async def test_listing_failure_recorded(self, cleanup, asset_store, order_with_assets):
        asset_store.list_error = RemoteStoreError("bucket unreachable")

        log = await cleanup.delete_order_assets(order_with_assets)

        assert log.steps[0].success is False
        assert log.steps[1].success is True

    @pytest.mark.asyncio
    async def test_unsealed_log(self, cleanup, order_with_assets):
        log = await cleanup.delete_order_assets(order_with_assets, seal=False)
        assert log.sealed is False


class TestCompleteOrderDeletion:

    @pytest.mark.asyncio
    async def test_record_deleted_last(self, service, asset_store, order_store, order_with_assets):
        result = await service.perform_complete_order_deletion(order_with_assets)

        names = [s["name"] for s in result["log"]["steps"]]
        assert names[-1] == "delete_order_record"
        assert len(names) == 4
        assert result["success"] is True
        assert "order-1" not in order_store.orders
        assert folder_key("1001", "a.png") not in asset_store.objects

    @pytest.mark.asyncio
    async def test_failed_cleanup_still_reported(self, service, link_store, order_store, order_with_assets):
        link_store.fail = True

        result = await service.perform_complete_order_deletion(order_with_assets)

        assert result["success"] is False
        assert result["error_code"] == "DELETE_ORDER_FAILED"
        assert result["log"]["summary"]["failed_steps"] == 1


class TestBulkDeletion:

    @pytest.mark.asyncio
    async def test_counts(self, cleanup, asset_store):
        orders = [make_order(order_id=f"order-{i}", order_number=str(1000 + i)) for i in range(3)]
        delete_one = AsyncMock(side_effect=[
            {"success": True, "log": {}},
            RuntimeError("boom"),
            {"success": False, "log": {}},
        ])

        summary = await cleanup.delete_many(orders, delete_one=delete_one)

        assert summary["total_orders"] == 3
        assert summary["processed_orders"] == 3
        assert summary["successful_deletions"] == 1
        assert summary["failed_deletions"] == 2
        assert len(summary["order_logs"]) == 2
        assert summary["duration_ms"] >= 0

    @pytest.mark.asyncio
    async def test_service_bulk_deletion(self, service, asset_store, order_store):
        for i in range(2):
            order_store.add(make_order(order_id=f"order-{i}", order_number=str(2000 + i)))
            asset_store.add(folder_key(str(2000 + i), "a.png"))

        result = await service.perform_bulk_order_deletion(await order_store.get_orders())

        assert result["success"] is True
        assert result["successful_deletions"] == 2
        assert order_store.orders == {}
        assert asset_store.objects == {}
