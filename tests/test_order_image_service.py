"""
Tests for the OrderImageService facade.

Every public method returns a result dict; collaborator failures are folded
into ``success=False`` results with an error code.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from order_assets.config import settings
from order_assets.core.shared.lock_service import order_lock_name
from tests.conftest import folder_key, make_config, make_order, upload_key


def _seed_sources(asset_store, *names):
    for name in names:
        asset_store.add(upload_key(name))


class TestBackupOrderImages:

    @pytest.mark.asyncio
    async def test_copies_and_records(self, service, asset_store, order_store):
        order = make_order(config=make_config(logos=["a.png"], uploads=["b.jpg"]))
        order_store.add(order)
        _seed_sources(asset_store, "a.png", "b.jpg")

        result = await service.backup_order_images(order)

        assert result["success"] is True
        assert result["copied_count"] == 2
        assert result["has_warnings"] is False
        assert folder_key("1001", "a.png") in asset_store.objects
        stored = asset_store.objects[folder_key("1001", "a.png")]
        assert stored["metadata"]["original-key"] == upload_key("a.png")
        assert stored["metadata"]["order-id"] == "order-1"
        assert len(order_store.orders["order-1"]["backup_images"]) == 2

    @pytest.mark.asyncio
    async def test_rerun_skips_and_does_not_duplicate_metadata(self, service, asset_store, order_store):
        order = make_order(config=make_config(logos=["a.png", "b.png"]))
        order_store.add(order)
        _seed_sources(asset_store, "a.png", "b.png")

        await service.backup_order_images(order)
        first_sizes = {e["original_key"]: e["size"] for e in order_store.orders["order-1"]["backup_images"]}
        asset_store.calls.clear()
        result = await service.backup_order_images(order)

        assert result["copied_count"] == 0
        assert result["skipped_count"] == 2
        assert [c for c in asset_store.mutation_calls if c[0] == "put"] == []
        entries = order_store.orders["order-1"]["backup_images"]
        assert len(entries) == 2
        assert {e["original_key"]: e["size"] for e in entries} == first_sizes

    @pytest.mark.asyncio
    async def test_failed_item_not_recorded(self, service, asset_store, order_store):
        order = make_order(config=make_config(logos=["a.png", "gone.png"]))
        order_store.add(order)
        _seed_sources(asset_store, "a.png")

        result = await service.backup_order_images(order)

        assert result["success"] is False
        assert result["failed_count"] == 1
        recorded = order_store.backup_updates[0][1]
        assert [e["original_key"] for e in recorded] == [upload_key("a.png")]

    @pytest.mark.asyncio
    async def test_metadata_failure_is_a_warning(self, service, asset_store, order_store):
        order = make_order(config=make_config(logos=["a.png"]))
        order_store.add(order)
        order_store.fail_backup_update = True
        _seed_sources(asset_store, "a.png")

        result = await service.backup_order_images(order)

        assert result["success"] is True
        assert result["has_warnings"] is True
        assert folder_key("1001", "a.png") in asset_store.objects


class TestUpdateOrderConfiguration:

    @pytest.mark.asyncio
    async def test_replaces_live_configuration_and_syncs(self, service, asset_store, order_store):
        order_store.add(make_order(config=make_config(logos=["A.png"])))
        _seed_sources(asset_store, "A.png", "B.png")
        asset_store.add(folder_key("1001", "A.png"))
        new_config = make_config(logos=["B.png"])

        result = await service.update_order_configuration("order-1", new_config, updated_by="admin")

        assert result["success"] is True
        assert result["image_sync"]["success"] is True
        assert result["image_sync"]["has_changes"] is True
        assert result["order"]["items"][0]["jacket_config"] == new_config
        assert result["order"]["updated_by"] == "admin"
        assert folder_key("1001", "A.png") not in asset_store.objects
        assert folder_key("1001", "B.png") in asset_store.objects

    @pytest.mark.asyncio
    async def test_sync_failure_does_not_block_update(self, service, asset_store, order_store):
        order_store.add(make_order(config=make_config(logos=["A.png"])))
        new_config = make_config(logos=["missing.png"])

        result = await service.update_order_configuration("order-1", new_config)

        assert result["success"] is True
        assert result["image_sync"]["success"] is False
        assert order_store.orders["order-1"]["items"][0]["jacket_config"] == new_config

    @pytest.mark.asyncio
    async def test_concurrent_edits_are_serialized(self, service, asset_store, order_store, monkeypatch):
        order_store.add(make_order(config=make_config(logos=["X.png"])))
        _seed_sources(asset_store, "X.png", "A.png", "B.png")
        asset_store.add(folder_key("1001", "X.png"))
        monkeypatch.setattr(settings, "order_lock_wait_seconds", 5.0)

        load_order = order_store.get_order

        async def slow_get_order(order_id):
            await asyncio.sleep(0.01)
            return await load_order(order_id)

        order_store.get_order = slow_get_order

        results = await asyncio.gather(
            service.update_order_configuration("order-1", make_config(logos=["A.png"])),
            service.update_order_configuration("order-1", make_config(logos=["B.png"])),
        )
        validation = await service.validate_order_folder_sync("order-1")

        assert [r["success"] for r in results] == [True, True]
        assert validation["is_in_sync"] is True
        folder = sorted(k for k in asset_store.objects if k.startswith(folder_key("1001", "")))
        assert len(folder) == 1

    @pytest.mark.asyncio
    async def test_locked_order_is_not_updated(self, service, asset_store, order_store, lock_service):
        order_store.add(make_order(config=make_config(logos=["A.png"])))
        _seed_sources(asset_store, "B.png")

        async with lock_service.lock(order_lock_name("order-1")):
            result = await service.update_order_configuration("order-1", make_config(logos=["B.png"]))

        assert result["success"] is False
        assert result["error_code"] == "ORDER_LOCKED"
        assert asset_store.mutation_calls == []
        assert order_store.orders["order-1"]["items"][0]["jacket_config"] == make_config(logos=["A.png"])

    @pytest.mark.asyncio
    async def test_unknown_order(self, service):
        result = await service.update_order_configuration("missing", make_config())

        assert result["success"] is False
        assert result["error_code"] == "ORDER_NOT_FOUND"


class TestFacadeNeverRaises:

    @pytest.mark.asyncio
    async def test_sync_with_broken_reconciler(self, service):
        service.reconciler.reconcile = AsyncMock(side_effect=RuntimeError("boom"))

        result = await service.sync_order_images("order-1", {}, {})

        assert result["success"] is False
        assert result["error_code"] == "SYNC_FAILED"
        assert result["has_changes"] is False

    @pytest.mark.asyncio
    async def test_validation_of_unknown_order(self, service):
        result = await service.validate_order_folder_sync("missing")

        assert result["success"] is False
        assert result["error_code"] == "ORDER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_report_with_broken_store(self, service, order_store):
        order_store.get_orders = AsyncMock(side_effect=RuntimeError("db down"))

        result = await service.generate_order_images_report()

        assert result["success"] is False
        assert result["error_code"] == "REPORT_FAILED"
        assert "db down" in result["error"]

    @pytest.mark.asyncio
    async def test_backup_with_broken_manager(self, service):
        service.backup_manager.backup_order = AsyncMock(side_effect=RuntimeError("boom"))

        result = await service.backup_order_images(make_order())

        assert result["success"] is False
        assert result["error_code"] == "BACKUP_FAILED"


class TestOrderImagesInfo:

    @pytest.mark.asyncio
    async def test_lists_folder(self, service, asset_store):
        asset_store.add(folder_key("1001", "a.png"), data=b"123")
        asset_store.add(folder_key("1001", "b.png"), data=b"45")
        order = make_order(backup_images=[{"original_key": upload_key("a.png")}])

        result = await service.get_order_images_info(order)

        assert result["success"] is True
        assert result["total_count"] == 2
        assert result["total_size"] == 5
        assert result["has_backup_images"] is True

    def test_has_backup_images(self, service):
        assert service.has_backup_images(make_order()) is False
