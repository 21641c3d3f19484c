"""
Tests for the check_order_images command and the Celery task bodies.
"""

from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest

from order_assets.core.commands.check_order_images import check_order_images
from order_assets.core.tasks.order_images import (
    backup_order_images_task,
    generate_order_images_report_task,
)
from tests.conftest import folder_key, make_config, make_order, upload_key


@pytest.fixture
def drifted(asset_store, order_store):
    order_store.add(make_order(config=make_config(logos=["A.png"])))
    asset_store.add(upload_key("A.png"))
    asset_store.add(folder_key("1001", "X.png"))


@pytest.fixture
def task_service(service):
    @asynccontextmanager
    async def fake_task_service():
        yield service

    with patch("order_assets.core.tasks.order_images._task_service", fake_task_service):
        yield service


class TestCheckOrderImages:

    @pytest.mark.asyncio
    async def test_report_only_flags_drift(self, service, asset_store, drifted):
        exit_code = await check_order_images(service)

        assert exit_code == 1
        assert asset_store.mutation_calls == []

    @pytest.mark.asyncio
    async def test_fix_repairs_every_drifted_order(self, service, asset_store, drifted):
        exit_code = await check_order_images(service, fix=True)

        assert exit_code == 0
        assert folder_key("1001", "X.png") not in asset_store.objects
        assert folder_key("1001", "A.png") in asset_store.objects

    @pytest.mark.asyncio
    async def test_single_order_validation(self, service, drifted):
        assert await check_order_images(service, order_id="order-1") == 1
        assert await check_order_images(service, fix=True, order_id="order-1") == 0
        assert await check_order_images(service, order_id="order-1") == 0


class TestTasks:

    def test_backup_task(self, task_service, asset_store, order_store):
        order_store.add(make_order(config=make_config(logos=["A.png"])))
        asset_store.add(upload_key("A.png"))

        result = backup_order_images_task.run("order-1")

        assert result["success"] is True
        assert "details" not in result
        assert folder_key("1001", "A.png") in asset_store.objects

    def test_backup_task_for_deleted_order(self, task_service):
        result = backup_order_images_task.run("missing")

        assert result["success"] is False
        assert result["error_code"] == "ORDER_NOT_FOUND"

    def test_report_task(self, task_service, drifted):
        result = generate_order_images_report_task.run()

        assert result["success"] is True
        assert result["report"]["unsynced_orders"] == 1
