"""
Order image Celery tasks.

Each task runs its coroutine with ``asyncio.run`` and builds its own database
service for that event loop, disposing it when the run ends.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from celery import shared_task

from order_assets.core.database.database_service import DatabaseService
from order_assets.core.orders.link_store import SqlTemporaryLinkStore
from order_assets.core.orders.order_store import SqlOrderStore
from order_assets.core.shared.lock_service import get_lock_service
from order_assets.core.storage.minio_service import get_asset_store
from order_assets.services.order_image_service import OrderImageService, build_order_image_service

logger = logging.getLogger("order_assets.tasks")


@asynccontextmanager
async def _task_service() -> AsyncIterator[OrderImageService]:
    database_service = DatabaseService()
    try:
        yield build_order_image_service(
            store=get_asset_store(),
            order_store=SqlOrderStore(database_service),
            link_store=SqlTemporaryLinkStore(database_service),
            lock_service=get_lock_service(),
        )
    finally:
        await database_service.close()


# ============================================================================
# ORDER IMAGE TASKS
# ============================================================================

@shared_task(
    bind=True,
    name="order_assets.tasks.backup_order_images",
    autoretry_for=(ConnectionError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def backup_order_images_task(self, order_id: str) -> Dict[str, Any]:
    """
    Copy a newly created order's assets into its order folder.

    Enqueued by order creation, which returns before the backup finishes.
    Failures are logged, never surfaced to the customer.
    """
    async def _run() -> Dict[str, Any]:
        async with _task_service() as service:
            order = await service.order_store.get_order(order_id)
            if order is None:
                logger.warning(f"Backup skipped, order {order_id} no longer exists")
                return {"success": False, "message": "Order not found", "error_code": "ORDER_NOT_FOUND"}
            return await service.backup_order_images(order)

    logger.info(f"Backing up images for order {order_id}")
    result = asyncio.run(_run())
    if result.get("success"):
        logger.info(f"Order {order_id} backup: {result.get('message')}")
    else:
        logger.error(f"Order {order_id} backup incomplete: {result.get('message')}")
    return {key: value for key, value in result.items() if key != "details"}


@shared_task(bind=True, name="order_assets.tasks.cleanup_expired_links")
def cleanup_expired_links_task(self) -> Dict[str, Any]:
    """Delete expired temporary edit links (scheduled by beat)."""
    async def _run() -> int:
        database_service = DatabaseService()
        try:
            return await SqlTemporaryLinkStore(database_service).cleanup_expired_links()
        finally:
            await database_service.close()

    try:
        deleted = asyncio.run(_run())
    except Exception as e:
        logger.error(f"Expired link cleanup failed: {e}")
        raise
    logger.info(f"Expired link cleanup removed {deleted} links")
    return {"deleted_count": deleted}


@shared_task(bind=True, name="order_assets.tasks.generate_order_images_report")
def generate_order_images_report_task(self) -> Dict[str, Any]:
    """Validate every order and return the fleet image report."""
    async def _run() -> Dict[str, Any]:
        async with _task_service() as service:
            return await service.generate_order_images_report()

    result = asyncio.run(_run())
    logger.info(f"Order images report: {result.get('message')}")
    return result
