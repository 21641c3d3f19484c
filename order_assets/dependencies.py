"""
FastAPI dependency providers.

Wires the process-wide collaborators (MinIO store, SQL order / link stores,
lock backend) into the order image service. Tests override these with
``app.dependency_overrides``.

Usage:
    from fastapi import Depends
    from order_assets.dependencies import get_order_image_service

    @router.get("/orders/{order_id}/images/validation")
    async def validate(order_id: str, service=Depends(get_order_image_service)):
        return await service.validate_order_folder_sync(order_id)
"""

import logging
from functools import lru_cache

from order_assets.core.database.database_service import get_database_service
from order_assets.core.orders.link_store import SqlTemporaryLinkStore
from order_assets.core.orders.order_store import SqlOrderStore
from order_assets.core.shared.lock_service import get_lock_service
from order_assets.core.storage.minio_service import get_asset_store
from order_assets.services.order_image_service import OrderImageService, build_order_image_service

logger = logging.getLogger("order_assets.dependencies")


@lru_cache()
def get_order_store() -> SqlOrderStore:
    return SqlOrderStore(get_database_service())


@lru_cache()
def get_link_store() -> SqlTemporaryLinkStore:
    return SqlTemporaryLinkStore(get_database_service())


@lru_cache()
def get_order_image_service() -> OrderImageService:
    """Order image service over the configured MinIO bucket and database."""
    logger.info("Building order image service")
    return build_order_image_service(
        store=get_asset_store(),
        order_store=get_order_store(),
        link_store=get_link_store(),
        lock_service=get_lock_service(),
    )
