# order_assets/api/v1/routers/orders.py
"""
Order lifecycle and image-sync endpoints.

Endpoints:
    POST /orders - Create order (image backup runs in the background)
    PUT /orders/{order_id}/configuration - Replace the jacket configuration
    DELETE /orders/{order_id} - Delete order with full asset/link cleanup
    GET /orders/images/report - Fleet image sync report
    GET /orders/{order_id}/images - Copies held in the order folder
    GET /orders/{order_id}/images/validation - Drift check for one order
    POST /orders/{order_id}/images/auto-fix - Repair drift for one order

Image sync outcomes on updates are advisory (``image_sync``) and never fail
the update itself.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from order_assets.api.v1.models import CreateOrderRequest, UpdateConfigurationRequest
from order_assets.core.orders.order_store import SqlOrderStore
from order_assets.core.shared.errors import ErrorCode
from order_assets.core.tasks.order_images import backup_order_images_task
from order_assets.dependencies import get_order_image_service, get_order_store
from order_assets.services.order_image_service import OrderImageService

router = APIRouter(prefix="/orders", tags=["Orders"])

logger = logging.getLogger("order_assets.api.orders")

_STATUS_BY_CODE = {
    ErrorCode.ORDER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CONFIG_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ORDER_LOCKED: status.HTTP_409_CONFLICT,
}


def _respond(result: Dict[str, Any]) -> JSONResponse:
    """200 for successful results, a code-derived error status otherwise."""
    if result.get("success"):
        return JSONResponse(status_code=status.HTTP_200_OK, content=result)
    code = _STATUS_BY_CODE.get(result.get("error_code"), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse(status_code=code, content=result)


async def _get_order_or_404(order_store: SqlOrderStore, order_id: str) -> Dict[str, Any]:
    order = await order_store.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


# =========================================================================
# ORDER LIFECYCLE
# =========================================================================


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create order",
    description="Create an order. Its images are copied into the order folder in the background.",
)
async def create_order(
    request: CreateOrderRequest,
    background_tasks: BackgroundTasks,
    order_store: SqlOrderStore = Depends(get_order_store),
    service: OrderImageService = Depends(get_order_image_service),
) -> Dict[str, Any]:
    try:
        order = await order_store.create_order(request.model_dump())
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Order number already exists: {request.order_number}",
        )

    try:
        backup_order_images_task.delay(order["id"])
        backup = "queued"
    except Exception as e:
        # Broker unavailable: back up in-process after the response is sent.
        logger.warning(f"Could not enqueue image backup for order {order['id']}: {e}")
        background_tasks.add_task(service.backup_order_images, order)
        backup = "scheduled"

    logger.info(f"Created order {order['order_number']} (image backup {backup})")
    return {"success": True, "order": order, "image_backup": backup, "message": "Order created"}


@router.put(
    "/{order_id}/configuration",
    summary="Update order configuration",
    description="Replace the order's jacket configuration and sync its images.",
)
async def update_order_configuration(
    order_id: str,
    request: UpdateConfigurationRequest,
    service: OrderImageService = Depends(get_order_image_service),
) -> JSONResponse:
    result = await service.update_order_configuration(
        order_id, request.jacket_config, updated_by=request.updated_by
    )
    return _respond(result)


@router.delete(
    "/{order_id}",
    summary="Delete order",
    description="Delete the order's images and edit links, then the order record.",
)
async def delete_order(
    order_id: str,
    order_store: SqlOrderStore = Depends(get_order_store),
    service: OrderImageService = Depends(get_order_image_service),
) -> JSONResponse:
    order = await _get_order_or_404(order_store, order_id)
    return _respond(await service.perform_complete_order_deletion(order))


# =========================================================================
# IMAGE SYNC ADMINISTRATION
# =========================================================================


@router.get(
    "/images/report",
    summary="Image sync report",
    description="Validate every order's image folder and aggregate the results.",
)
async def order_images_report(
    service: OrderImageService = Depends(get_order_image_service),
) -> JSONResponse:
    return _respond(await service.generate_order_images_report())


@router.get(
    "/{order_id}/images",
    summary="Order images",
    description="List the image copies held in the order folder.",
)
async def order_images_info(
    order_id: str,
    order_store: SqlOrderStore = Depends(get_order_store),
    service: OrderImageService = Depends(get_order_image_service),
) -> JSONResponse:
    order = await _get_order_or_404(order_store, order_id)
    return _respond(await service.get_order_images_info(order))


@router.get(
    "/{order_id}/images/validation",
    summary="Validate order images",
)
async def validate_order_images(
    order_id: str,
    service: OrderImageService = Depends(get_order_image_service),
) -> JSONResponse:
    return _respond(await service.validate_order_folder_sync(order_id))


@router.post(
    "/{order_id}/images/auto-fix",
    summary="Repair order images",
)
async def auto_fix_order_images(
    order_id: str,
    service: OrderImageService = Depends(get_order_image_service),
) -> JSONResponse:
    return _respond(await service.auto_fix_order_image_sync(order_id))
