# order_assets/api/v1/routers/temporary_links.py
"""
Temporary edit link endpoints.

Endpoints:
    POST /temporary-links/orders/{order_id} - Issue a link (previous unused links are invalidated)
    GET /temporary-links/orders/{order_id} - Links issued for an order
    GET /temporary-links/validate/{token} - Check a link and count the access
    PUT /temporary-links/invalidate/{token} - Mark a link used
    GET /temporary-links/stats - Link counts by state
    POST /temporary-links/cleanup - Delete expired links now
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from order_assets.api.v1.models import CreateTemporaryLinkRequest
from order_assets.core.orders.link_store import SqlTemporaryLinkStore
from order_assets.core.orders.order_store import SqlOrderStore
from order_assets.core.shared.errors import LinkNotFoundError
from order_assets.dependencies import get_link_store, get_order_store

router = APIRouter(prefix="/temporary-links", tags=["Temporary Links"])

logger = logging.getLogger("order_assets.api.temporary_links")


@router.post(
    "/orders/{order_id}",
    status_code=status.HTTP_201_CREATED,
    summary="Create edit link",
    description="Issue an expiring edit link for the order. Unused earlier links stop working.",
)
async def create_temporary_link(
    order_id: str,
    request: Optional[CreateTemporaryLinkRequest] = None,
    order_store: SqlOrderStore = Depends(get_order_store),
    link_store: SqlTemporaryLinkStore = Depends(get_link_store),
) -> Dict[str, Any]:
    if await order_store.get_order(order_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    request = request or CreateTemporaryLinkRequest()
    link = await link_store.create_link(
        order_id, created_by=request.created_by, duration_hours=request.duration_hours
    )
    logger.info(f"Issued edit link for order {order_id} (expires {link['expires_at']})")
    return {"success": True, "link": link}


@router.get(
    "/orders/{order_id}",
    summary="Order edit links",
)
async def list_order_links(
    order_id: str,
    link_store: SqlTemporaryLinkStore = Depends(get_link_store),
) -> Dict[str, Any]:
    links = await link_store.get_order_links(order_id)
    return {"success": True, "links": links, "count": len(links)}


@router.get(
    "/validate/{token}",
    summary="Validate edit link",
)
async def validate_temporary_link(
    token: str,
    http_request: Request,
    link_store: SqlTemporaryLinkStore = Depends(get_link_store),
) -> Dict[str, Any]:
    result = await link_store.validate_link(
        token,
        user_agent=http_request.headers.get("user-agent", ""),
        ip_address=http_request.client.host if http_request.client else "",
    )
    if not result["is_valid"]:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Link is invalid or expired")
    return {"success": True, **result}


@router.put(
    "/invalidate/{token}",
    summary="Invalidate edit link",
)
async def invalidate_temporary_link(
    token: str,
    link_store: SqlTemporaryLinkStore = Depends(get_link_store),
) -> Dict[str, Any]:
    try:
        link = await link_store.mark_link_used(token)
    except LinkNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Link not found")
    return {"success": True, "link": link}


@router.get(
    "/stats",
    summary="Edit link statistics",
)
async def temporary_link_stats(
    link_store: SqlTemporaryLinkStore = Depends(get_link_store),
) -> Dict[str, Any]:
    return {"success": True, "stats": await link_store.get_link_stats()}


@router.post(
    "/cleanup",
    summary="Delete expired edit links",
)
async def cleanup_temporary_links(
    link_store: SqlTemporaryLinkStore = Depends(get_link_store),
) -> Dict[str, Any]:
    deleted = await link_store.cleanup_expired_links()
    return {"success": True, "deleted_count": deleted}
