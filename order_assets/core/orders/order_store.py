"""
Order persistence collaborator.

The sync engine treats order storage as a black box exposing the OrderStore
protocol. Orders cross this boundary as plain dicts (see ``Order.to_dict``).
SqlOrderStore is the SQLAlchemy-backed implementation used by the API and
Celery workers.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from sqlalchemy import select

from order_assets.core.database.database_service import DatabaseService
from order_assets.core.database.models import Order
from order_assets.core.shared.errors import OrderNotFoundError

logger = logging.getLogger("order_assets.order_store")

_UPDATABLE_FIELDS = {"customer_info", "items", "quantity", "total_price", "status"}


@runtime_checkable
class OrderStore(Protocol):
    async def get_orders(self) -> List[Dict[str, Any]]:
        ...

    async def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def update_order(
        self,
        order_id: str,
        fields: Dict[str, Any],
        updated_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        ...

    async def update_order_backup_images(
        self,
        order_id: str,
        backup_entries: List[Dict[str, Any]],
        removed: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        ...

    async def delete_order(self, order_id: str) -> bool:
        ...


def merge_backup_entries(
    existing: List[Dict[str, Any]],
    incoming: List[Dict[str, Any]],
    removed: Optional[List[str]] = None,
) -> List[Dict[str, Any]]:
    """
    Merge backup metadata by ``original_key``.

    Existing entries for ``removed`` original keys are dropped first. Incoming
    entries then update existing entries for the same original key, so
    re-running a backup never duplicates metadata. Empty incoming fields keep
    the recorded value (a skipped copy carries no size or copy time).
    """
    dropped = set(removed or [])
    kept = [entry for entry in existing or [] if entry.get("original_key") not in dropped]
    merged: Dict[str, Dict[str, Any]] = {}
    for entry in kept + list(incoming or []):
        key = entry.get("original_key")
        if not key:
            continue
        current = merged.get(key, {})
        merged[key] = {**current, **{k: v for k, v in entry.items() if v is not None}}
    return list(merged.values())


class SqlOrderStore:
    """OrderStore backed by the ``orders`` table."""

    def __init__(self, database_service: DatabaseService):
        self.database_service = database_service

    async def get_orders(self) -> List[Dict[str, Any]]:
        async with self.database_service.get_session() as session:
            result = await session.execute(select(Order).order_by(Order.created_at.asc()))
            return [order.to_dict() for order in result.scalars().all()]

    async def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        async with self.database_service.get_session() as session:
            order = await session.get(Order, order_id)
            return order.to_dict() if order else None

    async def create_order(self, data: Dict[str, Any]) -> Dict[str, Any]:
        async with self.database_service.get_session() as session:
            order = Order(
                order_number=data["order_number"],
                status=data.get("status", "pending"),
                customer_info=data.get("customer_info") or {},
                items=data.get("items") or [],
                quantity=data.get("quantity", 1),
                total_price=data.get("total_price", 0.0),
                backup_images=[],
            )
            if data.get("id"):
                order.id = data["id"]
            session.add(order)
            await session.flush()
            logger.info(f"Created order {order.id} (number={order.order_number})")
            return order.to_dict()

    async def update_order(
        self,
        order_id: str,
        fields: Dict[str, Any],
        updated_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        async with self.database_service.get_session() as session:
            order = await session.get(Order, order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            for name, value in fields.items():
                if name in _UPDATABLE_FIELDS:
                    setattr(order, name, value)
            order.updated_at = datetime.utcnow()
            order.updated_by = updated_by
            await session.flush()
            return order.to_dict()

    async def update_order_backup_images(
        self,
        order_id: str,
        backup_entries: List[Dict[str, Any]],
        removed: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        async with self.database_service.get_session() as session:
            order = await session.get(Order, order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            # Reassign (not mutate) so the JSON column is flagged dirty.
            order.backup_images = merge_backup_entries(
                order.backup_images, backup_entries, removed=removed
            )
            order.updated_at = datetime.utcnow()
            await session.flush()
            logger.info(
                f"Recorded {len(backup_entries)} backup entries for order {order_id} "
                f"({len(removed or [])} removed)"
            )
            return order.to_dict()

    async def delete_order(self, order_id: str) -> bool:
        async with self.database_service.get_session() as session:
            order = await session.get(Order, order_id)
            if order is None:
                return False
            await session.delete(order)
            logger.info(f"Deleted order record {order_id}")
            return True
