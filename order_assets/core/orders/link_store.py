"""
Temporary edit links.

Customers receive an expiring link to edit their order. Order deletion removes
every link for the order; a periodic sweep removes expired ones.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from sqlalchemy import and_, delete, func, select, update

from order_assets.config import settings
from order_assets.core.database.database_service import DatabaseService
from order_assets.core.database.models import TemporaryLink
from order_assets.core.shared.errors import LinkNotFoundError

logger = logging.getLogger("order_assets.links")


@runtime_checkable
class EphemeralLinkStore(Protocol):
    async def delete_order_links(self, order_id: str) -> int:
        ...


class SqlTemporaryLinkStore:
    """EphemeralLinkStore backed by the ``temporary_links`` table."""

    def __init__(self, database_service: DatabaseService):
        self.database_service = database_service

    @staticmethod
    def generate_token() -> str:
        return secrets.token_hex(32)

    async def create_link(
        self,
        order_id: str,
        created_by: str = "admin",
        duration_hours: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Issue a new link, invalidating any unused link for the order."""
        hours = duration_hours or settings.temporary_link_default_hours
        await self.invalidate_order_links(order_id)
        async with self.database_service.get_session() as session:
            link = TemporaryLink(
                order_id=order_id,
                token=self.generate_token(),
                expires_at=datetime.utcnow() + timedelta(hours=hours),
                created_by=created_by,
            )
            session.add(link)
            await session.flush()
            return link.to_dict()

    async def validate_link(
        self,
        token: str,
        user_agent: str = "",
        ip_address: str = "",
    ) -> Dict[str, Any]:
        async with self.database_service.get_session() as session:
            result = await session.execute(
                select(TemporaryLink).where(and_(
                    TemporaryLink.token == token,
                    TemporaryLink.is_used.is_(False),
                    TemporaryLink.expires_at > datetime.utcnow(),
                ))
            )
            link = result.scalar_one_or_none()
            if link is None:
                return {"is_valid": False, "reason": "INVALID_OR_EXPIRED"}

            link.access_count = (link.access_count or 0) + 1
            link.last_access_at = datetime.utcnow()
            link.user_agent = user_agent[:512] if user_agent else None
            link.ip_address = ip_address or None
            await session.flush()
            return {"is_valid": True, "order_id": link.order_id, "link": link.to_dict()}

    async def mark_link_used(self, token: str) -> Dict[str, Any]:
        async with self.database_service.get_session() as session:
            result = await session.execute(select(TemporaryLink).where(TemporaryLink.token == token))
            link = result.scalar_one_or_none()
            if link is None:
                raise LinkNotFoundError("Temporary link not found")
            link.is_used = True
            link.used_at = datetime.utcnow()
            await session.flush()
            return link.to_dict()

    async def invalidate_order_links(self, order_id: str) -> int:
        async with self.database_service.get_session() as session:
            result = await session.execute(
                update(TemporaryLink)
                .where(and_(TemporaryLink.order_id == order_id, TemporaryLink.is_used.is_(False)))
                .values(is_used=True, used_at=datetime.utcnow())
            )
            count = result.rowcount or 0
        if count:
            logger.info(f"Invalidated {count} temporary links for order {order_id}")
        return count

    async def delete_order_links(self, order_id: str) -> int:
        async with self.database_service.get_session() as session:
            result = await session.execute(
                delete(TemporaryLink).where(TemporaryLink.order_id == order_id)
            )
            count = result.rowcount or 0
        logger.info(f"Deleted {count} temporary links for order {order_id}")
        return count

    async def get_order_links(self, order_id: str) -> List[Dict[str, Any]]:
        async with self.database_service.get_session() as session:
            result = await session.execute(
                select(TemporaryLink)
                .where(TemporaryLink.order_id == order_id)
                .order_by(TemporaryLink.created_at.desc())
            )
            return [link.to_dict() for link in result.scalars().all()]

    async def cleanup_expired_links(self) -> int:
        async with self.database_service.get_session() as session:
            result = await session.execute(
                delete(TemporaryLink).where(TemporaryLink.expires_at < datetime.utcnow())
            )
            count = result.rowcount or 0
        if count:
            logger.info(f"Deleted {count} expired temporary links")
        return count

    async def get_link_stats(self) -> Dict[str, int]:
        now = datetime.utcnow()
        async with self.database_service.get_session() as session:
            async def count(*conditions) -> int:
                query = select(func.count()).select_from(TemporaryLink)
                if conditions:
                    query = query.where(and_(*conditions))
                return (await session.execute(query)).scalar() or 0

            return {
                "total": await count(),
                "active": await count(TemporaryLink.is_used.is_(False), TemporaryLink.expires_at > now),
                "used": await count(TemporaryLink.is_used.is_(True)),
                "expired": await count(TemporaryLink.is_used.is_(False), TemporaryLink.expires_at < now),
            }
