"""
SQLAlchemy ORM models for orders and temporary edit links.

Models:
    - Order: Customer order with jacket configuration items and the
      denormalized list of durably backed-up assets
    - TemporaryLink: Expiring edit link for one order
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    String,
)

from .base import Base


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


class Order(Base):
    """
    Customer order.

    Attributes:
        id: Unique order identifier
        order_number: Human-facing order number; names the order's asset folder
        status: Order workflow status
        customer_info: Customer contact details
        items: List of ``{"jacket_config": {...}, "quantity": n, "price": x}``
        total_price: Order total
        backup_images: Backup metadata, one entry per durably copied asset:
            ``{"original_key", "backup_key", "url", "size", "copied_at"}``
        created_at / updated_at: Timestamps
        updated_by: Last editor
    """

    __tablename__ = "orders"

    id = Column(String(64), primary_key=True, default=lambda: _new_id("order"))
    order_number = Column(String(64), nullable=False, unique=True, index=True)
    status = Column(String(32), nullable=False, default="pending", index=True)

    customer_info = Column(JSON, nullable=False, default=dict)
    items = Column(JSON, nullable=False, default=list)
    quantity = Column(Integer, nullable=False, default=1)
    total_price = Column(Float, nullable=False, default=0.0)

    backup_images = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    updated_by = Column(String(255), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "status": self.status,
            "customer_info": self.customer_info or {},
            "items": list(self.items or []),
            "quantity": self.quantity,
            "total_price": self.total_price,
            "backup_images": list(self.backup_images or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "updated_by": self.updated_by,
        }

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, order_number={self.order_number})>"


class TemporaryLink(Base):
    """
    Expiring edit link granting access to one order.

    Attributes:
        id: Link identifier
        order_id: Order the link opens
        token: Secure random token (hex)
        expires_at: Expiry timestamp
        is_used: Whether the link was consumed or invalidated
        access_count / last_access_at: Access statistics
    """

    __tablename__ = "temporary_links"

    id = Column(String(64), primary_key=True, default=lambda: _new_id("temp-link"))
    order_id = Column(String(64), nullable=False, index=True)
    token = Column(String(128), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    is_used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime, nullable=True)
    created_by = Column(String(255), nullable=False, default="admin")
    access_count = Column(Integer, nullable=False, default=0)
    last_access_at = Column(DateTime, nullable=True)
    user_agent = Column(String(512), nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_temporary_links_order_used", "order_id", "is_used"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "token": self.token,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_used": self.is_used,
            "used_at": self.used_at.isoformat() if self.used_at else None,
            "created_by": self.created_by,
            "access_count": self.access_count,
            "last_access_at": self.last_access_at.isoformat() if self.last_access_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
