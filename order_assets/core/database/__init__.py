# order_assets/core/database/__init__.py
"""
Database package.

Provides SQLAlchemy models, base classes, and database session management.
"""

from .base import Base
from .models import Order, TemporaryLink

__all__ = ["Base", "Order", "TemporaryLink"]
