# order_assets/__init__.py
"""Order Assets - durable per-order image copies for the storefront."""

__version__ = "1.0.0"
__title__ = "Order Assets API"
__description__ = "Keep per-order image folders in sync with customer jacket configurations"
