# ============================================================================
# Order Assets - Application Configuration
# ============================================================================
"""
Application configuration module using Pydantic Settings.

This module defines all configuration parameters for the order asset
synchronization service, including:
- API settings
- Object storage (MinIO / S3-compatible) connection and key layout
- Pacing and timeout policy for remote-store calls
- Database and lock backends
- Temporary link lifetimes

Environment Variables:
    See .env.example for a complete list of available settings.

Usage:
    from order_assets.config import settings
    folder_root = settings.storage_root
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # =========================================================================
    # API SETTINGS
    # =========================================================================
    api_title: str = "Order Assets API"
    api_version: str = "1.0.0"
    debug: bool = Field(default=False, description="Enable verbose logging & dev helpers")
    cors_origins: List[str] = Field(default=["http://localhost:3000"], description="Allowed CORS origins")

    # =========================================================================
    # OBJECT STORAGE
    # =========================================================================
    storage_root: str = Field(default="storefront", description="Root key segment for all assets")
    minio_endpoint: str = Field(default="localhost:9000", description="S3-compatible endpoint (host:port)")
    minio_access_key: str = Field(default="minioadmin", description="Access key id")
    minio_secret_key: str = Field(default="minioadmin", description="Secret access key")
    minio_secure: bool = Field(default=False, description="Use HTTPS for storage calls")
    minio_region: Optional[str] = Field(default=None, description="Bucket region (e.g. 'auto' for R2)")
    minio_bucket: str = Field(default="storefront-assets", description="Bucket holding all assets")
    public_base_url: str = Field(
        default="http://localhost:9000/storefront-assets",
        description="Public URL prefix; '<public_base_url>/<key>' serves an asset",
    )
    legacy_url_marker: str = Field(
        default="/upload/",
        description="Path marker identifying URLs from the previous image host",
    )
    default_content_type: str = Field(default="image/jpeg", description="Fallback asset MIME type")

    # =========================================================================
    # PACING / TIMEOUTS
    # =========================================================================
    sync_item_delay_seconds: float = Field(default=0.1, description="Delay between per-item sync operations")
    backup_item_delay_seconds: float = Field(default=0.05, description="Delay between per-item backup copies")
    report_order_delay_seconds: float = Field(default=0.2, description="Delay between orders in fleet reports")
    bulk_delete_order_delay_seconds: float = Field(default=0.5, description="Delay between orders in bulk deletion")
    remote_call_timeout_seconds: float = Field(default=30.0, description="Per-item timeout for remote calls")
    sync_max_concurrency: int = Field(default=1, description="1 = sequential; >1 = bounded concurrency")

    # =========================================================================
    # DATABASE
    # =========================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/orders.db",
        description="Async SQLAlchemy URL (sqlite+aiosqlite or postgresql+asyncpg)",
    )
    db_pool_size: int = Field(default=20, description="PostgreSQL pool size")
    db_max_overflow: int = Field(default=40, description="PostgreSQL pool overflow")
    db_pool_recycle: int = Field(default=3600, description="Recycle connections after N seconds")

    # =========================================================================
    # LOCKS
    # =========================================================================
    lock_backend: str = Field(default="local", description="'local' (in-process) or 'redis'")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL for distributed locks")
    order_lock_timeout_seconds: int = Field(default=300, description="Lock expiration for order runs")
    order_lock_wait_seconds: float = Field(default=60.0, description="How long a run waits for the order lock")

    # =========================================================================
    # TEMPORARY LINKS
    # =========================================================================
    temporary_link_default_hours: int = Field(default=1, description="Default edit-link lifetime")
    link_cleanup_interval_seconds: int = Field(default=3600, description="Expired link sweep interval")

    # =========================================================================
    # CELERY
    # =========================================================================
    celery_broker_url: str = Field(default="redis://localhost:6379/0")
    celery_result_backend: str = Field(default="redis://localhost:6379/1")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# Global settings instance (imported elsewhere)
settings = Settings()
