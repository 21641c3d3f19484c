"""
MinIO Asset Store.

RemoteAssetStore implementation over the MinIO S3-compatible client. Works
against MinIO, AWS S3 and Cloudflare R2 (set ``MINIO_REGION=auto``). The minio
client is blocking, so each call runs in a worker thread.
"""

import asyncio
import logging
from datetime import datetime
from functools import lru_cache
from io import BytesIO
from typing import Dict, List, Optional, Tuple

from minio import Minio
from minio.error import S3Error

from order_assets.config import settings
from order_assets.core.shared.errors import RemoteStoreError
from order_assets.core.storage.asset_store import (
    AssetPayload,
    DeleteResult,
    PutResult,
    StoredObject,
)

logger = logging.getLogger("order_assets.minio")

_MISSING_CODES = {"NoSuchKey", "NoSuchObject", "NotFound"}


class MinIOAssetStore:
    """
    MinIO storage backend for order assets.

    Provides the key-based operations the sync engine needs:
    - put / get / delete of single objects
    - HEAD-style existence probe
    - recursive prefix listing
    - public URL construction
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        bucket: Optional[str] = None,
        secure: Optional[bool] = None,
        region: Optional[str] = None,
        public_base_url: Optional[str] = None,
    ):
        self.endpoint = endpoint or settings.minio_endpoint
        self.access_key = access_key or settings.minio_access_key
        self.secret_key = secret_key or settings.minio_secret_key
        self.bucket = bucket or settings.minio_bucket
        self.secure = settings.minio_secure if secure is None else secure
        self.region = region or settings.minio_region
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        self._client: Optional[Minio] = None

    @property
    def client(self) -> Minio:
        """Get or create MinIO client (lazy initialization)."""
        if self._client is None:
            self._client = Minio(
                endpoint=self.endpoint,
                access_key=self.access_key,
                secret_key=self.secret_key,
                secure=self.secure,
                region=self.region,
            )
            logger.info(
                f"MinIO client initialized (endpoint={self.endpoint}, "
                f"bucket={self.bucket}, secure={self.secure})"
            )
        return self._client

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    def check_health(self) -> Tuple[bool, Optional[str]]:
        """
        Check storage connection health.

        Returns:
            Tuple of (connected, error message)
        """
        try:
            if not self.client.bucket_exists(self.bucket):
                return False, f"Bucket does not exist: {self.bucket}"
            return True, None
        except Exception as e:
            logger.error(f"MinIO health check failed: {e}")
            return False, str(e)

    # =========================================================================
    # OBJECT OPERATIONS
    # =========================================================================

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PutResult:
        def _put():
            return self.client.put_object(
                bucket_name=self.bucket,
                object_name=key,
                data=BytesIO(data),
                length=len(data),
                content_type=content_type,
                metadata=metadata,
            )

        try:
            await asyncio.to_thread(_put)
        except S3Error as e:
            raise RemoteStoreError(f"Failed to upload {key}: {e}", key=key) from e
        logger.info(f"Uploaded object {self.bucket}/{key} ({len(data)} bytes)")
        return PutResult(key=key, url=self.public_url(key), size=len(data))

    async def get(self, key: str) -> AssetPayload:
        def _get():
            response = None
            try:
                response = self.client.get_object(self.bucket, key)
                content = response.read()
                return AssetPayload(
                    data=content,
                    content_type=response.headers.get("Content-Type"),
                )
            finally:
                if response:
                    response.close()
                    response.release_conn()

        try:
            return await asyncio.to_thread(_get)
        except S3Error as e:
            raise RemoteStoreError(f"Failed to download {key}: {e}", key=key) from e

    async def delete(self, key: str) -> DeleteResult:
        def _delete():
            self.client.remove_object(self.bucket, key)

        try:
            await asyncio.to_thread(_delete)
        except S3Error as e:
            if e.code in _MISSING_CODES:
                return DeleteResult(success=True, key=key)  # Already gone
            raise RemoteStoreError(f"Failed to delete {key}: {e}", key=key) from e
        logger.info(f"Deleted object {self.bucket}/{key}")
        return DeleteResult(success=True, key=key)

    async def exists(self, key: str) -> bool:
        def _stat():
            self.client.stat_object(self.bucket, key)

        try:
            await asyncio.to_thread(_stat)
            return True
        except S3Error as e:
            if e.code in _MISSING_CODES:
                return False
            raise RemoteStoreError(f"Failed to stat {key}: {e}", key=key) from e

    async def list(self, prefix: str) -> List[StoredObject]:
        def _list():
            objects = []
            for obj in self.client.list_objects(self.bucket, prefix=prefix, recursive=True):
                if obj.is_dir:
                    continue
                objects.append(StoredObject(
                    key=obj.object_name,
                    url=self.public_url(obj.object_name),
                    size=obj.size or 0,
                    content_type=None,  # Not available in list
                    last_modified=obj.last_modified or datetime.utcnow(),
                ))
            return objects

        try:
            return await asyncio.to_thread(_list)
        except S3Error as e:
            raise RemoteStoreError(f"Failed to list {prefix}: {e}", key=prefix) from e


# =============================================================================
# SINGLETON SERVICE
# =============================================================================


@lru_cache()
def get_asset_store() -> MinIOAssetStore:
    """Process-wide store used by the API and Celery wiring."""
    return MinIOAssetStore()
