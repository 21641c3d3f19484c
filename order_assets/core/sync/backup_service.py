"""
Durable per-order copies of referenced assets.

When an order is created every asset its configuration references is copied
into the order folder so later edits or source cleanups cannot break the
order. Copies are "copy-if-absent": the destination is probed first, so
re-running a backup after a partial failure never copies the same asset twice.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from order_assets.config import settings
from order_assets.core.shared.errors import RemoteStoreError
from order_assets.core.shared.pacing import PacingPolicy
from order_assets.core.storage.asset_store import RemoteAssetStore
from order_assets.core.storage.storage_path_service import guess_content_type, order_asset_key
from order_assets.core.sync.asset_keys import AssetKeyExtractor

logger = logging.getLogger("order_assets.sync.backup")


def backup_entry(result: Dict[str, Any]) -> Dict[str, Any]:
    """Backup metadata entry persisted on the order for one successful copy."""
    return {
        "original_key": result["original_key"],
        "backup_key": result["backup_key"],
        "url": result.get("url"),
        "size": result.get("size"),
        "copied_at": result.get("copied_at"),
    }


class AssetBackupManager:
    """
    Copies assets into order folders.

    Attributes:
        store: Remote asset store
        extractor: Reference extractor for configuration snapshots
        pacing: Per-item pacing / timeout policy for batch backups
    """

    def __init__(
        self,
        store: RemoteAssetStore,
        extractor: Optional[AssetKeyExtractor] = None,
        pacing: Optional[PacingPolicy] = None,
        root: Optional[str] = None,
    ):
        self.store = store
        self.extractor = extractor or AssetKeyExtractor()
        self.pacing = pacing or PacingPolicy(
            delay_seconds=settings.backup_item_delay_seconds,
            item_timeout=settings.remote_call_timeout_seconds,
        )
        self.root = root

    async def copy_to_order_folder(
        self,
        reference: str,
        order_id: str,
        order_number: str,
    ) -> Dict[str, Any]:
        """
        Copy one asset into the order folder unless a copy already exists.

        Raises:
            RemoteStoreError: Source download or destination upload failed
        """
        destination = order_asset_key(order_number, reference, self.root)

        if await self.store.exists(destination):
            logger.debug(f"Copy already present, skipping: {destination}")
            return {
                "success": True,
                "skipped": True,
                "original_key": reference,
                "backup_key": destination,
                "url": self.store.public_url(destination),
                "size": None,
                "copied_at": None,
            }

        payload = await self.store.get(reference)
        copied_at = datetime.utcnow().isoformat()
        put_result = await self.store.put(
            destination,
            payload.data,
            payload.content_type or guess_content_type(reference),
            metadata={
                "original-key": reference,
                "order-id": str(order_id),
                "copied-at": copied_at,
            },
        )
        logger.info(f"Copied {reference} -> {destination}")
        return {
            "success": True,
            "skipped": False,
            "original_key": reference,
            "backup_key": put_result.key,
            "url": put_result.url,
            "size": put_result.size,
            "copied_at": copied_at,
        }

    async def copy_references(
        self,
        references: Iterable[str],
        order_id: str,
        order_number: str,
    ) -> List[Dict[str, Any]]:
        """Copy each reference under the pacing policy; one result per reference."""

        async def worker(reference: str) -> Dict[str, Any]:
            return await self.copy_to_order_folder(reference, order_id, order_number)

        return await self.pacing.run(sorted(references), worker, self._failure)

    async def backup(
        self,
        order_id: str,
        order_number: str,
        config_snapshot: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """Back up every asset referenced by one configuration snapshot."""
        references = self.extractor.extract(config_snapshot)
        return await self._backup_references(references, order_id, order_number)

    async def backup_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """Back up every asset referenced by any item of ``order``."""
        references = self.extractor.extract_from_order(order)
        return await self._backup_references(
            references, order["id"], str(order.get("order_number") or order["id"])
        )

    async def _backup_references(
        self,
        references: Iterable[str],
        order_id: str,
        order_number: str,
    ) -> Dict[str, Any]:
        references = set(references)
        logger.info(f"Backing up {len(references)} assets for order {order_number}")

        results = await self.copy_references(references, order_id, order_number)
        successful = [r for r in results if r["success"]]
        failed = [r for r in results if not r["success"]]
        copied = [r for r in successful if not r.get("skipped")]

        if failed:
            logger.warning(
                f"Backup for order {order_number}: {len(failed)} of {len(results)} assets failed"
            )
        else:
            logger.info(
                f"Backup for order {order_number} complete: {len(copied)} copied, "
                f"{len(successful) - len(copied)} already present"
            )

        return {
            "copied_count": len(copied),
            "skipped_count": len(successful) - len(copied),
            "failed_count": len(failed),
            "details": {"successful": successful, "failed": failed},
        }

    @staticmethod
    def _failure(reference: str, error: BaseException) -> Dict[str, Any]:
        return {
            "success": False,
            "original_key": reference,
            "error": str(error),
            "error_type": "remote_store" if isinstance(error, RemoteStoreError) else type(error).__name__,
        }
