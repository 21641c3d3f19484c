"""
Order teardown.

Deleting an order first removes everything that hangs off it and only then
the order record, so a crash mid-cleanup leaves the record behind as the
anchor for a retry. Steps, each attempted regardless of the others:

1. delete_order_assets  - every object in the order folder
2. delete_temporary_links - every edit link of the order
3. cleanup_extra_data   - extension point, currently nothing to do

The deletion flow appends its own "delete_order_record" step to the returned
log before sealing it.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from order_assets.config import settings
from order_assets.core.orders.link_store import EphemeralLinkStore
from order_assets.core.shared.errors import RemoteStoreError
from order_assets.core.shared.operation_log import OperationLog
from order_assets.core.shared.pacing import PacingPolicy
from order_assets.core.storage.asset_store import RemoteAssetStore
from order_assets.core.storage.storage_path_service import order_folder

logger = logging.getLogger("order_assets.sync.cleanup")

STEP_DELETE_ASSETS = "delete_order_assets"
STEP_DELETE_LINKS = "delete_temporary_links"
STEP_EXTRA_CLEANUP = "cleanup_extra_data"


def log_result(log: OperationLog) -> Dict[str, Any]:
    return {
        "success": log.success,
        "log": log.to_dict(),
        "has_warnings": log.has_warnings,
    }


class CleanupOrchestrator:
    """
    Runs the fixed cleanup sequence for deleted orders.

    Attributes:
        store: Remote asset store
        link_store: Temporary link collaborator
        pacing: Per-object pacing for folder deletion
        order_delay_seconds: Pause between orders in bulk deletion
    """

    def __init__(
        self,
        store: RemoteAssetStore,
        link_store: EphemeralLinkStore,
        pacing: Optional[PacingPolicy] = None,
        order_delay_seconds: Optional[float] = None,
        root: Optional[str] = None,
    ):
        self.store = store
        self.link_store = link_store
        self.pacing = pacing or PacingPolicy(
            delay_seconds=settings.sync_item_delay_seconds,
            item_timeout=settings.remote_call_timeout_seconds,
        )
        self.order_delay_seconds = (
            settings.bulk_delete_order_delay_seconds if order_delay_seconds is None else order_delay_seconds
        )
        self.root = root

    async def delete_order_assets(self, order: Dict[str, Any], seal: bool = True) -> OperationLog:
        """
        Run the cleanup steps for one order.

        Args:
            order: Order snapshot (``id`` and ``order_number``)
            seal: Pass False to keep the log open for a follow-up step

        Returns:
            Finalized OperationLog
        """
        order_id = order["id"]
        order_number = str(order.get("order_number") or order_id)
        log = OperationLog(order_id=order_id, operation="cleanup", order_number=order_number)
        logger.info(f"Starting cleanup for order {order_number}")

        step = log.start_step(STEP_DELETE_ASSETS)
        try:
            outcome = await self.delete_folder(order_number)
            if outcome["failed_count"]:
                log.fail_step(
                    step,
                    error=f"{outcome['failed_count']} of {outcome['total_count']} assets not deleted",
                    details=outcome,
                )
            else:
                log.complete_step(step, details=outcome)
        except RemoteStoreError as e:
            log.fail_step(step, error=str(e))

        step = log.start_step(STEP_DELETE_LINKS)
        try:
            deleted_links = await self.link_store.delete_order_links(order_id)
            log.complete_step(step, details={"deleted_count": deleted_links})
        except Exception as e:
            log.fail_step(step, error=str(e))

        step = log.start_step(STEP_EXTRA_CLEANUP)
        log.complete_step(step, details={"message": "No additional data to clean up"})

        log.finalize(seal=seal)
        logger.info(
            f"Cleanup for order {order_number}: {log.summary.successful_steps} steps succeeded, "
            f"{log.summary.failed_steps} failed ({log.summary.duration_ms}ms)"
        )
        return log

    async def delete_folder(self, order_number: str) -> Dict[str, Any]:
        """
        Delete every object under the order folder.

        Raises:
            RemoteStoreError: The folder could not be listed
        """
        folder = order_folder(order_number, self.root)
        objects = await self.store.list(folder)
        sizes = {obj.key: obj.size or 0 for obj in objects}

        async def worker(key: str) -> Dict[str, Any]:
            result = await self.store.delete(key)
            return {"key": key, "success": result.success}

        def failure(key: str, error: BaseException) -> Dict[str, Any]:
            return {"key": key, "success": False, "error": str(error)}

        results = await self.pacing.run(sorted(sizes), worker, failure)
        deleted = [r for r in results if r["success"]]
        return {
            "deleted_count": len(deleted),
            "failed_count": len(results) - len(deleted),
            "total_count": len(results),
            "freed_bytes": sum(sizes[r["key"]] for r in deleted),
            "failed_keys": [r["key"] for r in results if not r["success"]],
        }

    async def delete_many(
        self,
        orders: List[Dict[str, Any]],
        delete_one: Optional[Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]] = None,
    ) -> Dict[str, Any]:
        """
        Clean up several orders one after another.

        Args:
            orders: Order snapshots
            delete_one: Per-order deletion returning ``{"success", "log"}``;
                defaults to asset/link cleanup only

        Returns:
            Aggregate counts plus each order's log
        """
        started = datetime.utcnow()
        delete_one = delete_one or self._cleanup_only
        summary: Dict[str, Any] = {
            "total_orders": len(orders),
            "processed_orders": 0,
            "successful_deletions": 0,
            "failed_deletions": 0,
            "order_logs": [],
        }
        logger.info(f"Starting bulk deletion of {len(orders)} orders")

        for position, order in enumerate(orders):
            try:
                outcome = await delete_one(order)
                summary["order_logs"].append(outcome.get("log"))
                if outcome.get("success"):
                    summary["successful_deletions"] += 1
                else:
                    summary["failed_deletions"] += 1
            except Exception as e:
                logger.error(f"Bulk deletion failed for order {order.get('order_number') or order.get('id')}: {e}")
                summary["failed_deletions"] += 1
            summary["processed_orders"] += 1

            if self.order_delay_seconds and position < len(orders) - 1:
                await asyncio.sleep(self.order_delay_seconds)

        summary["duration_ms"] = int((datetime.utcnow() - started).total_seconds() * 1000)
        logger.info(
            f"Bulk deletion finished: {summary['successful_deletions']} succeeded, "
            f"{summary['failed_deletions']} failed in {summary['duration_ms']}ms"
        )
        return summary

    async def _cleanup_only(self, order: Dict[str, Any]) -> Dict[str, Any]:
        return log_result(await self.delete_order_assets(order))
