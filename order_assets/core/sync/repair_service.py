"""
Auto-repair of order folder drift.

Validates the order, then issues the minimal delete / copy operations that
converge the folder to the live configuration, reusing the reconciler's
phases. Partial repairs are reported per side (extra deletions, missing
copies) rather than collapsed into one flag.
"""

import logging
from typing import Any, Dict

from order_assets.config import settings
from order_assets.core.orders.order_store import OrderStore
from order_assets.core.shared.errors import ErrorCode, OrderNotFoundError, PersistenceWarning
from order_assets.core.shared.lock_service import order_lock_name
from order_assets.core.sync.backup_service import backup_entry
from order_assets.core.sync.key_resolution import ResolutionContext
from order_assets.core.sync.reconciler import SyncReconciler
from order_assets.core.sync.validation_service import ConsistencyValidator

logger = logging.getLogger("order_assets.sync.repair")


class AutoRepair:
    def __init__(
        self,
        validator: ConsistencyValidator,
        reconciler: SyncReconciler,
        order_store: OrderStore,
    ):
        self.validator = validator
        self.reconciler = reconciler
        self.order_store = order_store

    async def repair(self, order_id: str) -> Dict[str, Any]:
        """
        Converge the order folder to the order's live configuration.

        Raises:
            OrderNotFoundError / ConfigurationNotFoundError: Nothing to repair against
        """
        async with self.reconciler.lock_service.lock(
            order_lock_name(order_id),
            timeout=settings.order_lock_timeout_seconds,
            wait_seconds=settings.order_lock_wait_seconds,
        ) as acquired:
            if not acquired:
                logger.warning(f"Repair skipped, order {order_id} is locked")
                return {
                    "success": False,
                    "was_fixed": False,
                    "validation_result": None,
                    "fix_results": None,
                    "error": "Order is locked",
                    "error_code": ErrorCode.ORDER_LOCKED,
                    "message": "Another image run is in progress for this order",
                }
            return await self._repair(order_id)

    async def _repair(self, order_id: str) -> Dict[str, Any]:
        order = await self.order_store.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        validation = await self.validator.validate_order(order)
        if validation.is_in_sync:
            return {
                "success": True,
                "was_fixed": False,
                "validation_result": validation.to_dict(),
                "fix_results": None,
                "message": "Order images already in sync",
            }

        fix_results: Dict[str, Any] = {
            "deleted_extra": {"success": True, "count": 0, "details": None},
            "added_missing": {"success": True, "count": 0, "details": None},
            "persist_warning": None,
        }

        entries = []
        pruned = []
        if validation.extra_keys:
            logger.info(f"Order {validation.order_number}: deleting {len(validation.extra_keys)} extra assets")
            context = ResolutionContext.for_order(order, self.reconciler.root)
            delete_result = await self.reconciler.delete_phase(validation.extra_keys, context)
            fix_results["deleted_extra"] = {
                "success": delete_result["success"],
                "count": delete_result["deleted_count"],
                "details": delete_result,
            }
            deleted_keys = {
                r["backup_key"] for r in delete_result["results"] if r["success"] and r.get("backup_key")
            }
            pruned = [
                entry["original_key"]
                for entry in order.get("backup_images") or []
                if entry.get("backup_key") in deleted_keys and entry.get("original_key")
            ]

        if validation.missing:
            logger.info(f"Order {validation.order_number}: copying {len(validation.missing)} missing assets")
            copy_result = await self.reconciler.copy_phase(
                validation.missing, order_id, validation.order_number
            )
            fix_results["added_missing"] = {
                "success": copy_result["success"],
                "count": copy_result["copied_count"],
                "details": copy_result,
            }
            entries = [backup_entry(r) for r in copy_result["successful_copies"]]

        if entries or pruned:
            try:
                await self.reconciler.persist_backup_entries(order_id, entries, removed=pruned)
            except PersistenceWarning as e:
                fix_results["persist_warning"] = str(e)

        success = fix_results["deleted_extra"]["success"] and fix_results["added_missing"]["success"]
        deleted = fix_results["deleted_extra"]["count"]
        added = fix_results["added_missing"]["count"]
        logger.info(
            f"Order {validation.order_number}: repair {'succeeded' if success else 'partially failed'} "
            f"(deleted={deleted}, added={added})"
        )

        result = {
            "success": success,
            "was_fixed": True,
            "validation_result": validation.to_dict(),
            "fix_results": fix_results,
            "message": (
                f"Repaired order images: deleted {deleted}, added {added}"
                if success
                else "Some drift could not be repaired"
            ),
        }
        if not success:
            result["error"] = result["message"]
            result["error_code"] = ErrorCode.REPAIR_FAILED
        return result
