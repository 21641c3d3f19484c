"""
Sync Reconciler.

Converges an order folder to a new configuration snapshot given the previous
one. One run:

    load order -> diff -> delete removed -> copy added -> persist metadata

Only a missing order stops a run. Delete and copy failures are recorded per
item and never stop later phases; a failed metadata write is a warning because
the folder itself is already correct. The run's OperationLog is returned with
the result.

Runs for the same order are serialized through the lock service. Delete runs
before copy so a renamed asset round-tripping through the same filename never
collides with its own stale copy.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from order_assets.config import settings
from order_assets.core.orders.order_store import OrderStore
from order_assets.core.shared.errors import ErrorCode, PersistenceWarning, RemoteStoreError
from order_assets.core.shared.lock_service import LocalLockService, order_lock_name
from order_assets.core.shared.operation_log import OperationLog
from order_assets.core.shared.pacing import PacingPolicy
from order_assets.core.storage.asset_store import RemoteAssetStore
from order_assets.core.storage.storage_path_service import order_asset_key
from order_assets.core.sync.backup_service import AssetBackupManager, backup_entry
from order_assets.core.sync.diff_service import AssetChangeSet, AssetDiffEngine
from order_assets.core.sync.key_resolution import KeyResolver, ResolutionContext

logger = logging.getLogger("order_assets.sync.reconciler")

STEP_LOAD = "load_order"
STEP_DIFF = "diff_assets"
STEP_DELETE = "delete_removed_assets"
STEP_COPY = "copy_added_assets"
STEP_PERSIST = "persist_backup_metadata"


def _item_failure(reference: str, error: BaseException) -> Dict[str, Any]:
    return {
        "success": False,
        "original_key": reference,
        "error": str(error),
        "error_type": "remote_store" if isinstance(error, RemoteStoreError) else type(error).__name__,
    }


def removed_references(delete_result: Optional[Dict[str, Any]]) -> List[str]:
    """References no longer backed by a copy of their own after a delete phase."""
    if not delete_result:
        return []
    return [r["original_key"] for r in delete_result["results"] if r["success"]]


class SyncReconciler:
    """
    Applies configuration edits to an order folder.

    Attributes:
        store: Remote asset store
        order_store: Order persistence collaborator
        backup_manager: Copy-if-absent logic shared with order backups
        diff_engine: Snapshot delta computation
        resolver: Reference -> order-folder key resolution strategies
        lock_service: Per-order serialization
        pacing: Per-item pacing and timeout policy for both phases
    """

    def __init__(
        self,
        store: RemoteAssetStore,
        order_store: OrderStore,
        backup_manager: Optional[AssetBackupManager] = None,
        diff_engine: Optional[AssetDiffEngine] = None,
        resolver: Optional[KeyResolver] = None,
        lock_service=None,
        pacing: Optional[PacingPolicy] = None,
        root: Optional[str] = None,
    ):
        self.store = store
        self.order_store = order_store
        self.root = root
        self.diff_engine = diff_engine or AssetDiffEngine()
        self.backup_manager = backup_manager or AssetBackupManager(
            store, extractor=self.diff_engine.extractor, root=root
        )
        self.resolver = resolver or KeyResolver(store)
        self.lock_service = lock_service or LocalLockService()
        self.pacing = pacing or PacingPolicy(
            delay_seconds=settings.sync_item_delay_seconds,
            max_concurrency=settings.sync_max_concurrency,
            item_timeout=settings.remote_call_timeout_seconds,
        )

    # =========================================================================
    # RUN
    # =========================================================================

    async def reconcile(
        self,
        order_id: str,
        old_snapshot: Optional[Dict[str, Any]],
        new_snapshot: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """
        Converge the order folder from ``old_snapshot`` to ``new_snapshot``.

        Returns:
            Dict with success, has_changes, change_set, log, has_warnings,
            message, and the delete/copy phase results (None when skipped)
        """
        log = OperationLog(order_id=order_id, operation="sync")

        async with self.lock_service.lock(
            order_lock_name(order_id),
            timeout=settings.order_lock_timeout_seconds,
            wait_seconds=settings.order_lock_wait_seconds,
        ) as acquired:
            if not acquired:
                log.add_error(f"Order {order_id} is locked by another image run")
                log.finalize()
                logger.warning(f"Sync skipped, order {order_id} is locked")
                return self._result(
                    log,
                    AssetChangeSet(),
                    message="Another image run is in progress for this order",
                    error_code=ErrorCode.ORDER_LOCKED,
                )
            return await self._run(log, order_id, old_snapshot, new_snapshot)

    async def reconcile_unlocked(
        self,
        order_id: str,
        old_snapshot: Optional[Dict[str, Any]],
        new_snapshot: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """Same as ``reconcile`` for a caller already holding the order lock."""
        log = OperationLog(order_id=order_id, operation="sync")
        return await self._run(log, order_id, old_snapshot, new_snapshot)

    async def _run(
        self,
        log: OperationLog,
        order_id: str,
        old_snapshot: Optional[Dict[str, Any]],
        new_snapshot: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        # 1. Load
        step = log.start_step(STEP_LOAD)
        try:
            order = await self.order_store.get_order(order_id)
        except Exception as e:
            log.fail_step(step, error=f"Failed to load order: {e}")
            log.finalize()
            return self._result(log, AssetChangeSet(), message=str(e), error_code=ErrorCode.SYNC_FAILED)
        if order is None:
            log.fail_step(step, error="Order not found")
            log.finalize()
            return self._result(
                log, AssetChangeSet(), message="Order not found", error_code=ErrorCode.ORDER_NOT_FOUND
            )

        context = ResolutionContext.for_order(order, self.root)
        log.order_number = context.order_number
        log.complete_step(step, details={"order_number": context.order_number})

        # 2. Diff
        step = log.start_step(STEP_DIFF)
        change_set = self.diff_engine.diff(old_snapshot, new_snapshot)
        log.complete_step(step, details=change_set.to_dict())

        if not change_set.has_changes:
            log.finalize()
            logger.info(f"Order {context.order_number}: no asset changes")
            return self._result(log, change_set, message="No asset changes")

        logger.info(
            f"Order {context.order_number}: syncing assets "
            f"(+{len(change_set.added)} / -{len(change_set.removed)} / ={len(change_set.retained)})"
        )

        # 3. Delete
        delete_result = None
        if change_set.removed:
            step = log.start_step(STEP_DELETE)
            protected = {
                order_asset_key(context.order_number, ref, self.root) for ref in change_set.retained
            }
            delete_result = await self.delete_phase(change_set.removed, context, protected)
            self._finish_phase(log, step, delete_result, "deleted_count")

        # 4. Copy
        copy_result = None
        if change_set.added:
            step = log.start_step(STEP_COPY)
            copy_result = await self.copy_phase(change_set.added, order_id, context.order_number)
            self._finish_phase(log, step, copy_result, "copied_count")

        # 5. Persist
        entries = [backup_entry(r) for r in copy_result["successful_copies"]] if copy_result else []
        pruned = removed_references(delete_result)
        if entries or pruned:
            step = log.start_step(STEP_PERSIST)
            details = {"entries": len(entries), "pruned": len(pruned)}
            try:
                await self.persist_backup_entries(order_id, entries, removed=pruned)
                log.complete_step(step, details=details)
            except PersistenceWarning as e:
                log.warn_step(step, warning=str(e), details=details)

        # 6. Finalize
        log.finalize()
        message = (
            "Order images synchronized"
            if log.success
            else f"Image sync finished with {log.summary.failed_steps} failed step(s)"
        )
        logger.info(
            f"Order {context.order_number}: sync {'succeeded' if log.success else 'failed'} "
            f"in {log.summary.duration_ms}ms"
        )
        return self._result(
            log,
            change_set,
            message=message,
            error_code=None if log.success else ErrorCode.SYNC_FAILED,
            delete_result=delete_result,
            copy_result=copy_result,
        )

    # =========================================================================
    # PHASES (shared with AutoRepair)
    # =========================================================================

    async def delete_phase(
        self,
        references: Iterable[str],
        context: ResolutionContext,
        protected_keys: Optional[Set[str]] = None,
    ) -> Dict[str, Any]:
        """
        Delete each reference's copy from the order folder.

        Every reference is attempted. A reference whose resolved copy is also
        the copy of a still-referenced asset (same filename) is left in place.
        """
        protected_keys = protected_keys or set()

        async def worker(reference: str) -> Dict[str, Any]:
            resolution = await self.resolver.resolve(reference, context)
            if resolution is None:
                logger.warning(f"No copy of {reference} in {context.folder}")
                return {
                    "success": False,
                    "original_key": reference,
                    "error": "Asset not found in order folder",
                }
            if resolution.key in protected_keys:
                logger.info(f"Keeping {resolution.key}: still referenced under the same filename")
                return {
                    "success": True,
                    "skipped": True,
                    "original_key": reference,
                    "backup_key": resolution.key,
                    "strategy": resolution.strategy,
                }

            result = await self.store.delete(resolution.key)
            if result.success:
                context.forget(resolution.key)
            return {
                "success": result.success,
                "original_key": reference,
                "backup_key": resolution.key,
                "strategy": resolution.strategy,
                **({} if result.success else {"error": "Delete was not acknowledged"}),
            }

        results = await self.pacing.run(list(references), worker, _item_failure)
        successes = [r for r in results if r["success"]]
        return {
            "success": len(successes) == len(results),
            "deleted_count": len([r for r in successes if not r.get("skipped")]),
            "failed_count": len(results) - len(successes),
            "total_count": len(results),
            "results": results,
        }

    async def copy_phase(
        self,
        references: Iterable[str],
        order_id: str,
        order_number: str,
    ) -> Dict[str, Any]:
        """
        Copy each reference into the order folder.

        A reference whose source no longer exists (added then removed before
        the order was saved) is recorded as a failed item.
        """

        async def worker(reference: str) -> Dict[str, Any]:
            if not await self.store.exists(reference):
                logger.warning(f"Source asset missing, cannot copy: {reference}")
                return {
                    "success": False,
                    "original_key": reference,
                    "error": "Source asset not found",
                }
            return await self.backup_manager.copy_to_order_folder(reference, order_id, order_number)

        results = await self.pacing.run(list(references), worker, _item_failure)
        successes = [r for r in results if r["success"]]
        return {
            "success": len(successes) == len(results),
            "copied_count": len(successes),
            "failed_count": len(results) - len(successes),
            "total_count": len(results),
            "results": results,
            "successful_copies": successes,
        }

    async def persist_backup_entries(
        self,
        order_id: str,
        entries: List[Dict[str, Any]],
        removed: Optional[List[str]] = None,
    ) -> None:
        """
        Record copies in the order's backup metadata and drop entries for
        references whose copies were removed.

        Raises:
            PersistenceWarning: The write failed; the folder is already correct
        """
        try:
            await self.order_store.update_order_backup_images(order_id, entries, removed=removed)
        except Exception as e:
            logger.warning(f"Backup metadata update failed for order {order_id}: {e}")
            raise PersistenceWarning(f"Backup metadata not updated: {e}") from e

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _finish_phase(log: OperationLog, step, phase_result: Dict[str, Any], count_field: str) -> None:
        details = {
            count_field: phase_result[count_field],
            "failed_count": phase_result["failed_count"],
            "total_count": phase_result["total_count"],
            "results": phase_result["results"],
        }
        if phase_result["success"]:
            log.complete_step(step, details=details)
        else:
            failed = [r["original_key"] for r in phase_result["results"] if not r["success"]]
            log.fail_step(
                step,
                error=f"{phase_result['failed_count']} of {phase_result['total_count']} items failed: "
                      f"{', '.join(failed)}",
                details=details,
            )

    @staticmethod
    def _result(
        log: OperationLog,
        change_set: AssetChangeSet,
        message: str,
        error_code: Optional[str] = None,
        delete_result: Optional[Dict[str, Any]] = None,
        copy_result: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        success = log.success and error_code is None
        result = {
            "success": success,
            "has_changes": change_set.has_changes,
            "change_set": change_set.to_dict(),
            "log": log.to_dict(),
            "has_warnings": log.has_warnings,
            "message": message,
            "delete_result": delete_result,
            "copy_result": copy_result,
        }
        if error_code:
            result["error"] = message
            result["error_code"] = error_code
        return result
