"""
Order Image Service.

Public entry point for order image handling, used by API routes, Celery tasks
and commands. Every method returns a plain result dict and never raises:
failures come back as ``{"success": False, "message", "error", "error_code"}``.

Usage:
    from order_assets.services.order_image_service import build_order_image_service

    service = build_order_image_service(store, order_store, link_store)
    result = await service.sync_order_images(order_id, old_config, new_config)
    if result["has_warnings"]:
        ...

Collaborators are passed in explicitly; ``order_assets.dependencies`` wires
the process-wide MinIO / SQL implementations.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from order_assets.config import settings
from order_assets.core.orders.link_store import EphemeralLinkStore
from order_assets.core.orders.order_store import OrderStore
from order_assets.core.shared.errors import ErrorCode, OrderLockedError, OrderNotFoundError
from order_assets.core.shared.lock_service import LocalLockService, order_lock_name
from order_assets.core.shared.pacing import PacingPolicy
from order_assets.core.storage.asset_store import RemoteAssetStore
from order_assets.core.storage.storage_path_service import order_folder
from order_assets.core.sync.asset_keys import AssetKeyExtractor
from order_assets.core.sync.backup_service import AssetBackupManager, backup_entry
from order_assets.core.sync.cleanup_service import CleanupOrchestrator, log_result
from order_assets.core.sync.diff_service import AssetDiffEngine
from order_assets.core.sync.key_resolution import KeyResolver
from order_assets.core.sync.reconciler import SyncReconciler
from order_assets.core.sync.repair_service import AutoRepair
from order_assets.core.sync.report_service import FleetReportGenerator
from order_assets.core.sync.validation_service import ConsistencyValidator, live_configuration

logger = logging.getLogger("order_assets.order_image_service")

STEP_DELETE_RECORD = "delete_order_record"

_PRECONDITION_CODES = {ErrorCode.ORDER_NOT_FOUND, ErrorCode.CONFIG_NOT_FOUND, ErrorCode.ORDER_LOCKED}


def failure(message: str, error: Exception, default_code: str) -> Dict[str, Any]:
    """Fold an exception into the public failure shape."""
    code = getattr(error, "code", None)
    if code not in _PRECONDITION_CODES:
        code = default_code
    return {
        "success": False,
        "message": f"{message}: {error}",
        "error": str(error),
        "error_code": code,
    }


class OrderImageService:
    """
    Facade over the image sync engine.

    Attributes:
        store: Remote asset store
        order_store: Order persistence collaborator
        link_store: Temporary link collaborator
    """

    def __init__(
        self,
        store: RemoteAssetStore,
        order_store: OrderStore,
        link_store: EphemeralLinkStore,
        backup_manager: AssetBackupManager,
        reconciler: SyncReconciler,
        validator: ConsistencyValidator,
        repairer: AutoRepair,
        cleanup: CleanupOrchestrator,
        report_generator: FleetReportGenerator,
        root: Optional[str] = None,
    ):
        self.store = store
        self.order_store = order_store
        self.link_store = link_store
        self.backup_manager = backup_manager
        self.reconciler = reconciler
        self.validator = validator
        self.repairer = repairer
        self.cleanup = cleanup
        self.report_generator = report_generator
        self.root = root

    # =========================================================================
    # BACKUP / SYNC
    # =========================================================================

    async def backup_order_images(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """
        Copy every asset of a new order into its folder and record the copies.

        Metadata is recorded for successful items only; a failed metadata write
        is reported as a warning.
        """
        try:
            result = await self.backup_manager.backup_order(order)
        except Exception as e:
            logger.error(f"Backup failed for order {order.get('id')}: {e}")
            return failure("Failed to back up order images", e, ErrorCode.BACKUP_FAILED)

        warning = None
        successful = result["details"]["successful"]
        if successful:
            try:
                await self.order_store.update_order_backup_images(
                    order["id"], [backup_entry(r) for r in successful]
                )
            except Exception as e:
                logger.warning(f"Backup metadata update failed for order {order['id']}: {e}")
                warning = f"Backup metadata not updated: {e}"

        return {
            "success": result["failed_count"] == 0,
            **result,
            "has_warnings": warning is not None,
            "warning": warning,
            "message": (
                f"Backed up {result['copied_count']} new images "
                f"({result['skipped_count']} already present, {result['failed_count']} failed)"
            ),
        }

    async def sync_order_images(
        self,
        order_id: str,
        old_config: Optional[Dict[str, Any]],
        new_config: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        try:
            return await self.reconciler.reconcile(order_id, old_config, new_config)
        except Exception as e:
            logger.error(f"Image sync failed for order {order_id}: {e}")
            return {
                **failure("Failed to sync order images", e, ErrorCode.SYNC_FAILED),
                "has_changes": False,
                "has_warnings": False,
            }

    async def update_order_configuration(
        self,
        order_id: str,
        new_config: Dict[str, Any],
        updated_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Replace the order's live configuration.

        Load, image sync and write all run under the order lock, so concurrent
        edits of one order each diff against the configuration the previous
        edit stored. The image sync outcome is advisory (``image_sync``) and
        never blocks the configuration update.
        """
        try:
            async with self.reconciler.lock_service.lock(
                order_lock_name(order_id),
                timeout=settings.order_lock_timeout_seconds,
                wait_seconds=settings.order_lock_wait_seconds,
            ) as acquired:
                if not acquired:
                    raise OrderLockedError(order_id)
                order = await self.order_store.get_order(order_id)
                if order is None:
                    raise OrderNotFoundError(order_id)

                image_sync = await self._sync_locked(order_id, live_configuration(order), new_config)

                items = copy.deepcopy(order.get("items") or [])
                if items and isinstance(items[0], dict):
                    items[0]["jacket_config"] = new_config
                else:
                    items = [{"jacket_config": new_config, "quantity": order.get("quantity", 1)}]
                updated = await self.order_store.update_order(
                    order_id, {"items": items}, updated_by=updated_by
                )
        except Exception as e:
            logger.error(f"Configuration update failed for order {order_id}: {e}")
            return failure("Failed to update order", e, ErrorCode.UPDATE_ORDER_FAILED)

        return {
            "success": True,
            "order": updated,
            "image_sync": {
                "success": image_sync.get("success", False),
                "has_changes": image_sync.get("has_changes", False),
                "has_warnings": image_sync.get("has_warnings", False),
                "message": image_sync.get("message"),
                "change_set": image_sync.get("change_set"),
            },
            "message": "Order updated",
        }

    async def _sync_locked(
        self,
        order_id: str,
        old_config: Optional[Dict[str, Any]],
        new_config: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        try:
            return await self.reconciler.reconcile_unlocked(order_id, old_config, new_config)
        except Exception as e:
            logger.error(f"Image sync failed for order {order_id}: {e}")
            return {
                **failure("Failed to sync order images", e, ErrorCode.SYNC_FAILED),
                "has_changes": False,
                "has_warnings": False,
            }

    # =========================================================================
    # VALIDATION / REPAIR / REPORT
    # =========================================================================

    async def validate_order_folder_sync(self, order_id: str) -> Dict[str, Any]:
        try:
            validation = await self.validator.validate(order_id)
        except Exception as e:
            logger.error(f"Validation failed for order {order_id}: {e}")
            return failure("Failed to validate order images", e, ErrorCode.VALIDATION_FAILED)

        return {
            "success": True,
            **validation.to_dict(),
            "message": (
                "Order images are in sync"
                if validation.is_in_sync
                else f"Drift: {len(validation.missing)} missing, {len(validation.extra)} extra"
            ),
        }

    async def auto_fix_order_image_sync(self, order_id: str) -> Dict[str, Any]:
        try:
            return await self.repairer.repair(order_id)
        except Exception as e:
            logger.error(f"Auto-fix failed for order {order_id}: {e}")
            return {**failure("Failed to repair order images", e, ErrorCode.REPAIR_FAILED), "was_fixed": False}

    async def generate_order_images_report(self) -> Dict[str, Any]:
        try:
            report = await self.report_generator.generate_report()
        except Exception as e:
            logger.error(f"Image report failed: {e}")
            return failure("Failed to generate image report", e, ErrorCode.REPORT_FAILED)

        return {
            "success": True,
            "report": report,
            "message": (
                f"Checked {report['checked_orders']} orders: "
                f"{report['synced_orders']} in sync, {report['unsynced_orders']} drifted"
            ),
        }

    # =========================================================================
    # DELETION
    # =========================================================================

    async def perform_complete_order_deletion(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """
        Delete an order's assets and links, then the order record itself.

        The record is removed last and only after cleanup was attempted, so a
        crash mid-cleanup leaves it in place for a retry.
        """
        try:
            log = await self.cleanup.delete_order_assets(order, seal=False)

            step = log.start_step(STEP_DELETE_RECORD)
            try:
                deleted = await self.order_store.delete_order(order["id"])
                if deleted:
                    log.complete_step(step, details={"order_id": order["id"]})
                else:
                    log.fail_step(step, error="Order record not found")
            except Exception as e:
                log.fail_step(step, error=str(e))
            log.finalize()
        except Exception as e:
            logger.error(f"Order deletion failed for {order.get('id')}: {e}")
            return failure("Failed to delete order", e, ErrorCode.DELETE_ORDER_FAILED)

        result = log_result(log)
        result["message"] = (
            "Order deleted"
            if log.success
            else f"Order deletion finished with {log.summary.failed_steps} failed step(s)"
        )
        if not log.success:
            result["error"] = "; ".join(log.summary.errors)
            result["error_code"] = ErrorCode.DELETE_ORDER_FAILED
        return result

    async def perform_bulk_order_deletion(self, orders: List[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            summary = await self.cleanup.delete_many(orders, delete_one=self.perform_complete_order_deletion)
        except Exception as e:
            logger.error(f"Bulk deletion failed: {e}")
            return failure("Failed to delete orders", e, ErrorCode.DELETE_ORDER_FAILED)
        return {"success": summary["failed_deletions"] == 0, **summary}

    # =========================================================================
    # INFO
    # =========================================================================

    async def get_order_images_info(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """List the copies currently held in the order folder."""
        order_number = str(order.get("order_number") or order.get("id"))
        folder = order_folder(order_number, self.root)
        try:
            objects = await self.store.list(folder)
        except Exception as e:
            logger.error(f"Listing failed for order folder {folder}: {e}")
            return failure("Failed to list order images", e, ErrorCode.VALIDATION_FAILED)

        return {
            "success": True,
            "order_number": order_number,
            "folder": folder,
            "images": [obj.to_dict() for obj in objects],
            "total_count": len(objects),
            "total_size": sum(obj.size or 0 for obj in objects),
            "has_backup_images": self.has_backup_images(order),
        }

    @staticmethod
    def has_backup_images(order: Dict[str, Any]) -> bool:
        return bool(order.get("backup_images"))


def build_order_image_service(
    store: RemoteAssetStore,
    order_store: OrderStore,
    link_store: EphemeralLinkStore,
    lock_service=None,
    extractor: Optional[AssetKeyExtractor] = None,
    root: Optional[str] = None,
) -> OrderImageService:
    """Assemble the engine from its collaborators and settings-driven policies."""
    extractor = extractor or AssetKeyExtractor()
    item_pacing = PacingPolicy(
        delay_seconds=settings.sync_item_delay_seconds,
        max_concurrency=settings.sync_max_concurrency,
        item_timeout=settings.remote_call_timeout_seconds,
    )
    backup_manager = AssetBackupManager(
        store,
        extractor=extractor,
        pacing=PacingPolicy(
            delay_seconds=settings.backup_item_delay_seconds,
            max_concurrency=settings.sync_max_concurrency,
            item_timeout=settings.remote_call_timeout_seconds,
        ),
        root=root,
    )
    reconciler = SyncReconciler(
        store,
        order_store,
        backup_manager=backup_manager,
        diff_engine=AssetDiffEngine(extractor),
        resolver=KeyResolver(store),
        lock_service=lock_service or LocalLockService(),
        pacing=item_pacing,
        root=root,
    )
    validator = ConsistencyValidator(store, order_store, extractor=extractor, root=root)
    return OrderImageService(
        store=store,
        order_store=order_store,
        link_store=link_store,
        backup_manager=backup_manager,
        reconciler=reconciler,
        validator=validator,
        repairer=AutoRepair(validator, reconciler, order_store),
        cleanup=CleanupOrchestrator(store, link_store, pacing=item_pacing, root=root),
        report_generator=FleetReportGenerator(validator, order_store),
        root=root,
    )
