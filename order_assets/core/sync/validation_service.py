"""
Consistency validation between an order's live configuration and its folder.

"Expected" comes from the order's current configuration, "actual" from a
fresh listing of the order folder. Nothing is cached: the bucket can change
out-of-band at any time.

Expected references are full source keys (``storefront/uploads/123_logo.png``)
while listed copies only carry the filename, so both sides are compared on
their identity (filename without extension). The differences report each side
in its own form: missing entries are source references ready to copy, extra
entries are inferred references whose listed keys are in ``extra_keys``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from order_assets.core.orders.order_store import OrderStore
from order_assets.core.shared.errors import ConfigurationNotFoundError, OrderNotFoundError
from order_assets.core.storage.asset_store import RemoteAssetStore
from order_assets.core.storage.storage_path_service import (
    asset_identity,
    inferred_reference,
    order_folder,
)
from order_assets.core.sync.asset_keys import AssetKeyExtractor

logger = logging.getLogger("order_assets.sync.validation")


def live_configuration(order: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """The configuration the customer currently sees (first item's jacket config)."""
    items = order.get("items") or []
    if not items or not isinstance(items[0], dict):
        return None
    return items[0].get("jacket_config") or items[0].get("jacketConfig")


@dataclass
class ValidationResult:
    order_id: str
    order_number: str
    expected_refs: List[str] = field(default_factory=list)
    actual_refs: List[str] = field(default_factory=list)
    raw_entries: List[Dict[str, Any]] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    extra: List[str] = field(default_factory=list)
    extra_keys: List[str] = field(default_factory=list)
    matching: List[str] = field(default_factory=list)

    @property
    def is_in_sync(self) -> bool:
        return not self.missing and not self.extra

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "is_in_sync": self.is_in_sync,
            "expected": {"count": len(self.expected_refs), "refs": list(self.expected_refs)},
            "actual": {
                "count": len(self.actual_refs),
                "refs": list(self.actual_refs),
                "raw_entries": list(self.raw_entries),
            },
            "differences": {
                "missing": list(self.missing),
                "extra": list(self.extra),
                "extra_keys": list(self.extra_keys),
                "matching": list(self.matching),
            },
        }


class ConsistencyValidator:
    """Computes drift for one order, always from fresh reads."""

    def __init__(
        self,
        store: RemoteAssetStore,
        order_store: OrderStore,
        extractor: Optional[AssetKeyExtractor] = None,
        root: Optional[str] = None,
    ):
        self.store = store
        self.order_store = order_store
        self.extractor = extractor or AssetKeyExtractor()
        self.root = root

    async def validate(self, order_id: str) -> ValidationResult:
        """
        Raises:
            OrderNotFoundError: No such order
            ConfigurationNotFoundError: Order has no live configuration
            RemoteStoreError: Folder listing failed
        """
        order = await self.order_store.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return await self.validate_order(order)

    async def validate_order(self, order: Dict[str, Any]) -> ValidationResult:
        config = live_configuration(order)
        if config is None:
            raise ConfigurationNotFoundError(order["id"])

        order_number = str(order.get("order_number") or order["id"])
        folder = order_folder(order_number, self.root)

        expected = sorted(self.extractor.extract(config))
        objects = await self.store.list(folder)
        actual_by_key = {obj.key: inferred_reference(obj.key, folder) for obj in objects}

        expected_ids = {asset_identity(ref) for ref in expected}
        actual_ids = {asset_identity(ref) for ref in actual_by_key.values()}

        result = ValidationResult(
            order_id=order["id"],
            order_number=order_number,
            expected_refs=expected,
            actual_refs=sorted(actual_by_key.values()),
            raw_entries=[obj.to_dict() for obj in objects],
            missing=[ref for ref in expected if asset_identity(ref) not in actual_ids],
            matching=[ref for ref in expected if asset_identity(ref) in actual_ids],
        )
        for key, ref in sorted(actual_by_key.items()):
            if asset_identity(ref) not in expected_ids:
                result.extra.append(ref)
                result.extra_keys.append(key)

        if result.is_in_sync:
            logger.info(f"Order {order_number}: {len(expected)} assets in sync")
        else:
            logger.warning(
                f"Order {order_number}: drift detected "
                f"(missing={len(result.missing)}, extra={len(result.extra)})"
            )
        return result
