"""
Resolution of an asset reference to the key of its copy in an order folder.

Copies are named after the reference's filename, but older copies and copies
made by hand do not always follow that convention. Resolution therefore tries
an ordered list of strategies and stops at the first hit:

1. StoredMappingStrategy - the ``backup_key`` recorded for the reference in
   the order's backup metadata (verified to still exist)
2. ExactKeyStrategy - the conventional ``<folder><filename>`` key
3. FolderScanStrategy - a folder listing matched by filename, then by
   filename without extension

Each strategy is independently usable and testable.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from order_assets.core.shared.errors import RemoteStoreError
from order_assets.core.storage.asset_store import RemoteAssetStore, StoredObject
from order_assets.core.storage.storage_path_service import (
    asset_filename,
    asset_identity,
    order_asset_key,
    order_folder,
)

logger = logging.getLogger("order_assets.sync.key_resolution")


@dataclass
class ResolutionContext:
    """Per-run state shared by strategies (one folder listing per run)."""
    order_number: str
    folder: str
    backup_images: List[Dict[str, Any]] = field(default_factory=list)
    root: Optional[str] = None
    _listing: Optional[List[StoredObject]] = None

    @classmethod
    def for_order(cls, order: Dict[str, Any], root: Optional[str] = None) -> "ResolutionContext":
        order_number = str(order.get("order_number") or order.get("id"))
        return cls(
            order_number=order_number,
            folder=order_folder(order_number, root),
            backup_images=list(order.get("backup_images") or []),
            root=root,
        )

    async def listing(self, store: RemoteAssetStore) -> List[StoredObject]:
        if self._listing is None:
            self._listing = await store.list(self.folder)
        return self._listing

    def forget(self, key: str) -> None:
        """Drop a deleted key from the cached listing."""
        if self._listing is not None:
            self._listing = [obj for obj in self._listing if obj.key != key]


class ResolutionStrategy:
    name = "base"

    async def resolve(
        self,
        reference: str,
        context: ResolutionContext,
        store: RemoteAssetStore,
    ) -> Optional[str]:
        raise NotImplementedError


class StoredMappingStrategy(ResolutionStrategy):
    """Use the copy key recorded when the asset was backed up."""

    name = "stored_mapping"

    async def resolve(self, reference, context, store):
        for entry in context.backup_images:
            if entry.get("original_key") != reference:
                continue
            backup_key = entry.get("backup_key")
            if backup_key and backup_key.startswith(context.folder) and await store.exists(backup_key):
                return backup_key
        return None


class ExactKeyStrategy(ResolutionStrategy):
    name = "exact_key"

    async def resolve(self, reference, context, store):
        key = order_asset_key(context.order_number, reference, context.root)
        if await store.exists(key):
            return key
        return None


class FolderScanStrategy(ResolutionStrategy):
    """
    Match a folder listing by filename suffix, then by extension-less identity.

    Heuristic: two different assets sharing a filename are indistinguishable
    here, so it runs last.
    """

    name = "folder_scan"

    async def resolve(self, reference, context, store):
        objects = await context.listing(store)
        filename = asset_filename(reference)
        for obj in objects:
            if obj.key.endswith(f"/{filename}"):
                return obj.key

        identity = asset_identity(reference)
        for obj in objects:
            if asset_identity(obj.key) == identity:
                return obj.key
        return None


DEFAULT_STRATEGIES: Sequence[ResolutionStrategy] = (
    StoredMappingStrategy(),
    ExactKeyStrategy(),
    FolderScanStrategy(),
)


@dataclass
class Resolution:
    reference: str
    key: str
    strategy: str


class KeyResolver:
    """Tries strategies in order; the first non-empty key wins."""

    def __init__(
        self,
        store: RemoteAssetStore,
        strategies: Optional[Sequence[ResolutionStrategy]] = None,
    ):
        self.store = store
        self.strategies = list(strategies if strategies is not None else DEFAULT_STRATEGIES)

    async def resolve(self, reference: str, context: ResolutionContext) -> Optional[Resolution]:
        """
        Resolve ``reference`` inside ``context.folder``.

        A strategy whose remote call fails is skipped. If nothing resolves and
        at least one strategy failed, the last failure is raised so the caller
        records an error instead of "not found".

        Returns:
            Resolution, or None when no copy exists
        """
        last_error: Optional[RemoteStoreError] = None
        for strategy in self.strategies:
            try:
                key = await strategy.resolve(reference, context, self.store)
            except RemoteStoreError as e:
                logger.warning(f"Strategy {strategy.name} failed for {reference}: {e}")
                last_error = e
                continue
            if key:
                logger.debug(f"Resolved {reference} -> {key} via {strategy.name}")
                return Resolution(reference=reference, key=key, strategy=strategy.name)

        if last_error is not None:
            raise last_error
        return None
