"""
Asset-set delta between two configuration snapshots.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from order_assets.core.sync.asset_keys import AssetKeyExtractor


@dataclass
class AssetChangeSet:
    """
    Delta of asset references between two snapshots.

    Lists are sorted for stable output only; treat them as sets.
    """
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    retained: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added) or bool(self.removed)

    @classmethod
    def from_sets(cls, old_refs: Set[str], new_refs: Set[str]) -> "AssetChangeSet":
        return cls(
            added=sorted(new_refs - old_refs),
            removed=sorted(old_refs - new_refs),
            retained=sorted(old_refs & new_refs),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added": list(self.added),
            "removed": list(self.removed),
            "retained": list(self.retained),
            "has_changes": self.has_changes,
        }


class AssetDiffEngine:
    """Pure diff over extracted reference sets. No I/O."""

    def __init__(self, extractor: Optional[AssetKeyExtractor] = None):
        self.extractor = extractor or AssetKeyExtractor()

    def diff(
        self,
        old_snapshot: Optional[Dict[str, Any]],
        new_snapshot: Optional[Dict[str, Any]],
    ) -> AssetChangeSet:
        # Absent snapshots extract to the empty set.
        return AssetChangeSet.from_sets(
            self.extractor.extract(old_snapshot),
            self.extractor.extract(new_snapshot),
        )
