"""
Asset reference extraction from jacket configurations.

A jacket configuration is the customer-editable document behind an order
item. Image assets appear in two lists:

    {
        "logos": [{"image": "<url>", "key": "<optional storage key>", ...}],
        "uploadedImages": [{"url": "<url>", "publicId": "<optional key>", ...}]
    }

Each entry resolves to an asset reference (a storage key). URLs served from
the public bucket URL map to their key; URLs from the previous image host are
converted with a best-effort transform; anything else is skipped with a
warning. Raw key fields are taken as-is.

The result is a set: callers must not rely on extraction order.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Set
from urllib.parse import unquote, urlsplit

from order_assets.config import settings
from order_assets.core.shared.errors import ValidationInputError
from order_assets.core.storage.storage_path_service import strip_extension

logger = logging.getLogger("order_assets.sync.asset_keys")

LOGO_LISTS = ("logos",)
UPLOAD_LISTS = ("uploadedImages", "uploaded_images")
URL_FIELDS = ("image", "url")
KEY_FIELDS = ("publicId", "public_id", "key")

# Legacy host path segments that are not part of the asset id:
# transformation chains ("w_200,h_200,c_fill") and version markers ("v1699999999").
_TRANSFORMATION_SEGMENT = re.compile(r"^[a-z]{1,3}_[^/]+$")
_VERSION_SEGMENT = re.compile(r"^v\d+$")


class AssetKeyExtractor:
    """
    Resolves every asset reference in a configuration snapshot.

    Attributes:
        public_base_url: Public URL prefix of the bucket ("<base>/<key>")
        legacy_url_marker: Path marker of legacy image-host URLs
    """

    def __init__(
        self,
        public_base_url: Optional[str] = None,
        legacy_url_marker: Optional[str] = None,
    ):
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        self.legacy_url_marker = legacy_url_marker or settings.legacy_url_marker

    def extract(self, snapshot: Optional[Dict[str, Any]]) -> Set[str]:
        """
        Collect the de-duplicated reference set of one configuration.

        Never raises: a missing or malformed field only skips that entry.
        """
        if not isinstance(snapshot, dict):
            return set()

        references: Set[str] = set()
        for entry in self._entries(snapshot, LOGO_LISTS + UPLOAD_LISTS):
            try:
                references.update(self._entry_references(entry))
            except ValidationInputError as e:
                logger.warning(f"Skipping configuration entry: {e}")
        return references

    def extract_from_order(self, order: Dict[str, Any]) -> Set[str]:
        """Union of references across every item of an order."""
        references: Set[str] = set()
        for item in order.get("items") or []:
            if isinstance(item, dict):
                references |= self.extract(item.get("jacket_config") or item.get("jacketConfig"))
        return references

    # =========================================================================
    # URL NORMALIZATION
    # =========================================================================

    def url_to_reference(self, url: str) -> Optional[str]:
        """
        Normalize an asset URL to its storage reference.

        Returns:
            Reference string, or None when the URL is not a recognised asset URL
        """
        if not isinstance(url, str) or not url.strip():
            return None
        url = url.strip()

        prefix = f"{self.public_base_url}/"
        if url.startswith(prefix):
            key = url[len(prefix):].split("?", 1)[0].split("#", 1)[0]
            return unquote(key).strip("/") or None

        if self.legacy_url_marker and self.legacy_url_marker in url:
            return self._legacy_reference(url)

        return None

    def _legacy_reference(self, url: str) -> Optional[str]:
        """
        Best-effort id of an asset migrated from the previous image host.

        ``https://host/<cloud>/image/upload/w_200,c_fill/v1699/store/logos/abc.png``
        becomes ``store/logos/abc``.
        """
        path = unquote(urlsplit(url).path)
        _, _, tail = path.partition(self.legacy_url_marker)
        segments = [s for s in tail.split("/") if s]

        while segments and (_TRANSFORMATION_SEGMENT.match(segments[0]) or _VERSION_SEGMENT.match(segments[0])):
            segments.pop(0)
        if not segments:
            return None

        segments[-1] = strip_extension(segments[-1])
        return "/".join(segments) or None

    # =========================================================================
    # ENTRY HANDLING
    # =========================================================================

    @staticmethod
    def _entries(snapshot: Dict[str, Any], list_names: Iterable[str]) -> List[Any]:
        entries: List[Any] = []
        for name in list_names:
            value = snapshot.get(name)
            if isinstance(value, list):
                entries.extend(value)
        return entries

    def _entry_references(self, entry: Any) -> Set[str]:
        if not isinstance(entry, dict):
            raise ValidationInputError(f"entry is {type(entry).__name__}, expected object")

        found: Set[str] = set()
        for field_name in URL_FIELDS:
            value = entry.get(field_name)
            if not value:
                continue
            reference = self.url_to_reference(value) if isinstance(value, str) else None
            if reference:
                found.add(reference)
            else:
                logger.warning(f"Unrecognised asset URL in '{field_name}': {str(value)[:120]}")

        for field_name in KEY_FIELDS:
            value = entry.get(field_name)
            if isinstance(value, str) and value.strip():
                found.add(value.strip())

        return found
