"""
Storage Path Service.

Key conventions for order asset copies in the bucket.

Storage Structure:
    {storage_root}/
    ├── uploads/                         # Customer uploads and logos (sources)
    │   └── {timestamp}_{random}_{name}
    │
    └── orders/                          # Durable per-order copies
        └── {order_number}/
            └── {source filename}

An order's copy of an asset is named after the last path segment of the
asset's reference, so two references that share a filename collide inside one
order folder. The order's backup metadata records the exact copy key for each
reference so later runs do not depend on filename inference alone.
"""

import logging
import mimetypes
import posixpath
from typing import Optional

from order_assets.config import settings

logger = logging.getLogger("order_assets.storage_path")


def order_folder(order_ref: str, root: Optional[str] = None) -> str:
    """
    Folder prefix holding one order's asset copies.

    Args:
        order_ref: Order folder identifier (the order number)
        root: Storage root override (defaults to settings.storage_root)

    Returns:
        Prefix like ``storefront/orders/1001/`` (always slash-terminated)
    """
    root = (root or settings.storage_root).strip("/")
    return f"{root}/orders/{str(order_ref).strip('/')}/"


def asset_filename(reference: str) -> str:
    """Last path segment of a reference (``a/b/logo.png`` -> ``logo.png``)."""
    return reference.rstrip("/").split("/")[-1]


def strip_extension(filename: str) -> str:
    """Drop the final extension; dot-files and extension-less names are kept."""
    stem, ext = posixpath.splitext(filename)
    return stem if stem else filename


def asset_identity(reference: str) -> str:
    """
    Comparable identity of an asset reference.

    Expected references (full source keys) and listed order-folder objects are
    compared on this value: the filename without its extension.
    """
    return strip_extension(asset_filename(reference))


def order_asset_key(order_ref: str, reference: str, root: Optional[str] = None) -> str:
    """Destination key of ``reference``'s copy inside the order folder."""
    return f"{order_folder(order_ref, root)}{asset_filename(reference)}"


def inferred_reference(key: str, folder: str) -> str:
    """
    Map a listed order-folder key back to an inferred original reference.

    Strips the folder prefix and the extension. Nested keys keep their
    sub-path under the folder.
    """
    relative = key[len(folder):] if key.startswith(folder) else asset_filename(key)
    head, _, tail = relative.rpartition("/")
    stem = strip_extension(tail)
    return f"{head}/{stem}" if head else stem


def guess_content_type(reference: str, default: Optional[str] = None) -> str:
    content_type, _ = mimetypes.guess_type(asset_filename(reference))
    return content_type or default or settings.default_content_type
