import copy
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest

# Configure settings for tests before importing package modules.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STORAGE_ROOT", "storefront")
os.environ.setdefault("PUBLIC_BASE_URL", "https://cdn.example.com/assets")
os.environ.setdefault("LOCK_BACKEND", "local")
os.environ.setdefault("ORDER_LOCK_WAIT_SECONDS", "0")

# No pacing delays in tests
for _name in (
    "SYNC_ITEM_DELAY_SECONDS",
    "BACKUP_ITEM_DELAY_SECONDS",
    "REPORT_ORDER_DELAY_SECONDS",
    "BULK_DELETE_ORDER_DELAY_SECONDS",
):
    os.environ.setdefault(_name, "0")

from order_assets.config import settings  # noqa: E402
from order_assets.core.orders.order_store import merge_backup_entries  # noqa: E402
from order_assets.core.shared.errors import RemoteStoreError  # noqa: E402
from order_assets.core.shared.lock_service import LocalLockService  # noqa: E402
from order_assets.core.storage.asset_store import (  # noqa: E402
    AssetPayload,
    DeleteResult,
    PutResult,
    StoredObject,
)
from order_assets.services.order_image_service import build_order_image_service  # noqa: E402

UPLOADS = "storefront/uploads"


# =========================================================================
# CONFIGURATION HELPERS
# =========================================================================


def upload_key(name: str) -> str:
    return f"{UPLOADS}/{name}"


def asset_url(key: str) -> str:
    return f"{settings.public_base_url}/{key}"


def make_config(logos: Optional[List[str]] = None, uploads: Optional[List[str]] = None) -> Dict[str, Any]:
    """Jacket configuration referencing upload keys by public URL."""
    return {
        "jacketColor": "navy",
        "logos": [
            {"id": f"logo-{i}", "image": asset_url(upload_key(name)), "position": "chest_left"}
            for i, name in enumerate(logos or [])
        ],
        "uploadedImages": [
            {"id": f"img-{i}", "url": asset_url(upload_key(name)), "name": name}
            for i, name in enumerate(uploads or [])
        ],
    }


def make_order(
    order_id: str = "order-1",
    order_number: str = "1001",
    config: Optional[Dict[str, Any]] = None,
    backup_images: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    return {
        "id": order_id,
        "order_number": order_number,
        "status": "pending",
        "customer_info": {"name": "Test Customer"},
        "items": [{"jacket_config": config or make_config(), "quantity": 1, "price": 120.0}],
        "quantity": 1,
        "total_price": 120.0,
        "backup_images": backup_images or [],
    }


def folder_key(order_number: str, filename: str) -> str:
    return f"storefront/orders/{order_number}/{filename}"


# =========================================================================
# FAKE COLLABORATORS
# =========================================================================


class FakeAssetStore:
    """In-memory RemoteAssetStore recording every call."""

    def __init__(self):
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.failures: Dict[str, set] = {"put": set(), "get": set(), "delete": set(), "exists": set()}
        self.list_error: Optional[Exception] = None

    def add(self, key: str, data: bytes = b"image-bytes", content_type: str = "image/png") -> None:
        self.objects[key] = {
            "data": data,
            "content_type": content_type,
            "metadata": {},
            "last_modified": datetime(2024, 1, 1),
        }

    def fail(self, operation: str, key: str) -> None:
        self.failures[operation].add(key)

    def _check(self, operation: str, key: str) -> None:
        self.calls.append((operation, key))
        if key in self.failures[operation]:
            raise RemoteStoreError(f"{operation} failed for {key}", key=key)

    @property
    def mutation_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in ("put", "delete")]

    def public_url(self, key: str) -> str:
        return f"{settings.public_base_url}/{key}"

    async def put(self, key, data, content_type, metadata=None):
        self._check("put", key)
        self.objects[key] = {
            "data": data,
            "content_type": content_type,
            "metadata": dict(metadata or {}),
            "last_modified": datetime(2024, 1, 2),
        }
        return PutResult(key=key, url=self.public_url(key), size=len(data))

    async def get(self, key):
        self._check("get", key)
        if key not in self.objects:
            raise RemoteStoreError(f"Failed to download {key}: NoSuchKey", key=key)
        obj = self.objects[key]
        return AssetPayload(data=obj["data"], content_type=obj["content_type"], metadata=obj["metadata"])

    async def delete(self, key):
        self._check("delete", key)
        self.objects.pop(key, None)
        return DeleteResult(success=True, key=key)

    async def exists(self, key):
        self._check("exists", key)
        return key in self.objects

    async def list(self, prefix):
        self.calls.append(("list", prefix))
        if self.list_error:
            raise self.list_error
        return [
            StoredObject(
                key=key,
                url=self.public_url(key),
                size=len(obj["data"]),
                content_type=obj["content_type"],
                last_modified=obj["last_modified"],
            )
            for key, obj in sorted(self.objects.items())
            if key.startswith(prefix)
        ]


class FakeOrderStore:
    """In-memory OrderStore."""

    def __init__(self, orders: Optional[List[Dict[str, Any]]] = None):
        self.orders: Dict[str, Dict[str, Any]] = {o["id"]: copy.deepcopy(o) for o in orders or []}
        self.backup_updates: List[tuple] = []
        self.backup_removals: List[tuple] = []
        self.fail_backup_update = False
        self.fail_get: set = set()

    def add(self, order: Dict[str, Any]) -> None:
        self.orders[order["id"]] = copy.deepcopy(order)

    async def get_orders(self):
        return [copy.deepcopy(o) for o in self.orders.values()]

    async def get_order(self, order_id):
        if order_id in self.fail_get:
            raise RuntimeError(f"database unavailable for {order_id}")
        order = self.orders.get(order_id)
        return copy.deepcopy(order) if order else None

    async def update_order(self, order_id, fields, updated_by=None):
        order = self.orders[order_id]
        order.update(copy.deepcopy(fields))
        order["updated_by"] = updated_by
        return copy.deepcopy(order)

    async def update_order_backup_images(self, order_id, backup_entries, removed=None):
        if self.fail_backup_update:
            raise RuntimeError("database write failed")
        self.backup_updates.append((order_id, copy.deepcopy(backup_entries)))
        self.backup_removals.append((order_id, list(removed or [])))
        order = self.orders[order_id]
        order["backup_images"] = merge_backup_entries(order.get("backup_images"), backup_entries, removed=removed)
        return copy.deepcopy(order)

    async def delete_order(self, order_id):
        return self.orders.pop(order_id, None) is not None


class FakeLinkStore:
    def __init__(self):
        self.links: Dict[str, int] = {}
        self.fail = False

    async def delete_order_links(self, order_id):
        if self.fail:
            raise RuntimeError("link table locked")
        return self.links.pop(order_id, 0)


# =========================================================================
# FIXTURES
# =========================================================================


@pytest.fixture
def asset_store():
    return FakeAssetStore()


@pytest.fixture
def order_store():
    return FakeOrderStore()


@pytest.fixture
def link_store():
    return FakeLinkStore()


@pytest.fixture
def lock_service():
    return LocalLockService()


@pytest.fixture
def service(asset_store, order_store, link_store, lock_service):
    return build_order_image_service(asset_store, order_store, link_store, lock_service=lock_service)
