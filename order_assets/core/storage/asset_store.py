"""
Remote asset store capability.

The engine talks to object storage only through this interface, so tests and
alternative backends can supply their own implementation. All keys live in a
single bucket / namespace and are hierarchical (``<root>/orders/<order>/<file>``).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol, runtime_checkable


@dataclass
class StoredObject:
    """Information about an object returned by a listing."""
    key: str
    url: str
    size: int
    content_type: Optional[str] = None
    last_modified: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            "key": self.key,
            "url": self.url,
            "size": self.size,
            "content_type": self.content_type,
            "last_modified": self.last_modified.isoformat() if self.last_modified else None,
        }


@dataclass
class PutResult:
    key: str
    url: str
    size: int


@dataclass
class DeleteResult:
    success: bool
    key: str


@dataclass
class AssetPayload:
    """Downloaded object content."""
    data: bytes
    content_type: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@runtime_checkable
class RemoteAssetStore(Protocol):
    """Key-based put/get/delete/exists/list against one bucket."""

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PutResult:
        ...

    async def get(self, key: str) -> AssetPayload:
        ...

    async def delete(self, key: str) -> DeleteResult:
        ...

    async def exists(self, key: str) -> bool:
        ...

    async def list(self, prefix: str) -> List[StoredObject]:
        ...

    def public_url(self, key: str) -> str:
        ...
