"""
Error taxonomy for the order asset synchronization engine.

Only precondition failures (missing order, busy order) abort a run. Remote
store failures are isolated per asset item, persistence failures after a
successful remote mutation are downgraded to warnings, and malformed
configuration entries are skipped during extraction.
"""

from typing import Optional


class ErrorCode:
    """Machine-readable error codes surfaced in public result objects."""

    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    ORDER_LOCKED = "ORDER_LOCKED"
    CONFIG_NOT_FOUND = "CONFIG_NOT_FOUND"
    BACKUP_FAILED = "BACKUP_FAILED"
    SYNC_FAILED = "SYNC_FAILED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    REPAIR_FAILED = "REPAIR_FAILED"
    REPORT_FAILED = "REPORT_FAILED"
    DELETE_ORDER_FAILED = "DELETE_ORDER_FAILED"
    UPDATE_ORDER_FAILED = "UPDATE_ORDER_FAILED"


class OrderAssetError(Exception):
    """Base class for all engine errors."""

    code: str = "ORDER_ASSET_ERROR"


class NotFoundError(OrderAssetError):
    """A required record is absent. Terminal for the run."""

    code = "NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    code = ErrorCode.ORDER_NOT_FOUND

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class LinkNotFoundError(NotFoundError):
    code = "LINK_NOT_FOUND"


class ConfigurationNotFoundError(NotFoundError):
    code = ErrorCode.CONFIG_NOT_FOUND

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} has no jacket configuration")


class OrderLockedError(OrderAssetError):
    """Another run holds the order's lock."""

    code = ErrorCode.ORDER_LOCKED

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Another image run is in progress for order {order_id}")


class RemoteStoreError(OrderAssetError):
    """A single put/get/delete/list/exists call failed."""

    code = "REMOTE_STORE_ERROR"

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)


class PersistenceWarning(OrderAssetError):
    """Backup metadata write failed after the remote store was updated."""

    code = "PERSISTENCE_WARNING"


class ValidationInputError(OrderAssetError):
    """A configuration entry could not be resolved to an asset reference."""

    code = "VALIDATION_INPUT_ERROR"
