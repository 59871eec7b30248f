# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    CATALOG_PERMISSIONS,
    ORDER_PERMISSIONS,
    COUPON_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import DEFAULT_ROLES, DEFAULT_ROLE_PERMISSIONS
from .workflow import (
    DEFAULT_WORKFLOW_STATUSES,
    DEFAULT_ROLE_TRANSITIONS,
    CANCELLED_KEY,
    REFUNDED_KEY,
    TERMINAL_KEYS,
)
from .helpers import (
    get_all_permission_keys,
    validate_permission_key,
)

# Permission keys checked in code
ITEM_STATUS_CHANGE = "action.orders.item.status.change"
ITEM_CANCEL = "action.orders.item.cancel"
ITEM_REFUND = "action.orders.item.refund"

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "CATALOG_PERMISSIONS",
    "ORDER_PERMISSIONS",
    "COUPON_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "DEFAULT_ROLES",
    "DEFAULT_ROLE_PERMISSIONS",
    "DEFAULT_WORKFLOW_STATUSES",
    "DEFAULT_ROLE_TRANSITIONS",
    "CANCELLED_KEY",
    "REFUNDED_KEY",
    "TERMINAL_KEYS",
    "ITEM_STATUS_CHANGE",
    "ITEM_CANCEL",
    "ITEM_REFUND",
    "get_all_permission_keys",
    "validate_permission_key",
]
