# Overview: Default roles and their permission sets.

from .helpers import get_all_permission_keys


# (role_key, name, description)
DEFAULT_ROLES = [
    ("super_admin", "Super Admin", "Full access to every page and action"),
    ("order_manager", "Order Manager", "Runs the order workflow end to end, including cancellations and refunds"),
    ("warehouse", "Warehouse", "Moves items through shipping steps and records tracking numbers"),
    ("viewer", "Viewer", "Read-only access"),
]


DEFAULT_ROLE_PERMISSIONS = {
    "super_admin": get_all_permission_keys(),
    "order_manager": [
        "page.categories.view",
        "page.orders.view",
        "action.orders.item.status.change",
        "action.orders.item.cancel",
        "action.orders.item.refund",
        "action.orders.item.edit",
        "action.orders.shipping.edit",
        "page.coupons.view",
    ],
    "warehouse": [
        "page.orders.view",
        "action.orders.item.status.change",
        "action.orders.item.edit",
    ],
    "viewer": [
        "page.categories.view",
        "page.orders.view",
        "page.coupons.view",
    ],
}
