# Overview: All permission definitions organized by category.
# Each permission is defined as: (key, name, description, category)

from .categories import PermissionCategory


# -- CATALOG --

CATALOG_PERMISSIONS = [
    (
        "page.categories.view",
        "View Categories",
        "View the category tree and category details",
        PermissionCategory.CATALOG,
    ),
    (
        "action.categories.reorder",
        "Reorder Categories",
        "Move categories between parents and change their position",
        PermissionCategory.CATALOG,
    ),
    (
        "action.categories.exclude",
        "Exclude Categories",
        "Add or remove categories from the exclusion list",
        PermissionCategory.CATALOG,
    ),
]


# -- ORDERS --

ORDER_PERMISSIONS = [
    (
        "page.orders.view",
        "View Orders",
        "View orders and their items",
        PermissionCategory.ORDERS,
    ),
    (
        "action.orders.item.status.change",
        "Change Item Status",
        "Move order items through the fulfillment workflow",
        PermissionCategory.ORDERS,
    ),
    (
        "action.orders.item.cancel",
        "Cancel Items",
        "Move order items to the cancelled status",
        PermissionCategory.ORDERS,
    ),
    (
        "action.orders.item.refund",
        "Refund Items",
        "Move order items to the refunded status",
        PermissionCategory.ORDERS,
    ),
    (
        "action.orders.item.edit",
        "Edit Items",
        "Edit tracking number, shipping method, shipping cost and quantity of items",
        PermissionCategory.ORDERS,
    ),
    (
        "action.orders.shipping.edit",
        "Edit Shipping",
        "Edit order shipping amounts and confirm shipping price",
        PermissionCategory.ORDERS,
    ),
]


# -- COUPONS --

COUPON_PERMISSIONS = [
    (
        "page.coupons.view",
        "View Coupons",
        "View coupons and usage statistics",
        PermissionCategory.COUPONS,
    ),
    (
        "action.coupons.manage",
        "Manage Coupons",
        "Create coupons",
        PermissionCategory.COUPONS,
    ),
]


# -- USERS / SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "action.users.manage",
        "Manage CMS Users",
        "Create CMS users and assign roles",
        PermissionCategory.USERS,
    ),
    (
        "action.system.admin",
        "System Administration",
        "Full system access",
        PermissionCategory.SYSTEM,
    ),
]


PERMISSION_DEFINITIONS = (
    CATALOG_PERMISSIONS
    + ORDER_PERMISSIONS
    + COUPON_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
