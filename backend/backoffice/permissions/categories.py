# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    CATALOG = "CATALOG"
    ORDERS = "ORDERS"
    COUPONS = "COUPONS"
    USERS = "USERS"
    SYSTEM = "SYSTEM"
