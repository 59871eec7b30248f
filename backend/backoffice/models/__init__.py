from .auth import CmsUser, Role, UserRole, Permission, RolePermission, UserPermissionOverride, SessionToken
from .security import SecurityEvent
from .catalog import Category, ExcludedCategory
from .orders import (
    WorkflowStatus,
    RoleItemTransition,
    Order,
    OrderItem,
    OrderItemStatusHistory,
    OrderTracking,
    LEGACY_STATUS_CANCELLED,
    LEGACY_STATUS_REFUNDED,
    SHIPPING_METHODS,
    ORDER_SHIPPING_METHODS,
    SHIPPING_STATUS_PENDING,
    SHIPPING_STATUS_READY_TO_PAY,
    SHIPPING_STATUS_PAID,
)
from .coupons import Coupon, CouponUsage, COUPON_USAGE_STATUSES

__all__ = [
    'CmsUser', 'Role', 'UserRole', 'Permission', 'RolePermission', 'UserPermissionOverride', 'SessionToken',
    'SecurityEvent',
    'Category', 'ExcludedCategory',
    'WorkflowStatus', 'RoleItemTransition', 'Order', 'OrderItem', 'OrderItemStatusHistory', 'OrderTracking',
    'LEGACY_STATUS_CANCELLED', 'LEGACY_STATUS_REFUNDED',
    'SHIPPING_METHODS', 'ORDER_SHIPPING_METHODS',
    'SHIPPING_STATUS_PENDING', 'SHIPPING_STATUS_READY_TO_PAY', 'SHIPPING_STATUS_PAID',
    'Coupon', 'CouponUsage', 'COUPON_USAGE_STATUSES',
]
