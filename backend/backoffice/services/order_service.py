# Overview: Service-layer operations for orders; item field edits, shipping aggregates and shipping estimates.

"""
Order aggregates

Order-level fields derived from items:
- shipping_amount = sum of item shipping
- shipping_method = "both" / "air" / "sea" from the active items
- total = subtotal + shipping_amount + tax_amount - discount_amount

update_item_fields() is a raw field editor for admins: it does NOT go through
the role transition graph, but a workflow key edit still runs the same
order cascade as a regular transition.
"""

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import (
    Order,
    OrderItem,
    WorkflowStatus,
    SHIPPING_METHODS,
    ORDER_SHIPPING_METHODS,
    SHIPPING_STATUS_PENDING,
    SHIPPING_STATUS_READY_TO_PAY,
    SHIPPING_STATUS_PAID,
    LEGACY_STATUS_CANCELLED,
    LEGACY_STATUS_REFUNDED,
)
from ..permissions import CANCELLED_KEY, REFUNDED_KEY
from ..time_utils import utcnow
from ..validation import ValidationError, parse_int, parse_money
from .workflow_service import derive_order_status_from_items


ITEM_FIELDS = ("workflow_status_key", "tracking_number", "shipping_method", "shipping", "quantity")


def _money_or_zero(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


class OrderNotFoundError(ValueError):
    pass


class OrderItemMismatchError(ValueError):
    """Item does not exist or belongs to another order."""


class ShippingLockedError(ValueError):
    """Shipping already paid by the customer; it can no longer be edited."""


def _get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")
    return order


def get_order(order_id: int) -> dict:
    order = _get_order(order_id)
    data = order.to_dict()
    data["items"] = [item.to_dict() for item in order.items]
    return data


def _is_cancelled(item) -> bool:
    # Legacy status only decides for items outside the workflow
    status = item.workflow_status
    if status is not None:
        return status.status_key == CANCELLED_KEY
    return item.status == LEGACY_STATUS_CANCELLED


def derive_shipping_method(items) -> str:
    """'both' if active items use air and sea, else the one present, default 'air'."""
    methods = {
        item.shipping_method
        for item in items
        if not _is_cancelled(item) and item.shipping_method in SHIPPING_METHODS
    }
    if len(methods) > 1:
        return "both"
    if methods:
        return methods.pop()
    return "air"


def recalc_order_shipping(order: Order) -> None:
    order.shipping_amount = sum((_money_or_zero(item.shipping) for item in order.items), Decimal("0"))
    order.recompute_total()


def update_item_fields(order_id: int, item_id: int, changes: dict, user_id: int | None = None) -> dict:
    """
    Edit item fields directly and recompute the order aggregates they feed.

    Returns {item, updated_fields, order_status_updated, order_shipping_amount,
    order_shipping_method, order_total}.
    """
    if not isinstance(changes, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = [k for k in changes if k not in ITEM_FIELDS]
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")
    if not changes:
        raise ValidationError("No fields to update")

    order = _get_order(order_id)
    item = db.session.get(OrderItem, item_id)
    if item is None or item.order_id != order.id:
        raise OrderItemMismatchError(f"Item {item_id} not found in order {order_id}")

    # Validate everything before touching the item
    status = None
    if "workflow_status_key" in changes:
        key = changes["workflow_status_key"]
        status = db.session.query(WorkflowStatus).filter_by(status_key=key, is_active=True).first() if isinstance(key, str) and key else None
        if status is None:
            raise ValidationError(f"Unknown workflow status: {key}")
    if "shipping_method" in changes and changes["shipping_method"] not in SHIPPING_METHODS:
        raise ValidationError(f"shipping_method must be one of: {', '.join(SHIPPING_METHODS)}")
    shipping = parse_money(changes["shipping"], "shipping") if "shipping" in changes else None
    quantity = parse_int(changes["quantity"], "quantity", minimum=1) if "quantity" in changes else None

    updated = []
    workflow_changed = False

    if status is not None:
        key = status.status_key
        if status.id != item.workflow_status_id:
            item.workflow_status = status
            item.workflow_status_updated_at = utcnow()
            item.workflow_status_updated_by = user_id
            if key == CANCELLED_KEY:
                item.status = LEGACY_STATUS_CANCELLED
            elif key == REFUNDED_KEY:
                item.status = LEGACY_STATUS_REFUNDED
            workflow_changed = True
        updated.append("workflow_status_key")

    if "tracking_number" in changes:
        value = changes["tracking_number"]
        item.tracking_number = (str(value).strip() or None) if value is not None else None
        updated.append("tracking_number")

    if "shipping_method" in changes:
        item.shipping_method = changes["shipping_method"]
        updated.append("shipping_method")

    if "shipping" in changes:
        item.shipping = shipping
        updated.append("shipping")

    if "quantity" in changes:
        item.quantity = quantity
        updated.append("quantity")

    order_status_updated = False
    try:
        db.session.flush()
        if "shipping" in changes or "quantity" in changes:
            recalc_order_shipping(order)
        if "shipping_method" in changes:
            order.shipping_method = derive_shipping_method(order.items)
        if workflow_changed:
            order_status_updated = derive_order_status_from_items(order.id) is not None
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return {
        "item": item.to_dict(),
        "updated_fields": updated,
        "order_status_updated": order_status_updated,
        "order_shipping_amount": float(order.shipping_amount or 0),
        "order_shipping_method": order.shipping_method,
        "order_total": float(order.total or 0),
    }


def update_order_shipping(
    order_id: int,
    *,
    shipping_method=None,
    shipping_amount=None,
    tax_amount=None,
    shipping_status=None,
) -> dict:
    """
    Admin edit of order shipping.

    shipping_status may only be set to 0 (pending review) or 1 (ready to
    pay); 2 (paid) comes from the payment callback. Once paid, nothing here
    may change. price_confirmed is True on the 0 -> 1 move.
    """
    order = _get_order(order_id)

    if order.shipping_status == SHIPPING_STATUS_PAID:
        raise ShippingLockedError("Shipping is already paid by the customer. Cannot modify.")

    if shipping_method is not None:
        if shipping_method not in ORDER_SHIPPING_METHODS:
            raise ValidationError(f"shipping_method must be one of: {', '.join(ORDER_SHIPPING_METHODS)}")
        order.shipping_method = shipping_method
    if shipping_amount is not None:
        order.shipping_amount = parse_money(shipping_amount, "shipping_amount")
    if tax_amount is not None:
        order.tax_amount = parse_money(tax_amount, "tax_amount")

    price_confirmed = False
    if shipping_status is not None:
        requested = parse_int(shipping_status, "shipping_status")
        if requested not in (SHIPPING_STATUS_PENDING, SHIPPING_STATUS_READY_TO_PAY):
            raise ValidationError("Admin can only set shipping_status to 0 (Pending Review) or 1 (Ready to Pay)")
        price_confirmed = (
            requested == SHIPPING_STATUS_READY_TO_PAY and order.shipping_status == SHIPPING_STATUS_PENDING
        )
        order.shipping_status = requested

    order.recompute_total()
    db.session.commit()

    return {
        "success": True,
        "total": float(order.total),
        "shipping_amount": float(order.shipping_amount),
        "shipping_status": order.shipping_status,
        "price_confirmed": price_confirmed,
    }


def mark_shipping_paid(order_id: int) -> dict:
    """Payment callback: ready to pay (1) -> paid (2). Any other start state is rejected."""
    order = _get_order(order_id)
    if order.shipping_status != SHIPPING_STATUS_READY_TO_PAY:
        raise ValidationError("Shipping is not ready to pay")
    order.shipping_status = SHIPPING_STATUS_PAID
    db.session.commit()
    return order.to_dict()


def get_shipping_estimate(order_id: int, calculator) -> dict:
    """
    Shipping cost for air and sea.

    The selected method reports the stored order amount; the other one is
    asked from the calculator. A calculator failure counts as 0.
    """
    order = _get_order(order_id)
    selected = order.shipping_method or "air"
    stored = float(order.shipping_amount or 0)

    items = [
        {"product_id": item.product_id, "quantity": item.quantity}
        for item in order.items
        if item.product_id is not None
    ]
    if not items:
        return {"air": 0, "sea": 0, "selected_method": selected}

    estimate = {"selected_method": selected}
    for method in SHIPPING_METHODS:
        if method == selected:
            estimate[method] = stored
            continue
        cost = calculator.calculate(items, method)
        estimate[method] = float(cost) if cost is not None else 0
    return estimate
