# Overview: Service-layer order item workflow engine; permission-gated transitions, audit trail and order cascade.

"""
Order Item Workflow Engine

Each order item moves through WorkflowStatus rows along the edges its
caller's role is allowed to take (role_item_transitions). The engine does
not know any edge itself; it asks resolve_transitions(role_key, status_id).

TRANSITION STEPS:
1. Permission gate (status change, plus cancel/refund for those targets)
2. Item exists and has a current status
3. Target must be among the role's allowed transitions (else no mutation)
4. Tracking number required on some edges
5. Item update (status, timestamp, updater, tracking, legacy status)
6. Append-only audit row
7. Order cascade: if every non-terminal item agrees on one status, the
   order follows it and gets a tracking timeline entry

Steps 5-7 are one transaction. Nothing is written unless all of them succeed.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import (
    Order,
    OrderItem,
    OrderItemStatusHistory,
    OrderTracking,
    WorkflowStatus,
    LEGACY_STATUS_CANCELLED,
    LEGACY_STATUS_REFUNDED,
)
from ..permissions import (
    CANCELLED_KEY,
    REFUNDED_KEY,
    TERMINAL_KEYS,
    ITEM_STATUS_CHANGE,
    ITEM_CANCEL,
    ITEM_REFUND,
)
from ..time_utils import utcnow
from . import permission_service


MAX_BULK_ITEMS = 200
BULK_NOTE = "Bulk status change"

LEGACY_STATUS_BY_KEY = {
    CANCELLED_KEY: LEGACY_STATUS_CANCELLED,
    REFUNDED_KEY: LEGACY_STATUS_REFUNDED,
}


class WorkflowError(Exception):
    """Base class for workflow engine errors."""


class WorkflowPermissionError(WorkflowError):
    """Caller lacks the permission for this kind of status change."""


class OrderItemNotFoundError(WorkflowError):
    pass


class InvalidWorkflowStateError(WorkflowError):
    """Item has no current workflow status or the request is malformed."""


class TransitionNotAllowedError(WorkflowError):
    """Target status is not reachable from the current one for this role."""


class TrackingNumberRequiredError(WorkflowError):
    pass


def _check_transition_permissions(context, to_status_key: str) -> None:
    permissions = context.permissions
    if not permission_service.has_permission(permissions, ITEM_STATUS_CHANGE):
        raise WorkflowPermissionError("You don't have permission to change item status")
    if to_status_key == CANCELLED_KEY and not permission_service.has_permission(permissions, ITEM_CANCEL):
        raise WorkflowPermissionError("You don't have permission to cancel items")
    if to_status_key == REFUNDED_KEY and not permission_service.has_permission(permissions, ITEM_REFUND):
        raise WorkflowPermissionError("You don't have permission to refund items")


def _status_view(status: WorkflowStatus | None) -> dict | None:
    if status is None:
        return None
    return {
        "id": status.id,
        "key": status.status_key,
        "label": status.status_label,
        "is_terminal": bool(status.is_terminal),
    }


def _load_item(item_id: int) -> OrderItem:
    item = db.session.get(OrderItem, item_id)
    if item is None:
        raise OrderItemNotFoundError(f"Order item {item_id} not found")
    if item.workflow_status_id is None:
        raise InvalidWorkflowStateError("Item has no workflow status")
    return item


def get_item_transitions(item_id: int, role_key: str, resolve_transitions=None) -> dict:
    """Current status of an item and the transitions role_key may take from it."""
    resolve = resolve_transitions or permission_service.get_allowed_transitions
    item = _load_item(item_id)
    allowed = resolve(role_key, item.workflow_status_id)

    return {
        "item_id": item.id,
        "product_name": item.product_name,
        "tracking_number": item.tracking_number,
        "current_status": _status_view(item.workflow_status),
        "allowed_transitions": [t.to_dict() for t in allowed],
    }


def derive_order_status_from_items(order_id: int) -> WorkflowStatus | None:
    """
    Cascade item statuses up to the order.

    Cancelled/refunded items are ignored. If at least one other item remains
    and all of them share one status, the order takes that status and a
    tracking row (status_order of that status) is appended. Returns the
    status the order moved to, or None when no cascade happened.

    Runs inside the caller's transaction; never commits.
    """
    order = db.session.get(Order, order_id)
    if order is None:
        return None

    rows = db.session.query(OrderItem.workflow_status_id).filter(OrderItem.order_id == order_id).all()
    status_ids = [row[0] for row in rows]
    if not status_ids:
        return None

    known = {s.id: s for s in db.session.query(WorkflowStatus).filter(
        WorkflowStatus.id.in_([sid for sid in status_ids if sid is not None])
    ).all()}

    remaining = set()
    for sid in status_ids:
        status = known.get(sid)
        if status is not None and status.status_key in TERMINAL_KEYS:
            continue
        remaining.add(sid)

    if len(remaining) != 1:
        return None

    status = known.get(next(iter(remaining)))
    if status is None:
        return None

    order.workflow_status_id = status.id
    db.session.add(OrderTracking(order_id=order.id, status_id=status.status_order, track_date=utcnow()))
    return status


def _apply_status(item: OrderItem, target_id: int, target_key: str, user_id: int | None, note: str | None,
                  tracking_number: str | None = None, set_tracking: bool = False) -> None:
    from_status_id = item.workflow_status_id

    item.workflow_status_id = target_id
    item.workflow_status_updated_at = utcnow()
    item.workflow_status_updated_by = user_id
    if set_tracking:
        item.tracking_number = tracking_number or None
    if target_key in LEGACY_STATUS_BY_KEY:
        item.status = LEGACY_STATUS_BY_KEY[target_key]

    db.session.add(OrderItemStatusHistory(
        order_item_id=item.id,
        order_id=item.order_id,
        from_status_id=from_status_id,
        to_status_id=target_id,
        changed_by_user_id=user_id,
        tracking_number_snapshot=item.tracking_number,
        note=note,
        changed_at=utcnow(),
    ))


def transition_item(
    item_id: int,
    context,
    to_status_key: str,
    tracking_number: str | None = None,
    note: str | None = None,
    resolve_transitions=None,
) -> dict:
    """
    Move one item to to_status_key.

    tracking_number: None leaves the stored number alone, "" clears it.
    Returns {item, order_status_changed, order_new_status}.
    """
    if not to_status_key:
        raise InvalidWorkflowStateError("to_status_key is required")

    _check_transition_permissions(context, to_status_key)

    item = _load_item(item_id)

    resolve = resolve_transitions or permission_service.get_allowed_transitions
    allowed = resolve(context.role_key, item.workflow_status_id)
    target = next((t for t in allowed if t.to_status_key == to_status_key), None)
    if target is None:
        raise TransitionNotAllowedError(
            f"Transition to '{to_status_key}' is not allowed from the current status"
        )

    set_tracking = tracking_number is not None
    if set_tracking:
        tracking_number = tracking_number.strip()
    effective_tracking = tracking_number if set_tracking else item.tracking_number
    if target.requires_tracking and not effective_tracking:
        raise TrackingNumberRequiredError(
            f"A tracking number is required to move this item to '{target.to_status_label}'"
        )

    try:
        _apply_status(
            item,
            target.to_status_id,
            target.to_status_key,
            context.user_id,
            note,
            tracking_number=tracking_number,
            set_tracking=set_tracking,
        )
        db.session.flush()
        cascaded = derive_order_status_from_items(item.order_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to apply workflow transition for item %s", item_id)
        raise

    return {
        "item": item.to_dict(),
        "order_status_changed": cascaded is not None,
        "order_new_status": cascaded.status_key if cascaded is not None else None,
    }


def bulk_transition(item_ids, context, to_status_key: str, resolve_transitions=None) -> dict:
    """
    Move many items to one status.

    Items whose current status has no allowed edge to the target (or whose
    edge needs a tracking number they don't have) are skipped and reported.
    All updates, audit rows and per-order cascades commit together.
    """
    if not to_status_key:
        raise InvalidWorkflowStateError("to_status_key is required")
    if not isinstance(item_ids, list) or not item_ids:
        raise InvalidWorkflowStateError("item_ids must be a non-empty list")
    if len(item_ids) > MAX_BULK_ITEMS:
        raise InvalidWorkflowStateError(f"At most {MAX_BULK_ITEMS} items per bulk change")
    if any(isinstance(i, bool) or not isinstance(i, int) for i in item_ids):
        raise InvalidWorkflowStateError("item_ids must be integers")

    _check_transition_permissions(context, to_status_key)

    resolve = resolve_transitions or permission_service.get_allowed_transitions
    items = db.session.query(OrderItem).filter(OrderItem.id.in_(item_ids)).all()
    found_ids = {item.id for item in items}

    skipped = [{"item_id": i, "reason": "not_found"} for i in item_ids if i not in found_ids]
    edges_by_status: dict[int, object] = {}
    to_update = []

    for item in items:
        if item.workflow_status_id is None:
            skipped.append({"item_id": item.id, "reason": "no_status"})
            continue
        if item.workflow_status_id not in edges_by_status:
            allowed = resolve(context.role_key, item.workflow_status_id)
            edges_by_status[item.workflow_status_id] = next(
                (t for t in allowed if t.to_status_key == to_status_key), None
            )
        target = edges_by_status[item.workflow_status_id]
        if target is None:
            skipped.append({"item_id": item.id, "reason": "transition_not_allowed"})
            continue
        if target.requires_tracking and not item.tracking_number:
            skipped.append({"item_id": item.id, "reason": "tracking_number_required"})
            continue
        to_update.append((item, target))

    cascades = {}
    try:
        for item, target in to_update:
            _apply_status(item, target.to_status_id, target.to_status_key, context.user_id, BULK_NOTE)
        db.session.flush()
        for order_id in sorted({item.order_id for item, _ in to_update}):
            status = derive_order_status_from_items(order_id)
            if status is not None:
                cascades[order_id] = status.status_key
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to apply bulk workflow transition")
        raise

    return {
        "updated": [item.id for item, _ in to_update],
        "updated_count": len(to_update),
        "skipped": skipped,
        "order_cascades": cascades,
    }


def get_item_history(item_id: int) -> list[dict]:
    """Audit trail of one item, newest first."""
    if db.session.get(OrderItem, item_id) is None:
        raise OrderItemNotFoundError(f"Order item {item_id} not found")

    rows = (
        db.session.query(OrderItemStatusHistory)
        .filter(OrderItemStatusHistory.order_item_id == item_id)
        .order_by(OrderItemStatusHistory.changed_at.desc(), OrderItemStatusHistory.id.desc())
        .all()
    )
    statuses = {s.id: s for s in db.session.query(WorkflowStatus).all()}

    history = []
    for row in rows:
        data = row.to_dict()
        from_status = statuses.get(row.from_status_id)
        to_status = statuses.get(row.to_status_id)
        data["from_status_key"] = from_status.status_key if from_status else None
        data["to_status_key"] = to_status.status_key if to_status else None
        history.append(data)
    return history
