from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


# Legacy numeric order/item status codes still read by the storefront
LEGACY_STATUS_CANCELLED = 5
LEGACY_STATUS_REFUNDED = 6

SHIPPING_METHODS = ("air", "sea")
ORDER_SHIPPING_METHODS = ("air", "sea", "both")

# Order.shipping_status
SHIPPING_STATUS_PENDING = 0
SHIPPING_STATUS_READY_TO_PAY = 1
SHIPPING_STATUS_PAID = 2


def _money(value) -> float | None:
    return float(value) if value is not None else None


class WorkflowStatus(db.Model):
    """
    Order item fulfillment status (reference data).

    status_key is the stable identifier used by the transition graph and
    by callers. status_order maps onto the numeric status written to the
    order tracking timeline. Read-mostly; seeded by `flask system init`.
    """
    __tablename__ = "workflow_statuses"
    __table_args__ = (
        db.UniqueConstraint("status_key", name="uq_workflow_statuses_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    status_key = db.Column(db.String(64), nullable=False, index=True)
    status_label = db.Column(db.String(128), nullable=False)
    status_order = db.Column(db.Integer, nullable=False, default=0)
    is_terminal = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    color = db.Column(db.String(32), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status_key": self.status_key,
            "status_label": self.status_label,
            "status_order": self.status_order,
            "is_terminal": self.is_terminal,
            "is_active": self.is_active,
            "color": self.color,
        }


class RoleItemTransition(db.Model):
    """
    One edge of a role's item workflow graph.

    requires_tracking_number: the item must carry a tracking number to take
    this edge. can_transition=False disables the edge without deleting it.
    """
    __tablename__ = "role_item_transitions"
    __table_args__ = (
        db.UniqueConstraint("role_id", "from_status_id", "to_status_id", name="uq_role_item_transition"),
        db.Index("ix_role_item_transitions_lookup", "role_id", "from_status_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False)
    from_status_id = db.Column(db.Integer, db.ForeignKey("workflow_statuses.id"), nullable=False)
    to_status_id = db.Column(db.Integer, db.ForeignKey("workflow_statuses.id"), nullable=False)
    can_transition = db.Column(db.Boolean, nullable=False, default=True)
    requires_tracking_number = db.Column(db.Boolean, nullable=False, default=False)


class Order(db.Model):
    """
    Customer order header.

    INVARIANT: total = subtotal + shipping_amount + tax_amount - discount_amount.
    total is always recomputed (Order.recompute_total), never edited directly.

    shipping_status: 0 pending review -> 1 ready to pay (admin) -> 2 paid
    (payment callback only; admin can never move it back once paid).
    """
    __tablename__ = "orders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, nullable=True, index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    shipping_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Legacy numeric status (see LEGACY_STATUS_*)
    status = db.Column(db.Integer, nullable=False, default=9)
    workflow_status_id = db.Column(db.Integer, db.ForeignKey("workflow_statuses.id"), nullable=True)

    shipping_method = db.Column(db.String(8), nullable=False, default="air")
    shipping_status = db.Column(db.Integer, nullable=False, default=SHIPPING_STATUS_PENDING)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    workflow_status = db.relationship("WorkflowStatus")
    items = db.relationship("OrderItem", back_populates="order", lazy=True, cascade="all, delete-orphan",
                            order_by="OrderItem.id")

    def recompute_total(self) -> None:
        self.total = (
            (self.subtotal or 0)
            + (self.shipping_amount or 0)
            + (self.tax_amount or 0)
            - (self.discount_amount or 0)
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "subtotal": _money(self.subtotal),
            "discount_amount": _money(self.discount_amount),
            "tax_amount": _money(self.tax_amount),
            "shipping_amount": _money(self.shipping_amount),
            "total": _money(self.total),
            "status": self.status,
            "workflow_status_key": self.workflow_status.status_key if self.workflow_status else None,
            "shipping_method": self.shipping_method,
            "shipping_status": self.shipping_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    """
    Order line item (exclusively owned by its Order).

    Carries two status systems: workflow_status_id (role-governed workflow)
    and the legacy numeric status, which is mirrored only for the
    cancelled (5) and refunded (6) outcomes.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.Index("ix_order_items_order_status", "order_id", "workflow_status_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=True)
    product_name = db.Column(db.String(512), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    shipping_method = db.Column(db.String(8), nullable=False, default="air")
    shipping = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tracking_number = db.Column(db.String(128), nullable=True)

    workflow_status_id = db.Column(db.Integer, db.ForeignKey("workflow_statuses.id"), nullable=True, index=True)
    workflow_status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    workflow_status_updated_by = db.Column(db.Integer, db.ForeignKey("cms_users.id"), nullable=True)

    status = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", back_populates="items")
    workflow_status = db.relationship("WorkflowStatus")

    def to_dict(self) -> dict:
        ws = self.workflow_status
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "price": _money(self.price),
            "shipping_method": self.shipping_method,
            "shipping": _money(self.shipping),
            "tracking_number": self.tracking_number,
            "workflow_status_id": self.workflow_status_id,
            "workflow_status_key": ws.status_key if ws else None,
            "workflow_status_label": ws.status_label if ws else None,
            "is_terminal": bool(ws.is_terminal) if ws else False,
            "workflow_status_updated_at": to_utc_z(self.workflow_status_updated_at),
            "status": self.status,
        }


class OrderItemStatusHistory(db.Model):
    """
    Append-only audit trail of item workflow transitions.

    Exactly one row per successful transition. Never updated or deleted.
    tracking_number_snapshot is the item's tracking number right after the change.
    """
    __tablename__ = "order_item_status_history"
    __table_args__ = (
        db.Index("ix_item_history_item_changed", "order_item_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    from_status_id = db.Column(db.Integer, db.ForeignKey("workflow_statuses.id"), nullable=True)
    to_status_id = db.Column(db.Integer, db.ForeignKey("workflow_statuses.id"), nullable=False)
    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("cms_users.id"), nullable=True)
    tracking_number_snapshot = db.Column(db.String(128), nullable=True)
    note = db.Column(db.Text, nullable=True)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_item_id": self.order_item_id,
            "order_id": self.order_id,
            "from_status_id": self.from_status_id,
            "to_status_id": self.to_status_id,
            "changed_by_user_id": self.changed_by_user_id,
            "tracking_number_snapshot": self.tracking_number_snapshot,
            "note": self.note,
            "changed_at": to_utc_z(self.changed_at),
        }


class OrderTracking(db.Model):
    """Order-level timeline entry; status_id is a WorkflowStatus.status_order value."""
    __tablename__ = "order_tracking"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    status_id = db.Column(db.Integer, nullable=False)
    track_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "status_id": self.status_id,
            "track_date": to_utc_z(self.track_date),
        }
