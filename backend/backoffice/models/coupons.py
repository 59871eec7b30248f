from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


COUPON_USAGE_STATUSES = ("claimed", "locked", "redeemed")


class Coupon(db.Model):
    """
    Discount coupon.

    discount is a fixed amount, percentage a rate; type tells the storefront
    which of the two applies ("Fixed", "Percentage", "Both").
    """
    __tablename__ = "coupons"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_coupons_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, index=True)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    type = db.Column(db.String(16), nullable=False, default="Both")

    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    is_forever = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_public = db.Column(db.Boolean, nullable=False, default=False)
    can_take_again = db.Column(db.Boolean, nullable=False, default=False)
    customer_id = db.Column(db.Integer, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("cms_users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "discount": float(self.discount or 0),
            "percentage": float(self.percentage or 0),
            "type": self.type,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "is_forever": self.is_forever,
            "is_active": self.is_active,
            "is_public": self.is_public,
            "can_take_again": self.can_take_again,
            "customer_id": self.customer_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CouponUsage(db.Model):
    """Per-customer coupon usage: claimed -> locked (in checkout) -> redeemed."""
    __tablename__ = "coupon_usages"
    __table_args__ = (
        db.Index("ix_coupon_usages_coupon_status", "coupon_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=False)
    customer_id = db.Column(db.Integer, nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="claimed")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    order = db.relationship("Order")

    def to_dict(self) -> dict:
        order = self.order
        return {
            "id": self.id,
            "coupon_id": self.coupon_id,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "order_total": float(order.total) if order is not None else None,
            "order_status": order.status if order is not None else None,
            "status": self.status,
            "claimed_at": to_utc_z(self.created_at),
            "used_at": to_utc_z(self.used_at),
        }
