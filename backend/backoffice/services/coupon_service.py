# Overview: Service-layer operations for coupons; listing with usage ledger counts, creation and usage history.

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Coupon, CouponUsage, COUPON_USAGE_STATUSES
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    enforce_rules_coupon,
    validate_payload,
)


COUPON_POLICY = ModelValidationPolicy(
    writable_fields={
        "code", "discount", "percentage", "type", "start_date", "end_date",
        "is_forever", "is_active", "is_public", "can_take_again", "customer_id",
    },
    required_on_create={"code"},
)


class CouponNotFoundError(ValueError):
    pass


def _usage_counts() -> dict[int, dict[str, int]]:
    """One GROUP BY (coupon_id, status) query -> {coupon_id: {status: count}}."""
    rows = (
        db.session.query(CouponUsage.coupon_id, CouponUsage.status, func.count(CouponUsage.id))
        .group_by(CouponUsage.coupon_id, CouponUsage.status)
        .all()
    )
    counts: dict[int, dict[str, int]] = {}
    for coupon_id, status, count in rows:
        counts.setdefault(coupon_id, {})[status] = count
    return counts


def list_coupons() -> list[dict]:
    """
    Coupons newest first with usage counts.

    total_usage == claimed_count + locked_count + redeemed_count; rows with
    any other status are left out of every count.
    """
    counts = _usage_counts()
    coupons = db.session.query(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()

    result = []
    for coupon in coupons:
        per_status = counts.get(coupon.id, {})
        data = coupon.to_dict()
        for status in COUPON_USAGE_STATUSES:
            data[f"{status}_count"] = per_status.get(status, 0)
        data["total_usage"] = sum(data[f"{status}_count"] for status in COUPON_USAGE_STATUSES)
        result.append(data)
    return result


def create_coupon(payload: dict, user_id: int | None = None) -> Coupon:
    patch = validate_payload(model=Coupon, payload=payload, policy=COUPON_POLICY, partial=False)
    enforce_rules_coupon(patch)

    if db.session.query(Coupon.id).filter(Coupon.code == patch["code"]).first():
        raise ConflictError("A coupon with this code already exists")

    coupon = Coupon(created_by_user_id=user_id, **patch)
    db.session.add(coupon)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A coupon with this code already exists")
    return coupon


def get_coupon_usage(coupon_id: int) -> dict:
    coupon = db.session.get(Coupon, coupon_id)
    if coupon is None:
        raise CouponNotFoundError(f"Coupon {coupon_id} not found")

    usages = (
        db.session.query(CouponUsage)
        .filter(CouponUsage.coupon_id == coupon_id)
        .order_by(CouponUsage.created_at.desc(), CouponUsage.id.desc())
        .all()
    )
    return {
        "coupon": coupon.to_dict(),
        "usages": [u.to_dict() for u in usages],
    }
