# Overview: Flask API routes for coupons; parses input and returns JSON responses.

from flask import Blueprint, request, g, current_app

from ..services import coupon_service
from ..services.coupon_service import CouponNotFoundError
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_permission


coupons_bp = Blueprint("coupons", __name__, url_prefix="/api/coupons")


@coupons_bp.get("")
@require_auth
@require_permission("page.coupons.view")
def list_coupons_route():
    """Coupons newest first with claimed/locked/redeemed counts."""
    try:
        return {"coupons": coupon_service.list_coupons()}
    except Exception:
        current_app.logger.exception("Failed to list coupons")
        return {"error": "Internal server error"}, 500


@coupons_bp.post("")
@require_auth
@require_permission("action.coupons.manage")
def create_coupon_route():
    payload = request.get_json(silent=True) or {}

    try:
        coupon = coupon_service.create_coupon(payload, user_id=g.current_user.id)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create coupon")
        return {"error": "Internal server error"}, 500

    return {"coupon": coupon.to_dict(), "success": True}, 201


@coupons_bp.get("/<int:coupon_id>/usage")
@require_auth
@require_permission("page.coupons.view")
def coupon_usage_route(coupon_id: int):
    try:
        return coupon_service.get_coupon_usage(coupon_id)
    except CouponNotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to fetch coupon usage")
        return {"error": "Internal server error"}, 500
