# Overview: Flask API routes for orders operations; parses input and returns JSON responses.

"""
Order routes

- GET  /api/orders/<id>                     order with items
- PUT  /api/orders/<id>/items               raw item field edit (+ aggregates)
- PUT  /api/orders/<id>/shipping            admin shipping edit / price confirm
- POST /api/orders/<id>/shipping/paid       payment callback (ready to pay -> paid)
- GET  /api/orders/<id>/shipping-estimate   air/sea cost (calculator for the other method)
"""

from flask import Blueprint, request, g, current_app

from ..services import order_service
from ..services.order_service import (
    OrderNotFoundError,
    OrderItemMismatchError,
    ShippingLockedError,
)
from ..validation import ValidationError, parse_int
from ..decorators import require_auth, require_permission


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("/<int:order_id>")
@require_auth
@require_permission("page.orders.view")
def get_order_route(order_id: int):
    try:
        return {"order": order_service.get_order(order_id)}
    except OrderNotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to fetch order")
        return {"error": "Internal server error"}, 500


@orders_bp.put("/<int:order_id>/items")
@require_auth
@require_permission("action.orders.item.edit")
def update_item_route(order_id: int):
    """
    Body: {item_id, workflow_status_key?, tracking_number?, shipping_method?,
    shipping?, quantity?}
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    changes = dict(payload)
    try:
        item_id = parse_int(changes.pop("item_id", None), "item_id", minimum=1)
        result = order_service.update_item_fields(order_id, item_id, changes, user_id=g.current_user.id)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except (OrderNotFoundError, OrderItemMismatchError) as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to update order item")
        return {"error": "Internal server error"}, 500

    return result


@orders_bp.put("/<int:order_id>/shipping")
@require_auth
@require_permission("action.orders.shipping.edit")
def update_shipping_route(order_id: int):
    """Body: {shipping_method?, shipping_amount?, tax_amount?, shipping_status?: 0|1}."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    try:
        return order_service.update_order_shipping(
            order_id,
            shipping_method=payload.get("shipping_method"),
            shipping_amount=payload.get("shipping_amount"),
            tax_amount=payload.get("tax_amount"),
            shipping_status=payload.get("shipping_status"),
        )
    except (ValidationError, ShippingLockedError) as e:
        return {"error": str(e)}, 400
    except OrderNotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to update shipping")
        return {"error": "Failed to update shipping"}, 500


@orders_bp.post("/<int:order_id>/shipping/paid")
@require_auth
@require_permission("action.orders.shipping.edit")
def mark_shipping_paid_route(order_id: int):
    try:
        return {"order": order_service.mark_shipping_paid(order_id)}
    except ValidationError as e:
        return {"error": str(e)}, 400
    except OrderNotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to mark shipping paid")
        return {"error": "Internal server error"}, 500


@orders_bp.get("/<int:order_id>/shipping-estimate")
@require_auth
@require_permission("page.orders.view")
def shipping_estimate_route(order_id: int):
    calculator = current_app.extensions["shipping_calculator"]
    try:
        return order_service.get_shipping_estimate(order_id, calculator)
    except OrderNotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to get shipping estimates")
        return {"error": "Failed to get shipping estimates"}, 500
