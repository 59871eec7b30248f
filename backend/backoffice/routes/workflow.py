# Overview: Flask API routes for order item workflow; parses input and returns JSON responses.

"""
Order item workflow routes

- GET /api/orders/items/<item_id>/workflow   current status + allowed transitions
- PUT /api/orders/items/<item_id>/workflow   apply one transition
- PUT /api/orders/items/bulk-workflow        apply one target status to many items
- GET /api/orders/items/<item_id>/history    audit trail

Status codes: permission errors and disallowed transitions -> 403,
missing item -> 404, missing tracking number / bad state -> 400.
"""

from flask import Blueprint, request, g, current_app

from ..services import workflow_service
from ..services.workflow_service import (
    WorkflowPermissionError,
    OrderItemNotFoundError,
    InvalidWorkflowStateError,
    TransitionNotAllowedError,
    TrackingNumberRequiredError,
)
from ..decorators import require_auth, require_permission


workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/orders/items")


def _workflow_error_response(e: Exception):
    if isinstance(e, (WorkflowPermissionError, TransitionNotAllowedError)):
        return {"error": str(e)}, 403
    if isinstance(e, OrderItemNotFoundError):
        return {"error": str(e)}, 404
    return {"error": str(e)}, 400


@workflow_bp.get("/<int:item_id>/workflow")
@require_auth
def get_item_workflow_route(item_id: int):
    try:
        return workflow_service.get_item_transitions(item_id, g.session_context.role_key)
    except (OrderItemNotFoundError, InvalidWorkflowStateError) as e:
        return _workflow_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch item workflow")
        return {"error": "Internal server error"}, 500


@workflow_bp.put("/<int:item_id>/workflow")
@require_auth
def transition_item_route(item_id: int):
    """
    Body: {to_status_key, tracking_number?, note?}

    Permissions are checked by the engine (status change, cancel, refund).
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    tracking_number = payload.get("tracking_number")
    if tracking_number is not None and not isinstance(tracking_number, str):
        return {"error": "tracking_number must be a string"}, 400

    try:
        return workflow_service.transition_item(
            item_id,
            g.session_context,
            payload.get("to_status_key"),
            tracking_number=tracking_number,
            note=payload.get("note"),
        )
    except (
        WorkflowPermissionError,
        OrderItemNotFoundError,
        InvalidWorkflowStateError,
        TransitionNotAllowedError,
        TrackingNumberRequiredError,
    ) as e:
        return _workflow_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change item status")
        return {"error": "Internal server error"}, 500


@workflow_bp.put("/bulk-workflow")
@require_auth
def bulk_workflow_route():
    """Body: {item_ids: [int], to_status_key}."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    try:
        return workflow_service.bulk_transition(
            payload.get("item_ids"),
            g.session_context,
            payload.get("to_status_key"),
        )
    except (WorkflowPermissionError, InvalidWorkflowStateError) as e:
        return _workflow_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to apply bulk status change")
        return {"error": "Internal server error"}, 500


@workflow_bp.get("/<int:item_id>/history")
@require_auth
@require_permission("page.orders.view")
def item_history_route(item_id: int):
    try:
        return {"history": workflow_service.get_item_history(item_id)}
    except OrderItemNotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to fetch item history")
        return {"error": "Internal server error"}, 500
