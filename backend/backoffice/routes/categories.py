# Overview: Flask API routes for categories; parses input and returns JSON responses.

"""
Category routes

- GET  /api/categories/tree       cached full tree annotated with is_excluded
- GET  /api/categories            cursor-paginated listing with filters
- GET  /api/categories/<id>       detail
- POST /api/categories/reorder    move/reorder (action.categories.reorder)
- PUT  /api/categories/<id>/excluded  toggle exclusion (action.categories.exclude)
"""

from flask import Blueprint, request, g, current_app

from ..services import category_service, category_tree_service
from ..services.category_service import CategoryNotFoundError, CircularReferenceError
from ..services.category_tree_service import DataUnavailableError
from ..validation import ValidationError
from ..decorators import require_auth, require_permission


categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("/tree")
@require_auth
@require_permission("page.categories.view")
def get_tree_route():
    try:
        return category_tree_service.get_tree()
    except DataUnavailableError:
        current_app.logger.exception("Failed to fetch category tree")
        return {"error": "Failed to fetch category tree"}, 500
    except Exception:
        current_app.logger.exception("Failed to fetch category tree")
        return {"error": "Internal server error"}, 500


@categories_bp.get("")
@require_auth
@require_permission("page.categories.view")
def list_categories_route():
    """
    Query params:
    - cursor: last id of the previous page
    - page_size: 1..100 (default 50)
    - search, level, display, parent_id ("root" or an id)
    - excluded: "excluded" | "not_excluded"
    """
    args = request.args
    try:
        return category_service.list_categories(
            cursor=args.get("cursor"),
            page_size=args.get("page_size", category_service.DEFAULT_PAGE_SIZE),
            search=args.get("search"),
            level=args.get("level"),
            display=args.get("display"),
            excluded=args.get("excluded"),
            parent_id=args.get("parent_id"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except DataUnavailableError:
        current_app.logger.exception("Failed to list categories")
        return {"error": "Failed to fetch categories"}, 500
    except Exception:
        current_app.logger.exception("Failed to list categories")
        return {"error": "Internal server error"}, 500


@categories_bp.get("/<int:category_id>")
@require_auth
@require_permission("page.categories.view")
def get_category_route(category_id: int):
    try:
        return {"category": category_service.get_category(category_id)}
    except CategoryNotFoundError as e:
        return {"error": str(e)}, 404
    except DataUnavailableError:
        current_app.logger.exception("Failed to fetch category %s", category_id)
        return {"error": "Failed to fetch category"}, 500
    except Exception:
        current_app.logger.exception("Failed to fetch category %s", category_id)
        return {"error": "Internal server error"}, 500


@categories_bp.post("/reorder")
@require_auth
@require_permission("action.categories.reorder")
def reorder_route():
    """Body: {categoryId, newParentId, newOrder}. newParentId 0/null moves to root."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    try:
        category_service.reorder(
            payload.get("categoryId"),
            payload.get("newParentId"),
            payload.get("newOrder"),
        )
    except (ValidationError, CircularReferenceError) as e:
        return {"error": str(e)}, 400
    except CategoryNotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to reorder category")
        return {"error": "Internal server error"}, 500

    return {"success": True}


@categories_bp.put("/<int:category_id>/excluded")
@require_auth
@require_permission("action.categories.exclude")
def set_excluded_route(category_id: int):
    """Body: {excluded: bool, reason?: str}."""
    payload = request.get_json(silent=True) or {}
    excluded = payload.get("excluded")
    if not isinstance(excluded, bool):
        return {"error": "excluded must be a boolean"}, 400

    try:
        category = category_service.set_category_excluded(
            category_id,
            excluded,
            reason=payload.get("reason"),
            user_id=g.current_user.id,
        )
    except CategoryNotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to update category exclusion")
        return {"error": "Internal server error"}, 500

    return {"category": category}
