# Overview: Flask API routes for categories; owns the category list cache.

# backend/stockapp/routes/categories.py
"""
Category routes.

The category list is served from the CategoryCache in
app.extensions["category_cache"]; every mutation here invalidates it.
"""
from flask import Blueprint, request, current_app

from ..services import category_service
from ..services.category_service import (
    CategoryError,
    CategoryNotFoundError,
    ProtectedCategoryError,
)
from ..services.concurrency import PersistenceError
from ..validation import ConflictError, ValidationError


categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


def _cache() -> category_service.CategoryCache:
    return current_app.extensions["category_cache"]


@categories_bp.get("")
def list_categories_route():
    items = _cache().get(category_service.list_categories)
    return {"items": items, "count": len(items)}, 200


@categories_bp.post("")
def create_category_route():
    payload = request.get_json(silent=True) or {}

    try:
        created = category_service.create_category(payload.get("name"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409

    _cache().invalidate()
    return created, 201


@categories_bp.delete("/<int:category_id>")
def delete_category_route(category_id: int):
    """
    Delete a category; its products move to the fallback category.

    Optional query param fallback_id overrides the configured fallback.
    """
    fallback_id = request.args.get("fallback_id", type=int)

    try:
        moved = category_service.delete_with_reassignment(category_id, fallback_id)
    except CategoryNotFoundError as e:
        return {"error": str(e)}, 404
    except ProtectedCategoryError as e:
        return {"error": str(e)}, 400
    except CategoryError as e:
        current_app.logger.error("Category delete refused: %s", e)
        return {"error": str(e)}, 409
    except PersistenceError:
        current_app.logger.exception("Category delete failed at the storage layer")
        return {"error": "Database unavailable, please retry"}, 503
    finally:
        _cache().invalidate()

    return {"ok": True, "reassigned_products": moved}, 200
