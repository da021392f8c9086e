# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/stockapp/routes/products.py
"""
Product catalogue routes.

Stock is writable on create only (initial count); later changes go through
/api/stock. Barcode is immutable once created.
"""
from flask import Blueprint, request, current_app

from ..models import Product
from ..services import products_service
from ..services.category_service import CategoryError, CategoryNotFoundError
from ..services.concurrency import PersistenceError
from ..services.stock_service import ProductNotFoundError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"barcode", "name", "category_id", "stock", "price"},
    required_on_create={"barcode", "name"},
)

PRODUCT_PATCH_POLICY = ModelValidationPolicy(
    writable_fields=set(products_service.PRODUCT_MUTABLE_FIELDS),
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List or search products.

    Query params:
    - q: str (optional) - barcode prefix (6+ chars) or name fragment
    """
    items = products_service.search_products(request.args.get("q"))
    return {"items": items, "count": len(items)}


@products_bp.get("/barcode/<barcode>")
def get_by_barcode(barcode: str):
    snapshot = products_service.find_by_barcode(barcode)
    if snapshot is None:
        return {"error": "Product not found"}, 404
    return {"product": snapshot.to_dict()}


@products_bp.get("/critical")
def list_critical():
    """Products whose stock is below the threshold (?threshold= overrides config)."""
    threshold = request.args.get("threshold", type=int)
    items = products_service.list_critical_products(threshold)
    return {
        "items": items,
        "count": len(items),
        "threshold": threshold if threshold is not None else products_service.critical_stock_threshold(),
    }


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = products_service.create_product(patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except CategoryNotFoundError:
        return {"error": "Category not found"}, 404
    except CategoryError as e:
        current_app.logger.error("Product create refused: %s", e)
        return {"error": str(e)}, 409
    except PersistenceError:
        current_app.logger.exception("Product create failed at the storage layer")
        return {"error": "Database unavailable, please retry"}, 503

    return created, 201


@products_bp.patch("/<int:product_id>")
def update_product_route(product_id: int):
    """Update name / price / category_id."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_PATCH_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        updated = products_service.update_basics(product_id=product_id, patch=patch)
    except ProductNotFoundError:
        return {"error": "Product not found"}, 404
    except CategoryNotFoundError:
        return {"error": "Category not found"}, 404
    except PersistenceError:
        current_app.logger.exception("Product update failed at the storage layer")
        return {"error": "Database unavailable, please retry"}, 503

    return updated, 200


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    """Delete a product that has never been sold."""
    try:
        products_service.delete_product(product_id=product_id)
    except ProductNotFoundError:
        return {"error": "Product not found"}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except PersistenceError:
        current_app.logger.exception("Product delete failed at the storage layer")
        return {"error": "Database unavailable, please retry"}, 503

    return {"ok": True}, 200
