# Overview: Flask API routes for checkout; parses input and returns JSON responses.

# backend/stockapp/routes/checkout.py
"""Checkout and sale lookup routes."""

from flask import Blueprint, request, current_app

from ..services import checkout_service
from ..services.checkout_service import CheckoutLine
from ..services.concurrency import PersistenceError
from ..services.stock_service import InsufficientStockError, ProductNotFoundError
from ..validation import ValidationError


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")


def _parse_items(payload: dict) -> list[CheckoutLine]:
    items = payload.get("items")
    if items is None:
        raise ValidationError("items required")
    if not isinstance(items, list):
        raise ValidationError("items must be a list")

    lines = []
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("each item must be an object")
        unknown = set(item) - {"barcode", "quantity"}
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
        barcode = item.get("barcode")
        if not isinstance(barcode, str):
            raise ValidationError("barcode must be a string")
        lines.append(CheckoutLine(barcode=barcode, quantity=item.get("quantity", 1)))
    return lines


@checkout_bp.post("/checkout")
def checkout_route():
    """
    Commit a cart as one sale.

    Body: {"items": [{"barcode": "869...", "quantity": 2}, ...]}
    """
    payload = request.get_json(silent=True) or {}

    try:
        lines = _parse_items(payload)
        sale_id = checkout_service.commit(lines)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ProductNotFoundError as e:
        return {"error": str(e), "details": {"barcode": e.barcode}}, 404
    except InsufficientStockError as e:
        return {"error": str(e), "details": e.to_dict()}, 409
    except PersistenceError:
        current_app.logger.exception("Checkout failed at the storage layer")
        return {"error": "Database unavailable, please retry"}, 503
    except Exception:
        current_app.logger.exception("Failed to commit checkout")
        return {"error": "Internal server error"}, 500

    return checkout_service.get_sale(sale_id), 201


@checkout_bp.get("/sales/<int:sale_id>")
def get_sale_route(sale_id: int):
    """Sale header with its items (receipt view)."""
    result = checkout_service.get_sale(sale_id)
    if result is None:
        return {"error": "Sale not found"}, 404
    return result, 200
