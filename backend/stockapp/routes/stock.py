# Overview: Flask API routes for manual stock corrections.

# backend/stockapp/routes/stock.py
"""
Stock adjustment routes.

All three delegate to stock_service, which performs one guarded UPDATE per
call. The response carries the product as committed afterwards.
"""
from flask import Blueprint, request, current_app

from ..services import stock_service
from ..services.concurrency import PersistenceError
from ..services.products_service import get_product
from ..services.stock_service import InsufficientStockError, ProductNotFoundError
from ..validation import ValidationError


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _run_adjustment(product_id: int, operation, value, action: str):
    try:
        operation(product_id, value)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ProductNotFoundError:
        return {"error": "Product not found"}, 404
    except InsufficientStockError as e:
        return {"error": str(e), "details": e.to_dict()}, 409
    except PersistenceError:
        current_app.logger.exception("Stock %s failed at the storage layer", action)
        return {"error": "Database unavailable, please retry"}, 503
    except Exception:
        current_app.logger.exception("Failed to %s stock for product %s", action, product_id)
        return {"error": "Internal server error"}, 500

    return {"product": get_product(product_id).to_dict()}, 200


@stock_bp.post("/<int:product_id>/increase")
def increase_stock_route(product_id: int):
    """Body: {"delta": 5}"""
    payload = request.get_json(silent=True) or {}
    return _run_adjustment(product_id, stock_service.increase, payload.get("delta"), "increase")


@stock_bp.post("/<int:product_id>/decrease")
def decrease_stock_route(product_id: int):
    """Body: {"delta": 2}. 409 when fewer units are on hand."""
    payload = request.get_json(silent=True) or {}
    return _run_adjustment(product_id, stock_service.decrease, payload.get("delta"), "decrease")


@stock_bp.post("/<int:product_id>/set")
def set_stock_route(product_id: int):
    """Body: {"stock": 40}. Absolute correction after a physical count."""
    payload = request.get_json(silent=True) or {}
    return _run_adjustment(product_id, stock_service.set_exact, payload.get("stock"), "set")
