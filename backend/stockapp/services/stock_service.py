# Overview: Service-layer stock adjustments; the only code path that writes Product.stock.

# backend/stockapp/services/stock_service.py
"""
Stock Adjustment Guard

Invariants (authoritative):
- Product.stock >= 0 at all times.
- Every reduction is ONE conditional UPDATE:
      UPDATE products SET stock = stock - :d WHERE id = :id AND stock >= :d
  The affected-row count is the verdict. There is no read-check-write path;
  a prior read of stock is never trusted because concurrent checkouts may
  have changed it between read and write.
- Increases are single UPDATEs guarded by the INTEGER ceiling
  (stock + delta <= MAX_QUANTITY); absolute sets are unconditional.
- Input validation (0 < delta <= MAX_QUANTITY, 0 <= new_stock <= MAX_QUANTITY)
  happens before any SQL.

Errors:
- ValidationError: malformed input, nothing sent to the store.
- ProductNotFoundError: product reference does not resolve.
- InsufficientStockError: conditional decrement matched zero rows.
- PersistenceError: connectivity/transaction failure (retryable).
"""
from __future__ import annotations

from sqlalchemy import select, update

from ..extensions import db
from ..models import Product
from ..validation import (
    MAX_QUANTITY,
    ValidationError,
    require_positive_quantity,
    require_non_negative_quantity,
)
from .concurrency import run_with_retry


class ProductNotFoundError(LookupError):
    """A barcode or product id does not resolve to a product."""

    def __init__(self, message: str, *, product_id: int | None = None, barcode: str | None = None):
        super().__init__(message)
        self.product_id = product_id
        self.barcode = barcode


class InsufficientStockError(Exception):
    """Business-expected: the guarded decrement found less stock than requested."""

    def __init__(
        self,
        *,
        product_id: int,
        requested: int,
        product_name: str | None = None,
        barcode: str | None = None,
    ):
        label = product_name or barcode or f"product {product_id}"
        super().__init__(f"Insufficient stock: {label} (requested {requested})")
        self.product_id = product_id
        self.requested = requested
        self.product_name = product_name
        self.barcode = barcode

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "barcode": self.barcode,
            "requested_quantity": self.requested,
        }


def _execute_stock_update(stmt) -> int:
    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount


def _product_exists(product_id: int) -> bool:
    return db.session.execute(
        select(Product.id).where(Product.id == product_id)
    ).first() is not None


def decrease_in_transaction(
    product_id: int,
    delta: int,
    *,
    product_name: str | None = None,
    barcode: str | None = None,
) -> None:
    """
    Guarded decrement inside the caller's open transaction (no commit).

    Used by checkout_service so the decrement commits or rolls back together
    with the sale rows.
    """
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock >= delta)
        .values(stock=Product.stock - delta)
    )
    if _execute_stock_update(stmt) == 0:
        # Classify the miss only; the decision was already made by the UPDATE.
        if not _product_exists(product_id):
            raise ProductNotFoundError("Product not found", product_id=product_id, barcode=barcode)
        raise InsufficientStockError(
            product_id=product_id,
            requested=delta,
            product_name=product_name,
            barcode=barcode,
        )


def increase(product_id: int, delta) -> None:
    """Add received/returned units: stock = stock + delta."""
    delta = require_positive_quantity("delta", delta)

    def _op():
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock <= MAX_QUANTITY - delta)
            .values(stock=Product.stock + delta)
        )
        if _execute_stock_update(stmt) == 0:
            if not _product_exists(product_id):
                raise ProductNotFoundError("Product not found", product_id=product_id)
            raise ValidationError(f"stock cannot exceed {MAX_QUANTITY}")
        db.session.commit()

    run_with_retry(_op)


def decrease(product_id: int, delta) -> None:
    """
    Remove units only if at least `delta` are on hand right now.

    Raises InsufficientStockError when the guard rejects the update.
    """
    delta = require_positive_quantity("delta", delta)

    def _op():
        decrease_in_transaction(product_id, delta)
        db.session.commit()

    run_with_retry(_op)


def set_exact(product_id: int, new_stock) -> None:
    """Manual inventory correction: stock = new_stock."""
    new_stock = require_non_negative_quantity("stock", new_stock)

    def _op():
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock=new_stock)
        )
        if _execute_stock_update(stmt) == 0:
            raise ProductNotFoundError("Product not found", product_id=product_id)
        db.session.commit()

    run_with_retry(_op)


def get_stock(product_id: int) -> int:
    """Current committed stock (display only; never used to decide a write)."""
    stock = db.session.execute(
        select(Product.stock).where(Product.id == product_id)
    ).scalar_one_or_none()
    if stock is None:
        raise ProductNotFoundError("Product not found", product_id=product_id)
    return int(stock)
