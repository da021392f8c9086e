# Overview: Checkout commit engine; turns a finalized cart into one sale in one transaction.

# backend/stockapp/services/checkout_service.py
"""
Checkout Commit Engine

commit(lines) -> sale_id, all-or-nothing:

1. Validate lines locally (empty cart, blank barcode, quantity outside
   1..MAX_QUANTITY, line amount beyond NUMERIC(12,2)).
2. Provisional total from the cart's snapshot prices.
3-4. Insert the Sale header, flush for its id.
5. Resolve id/name/price of every distinct barcode in one IN (...) query.
6. Per line: guarded stock decrement, then a SaleItem priced at the
   resolved (commit-time) price.
7. Header total := sum of the written line totals, commit.
8. Return the sale id.

Any failure after step 3 rolls back the header, the items and every stock
decrement already applied. Lines that share a barcode are decremented
independently, so their quantities add up.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

from flask import current_app
from sqlalchemy import select

from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..money import MAX_AMOUNT, ZERO, line_total, money_sum, to_money
from ..validation import ValidationError, require_positive_quantity
from .cart_service import EmptyCartError
from .concurrency import run_with_retry
from .stock_service import ProductNotFoundError, decrease_in_transaction


@dataclass(frozen=True)
class CheckoutLine:
    """Minimal line accepted by commit(): what and how many."""
    barcode: str
    quantity: int
    unit_price: Decimal | None = None


@dataclass(frozen=True)
class _ResolvedProduct:
    id: int
    name: str
    price: Decimal


def _field(raw, name):
    if isinstance(raw, Mapping):
        return raw.get(name)
    return getattr(raw, name, None)


def _check_amount(amount: Decimal, barcode: str | None = None) -> Decimal:
    if amount > MAX_AMOUNT:
        where = f" (barcode {barcode})" if barcode else ""
        raise ValidationError(f"amount exceeds {MAX_AMOUNT}{where}")
    return amount


def _normalize_lines(cart_lines) -> list[CheckoutLine]:
    if cart_lines is None:
        raise EmptyCartError("cart is empty")

    lines: list[CheckoutLine] = []
    for raw in cart_lines:
        barcode = _field(raw, "barcode")
        barcode = barcode.strip() if isinstance(barcode, str) else ""
        if not barcode:
            raise ValidationError("barcode is required for every line")

        try:
            quantity = require_positive_quantity("quantity", _field(raw, "quantity"))
        except ValidationError as e:
            raise ValidationError(f"{e} (barcode {barcode})") from e

        unit_price = _field(raw, "unit_price")
        if unit_price is not None:
            try:
                unit_price = to_money(unit_price)
            except ValueError as e:
                raise ValidationError(f"unit_price: {e} (barcode {barcode})") from e
            _check_amount(line_total(unit_price, quantity), barcode)

        lines.append(CheckoutLine(barcode=barcode, quantity=quantity, unit_price=unit_price))

    if not lines:
        raise EmptyCartError("cart is empty")
    return lines


def _provisional_total(lines: Iterable[CheckoutLine]) -> Decimal:
    return money_sum(
        line_total(line.unit_price, line.quantity)
        for line in lines
        if line.unit_price is not None
    )


def _resolve_products(barcodes: set[str]) -> dict[str, _ResolvedProduct]:
    """Authoritative id/name/price for all barcodes in a single query."""
    rows = db.session.execute(
        select(Product.id, Product.barcode, Product.name, Product.price)
        .where(Product.barcode.in_(sorted(barcodes)))
    ).all()
    return {
        row.barcode: _ResolvedProduct(
            id=row.id,
            name=row.name,
            price=to_money(row.price if row.price is not None else ZERO),
        )
        for row in rows
    }


def commit(cart_lines) -> int:
    """
    Persist a finalized cart as one sale.

    `cart_lines` is any sequence of objects or mappings with `barcode` and
    `quantity` (CartLine, CheckoutLine, dict); `unit_price`, when present,
    only feeds the provisional header total.

    Raises:
        EmptyCartError / ValidationError: before any SQL is issued
        ProductNotFoundError: a barcode no longer resolves
        InsufficientStockError: a guarded decrement matched zero rows
        PersistenceError: storage failure (transaction rolled back)
    """
    lines = _normalize_lines(cart_lines)
    provisional = _check_amount(_provisional_total(lines))

    def _op():
        sale = Sale(total_amount=provisional)
        db.session.add(sale)
        db.session.flush()

        resolved = _resolve_products({line.barcode for line in lines})

        written: list[Decimal] = []
        for line in lines:
            product = resolved.get(line.barcode)
            if product is None:
                raise ProductNotFoundError(
                    f"Product not found: {line.barcode}",
                    barcode=line.barcode,
                )

            total = _check_amount(line_total(product.price, line.quantity), line.barcode)

            decrease_in_transaction(
                product.id,
                line.quantity,
                product_name=product.name,
                barcode=line.barcode,
            )

            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=product.id,
                quantity=line.quantity,
                unit_price=product.price,
                line_total=total,
            ))
            written.append(total)

        authoritative = _check_amount(money_sum(written))
        if all(line.unit_price is not None for line in lines) and authoritative != provisional:
            current_app.logger.warning(
                "Sale %s: cart total %s differs from commit-time total %s (price changed since scan)",
                sale.id, provisional, authoritative,
            )
        sale.total_amount = authoritative
        sale_id = sale.id

        db.session.commit()
        return sale_id

    sale_id = run_with_retry(_op)
    current_app.logger.info("Sale %s committed (%d lines)", sale_id, len(lines))
    return sale_id


def get_sale(sale_id: int) -> dict | None:
    """Sale header + items for receipt display."""
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        return None
    return {
        "sale": sale.to_dict(),
        "items": [item.to_dict() for item in sale.items],
    }
