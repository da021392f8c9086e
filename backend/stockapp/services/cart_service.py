# Overview: Client-side cart aggregation; no database access.

# backend/stockapp/services/cart_service.py
"""
Cart Aggregator

Holds barcode -> CartLine for one checkout session. Repeated adds of the
same barcode merge into one line by incrementing its quantity. The cart
never touches the store; checkout_service.commit consumes the tuple
returned by finalize_for_checkout().
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterator

from ..money import ZERO, format_money, line_total, money_sum, to_money
from ..validation import (
    MAX_QUANTITY,
    ValidationError,
    require_non_negative_quantity,
    require_positive_quantity,
)


class EmptyCartError(ValidationError):
    """Checkout requested with no lines."""


@dataclass(frozen=True)
class ProductSnapshot:
    """Product as seen by the collaborator when it was scanned."""
    product_id: int
    barcode: str
    name: str
    price: Decimal
    stock: int | None = None
    category_id: int | None = None
    category_name: str | None = None

    @classmethod
    def from_product(cls, product) -> "ProductSnapshot":
        return cls(
            product_id=product.id,
            barcode=product.barcode,
            name=product.name,
            price=to_money(product.price),
            stock=product.stock,
            category_id=product.category_id,
            category_name=product.category.name if product.category else None,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.product_id,
            "barcode": self.barcode,
            "name": self.name,
            "price": format_money(self.price),
            "stock": self.stock,
            "category_id": self.category_id,
            "category_name": self.category_name,
        }


@dataclass(frozen=True)
class CartLine:
    product_id: int
    barcode: str
    name: str
    unit_price: Decimal
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return line_total(self.unit_price, self.quantity)


class Cart:
    """
    Mutable cart for one checkout session.

    Lines keep insertion order (receipt display order only).
    """

    def __init__(self):
        self._lines: dict[str, CartLine] = {}

    def add_or_merge(self, snapshot: ProductSnapshot, quantity=1) -> CartLine:
        qty = require_positive_quantity("quantity", quantity)
        if not snapshot.barcode:
            raise ValidationError("barcode is required")

        existing = self._lines.get(snapshot.barcode)
        if existing is not None:
            if existing.quantity + qty > MAX_QUANTITY:
                raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}")
            merged = replace(existing, quantity=existing.quantity + qty)
        else:
            merged = CartLine(
                product_id=snapshot.product_id,
                barcode=snapshot.barcode,
                name=snapshot.name,
                unit_price=to_money(snapshot.price),
                quantity=qty,
            )
        self._lines[snapshot.barcode] = merged
        return merged

    def set_quantity(self, barcode: str, new_quantity) -> CartLine | None:
        """Absolute quantity; 0 removes the line. Returns the line or None."""
        qty = require_non_negative_quantity("quantity", new_quantity)
        if barcode not in self._lines:
            raise ValidationError(f"barcode not in cart: {barcode}")

        if qty == 0:
            del self._lines[barcode]
            return None

        line = replace(self._lines[barcode], quantity=qty)
        self._lines[barcode] = line
        return line

    def increment(self, barcode: str) -> CartLine | None:
        line = self._require(barcode)
        return self.set_quantity(barcode, line.quantity + 1)

    def decrement(self, barcode: str) -> CartLine | None:
        line = self._require(barcode)
        return self.set_quantity(barcode, line.quantity - 1)

    def remove(self, barcode: str) -> None:
        self._lines.pop(barcode, None)

    def clear(self) -> None:
        self._lines.clear()

    def get(self, barcode: str) -> CartLine | None:
        return self._lines.get(barcode)

    def finalize_for_checkout(self) -> tuple[CartLine, ...]:
        if not self._lines:
            raise EmptyCartError("cart is empty")
        return tuple(self._lines.values())

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return tuple(self._lines.values())

    @property
    def total(self) -> Decimal:
        if not self._lines:
            return ZERO
        return money_sum(line.line_total for line in self._lines.values())

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def _require(self, barcode: str) -> CartLine:
        line = self._lines.get(barcode)
        if line is None:
            raise ValidationError(f"barcode not in cart: {barcode}")
        return line

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, barcode: object) -> bool:
        return barcode in self._lines

    def __iter__(self) -> Iterator[CartLine]:
        return iter(tuple(self._lines.values()))
