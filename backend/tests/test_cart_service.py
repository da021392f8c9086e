from decimal import Decimal

import pytest

from stockapp.services.cart_service import Cart, EmptyCartError, ProductSnapshot
from stockapp.validation import MAX_QUANTITY, ValidationError


def _snapshot(barcode="8690000000001", price="10.00", product_id=1):
    return ProductSnapshot(
        product_id=product_id,
        barcode=barcode,
        name=f"Item {barcode}",
        price=Decimal(price),
    )


def test_repeated_adds_merge_into_one_line():
    cart = Cart()
    cart.add_or_merge(_snapshot())
    cart.add_or_merge(_snapshot())
    cart.add_or_merge(_snapshot(), 3)

    assert len(cart) == 1
    assert cart.get("8690000000001").quantity == 5
    assert cart.item_count == 5


def test_total_is_sum_of_line_totals():
    cart = Cart()
    cart.add_or_merge(_snapshot("A00001", "3.33"), 3)
    cart.add_or_merge(_snapshot("A00002", "0.10", product_id=2), 2)

    assert cart.total == Decimal("10.19")
    assert [line.barcode for line in cart] == ["A00001", "A00002"]


def test_set_quantity_zero_removes_line():
    cart = Cart()
    cart.add_or_merge(_snapshot(), 2)

    assert cart.set_quantity("8690000000001", 0) is None
    assert "8690000000001" not in cart
    assert cart.total == Decimal("0.00")


def test_decrement_to_zero_removes_line():
    cart = Cart()
    cart.add_or_merge(_snapshot())
    cart.increment("8690000000001")
    assert cart.get("8690000000001").quantity == 2

    cart.decrement("8690000000001")
    cart.decrement("8690000000001")
    assert len(cart) == 0


@pytest.mark.parametrize("qty", [0, -1, 1.5, "2.0", True])
def test_add_rejects_non_positive_or_non_integer_quantity(qty):
    cart = Cart()
    with pytest.raises(ValidationError):
        cart.add_or_merge(_snapshot(), qty)
    assert len(cart) == 0


def test_set_quantity_rejects_negative_and_unknown_barcode():
    cart = Cart()
    cart.add_or_merge(_snapshot())

    with pytest.raises(ValidationError):
        cart.set_quantity("8690000000001", -1)
    with pytest.raises(ValidationError):
        cart.set_quantity("UNKNOWN", 1)
    assert cart.get("8690000000001").quantity == 1


def test_finalize_empty_cart_raises():
    with pytest.raises(EmptyCartError):
        Cart().finalize_for_checkout()


def test_finalize_returns_immutable_snapshot():
    cart = Cart()
    cart.add_or_merge(_snapshot(), 2)

    lines = cart.finalize_for_checkout()
    cart.clear()

    assert len(lines) == 1
    assert lines[0].quantity == 2
    assert lines[0].line_total == Decimal("20.00")


def test_remove_unknown_barcode_is_noop():
    cart = Cart()
    cart.add_or_merge(_snapshot())
    cart.remove("nope")
    cart.remove("8690000000001")
    assert len(cart) == 0


def test_quantity_ceiling_applies_to_add_merge_and_set():
    cart = Cart()
    with pytest.raises(ValidationError):
        cart.add_or_merge(_snapshot(), 10**20)

    cart.add_or_merge(_snapshot(), MAX_QUANTITY)
    with pytest.raises(ValidationError):
        cart.add_or_merge(_snapshot())
    with pytest.raises(ValidationError):
        cart.set_quantity("8690000000001", MAX_QUANTITY + 1)
    assert cart.get("8690000000001").quantity == MAX_QUANTITY
