import logging
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from stockapp.extensions import db
from stockapp.models import Product, Sale, SaleItem
from stockapp.services import checkout_service
from stockapp.services.cart_service import Cart, EmptyCartError
from stockapp.services import concurrency
from stockapp.services.checkout_service import CheckoutLine
from stockapp.services.concurrency import PersistenceError
from stockapp.services.products_service import find_by_barcode
from stockapp.services.stock_service import InsufficientStockError, ProductNotFoundError
from stockapp.validation import ValidationError


def _count(model):
    return db.session.execute(select(func.count(model.id))).scalar()


def _stock(product_id):
    return db.session.execute(select(Product.stock).where(Product.id == product_id)).scalar()


def test_single_line_sale(make_product):
    p = make_product("8690000000001", stock=5, price="10.00")

    sale_id = checkout_service.commit([CheckoutLine("8690000000001", 2)])

    sale = db.session.get(Sale, sale_id)
    assert sale.total_amount == Decimal("20.00")
    assert len(sale.items) == 1
    item = sale.items[0]
    assert item.product_id == p.id
    assert item.quantity == 2
    assert item.unit_price == Decimal("10.00")
    assert item.line_total == Decimal("20.00")
    assert _stock(p.id) == 3


def test_header_total_equals_sum_of_lines(make_product):
    make_product("A00001", stock=10, price="3.33")
    make_product("A00002", stock=10, price="0.10")
    make_product("A00003", stock=10, price="1999.99")

    sale_id = checkout_service.commit([
        CheckoutLine("A00001", 3),
        CheckoutLine("A00002", 7),
        CheckoutLine("A00003", 1),
    ])

    sale = db.session.get(Sale, sale_id)
    assert sale.total_amount == sum(item.line_total for item in sale.items)
    assert sale.total_amount == Decimal("2010.68")


def test_insufficient_line_rolls_back_whole_sale(make_product):
    a = make_product("A00001", stock=10)
    b = make_product("B00001", name="Bread", stock=1)

    with pytest.raises(InsufficientStockError) as exc_info:
        checkout_service.commit([CheckoutLine("A00001", 1), CheckoutLine("B00001", 2)])

    assert exc_info.value.barcode == "B00001"
    assert exc_info.value.product_name == "Bread"
    assert exc_info.value.requested == 2
    assert _stock(a.id) == 10
    assert _stock(b.id) == 1
    assert _count(Sale) == 0
    assert _count(SaleItem) == 0


def test_unknown_barcode_rolls_back(make_product):
    a = make_product("A00001", stock=10)

    with pytest.raises(ProductNotFoundError) as exc_info:
        checkout_service.commit([CheckoutLine("A00001", 1), CheckoutLine("GHOST", 1)])

    assert exc_info.value.barcode == "GHOST"
    assert _stock(a.id) == 10
    assert _count(Sale) == 0


def test_duplicate_barcode_lines_accumulate(make_product):
    p = make_product("A00001", stock=5)

    checkout_service.commit([CheckoutLine("A00001", 2), CheckoutLine("A00001", 2)])
    assert _stock(p.id) == 1
    assert _count(SaleItem) == 2

    with pytest.raises(InsufficientStockError):
        checkout_service.commit([CheckoutLine("A00001", 1), CheckoutLine("A00001", 1)])
    assert _stock(p.id) == 1
    assert _count(Sale) == 1


def test_empty_cart_raises_before_any_write(db_session):
    with pytest.raises(EmptyCartError):
        checkout_service.commit([])
    with pytest.raises(EmptyCartError):
        checkout_service.commit(None)
    assert _count(Sale) == 0


@pytest.mark.parametrize("qty", [0, -3])
def test_non_positive_quantity_rejected(make_product, qty):
    p = make_product("A00001", stock=5)
    with pytest.raises(ValidationError):
        checkout_service.commit([CheckoutLine("A00001", qty)])
    assert _stock(p.id) == 5
    assert _count(Sale) == 0


def test_blank_barcode_rejected(db_session):
    with pytest.raises(ValidationError):
        checkout_service.commit([CheckoutLine("   ", 1)])


def test_sale_uses_price_at_commit_and_logs_drift(app, make_product, caplog):
    p = make_product("A00001", stock=5, price="10.00")

    cart = Cart()
    cart.add_or_merge(find_by_barcode("A00001"), 2)
    assert cart.total == Decimal("20.00")

    p.price = Decimal("12.00")
    db.session.commit()

    with caplog.at_level(logging.WARNING, logger=app.logger.name):
        sale_id = checkout_service.commit(cart.finalize_for_checkout())

    sale = db.session.get(Sale, sale_id)
    assert sale.items[0].unit_price == Decimal("12.00")
    assert sale.total_amount == Decimal("24.00")
    assert any("differs from commit-time total" in r.getMessage() for r in caplog.records)


def test_cart_lines_commit_end_to_end(make_product):
    make_product("A00001", stock=5, price="2.50")
    make_product("A00002", stock=5, price="1.25")

    cart = Cart()
    for barcode in ["A00001", "A00002", "A00001"]:
        cart.add_or_merge(find_by_barcode(barcode))

    sale_id = checkout_service.commit(cart.finalize_for_checkout())
    receipt = checkout_service.get_sale(sale_id)

    assert receipt["sale"]["total_amount"] == "6.25"
    assert [(i["barcode"], i["quantity"]) for i in receipt["items"]] == [("A00001", 2), ("A00002", 1)]


def test_get_sale_unknown(db_session):
    assert checkout_service.get_sale(424242) is None


def test_quantity_beyond_integer_range_rejected(make_product):
    p = make_product("A00001", stock=5)

    with pytest.raises(ValidationError):
        checkout_service.commit([CheckoutLine("A00001", 10**20)])

    assert _stock(p.id) == 5
    assert _count(Sale) == 0


def test_line_amount_beyond_column_precision_rejected(make_product):
    p = make_product("A00001", stock=5000, price="99999999.99")

    with pytest.raises(ValidationError):
        checkout_service.commit([CheckoutLine("A00001", 1000)])

    assert _stock(p.id) == 5000
    assert _count(Sale) == 0
    assert _count(SaleItem) == 0


def test_commit_accepts_plain_mappings(make_product):
    p = make_product("A00001", stock=5, price="2.00")

    sale_id = checkout_service.commit([{"barcode": "A00001", "quantity": 3}])

    assert db.session.get(Sale, sale_id).total_amount == Decimal("6.00")
    assert _stock(p.id) == 2


def _fail_on_barcode(monkeypatch, barcode, *, times):
    """Make the stock decrement for `barcode` hit a storage error `times` times."""
    real = checkout_service.decrease_in_transaction
    failures = []

    def _decrease(product_id, delta, **kwargs):
        if kwargs.get("barcode") == barcode and len(failures) < times:
            failures.append(product_id)
            raise OperationalError("UPDATE products", {}, Exception("disk I/O error"))
        return real(product_id, delta, **kwargs)

    monkeypatch.setattr(checkout_service, "decrease_in_transaction", _decrease)
    monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)
    return failures


def test_storage_failure_mid_checkout_rolls_back_everything(make_product, monkeypatch):
    ids = [make_product(bc, stock=5).id for bc in ("A00001", "A00002", "A00003")]
    failures = _fail_on_barcode(monkeypatch, "A00002", times=100)

    with pytest.raises(PersistenceError):
        checkout_service.commit([
            CheckoutLine("A00001", 1),
            CheckoutLine("A00002", 1),
            CheckoutLine("A00003", 1),
        ])

    assert len(failures) == 3
    assert _count(Sale) == 0
    assert _count(SaleItem) == 0
    assert [_stock(pid) for pid in ids] == [5, 5, 5]


def test_transient_storage_failure_is_retried_once(make_product, monkeypatch):
    ids = [make_product(bc, stock=5).id for bc in ("A00001", "A00002", "A00003")]
    failures = _fail_on_barcode(monkeypatch, "A00002", times=1)

    sale_id = checkout_service.commit([
        CheckoutLine("A00001", 1),
        CheckoutLine("A00002", 2),
        CheckoutLine("A00003", 3),
    ])

    assert len(failures) == 1
    assert _count(Sale) == 1
    assert _count(SaleItem) == 3
    assert len(db.session.get(Sale, sale_id).items) == 3
    assert [_stock(pid) for pid in ids] == [4, 3, 2]
