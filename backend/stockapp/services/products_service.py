# backend/stockapp/services/products_service.py
"""
Products Service

Catalogue reads and basic-info writes. Stock is NOT writable here: every
stock change goes through stock_service. Products referenced by a sale
line are never hard-deleted.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, Product, SaleItem
from ..validation import ConflictError, ValidationError
from .cart_service import ProductSnapshot
from .category_service import CategoryNotFoundError, get_fallback_category
from .concurrency import run_with_retry
from .stock_service import ProductNotFoundError

PRODUCT_MUTABLE_FIELDS = {"name", "price", "category_id"}

BARCODE_SEARCH_MIN_LENGTH = 6
BARCODE_SEARCH_LIMIT = 100
NAME_SEARCH_LIMIT = 200


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _require_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise CategoryNotFoundError("Category not found")
    return category


def find_by_barcode(barcode: str) -> ProductSnapshot | None:
    """Barcode lookup used by scanners and the cart ("not found" -> None)."""
    barcode = (barcode or "").strip()
    if not barcode:
        return None
    product = db.session.execute(
        select(Product).where(Product.barcode == barcode)
    ).scalar_one_or_none()
    return ProductSnapshot.from_product(product) if product else None


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError("Product not found", product_id=product_id)
    return product


def list_products() -> list[dict]:
    products = db.session.execute(
        select(Product).order_by(Product.id.desc())
    ).scalars().all()
    return [p.to_dict() for p in products]


def search_products(term: str | None) -> list[dict]:
    """
    Barcode prefix search first (terms of 6+ chars), then name search.

    An empty term lists everything.
    """
    trimmed = (term or "").strip()
    if not trimmed:
        return list_products()

    if len(trimmed) >= BARCODE_SEARCH_MIN_LENGTH:
        by_barcode = db.session.execute(
            select(Product)
            .where(Product.barcode.like(f"{trimmed}%"))
            .order_by(Product.id.desc())
            .limit(BARCODE_SEARCH_LIMIT)
        ).scalars().all()
        if by_barcode:
            return [p.to_dict() for p in by_barcode]

    by_name = db.session.execute(
        select(Product)
        .where(func.lower(Product.name).like(f"%{trimmed.lower()}%"))
        .order_by(Product.id.desc())
        .limit(NAME_SEARCH_LIMIT)
    ).scalars().all()
    return [p.to_dict() for p in by_name]


def critical_stock_threshold() -> int:
    return int(current_app.config.get("CRITICAL_STOCK_THRESHOLD", 10))


def list_critical_products(threshold: int | None = None) -> list[dict]:
    threshold = critical_stock_threshold() if threshold is None else threshold
    products = db.session.execute(
        select(Product)
        .where(Product.stock < threshold)
        .order_by(Product.stock.asc(), Product.id.asc())
    ).scalars().all()
    return [p.to_dict() for p in products]


def count_critical_products(threshold: int | None = None) -> int:
    threshold = critical_stock_threshold() if threshold is None else threshold
    return int(db.session.execute(
        select(func.count(Product.id)).where(Product.stock < threshold)
    ).scalar() or 0)


def count_products() -> int:
    return int(db.session.execute(select(func.count(Product.id))).scalar() or 0)


def create_product(*, patch: dict) -> dict:
    """
    Create product using a validated patch dict.

    Missing category_id -> fallback category. Initial stock is allowed
    (>= 0) on create only.

    Raises:
        ConflictError: barcode already exists
        CategoryNotFoundError: category_id does not resolve
    """
    barcode = patch.get("barcode")
    if not barcode:
        raise ValidationError("barcode is required")

    existing = db.session.execute(
        select(Product.id).where(Product.barcode == barcode)
    ).first()
    if existing:
        raise ConflictError("Barcode already exists.")

    category_id = patch.get("category_id")
    if category_id is None:
        category_id = get_fallback_category().id
    else:
        _require_category(category_id)

    p = Product(
        barcode=barcode,
        name=patch["name"],
        category_id=category_id,
        stock=patch.get("stock") or 0,
        price=patch.get("price") if patch.get("price") is not None else 0,
    )

    def _op():
        db.session.add(p)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError("Barcode already exists.")
        db.session.commit()
        return p.to_dict()

    return run_with_retry(_op)


def update_basics(*, product_id: int, patch: dict) -> dict:
    """
    Update name / price / category. Barcode and stock are not patchable.

    Raises:
        ProductNotFoundError, CategoryNotFoundError
    """
    if patch.get("category_id") is not None:
        _require_category(patch["category_id"])

    def _op():
        p = get_product(product_id)
        apply_product_patch(p, patch)
        db.session.commit()
        return p.to_dict()

    return run_with_retry(_op)


def has_sales(product_id: int) -> bool:
    return db.session.execute(
        select(SaleItem.id).where(SaleItem.product_id == product_id).limit(1)
    ).first() is not None


def delete_product(*, product_id: int) -> None:
    """
    Hard-delete a product that has never been sold.

    Raises:
        ProductNotFoundError: unknown id
        ConflictError: product appears on at least one sale line
    """
    product = get_product(product_id)
    if has_sales(product_id):
        raise ConflictError("Product has sales history and cannot be deleted.")

    def _op():
        if product in db.session:
            db.session.expunge(product)
        db.session.execute(
            delete(Product)
            .where(
                Product.id == product_id,
                ~select(SaleItem.id).where(SaleItem.product_id == product_id).exists(),
            )
            .execution_options(synchronize_session=False)
        )
        db.session.commit()

    run_with_retry(_op)
    current_app.logger.info("Product %s deleted", product_id)
