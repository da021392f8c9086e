# Overview: Service-layer operations for categories, including delete-with-reassignment.

# backend/stockapp/services/category_service.py
"""
Categories

Referential invariant: every Product.category_id resolves. The fallback
category (Config.FALLBACK_CATEGORY_NAME) always exists and cannot be
deleted; deleting any other category first moves its products to the
fallback, inside the same transaction as the DELETE.
"""
from __future__ import annotations

import threading

from flask import current_app
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, Product
from ..validation import ConflictError, ValidationError
from .concurrency import lock_for_update, run_with_retry


class CategoryError(Exception):
    """Raised for category operation errors."""


class CategoryNotFoundError(CategoryError, LookupError):
    pass


class ProtectedCategoryError(CategoryError):
    """The fallback category cannot be deleted."""


class CategoryCache:
    """
    Explicitly invalidated cache of the category list.

    Owned by the collaborator layer (stored in app.extensions). Every
    category mutation must be followed by invalidate().
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._items: list[dict] | None = None

    def get(self, loader) -> list[dict]:
        with self._lock:
            if self._items is None:
                self._items = loader()
            return list(self._items)

    def invalidate(self) -> None:
        with self._lock:
            self._items = None

    @property
    def is_warm(self) -> bool:
        return self._items is not None


def fallback_category_name() -> str:
    return current_app.config.get("FALLBACK_CATEGORY_NAME", "General")


def _find_by_name(name: str) -> Category | None:
    return db.session.execute(
        select(Category).where(func.lower(Category.name) == name.strip().lower())
    ).scalar_one_or_none()


def ensure_fallback_category() -> Category:
    """Idempotent bootstrap of the fallback category."""
    name = fallback_category_name()
    category = _find_by_name(name)
    if category is not None:
        return category

    category = Category(name=name)
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        # Created concurrently by another process
        db.session.rollback()
        category = _find_by_name(name)
    return category


def get_fallback_category() -> Category:
    category = _find_by_name(fallback_category_name())
    if category is None:
        raise CategoryError(f"Fallback category '{fallback_category_name()}' not found")
    return category


def list_categories() -> list[dict]:
    categories = db.session.execute(
        select(Category).order_by(Category.name.asc())
    ).scalars().all()
    return [c.to_dict() for c in categories]


def find_id_by_name(name: str) -> int | None:
    category = _find_by_name(name)
    return category.id if category else None


def create_category(name: str) -> dict:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name cannot be blank")
    if len(name) > 100:
        raise ValidationError("name exceeds max length 100")

    if _find_by_name(name) is not None:
        raise ConflictError("Category already exists.")

    category = Category(name=name)
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category already exists.")
    return category.to_dict()


def delete_with_reassignment(category_id: int, fallback_category_id: int | None = None) -> int:
    """
    Move the category's products to the fallback, then delete the category.

    Both statements run in one transaction. The fallback is checked by id
    and by name before anything is written.

    Returns:
        Number of products reassigned.

    Raises:
        ProtectedCategoryError: target is the fallback category
        CategoryNotFoundError: target or explicit fallback does not exist
        PersistenceError: storage failure (transaction rolled back)
    """
    if fallback_category_id is None:
        fallback = get_fallback_category()
    else:
        fallback = db.session.get(Category, fallback_category_id)
        if fallback is None:
            raise CategoryNotFoundError("Fallback category not found")
    fallback_id = fallback.id

    if category_id == fallback_id:
        raise ProtectedCategoryError("The fallback category cannot be deleted")

    target = db.session.get(Category, category_id)
    if target is None:
        raise CategoryNotFoundError("Category not found")
    if target.name.strip().lower() == fallback_category_name().strip().lower():
        raise ProtectedCategoryError("The fallback category cannot be deleted")

    def _op():
        # Re-read under lock so a concurrent delete of the same row is serialized
        locked = lock_for_update(
            db.session.query(Category).filter_by(id=category_id)
        ).first()
        if locked is None:
            raise CategoryNotFoundError("Category not found")
        db.session.expunge(locked)

        moved = db.session.execute(
            update(Product)
            .where(Product.category_id == category_id)
            .values(category_id=fallback_id)
            .execution_options(synchronize_session=False)
        ).rowcount

        db.session.execute(
            delete(Category)
            .where(Category.id == category_id)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return moved

    moved = run_with_retry(_op)
    current_app.logger.info(
        "Category %s deleted; %d product(s) moved to category %s",
        category_id, moved, fallback_id,
    )
    return moved
