from __future__ import annotations

from ..extensions import db
from ..money import format_money
from stockapp.time_utils import to_utc_z


class Category(db.Model):
    """
    Product category.

    One category (Config.FALLBACK_CATEGORY_NAME) is the fallback: it always
    exists and absorbs the products of any category that gets deleted, so
    every Product.category_id resolves.
    """
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Product(db.Model):
    """
    Product master data.

    STOCK: Product.stock is a mutable counter guarded by conditional UPDATEs
    (see stock_service). The CHECK constraint is the storage-level backstop
    for stock >= 0.

    PRICE: NUMERIC(10,2), handled as Decimal in Python. Sale lines snapshot
    the price at commit time, so later price edits never rewrite history.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_stock", "stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    barcode = db.Column(db.String(100), nullable=False, unique=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} barcode={self.barcode!r} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "stock": self.stock,
            "price": format_money(self.price),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
