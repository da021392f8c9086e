from __future__ import annotations

from ..extensions import db
from ..money import format_money
from stockapp.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Sale header (one receipt).

    Written only by checkout_service.commit together with its SaleItems and
    stock decrements; a Sale without its items never becomes visible.
    total_amount always equals the sum of its items' line_total.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_sale_date", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SaleItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_date": to_utc_z(self.sale_date),
            "total_amount": format_money(self.total_amount),
        }


class SaleItem(db.Model):
    """Append-only line record: what was sold, how many, at what price."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(
        db.Integer,
        db.ForeignKey("sales.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "barcode": self.product.barcode if self.product else None,
            "quantity": self.quantity,
            "unit_price": format_money(self.unit_price),
            "line_total": format_money(self.line_total),
        }
