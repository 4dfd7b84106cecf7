from __future__ import annotations

from ..extensions import db
from playtime.time_utils import to_utc_z


class Product(db.Model):
    """
    Snack/toy sold against an open session tab.

    STOCK: stored as a mutable counter, but only ever changed through a
    conditional atomic increment (stock = stock + delta WHERE stock + delta >= 0),
    never by writing back a previously read value. The CHECK constraint is
    the last line against a negative count.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=True)  # low-stock threshold, NULL = never warn

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price_cents": self.price_cents,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "is_low_stock": self.min_stock is not None and self.stock <= self.min_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockNotice(db.Model):
    """
    Low-stock notice shown to operators.

    At most one unresolved notice per product: a new one is only written when
    the previous one was resolved.
    """
    __tablename__ = "stock_notices"
    __table_args__ = (
        db.Index("ix_stock_notices_product_resolved", "product_id", "resolved_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, default="stock")
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    message = db.Column(db.String(255), nullable=False)
    link = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by = db.Column(db.String(128), nullable=True)

    product = db.relationship("Product", backref=db.backref("stock_notices", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "product_id": self.product_id,
            "message": self.message,
            "link": self.link,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
            "resolved_by": self.resolved_by,
        }
