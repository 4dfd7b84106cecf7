# backend/playtime/services/products_service.py
"""
Products Service

Catalog CRUD for snacks and toys sold against session tabs.

STOCK: list/create/update never write `stock` after creation. The only ways
stock moves are restock() below and the consumption ledger, both through
adjust_stock(), a conditional atomic increment.
"""
from __future__ import annotations

import logging

from sqlalchemy import update

from ..extensions import db
from ..models import Product, SessionConsumptionItem
from ..validation import ConflictError, ValidationError
from .concurrency import atomic

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {"name", "price_cents", "min_stock"}


class ProductError(Exception):
    """Raised for product operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def adjust_stock(product_id: int, delta: int) -> int | None:
    """
    stock = stock + delta, only if the result stays >= 0.

    Runs inside the caller's transaction. Returns the new stock, or None when
    the guard rejected the change (or the product does not exist). The
    version column moves with the stock so a concurrent ORM write of the same
    row fails instead of overwriting the count.
    """
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock + delta >= 0)
        .values(stock=Product.stock + delta, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None
    return db.session.query(Product.stock).filter(Product.id == product_id).scalar()


def list_products() -> list[Product]:
    return db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def create_product(*, patch: dict) -> Product:
    """Create a product from a validated patch (name, price_cents, stock, min_stock)."""
    product = Product(
        name=patch["name"],
        price_cents=patch.get("price_cents", 0),
        stock=patch.get("stock", 0),
        min_stock=patch.get("min_stock"),
    )
    with atomic("product create"):
        db.session.add(product)
    logger.info("Product created: %s (%s)", product.id, product.name)
    return product


def update_product(*, product_id: int, patch: dict) -> Product | None:
    if "stock" in patch:
        raise ValidationError("stock cannot be edited directly; use restock")

    with atomic("product update"):
        product = db.session.get(Product, product_id)
        if product is None:
            return None
        apply_product_patch(product, patch)
    return product


def restock(product_id: int, quantity: int) -> Product:
    """Add received units to stock (atomic increment)."""
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")

    with atomic("restock"):
        new_stock = adjust_stock(product_id, quantity)
        if new_stock is None:
            raise ProductError("Product not found", {"product_id": product_id})

    product = db.session.get(Product, product_id)
    logger.info("Restocked product %s by %s (stock=%s)", product_id, quantity, product.stock)
    return product


def delete_product(*, product_id: int) -> bool:
    """
    Remove a product from the catalog.

    Returns:
        True if deleted, False if not found

    Raises:
        ConflictError: the product is still on an open tab
    """
    with atomic("product delete"):
        product = db.session.get(Product, product_id)
        if product is None:
            return False
        on_tab = (
            db.session.query(SessionConsumptionItem.id)
            .filter(SessionConsumptionItem.product_id == product_id)
            .first()
        )
        if on_tab:
            raise ConflictError(f"Product {product.name} is on an open tab")
        for notice in list(product.stock_notices):
            db.session.delete(notice)
        db.session.delete(product)

    logger.info("Product %s deleted", product_id)
    return True
