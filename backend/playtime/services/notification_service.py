# Overview: Low-stock notices: emit (deduplicated per product), list, resolve.

from __future__ import annotations

import logging

from flask import current_app, has_app_context

from ..extensions import db
from ..models import Product, StockNotice
from playtime.time_utils import utcnow
from .concurrency import atomic

logger = logging.getLogger(__name__)

DEFAULT_LINK_TEMPLATE = "/settings/products?highlight={product_id}"
NOTICE_TYPE_STOCK = "stock"


class NotificationError(Exception):
    """Raised for notice operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _link_for(product_id: int) -> str:
    template = DEFAULT_LINK_TEMPLATE
    if has_app_context():
        template = current_app.config.get("LOW_STOCK_LINK_TEMPLATE", DEFAULT_LINK_TEMPLATE)
    return template.format(product_id=product_id)


def is_low(product: Product, stock: int) -> bool:
    return product.min_stock is not None and stock <= product.min_stock


def add_stock_notice(product: Product, stock: int) -> StockNotice | None:
    """
    Stage a low-stock notice in the caller's transaction.

    Does not commit: the notice lands together with the stock change that
    caused it, or not at all. Returns None when the product already has an
    unresolved notice.
    """
    existing = (
        db.session.query(StockNotice.id)
        .filter(
            StockNotice.product_id == product.id,
            StockNotice.type == NOTICE_TYPE_STOCK,
            StockNotice.resolved_at.is_(None),
        )
        .first()
    )
    if existing:
        return None

    notice = StockNotice(
        type=NOTICE_TYPE_STOCK,
        product_id=product.id,
        message=f'Stock for "{product.name}" is low ({stock} left).',
        link=_link_for(product.id),
    )
    db.session.add(notice)
    logger.info("Low-stock notice staged for product %s (stock=%s)", product.id, stock)
    return notice


def list_notices(include_resolved: bool = False) -> list[StockNotice]:
    q = db.session.query(StockNotice)
    if not include_resolved:
        q = q.filter(StockNotice.resolved_at.is_(None))
    return q.order_by(StockNotice.created_at.desc(), StockNotice.id.desc()).all()


def resolve_notice(notice_id: int, operator: str | None = None) -> StockNotice:
    """Mark a notice handled. Resolving twice is a no-op."""
    with atomic("notice resolve"):
        notice = db.session.get(StockNotice, notice_id)
        if notice is None:
            raise NotificationError("Notice not found", {"notice_id": notice_id})
        if notice.resolved_at is None:
            notice.resolved_at = utcnow()
            notice.resolved_by = operator
    return notice
