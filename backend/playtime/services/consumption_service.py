# Overview: Consumption ledger: per-item stock moves and tab updates in one transaction.

"""
Consumption Ledger

WHY: Two terminals can sell the last juice box at the same moment. Stock is
never read-then-written; each unit moves with a conditional atomic increment
and the tab line changes in the same transaction, so either both happen or
neither does.

DESIGN:
- Stock is owned here (and by cancellation); settlement never touches it
- Zero rows affected by the guarded UPDATE means not enough stock:
  InsufficientStock, nothing written
- Low-stock notices go through an injected notifier and commit with the
  stock change that caused them
"""

from __future__ import annotations

import logging
from typing import Callable

from ..extensions import db
from ..models import ActiveSession, Product, SessionConsumptionItem
from playtime.time_utils import utcnow
from . import notification_service, session_service
from .concurrency import atomic, TransactionAborted
from .products_service import adjust_stock

logger = logging.getLogger(__name__)

Notifier = Callable[[Product, int], object]


class ConsumptionError(Exception):
    """Raised for consumption ledger errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InsufficientStock(ConsumptionError):
    """The decrement would drive stock negative. Nothing changed."""


def _load(session_id: int, product_id: int) -> tuple[ActiveSession, Product]:
    session = session_service.lock_session(session_id)
    if session is None:
        raise session_service.SessionNotFound("Session not found", {"session_id": session_id})
    product = db.session.get(Product, product_id)
    if product is None:
        raise ConsumptionError("Product not found", {"product_id": product_id})
    return session, product


def _touch(session: ActiveSession) -> None:
    # Any tab change bumps the session version.
    session.updated_at = utcnow()


def add_item(session_id: int, product_id: int, *, notifier: Notifier | None = None) -> ActiveSession:
    """
    Sell one unit onto the session tab.

    Raises:
        InsufficientStock: stock is 0
        SessionNotFound / ConsumptionError: unknown session or product
    """
    notifier = notifier or notification_service.add_stock_notice

    with atomic("add consumption"):
        session, product = _load(session_id, product_id)

        new_stock = adjust_stock(product_id, -1)
        if new_stock is None:
            raise InsufficientStock(
                f'"{product.name}" is out of stock',
                {"product_id": product_id, "requested": 1},
            )

        item = session.find_item(product_id)
        if item is not None:
            item.quantity = item.quantity + 1
        else:
            session.consumption.append(
                SessionConsumptionItem(
                    product_id=product.id,
                    name=product.name,
                    price_cents=product.price_cents,
                    quantity=1,
                )
            )
        _touch(session)

        if notification_service.is_low(product, new_stock):
            notifier(product, new_stock)

    logger.info("Session %s: +1 product %s (stock=%s)", session_id, product_id, new_stock)
    session_service.broadcast()
    return session


def remove_one(session_id: int, product_id: int) -> ActiveSession:
    """Take one unit off the tab and return it to stock."""
    return _remove(session_id, product_id, whole_line=False)


def remove_item(session_id: int, product_id: int) -> ActiveSession:
    """Drop the whole line and return its full quantity to stock."""
    return _remove(session_id, product_id, whole_line=True)


def _remove(session_id: int, product_id: int, *, whole_line: bool) -> ActiveSession:
    with atomic("remove consumption"):
        session, _product = _load(session_id, product_id)

        item = session.find_item(product_id)
        if item is None:
            raise ConsumptionError("Product is not on this tab", {"session_id": session_id, "product_id": product_id})

        quantity = item.quantity if whole_line else 1
        if adjust_stock(product_id, quantity) is None:
            raise TransactionAborted("Stock update failed", {"product_id": product_id})

        if item.quantity > quantity:
            item.quantity = item.quantity - quantity
        else:
            session.consumption.remove(item)
        _touch(session)

    logger.info("Session %s: -%d product %s", session_id, quantity, product_id)
    session_service.broadcast()
    return session


def return_to_stock(session: ActiveSession) -> int:
    """
    Put every unit on the tab back on the shelf (cancellation).

    Runs inside the caller's transaction. Returns the number of units moved.
    """
    moved = 0
    for item in session.consumption:
        if adjust_stock(item.product_id, item.quantity) is None:
            raise TransactionAborted("Stock update failed", {"product_id": item.product_id})
        moved += item.quantity
    return moved
