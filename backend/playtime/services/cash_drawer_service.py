# Overview: Daily cash drawer: open, withdraw, close with reconciliation.

"""
Cash Drawer Ledger

WHY: At the end of the day the operator counts the drawer and must know
whether it matches what the system expected. Settlements can only be taken
while a drawer is open, so every cash sale lands on exactly one drawer.

DESIGN PRINCIPLES:
- At most one OPEN drawer system-wide
- Drawers are immutable once closed
- Withdrawals are append-only
- expected = opening + cash sales - withdrawals; difference = counted - expected
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import CashSession, CashWithdrawal, SaleRecord, SalePayment
from ..models.cash import DRAWER_OPEN, DRAWER_CLOSED
from ..models.sales import TENDER_CASH
from ..validation import ValidationError, MAX_AMOUNT_CENTS
from playtime.time_utils import utcnow
from .concurrency import atomic, lock_for_update, TransactionAborted

logger = logging.getLogger(__name__)


class DrawerError(Exception):
    """Raised for cash drawer guard violations."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class DrawerAlreadyOpen(DrawerError):
    pass


class DrawerNotOpen(DrawerError):
    pass


# =============================================================================
# LOOKUP
# =============================================================================

def get_open_drawer() -> CashSession | None:
    return db.session.query(CashSession).filter(CashSession.status == DRAWER_OPEN).first()


def require_open_drawer() -> CashSession:
    """Settlement precondition."""
    drawer = get_open_drawer()
    if drawer is None:
        raise DrawerNotOpen("Cash drawer is not open")
    return drawer


def _lock_open_drawer() -> CashSession:
    drawer = lock_for_update(db.session.query(CashSession).filter(CashSession.status == DRAWER_OPEN)).first()
    if drawer is None:
        raise DrawerNotOpen("Cash drawer is not open")
    return drawer


def list_drawers(limit: int = 30) -> list[CashSession]:
    return (
        db.session.query(CashSession)
        .order_by(CashSession.opened_at.desc(), CashSession.id.desc())
        .limit(limit)
        .all()
    )


# =============================================================================
# TOTALS
# =============================================================================

def get_tender_summary(cash_session_id: int) -> dict:
    """
    Totals per tender type for one drawer.

    Cash is net of change given, so it is what actually stayed in the drawer:
        {"CASH": 12000, "PIX": 30000}
    """
    rows = (
        db.session.query(SalePayment.tender_type, func.coalesce(func.sum(SalePayment.amount_cents), 0))
        .join(SaleRecord, SaleRecord.id == SalePayment.sale_id)
        .filter(SaleRecord.cash_session_id == cash_session_id)
        .group_by(SalePayment.tender_type)
        .all()
    )
    totals = {tender: int(amount) for tender, amount in rows}
    if TENDER_CASH in totals:
        totals[TENDER_CASH] -= _change_given(cash_session_id)
    return totals


def _change_given(cash_session_id: int) -> int:
    value = (
        db.session.query(func.coalesce(func.sum(SaleRecord.change_given_cents), 0))
        .filter(SaleRecord.cash_session_id == cash_session_id)
        .scalar()
    )
    return int(value or 0)


def cash_sales_total(cash_session: CashSession) -> int:
    """Cash tendered minus change given, over every sale recorded on this drawer."""
    return get_tender_summary(cash_session.id).get(TENDER_CASH, 0)


def drawer_summary(cash_session: CashSession | None = None) -> dict | None:
    """Running totals for a drawer (the open one by default)."""
    drawer = cash_session or get_open_drawer()
    if drawer is None:
        return None

    cash_sales = cash_sales_total(drawer)
    withdrawals = drawer.withdrawals_total_cents
    sale_count = (
        db.session.query(func.count(SaleRecord.id))
        .filter(SaleRecord.cash_session_id == drawer.id)
        .scalar()
    )
    return {
        "cash_session_id": drawer.id,
        "status": drawer.status,
        "opening_balance_cents": drawer.opening_balance_cents,
        "cash_sales_cents": cash_sales,
        "withdrawals_total_cents": withdrawals,
        "expected_cash_cents": drawer.opening_balance_cents + cash_sales - withdrawals,
        "tender_totals": get_tender_summary(drawer.id),
        "sale_count": int(sale_count or 0),
    }


# =============================================================================
# LIFECYCLE
# =============================================================================

def open_drawer(opening_balance_cents: int, operator: str, now: datetime | None = None) -> CashSession:
    """
    Open the day's drawer.

    Raises:
        DrawerAlreadyOpen: a drawer is already open (also when another
            terminal wins the race to open one)
    """
    if opening_balance_cents < 0:
        raise ValidationError("opening_balance_cents must be >= 0")
    if not operator:
        raise ValidationError("operator required")

    drawer = CashSession(
        status=DRAWER_OPEN,
        opened_at=now or utcnow(),
        opened_by=operator,
        opening_balance_cents=opening_balance_cents,
    )
    try:
        with atomic("drawer open"):
            existing = get_open_drawer()
            if existing is not None:
                raise DrawerAlreadyOpen("A cash drawer is already open", {"cash_session_id": existing.id})
            db.session.add(drawer)
    except TransactionAborted as exc:
        raise DrawerAlreadyOpen("A cash drawer is already open") from exc

    logger.info("Drawer %s opened by %s with %s cents", drawer.id, operator, opening_balance_cents)
    return drawer


def withdraw(amount_cents: int, reason: str | None, operator: str, now: datetime | None = None) -> CashWithdrawal:
    """Record cash taken out of the open drawer."""
    if amount_cents <= 0:
        raise ValidationError("amount_cents must be > 0")
    if amount_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"amount_cents cannot exceed {MAX_AMOUNT_CENTS}")
    if not operator:
        raise ValidationError("operator required")

    with atomic("drawer withdrawal"):
        drawer = _lock_open_drawer()
        withdrawal = CashWithdrawal(
            amount_cents=amount_cents,
            reason=(reason or "").strip() or None,
            operator=operator,
            occurred_at=now or utcnow(),
        )
        drawer.withdrawals.append(withdrawal)

    logger.info("Withdrawal of %s cents from drawer %s by %s", amount_cents, withdrawal.cash_session_id, operator)
    return withdrawal


def close_drawer(
    counted_balance_cents: int,
    operator: str,
    cash_sales_cents: int | None = None,
    now: datetime | None = None,
) -> CashSession:
    """
    Count and close the open drawer.

    cash_sales_cents defaults to the total derived from the drawer's sale
    records. The difference is positive when the drawer holds more than
    expected.
    """
    if counted_balance_cents < 0:
        raise ValidationError("counted_balance_cents must be >= 0")
    if not operator:
        raise ValidationError("operator required")

    with atomic("drawer close"):
        drawer = _lock_open_drawer()
        cash_sales = cash_sales_total(drawer) if cash_sales_cents is None else cash_sales_cents
        expected = drawer.opening_balance_cents + cash_sales - drawer.withdrawals_total_cents

        drawer.status = DRAWER_CLOSED
        drawer.closed_at = now or utcnow()
        drawer.closed_by = operator
        drawer.counted_balance_cents = counted_balance_cents
        drawer.final_cash_sales_cents = cash_sales
        drawer.expected_cash_cents = expected
        drawer.difference_cents = counted_balance_cents - expected

    logger.info(
        "Drawer %s closed by %s: expected=%s counted=%s difference=%s",
        drawer.id, operator, drawer.expected_cash_cents, counted_balance_cents, drawer.difference_cents,
    )
    return drawer
