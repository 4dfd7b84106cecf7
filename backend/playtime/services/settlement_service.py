# Overview: Settlement protocol: partial settle, checkout, cancellation, quotes.

"""
Settlement Protocol

WHY: Parents pay up front for the contracted time, sometimes pay again for
snacks mid-visit, and pay for overtime on the way out. Each of those is a
settlement of the same session, and each must be all-or-nothing: the sale
record, the session update (or deletion) and the coupon usage counter move
together in one transaction.

OUTCOMES:
- Open-Settled: not overtime and not a checkout. Tab cleared, session stays
  on the floor with its balance paid.
- Closed: overtime or explicit checkout. Session removed; only the sale
  record remains.

MONEY:
- amount_due comes from billing_service over the cumulative bill, minus
  what earlier settlements already covered on the current tab
- change = max(0, cash - (amount_due - non_cash))
- Stock is not touched here; it moved when items were added to the tab
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from ..extensions import db
from ..models import ActiveSession, Coupon, SaleRecord, SalePayment
from ..models.sales import TENDER_CASH, VALID_TENDER_TYPES
from ..validation import ValidationError, coerce_int, MAX_AMOUNT_CENTS
from playtime.time_utils import utcnow
from . import cash_drawer_service, consumption_service, coupon_service, session_service, settings_service
from .billing_service import BillBreakdown, Discount, RateTable, calculate_bill
from .concurrency import atomic, TransactionAborted

logger = logging.getLogger(__name__)


class SettlementError(Exception):
    """Raised for settlement rule violations."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class AmountMismatch(SettlementError):
    """Tendered payments do not fit the amount due."""


# =============================================================================
# TYPES
# =============================================================================

@dataclass(frozen=True)
class PaymentLine:
    tender_type: str
    amount_cents: int

    def to_dict(self) -> dict:
        return {"tender_type": self.tender_type, "amount_cents": self.amount_cents}


@dataclass(frozen=True)
class SettlementResult:
    session_id: int
    closed: bool
    bill: BillBreakdown
    amount_charged_cents: int
    change_given_cents: int
    coupon_counted: bool
    sale: SaleRecord | None = None

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "closed": self.closed,
            "amount_charged_cents": self.amount_charged_cents,
            "change_given_cents": self.change_given_cents,
            "coupon_counted": self.coupon_counted,
            "bill": self.bill.to_dict(),
            "sale": self.sale.to_dict() if self.sale is not None else None,
        }


def normalize_payments(payments: Iterable) -> list[PaymentLine]:
    """
    Accept PaymentLine objects or {"tender_type", "amount_cents"} dicts.

    Every amount must be a positive integer number of cents and every tender
    one of CASH, PIX, CREDIT, DEBIT.
    """
    lines: list[PaymentLine] = []
    for raw in payments or []:
        if isinstance(raw, PaymentLine):
            tender, amount = raw.tender_type, raw.amount_cents
        elif isinstance(raw, dict):
            tender, amount = raw.get("tender_type"), raw.get("amount_cents")
        else:
            raise ValidationError("Each payment must be an object with tender_type and amount_cents")

        tender = str(tender or "").strip().upper()
        if tender not in VALID_TENDER_TYPES:
            raise ValidationError(f"tender_type must be one of {VALID_TENDER_TYPES}")
        amount = coerce_int("amount_cents", amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be > 0")
        if amount > MAX_AMOUNT_CENTS:
            raise ValidationError(f"amount_cents cannot exceed {MAX_AMOUNT_CENTS}")
        lines.append(PaymentLine(tender_type=tender, amount_cents=amount))
    return lines


# =============================================================================
# BILL
# =============================================================================

def _discount_for(session: ActiveSession, coupon: Coupon | None) -> Discount | None:
    if coupon is not None:
        return coupon_service.resolve_discount(coupon)
    return session_service.snapshot_of(session).stored_discount


def _bill(session: ActiveSession, rates: RateTable, now: datetime, coupon: Coupon | None) -> BillBreakdown:
    snapshot = session_service.snapshot_of(session)
    bill = calculate_bill(
        start_time=session.start_time,
        contracted_minutes=session.max_time,
        child_count=session.child_count,
        now=now,
        rates=rates,
        is_full_afternoon=session.is_full_afternoon,
        consumption=snapshot.consumption,
        discount=_discount_for(session, coupon),
        already_paid_cents=snapshot.billable_paid_cents,
    )
    if coupon is not None and bill.inapplicable_reason:
        coupon_service.check_context(coupon, bill.hours_to_charge, session.is_full_afternoon)
    return bill


def quote(session_id: int, coupon_code: str | None = None, now: datetime | None = None) -> BillBreakdown:
    """What settle() would charge right now. Writes nothing."""
    now = now or utcnow()
    session = session_service.require_session(session_id)
    coupon = coupon_service.require_coupon_for_session(coupon_code, session, now) if coupon_code else None
    return _bill(session, settings_service.get_rate_table(), now, coupon)


def _check_tender(payments: list[PaymentLine], amount_due: int) -> int:
    """Validate tender against amount_due; returns change to give."""
    cash = sum(p.amount_cents for p in payments if p.tender_type == TENDER_CASH)
    non_cash = sum(p.amount_cents for p in payments if p.tender_type != TENDER_CASH)
    tendered = cash + non_cash

    if tendered < amount_due:
        raise AmountMismatch(
            "Payments do not cover the amount due",
            {"amount_due_cents": amount_due, "tendered_cents": tendered},
        )
    return max(0, cash - (amount_due - non_cash))


# =============================================================================
# SETTLE
# =============================================================================

def settle(
    session_id: int,
    payments: Iterable,
    operator: str,
    coupon_code: str | None = None,
    checkout: bool = False,
    now: datetime | None = None,
) -> SettlementResult:
    """
    Charge a session and record the sale.

    Raises:
        DrawerNotOpen: no open cash drawer
        CouponInvalid / CouponInapplicableContext: coupon_code rejected
        CouponLocked: session already counted a different coupon
        AmountMismatch: tender does not fit amount due
        TransactionAborted: session vanished (e.g. already closed by another
            terminal) or a concurrent write won; nothing was saved
    """
    if not operator:
        raise ValidationError("operator required")
    now = now or utcnow()
    lines = normalize_payments(payments)
    rates = settings_service.get_rate_table()

    with atomic("settlement"):
        drawer = cash_drawer_service.require_open_drawer()

        session = session_service.lock_session(session_id)
        if session is None:
            raise TransactionAborted("Session no longer exists", {"session_id": session_id})
        coupon = coupon_service.require_coupon_for_session(coupon_code, session, now) if coupon_code else None

        bill = _bill(session, rates, now, coupon)
        amount_due = bill.amount_due_cents
        change = _check_tender(lines, amount_due)
        closing = checkout or bill.is_overtime

        if coupon is not None:
            session.coupon_id = coupon.id
            session.coupon_code = coupon.code
            session.discount_applied_cents = bill.discount_cents or None
        coupon_counted = coupon_service.count_usage_once(session, session.coupon_id)

        sale = None
        if amount_due > 0 or not closing:
            sale = SaleRecord(
                finalized_at=now,
                finalized_by=operator,
                session_ref=session.id,
                responsible=session.responsible,
                responsible_cpf=session.responsible_cpf,
                children=list(session.children or []),
                closed_session=closing,
                duration_minutes=bill.duration_minutes,
                time_cost_cents=bill.time_cost_cents,
                consumption=[item.to_dict() for item in session.consumption],
                consumption_cost_cents=bill.consumption_cost_cents,
                coupon_code=session.coupon_code,
                coupon_id=session.coupon_id,
                discount_applied_cents=bill.discount_cents,
                total_amount_cents=amount_due,
                change_given_cents=change,
                cash_session_id=drawer.id,
            )
            for line in lines:
                sale.payments.append(SalePayment(tender_type=line.tender_type, amount_cents=line.amount_cents))
            db.session.add(sale)

        if closing:
            db.session.delete(session)
        else:
            session.consumption.clear()
            session.max_time = max(session.max_time, bill.duration_minutes)
            session.is_initial_payment_made = True
            session.total_paid_cents = session.total_paid_cents + amount_due
            session.invoiced_consumption_cents = session.invoiced_consumption_cents + bill.consumption_cost_cents

    logger.info(
        "Session %s settled by %s: charged=%s change=%s %s",
        session_id, operator, amount_due, change, "closed" if closing else "kept open",
    )
    session_service.broadcast()
    return SettlementResult(
        session_id=session_id,
        closed=closing,
        bill=bill,
        amount_charged_cents=amount_due,
        change_given_cents=change,
        coupon_counted=coupon_counted,
        sale=sale,
    )


def cancel_session(session_id: int, operator: str | None = None) -> int:
    """
    Void a session: every unit on the tab goes back to stock, the session is
    deleted, no sale record. Returns the number of units restocked.
    """
    with atomic("session cancel"):
        session = session_service.lock_session(session_id)
        if session is None:
            raise session_service.SessionNotFound("Session not found", {"session_id": session_id})
        moved = consumption_service.return_to_stock(session)
        db.session.delete(session)

    logger.info("Session %s cancelled by %s (%d units restocked)", session_id, operator or "unknown", moved)
    session_service.broadcast()
    return moved
