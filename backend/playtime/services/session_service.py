# Overview: Active session store: check-in, add-time, lookup, snapshots and feed broadcast.

"""
Active Session Store

WHY: The floor list is shared by every terminal. Sessions are created here,
extended here, and turned into immutable snapshots here, both for the live
feed and for the display projection in billing_service.

DESIGN:
- A coupon given at check-in is validated and its discount frozen into
  discount_applied_cents; later rate changes do not move it
- broadcast() runs after a commit and never inside a transaction
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..extensions import db, session_feed
from ..models import ActiveSession
from ..validation import ValidationError, MAX_SESSION_MINUTES
from playtime.time_utils import utcnow
from . import coupon_service, settings_service
from .billing_service import (
    ConsumptionLine,
    SessionSnapshot,
    SessionView,
    calculate_bill,
    project,
)
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Raised for active session operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class SessionNotFound(SessionError):
    pass


# =============================================================================
# LOOKUP / SNAPSHOTS
# =============================================================================

def get_session(session_id: int) -> ActiveSession | None:
    return db.session.get(ActiveSession, session_id)


def require_session(session_id: int) -> ActiveSession:
    session = get_session(session_id)
    if session is None:
        raise SessionNotFound("Session not found", {"session_id": session_id})
    return session


def lock_session(session_id: int) -> ActiveSession | None:
    """Load a session for writing, inside the caller's transaction."""
    return lock_for_update(db.session.query(ActiveSession).filter(ActiveSession.id == session_id)).first()


def list_active_sessions() -> list[ActiveSession]:
    return db.session.query(ActiveSession).order_by(ActiveSession.start_time.asc(), ActiveSession.id.asc()).all()


def find_sessions_by_cpf(responsible_cpf: str) -> list[ActiveSession]:
    return (
        db.session.query(ActiveSession)
        .filter(ActiveSession.responsible_cpf == responsible_cpf.strip())
        .order_by(ActiveSession.start_time.asc())
        .all()
    )


def snapshot_of(session: ActiveSession) -> SessionSnapshot:
    return SessionSnapshot(
        id=session.id,
        responsible=session.responsible,
        responsible_cpf=session.responsible_cpf,
        children=tuple(session.children or ()),
        start_time=session.start_time,
        max_time=session.max_time,
        is_full_afternoon=session.is_full_afternoon,
        consumption=tuple(
            ConsumptionLine(
                product_id=item.product_id,
                name=item.name,
                price_cents=item.price_cents,
                quantity=item.quantity,
            )
            for item in session.consumption
        ),
        coupon_code=session.coupon_code,
        discount_applied_cents=session.discount_applied_cents,
        is_initial_payment_made=session.is_initial_payment_made,
        total_paid_cents=session.total_paid_cents,
        invoiced_consumption_cents=session.invoiced_consumption_cents,
        version_id=session.version_id,
    )


def snapshots() -> tuple[SessionSnapshot, ...]:
    return tuple(snapshot_of(s) for s in list_active_sessions())


def view(session: ActiveSession, now: datetime | None = None) -> SessionView:
    return project(snapshot_of(session), settings_service.get_rate_table(), now or utcnow())


def list_views(now: datetime | None = None) -> list[SessionView]:
    rates = settings_service.get_rate_table()
    now = now or utcnow()
    return [project(snap, rates, now) for snap in snapshots()]


def broadcast(feed=None) -> int:
    """Publish the committed floor list to live subscribers."""
    feed = feed or session_feed
    return feed.publish(snapshots())


# =============================================================================
# WRITES
# =============================================================================

def check_in(
    *,
    responsible: str,
    responsible_cpf: str,
    children: list[str],
    max_time: int,
    is_full_afternoon: bool = False,
    responsible_phone: str | None = None,
    coupon_code: str | None = None,
    operator: str | None = None,
    now: datetime | None = None,
) -> ActiveSession:
    """
    Start a session.

    Raises:
        ValidationError: no children, or non-positive contracted time
        CouponInvalid: coupon_code given but not usable
        CouponInapplicableContext: FREE_TIME coupon on a multi-hour or
            full-afternoon check-in
    """
    if not children:
        raise ValidationError("At least one child name is required")
    if max_time <= 0:
        raise ValidationError("max_time must be > 0")

    now = now or utcnow()
    coupon = None
    discount_cents = None

    if coupon_code:
        coupon = coupon_service.require_coupon(coupon_code, now)
        bill = calculate_bill(
            start_time=now,
            contracted_minutes=max_time,
            child_count=len(children),
            now=now,
            rates=settings_service.get_rate_table(),
            is_full_afternoon=is_full_afternoon,
            discount=coupon_service.resolve_discount(coupon),
        )
        coupon_service.check_context(coupon, bill.hours_to_charge, is_full_afternoon)
        discount_cents = bill.discount_cents or None

    session = ActiveSession(
        responsible=responsible,
        responsible_cpf=responsible_cpf,
        responsible_phone=responsible_phone,
        children=list(children),
        start_time=now,
        max_time=max_time,
        is_full_afternoon=is_full_afternoon,
        coupon_code=coupon.code if coupon else None,
        coupon_id=coupon.id if coupon else None,
        discount_applied_cents=discount_cents,
        is_initial_payment_made=False,
        total_paid_cents=0,
        invoiced_consumption_cents=0,
        is_coupon_usage_counted=False,
        checked_in_by=operator,
    )
    with atomic("check-in"):
        db.session.add(session)

    logger.info(
        "Checked in session %s: %d children, %d min%s",
        session.id,
        session.child_count,
        max_time,
        f", coupon {session.coupon_code}" if session.coupon_code else "",
    )
    broadcast()
    return session


def add_time(session_id: int, minutes: int) -> ActiveSession:
    """
    Extend the contracted time.

    The extension is unpaid, so the session shows a balance again until the
    next settlement.
    """
    if minutes <= 0:
        raise ValidationError("minutes must be > 0")

    with atomic("add time"):
        session = lock_session(session_id)
        if session is None:
            raise SessionNotFound("Session not found", {"session_id": session_id})
        if session.max_time + minutes > MAX_SESSION_MINUTES:
            raise ValidationError(f"max_time cannot exceed {MAX_SESSION_MINUTES} minutes")
        session.max_time = session.max_time + minutes
        session.is_initial_payment_made = False

    logger.info("Session %s extended by %d min (max_time=%d)", session_id, minutes, session.max_time)
    broadcast()
    return session
