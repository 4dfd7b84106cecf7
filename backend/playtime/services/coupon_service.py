# Overview: Coupon lookup, usability and context rules, usage counting, admin CRUD.

"""
Coupon Validator

WHY: A coupon is checked twice (at check-in and again at settlement, where
the operator may swap it) and may be applied across several partial
settlements of the same session. These rules live here so both call sites
agree.

RULES:
- Codes are case-insensitive (stored upper-cased)
- Not found and not usable are the same answer to callers
- FREE_TIME coupons only fit a single contracted hour outside full-afternoon
  mode; the caller must drop the coupon otherwise
- Global usage counter moves at most once per session, and once it has
  moved the session keeps that coupon
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import update

from ..extensions import db
from ..models import Coupon, ActiveSession
from ..models.coupons import DISCOUNT_PERCENTAGE, DISCOUNT_FIXED, DISCOUNT_FREE_TIME
from ..validation import ConflictError, ValidationError
from playtime.time_utils import utcnow
from .billing_service import (
    Discount,
    FixedDiscount,
    FreeTimeDiscount,
    PercentageDiscount,
    FREE_TIME_REASON,
)
from .concurrency import atomic, TransactionAborted

logger = logging.getLogger(__name__)

COUPON_MUTABLE_FIELDS = {"code", "discount_type", "discount_value", "status", "valid_until", "usage_limit"}


class CouponError(Exception):
    """Base for coupon rule violations."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class CouponInvalid(CouponError):
    """Not found, inactive, expired or usage-exhausted."""


class CouponInapplicableContext(CouponError):
    """Coupon exists and is usable, but not for this session's time mode."""


class CouponLocked(CouponError):
    """Session already counted a different coupon."""


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


# =============================================================================
# VALIDATOR
# =============================================================================

def lookup_coupon(code: str | None, now: datetime | None = None) -> Coupon | None:
    """Return the coupon for `code` only if it is usable right now."""
    normalized = normalize_code(code)
    if not normalized:
        return None
    coupon = db.session.query(Coupon).filter(Coupon.code == normalized).first()
    if coupon is None or not coupon.is_usable(now or utcnow()):
        return None
    return coupon


def require_coupon(code: str | None, now: datetime | None = None) -> Coupon:
    coupon = lookup_coupon(code, now)
    if coupon is None:
        raise CouponInvalid("Invalid or expired coupon", {"coupon_code": normalize_code(code)})
    return coupon


def require_coupon_for_session(code: str | None, session: ActiveSession, now: datetime | None = None) -> Coupon:
    """
    Resolve a coupon named at settlement of `session`.

    Once the session's coupon has been counted it stays the session's coupon:
    naming it again skips the usage-limit gate (this session's own use may be
    the one that exhausted it), naming another one raises CouponLocked.
    """
    normalized = normalize_code(code)
    if not session.is_coupon_usage_counted or session.coupon_id is None:
        return require_coupon(normalized, now)
    if normalized != session.coupon_code:
        raise CouponLocked(
            "Session already used a coupon",
            {"coupon_code": normalized, "session_coupon_code": session.coupon_code},
        )
    coupon = db.session.get(Coupon, session.coupon_id)
    if coupon is None or not coupon.is_usable(now or utcnow(), ignore_usage_limit=True):
        raise CouponInvalid("Invalid or expired coupon", {"coupon_code": normalized})
    return coupon


def resolve_discount(coupon: Coupon) -> Discount:
    """Map a stored coupon onto its discount variant."""
    if coupon.discount_type == DISCOUNT_PERCENTAGE:
        return PercentageDiscount(percent=coupon.discount_value)
    if coupon.discount_type == DISCOUNT_FIXED:
        return FixedDiscount(amount_cents=coupon.discount_value)
    if coupon.discount_type == DISCOUNT_FREE_TIME:
        return FreeTimeDiscount(minutes=coupon.discount_value)
    raise CouponInvalid(f"Unknown discount type: {coupon.discount_type}", {"coupon_code": coupon.code})


def check_context(coupon: Coupon, hours_to_charge: int | None, is_full_afternoon: bool) -> None:
    """Raise CouponInapplicableContext when a FREE_TIME coupon does not fit the session."""
    if coupon.discount_type != DISCOUNT_FREE_TIME:
        return
    if is_full_afternoon or hours_to_charge != 1:
        raise CouponInapplicableContext(
            FREE_TIME_REASON,
            {"coupon_code": coupon.code, "hours_to_charge": hours_to_charge, "is_full_afternoon": is_full_afternoon},
        )


def count_usage_once(session: ActiveSession, coupon_id: int | None) -> bool:
    """
    Bump the coupon's global use counter for this session, at most once.

    Runs inside the caller's transaction (settlement), so the flag and the
    counter commit or roll back together. Returns True if it counted.
    """
    if coupon_id is None or session.is_coupon_usage_counted:
        return False
    db.session.execute(
        update(Coupon)
        .where(Coupon.id == coupon_id)
        .values(uses=Coupon.uses + 1)
        .execution_options(synchronize_session=False)
    )
    session.is_coupon_usage_counted = True
    return True


# =============================================================================
# ADMIN
# =============================================================================

def list_coupons() -> list[Coupon]:
    return db.session.query(Coupon).order_by(Coupon.code.asc()).all()


def get_coupon(coupon_id: int) -> Coupon | None:
    return db.session.get(Coupon, coupon_id)


def _ensure_code_free(code: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Coupon.id).filter(Coupon.code == code)
    if exclude_id is not None:
        q = q.filter(Coupon.id != exclude_id)
    if q.first():
        raise ConflictError(f"Coupon code {code} already exists")


def create_coupon(*, patch: dict) -> Coupon:
    """Create from a validated patch (see validation.enforce_rules_coupon)."""
    code = normalize_code(patch["code"])
    _ensure_code_free(code)
    coupon = Coupon(
        code=code,
        discount_type=patch["discount_type"],
        discount_value=patch["discount_value"],
        status=patch.get("status") or "ACTIVE",
        valid_until=patch.get("valid_until"),
        usage_limit=patch.get("usage_limit") or 0,
        uses=0,
    )
    try:
        with atomic("coupon create"):
            db.session.add(coupon)
    except TransactionAborted as exc:
        raise ConflictError(f"Coupon code {code} already exists") from exc
    logger.info("Coupon created: %s (%s %s)", coupon.code, coupon.discount_type, coupon.discount_value)
    return coupon


def update_coupon(*, coupon_id: int, patch: dict) -> Coupon | None:
    if "code" in patch:
        patch["code"] = normalize_code(patch["code"])
        _ensure_code_free(patch["code"], exclude_id=coupon_id)

    with atomic("coupon update"):
        coupon = db.session.get(Coupon, coupon_id)
        if coupon is None:
            return None
        for key, value in patch.items():
            if key in COUPON_MUTABLE_FIELDS:
                setattr(coupon, key, value)
        if coupon.discount_type == DISCOUNT_PERCENTAGE and coupon.discount_value > 100:
            raise ValidationError("percentage discount_value cannot exceed 100")
    return coupon


def delete_coupon(*, coupon_id: int) -> bool:
    """
    Remove a coupon. Returns False if not found.

    Raises ConflictError while an active session still carries it. Sale
    records keep their own copy of the code.
    """
    with atomic("coupon delete"):
        coupon = db.session.get(Coupon, coupon_id)
        if coupon is None:
            return False
        in_use = db.session.query(ActiveSession.id).filter(ActiveSession.coupon_id == coupon_id).first()
        if in_use:
            raise ConflictError(f"Coupon {coupon.code} is used by an active session")
        db.session.delete(coupon)

    logger.info("Coupon %s deleted", coupon_id)
    return True
