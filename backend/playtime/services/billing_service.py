# Overview: Pure time/consumption/discount arithmetic for session bills; no I/O.

"""
Billing Calculator

WHY: Every screen that shows a balance and every settlement that charges one
must agree to the cent. Keeping the arithmetic in one pure module (no
database, no clock) makes it the single source of truth and trivially
testable.

RULES:
- The contracted time is a floor: leaving early still pays for it.
- Overtime always re-bills, rounded up to whole hours.
- First hour and additional hours have separate per-child rates.
- Full-afternoon sessions are a flat per-child rate, no hourly tiers.
- Discounts never push a total below zero.

All money is integer cents.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Union

from playtime.time_utils import elapsed_minutes as _elapsed_minutes, parse_iso_datetime, to_utc_z


FREE_TIME_REASON = "Free-time coupons only apply to a single contracted hour outside full-afternoon mode"


def _round_half_up(numerator: int, denominator: int) -> int:
    return (numerator + denominator // 2) // denominator


# =============================================================================
# INPUT TYPES
# =============================================================================

@dataclass(frozen=True)
class RateTable:
    """Per-child rates in cents."""
    first_hour_rate_cents: int
    additional_hour_rate_cents: int
    full_afternoon_rate_cents: int

    @classmethod
    def from_settings(cls, settings) -> "RateTable":
        return cls(
            first_hour_rate_cents=settings.first_hour_rate_cents,
            additional_hour_rate_cents=settings.additional_hour_rate_cents,
            full_afternoon_rate_cents=settings.full_afternoon_rate_cents,
        )


@dataclass(frozen=True)
class ConsumptionLine:
    product_id: int
    name: str
    price_cents: int
    quantity: int

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
        }


# Discount variants: exactly one arm per coupon kind.

@dataclass(frozen=True)
class PercentageDiscount:
    """Percent off the first-hour cost only."""
    percent: int


@dataclass(frozen=True)
class FixedDiscount:
    """Flat amount off the bill, not pro-rated."""
    amount_cents: int


@dataclass(frozen=True)
class FreeTimeDiscount:
    """Minutes of first-hour time given away, per child."""
    minutes: int


Discount = Union[PercentageDiscount, FixedDiscount, FreeTimeDiscount]


# =============================================================================
# OUTPUT
# =============================================================================

@dataclass(frozen=True)
class BillBreakdown:
    elapsed_minutes: float
    contracted_minutes: int
    minutes_to_charge: float
    hours_to_charge: int | None  # None = full afternoon
    additional_hours: int
    is_full_afternoon: bool
    child_count: int
    first_hour_cost_cents: int
    additional_hours_cost_cents: int
    time_cost_cents: int
    consumption_cost_cents: int
    subtotal_cents: int
    discount_cents: int
    total_cents: int
    already_paid_cents: int
    amount_due_cents: int
    inapplicable_reason: str | None = None

    @property
    def is_overtime(self) -> bool:
        return math.floor(self.elapsed_minutes) > self.contracted_minutes

    @property
    def duration_minutes(self) -> int:
        return int(round(self.minutes_to_charge))

    def to_dict(self) -> dict:
        return {
            "elapsed_minutes": round(self.elapsed_minutes, 2),
            "contracted_minutes": self.contracted_minutes,
            "minutes_to_charge": round(self.minutes_to_charge, 2),
            "hours_to_charge": self.hours_to_charge if not self.is_full_afternoon else "full_afternoon",
            "additional_hours": self.additional_hours,
            "is_full_afternoon": self.is_full_afternoon,
            "is_overtime": self.is_overtime,
            "child_count": self.child_count,
            "first_hour_cost_cents": self.first_hour_cost_cents,
            "additional_hours_cost_cents": self.additional_hours_cost_cents,
            "time_cost_cents": self.time_cost_cents,
            "consumption_cost_cents": self.consumption_cost_cents,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "already_paid_cents": self.already_paid_cents,
            "amount_due_cents": self.amount_due_cents,
            "inapplicable_reason": self.inapplicable_reason,
        }


# =============================================================================
# CALCULATOR
# =============================================================================

def discount_amount(
    discount: Discount | None,
    *,
    rates: RateTable,
    child_count: int,
    first_hour_cost_cents: int,
    hours_to_charge: int | None,
    is_full_afternoon: bool,
) -> tuple[int, str | None]:
    """
    Raw discount for one variant, before capping at the subtotal.

    Returns (cents, reason). reason is set when the variant does not apply in
    this context; the caller must then drop the coupon.
    """
    if discount is None:
        return 0, None

    if isinstance(discount, PercentageDiscount):
        return _round_half_up(first_hour_cost_cents * discount.percent, 100), None

    if isinstance(discount, FixedDiscount):
        return discount.amount_cents, None

    if isinstance(discount, FreeTimeDiscount):
        if is_full_afternoon or hours_to_charge != 1:
            return 0, FREE_TIME_REASON
        per_child = min(
            _round_half_up(rates.first_hour_rate_cents * discount.minutes, 60),
            rates.first_hour_rate_cents,
        )
        return per_child * child_count, None

    raise TypeError(f"Unknown discount variant: {discount!r}")


def calculate_bill(
    *,
    start_time: datetime,
    contracted_minutes: int,
    child_count: int,
    now: datetime,
    rates: RateTable,
    is_full_afternoon: bool = False,
    consumption: Iterable[ConsumptionLine] = (),
    discount: Discount | None = None,
    already_paid_cents: int = 0,
) -> BillBreakdown:
    """
    Turn elapsed time, contracted time, children, tab and discount into a bill.

    amount_due_cents is what a settlement must collect now: the total minus
    whatever earlier settlements already covered.
    """
    elapsed = _elapsed_minutes(start_time, now)
    minutes_to_charge = max(elapsed, float(contracted_minutes))

    if is_full_afternoon:
        hours_to_charge = None
        additional_hours = 0
        first_hour_cost = 0
        additional_cost = 0
        time_cost = rates.full_afternoon_rate_cents * child_count
    else:
        hours_to_charge = max(1, math.ceil(minutes_to_charge / 60))
        additional_hours = max(0, hours_to_charge - 1)
        first_hour_cost = rates.first_hour_rate_cents * child_count
        additional_cost = additional_hours * rates.additional_hour_rate_cents * child_count
        time_cost = first_hour_cost + additional_cost

    consumption_cost = sum(line.line_total_cents for line in consumption)
    subtotal = time_cost + consumption_cost

    raw_discount, reason = discount_amount(
        discount,
        rates=rates,
        child_count=child_count,
        first_hour_cost_cents=first_hour_cost,
        hours_to_charge=hours_to_charge,
        is_full_afternoon=is_full_afternoon,
    )
    applied_discount = min(raw_discount, subtotal)

    total = subtotal - applied_discount
    amount_due = max(0, total - already_paid_cents)

    return BillBreakdown(
        elapsed_minutes=elapsed,
        contracted_minutes=contracted_minutes,
        minutes_to_charge=minutes_to_charge,
        hours_to_charge=hours_to_charge,
        additional_hours=additional_hours,
        is_full_afternoon=is_full_afternoon,
        child_count=child_count,
        first_hour_cost_cents=first_hour_cost,
        additional_hours_cost_cents=additional_cost,
        time_cost_cents=time_cost,
        consumption_cost_cents=consumption_cost,
        subtotal_cents=subtotal,
        discount_cents=applied_discount,
        total_cents=total,
        already_paid_cents=already_paid_cents,
        amount_due_cents=amount_due,
        inapplicable_reason=reason,
    )


# =============================================================================
# READ-SIDE PROJECTION
# =============================================================================

@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable copy of an active session as last committed."""
    id: int
    responsible: str
    responsible_cpf: str
    children: tuple[str, ...]
    start_time: datetime
    max_time: int
    is_full_afternoon: bool
    consumption: tuple[ConsumptionLine, ...] = field(default_factory=tuple)
    coupon_code: str | None = None
    discount_applied_cents: int | None = None
    is_initial_payment_made: bool = False
    total_paid_cents: int = 0
    invoiced_consumption_cents: int = 0
    version_id: int = 1

    @property
    def billable_paid_cents(self) -> int:
        """Payments that count against the current tab (cleared consumption excluded)."""
        return max(0, self.total_paid_cents - self.invoiced_consumption_cents)

    @property
    def stored_discount(self) -> Discount | None:
        if self.discount_applied_cents:
            return FixedDiscount(self.discount_applied_cents)
        return None

    def to_wire(self) -> dict:
        """Plain-JSON form for the cross-process feed relay."""
        return {
            "id": self.id,
            "responsible": self.responsible,
            "responsible_cpf": self.responsible_cpf,
            "children": list(self.children),
            "start_time": self.start_time.isoformat(),
            "max_time": self.max_time,
            "is_full_afternoon": self.is_full_afternoon,
            "consumption": [
                [line.product_id, line.name, line.price_cents, line.quantity]
                for line in self.consumption
            ],
            "coupon_code": self.coupon_code,
            "discount_applied_cents": self.discount_applied_cents,
            "is_initial_payment_made": self.is_initial_payment_made,
            "total_paid_cents": self.total_paid_cents,
            "invoiced_consumption_cents": self.invoiced_consumption_cents,
            "version_id": self.version_id,
        }

    @classmethod
    def from_wire(cls, data: dict) -> "SessionSnapshot":
        kwargs = dict(data)
        kwargs["children"] = tuple(kwargs.get("children") or ())
        kwargs["start_time"] = parse_iso_datetime(kwargs["start_time"])
        kwargs["consumption"] = tuple(ConsumptionLine(*line) for line in kwargs.get("consumption") or ())
        return cls(**kwargs)


@dataclass(frozen=True)
class SessionView:
    snapshot: SessionSnapshot
    bill: BillBreakdown
    remaining_seconds: int

    @property
    def is_time_up(self) -> bool:
        return self.remaining_seconds <= 0

    @property
    def has_balance(self) -> bool:
        return (
            not self.snapshot.is_initial_payment_made
            or bool(self.snapshot.consumption)
            or self.is_time_up
        )

    def to_dict(self) -> dict:
        s = self.snapshot
        return {
            "id": s.id,
            "responsible": s.responsible,
            "responsible_cpf": s.responsible_cpf,
            "children": list(s.children),
            "start_time": to_utc_z(s.start_time),
            "max_time": s.max_time,
            "is_full_afternoon": s.is_full_afternoon,
            "consumption": [line.to_dict() for line in s.consumption],
            "coupon_code": s.coupon_code,
            "is_initial_payment_made": s.is_initial_payment_made,
            "total_paid_cents": s.total_paid_cents,
            "remaining_seconds": self.remaining_seconds,
            "is_time_up": self.is_time_up,
            "has_balance": self.has_balance,
            "bill": self.bill.to_dict(),
        }


def project(snapshot: SessionSnapshot, rates: RateTable, now: datetime) -> SessionView:
    """
    Display projection for a periodic tick.

    Pure function of the last snapshot and the wall clock; safe to run
    concurrently with writes because it never touches storage.
    """
    bill = calculate_bill(
        start_time=snapshot.start_time,
        contracted_minutes=snapshot.max_time,
        child_count=len(snapshot.children),
        now=now,
        rates=rates,
        is_full_afternoon=snapshot.is_full_afternoon,
        consumption=snapshot.consumption,
        discount=snapshot.stored_discount,
        already_paid_cents=snapshot.billable_paid_cents,
    )
    elapsed_seconds = int((now - snapshot.start_time).total_seconds())
    remaining = snapshot.max_time * 60 - max(0, elapsed_seconds)
    return SessionView(snapshot=snapshot, bill=bill, remaining_seconds=remaining)
