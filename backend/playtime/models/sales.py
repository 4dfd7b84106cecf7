from __future__ import annotations

from ..extensions import db
from playtime.time_utils import to_utc_z


# =============================================================================
# TENDER TYPES (CONSTANTS)
# =============================================================================

TENDER_CASH = "CASH"
TENDER_PIX = "PIX"
TENDER_CREDIT = "CREDIT"
TENDER_DEBIT = "DEBIT"

VALID_TENDER_TYPES = [
    TENDER_CASH,
    TENDER_PIX,
    TENDER_CREDIT,
    TENDER_DEBIT,
]


class SaleRecord(db.Model):
    """
    Receipt for one settlement event.

    IMMUTABLE: append-only. Written once, in the same transaction as the
    session update/delete and the coupon usage increment, and never edited.
    A session settled twice (partial, then final) produces two records.
    """
    __tablename__ = "sale_records"
    __table_args__ = (
        db.Index("ix_sale_records_cpf_finalized", "responsible_cpf", "finalized_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    finalized_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    finalized_by = db.Column(db.String(128), nullable=True)

    # Session snapshot (the session row itself may be gone)
    session_ref = db.Column(db.Integer, nullable=False, index=True)
    responsible = db.Column(db.String(255), nullable=False)
    responsible_cpf = db.Column(db.String(32), nullable=False)
    children = db.Column(db.JSON, nullable=False)
    closed_session = db.Column(db.Boolean, nullable=False, default=True)

    duration_minutes = db.Column(db.Integer, nullable=False)
    time_cost_cents = db.Column(db.Integer, nullable=False)
    consumption = db.Column(db.JSON, nullable=False)
    consumption_cost_cents = db.Column(db.Integer, nullable=False)

    coupon_code = db.Column(db.String(64), nullable=True)
    coupon_id = db.Column(db.Integer, nullable=True)
    discount_applied_cents = db.Column(db.Integer, nullable=False, default=0)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    change_given_cents = db.Column(db.Integer, nullable=False, default=0)

    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=False, index=True)

    payments = db.relationship(
        "SalePayment",
        order_by="SalePayment.id",
        cascade="all, delete-orphan",
        backref=db.backref("sale", lazy=True),
        lazy=True,
    )

    @property
    def cash_tendered_cents(self) -> int:
        return sum(p.amount_cents for p in self.payments if p.tender_type == TENDER_CASH)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "finalized_at": to_utc_z(self.finalized_at),
            "finalized_by": self.finalized_by,
            "session_ref": self.session_ref,
            "responsible": self.responsible,
            "responsible_cpf": self.responsible_cpf,
            "children": list(self.children or []),
            "closed_session": self.closed_session,
            "duration_minutes": self.duration_minutes,
            "time_cost_cents": self.time_cost_cents,
            "consumption": list(self.consumption or []),
            "consumption_cost_cents": self.consumption_cost_cents,
            "coupon_code": self.coupon_code,
            "coupon_id": self.coupon_id,
            "discount_applied_cents": self.discount_applied_cents,
            "total_amount_cents": self.total_amount_cents,
            "payments": [p.to_dict() for p in self.payments],
            "change_given_cents": self.change_given_cents,
            "cash_session_id": self.cash_session_id,
        }


class SalePayment(db.Model):
    """One tender line of a settlement (cash, PIX, credit, debit)."""
    __tablename__ = "sale_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_sale_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sale_records.id"), nullable=False, index=True)
    tender_type = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "tender_type": self.tender_type,
            "amount_cents": self.amount_cents,
        }
