from __future__ import annotations

from ..extensions import db
from playtime.time_utils import to_utc_z


DRAWER_OPEN = "OPEN"
DRAWER_CLOSED = "CLOSED"


class CashSession(db.Model):
    """
    Daily cash drawer.

    LIFECYCLE:
    - OPEN: settlements may be recorded, withdrawals appended
    - CLOSED: counted, reconciled; immutable afterwards

    At most one OPEN drawer system-wide. The service checks first; the
    partial unique index makes a race between two terminals fail instead of
    producing two open drawers.
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        db.Index(
            "uq_cash_sessions_single_open",
            "status",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(16), nullable=False, default=DRAWER_OPEN, index=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    opened_by = db.Column(db.String(128), nullable=False)
    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    # Set when closing
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by = db.Column(db.String(128), nullable=True)
    counted_balance_cents = db.Column(db.Integer, nullable=True)
    expected_cash_cents = db.Column(db.Integer, nullable=True)  # opening + cash sales - withdrawals
    difference_cents = db.Column(db.Integer, nullable=True)     # counted - expected
    final_cash_sales_cents = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    withdrawals = db.relationship(
        "CashWithdrawal",
        order_by="CashWithdrawal.id",
        cascade="all, delete-orphan",
        backref=db.backref("cash_session", lazy=True),
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def withdrawals_total_cents(self) -> int:
        return sum(w.amount_cents for w in self.withdrawals)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "opened_at": to_utc_z(self.opened_at),
            "opened_by": self.opened_by,
            "opening_balance_cents": self.opening_balance_cents,
            "withdrawals": [w.to_dict() for w in self.withdrawals],
            "withdrawals_total_cents": self.withdrawals_total_cents,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by": self.closed_by,
            "counted_balance_cents": self.counted_balance_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "difference_cents": self.difference_cents,
            "final_cash_sales_cents": self.final_cash_sales_cents,
            "version_id": self.version_id,
        }


class CashWithdrawal(db.Model):
    """Cash taken out of an open drawer (bank deposit, petty cash). Append-only."""
    __tablename__ = "cash_withdrawals"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_cash_withdrawals_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    operator = db.Column(db.String(128), nullable=False)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "operator": self.operator,
            "occurred_at": to_utc_z(self.occurred_at),
        }
