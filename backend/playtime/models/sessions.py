from __future__ import annotations

from ..extensions import db
from playtime.time_utils import to_utc_z


class ActiveSession(db.Model):
    """
    One checked-in group (responsible party + children) on the floor.

    LIFECYCLE:
    - Created at check-in
    - Mutated by add-time, consumption edits and partial settlements
    - Deleted when a settlement closes it or when it is cancelled;
      afterwards it only exists as SaleRecord history

    MONEY:
    - total_paid_cents: running sum of every settlement of this session
    - invoiced_consumption_cents: consumption already billed by partial
      settlements and cleared from the tab
    - discount_applied_cents: frozen at check-in (or replaced at settlement)

    is_coupon_usage_counted guarantees the coupon's global use counter moves
    at most once for the whole session.
    """
    __tablename__ = "active_sessions"
    __table_args__ = (
        db.CheckConstraint("max_time > 0", name="ck_active_sessions_max_time_positive"),
        db.CheckConstraint("total_paid_cents >= 0", name="ck_active_sessions_paid_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    responsible = db.Column(db.String(255), nullable=False)
    responsible_cpf = db.Column(db.String(32), nullable=False, index=True)
    responsible_phone = db.Column(db.String(32), nullable=True)
    children = db.Column(db.JSON, nullable=False)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    max_time = db.Column(db.Integer, nullable=False)  # contracted minutes
    is_full_afternoon = db.Column(db.Boolean, nullable=False, default=False)

    coupon_code = db.Column(db.String(64), nullable=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=True, index=True)
    discount_applied_cents = db.Column(db.Integer, nullable=True)

    is_initial_payment_made = db.Column(db.Boolean, nullable=False, default=False)
    total_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    invoiced_consumption_cents = db.Column(db.Integer, nullable=False, default=0)
    is_coupon_usage_counted = db.Column(db.Boolean, nullable=False, default=False)

    checked_in_by = db.Column(db.String(128), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    consumption = db.relationship(
        "SessionConsumptionItem",
        order_by="SessionConsumptionItem.id",
        cascade="all, delete-orphan",
        backref=db.backref("session", lazy=True),
        lazy=True,
    )
    coupon = db.relationship("Coupon", foreign_keys=[coupon_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def child_count(self) -> int:
        return len(self.children or [])

    def find_item(self, product_id: int) -> "SessionConsumptionItem | None":
        for item in self.consumption:
            if item.product_id == product_id:
                return item
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "responsible": self.responsible,
            "responsible_cpf": self.responsible_cpf,
            "responsible_phone": self.responsible_phone,
            "children": list(self.children or []),
            "start_time": to_utc_z(self.start_time),
            "max_time": self.max_time,
            "is_full_afternoon": self.is_full_afternoon,
            "consumption": [item.to_dict() for item in self.consumption],
            "coupon_code": self.coupon_code,
            "coupon_id": self.coupon_id,
            "discount_applied_cents": self.discount_applied_cents,
            "is_initial_payment_made": self.is_initial_payment_made,
            "total_paid_cents": self.total_paid_cents,
            "invoiced_consumption_cents": self.invoiced_consumption_cents,
            "is_coupon_usage_counted": self.is_coupon_usage_counted,
            "checked_in_by": self.checked_in_by,
            "version_id": self.version_id,
        }


class SessionConsumptionItem(db.Model):
    """
    One product line on a session tab.

    price_cents and name are copied from the product when the line is first
    added, so later catalog edits never reprice an open tab.
    """
    __tablename__ = "session_consumption_items"
    __table_args__ = (
        db.UniqueConstraint("session_id", "product_id", name="uq_consumption_session_product"),
        db.CheckConstraint("quantity >= 1", name="ck_consumption_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("active_sessions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

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
