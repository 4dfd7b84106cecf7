from __future__ import annotations

from ..extensions import db
from playtime.time_utils import to_utc_z


DISCOUNT_PERCENTAGE = "PERCENTAGE"  # discount_value = percent of the first hour
DISCOUNT_FIXED = "FIXED"            # discount_value = cents
DISCOUNT_FREE_TIME = "FREE_TIME"    # discount_value = minutes of first-hour time
VALID_DISCOUNT_TYPES = {DISCOUNT_PERCENTAGE, DISCOUNT_FIXED, DISCOUNT_FREE_TIME}

COUPON_ACTIVE = "ACTIVE"
COUPON_INACTIVE = "INACTIVE"
VALID_COUPON_STATUSES = {COUPON_ACTIVE, COUPON_INACTIVE}


class Coupon(db.Model):
    """
    Discount coupon.

    Codes are case-insensitive: always stored upper-cased.
    usage_limit = 0 means unlimited. `uses` is only ever bumped with an
    atomic increment at settlement, once per session.
    """
    __tablename__ = "coupons"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_coupons_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False)

    discount_type = db.Column(db.String(16), nullable=False)
    discount_value = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=COUPON_ACTIVE, index=True)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)

    usage_limit = db.Column(db.Integer, nullable=False, default=0)
    uses = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def is_usable(self, now, ignore_usage_limit: bool = False) -> bool:
        if self.status != COUPON_ACTIVE:
            return False
        if self.valid_until is not None and self.valid_until < now:
            return False
        if ignore_usage_limit:
            return True
        if self.usage_limit and self.usage_limit > 0 and self.uses >= self.usage_limit:
            return False
        return True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "status": self.status,
            "valid_until": to_utc_z(self.valid_until) if self.valid_until else None,
            "usage_limit": self.usage_limit,
            "uses": self.uses,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
