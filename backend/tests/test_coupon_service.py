"""Coupon validator and admin tests."""

from datetime import datetime, timedelta

import pytest

from playtime.extensions import db
from playtime.models import ActiveSession, Coupon
from playtime.services import coupon_service
from playtime.services.billing_service import FixedDiscount, FreeTimeDiscount, PercentageDiscount
from playtime.services.coupon_service import CouponInapplicableContext, CouponInvalid, CouponLocked
from playtime.validation import ConflictError, ValidationError

T0 = datetime(2026, 10, 19, 14, 0, 0)


class TestLookup:
    def test_codes_are_case_insensitive(self, make_coupon):
        make_coupon(code="welcome")
        coupon = coupon_service.lookup_coupon("  Welcome ", now=T0)
        assert coupon is not None
        assert coupon.code == "WELCOME"

    def test_unknown_or_blank_code(self, db_session):
        assert coupon_service.lookup_coupon("NOPE", now=T0) is None
        assert coupon_service.lookup_coupon("", now=T0) is None
        assert coupon_service.lookup_coupon(None, now=T0) is None

    def test_inactive_coupon_unusable(self, make_coupon):
        make_coupon(status="INACTIVE")
        assert coupon_service.lookup_coupon("WELCOME", now=T0) is None

    def test_expired_coupon_unusable(self, make_coupon):
        make_coupon(valid_until=T0 - timedelta(minutes=1))
        assert coupon_service.lookup_coupon("WELCOME", now=T0) is None
        make_coupon(code="LATER", valid_until=T0 + timedelta(days=1))
        assert coupon_service.lookup_coupon("LATER", now=T0) is not None

    def test_exhausted_coupon_unusable(self, make_coupon):
        make_coupon(usage_limit=2, uses=2)
        make_coupon(code="UNLIMITED", usage_limit=0, uses=500)
        assert coupon_service.lookup_coupon("WELCOME", now=T0) is None
        assert coupon_service.lookup_coupon("UNLIMITED", now=T0) is not None

    def test_require_coupon_raises(self, db_session):
        with pytest.raises(CouponInvalid) as exc:
            coupon_service.require_coupon("missing", now=T0)
        assert exc.value.details["coupon_code"] == "MISSING"


class TestDiscountMapping:
    def test_each_type_maps_to_its_variant(self, make_coupon):
        pct = make_coupon(code="PCT", discount_type="PERCENTAGE", discount_value=50)
        fixed = make_coupon(code="FIX", discount_type="FIXED", discount_value=700)
        free = make_coupon(code="FREE", discount_type="FREE_TIME", discount_value=30)

        assert coupon_service.resolve_discount(pct) == PercentageDiscount(50)
        assert coupon_service.resolve_discount(fixed) == FixedDiscount(700)
        assert coupon_service.resolve_discount(free) == FreeTimeDiscount(30)

    def test_free_time_context(self, make_coupon):
        free = make_coupon(code="FREE", discount_type="FREE_TIME", discount_value=30)
        coupon_service.check_context(free, 1, False)
        with pytest.raises(CouponInapplicableContext):
            coupon_service.check_context(free, 2, False)
        with pytest.raises(CouponInapplicableContext):
            coupon_service.check_context(free, None, True)

    def test_other_types_fit_any_context(self, make_coupon):
        pct = make_coupon()
        coupon_service.check_context(pct, 3, False)
        coupon_service.check_context(pct, None, True)


class TestCheckInWithCoupon:
    def test_percentage_discount_frozen_at_check_in(self, check_in, make_coupon):
        make_coupon(discount_value=50)
        session = check_in(children=("Lia", "Theo"), coupon_code="welcome")
        assert session.coupon_code == "WELCOME"
        assert session.discount_applied_cents == 3000
        assert session.is_coupon_usage_counted is False

    def test_free_time_on_single_hour(self, check_in, make_coupon):
        make_coupon(code="FREE30", discount_type="FREE_TIME", discount_value=30)
        session = check_in(max_time=60, coupon_code="FREE30")
        assert session.discount_applied_cents == 1500

    def test_free_time_rejected_for_two_hours(self, check_in, make_coupon):
        make_coupon(code="FREE30", discount_type="FREE_TIME", discount_value=30)
        with pytest.raises(CouponInapplicableContext):
            check_in(max_time=120, coupon_code="FREE30")

    def test_invalid_coupon_blocks_check_in(self, check_in):
        with pytest.raises(CouponInvalid):
            check_in(coupon_code="GHOST")

    def test_check_in_does_not_count_usage(self, check_in, make_coupon):
        coupon = make_coupon()
        check_in(coupon_code="WELCOME")
        assert db.session.get(Coupon, coupon.id).uses == 0


class TestAdmin:
    def test_create_normalizes_code(self, db_session):
        coupon = coupon_service.create_coupon(
            patch={"code": " summer ", "discount_type": "FIXED", "discount_value": 1000}
        )
        assert coupon.code == "SUMMER"
        assert coupon.status == "ACTIVE"
        assert coupon.usage_limit == 0

    def test_duplicate_code_conflicts(self, make_coupon):
        make_coupon(code="SUMMER")
        with pytest.raises(ConflictError):
            coupon_service.create_coupon(
                patch={"code": "summer", "discount_type": "FIXED", "discount_value": 1000}
            )

    def test_update_rejects_percentage_over_100(self, make_coupon):
        coupon = make_coupon(discount_type="FIXED", discount_value=5000)
        with pytest.raises(ValidationError):
            coupon_service.update_coupon(coupon_id=coupon.id, patch={"discount_type": "PERCENTAGE"})
        assert db.session.get(Coupon, coupon.id).discount_type == "FIXED"

    def test_update_unknown_coupon(self, db_session):
        assert coupon_service.update_coupon(coupon_id=404, patch={"status": "INACTIVE"}) is None

    def test_delete_unused_coupon(self, make_coupon):
        coupon = make_coupon()
        assert coupon_service.delete_coupon(coupon_id=coupon.id) is True
        assert db.session.get(Coupon, coupon.id) is None

    def test_delete_unknown_coupon(self, db_session):
        assert coupon_service.delete_coupon(coupon_id=404) is False

    def test_delete_refused_while_a_session_carries_it(self, check_in, make_coupon):
        coupon = make_coupon()
        session = check_in(coupon_code="WELCOME")

        with pytest.raises(ConflictError):
            coupon_service.delete_coupon(coupon_id=coupon.id)

        assert db.session.get(Coupon, coupon.id) is not None
        assert db.session.get(ActiveSession, session.id).coupon_id == coupon.id


class TestSessionCoupon:
    def _counted_session(self, check_in, coupon):
        session = check_in(coupon_code=coupon.code)
        session.is_coupon_usage_counted = True
        coupon.uses = coupon.usage_limit
        db.session.commit()
        return session

    def test_counted_coupon_skips_usage_limit(self, check_in, make_coupon):
        coupon = make_coupon(code="ONCE", usage_limit=1)
        session = self._counted_session(check_in, coupon)

        assert coupon_service.lookup_coupon("ONCE", now=T0) is None
        assert coupon_service.require_coupon_for_session("once", session, now=T0).id == coupon.id

    def test_counted_coupon_still_expires(self, check_in, make_coupon):
        coupon = make_coupon(code="ONCE", usage_limit=1, valid_until=T0 + timedelta(hours=1))
        session = self._counted_session(check_in, coupon)

        with pytest.raises(CouponInvalid):
            coupon_service.require_coupon_for_session("ONCE", session, now=T0 + timedelta(hours=2))

    def test_other_code_locked_out(self, check_in, make_coupon):
        coupon = make_coupon(code="ONCE", usage_limit=1)
        make_coupon(code="OTHER")
        session = self._counted_session(check_in, coupon)

        with pytest.raises(CouponLocked):
            coupon_service.require_coupon_for_session("OTHER", session, now=T0)

    def test_uncounted_session_uses_plain_validation(self, check_in, make_coupon):
        make_coupon(code="FIRST")
        other = make_coupon(code="OTHER")
        session = check_in(coupon_code="FIRST")

        assert coupon_service.require_coupon_for_session("other", session, now=T0).id == other.id
