"""
Settlement protocol tests.

Rates are the defaults: 30.00 first hour and 15.00 per additional hour, per child.
"""

from datetime import datetime, timedelta

import pytest

from playtime.extensions import db
from playtime.models import ActiveSession, Coupon, Product, SaleRecord
from playtime.services import consumption_service, session_service, settlement_service
from playtime.services.cash_drawer_service import DrawerNotOpen
from playtime.services.concurrency import TransactionAborted
from playtime.services.coupon_service import CouponInapplicableContext, CouponInvalid, CouponLocked
from playtime.services.settlement_service import AmountMismatch
from playtime.validation import ValidationError

T0 = datetime(2026, 10, 19, 14, 0, 0)


def at(minutes):
    return T0 + timedelta(minutes=minutes)


def cash(amount):
    return [{"tender_type": "CASH", "amount_cents": amount}]


def sale_count():
    return db.session.query(SaleRecord).count()


class TestPartialSettlement:
    def test_partial_clears_tab_and_keeps_session(self, drawer, check_in, make_product):
        juice = make_product(price_cents=500, stock=10)
        session = check_in()
        consumption_service.add_item(session.id, juice.id)

        result = settlement_service.settle(session.id, cash(3500), operator="maria", now=at(30))

        assert not result.closed
        assert result.amount_charged_cents == 3500
        assert result.sale.closed_session is False
        assert result.sale.cash_session_id == drawer.id

        session = db.session.get(ActiveSession, session.id)
        assert session.consumption == []
        assert session.is_initial_payment_made is True
        assert session.total_paid_cents == 3500
        assert session.invoiced_consumption_cents == 500
        # Settlement never moves stock
        assert db.session.get(Product, juice.id).stock == 9

    def test_overtime_after_partial_charges_only_the_rest(self, drawer, check_in, make_product):
        juice = make_product(price_cents=500, stock=10)
        session = check_in()
        consumption_service.add_item(session.id, juice.id)
        settlement_service.settle(session.id, cash(3500), operator="maria", now=at(30))

        consumption_service.add_item(session.id, juice.id)
        result = settlement_service.settle(session.id, cash(3500), operator="maria", now=at(125))

        # 30.00 + 2 x 15.00 of time, plus the second juice; the first juice was paid already
        assert result.closed
        assert result.bill.time_cost_cents == 6000
        assert result.bill.consumption_cost_cents == 500
        assert result.amount_charged_cents == 3500
        assert db.session.get(ActiveSession, session.id) is None

        total = sum(s.total_amount_cents for s in db.session.query(SaleRecord).all())
        assert total == 6000 + 1000

    def test_paid_session_owes_nothing_until_time_runs_out(self, drawer, check_in):
        session = check_in()
        settlement_service.settle(session.id, cash(3000), operator="maria", now=at(5))

        assert settlement_service.quote(session.id, now=at(40)).amount_due_cents == 0

    def test_extension_is_charged_on_next_settlement(self, drawer, check_in):
        session = check_in()
        settlement_service.settle(session.id, cash(3000), operator="maria", now=at(5))
        session_service.add_time(session.id, 60)

        assert db.session.get(ActiveSession, session.id).is_initial_payment_made is False
        result = settlement_service.settle(session.id, cash(1500), operator="maria", now=at(20))
        assert result.amount_charged_cents == 1500
        assert not result.closed
        assert db.session.get(ActiveSession, session.id).max_time == 120


class TestCheckout:
    def test_checkout_closes_before_contracted_time(self, drawer, check_in):
        session = check_in(children=("Lia", "Theo"))
        result = settlement_service.settle(session.id, cash(6000), operator="maria", checkout=True, now=at(20))

        assert result.closed
        assert result.sale.closed_session is True
        assert result.sale.children == ["Lia", "Theo"]
        assert result.sale.duration_minutes == 60
        assert db.session.get(ActiveSession, session.id) is None

    def test_second_checkout_aborts_and_writes_nothing(self, drawer, check_in):
        session = check_in()
        settlement_service.settle(session.id, cash(3000), operator="maria", checkout=True, now=at(10))

        with pytest.raises(TransactionAborted):
            settlement_service.settle(session.id, cash(3000), operator="joao", checkout=True, now=at(11))
        assert sale_count() == 1

    def test_checkout_with_nothing_due_writes_no_sale(self, drawer, check_in):
        session = check_in()
        settlement_service.settle(session.id, cash(3000), operator="maria", now=at(10))

        result = settlement_service.settle(session.id, [], operator="maria", checkout=True, now=at(20))

        assert result.closed
        assert result.sale is None
        assert result.amount_charged_cents == 0
        assert sale_count() == 1


class TestTender:
    def test_change_from_cash(self, drawer, check_in):
        session = check_in()
        result = settlement_service.settle(session.id, cash(5000), operator="maria", now=at(10))
        assert result.change_given_cents == 2000
        assert result.sale.change_given_cents == 2000

    def test_mixed_tender_change_only_on_cash(self, drawer, check_in):
        session = check_in()
        payments = [
            {"tender_type": "PIX", "amount_cents": 2500},
            {"tender_type": "cash", "amount_cents": 1000},
        ]
        result = settlement_service.settle(session.id, payments, operator="maria", now=at(10))
        assert result.change_given_cents == 500
        assert sorted(p.tender_type for p in result.sale.payments) == ["CASH", "PIX"]

    def test_short_payment_rejected(self, drawer, check_in):
        session = check_in()
        with pytest.raises(AmountMismatch):
            settlement_service.settle(session.id, cash(2000), operator="maria", now=at(10))
        assert sale_count() == 0
        assert db.session.get(ActiveSession, session.id).total_paid_cents == 0

    def test_non_cash_overpayment_accepted(self, drawer, check_in):
        session = check_in()
        result = settlement_service.settle(
            session.id, [{"tender_type": "PIX", "amount_cents": 3500}], operator="maria", checkout=True, now=at(30)
        )

        assert result.closed
        assert result.amount_charged_cents == 3000
        assert [(p.tender_type, p.amount_cents) for p in result.sale.payments] == [("PIX", 3500)]
        # change = max(0, cash - (due - non_cash)): the PIX surplus comes back in cash
        assert result.change_given_cents == 500
        assert db.session.get(ActiveSession, session.id) is None

    def test_short_payment_leaves_coupon_uncounted(self, drawer, check_in, make_coupon):
        coupon = make_coupon(discount_value=50)
        session = check_in(coupon_code="WELCOME")

        with pytest.raises(AmountMismatch):
            settlement_service.settle(session.id, cash(1000), operator="maria", now=at(10))

        assert sale_count() == 0
        assert db.session.get(Coupon, coupon.id).uses == 0
        session = db.session.get(ActiveSession, session.id)
        assert session.is_coupon_usage_counted is False
        assert session.is_initial_payment_made is False

    @pytest.mark.parametrize("payment", [
        {"tender_type": "CHEQUE", "amount_cents": 3000},
        {"tender_type": "CASH", "amount_cents": 0},
        {"tender_type": "CASH", "amount_cents": "30.00"},
    ])
    def test_malformed_payment_rejected(self, drawer, check_in, payment):
        session = check_in()
        with pytest.raises(ValidationError):
            settlement_service.settle(session.id, [payment], operator="maria", now=at(10))


class TestPreconditions:
    def test_requires_open_drawer(self, check_in):
        session = check_in()
        with pytest.raises(DrawerNotOpen):
            settlement_service.settle(session.id, cash(3000), operator="maria", now=at(10))
        assert db.session.get(ActiveSession, session.id) is not None

    def test_closed_drawer_leaves_session_untouched(self, check_in, make_product, make_coupon):
        coupon = make_coupon(discount_value=50)
        juice = make_product(price_cents=500, stock=10)
        session = check_in(coupon_code="WELCOME")
        consumption_service.add_item(session.id, juice.id)

        with pytest.raises(DrawerNotOpen):
            settlement_service.settle(session.id, cash(2000), operator="maria", checkout=True, now=at(10))

        assert sale_count() == 0
        assert db.session.get(Coupon, coupon.id).uses == 0
        session = db.session.get(ActiveSession, session.id)
        assert [(item.product_id, item.quantity) for item in session.consumption] == [(juice.id, 1)]
        assert session.total_paid_cents == 0
        assert db.session.get(Product, juice.id).stock == 9

    def test_requires_operator(self, drawer, check_in):
        session = check_in()
        with pytest.raises(ValidationError):
            settlement_service.settle(session.id, cash(3000), operator="", now=at(10))

    def test_unknown_session(self, drawer):
        with pytest.raises(TransactionAborted):
            settlement_service.settle(404, cash(3000), operator="maria", now=at(10))


class TestCoupons:
    def test_usage_counted_once_across_partials(self, drawer, check_in, make_coupon):
        coupon = make_coupon(discount_value=50)
        session = check_in(coupon_code="WELCOME")

        first = settlement_service.settle(session.id, cash(1500), operator="maria", now=at(10))
        assert first.coupon_counted
        assert db.session.get(Coupon, coupon.id).uses == 1

        session_service.add_time(session.id, 60)
        second = settlement_service.settle(session.id, cash(1500), operator="maria", now=at(20))

        assert not second.coupon_counted
        assert db.session.get(Coupon, coupon.id).uses == 1

    def test_exhausted_coupon_still_applies_to_the_session_that_used_it(self, drawer, check_in, make_coupon):
        coupon = make_coupon(code="ONCE", discount_value=50, usage_limit=1)
        session = check_in()

        first = settlement_service.settle(session.id, cash(1500), operator="maria", coupon_code="ONCE", now=at(10))
        assert first.coupon_counted
        assert db.session.get(Coupon, coupon.id).uses == 1

        quoted = settlement_service.quote(session.id, coupon_code="once", now=at(20))
        second = settlement_service.settle(session.id, [], operator="maria", coupon_code="ONCE", now=at(20))

        assert quoted.discount_cents == 1500
        assert second.bill.discount_cents == 1500
        assert second.amount_charged_cents == 0
        assert not second.coupon_counted
        assert db.session.get(Coupon, coupon.id).uses == 1

    def test_exhausted_coupon_refused_for_other_sessions(self, drawer, check_in, make_coupon):
        make_coupon(code="ONCE", discount_value=50, usage_limit=1)
        first = check_in()
        settlement_service.settle(first.id, cash(1500), operator="maria", coupon_code="ONCE", now=at(10))

        other = check_in(children=("Theo",))
        with pytest.raises(CouponInvalid):
            settlement_service.settle(other.id, cash(1500), operator="maria", coupon_code="ONCE", now=at(10))

    def test_counted_coupon_cannot_be_swapped(self, drawer, check_in, make_coupon):
        aaa = make_coupon(code="AAA", discount_value=50)
        bbb = make_coupon(code="BBB", discount_value=50)
        session = check_in(coupon_code="AAA")
        settlement_service.settle(session.id, cash(1500), operator="maria", now=at(10))

        with pytest.raises(CouponLocked):
            settlement_service.settle(session.id, [], operator="maria", coupon_code="BBB", now=at(20))

        assert db.session.get(Coupon, aaa.id).uses == 1
        assert db.session.get(Coupon, bbb.id).uses == 0
        assert db.session.get(ActiveSession, session.id).coupon_code == "AAA"
        assert sale_count() == 1

    def test_uncounted_coupon_can_be_swapped(self, drawer, check_in, make_coupon):
        make_coupon(code="AAA", discount_value=50)
        bbb = make_coupon(code="BBB", discount_type="FIXED", discount_value=1000)
        session = check_in(coupon_code="AAA")

        result = settlement_service.settle(session.id, cash(2000), operator="maria", coupon_code="BBB", now=at(10))

        assert result.bill.discount_cents == 1000
        assert result.sale.coupon_code == "BBB"
        assert db.session.get(Coupon, bbb.id).uses == 1

    def test_coupon_supplied_at_settlement(self, drawer, check_in, make_coupon):
        coupon = make_coupon(discount_value=50)
        session = check_in()

        result = settlement_service.settle(session.id, cash(1500), operator="maria", coupon_code="welcome", now=at(10))

        assert result.bill.discount_cents == 1500
        assert result.coupon_counted
        assert result.sale.coupon_code == "WELCOME"
        assert db.session.get(ActiveSession, session.id).coupon_id == coupon.id

    def test_free_time_coupon_rejected_in_overtime(self, drawer, check_in, make_coupon):
        make_coupon(code="FREE30", discount_type="FREE_TIME", discount_value=30)
        session = check_in()

        with pytest.raises(CouponInapplicableContext):
            settlement_service.settle(session.id, cash(4500), operator="maria", coupon_code="FREE30", now=at(90))

        assert sale_count() == 0
        assert db.session.get(ActiveSession, session.id).coupon_code is None

    def test_invalid_coupon_rejected(self, drawer, check_in):
        session = check_in()
        with pytest.raises(CouponInvalid):
            settlement_service.settle(session.id, cash(3000), operator="maria", coupon_code="GHOST", now=at(10))


class TestQuoteAndCancel:
    def test_quote_matches_settlement(self, drawer, check_in):
        session = check_in(children=("Lia", "Theo"))
        quoted = settlement_service.quote(session.id, now=at(70))
        result = settlement_service.settle(
            session.id, cash(quoted.amount_due_cents), operator="maria", now=at(70)
        )
        assert quoted.amount_due_cents == 9000
        assert result.amount_charged_cents == quoted.amount_due_cents

    def test_cancel_restocks_and_leaves_no_sale(self, check_in, make_product):
        juice = make_product(stock=10)
        session = check_in()
        consumption_service.add_item(session.id, juice.id)
        consumption_service.add_item(session.id, juice.id)

        assert settlement_service.cancel_session(session.id, operator="maria") == 2

        assert db.session.get(Product, juice.id).stock == 10
        assert db.session.get(ActiveSession, session.id) is None
        assert sale_count() == 0
