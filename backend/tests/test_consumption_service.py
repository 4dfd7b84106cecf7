"""
Consumption ledger tests.

Stock moves one unit at a time with a guarded decrement; the tab line and
the stock change commit together or not at all.
"""

import pytest

from playtime.extensions import db
from playtime.models import Product, StockNotice
from playtime.services import consumption_service, notification_service, products_service, session_service
from playtime.services.consumption_service import ConsumptionError, InsufficientStock


def stock_of(product_id):
    return db.session.query(Product.stock).filter(Product.id == product_id).scalar()


def test_add_item_moves_one_unit_onto_tab(check_in, make_product):
    juice = make_product(price_cents=500, stock=10)
    session = check_in()

    consumption_service.add_item(session.id, juice.id)
    consumption_service.add_item(session.id, juice.id)

    session = session_service.get_session(session.id)
    assert stock_of(juice.id) == 8
    assert len(session.consumption) == 1
    assert session.consumption[0].quantity == 2
    assert session.consumption[0].price_cents == 500


def test_remove_one_is_inverse_of_add(check_in, make_product):
    juice = make_product(stock=3)
    session = check_in()

    consumption_service.add_item(session.id, juice.id)
    consumption_service.remove_one(session.id, juice.id)

    assert stock_of(juice.id) == 3
    assert session_service.get_session(session.id).consumption == []


def test_remove_item_returns_whole_line(check_in, make_product):
    juice = make_product(stock=5)
    cookie = make_product(name="Cookie", price_cents=350, stock=5)
    session = check_in()

    for _ in range(3):
        consumption_service.add_item(session.id, juice.id)
    consumption_service.add_item(session.id, cookie.id)

    consumption_service.remove_item(session.id, juice.id)

    session = session_service.get_session(session.id)
    assert stock_of(juice.id) == 5
    assert stock_of(cookie.id) == 4
    assert [item.product_id for item in session.consumption] == [cookie.id]


def test_out_of_stock_changes_nothing(check_in, make_product):
    juice = make_product(stock=1)
    session = check_in()
    consumption_service.add_item(session.id, juice.id)
    version = session_service.get_session(session.id).version_id

    with pytest.raises(InsufficientStock):
        consumption_service.add_item(session.id, juice.id)

    session = session_service.get_session(session.id)
    assert stock_of(juice.id) == 0
    assert session.consumption[0].quantity == 1
    assert session.version_id == version


def test_failed_tab_write_rolls_stock_back(check_in, make_product):
    juice = make_product(stock=2, min_stock=5)
    session = check_in()

    def broken_notifier(product, stock):
        raise RuntimeError("notice store down")

    with pytest.raises(RuntimeError):
        consumption_service.add_item(session.id, juice.id, notifier=broken_notifier)

    assert stock_of(juice.id) == 2
    assert session_service.get_session(session.id).consumption == []
    assert db.session.query(StockNotice).count() == 0


def test_stock_never_negative_over_mixed_operations(check_in, make_product):
    juice = make_product(stock=2)
    session = check_in()

    plan = ["add", "add", "add", "remove", "add", "add", "remove", "remove", "remove"]
    for step in plan:
        try:
            if step == "add":
                consumption_service.add_item(session.id, juice.id)
            else:
                consumption_service.remove_one(session.id, juice.id)
        except (InsufficientStock, ConsumptionError):
            pass
        on_tab = sum(i.quantity for i in session_service.get_session(session.id).consumption)
        assert stock_of(juice.id) >= 0
        assert stock_of(juice.id) + on_tab == 2


def test_remove_product_not_on_tab(check_in, make_product):
    juice = make_product()
    session = check_in()
    with pytest.raises(ConsumptionError):
        consumption_service.remove_one(session.id, juice.id)


def test_unknown_session_or_product(check_in, make_product):
    juice = make_product()
    session = check_in()
    with pytest.raises(session_service.SessionNotFound):
        consumption_service.add_item(9999, juice.id)
    with pytest.raises(ConsumptionError):
        consumption_service.add_item(session.id, 9999)
    assert stock_of(juice.id) == 10


def test_price_change_does_not_reprice_tab(check_in, make_product):
    juice = make_product(price_cents=500)
    session = check_in()
    consumption_service.add_item(session.id, juice.id)

    products_service.update_product(product_id=juice.id, patch={"price_cents": 700})

    assert session_service.get_session(session.id).consumption[0].price_cents == 500


class TestLowStockNotices:
    def test_notice_emitted_once_per_product(self, check_in, make_product):
        juice = make_product(stock=3, min_stock=2)
        session = check_in()

        consumption_service.add_item(session.id, juice.id)  # 2 left
        consumption_service.add_item(session.id, juice.id)  # 1 left

        notices = notification_service.list_notices()
        assert len(notices) == 1
        assert notices[0].product_id == juice.id
        assert "low" in notices[0].message
        assert str(juice.id) in notices[0].link

    def test_resolved_notice_allows_a_new_one(self, check_in, make_product):
        juice = make_product(stock=3, min_stock=2)
        session = check_in()

        consumption_service.add_item(session.id, juice.id)
        first = notification_service.list_notices()[0]
        notification_service.resolve_notice(first.id, operator="maria")
        assert notification_service.list_notices() == []

        consumption_service.add_item(session.id, juice.id)
        assert len(notification_service.list_notices()) == 1
        assert len(notification_service.list_notices(include_resolved=True)) == 2

    def test_no_notice_above_threshold_or_without_threshold(self, check_in, make_product):
        plenty = make_product(stock=10, min_stock=2)
        untracked = make_product(name="Balloon", stock=1, min_stock=None)
        session = check_in()

        consumption_service.add_item(session.id, plenty.id)
        consumption_service.add_item(session.id, untracked.id)

        assert db.session.query(StockNotice).count() == 0

    def test_injected_notifier_receives_product_and_stock(self, check_in, make_product):
        juice = make_product(stock=2, min_stock=5)
        session = check_in()
        calls = []

        consumption_service.add_item(session.id, juice.id, notifier=lambda p, stock: calls.append((p.id, stock)))

        assert calls == [(juice.id, 1)]
        assert db.session.query(StockNotice).count() == 0
