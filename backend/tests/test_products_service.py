"""Catalog admin tests: restock and delete."""

import pytest

from playtime.extensions import db
from playtime.models import Product, StockNotice
from playtime.services import consumption_service, products_service
from playtime.services.products_service import ProductError
from playtime.validation import ConflictError, ValidationError


def test_restock_adds_units(make_product):
    juice = make_product(stock=2)
    product = products_service.restock(juice.id, 10)
    assert product.stock == 12


def test_restock_rejects_non_positive_and_unknown(make_product):
    juice = make_product(stock=2)
    with pytest.raises(ValidationError):
        products_service.restock(juice.id, 0)
    with pytest.raises(ProductError):
        products_service.restock(404, 1)


def test_stock_not_editable_through_update(make_product):
    juice = make_product(stock=2)
    with pytest.raises(ValidationError):
        products_service.update_product(product_id=juice.id, patch={"stock": 50})


class TestDelete:
    def test_delete_product(self, make_product):
        juice = make_product()
        assert products_service.delete_product(product_id=juice.id) is True
        assert db.session.get(Product, juice.id) is None

    def test_delete_unknown_product(self, db_session):
        assert products_service.delete_product(product_id=404) is False

    def test_delete_refused_while_on_a_tab(self, check_in, make_product):
        juice = make_product(stock=5)
        session = check_in()
        consumption_service.add_item(session.id, juice.id)

        with pytest.raises(ConflictError):
            products_service.delete_product(product_id=juice.id)

        assert db.session.get(Product, juice.id).stock == 4

    def test_delete_after_tab_cleared(self, check_in, make_product):
        juice = make_product(stock=5)
        session = check_in()
        consumption_service.add_item(session.id, juice.id)
        consumption_service.remove_item(session.id, juice.id)

        assert products_service.delete_product(product_id=juice.id) is True

    def test_delete_takes_its_stock_notices(self, check_in, make_product):
        juice = make_product(stock=2, min_stock=5)
        session = check_in()
        consumption_service.add_item(session.id, juice.id)
        consumption_service.remove_item(session.id, juice.id)
        assert db.session.query(StockNotice).count() == 1

        products_service.delete_product(product_id=juice.id)

        assert db.session.query(StockNotice).count() == 0
