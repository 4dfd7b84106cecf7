"""
Pytest fixtures for playtime backend tests.

Provides an in-memory app, a wiped database per test, and small factories
for the rows most tests need.
"""

from datetime import datetime

import pytest

from playtime import create_app
from playtime.extensions import db, session_feed
from playtime.models import Coupon, Product
from playtime.services import cash_drawer_service, session_service


# Fixed clock for deterministic billing
T0 = datetime(2026, 10, 19, 14, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SESSION_FEED_REDIS_URL': None,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()
        session_feed.reset()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def make_product(db_session):
    def _make(name="Juice box", price_cents=500, stock=10, min_stock=None):
        product = Product(name=name, price_cents=price_cents, stock=stock, min_stock=min_stock)
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture
def make_coupon(db_session):
    def _make(code="WELCOME", discount_type="PERCENTAGE", discount_value=50, **kwargs):
        coupon = Coupon(code=code.upper(), discount_type=discount_type, discount_value=discount_value, **kwargs)
        db_session.add(coupon)
        db_session.commit()
        return coupon
    return _make


@pytest.fixture
def check_in(db_session):
    def _check_in(children=("Lia",), max_time=60, now=T0, **kwargs):
        kwargs.setdefault("responsible", "Ana Souza")
        kwargs.setdefault("responsible_cpf", "123.456.789-00")
        return session_service.check_in(children=list(children), max_time=max_time, now=now, **kwargs)
    return _check_in


@pytest.fixture
def drawer(db_session):
    return cash_drawer_service.open_drawer(10000, operator="opener", now=T0)
