import unittest
from datetime import datetime, timedelta

from flask import Flask

from playtime.extensions import db
from playtime.models import CashSession, Product, SaleRecord, Settings
from playtime.services import history_service, products_service, settings_service
from playtime.services.billing_service import RateTable
from playtime.validation import ValidationError, enforce_rules_settings


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = Flask(__name__)
        cls.app.config.update(
            SECRET_KEY="test",
            SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
            SQLALCHEMY_TRACK_MODIFICATIONS=False,
            TESTING=True,
        )
        db.init_app(cls.app)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        from playtime import models  # noqa: F401
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(SaleRecord).delete()
        db.session.query(CashSession).delete()
        db.session.query(Product).delete()
        db.session.query(Settings).delete()
        db.session.commit()
        db.session.expunge_all()

    def test_defaults_created_on_first_read(self):
        settings = settings_service.get_settings()
        self.assertEqual(settings.id, 1)
        self.assertEqual(
            settings_service.get_rate_table(),
            RateTable(first_hour_rate_cents=3000, additional_hour_rate_cents=1500, full_afternoon_rate_cents=6000),
        )
        self.assertEqual(db.session.query(Settings).count(), 1)

    def test_update_only_touches_rates(self):
        settings_service.update_settings({"first_hour_rate_cents": 3500, "version_id": 99})
        settings = settings_service.get_settings()
        self.assertEqual(settings.first_hour_rate_cents, 3500)
        self.assertEqual(settings.additional_hour_rate_cents, 1500)
        self.assertNotEqual(settings.version_id, 99)

    def test_negative_rate_rejected(self):
        with self.assertRaises(ValidationError):
            enforce_rules_settings({"first_hour_rate_cents": -1})

    def test_restock_is_an_increment(self):
        product = products_service.create_product(patch={"name": "Cookie", "price_cents": 350, "stock": 2})
        restocked = products_service.restock(product.id, 10)
        self.assertEqual(restocked.stock, 12)

        with self.assertRaises(ValidationError):
            products_service.restock(product.id, 0)
        with self.assertRaises(products_service.ProductError):
            products_service.restock(9999, 1)

    def test_stock_not_editable_directly(self):
        product = products_service.create_product(patch={"name": "Cookie", "price_cents": 350, "stock": 2})
        with self.assertRaises(ValidationError):
            products_service.update_product(product_id=product.id, patch={"stock": 100})
        self.assertEqual(db.session.get(Product, product.id).stock, 2)

    def test_history_filters_and_orders(self):
        drawer = CashSession(status="CLOSED", opened_at=datetime(2026, 10, 18, 9), opened_by="maria")
        db.session.add(drawer)
        db.session.flush()

        base = datetime(2026, 10, 18, 15)
        for i, cpf in enumerate(["111", "222", "111"]):
            db.session.add(SaleRecord(
                finalized_at=base + timedelta(hours=i),
                finalized_by="maria",
                session_ref=i + 1,
                responsible="Ana" if cpf == "111" else "Bruno",
                responsible_cpf=cpf,
                children=["Lia"],
                closed_session=True,
                duration_minutes=60,
                time_cost_cents=3000,
                consumption=[],
                consumption_cost_cents=0,
                total_amount_cents=3000,
                cash_session_id=drawer.id,
            ))
        db.session.commit()

        visits = history_service.history_by_cpf("111")
        self.assertEqual([s.session_ref for s in visits], [3, 1])

        window = history_service.list_sales(since=base + timedelta(minutes=30), until=base + timedelta(hours=1))
        self.assertEqual([s.session_ref for s in window], [2])


if __name__ == "__main__":
    unittest.main()
