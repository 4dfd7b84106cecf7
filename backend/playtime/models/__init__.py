from .settings import Settings
from .inventory import Product, StockNotice
from .coupons import Coupon
from .sessions import ActiveSession, SessionConsumptionItem
from .sales import SaleRecord, SalePayment
from .cash import CashSession, CashWithdrawal

__all__ = [
    'Settings',
    'Product', 'StockNotice',
    'Coupon',
    'ActiveSession', 'SessionConsumptionItem',
    'SaleRecord', 'SalePayment',
    'CashSession', 'CashWithdrawal',
]
