# Overview: Maps service exceptions onto JSON error responses for the routes.

from __future__ import annotations

from flask import current_app, jsonify
from sqlalchemy.exc import OperationalError

from .validation import ValidationError, ConflictError
from .services.concurrency import TransactionAborted
from .services.consumption_service import ConsumptionError, InsufficientStock
from .services.coupon_service import CouponError
from .services.cash_drawer_service import DrawerError
from .services.settlement_service import SettlementError
from .services.session_service import SessionNotFound
from .services.products_service import ProductError
from .services.notification_service import NotificationError

# Business-rule conflicts the operator can act on
CONFLICT_ERRORS = (
    InsufficientStock,
    CouponError,
    DrawerError,
    SettlementError,
    TransactionAborted,
    ConflictError,
)

NOT_FOUND_ERRORS = (SessionNotFound, ProductError, NotificationError)


def json_error(exc: Exception, action: str = "process request"):
    """
    Turn a service exception into (response, status).

    400 validation, 404 missing, 409 conflict, 503 storage unavailable,
    500 anything else (logged with traceback).
    """
    details = getattr(exc, "details", None) or {}

    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, CONFLICT_ERRORS):
        return jsonify({"error": str(exc), "kind": type(exc).__name__, "details": details}), 409
    if isinstance(exc, NOT_FOUND_ERRORS):
        return jsonify({"error": str(exc), "details": details}), 404
    if isinstance(exc, ConsumptionError):
        # Unknown product or item not on the tab
        return jsonify({"error": str(exc), "details": details}), 404
    if isinstance(exc, OperationalError):
        current_app.logger.warning("Storage unavailable while trying to %s: %s", action, exc)
        return jsonify({"error": "Storage unavailable"}), 503

    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500
