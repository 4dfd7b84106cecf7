# Overview: Flask API routes for the daily cash drawer.

# backend/playtime/routes/cash.py
"""
Cash Drawer API Routes

Lifecycle: open -> (withdrawals) -> close. Closed drawers are immutable.
Amounts are integer cents; the acting operator travels in the body.
"""

from flask import Blueprint, jsonify, request

from ..api_errors import json_error
from ..services import cash_drawer_service
from ..validation import ValidationError, require_cents


cash_bp = Blueprint("cash", __name__, url_prefix="/api/cash")


def _operator(data: dict) -> str:
    operator = str(data.get("operator") or "").strip()
    if not operator:
        raise ValidationError("operator required")
    return operator


@cash_bp.get("/current")
def current_drawer():
    """Open drawer with running totals, or {"cash_session": null}."""
    try:
        drawer = cash_drawer_service.get_open_drawer()
        if drawer is None:
            return jsonify({"cash_session": None, "summary": None})
        return jsonify({
            "cash_session": drawer.to_dict(),
            "summary": cash_drawer_service.drawer_summary(drawer),
        })
    except Exception as e:
        return json_error(e, "load cash drawer")


@cash_bp.post("/open")
def open_drawer():
    """Request body: {"opening_balance_cents": 10000, "operator": "maria"}"""
    try:
        data = request.get_json(silent=True) or {}
        drawer = cash_drawer_service.open_drawer(
            require_cents("opening_balance_cents", data.get("opening_balance_cents", 0)),
            operator=_operator(data),
        )
        return jsonify({"cash_session": drawer.to_dict()}), 201
    except Exception as e:
        return json_error(e, "open cash drawer")


@cash_bp.post("/withdrawals")
def add_withdrawal():
    """Request body: {"amount_cents": 5000, "reason": "bank deposit", "operator": "maria"}"""
    try:
        data = request.get_json(silent=True) or {}
        withdrawal = cash_drawer_service.withdraw(
            require_cents("amount_cents", data.get("amount_cents"), positive=True),
            reason=data.get("reason"),
            operator=_operator(data),
        )
        return jsonify({"withdrawal": withdrawal.to_dict()}), 201
    except Exception as e:
        return json_error(e, "record withdrawal")


@cash_bp.post("/close")
def close_drawer():
    """
    Request body:
    {
        "counted_balance_cents": 30500,
        "operator": "maria",
        "cash_sales_cents": 25000      (optional; derived from sale records)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        cash_sales = data.get("cash_sales_cents")
        drawer = cash_drawer_service.close_drawer(
            require_cents("counted_balance_cents", data.get("counted_balance_cents")),
            operator=_operator(data),
            cash_sales_cents=require_cents("cash_sales_cents", cash_sales) if cash_sales is not None else None,
        )
        return jsonify({"cash_session": drawer.to_dict()})
    except Exception as e:
        return json_error(e, "close cash drawer")


@cash_bp.get("/sessions")
def list_drawers():
    try:
        limit = min(request.args.get("limit", default=30, type=int) or 30, 365)
        drawers = cash_drawer_service.list_drawers(limit=limit)
        return jsonify({"items": [d.to_dict() for d in drawers], "count": len(drawers)})
    except Exception as e:
        return json_error(e, "list cash drawers")
