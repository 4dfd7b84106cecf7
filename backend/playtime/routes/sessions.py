# Overview: Flask API routes for active sessions: check-in, tab, settlement, live stream.

# backend/playtime/routes/sessions.py
"""
Active Session API Routes

DESIGN:
- Reads return the live bill computed by the display projection
- Writes take the acting operator in the body ("operator"); there is no login
- Settlement errors come back as 409 with the error kind, so the terminal can
  tell a stock problem from a coupon problem from a closed drawer
"""

from __future__ import annotations

import json

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from ..api_errors import json_error
from ..extensions import session_feed
from ..services import consumption_service, session_service, settings_service, settlement_service
from ..services.billing_service import project
from ..validation import ValidationError, coerce_int, enforce_rules_check_in
from playtime.time_utils import utcnow


sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def _session_payload(session_id: int):
    session = session_service.require_session(session_id)
    return {"session": session_service.view(session).to_dict()}


# =============================================================================
# FLOOR
# =============================================================================

@sessions_bp.get("")
def list_sessions():
    """Active sessions with live bills. Optional ?cpf= filter."""
    try:
        cpf = request.args.get("cpf")
        views = session_service.list_views()
        if cpf:
            views = [v for v in views if v.snapshot.responsible_cpf == cpf.strip()]
        return jsonify({"items": [v.to_dict() for v in views], "count": len(views)})
    except Exception as e:
        return json_error(e, "list sessions")


@sessions_bp.post("")
def check_in():
    """
    Request body:
    {
        "responsible": "Ana Souza",
        "responsible_cpf": "123.456.789-00",
        "responsible_phone": "...",        (optional)
        "children": ["Lia", "Theo"],
        "max_time": 60,
        "is_full_afternoon": false,
        "coupon_code": "WELCOME10",        (optional)
        "operator": "maria"
    }
    """
    try:
        data = _json_body()
        fields = enforce_rules_check_in(data)
        session = session_service.check_in(**fields, operator=data.get("operator"))
        return jsonify({"session": session_service.view(session).to_dict()}), 201
    except Exception as e:
        return json_error(e, "check in")


@sessions_bp.get("/<int:session_id>")
def get_session(session_id: int):
    try:
        return jsonify(_session_payload(session_id))
    except Exception as e:
        return json_error(e, "load session")


@sessions_bp.get("/stream")
def stream_sessions():
    """
    Server-sent events: one `sessions` event with the whole floor after every
    committed change, and a comment line as keep-alive.
    """
    keepalive = current_app.config.get("SESSION_FEED_KEEPALIVE_SECONDS", 15)
    initial = session_service.snapshots()
    subscription = session_feed.subscribe()

    def render(snapshots) -> str:
        rates = settings_service.get_rate_table()
        now = utcnow()
        items = [project(s, rates, now).to_dict() for s in snapshots]
        return f"event: sessions\ndata: {json.dumps(items)}\n\n"

    def generate():
        try:
            yield render(initial)
            while True:
                message = subscription.get(timeout=keepalive)
                if message is None:
                    yield ": keep-alive\n\n"
                    continue
                yield render(message)
        finally:
            subscription.cancel()

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@sessions_bp.post("/<int:session_id>/time")
def add_time(session_id: int):
    """Request body: {"minutes": 30}"""
    try:
        data = _json_body()
        minutes = coerce_int("minutes", data.get("minutes"))
        session_service.add_time(session_id, minutes)
        return jsonify(_session_payload(session_id))
    except Exception as e:
        return json_error(e, "add time")


# =============================================================================
# TAB
# =============================================================================

@sessions_bp.post("/<int:session_id>/consumption")
def add_consumption(session_id: int):
    """Request body: {"product_id": 3}. Adds one unit."""
    try:
        data = _json_body()
        product_id = coerce_int("product_id", data.get("product_id"))
        consumption_service.add_item(session_id, product_id)
        return jsonify(_session_payload(session_id))
    except Exception as e:
        return json_error(e, "add consumption")


@sessions_bp.delete("/<int:session_id>/consumption/<int:product_id>")
def remove_consumption(session_id: int, product_id: int):
    """Removes one unit; ?all=1 removes the whole line."""
    try:
        if request.args.get("all") in {"1", "true", "yes"}:
            consumption_service.remove_item(session_id, product_id)
        else:
            consumption_service.remove_one(session_id, product_id)
        return jsonify(_session_payload(session_id))
    except Exception as e:
        return json_error(e, "remove consumption")


# =============================================================================
# SETTLEMENT
# =============================================================================

@sessions_bp.get("/<int:session_id>/quote")
def quote(session_id: int):
    """Optional ?coupon_code= to preview a coupon swap."""
    try:
        bill = settlement_service.quote(session_id, coupon_code=request.args.get("coupon_code"))
        return jsonify({"session_id": session_id, "bill": bill.to_dict()})
    except Exception as e:
        return json_error(e, "quote session")


@sessions_bp.post("/<int:session_id>/settle")
def settle(session_id: int):
    """
    Request body:
    {
        "payments": [{"tender_type": "CASH", "amount_cents": 5000},
                     {"tender_type": "PIX", "amount_cents": 1000}],
        "operator": "maria",
        "coupon_code": "WELCOME10",   (optional, replaces the session coupon)
        "checkout": true              (optional, close even if not overtime)
    }
    """
    try:
        data = _json_body()
        payments = data.get("payments") or []
        if not isinstance(payments, list):
            raise ValidationError("payments must be a list")
        checkout = data.get("checkout", False)
        if not isinstance(checkout, bool):
            raise ValidationError("checkout must be a boolean")

        result = settlement_service.settle(
            session_id,
            payments,
            operator=str(data.get("operator") or "").strip(),
            coupon_code=data.get("coupon_code") or None,
            checkout=checkout,
        )
        return jsonify({"settlement": result.to_dict()}), 201
    except Exception as e:
        return json_error(e, "settle session")


@sessions_bp.post("/<int:session_id>/cancel")
def cancel(session_id: int):
    try:
        data = _json_body()
        restocked = settlement_service.cancel_session(session_id, operator=data.get("operator"))
        return jsonify({"session_id": session_id, "cancelled": True, "units_restocked": restocked})
    except Exception as e:
        return json_error(e, "cancel session")
