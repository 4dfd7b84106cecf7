# Overview: Flask API routes for read-only sale history.

from flask import Blueprint, jsonify, request

from ..api_errors import json_error
from ..services import history_service
from ..validation import ValidationError
from playtime.time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _parse_dt(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@sales_bp.get("")
def list_sales():
    """
    Query params:
    - cpf: responsible party id number (optional)
    - since / until: ISO-8601 window on finalized_at (optional)
    - limit: max rows (default 200)
    """
    try:
        limit = min(request.args.get("limit", default=200, type=int) or 200, 1000)
        sales = history_service.list_sales(
            responsible_cpf=request.args.get("cpf"),
            since=_parse_dt("since"),
            until=_parse_dt("until"),
            limit=limit,
        )
        return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)})
    except Exception as e:
        return json_error(e, "list sales")


@sales_bp.get("/<int:sale_id>")
def get_sale(sale_id: int):
    try:
        sale = history_service.get_sale(sale_id)
        if sale is None:
            return jsonify({"error": "Sale not found"}), 404
        return jsonify({"sale": sale.to_dict()})
    except Exception as e:
        return json_error(e, "load sale")
