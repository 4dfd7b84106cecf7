# Overview: Flask API routes for coupon admin and validator lookup.

from flask import Blueprint, jsonify, request

from ..api_errors import json_error
from ..models import Coupon
from ..services import coupon_service
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_coupon

COUPON_POLICY = ModelValidationPolicy(
    writable_fields={"code", "discount_type", "discount_value", "status", "valid_until", "usage_limit"},
    required_on_create={"code", "discount_type", "discount_value"},
)

coupons_bp = Blueprint("coupons", __name__, url_prefix="/api/coupons")


@coupons_bp.get("")
def list_coupons():
    try:
        coupons = coupon_service.list_coupons()
        return jsonify({"items": [c.to_dict() for c in coupons], "count": len(coupons)})
    except Exception as e:
        return json_error(e, "list coupons")


@coupons_bp.post("")
def create_coupon():
    """
    Request body:
    {
        "code": "WELCOME10",
        "discount_type": "PERCENTAGE" | "FIXED" | "FREE_TIME",
        "discount_value": 10,          (percent, cents, or minutes)
        "valid_until": "2026-12-31T23:59:59Z",   (optional)
        "usage_limit": 100             (optional, 0 = unlimited)
    }
    """
    try:
        patch = validate_payload(
            model=Coupon,
            payload=request.get_json(silent=True),
            policy=COUPON_POLICY,
            partial=False,
        )
        enforce_rules_coupon(patch)
        coupon = coupon_service.create_coupon(patch=patch)
        return jsonify({"coupon": coupon.to_dict()}), 201
    except Exception as e:
        return json_error(e, "create coupon")


@coupons_bp.patch("/<int:coupon_id>")
def update_coupon(coupon_id: int):
    try:
        patch = validate_payload(
            model=Coupon,
            payload=request.get_json(silent=True),
            policy=COUPON_POLICY,
            partial=True,
        )
        enforce_rules_coupon(patch)
        coupon = coupon_service.update_coupon(coupon_id=coupon_id, patch=patch)
        if coupon is None:
            return jsonify({"error": "Coupon not found"}), 404
        return jsonify({"coupon": coupon.to_dict()})
    except Exception as e:
        return json_error(e, "update coupon")


@coupons_bp.delete("/<int:coupon_id>")
def delete_coupon(coupon_id: int):
    """409 while an active session carries the coupon."""
    try:
        deleted = coupon_service.delete_coupon(coupon_id=coupon_id)
        if not deleted:
            return jsonify({"error": "Coupon not found"}), 404
        return jsonify({"deleted": True, "coupon_id": coupon_id})
    except Exception as e:
        return json_error(e, "delete coupon")


@coupons_bp.get("/lookup/<code>")
def lookup_coupon(code: str):
    """Validator lookup: 404 for unknown and unusable codes alike."""
    try:
        coupon = coupon_service.lookup_coupon(code)
        if coupon is None:
            return jsonify({"error": "Invalid or expired coupon"}), 404
        return jsonify({"coupon": coupon.to_dict()})
    except Exception as e:
        return json_error(e, "look up coupon")
