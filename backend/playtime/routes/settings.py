# Overview: Flask API routes for the venue rate table.

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..api_errors import json_error
from ..models import Settings
from ..services import session_service, settings_service
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_settings

SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={
        "first_hour_rate_cents",
        "additional_hour_rate_cents",
        "full_afternoon_rate_cents",
        "logo_url",
    },
    required_on_create=set(),
)

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
def get_settings():
    try:
        return jsonify({"settings": settings_service.get_settings().to_dict()})
    except Exception as e:
        return json_error(e, "load settings")


@settings_bp.put("")
def update_settings():
    """
    Update rates (per child, cents).

    Request body (any subset):
    {
        "first_hour_rate_cents": 3000,
        "additional_hour_rate_cents": 1500,
        "full_afternoon_rate_cents": 6000,
        "logo_url": "https://..."
    }
    """
    try:
        patch = validate_payload(
            model=Settings,
            payload=request.get_json(silent=True),
            policy=SETTINGS_POLICY,
            partial=True,
        )
        enforce_rules_settings(patch)
        settings = settings_service.update_settings(patch)
        # Live bills re-price with the new rates
        session_service.broadcast()
        return jsonify({"settings": settings.to_dict()})
    except Exception as e:
        return json_error(e, "update settings")
