from __future__ import annotations
from datetime import datetime
from playtime.time_utils import parse_iso_datetime

import dataclasses
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum money amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

# A session longer than a day is a data-entry mistake
MAX_SESSION_MINUTES = 24 * 60


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate coupon code)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = dataclasses.field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(field: str, value: Any) -> int:
    """
    Strict integer coercion for money and counters.

    Rejects floats, decimals and scientific notation: amounts travel as
    integer cents end to end.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_cents(field: str, value: Any, *, positive: bool = False) -> int:
    """Validate an amount in cents: integer, >= 0 (or > 0), within MAX_AMOUNT_CENTS."""
    if value is None:
        raise ValidationError(f"{field} required")
    cents = coerce_int(field, value)
    if positive and cents <= 0:
        raise ValidationError(f"{field} must be > 0")
    if cents < 0:
        raise ValidationError(f"{field} must be >= 0")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return cents


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


# =============================================================================
# BUSINESS RULES (not captured by column metadata)
# =============================================================================

def _check_amount(patch: dict, key: str) -> None:
    if key in patch and patch[key] is not None:
        amount = patch[key]
        if amount < 0:
            raise ValidationError(f"{key} must be >= 0")
        if amount > MAX_AMOUNT_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")


def enforce_rules_product(patch: dict) -> None:
    _check_amount(patch, "price_cents")
    if "stock" in patch and patch["stock"] is not None and patch["stock"] < 0:
        raise ValidationError("stock must be >= 0")
    if "min_stock" in patch and patch["min_stock"] is not None and patch["min_stock"] < 0:
        raise ValidationError("min_stock must be >= 0")


def enforce_rules_settings(patch: dict) -> None:
    for key in ("first_hour_rate_cents", "additional_hour_rate_cents", "full_afternoon_rate_cents"):
        _check_amount(patch, key)


def enforce_rules_coupon(patch: dict) -> None:
    from .models.coupons import VALID_DISCOUNT_TYPES, VALID_COUPON_STATUSES, DISCOUNT_PERCENTAGE

    if "code" in patch:
        patch["code"] = patch["code"].upper()
    if "discount_type" in patch:
        patch["discount_type"] = patch["discount_type"].upper()
        if patch["discount_type"] not in VALID_DISCOUNT_TYPES:
            raise ValidationError(f"discount_type must be one of {sorted(VALID_DISCOUNT_TYPES)}")
    if "status" in patch:
        patch["status"] = patch["status"].upper()
        if patch["status"] not in VALID_COUPON_STATUSES:
            raise ValidationError(f"status must be one of {sorted(VALID_COUPON_STATUSES)}")
    if "discount_value" in patch:
        value = patch["discount_value"]
        if value <= 0:
            raise ValidationError("discount_value must be > 0")
        if patch.get("discount_type") == DISCOUNT_PERCENTAGE and value > 100:
            raise ValidationError("percentage discount_value cannot exceed 100")
    if "usage_limit" in patch and patch["usage_limit"] is not None and patch["usage_limit"] < 0:
        raise ValidationError("usage_limit must be >= 0 (0 = unlimited)")


def enforce_rules_check_in(data: dict) -> dict:
    """Validate a check-in payload; returns normalized fields for session_service.check_in."""
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    responsible = str(data.get("responsible") or "").strip()
    responsible_cpf = str(data.get("responsible_cpf") or "").strip()
    if not responsible or not responsible_cpf:
        raise ValidationError("responsible and responsible_cpf required")

    children = data.get("children")
    if isinstance(children, str):
        children = children.split(",")
    if not isinstance(children, list):
        raise ValidationError("children must be a list of names")
    children = [str(name).strip() for name in children if str(name).strip()]
    if not children:
        raise ValidationError("At least one child name is required")

    max_time = coerce_int("max_time", data.get("max_time", 60))
    if max_time <= 0:
        raise ValidationError("max_time must be > 0")
    if max_time > MAX_SESSION_MINUTES:
        raise ValidationError(f"max_time cannot exceed {MAX_SESSION_MINUTES} minutes")

    is_full_afternoon = data.get("is_full_afternoon", False)
    if not isinstance(is_full_afternoon, bool):
        raise ValidationError("is_full_afternoon must be a boolean")

    phone = data.get("responsible_phone")
    coupon_code = data.get("coupon_code")

    return {
        "responsible": responsible,
        "responsible_cpf": responsible_cpf,
        "responsible_phone": str(phone).strip() if phone else None,
        "children": children,
        "max_time": max_time,
        "is_full_afternoon": is_full_afternoon,
        "coupon_code": str(coupon_code).strip() if coupon_code else None,
    }
