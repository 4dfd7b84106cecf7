# Overview: Read/update the venue rate table (singleton settings row).

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Settings
from ..models.settings import SETTINGS_ROW_ID
from .billing_service import RateTable
from .concurrency import atomic

logger = logging.getLogger(__name__)

SETTINGS_MUTABLE_FIELDS = {
    "first_hour_rate_cents",
    "additional_hour_rate_cents",
    "full_afternoon_rate_cents",
    "logo_url",
}


def get_settings() -> Settings:
    """
    Return the settings row, creating it with default rates on first read.

    Two terminals racing on an empty database both try to insert id=1; the
    loser just reads the winner's row.
    """
    settings = db.session.get(Settings, SETTINGS_ROW_ID)
    if settings is not None:
        return settings

    settings = Settings(id=SETTINGS_ROW_ID)
    db.session.add(settings)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        settings = db.session.get(Settings, SETTINGS_ROW_ID)
    return settings


def get_rate_table() -> RateTable:
    return RateTable.from_settings(get_settings())


def update_settings(patch: dict) -> Settings:
    """Apply a validated patch (see validation.enforce_rules_settings)."""
    get_settings()
    with atomic("settings update"):
        settings = db.session.get(Settings, SETTINGS_ROW_ID)
        for key, value in patch.items():
            if key in SETTINGS_MUTABLE_FIELDS:
                setattr(settings, key, value)
    logger.info("Rates updated: %s", {k: v for k, v in patch.items() if k.endswith("_cents")})
    return settings
