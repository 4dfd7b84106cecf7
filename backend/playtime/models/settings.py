from __future__ import annotations

from ..extensions import db
from playtime.time_utils import to_utc_z


SETTINGS_ROW_ID = 1

DEFAULT_FIRST_HOUR_RATE_CENTS = 3000
DEFAULT_ADDITIONAL_HOUR_RATE_CENTS = 1500
DEFAULT_FULL_AFTERNOON_RATE_CENTS = 6000


class Settings(db.Model):
    """
    Venue rate table (singleton row, id=1).

    All rates are per child, in cents. The row is created with defaults on
    first read, so readers never see a missing rate table.
    """
    __tablename__ = "settings"

    id = db.Column(db.Integer, primary_key=True)

    first_hour_rate_cents = db.Column(db.Integer, nullable=False, default=DEFAULT_FIRST_HOUR_RATE_CENTS)
    additional_hour_rate_cents = db.Column(db.Integer, nullable=False, default=DEFAULT_ADDITIONAL_HOUR_RATE_CENTS)
    full_afternoon_rate_cents = db.Column(db.Integer, nullable=False, default=DEFAULT_FULL_AFTERNOON_RATE_CENTS)

    logo_url = db.Column(db.String(512), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "first_hour_rate_cents": self.first_hour_rate_cents,
            "additional_hour_rate_cents": self.additional_hour_rate_cents,
            "full_afternoon_rate_cents": self.full_afternoon_rate_cents,
            "logo_url": self.logo_url,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }
