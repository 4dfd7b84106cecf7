# backend/playtime/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/playtime.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///playtime.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Seconds between keep-alive comments on the session event stream
    SESSION_FEED_KEEPALIVE_SECONDS = int(os.environ.get("SESSION_FEED_KEEPALIVE_SECONDS", "15"))

    # Where a low-stock notice sends the operator
    LOW_STOCK_LINK_TEMPLATE = os.environ.get(
        "LOW_STOCK_LINK_TEMPLATE",
        "/settings/products?highlight={product_id}",
    )

    # Redis URL for relaying the session feed between worker processes.
    # Unset: the feed only reaches subscribers of the publishing process, so
    # run a single worker.
    SESSION_FEED_REDIS_URL = os.environ.get("SESSION_FEED_REDIS_URL") or None
    SESSION_FEED_REDIS_CHANNEL = os.environ.get("SESSION_FEED_REDIS_CHANNEL", "playtime:sessions")
