# Overview: Transaction boundary for every write in the core; no silent retries.

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


class TransactionAborted(Exception):
    """
    A multi-row write could not commit (conflict, vanished row, constraint).

    Nothing was written. Safe for the caller to retry.
    """
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there atomic() takes the
    write lock up front with BEGIN IMMEDIATE instead.
    """
    return query.with_for_update()


def _begin_immediate_if_sqlite() -> None:
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.driver_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


@contextmanager
def atomic(description: str = "transaction"):
    """
    Run a block as one all-or-nothing write.

    Commits on success. On any error the session is rolled back, so a
    failed call leaves no partial effect. Version conflicts and constraint
    violations surface as TransactionAborted; business errors raised inside
    the block propagate unchanged. Storage outages (OperationalError) also
    propagate: they are environment failures, not conflicts.
    """
    _begin_immediate_if_sqlite()
    try:
        yield db.session
        db.session.commit()
    except (StaleDataError, IntegrityError) as exc:
        db.session.rollback()
        logger.warning("%s aborted: %s", description, exc)
        raise TransactionAborted(f"{description} aborted, nothing was saved") from exc
    except Exception:
        db.session.rollback()
        raise
