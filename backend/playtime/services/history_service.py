# Overview: Read-only sale history lookups (by responsible party, by time window).

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import SaleRecord

DEFAULT_LIMIT = 200


def get_sale(sale_id: int) -> SaleRecord | None:
    return db.session.get(SaleRecord, sale_id)


def list_sales(
    *,
    responsible_cpf: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = DEFAULT_LIMIT,
) -> list[SaleRecord]:
    """Newest first. Filters combine (cpf AND window)."""
    q = db.session.query(SaleRecord)
    if responsible_cpf:
        q = q.filter(SaleRecord.responsible_cpf == responsible_cpf.strip())
    if since is not None:
        q = q.filter(SaleRecord.finalized_at >= since)
    if until is not None:
        q = q.filter(SaleRecord.finalized_at <= until)
    return q.order_by(SaleRecord.finalized_at.desc(), SaleRecord.id.desc()).limit(limit).all()


def history_by_cpf(responsible_cpf: str) -> list[SaleRecord]:
    """Every visit billed to one responsible party."""
    return list_sales(responsible_cpf=responsible_cpf, limit=DEFAULT_LIMIT)
