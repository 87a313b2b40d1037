"""
Monthly summary repository (persistence).

Stores one row per period key. Derived figures (net revenue, average revenue
per customer, ROI, per-source averages) are written for reporting but are
never read back: totals are the only source of truth.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from domain.summary import MonthlySummary, SourceRevenue, parse_period_key
from domain.time import to_iso_utc
from repositories.record_store import RecordStore, StoredRecord


def _decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def _json_field(value: Any, default: Any) -> Any:
    """JSON columns come back decoded from jsonb, or as text from older rows."""

    if value is None or value == "":
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


def _record_to_summary(record: StoredRecord) -> MonthlySummary:
    by_source_raw: Mapping[str, Any] = _json_field(record.get("revenue_by_source"), {})
    spend_raw: Mapping[str, Any] = _json_field(record.get("ad_spend_by_category"), {})
    refs_raw: List[Any] = _json_field(record.get("applied_payment_refs"), [])

    return MonthlySummary(
        period=str(record.get("period")),
        total_revenue=_decimal(record.get("total_revenue")),
        total_ad_spend=_decimal(record.get("total_ad_spend")),
        total_promo_spend=_decimal(record.get("total_promo_spend")),
        customer_count=int(record.get("customer_count") or 0),
        revenue_by_source={
            source: SourceRevenue.from_dict(entry) for source, entry in by_source_raw.items()
        },
        ad_spend_by_category={category: _decimal(amount) for category, amount in spend_raw.items()},
        applied_payment_refs=tuple(str(ref) for ref in refs_raw),
        record_id=record.record_id,
    )


def _summary_to_row(summary: MonthlySummary) -> Dict[str, Any]:
    year, month = parse_period_key(summary.period)
    return {
        "period": summary.period,
        "year": year,
        "month": month,
        "total_revenue": str(summary.total_revenue),
        "total_ad_spend": str(summary.total_ad_spend),
        "total_promo_spend": str(summary.total_promo_spend),
        "net_revenue": str(summary.net_revenue),
        "customer_count": summary.customer_count,
        "average_revenue_per_customer": str(summary.average_revenue_per_customer),
        "revenue_by_source": {
            source: entry.to_dict() for source, entry in summary.revenue_by_source.items()
        },
        "ad_spend_by_category": {
            category: str(amount) for category, amount in summary.ad_spend_by_category.items()
        },
        "applied_payment_refs": list(summary.applied_payment_refs),
        "roi": summary.roi_display,
    }


def get_summary(store: RecordStore, period: str) -> Optional[MonthlySummary]:
    """Fetch the summary for a period key, or None if none exists yet."""

    rows = store.query(store.tables.monthly_summary, equals={"period": period}, limit=1)
    if not rows:
        return None
    return _record_to_summary(rows[0])


def save_summary(
    store: RecordStore,
    summary: MonthlySummary,
    now: datetime,
    *,
    ad_spend_refreshed: bool = False,
) -> MonthlySummary:
    """
    Create the period row if `summary` has no record id, else update it.

    Returns the summary as stored (with its record id).
    """

    row = _summary_to_row(summary)
    stamp = to_iso_utc(now, name="now")
    row["last_updated"] = stamp
    if ad_spend_refreshed:
        row["ad_spend_updated_at"] = stamp

    if summary.record_id is None:
        row["created_at"] = stamp
        record = store.create(store.tables.monthly_summary, row)
    else:
        record = store.update(store.tables.monthly_summary, summary.record_id, row)
    return _record_to_summary(record)


def list_summaries(store: RecordStore, year: Optional[int] = None) -> List[MonthlySummary]:
    rows = store.query(
        store.tables.monthly_summary,
        equals={"year": year} if year is not None else None,
        order_by="period",
    )
    return [_record_to_summary(row) for row in rows]


__all__ = ["get_summary", "save_summary", "list_summaries"]
