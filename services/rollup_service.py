"""
Monthly rollup aggregation.

Folds payments and ad-spend refreshes into the one summary row each period
owns. Every operation is a read-modify-write against the record store, so:

- Writers for the same period are serialized through a per-period lock.
  Requests served by one process (the API's worker threads) therefore never
  lose each other's updates.
- Payment folds carry a payment reference; replaying the same payment is a
  no-op, so a redelivered webhook cannot double-count revenue.
- Reads are retried with backoff; writes are not, to avoid duplicate rows.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, DefaultDict, Mapping, Optional

from domain.summary import (
    MonthlySummary,
    fold_ad_spend,
    fold_payment,
    parse_period_key,
    period_bounds,
)
from repositories.lead_repository import list_paid_leads
from repositories.record_store import RecordStore
from repositories.summary_repository import get_summary, save_summary
from services.retry import retry_with_backoff

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_registry_lock = threading.Lock()
_period_locks: DefaultDict[str, threading.Lock] = defaultdict(threading.Lock)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def period_lock(period: str) -> threading.Lock:
    """The lock that serializes writers of one period's summary."""

    with _registry_lock:
        return _period_locks[period]


def _load(store: RecordStore, period: str) -> MonthlySummary:
    existing = retry_with_backoff(lambda: get_summary(store, period))
    return existing if existing is not None else MonthlySummary.empty(period)


def apply_payment(
    store: RecordStore,
    period: str,
    lead_source: Optional[str],
    amount: Decimal,
    *,
    payment_ref: Optional[str] = None,
    clock: Clock = _utcnow,
) -> MonthlySummary:
    """
    Add one payment to the period's revenue, creating the summary if absent.

    Net revenue and ROI are derived from whatever ad spend the period holds
    at this moment, which may still be zero before the monthly refresh.
    """

    parse_period_key(period)
    with period_lock(period):
        current = _load(store, period)
        updated = fold_payment(current, lead_source, amount, payment_ref=payment_ref)
        if updated is current:
            logger.info("Payment %s already applied to %s; skipping", payment_ref, period)
            return current

        saved = save_summary(store, updated, clock())
        logger.info(
            "Summary %s: +%s from %r (revenue %s, customers %d, ROI %s)",
            period,
            amount,
            lead_source,
            saved.total_revenue,
            saved.customer_count,
            saved.roi_display,
        )
        return saved


def apply_ad_spend(
    store: RecordStore,
    period: str,
    spend_by_category: Mapping[str, Decimal],
    *,
    promo_spend: Optional[Decimal] = None,
    clock: Clock = _utcnow,
) -> MonthlySummary:
    """
    Replace the period's ad spend with a fresh per-category snapshot.

    Categories missing from the snapshot are zeroed. Calling this twice with
    the same input leaves the same state as calling it once.
    """

    parse_period_key(period)
    with period_lock(period):
        current = _load(store, period)
        updated = fold_ad_spend(current, spend_by_category, promo_spend=promo_spend)
        saved = save_summary(store, updated, clock(), ad_spend_refreshed=True)
        logger.info(
            "Summary %s: ad spend %s across %d categories (net %s, ROI %s)",
            period,
            saved.total_ad_spend,
            len(saved.ad_spend_by_category),
            saved.net_revenue,
            saved.roi_display,
        )
        return saved


def rebuild_summary(
    store: RecordStore,
    period: str,
    spend_by_category: Optional[Mapping[str, Decimal]] = None,
    *,
    promo_spend: Optional[Decimal] = None,
    clock: Clock = _utcnow,
) -> MonthlySummary:
    """
    Recompute a period's revenue from the Paid leads whose payment falls in it.

    Repairs drift from lost or manual updates. Ad spend is kept unless a new
    snapshot is supplied.
    """

    start, end = period_bounds(period)
    with period_lock(period):
        current = _load(store, period)
        leads = retry_with_backoff(lambda: list_paid_leads(store, start, end))

        rebuilt = MonthlySummary(
            period=period,
            total_ad_spend=current.total_ad_spend,
            total_promo_spend=current.total_promo_spend,
            ad_spend_by_category=current.ad_spend_by_category,
            record_id=current.record_id,
        )
        for lead in leads:
            rebuilt = fold_payment(
                rebuilt,
                lead.lead_source,
                lead.payment_amount,
                payment_ref=lead.payment_ref or f"lead:{lead.record_id}",
            )
        if spend_by_category is not None or promo_spend is not None:
            rebuilt = fold_ad_spend(
                rebuilt,
                current.ad_spend_by_category if spend_by_category is None else spend_by_category,
                promo_spend=promo_spend,
            )

        saved = save_summary(
            store,
            rebuilt,
            clock(),
            ad_spend_refreshed=spend_by_category is not None,
        )
        logger.info(
            "Summary %s rebuilt from %d paid leads (revenue %s)",
            period,
            len(leads),
            saved.total_revenue,
        )
        return saved


__all__ = ["apply_payment", "apply_ad_spend", "rebuild_summary", "period_lock"]
