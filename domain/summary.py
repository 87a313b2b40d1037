"""
Domain: monthly rollup summaries (pure).

Contract:
- Exactly one summary exists per period key ("YYYY-MM").
- Revenue is accumulated one payment at a time; ad spend is replaced
  wholesale on every refresh, never accumulated.
- Per-source averages and the summary-level derived figures (net revenue,
  average revenue per customer, ROI) are always recomputed from totals and
  are never stored as independent facts.
- A refresh must not leave a stale non-zero spend on any category that has
  no spend in the current refresh.

The folds below never mutate their input; they return a new summary.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Mapping, Optional, Tuple

ZERO = Decimal("0")
UNKNOWN_SOURCE = "Unknown"
NOT_APPLICABLE = "N/A"


def period_key(year: int, month: int) -> str:
    if not 1 <= month <= 12:
        raise ValueError(f"month must be in 1..12, got {month}")
    return f"{year}-{month:02d}"


def parse_period_key(period: str) -> Tuple[int, int]:
    """Split "YYYY-MM" into (year, month), validating both parts."""

    try:
        year_text, month_text = period.split("-")
        year, month = int(year_text), int(month_text)
    except ValueError as exc:
        raise ValueError(f"Invalid period key: {period!r} (expected YYYY-MM)") from exc
    period_key(year, month)
    return year, month


def period_for_date(day: date) -> str:
    return period_key(day.year, day.month)


def previous_period(today: date) -> str:
    """Period key of the calendar month before `today`'s month."""

    if today.month == 1:
        return period_key(today.year - 1, 12)
    return period_key(today.year, today.month - 1)


def period_bounds(period: str) -> Tuple[date, date]:
    """First and last calendar day of the period, inclusive."""

    year, month = parse_period_key(period)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def _as_decimal(value: object) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        return ZERO
    return Decimal(str(value))


@dataclass(frozen=True, slots=True)
class SourceRevenue:
    """Revenue attributed to one lead source within a period."""

    total: Decimal = ZERO
    count: int = 0

    @property
    def average(self) -> Decimal:
        if self.count == 0:
            return ZERO
        return self.total / self.count

    def add(self, amount: Decimal) -> "SourceRevenue":
        return SourceRevenue(total=self.total + amount, count=self.count + 1)

    def to_dict(self) -> Dict[str, object]:
        return {"total": str(self.total), "count": self.count, "average": str(self.average)}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "SourceRevenue":
        # Older rows used totalRevenue/customerCount keys; `average` is never trusted.
        total = data.get("total", data.get("totalRevenue"))
        count = data.get("count", data.get("customerCount"))
        return cls(total=_as_decimal(total), count=int(count or 0))


@dataclass(frozen=True, slots=True)
class MonthlySummary:
    period: str
    total_revenue: Decimal = ZERO
    total_ad_spend: Decimal = ZERO
    total_promo_spend: Decimal = ZERO
    customer_count: int = 0
    revenue_by_source: Mapping[str, SourceRevenue] = field(default_factory=dict)
    ad_spend_by_category: Mapping[str, Decimal] = field(default_factory=dict)
    applied_payment_refs: Tuple[str, ...] = ()
    record_id: Optional[str] = None

    def __post_init__(self) -> None:
        parse_period_key(self.period)

    @classmethod
    def empty(cls, period: str) -> "MonthlySummary":
        return cls(period=period)

    @property
    def net_revenue(self) -> Decimal:
        return self.total_revenue - self.total_ad_spend - self.total_promo_spend

    @property
    def average_revenue_per_customer(self) -> Decimal:
        if self.customer_count == 0:
            return ZERO
        return self.total_revenue / self.customer_count

    @property
    def roi(self) -> Optional[Decimal]:
        """Return on ad spend as a percentage; None when there is no ad spend."""

        if self.total_ad_spend <= 0:
            return None
        ratio = (self.total_revenue - self.total_ad_spend) / self.total_ad_spend * 100
        return ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @property
    def roi_display(self) -> str:
        roi = self.roi
        return NOT_APPLICABLE if roi is None else f"{roi}%"


def fold_payment(
    summary: MonthlySummary,
    lead_source: Optional[str],
    amount: Decimal,
    payment_ref: Optional[str] = None,
) -> MonthlySummary:
    """
    Fold one payment into a period summary.

    A payment whose `payment_ref` was already applied is a no-op, so a
    redelivered webhook cannot double-count revenue.
    """

    if amount < 0:
        raise ValueError("payment amount must be non-negative")
    if payment_ref is not None and payment_ref in summary.applied_payment_refs:
        return summary

    source = (lead_source or "").strip() or UNKNOWN_SOURCE
    by_source = dict(summary.revenue_by_source)
    by_source[source] = by_source.get(source, SourceRevenue()).add(amount)

    refs = summary.applied_payment_refs
    if payment_ref is not None:
        refs = refs + (payment_ref,)

    return replace(
        summary,
        total_revenue=summary.total_revenue + amount,
        customer_count=summary.customer_count + 1,
        revenue_by_source=by_source,
        applied_payment_refs=refs,
    )


def fold_ad_spend(
    summary: MonthlySummary,
    spend_by_category: Mapping[str, Decimal],
    promo_spend: Optional[Decimal] = None,
) -> MonthlySummary:
    """
    Merge a full ad-spend refresh into a period summary.

    - Categories with positive spend take the new figure.
    - Categories previously non-zero but absent (or zero) now are set to 0.
    - Total ad spend is the sum of the merged map.
    - Promo spend is replaced only when a figure is supplied.
    """

    incoming = {category: _as_decimal(amount) for category, amount in spend_by_category.items()}
    for category, amount in incoming.items():
        if amount < 0:
            raise ValueError(f"ad spend for {category!r} must be non-negative")

    merged: Dict[str, Decimal] = dict(summary.ad_spend_by_category)
    for category, amount in incoming.items():
        if amount > 0:
            merged[category] = amount
    for category, previous in summary.ad_spend_by_category.items():
        if incoming.get(category, ZERO) <= 0 and previous != 0:
            merged[category] = ZERO

    total = sum(merged.values(), ZERO)
    promo = summary.total_promo_spend if promo_spend is None else _as_decimal(promo_spend)
    if promo < 0:
        raise ValueError("promo spend must be non-negative")

    return replace(
        summary,
        ad_spend_by_category=merged,
        total_ad_spend=total,
        total_promo_spend=promo,
    )


__all__ = [
    "ZERO",
    "UNKNOWN_SOURCE",
    "NOT_APPLICABLE",
    "period_key",
    "parse_period_key",
    "period_for_date",
    "previous_period",
    "period_bounds",
    "SourceRevenue",
    "MonthlySummary",
    "fold_payment",
    "fold_ad_spend",
]
