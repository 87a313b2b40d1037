"""
Monthly ad-spend refresh.

Pulls the previous month's marketing expenses from the accounting platform,
groups them by the lead source each expense account funds, and replaces the
period's ad-spend snapshot. Promotional accounts are tracked separately as
promo spend; they reduce net revenue but are excluded from ROI.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from connectors.quickbooks import ExpenseLine
from domain.summary import ZERO, MonthlySummary, period_bounds, previous_period
from repositories.record_store import RecordStore
from services.rollup_service import apply_ad_spend

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_DAY = 3

AD_SPEND_CATEGORIES: tuple[str, ...] = (
    "Advertising/Promotional",
    "Marketing",
    "Advertising",
    "Google Ads",
    "Facebook Ads",
    "Box Truck",
    "Angi",
    "Yard Sign",
    "Billboard",
    "Online Advertising",
    "Social Media Advertising",
    "Promotional",
)

PROMOTIONAL_ACCOUNTS: tuple[str, ...] = ("Promotional",)

# Expense account name -> lead source it funds. Longer keys are tried first
# on partial matches so "Online Advertising" wins over "Advertising".
ACCOUNT_TO_LEAD_SOURCE: Dict[str, str] = {
    "Google Ads": "Google Ads",
    "Facebook Ads": "Facebook Ads",
    "Box Truck": "Box Truck",
    "Angi": "Angi",
    "Yard Sign": "Yard Sign",
    "Billboard": "Billboard",
    "Marketing": "General Marketing",
    "Advertising": "General Advertising",
    "Online Advertising": "Online Ads",
    "Social Media Advertising": "Social Media",
}


class ExpenseSource(Protocol):
    def list_expenses(
        self, start: date, end: date, categories: Sequence[str] = ()
    ) -> List[ExpenseLine]: ...


@dataclass(frozen=True, slots=True)
class AdSpendRefreshResult:
    """
    ran: False when gated off by the calendar
    period: the period refreshed (or that would be refreshed)
    next_run: the next scheduled refresh date when skipped
    """

    ran: bool
    period: str
    message: str
    total_ad_spend: Decimal = ZERO
    promo_spend: Decimal = ZERO
    spend_by_category: Mapping[str, Decimal] = field(default_factory=dict)
    expense_count: int = 0
    next_run: Optional[date] = None
    summary: Optional[MonthlySummary] = None


def map_account_to_lead_source(
    account_name: str,
    mapping: Mapping[str, str] = ACCOUNT_TO_LEAD_SOURCE,
) -> str:
    """
    Lead source an expense account funds.

    Exact (case-insensitive) match first, then the longest mapping key
    contained in the account name. Unmapped accounts keep their own name.
    """

    name = account_name.strip()
    lowered = name.lower()
    for key, source in mapping.items():
        if key.lower() == lowered:
            return source
    for key in sorted(mapping, key=len, reverse=True):
        if key.lower() in lowered:
            return mapping[key]
    return name or "Uncategorized"


def is_promotional(account_name: str, promotional: Sequence[str] = PROMOTIONAL_ACCOUNTS) -> bool:
    lowered = account_name.lower()
    # "Advertising/Promotional" is the catch-all ad account, not promo spend.
    if "advertising" in lowered:
        return False
    return any(key.lower() in lowered for key in promotional)


def next_refresh_date(today: date, refresh_day: int = DEFAULT_REFRESH_DAY) -> date:
    """The refresh day this month, or next month's when it has passed."""

    if today.day < refresh_day:
        return today.replace(day=refresh_day)
    if today.month == 12:
        return date(today.year + 1, 1, refresh_day)
    return date(today.year, today.month + 1, refresh_day)


def summarize_expenses(
    expenses: Iterable[ExpenseLine],
    mapping: Mapping[str, str] = ACCOUNT_TO_LEAD_SOURCE,
    promotional: Sequence[str] = PROMOTIONAL_ACCOUNTS,
) -> tuple[Dict[str, Decimal], Decimal]:
    """Group expense lines into (spend per lead source, promo spend)."""

    by_source: Dict[str, Decimal] = {}
    promo = ZERO
    for expense in expenses:
        if expense.amount <= 0:
            continue
        if is_promotional(expense.account_name, promotional):
            promo += expense.amount
            continue
        source = map_account_to_lead_source(expense.account_name, mapping)
        by_source[source] = by_source.get(source, ZERO) + expense.amount
    return by_source, promo


def refresh_ad_spend(
    store: RecordStore,
    accounting: ExpenseSource,
    *,
    today: date,
    force: bool = False,
    refresh_day: int = DEFAULT_REFRESH_DAY,
    categories: Sequence[str] = AD_SPEND_CATEGORIES,
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
) -> AdSpendRefreshResult:
    """
    Replace the previous month's ad spend with the accounting platform's figures.

    Runs only on `refresh_day` of the month unless `force` is set, giving
    late-entered expenses time to land before the month is closed out.

    Raises:
        ConfigurationError: the accounting platform is not connected.
        UpstreamError: the accounting platform or record store failed.
    """

    period = previous_period(today)
    if not force and today.day != refresh_day:
        next_run = next_refresh_date(today, refresh_day)
        logger.info(
            "Ad spend refresh skipped: runs on day %d (next run %s)",
            refresh_day,
            next_run.isoformat(),
        )
        return AdSpendRefreshResult(
            ran=False,
            period=period,
            message=f"Ad spend refresh only runs on day {refresh_day} of the month",
            next_run=next_run,
        )

    start, end = period_bounds(period)
    logger.info("Refreshing ad spend for %s (%s..%s)", period, start, end)
    expenses = accounting.list_expenses(start, end, categories)
    by_source, promo = summarize_expenses(expenses)

    summary = apply_ad_spend(store, period, by_source, promo_spend=promo, clock=clock)
    return AdSpendRefreshResult(
        ran=True,
        period=period,
        message=f"Ad spend refreshed for {period}",
        total_ad_spend=summary.total_ad_spend,
        promo_spend=summary.total_promo_spend,
        spend_by_category=summary.ad_spend_by_category,
        expense_count=len(expenses),
        summary=summary,
    )


__all__ = [
    "AD_SPEND_CATEGORIES",
    "ACCOUNT_TO_LEAD_SOURCE",
    "AdSpendRefreshResult",
    "ExpenseSource",
    "map_account_to_lead_source",
    "is_promotional",
    "next_refresh_date",
    "summarize_expenses",
    "refresh_ad_spend",
]
