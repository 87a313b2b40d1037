"""
Tests for `domain/summary.py`.

Covers contract rules:
- Revenue accumulates per source; averages are derived from totals.
- Ad spend is replaced, never accumulated, and stale categories are zeroed.
- ROI is "N/A" when there is no ad spend.
- Folds never mutate their input.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from domain.summary import (
    MonthlySummary,
    SourceRevenue,
    fold_ad_spend,
    fold_payment,
    parse_period_key,
    period_bounds,
    period_key,
    previous_period,
)


def test_revenue_aggregates_per_source() -> None:
    summary = MonthlySummary.empty("2025-03")
    summary = fold_payment(summary, "X", Decimal("100"))
    summary = fold_payment(summary, "X", Decimal("50"))
    summary = fold_payment(summary, "Y", Decimal("30"))

    assert summary.total_revenue == Decimal("180")
    assert summary.customer_count == 3
    assert summary.revenue_by_source["X"] == SourceRevenue(total=Decimal("150"), count=2)
    assert summary.revenue_by_source["X"].average == Decimal("75")
    assert summary.revenue_by_source["Y"].average == Decimal("30")
    assert summary.average_revenue_per_customer == Decimal("60")


def test_blank_source_is_attributed_to_unknown() -> None:
    summary = fold_payment(MonthlySummary.empty("2025-03"), "  ", Decimal("10"))

    assert "Unknown" in summary.revenue_by_source


def test_fold_payment_does_not_mutate_input() -> None:
    original = MonthlySummary.empty("2025-03")
    fold_payment(original, "X", Decimal("100"))

    assert original.total_revenue == Decimal("0")
    assert dict(original.revenue_by_source) == {}


def test_replayed_payment_ref_is_a_noop() -> None:
    summary = fold_payment(MonthlySummary.empty("2025-03"), "X", Decimal("100"), payment_ref="payment:1")
    replayed = fold_payment(summary, "X", Decimal("100"), payment_ref="payment:1")

    assert replayed is summary
    assert replayed.total_revenue == Decimal("100")


def test_negative_payment_rejected() -> None:
    with pytest.raises(ValueError):
        fold_payment(MonthlySummary.empty("2025-03"), "X", Decimal("-1"))


def test_roi_not_applicable_without_ad_spend() -> None:
    summary = fold_payment(MonthlySummary.empty("2025-03"), "X", Decimal("500"))

    assert summary.roi is None
    assert summary.roi_display == "N/A"


def test_roi_percentage() -> None:
    summary = fold_payment(MonthlySummary.empty("2025-03"), "X", Decimal("4500"))
    summary = fold_ad_spend(summary, {"Google Ads": Decimal("2000")})

    assert summary.roi == Decimal("125.00")
    assert summary.roi_display == "125.00%"
    assert summary.net_revenue == Decimal("2500")


def test_ad_spend_refresh_is_idempotent() -> None:
    once = fold_ad_spend(MonthlySummary.empty("2025-03"), {"A": Decimal("100")})
    twice = fold_ad_spend(once, {"A": Decimal("100")})

    assert twice.total_ad_spend == Decimal("100")
    assert twice.ad_spend_by_category == once.ad_spend_by_category


def test_missing_category_is_zeroed_on_refresh() -> None:
    summary = fold_ad_spend(MonthlySummary.empty("2025-03"), {"A": Decimal("100"), "B": Decimal("40")})
    summary = fold_ad_spend(summary, {"B": Decimal("60")})

    assert summary.ad_spend_by_category["A"] == Decimal("0")
    assert summary.ad_spend_by_category["B"] == Decimal("60")
    assert summary.total_ad_spend == Decimal("60")


def test_empty_refresh_zeroes_everything() -> None:
    summary = fold_ad_spend(MonthlySummary.empty("2025-03"), {"A": Decimal("100")})
    summary = fold_ad_spend(summary, {})

    assert summary.ad_spend_by_category == {"A": Decimal("0")}
    assert summary.total_ad_spend == Decimal("0")
    assert summary.roi_display == "N/A"


def test_promo_spend_reduces_net_revenue_only() -> None:
    summary = fold_payment(MonthlySummary.empty("2025-03"), "X", Decimal("1000"))
    summary = fold_ad_spend(summary, {"A": Decimal("200")}, promo_spend=Decimal("100"))

    assert summary.net_revenue == Decimal("700")
    assert summary.roi == Decimal("400.00")

    kept = fold_ad_spend(summary, {"A": Decimal("200")})
    assert kept.total_promo_spend == Decimal("100")


def test_source_revenue_reads_legacy_keys() -> None:
    entry = SourceRevenue.from_dict({"totalRevenue": 150, "customerCount": 2, "averageRevenue": 1})

    assert entry.total == Decimal("150")
    assert entry.average == Decimal("75")


@pytest.mark.parametrize(
    "today, expected",
    [
        (date(2025, 4, 3), "2025-03"),
        (date(2025, 1, 15), "2024-12"),
    ],
)
def test_previous_period(today: date, expected: str) -> None:
    assert previous_period(today) == expected


def test_period_helpers() -> None:
    assert period_key(2025, 2) == "2025-02"
    assert parse_period_key("2024-12") == (2024, 12)
    assert period_bounds("2024-02") == (date(2024, 2, 1), date(2024, 2, 29))

    with pytest.raises(ValueError):
        parse_period_key("2025-13")
    with pytest.raises(ValueError):
        MonthlySummary.empty("March")
