"""
Monthly Summary API Endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_record_store
from api.models import (
    GenerateSummaryRequest,
    MonthlySummaryResponse,
    SourceRevenueResponse,
)
from domain.errors import UpstreamError
from domain.summary import MonthlySummary, period_key
from repositories.record_store import RecordStore
from repositories.summary_repository import get_summary, list_summaries
from services.rollup_service import rebuild_summary

logger = logging.getLogger(__name__)

router = APIRouter()


def summary_response(summary: MonthlySummary) -> MonthlySummaryResponse:
    return MonthlySummaryResponse(
        period=summary.period,
        total_revenue=summary.total_revenue,
        total_ad_spend=summary.total_ad_spend,
        total_promo_spend=summary.total_promo_spend,
        net_revenue=summary.net_revenue,
        customer_count=summary.customer_count,
        average_revenue_per_customer=summary.average_revenue_per_customer,
        roi=summary.roi_display,
        revenue_by_source={
            source: SourceRevenueResponse(total=rev.total, count=rev.count, average=rev.average)
            for source, rev in summary.revenue_by_source.items()
        },
        ad_spend_by_category=dict(summary.ad_spend_by_category),
    )


@router.get(
    "/summaries",
    response_model=list[MonthlySummaryResponse],
    summary="List Monthly Summaries",
)
def list_monthly_summaries(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    store: RecordStore = Depends(get_record_store),
):
    try:
        return [summary_response(summary) for summary in list_summaries(store, year)]
    except UpstreamError as e:
        raise HTTPException(status_code=500, detail=f"Failed to list summaries: {e}")


@router.get(
    "/summaries/{year}/{month}",
    response_model=MonthlySummaryResponse,
    summary="Get Monthly Summary",
)
def get_monthly_summary(year: int, month: int, store: RecordStore = Depends(get_record_store)):
    """
    Fetch one period's summary.

    Returns 400 for an invalid month and 404 when the period has no summary.
    """
    try:
        period = period_key(year, month)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        summary = get_summary(store, period)
    except UpstreamError as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch summary: {e}")

    if summary is None:
        raise HTTPException(status_code=404, detail=f"No summary for {period}")
    return summary_response(summary)


@router.post(
    "/summaries/generate",
    response_model=MonthlySummaryResponse,
    summary="Rebuild Monthly Summary",
    description="Recompute a period's revenue from the paid leads in that month."
)
def generate_monthly_summary(
    request: GenerateSummaryRequest,
    store: RecordStore = Depends(get_record_store),
):
    period = period_key(request.year, request.month)
    try:
        summary = rebuild_summary(store, period)
    except UpstreamError as e:
        logger.error("Summary rebuild for %s failed: %s", period, e)
        raise HTTPException(status_code=500, detail=f"Failed to rebuild summary: {e}")
    return summary_response(summary)
