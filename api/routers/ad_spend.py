"""
Ad Spend API Endpoints.

Triggers the monthly ad-spend refresh (normally run by a scheduler).
"""

import logging
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_accounting_client, get_record_store, settings_dependency
from api.models import AdSpendRefreshResponse
from config import Settings
from connectors.quickbooks import QuickBooksClient
from domain.errors import ConfigurationError, UpstreamError
from repositories.record_store import RecordStore
from services.ad_spend_service import refresh_ad_spend

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/ad-spend/refresh",
    response_model=AdSpendRefreshResponse,
    summary="Refresh Ad Spend",
    description="Replace last month's ad spend with the accounting platform's figures."
)
def refresh(
    force: bool = Query(False, description="Run even when today is not the refresh day"),
    as_of: Optional[date] = Query(None, alias="date", description="Treat this date as today"),
    settings: Settings = Depends(settings_dependency),
    store: RecordStore = Depends(get_record_store),
    accounting: QuickBooksClient = Depends(get_accounting_client),
):
    """
    Refresh the previous month's ad spend.

    Without `force`, this is a no-op except on the configured refresh day;
    the response then carries `next_run`.
    """
    today = as_of or datetime.now(timezone.utc).date()
    try:
        result = refresh_ad_spend(
            store,
            accounting,
            today=today,
            force=force,
            refresh_day=settings.ad_spend_refresh_day,
        )
    except (ConfigurationError, UpstreamError) as e:
        logger.error("Ad spend refresh failed: %s", e)
        raise HTTPException(status_code=500, detail=f"Ad spend refresh failed: {e}")

    return AdSpendRefreshResponse(
        ran=result.ran,
        period=result.period,
        message=result.message,
        total_ad_spend=result.total_ad_spend,
        promo_spend=result.promo_spend,
        spend_by_category=dict(result.spend_by_category),
        expense_count=result.expense_count,
        next_run=result.next_run,
    )
