"""
Lead API Endpoints.

Read-only views over leads, revenue by source, and payments waiting for
manual reconciliation.
"""

from datetime import date
from decimal import Decimal
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_record_store
from api.models import (
    LeadListResponse,
    LeadResponse,
    PaymentReviewListResponse,
    PaymentReviewResponse,
    RevenueBySourceResponse,
    SourceRevenueResponse,
)
from domain.errors import UpstreamError
from domain.lead import LeadRecord, PaymentStatus
from domain.summary import UNKNOWN_SOURCE, SourceRevenue
from repositories.lead_repository import list_leads, list_paid_leads
from repositories.record_store import RecordStore
from repositories.review_repository import list_payment_reviews

router = APIRouter()


def _lead_response(lead: LeadRecord) -> LeadResponse:
    return LeadResponse(
        lead_id=lead.record_id,
        customer_name=lead.customer_name,
        lead_source=lead.lead_source,
        payment_status=lead.payment_status.value,
        payment_amount=lead.payment_amount,
        created_at=lead.created_at,
        payment_date=lead.payment_date,
        invoice_number=lead.invoice_number,
        email=lead.email,
        phone=lead.phone,
    )


@router.get(
    "/leads",
    response_model=LeadListResponse,
    summary="List Leads",
)
def get_leads(
    start_date: Optional[date] = Query(None, description="Payment date from (inclusive)"),
    end_date: Optional[date] = Query(None, description="Payment date to (inclusive)"),
    lead_source: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None, description="Pending or Paid"),
    limit: int = Query(500, ge=1, le=1000),
    store: RecordStore = Depends(get_record_store),
):
    """
    List leads.

    A date range restricts the result to leads paid within it.
    """
    status = None
    if payment_status:
        try:
            status = PaymentStatus(payment_status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid payment_status: {payment_status}")

    try:
        if start_date or end_date:
            leads = list_paid_leads(store, start_date, end_date, lead_source)
            if status is PaymentStatus.PENDING:
                leads = []
            leads = leads[:limit]
        else:
            leads = list_leads(store, lead_source=lead_source, payment_status=status, limit=limit)
    except UpstreamError as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch leads: {e}")

    filters = {
        key: str(value)
        for key, value in (
            ("start_date", start_date),
            ("end_date", end_date),
            ("lead_source", lead_source),
            ("payment_status", payment_status),
        )
        if value
    }
    return LeadListResponse(
        leads=[_lead_response(lead) for lead in leads],
        total=len(leads),
        filters_applied=filters,
    )


@router.get(
    "/revenue-by-source",
    response_model=RevenueBySourceResponse,
    summary="Revenue by Lead Source",
)
def get_revenue_by_source(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    store: RecordStore = Depends(get_record_store),
):
    try:
        leads = list_paid_leads(store, start_date, end_date)
    except UpstreamError as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch revenue by source: {e}")

    by_source: Dict[str, SourceRevenue] = {}
    for lead in leads:
        source = lead.lead_source or UNKNOWN_SOURCE
        by_source[source] = by_source.get(source, SourceRevenue()).add(lead.payment_amount)

    return RevenueBySourceResponse(
        revenue_by_source={
            source: SourceRevenueResponse(total=rev.total, count=rev.count, average=rev.average)
            for source, rev in by_source.items()
        },
        total_revenue=sum((rev.total for rev in by_source.values()), Decimal("0")),
        start_date=start_date,
        end_date=end_date,
    )


@router.get(
    "/payment-reviews",
    response_model=PaymentReviewListResponse,
    summary="Payments Awaiting Review",
)
def get_payment_reviews(
    resolved: bool = Query(False),
    store: RecordStore = Depends(get_record_store),
):
    try:
        reviews = list_payment_reviews(store, resolved=resolved)
    except UpstreamError as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch payment reviews: {e}")

    return PaymentReviewListResponse(
        reviews=[
            PaymentReviewResponse(
                review_id=review.review_id,
                reason=review.reason.value,
                customer_name=review.customer_name,
                amount=review.amount,
                payment_date=review.payment_date,
                created_at=review.created_at,
                invoice_number=review.invoice_number,
                payment_id=review.payment_id,
                lead_id=review.lead_record_id,
            )
            for review in reviews
        ],
        total=len(reviews),
    )
