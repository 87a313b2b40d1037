"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Webhook Models
# ============================================================================

class LeadWebhookResponse(BaseModel):
    """Result of a lead intake webhook."""
    success: bool
    message: str
    lead_id: Optional[str] = None
    customer_name: Optional[str] = None
    lead_source: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Lead recorded",
                "lead_id": "42",
                "customer_name": "John Smith",
                "lead_source": "Google Ads"
            }
        }


class PaymentOutcomeResponse(BaseModel):
    """Outcome of one payment from an accounting webhook."""
    status: str  # "applied", "already_applied", "needs_review", "failed"
    customer_name: str
    amount: Decimal
    payment_date: date
    invoice_number: Optional[str] = None
    lead_id: Optional[str] = None
    match_score: Optional[float] = None
    period: Optional[str] = None
    review_reason: Optional[str] = None
    error: Optional[str] = None


class PaymentWebhookResponse(BaseModel):
    """Result of an accounting payment webhook."""
    success: bool
    processed: int
    applied: int
    needs_review: int
    failed: int
    outcomes: List[PaymentOutcomeResponse]

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "processed": 1,
                "applied": 1,
                "needs_review": 0,
                "failed": 0,
                "outcomes": [
                    {
                        "status": "applied",
                        "customer_name": "ACME Corp",
                        "amount": "1500.00",
                        "payment_date": "2025-03-14",
                        "invoice_number": "1043",
                        "lead_id": "7",
                        "match_score": 1.0,
                        "period": "2025-03"
                    }
                ]
            }
        }


# ============================================================================
# Auth Models
# ============================================================================

class AuthCallbackResponse(BaseModel):
    """Result of the accounting OAuth callback."""
    success: bool
    message: str
    company_id: str
    expires_at: datetime


# ============================================================================
# Lead Models
# ============================================================================

class LeadResponse(BaseModel):
    """Single lead in API response."""
    lead_id: str
    customer_name: str
    lead_source: str
    payment_status: str  # "Pending" or "Paid"
    payment_amount: Decimal
    created_at: Optional[datetime] = None
    payment_date: Optional[date] = None
    invoice_number: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class LeadListResponse(BaseModel):
    """Response for lead listing."""
    leads: List[LeadResponse]
    total: int
    filters_applied: dict


# ============================================================================
# Summary Models
# ============================================================================

class SourceRevenueResponse(BaseModel):
    total: Decimal
    count: int
    average: Decimal


class MonthlySummaryResponse(BaseModel):
    """One period's rollup with derived figures."""
    period: str
    total_revenue: Decimal
    total_ad_spend: Decimal
    total_promo_spend: Decimal
    net_revenue: Decimal
    customer_count: int
    average_revenue_per_customer: Decimal
    roi: str  # "125.00%" or "N/A"
    revenue_by_source: Dict[str, SourceRevenueResponse]
    ad_spend_by_category: Dict[str, Decimal]

    class Config:
        json_schema_extra = {
            "example": {
                "period": "2025-03",
                "total_revenue": "4500.00",
                "total_ad_spend": "2000.00",
                "total_promo_spend": "0",
                "net_revenue": "2500.00",
                "customer_count": 3,
                "average_revenue_per_customer": "1500.00",
                "roi": "125.00%",
                "revenue_by_source": {
                    "Google Ads": {"total": "3000.00", "count": 2, "average": "1500.00"}
                },
                "ad_spend_by_category": {"Google Ads": "2000.00"}
            }
        }


class GenerateSummaryRequest(BaseModel):
    """Request to rebuild a period's summary from paid leads."""
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)


class RevenueBySourceResponse(BaseModel):
    """Revenue grouped by lead source over a payment-date range."""
    revenue_by_source: Dict[str, SourceRevenueResponse]
    total_revenue: Decimal
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class AdSpendRefreshResponse(BaseModel):
    """Result of an ad-spend refresh request."""
    ran: bool
    period: str
    message: str
    total_ad_spend: Decimal
    promo_spend: Decimal
    spend_by_category: Dict[str, Decimal]
    expense_count: int
    next_run: Optional[date] = None


# ============================================================================
# Review Models
# ============================================================================

class PaymentReviewResponse(BaseModel):
    """A payment waiting for manual reconciliation."""
    review_id: Optional[str] = None
    reason: str  # "no_match" or "already_paid"
    customer_name: str
    amount: Decimal
    payment_date: date
    created_at: datetime
    invoice_number: Optional[str] = None
    payment_id: Optional[str] = None
    lead_id: Optional[str] = None


class PaymentReviewListResponse(BaseModel):
    reviews: List[PaymentReviewResponse]
    total: int
