"""
Webhook API Endpoints.

Inbound events from the CRM (new leads) and the accounting platform
(payments). Signatures are checked against the raw body before anything is
parsed; the blocking store and accounting calls run in the threadpool.
"""

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_accounting_client, get_record_store, settings_dependency
from api.models import LeadWebhookResponse, PaymentOutcomeResponse, PaymentWebhookResponse
from config import Settings
from connectors.quickbooks import QuickBooksClient
from domain.errors import ConfigurationError, InvalidSignature, UpstreamError
from domain.summary import period_for_date
from repositories.record_store import RecordStore
from services.intake_service import process_lead_webhook
from services.payment_service import PaymentOutcome, PaymentStatusCode, process_payments
from services.webhook_security import (
    HOUSECALL_SIGNATURE_HEADER,
    INTUIT_SIGNATURE_HEADER,
    verify_housecall_signature,
    verify_intuit_signature,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_json(body: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body is not valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return payload


def _outcome_response(outcome: PaymentOutcome) -> PaymentOutcomeResponse:
    payment = outcome.payment
    return PaymentOutcomeResponse(
        status=outcome.status.value,
        customer_name=payment.customer_name,
        amount=payment.amount,
        payment_date=payment.payment_date,
        invoice_number=payment.invoice_number,
        lead_id=outcome.lead.record_id if outcome.lead else None,
        match_score=outcome.match_score,
        period=period_for_date(payment.payment_date) if outcome.summary else None,
        review_reason=outcome.review.reason.value if outcome.review else None,
        error=outcome.error,
    )


@router.post(
    "/hcp",
    response_model=LeadWebhookResponse,
    summary="Lead Intake Webhook",
    description="Record a new lead from HouseCall Pro or a Go High Level workflow."
)
@router.post("/hcp-webhook", response_model=LeadWebhookResponse, include_in_schema=False)
async def lead_webhook(
    request: Request,
    settings: Settings = Depends(settings_dependency),
    store: RecordStore = Depends(get_record_store),
):
    """
    Create or update the Lead described by a CRM webhook.

    Unrecognized payloads are acknowledged with `success: false` so the
    sender does not keep retrying them.
    """
    body = await request.body()
    try:
        verify_housecall_signature(
            body,
            request.headers.get(HOUSECALL_SIGNATURE_HEADER),
            settings.housecall_webhook_secret,
        )
    except InvalidSignature as e:
        raise HTTPException(status_code=401, detail=str(e))

    payload = _parse_json(body)

    try:
        lead = await run_in_threadpool(
            process_lead_webhook,
            store,
            payload,
            settings.placeholder_sources,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UpstreamError as e:
        logger.error("Lead intake failed: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to record lead: {e}")

    if lead is None:
        return LeadWebhookResponse(success=False, message="Unrecognized webhook format")

    return LeadWebhookResponse(
        success=True,
        message="Lead recorded",
        lead_id=lead.record_id,
        customer_name=lead.customer_name,
        lead_source=lead.lead_source,
    )


@router.post(
    "/qbo",
    response_model=PaymentWebhookResponse,
    summary="Payment Webhook",
    description="Apply QuickBooks payments to leads and monthly summaries."
)
@router.post("/qbo-webhook", response_model=PaymentWebhookResponse, include_in_schema=False)
async def payment_webhook(
    request: Request,
    settings: Settings = Depends(settings_dependency),
    store: RecordStore = Depends(get_record_store),
    accounting: QuickBooksClient = Depends(get_accounting_client),
):
    """
    Process a QuickBooks change notification.

    **Responses:**
    - 200: every payment was applied, already applied, or queued for review
    - 401: signature check failed (nothing processed)
    - 500: a payment could not be fetched or stored; the body lists outcomes
    """
    body = await request.body()
    try:
        verify_intuit_signature(
            body,
            request.headers.get(INTUIT_SIGNATURE_HEADER),
            settings.qbo_webhook_verifier_token,
        )
    except InvalidSignature as e:
        raise HTTPException(status_code=401, detail=str(e))

    payload = _parse_json(body)

    try:
        payments = await run_in_threadpool(accounting.payments_from_webhook, payload)
    except (ConfigurationError, UpstreamError) as e:
        logger.error("Failed to fetch payments for webhook: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to fetch payments: {e}")

    outcomes = await run_in_threadpool(
        lambda: process_payments(store, payments, threshold=settings.fuzzy_match_threshold)
    )

    counts = {status: 0 for status in PaymentStatusCode}
    for outcome in outcomes:
        counts[outcome.status] += 1

    response = PaymentWebhookResponse(
        success=counts[PaymentStatusCode.FAILED] == 0,
        processed=len(outcomes),
        applied=counts[PaymentStatusCode.APPLIED],
        needs_review=counts[PaymentStatusCode.NEEDS_REVIEW],
        failed=counts[PaymentStatusCode.FAILED],
        outcomes=[_outcome_response(outcome) for outcome in outcomes],
    )
    if not response.success:
        return JSONResponse(status_code=500, content=response.model_dump(mode="json"))
    return response
