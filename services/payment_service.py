"""
Payment processing: apply accounting payments to Leads and monthly rollups.

Handles:
- Resolving the payment's customer name to a Lead (name reconciliation)
- Marking the Lead Paid with the payment amount
- Folding the payment into the payment-date period's summary
- Recording a review entry when a payment cannot be applied automatically
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, List, Optional

from domain.errors import NoMatchFound, UpstreamError
from domain.lead import LeadRecord
from domain.payment import PaymentEvent, PaymentReview, ReviewReason
from domain.summary import MonthlySummary, period_for_date
from repositories.lead_repository import save_lead_payment
from repositories.record_store import RecordStore
from repositories.review_repository import insert_payment_review
from services.name_matching import DEFAULT_THRESHOLD, LeadMatch, require_match
from services.rollup_service import apply_payment

logger = logging.getLogger(__name__)


class PaymentStatusCode(str, Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    NEEDS_REVIEW = "needs_review"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class PaymentOutcome:
    """
    Result of processing one payment.

    status: what happened
    lead: the Lead after the update (APPLIED), or the matched Lead otherwise
    match_score: similarity of the match, when one was found
    summary: the period summary after the fold (APPLIED only)
    review: the review entry written (NEEDS_REVIEW only)
    error: failure description (FAILED only)
    """

    payment: PaymentEvent
    status: PaymentStatusCode
    lead: Optional[LeadRecord] = None
    match_score: Optional[float] = None
    summary: Optional[MonthlySummary] = None
    review: Optional[PaymentReview] = None
    error: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.lead is not None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_same_payment(lead: LeadRecord, payment: PaymentEvent) -> bool:
    """True when `payment` is the one already recorded on the Paid `lead`."""

    if lead.payment_ref and payment.dedupe_ref:
        return lead.payment_ref == payment.dedupe_ref
    return bool(lead.invoice_number) and lead.invoice_number == payment.invoice_number


def _queue_review(
    store: RecordStore,
    payment: PaymentEvent,
    reason: ReviewReason,
    now: datetime,
    match: Optional[LeadMatch] = None,
) -> PaymentOutcome:
    logger.warning(
        "Payment needs manual review (%s): customer=%r amount=%s date=%s invoice=%s",
        reason.value,
        payment.customer_name,
        payment.amount,
        payment.payment_date.isoformat(),
        payment.invoice_number,
    )
    review = insert_payment_review(
        store,
        PaymentReview.for_payment(
            payment,
            reason,
            now,
            lead_record_id=match.lead.record_id if match else None,
        ),
    )
    return PaymentOutcome(
        payment=payment,
        status=PaymentStatusCode.NEEDS_REVIEW,
        lead=match.lead if match else None,
        match_score=match.score if match else None,
        review=review,
    )


def process_payment(
    store: RecordStore,
    payment: PaymentEvent,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    clock: Callable[[], datetime] = _utcnow,
) -> PaymentOutcome:
    """
    Apply one payment.

    - No matching Lead: a review entry is written; no Lead is touched.
    - Lead already Paid by the same payment (matched on the recorded payment
      ref, else the invoice number): a redelivery. The summary fold is
      repeated, which is a no-op unless an earlier delivery failed before it.
    - Lead already Paid by another payment: review entry; the existing
      payment is not overwritten and revenue is not folded.
    - Otherwise the Lead is marked Paid and the payment is folded into the
      summary for the payment date's month.

    Raises:
        UpstreamError: the record store failed; nothing after the failing
            call was attempted.
    """

    now = clock()
    try:
        match = require_match(store, payment.customer_name, threshold)
    except NoMatchFound:
        return _queue_review(store, payment, ReviewReason.NO_MATCH, now)

    lead = match.lead
    payment_ref = payment.dedupe_ref or f"lead:{lead.record_id}"
    if lead.is_paid:
        if not _is_same_payment(lead, payment):
            return _queue_review(store, payment, ReviewReason.ALREADY_PAID, now, match)
        # The fold is replay-safe; redo it in case a prior delivery stopped
        # between marking the Lead and updating the summary.
        summary = None
        if lead.payment_ref:
            summary = apply_payment(
                store,
                period_for_date(lead.payment_date or payment.payment_date),
                lead.lead_source,
                lead.payment_amount,
                payment_ref=lead.payment_ref,
                clock=clock,
            )
        logger.info(
            "Payment %s already applied to lead %s",
            payment.payment_id or payment.invoice_number,
            lead.record_id,
        )
        return PaymentOutcome(
            payment=payment,
            status=PaymentStatusCode.ALREADY_APPLIED,
            lead=lead,
            match_score=match.score,
            summary=summary,
        )

    paid = lead.with_payment(
        payment.amount,
        payment.payment_date,
        invoice_number=payment.invoice_number,
        accounting_customer_id=payment.customer_id,
        payment_ref=payment_ref,
    )
    updated = save_lead_payment(store, paid)
    logger.info(
        "Payment %s applied to lead %s (%r, %s match %.3f)",
        payment.amount,
        updated.record_id,
        updated.customer_name,
        match.method,
        match.score,
    )

    summary = apply_payment(
        store,
        period_for_date(payment.payment_date),
        updated.lead_source,
        payment.amount,
        payment_ref=payment_ref,
        clock=clock,
    )
    return PaymentOutcome(
        payment=payment,
        status=PaymentStatusCode.APPLIED,
        lead=updated,
        match_score=match.score,
        summary=summary,
    )


def process_payments(
    store: RecordStore,
    payments: Iterable[PaymentEvent],
    *,
    threshold: float = DEFAULT_THRESHOLD,
    clock: Callable[[], datetime] = _utcnow,
) -> List[PaymentOutcome]:
    """
    Apply a batch of payments independently.

    A store failure on one payment is reported in its outcome and does not
    stop the remaining payments.
    """

    outcomes: List[PaymentOutcome] = []
    for payment in payments:
        try:
            outcomes.append(process_payment(store, payment, threshold=threshold, clock=clock))
        except UpstreamError as exc:
            logger.error(
                "Payment processing failed: customer=%r amount=%s date=%s invoice=%s: %s",
                payment.customer_name,
                payment.amount,
                payment.payment_date.isoformat(),
                payment.invoice_number,
                exc,
            )
            outcomes.append(
                PaymentOutcome(payment=payment, status=PaymentStatusCode.FAILED, error=str(exc))
            )
    return outcomes


__all__ = [
    "PaymentStatusCode",
    "PaymentOutcome",
    "process_payment",
    "process_payments",
]
