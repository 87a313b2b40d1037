"""
Domain: payment events and the manual-review outbox.

A PaymentEvent is transient: it is produced by the accounting webhook
adapter and consumed exactly once by payment processing. A PaymentReview is
persisted whenever a payment cannot be applied automatically, so unmatched
payments survive even when logs are not retained.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class PaymentEvent:
    customer_name: str
    amount: Decimal
    payment_date: date
    invoice_number: Optional[str] = None
    payment_method: Optional[str] = None
    payment_id: Optional[str] = None  # accounting platform's Payment.Id
    customer_id: Optional[str] = None  # accounting platform's CustomerRef
    reference_number: Optional[str] = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError("amount must be non-negative")

    @property
    def dedupe_ref(self) -> Optional[str]:
        """Stable reference used to make rollup folds replay-safe."""

        if self.payment_id:
            return f"payment:{self.payment_id}"
        if self.invoice_number:
            return f"invoice:{self.invoice_number}"
        return None


class ReviewReason(str, Enum):
    NO_MATCH = "no_match"
    ALREADY_PAID = "already_paid"


@dataclass(frozen=True, slots=True)
class PaymentReview:
    """
    A payment that needs a human to reconcile it.

    `lead_record_id` is set when a lead was found but the payment could not
    be applied to it (e.g. the lead is already paid under another invoice).
    """

    reason: ReviewReason
    customer_name: str
    amount: Decimal
    payment_date: date
    created_at: datetime
    invoice_number: Optional[str] = None
    payment_id: Optional[str] = None
    payment_method: Optional[str] = None
    lead_record_id: Optional[str] = None
    review_id: Optional[str] = None
    resolved: bool = False

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)

    @classmethod
    def for_payment(
        cls,
        payment: PaymentEvent,
        reason: ReviewReason,
        created_at: datetime,
        lead_record_id: Optional[str] = None,
    ) -> "PaymentReview":
        return cls(
            reason=reason,
            customer_name=payment.customer_name,
            amount=payment.amount,
            payment_date=payment.payment_date,
            created_at=created_at,
            invoice_number=payment.invoice_number,
            payment_id=payment.payment_id,
            payment_method=payment.payment_method,
            lead_record_id=lead_record_id,
        )
