"""
Domain: Lead entity.

Contract:
- A Lead is created from the first intake event for a customer name and is
  identified by the record id the store assigns on creation.
- customer_name is the match key used to reconcile payments.
- A Lead moves from Pending to Paid at most once in normal operation. The
  payment amount is set on that transition, never accumulated.
- Leads are never deleted by this service.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from .time import require_utc_timestamp


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"


@dataclass(frozen=True, slots=True)
class LeadRecord:
    """
    Stored Lead as read back from the record store.

    Immutability:
    - State transitions (`with_payment`) return a new instance; the original
      is left unchanged.
    """

    record_id: str
    customer_name: str
    lead_source: str
    created_at: Optional[datetime] = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_amount: Decimal = Decimal("0")
    invoice_number: Optional[str] = None
    payment_date: Optional[date] = None
    payment_ref: Optional[str] = None  # dedupe ref of the applied payment

    # Contact details carried over from the CRM
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    tags: Tuple[str, ...] = ()

    # Foreign identifiers
    external_customer_id: Optional[str] = None  # CRM contact/customer id
    accounting_customer_id: Optional[str] = None  # QuickBooks CustomerRef

    def __post_init__(self) -> None:
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.payment_amount < 0:
            raise ValueError("payment_amount must be non-negative")

    @property
    def is_paid(self) -> bool:
        return self.payment_status is PaymentStatus.PAID

    def with_payment(
        self,
        amount: Decimal,
        paid_on: date,
        invoice_number: Optional[str] = None,
        accounting_customer_id: Optional[str] = None,
        payment_ref: Optional[str] = None,
    ) -> "LeadRecord":
        """Return this Lead in the Paid state with `amount` set (not added)."""

        if amount < 0:
            raise ValueError("payment amount must be non-negative")
        return replace(
            self,
            payment_status=PaymentStatus.PAID,
            payment_amount=amount,
            payment_date=paid_on,
            invoice_number=invoice_number,
            payment_ref=payment_ref,
            accounting_customer_id=accounting_customer_id or self.accounting_customer_id,
        )


@dataclass(frozen=True, slots=True)
class LeadIntake:
    """
    Normalized lead-intake payload, independent of which CRM sent it.

    Produced by the intake normalizer and consumed once by the lead upsert.
    """

    customer_name: str
    lead_source: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    tags: Tuple[str, ...] = field(default_factory=tuple)
    created_at: Optional[datetime] = None
    external_customer_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
