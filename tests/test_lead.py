"""
Tests for `domain/lead.py`, `domain/payment.py` and `domain/tokens.py`.

Covers contract rules:
- Leads are immutable; `with_payment` returns a new instance.
- Timestamps must be UTC.
- Payment amounts are never negative.
- Payment dedupe references prefer the platform id over the invoice number.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.lead import LeadIntake, LeadRecord, PaymentStatus
from domain.payment import PaymentEvent
from domain.tokens import OAuthTokens

UTC_NOW = datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


def _lead(**overrides) -> LeadRecord:
    fields = dict(record_id="1", customer_name="Jane Doe", lead_source="Angi", created_at=UTC_NOW)
    fields.update(overrides)
    return LeadRecord(**fields)


def test_new_lead_defaults_to_pending() -> None:
    lead = _lead()

    assert lead.payment_status is PaymentStatus.PENDING
    assert lead.payment_amount == Decimal("0")
    assert not lead.is_paid


def test_lead_is_immutable() -> None:
    lead = _lead()

    with pytest.raises(FrozenInstanceError):
        lead.customer_name = "Other"  # type: ignore[misc]


def test_created_at_must_be_utc() -> None:
    """Verify created_at must be timezone-aware UTC (offset 0)."""

    with pytest.raises(ValueError):
        _lead(created_at=datetime(2025, 1, 1, 0, 0, 0))

    with pytest.raises(ValueError):
        _lead(created_at=datetime(2025, 1, 1, tzinfo=timezone(timedelta(hours=-5))))

    with pytest.raises(ValueError):
        LeadIntake(customer_name="x", lead_source="y", created_at=datetime(2025, 1, 1))


def test_with_payment_returns_new_paid_lead() -> None:
    lead = _lead(accounting_customer_id="qb-1")

    paid = lead.with_payment(Decimal("250"), date(2025, 3, 14), invoice_number="1043")

    assert paid is not lead
    assert paid.is_paid
    assert paid.payment_amount == Decimal("250")
    assert paid.invoice_number == "1043"
    assert paid.accounting_customer_id == "qb-1"
    assert not lead.is_paid


def test_negative_amounts_rejected() -> None:
    with pytest.raises(ValueError):
        _lead().with_payment(Decimal("-1"), date(2025, 3, 14))
    with pytest.raises(ValueError):
        PaymentEvent(customer_name="x", amount=Decimal("-5"), payment_date=date(2025, 3, 14))


@pytest.mark.parametrize(
    "payment_id, invoice_number, expected",
    [
        ("55", "1043", "payment:55"),
        (None, "1043", "invoice:1043"),
        (None, None, None),
    ],
)
def test_payment_dedupe_ref(payment_id, invoice_number, expected) -> None:
    payment = PaymentEvent(
        customer_name="x",
        amount=Decimal("1"),
        payment_date=date(2025, 3, 14),
        payment_id=payment_id,
        invoice_number=invoice_number,
    )

    assert payment.dedupe_ref == expected


def test_tokens_expire_with_skew() -> None:
    tokens = OAuthTokens(
        service="QuickBooks",
        access_token="a",
        refresh_token="r",
        company_id="c",
        expires_at=UTC_NOW + timedelta(seconds=30),
    )

    assert tokens.is_expired(UTC_NOW)
    assert not tokens.is_expired(UTC_NOW, skew=timedelta(0))
