"""
Tests for `services/payment_service.py`.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from domain.payment import PaymentEvent, ReviewReason
from fakes import InMemoryRecordStore, seed_lead
from repositories.lead_repository import get_lead_by_id
from repositories.summary_repository import get_summary
from services.payment_service import PaymentStatusCode, process_payment, process_payments


def _payment(name: str, amount: str = "250", **kwargs) -> PaymentEvent:
    kwargs.setdefault("payment_date", date(2025, 3, 14))
    return PaymentEvent(customer_name=name, amount=Decimal(amount), **kwargs)


def test_acme_payment_marks_lead_paid(store: InMemoryRecordStore, clock) -> None:
    """A business-suffixed name resolves to the stored lead and updates it."""

    seed_lead(store, "Acme Plumbing", "Google Ads")

    outcome = process_payment(
        store,
        _payment("ACME Plumbing Co", invoice_number="1043", payment_id="77"),
        threshold=0.8,
        clock=clock,
    )

    assert outcome.status is PaymentStatusCode.APPLIED
    lead = get_lead_by_id(store, "1")
    assert lead is not None
    assert lead.is_paid
    assert lead.payment_amount == Decimal("250")
    assert lead.payment_date == date(2025, 3, 14)
    assert lead.invoice_number == "1043"

    summary = get_summary(store, "2025-03")
    assert summary is not None
    assert summary.total_revenue == Decimal("250")
    assert summary.revenue_by_source["Google Ads"].count == 1
    assert summary.applied_payment_refs == ("payment:77",)


def test_unmatched_payment_is_queued_for_review(store: InMemoryRecordStore, clock, caplog) -> None:
    seed_lead(store, "Jane Doe")
    before = [dict(row) for row in store.table("leads")]

    outcome = process_payment(store, _payment("Zzqxv Unrelated", invoice_number="9"), clock=clock)

    assert outcome.status is PaymentStatusCode.NEEDS_REVIEW
    assert not outcome.matched
    assert outcome.review is not None
    assert outcome.review.reason is ReviewReason.NO_MATCH
    assert store.table("leads") == before
    assert store.table("monthly_summary") == []

    reviews = store.table("payment_reviews")
    assert len(reviews) == 1
    assert reviews[0]["customer_name"] == "Zzqxv Unrelated"
    assert reviews[0]["amount"] == "250"
    assert reviews[0]["invoice_number"] == "9"
    assert "Zzqxv Unrelated" in caplog.text


def test_redelivered_payment_is_a_noop(store: InMemoryRecordStore, clock) -> None:
    seed_lead(store, "Jane Doe")
    payment = _payment("Jane Doe", invoice_number="1001", payment_id="5")

    process_payment(store, payment, clock=clock)
    again = process_payment(store, payment, clock=clock)

    assert again.status is PaymentStatusCode.ALREADY_APPLIED
    summary = get_summary(store, "2025-03")
    assert summary is not None
    assert summary.total_revenue == Decimal("250")
    assert store.table("payment_reviews") == []


def test_second_invoice_for_paid_lead_needs_review(store: InMemoryRecordStore, clock) -> None:
    seed_lead(store, "Jane Doe")
    process_payment(store, _payment("Jane Doe", invoice_number="1001"), clock=clock)

    outcome = process_payment(store, _payment("Jane Doe", "80", invoice_number="1002"), clock=clock)

    assert outcome.status is PaymentStatusCode.NEEDS_REVIEW
    assert outcome.review is not None
    assert outcome.review.reason is ReviewReason.ALREADY_PAID
    assert outcome.review.lead_record_id == "1"
    lead = get_lead_by_id(store, "1")
    assert lead is not None
    assert lead.payment_amount == Decimal("250")


def test_payment_lands_in_payment_date_period(store: InMemoryRecordStore, clock) -> None:
    seed_lead(store, "Jane Doe", "Angi")

    process_payment(store, _payment("Jane Doe", payment_date=date(2025, 1, 31)), clock=clock)

    assert get_summary(store, "2025-01") is not None
    assert get_summary(store, "2025-03") is None


def test_batch_failure_is_isolated(store: InMemoryRecordStore, clock, monkeypatch) -> None:
    seed_lead(store, "Jane Doe")
    seed_lead(store, "Bob Smith")

    original_update = store.update

    def flaky_update(table, record_id, fields):
        if table == "leads" and record_id == "1":
            store.fail_on.add("update")
            try:
                return original_update(table, record_id, fields)
            finally:
                store.fail_on.discard("update")
        return original_update(table, record_id, fields)

    monkeypatch.setattr(store, "update", flaky_update)

    outcomes = process_payments(
        store,
        [_payment("Jane Doe", invoice_number="1"), _payment("Bob Smith", "40", invoice_number="2")],
        clock=clock,
    )

    assert [outcome.status for outcome in outcomes] == [
        PaymentStatusCode.FAILED,
        PaymentStatusCode.APPLIED,
    ]
    assert outcomes[0].error
    summary = get_summary(store, "2025-03")
    assert summary is not None
    assert summary.total_revenue == Decimal("40")


def test_redelivery_completes_a_fold_that_failed(store: InMemoryRecordStore, clock) -> None:
    """The lead was marked Paid but the summary write failed; the retry folds it."""

    seed_lead(store, "Jane Doe", "Angi")
    payment = _payment("Jane Doe", invoice_number="1001", payment_id="5")

    store.fail_on.add("create")
    [first] = process_payments(store, [payment], clock=clock)
    store.fail_on.discard("create")

    assert first.status is PaymentStatusCode.FAILED
    assert get_summary(store, "2025-03") is None

    second = process_payment(store, payment, clock=clock)
    third = process_payment(store, payment, clock=clock)

    assert second.status is PaymentStatusCode.ALREADY_APPLIED
    assert third.status is PaymentStatusCode.ALREADY_APPLIED
    summary = get_summary(store, "2025-03")
    assert summary is not None
    assert summary.total_revenue == Decimal("250")
    assert summary.customer_count == 1
    assert summary.applied_payment_refs == ("payment:5",)


def test_redelivered_payment_without_invoice_is_a_noop(store: InMemoryRecordStore, clock) -> None:
    seed_lead(store, "Jane Doe")
    payment = _payment("Jane Doe", payment_id="5")

    process_payment(store, payment, clock=clock)
    again = process_payment(store, payment, clock=clock)

    assert again.status is PaymentStatusCode.ALREADY_APPLIED
    assert store.table("payment_reviews") == []
    lead = get_lead_by_id(store, "1")
    assert lead is not None
    assert lead.payment_ref == "payment:5"


def test_different_payment_without_invoice_needs_review(store: InMemoryRecordStore, clock) -> None:
    seed_lead(store, "Jane Doe")
    process_payment(store, _payment("Jane Doe", payment_id="5"), clock=clock)

    outcome = process_payment(store, _payment("Jane Doe", "80", payment_id="6"), clock=clock)

    assert outcome.status is PaymentStatusCode.NEEDS_REVIEW
    assert outcome.review is not None
    assert outcome.review.reason is ReviewReason.ALREADY_PAID
