"""
Payment review repository (persistence).

The review table is the durable outbox for payments that could not be
applied automatically.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, List

from domain.payment import PaymentReview, ReviewReason
from domain.time import parse_date, parse_utc_datetime, to_iso_utc
from repositories.record_store import RecordStore, StoredRecord


def _record_to_review(record: StoredRecord) -> PaymentReview:
    def get_optional(key: str) -> str | None:
        value = record.get(key, "")
        return str(value) if value else None

    return PaymentReview(
        review_id=record.record_id,
        reason=ReviewReason(str(record.get("reason"))),
        customer_name=str(record.get("customer_name") or ""),
        amount=Decimal(str(record.get("amount") or "0")),
        payment_date=parse_date(record.get("payment_date")),
        created_at=parse_utc_datetime(record.get("created_at")),
        invoice_number=get_optional("invoice_number"),
        payment_id=get_optional("payment_id"),
        payment_method=get_optional("payment_method"),
        lead_record_id=get_optional("lead_record_id"),
        resolved=bool(record.get("resolved", False)),
    )


def insert_payment_review(store: RecordStore, review: PaymentReview) -> PaymentReview:
    payload: dict[str, Any] = {
        "reason": review.reason.value,
        "customer_name": review.customer_name,
        "amount": str(review.amount),
        "payment_date": review.payment_date.isoformat(),
        "created_at": to_iso_utc(review.created_at, name="created_at"),
        "invoice_number": review.invoice_number or "",
        "payment_id": review.payment_id or "",
        "payment_method": review.payment_method or "",
        "lead_record_id": review.lead_record_id or "",
        "resolved": review.resolved,
    }
    record = store.create(store.tables.payment_reviews, payload)
    return _record_to_review(record)


def list_payment_reviews(store: RecordStore, resolved: bool = False) -> List[PaymentReview]:
    rows = store.query(store.tables.payment_reviews, equals={"resolved": resolved})
    return [_record_to_review(row) for row in rows]


__all__ = ["insert_payment_review", "list_payment_reviews"]
