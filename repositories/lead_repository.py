"""
Lead repository (persistence).

This module provides *only* persistence operations for the Lead domain entity.
No business rules (name matching, payment reconciliation, rollups) belong here.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Tuple

from domain.lead import LeadIntake, LeadRecord, PaymentStatus
from domain.time import parse_date, parse_utc_datetime, to_iso_utc
from repositories.record_store import RecordStore, StoredRecord


def _parse_status(value: Any) -> PaymentStatus:
    # Older rows carry decorated values such as "Paid ✅".
    text = str(value or "").strip()
    if text.startswith(PaymentStatus.PAID.value):
        return PaymentStatus.PAID
    return PaymentStatus.PENDING


def _parse_amount(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid payment_amount: {value!r}") from exc


def _split_tags(value: Any) -> Tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(str(tag).strip() for tag in value if str(tag).strip())
    return tuple(tag.strip() for tag in str(value).split(",") if tag.strip())


def _intake_to_row(intake: LeadIntake) -> dict[str, Any]:
    """Convert a normalized intake payload to a row payload (no payment fields)."""

    return {
        "customer_name": intake.customer_name,
        "email": intake.email or "",
        "phone": intake.phone or "",
        "lead_source": intake.lead_source,
        "external_customer_id": intake.external_customer_id or "",
        "address": intake.address or "",
        "notes": intake.notes or "",
        "tags": ", ".join(intake.tags),
    }


def _record_to_lead(record: StoredRecord) -> LeadRecord:
    """Convert a stored row into a domain LeadRecord."""

    def get_optional(key: str) -> str | None:
        value = record.get(key, "")
        return str(value) if value else None

    created_raw = record.get("created_at")
    payment_date_raw = record.get("payment_date")

    return LeadRecord(
        record_id=record.record_id,
        customer_name=str(record.get("customer_name") or ""),
        lead_source=str(record.get("lead_source") or ""),
        created_at=parse_utc_datetime(created_raw) if created_raw else None,
        payment_status=_parse_status(record.get("payment_status")),
        payment_amount=_parse_amount(record.get("payment_amount")),
        invoice_number=get_optional("invoice_number"),
        payment_date=parse_date(payment_date_raw) if payment_date_raw else None,
        payment_ref=get_optional("payment_ref"),
        email=get_optional("email"),
        phone=get_optional("phone"),
        address=get_optional("address"),
        notes=get_optional("notes"),
        tags=_split_tags(record.get("tags")),
        external_customer_id=get_optional("external_customer_id"),
        accounting_customer_id=get_optional("accounting_customer_id"),
    )


def insert_lead(store: RecordStore, intake: LeadIntake, now: datetime) -> LeadRecord:
    """
    Create a new Lead in the Pending state with a zero payment amount.

    `now` is used as the creation timestamp when the intake carries none.
    """

    row = _intake_to_row(intake)
    row["created_at"] = to_iso_utc(intake.created_at or now, name="created_at")
    row["payment_status"] = PaymentStatus.PENDING.value
    row["payment_amount"] = "0"
    record = store.create(store.tables.leads, row)
    return _record_to_lead(record)


def _find_existing(store: RecordStore, intake: LeadIntake) -> Optional[StoredRecord]:
    rows = store.query(
        store.tables.leads,
        equals={"customer_name": intake.customer_name},
        limit=1,
    )
    if not rows and intake.email:
        rows = store.query(store.tables.leads, equals={"email": intake.email}, limit=1)
    return rows[0] if rows else None


def upsert_lead(store: RecordStore, intake: LeadIntake, now: datetime) -> Tuple[LeadRecord, bool]:
    """
    Create or update a Lead keyed by customer name (falling back to email).

    On update:
    - Payment fields are never touched.
    - An existing created_at is kept.

    Returns:
        (lead, created) where created is False when an existing row was updated.
    """

    existing = _find_existing(store, intake)
    if existing is None:
        return insert_lead(store, intake, now), True

    row = _intake_to_row(intake)
    if not existing.get("created_at"):
        row["created_at"] = to_iso_utc(intake.created_at or now, name="created_at")
    record = store.update(store.tables.leads, existing.record_id, row)
    return _record_to_lead(record), False


def get_lead_by_id(store: RecordStore, record_id: str) -> LeadRecord | None:
    """
    Fetch a Lead by record id.

    Returns:
    - LeadRecord if found
    - None if no record exists for the given id
    """

    rows = store.query(store.tables.leads, equals={"id": record_id}, limit=1)
    if not rows:
        return None
    return _record_to_lead(rows[0])


def find_leads_by_name_fragment(
    store: RecordStore,
    fragment: str,
    limit: int = 10,
) -> List[LeadRecord]:
    """Leads whose customer_name contains `fragment` (case-insensitive), by id."""

    rows = store.query(
        store.tables.leads,
        icontains={"customer_name": fragment},
        order_by="id",
        limit=limit,
    )
    return [_record_to_lead(row) for row in rows]


def list_lead_names(store: RecordStore, limit: int = 1000) -> List[Tuple[str, str]]:
    """(record_id, customer_name) pairs, by id, for approximate matching."""

    rows = store.query(
        store.tables.leads,
        columns="customer_name",
        order_by="id",
        limit=limit,
    )
    return [(row.record_id, str(row.get("customer_name") or "")) for row in rows]


def save_lead_payment(store: RecordStore, lead: LeadRecord) -> LeadRecord:
    """Persist the payment fields of a Lead that has transitioned to Paid."""

    payload: dict[str, Any] = {
        "payment_status": lead.payment_status.value,
        "payment_amount": str(lead.payment_amount),
        "invoice_number": lead.invoice_number or "",
        "payment_date": lead.payment_date.isoformat() if lead.payment_date else None,
        "payment_ref": lead.payment_ref or "",
    }
    if lead.accounting_customer_id:
        payload["accounting_customer_id"] = lead.accounting_customer_id

    record = store.update(store.tables.leads, lead.record_id, payload)
    return _record_to_lead(record)


def list_paid_leads(
    store: RecordStore,
    start: Optional[date] = None,
    end: Optional[date] = None,
    lead_source: Optional[str] = None,
) -> List[LeadRecord]:
    """
    Paid Leads, optionally limited to a payment-date range (inclusive) and source.
    """

    equals: dict[str, Any] = {}
    if lead_source is not None:
        equals["lead_source"] = lead_source

    # Matches decorated legacy values too; `_parse_status` has the final say.
    rows = store.query(
        store.tables.leads,
        equals=equals or None,
        icontains={"payment_status": PaymentStatus.PAID.value},
        gte={"payment_date": start.isoformat()} if start else None,
        lte={"payment_date": end.isoformat()} if end else None,
    )
    leads = [_record_to_lead(row) for row in rows]
    return [lead for lead in leads if lead.is_paid]


def list_leads(
    store: RecordStore,
    *,
    lead_source: Optional[str] = None,
    payment_status: Optional[PaymentStatus] = None,
    limit: int = 500,
) -> List[LeadRecord]:
    """Leads by id, optionally filtered by source and payment status."""

    equals: dict[str, Any] = {}
    if lead_source is not None:
        equals["lead_source"] = lead_source
    icontains: dict[str, str] = {}
    if payment_status is PaymentStatus.PAID:
        icontains["payment_status"] = payment_status.value
    elif payment_status is not None:
        equals["payment_status"] = payment_status.value

    rows = store.query(
        store.tables.leads,
        equals=equals or None,
        icontains=icontains or None,
        limit=limit,
    )
    leads = [_record_to_lead(row) for row in rows]
    if payment_status is None:
        return leads
    return [lead for lead in leads if lead.payment_status is payment_status]


__all__ = [
    "list_leads",
    "insert_lead",
    "upsert_lead",
    "get_lead_by_id",
    "find_leads_by_name_fragment",
    "list_lead_names",
    "save_lead_payment",
    "list_paid_leads",
]
