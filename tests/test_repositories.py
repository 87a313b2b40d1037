"""
Tests for the table repositories and `SupabaseRecordStore` query building.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, List

import pytest

from config import Settings
from domain.errors import ConfigurationError, UpstreamError
from domain.lead import LeadIntake, PaymentStatus
from fakes import InMemoryRecordStore, seed_lead
from repositories.client import SupabaseRecordStore, create_record_store
from repositories.lead_repository import (
    find_leads_by_name_fragment,
    get_lead_by_id,
    list_leads,
    list_paid_leads,
    save_lead_payment,
    upsert_lead,
)
from repositories.summary_repository import get_summary

NOW = datetime(2025, 4, 3, 12, 0, tzinfo=timezone.utc)


class RecordingQuery:
    """Mimics the postgrest builder: every filter call is recorded and chained."""

    def __init__(self, data: List[dict], error: Any = None, raises: Exception | None = None) -> None:
        self.calls: List[tuple] = []
        self._data = data
        self._error = error
        self._raises = raises

    def __getattr__(self, name: str):
        def method(*args: Any) -> "RecordingQuery":
            self.calls.append((name, *args))
            return self

        return method

    def execute(self) -> SimpleNamespace:
        if self._raises is not None:
            raise self._raises
        return SimpleNamespace(data=self._data, error=self._error)


class RecordingClient:
    def __init__(self, query: RecordingQuery) -> None:
        self.query = query
        self.tables: List[str] = []

    def table(self, name: str) -> RecordingQuery:
        self.tables.append(name)
        return self.query


def test_create_record_store_requires_credentials() -> None:
    with pytest.raises(ConfigurationError):
        create_record_store(Settings(supabase_key="key"))
    with pytest.raises(ConfigurationError):
        create_record_store(Settings(supabase_url="https://x.supabase.co"))


def test_supabase_query_builds_filters() -> None:
    query = RecordingQuery([{"id": 3, "customer_name": "Jane"}])
    store = SupabaseRecordStore(RecordingClient(query))  # type: ignore[arg-type]

    rows = store.query(
        "leads",
        equals={"payment_status": "Paid"},
        icontains={"customer_name": "50%_off"},
        gte={"payment_date": "2025-03-01"},
        limit=10,
    )

    assert rows[0].record_id == "3"
    assert rows[0].get("customer_name") == "Jane"
    assert ("eq", "payment_status", "Paid") in query.calls
    assert ("ilike", "customer_name", "%50\\%\\_off%") in query.calls
    assert ("gte", "payment_date", "2025-03-01") in query.calls
    assert ("order", "id") in query.calls
    assert ("limit", 10) in query.calls


def test_supabase_errors_become_upstream_errors() -> None:
    failing = SupabaseRecordStore(RecordingClient(RecordingQuery([], raises=RuntimeError("boom"))))  # type: ignore[arg-type]
    with pytest.raises(UpstreamError):
        failing.query("leads")

    errored = SupabaseRecordStore(RecordingClient(RecordingQuery([], error="denied")))  # type: ignore[arg-type]
    with pytest.raises(UpstreamError):
        errored.create("leads", {"customer_name": "x"})

    empty = SupabaseRecordStore(RecordingClient(RecordingQuery([])))  # type: ignore[arg-type]
    with pytest.raises(UpstreamError):
        empty.update("leads", "404", {"customer_name": "x"})


def test_upsert_creates_then_updates(store: InMemoryRecordStore) -> None:
    intake = LeadIntake(customer_name="Jane Doe", lead_source="Angi", tags=("a", "b"))

    created, was_created = upsert_lead(store, intake, NOW)
    updated, was_created_again = upsert_lead(store, intake, NOW)

    assert was_created and not was_created_again
    assert created.record_id == updated.record_id
    assert created.tags == ("a", "b")
    assert created.created_at == NOW


def test_decorated_paid_status_is_read_as_paid(store: InMemoryRecordStore) -> None:
    seed_lead(store, "Jane Doe", payment_status="Paid ✅", payment_amount="99.50", payment_date="2025-03-02")

    lead = get_lead_by_id(store, "1")

    assert lead is not None
    assert lead.is_paid
    assert lead.payment_date == date(2025, 3, 2)


def test_name_fragment_query_is_bounded(store: InMemoryRecordStore) -> None:
    for index in range(15):
        seed_lead(store, f"Smith {index}")

    assert len(find_leads_by_name_fragment(store, "smith")) == 10


def test_paid_leads_filtered_by_source(store: InMemoryRecordStore) -> None:
    seed_lead(store, "A", "X", payment_status="Paid", payment_amount="1", payment_date="2025-03-01")
    seed_lead(store, "B", "Y", payment_status="Paid", payment_amount="1", payment_date="2025-03-01")

    assert [lead.customer_name for lead in list_paid_leads(store, lead_source="Y")] == ["B"]


def test_summary_reads_legacy_text_json(store: InMemoryRecordStore) -> None:
    store.seed(
        "monthly_summary",
        period="2025-02",
        total_revenue="150",
        customer_count=2,
        revenue_by_source='{"X": {"totalRevenue": 150, "customerCount": 2}}',
        ad_spend_by_category='{"Angi": "20"}',
        total_ad_spend="20",
    )

    summary = get_summary(store, "2025-02")

    assert summary is not None
    assert summary.revenue_by_source["X"].count == 2
    assert summary.roi_display == "650.00%"


def test_decorated_paid_status_is_listed_as_paid(store: InMemoryRecordStore) -> None:
    seed_lead(store, "A", "X", payment_status="Paid ✅", payment_amount="10", payment_date="2025-03-01")
    seed_lead(store, "B", "X")

    assert [lead.customer_name for lead in list_paid_leads(store)] == ["A"]
    assert [lead.customer_name for lead in list_leads(store, payment_status=PaymentStatus.PAID)] == ["A"]
    assert [lead.customer_name for lead in list_leads(store, payment_status=PaymentStatus.PENDING)] == ["B"]


def test_payment_ref_is_persisted(store: InMemoryRecordStore) -> None:
    seed_lead(store, "Jane Doe")
    lead = get_lead_by_id(store, "1")
    assert lead is not None and lead.payment_ref is None

    saved = save_lead_payment(store, lead.with_payment(Decimal("5"), date(2025, 3, 2), payment_ref="payment:9"))

    assert saved.payment_ref == "payment:9"
    assert store.table("leads")[0]["payment_ref"] == "payment:9"
