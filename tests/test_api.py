"""
API tests using FastAPI's TestClient with the record store, settings and
accounting client replaced by in-memory fakes.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_accounting_client, get_record_store, settings_dependency
from api.main import app
from config import Settings
from connectors.quickbooks import ExpenseLine
from domain.payment import PaymentEvent
from fakes import FakeAccountingClient, InMemoryRecordStore, seed_lead

VERIFIER = "verifier-token"


@pytest.fixture
def accounting() -> FakeAccountingClient:
    return FakeAccountingClient()


@pytest.fixture
def client(store: InMemoryRecordStore, accounting: FakeAccountingClient):
    app.dependency_overrides[get_record_store] = lambda: store
    app.dependency_overrides[get_accounting_client] = lambda: accounting
    app.dependency_overrides[settings_dependency] = lambda: Settings(
        qbo_webhook_verifier_token=VERIFIER,
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _signed(payload: dict) -> tuple[bytes, dict]:
    body = json.dumps(payload).encode()
    digest = hmac.new(VERIFIER.encode(), body, hashlib.sha256).digest()
    return body, {"intuit-signature": base64.b64encode(digest).decode(), "content-type": "application/json"}


def test_health_check(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_lead_webhook_creates_lead(client: TestClient, store: InMemoryRecordStore) -> None:
    response = client.post(
        "/webhooks/hcp",
        json={"contact_id": "c-1", "full_name": "Jane Doe", "source": "Yard Sign"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["lead_source"] == "Yard Sign"
    assert store.table("leads")[0]["customer_name"] == "Jane Doe"


def test_lead_webhook_legacy_path(client: TestClient) -> None:
    response = client.post("/webhooks/hcp-webhook", json={"unknown": True})

    assert response.status_code == 200
    assert response.json()["success"] is False


def test_lead_webhook_rejects_invalid_json(client: TestClient) -> None:
    response = client.post("/webhooks/hcp", content=b"not json")

    assert response.status_code == 400


def test_payment_webhook_bad_signature_is_rejected(
    client: TestClient, accounting: FakeAccountingClient
) -> None:
    response = client.post(
        "/webhooks/qbo",
        content=b'{"eventNotifications": []}',
        headers={"intuit-signature": "bogus"},
    )

    assert response.status_code == 401
    assert accounting.webhook_payloads == []


def test_payment_webhook_applies_payment(
    client: TestClient, store: InMemoryRecordStore, accounting: FakeAccountingClient
) -> None:
    seed_lead(store, "Acme Plumbing", "Google Ads")
    accounting.payments = [
        PaymentEvent(
            customer_name="ACME Plumbing Co",
            amount=Decimal("250"),
            payment_date=date(2025, 3, 14),
            invoice_number="1043",
            payment_id="77",
        ),
        PaymentEvent(customer_name="Zzqxv Unrelated", amount=Decimal("10"), payment_date=date(2025, 3, 15)),
    ]
    body, headers = _signed({"eventNotifications": []})

    response = client.post("/webhooks/qbo", content=body, headers=headers)

    assert response.status_code == 200
    result = response.json()
    assert result["success"] is True
    assert result["applied"] == 1
    assert result["needs_review"] == 1
    assert result["outcomes"][0]["period"] == "2025-03"
    assert result["outcomes"][1]["review_reason"] == "no_match"


def test_payment_webhook_failure_returns_500(
    client: TestClient, store: InMemoryRecordStore, accounting: FakeAccountingClient
) -> None:
    accounting.payments = [
        PaymentEvent(customer_name="Jane Doe", amount=Decimal("5"), payment_date=date(2025, 3, 1))
    ]
    store.fail_on.add("create")
    body, headers = _signed({"eventNotifications": []})

    response = client.post("/webhooks/qbo", content=body, headers=headers)

    assert response.status_code == 500
    assert response.json()["failed"] == 1


def test_callback_requires_code_and_realm(client: TestClient, accounting: FakeAccountingClient) -> None:
    assert client.get("/callback/quickbooks", params={"code": "abc"}).status_code == 400

    response = client.get("/callback/quickbooks", params={"code": "abc", "realmId": "r1"})

    assert response.status_code == 200
    assert response.json()["company_id"] == "r1"
    assert accounting.exchanged == [("abc", "r1")]


def test_authorize_redirects(client: TestClient) -> None:
    response = client.get("/auth/quickbooks", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://appcenter.intuit.com/")


def test_ad_spend_refresh_gated_and_forced(
    client: TestClient, store: InMemoryRecordStore, accounting: FakeAccountingClient
) -> None:
    accounting.expenses = [
        ExpenseLine(amount=Decimal("400"), account_name="Billboard", txn_date=date(2025, 3, 9))
    ]

    gated = client.post("/api/v1/ad-spend/refresh", params={"date": "2025-04-10"})
    assert gated.status_code == 200
    assert gated.json()["ran"] is False
    assert gated.json()["next_run"] == "2025-05-03"

    forced = client.post("/api/v1/ad-spend/refresh", params={"date": "2025-04-10", "force": "true"})
    assert forced.status_code == 200
    assert forced.json()["period"] == "2025-03"
    assert Decimal(forced.json()["total_ad_spend"]) == Decimal("400")


def test_summary_endpoints(client: TestClient, store: InMemoryRecordStore) -> None:
    seed_lead(store, "A", "X", payment_status="Paid", payment_amount="100", payment_date="2025-03-05")
    seed_lead(store, "B", "X", payment_status="Paid", payment_amount="50", payment_date="2025-03-06")

    assert client.get("/api/v1/summaries/2025/3").status_code == 404
    assert client.get("/api/v1/summaries/2025/13").status_code == 400

    generated = client.post("/api/v1/summaries/generate", json={"year": 2025, "month": 3})
    assert generated.status_code == 200

    fetched = client.get("/api/v1/summaries/2025/3").json()
    assert Decimal(fetched["total_revenue"]) == Decimal("150")
    assert fetched["roi"] == "N/A"
    assert Decimal(fetched["revenue_by_source"]["X"]["average"]) == Decimal("75")


def test_leads_and_revenue_by_source(client: TestClient, store: InMemoryRecordStore) -> None:
    seed_lead(store, "A", "X", payment_status="Paid", payment_amount="100", payment_date="2025-03-05")
    seed_lead(store, "B", "Y", payment_status="Paid", payment_amount="30", payment_date="2025-03-06")
    seed_lead(store, "C", "Y")

    leads = client.get("/api/v1/leads", params={"payment_status": "Pending"}).json()
    assert [lead["customer_name"] for lead in leads["leads"]] == ["C"]

    assert client.get("/api/v1/leads", params={"payment_status": "Bogus"}).status_code == 400

    revenue = client.get(
        "/api/v1/revenue-by-source",
        params={"start_date": "2025-03-01", "end_date": "2025-03-31"},
    ).json()
    assert Decimal(revenue["total_revenue"]) == Decimal("130")
    assert revenue["revenue_by_source"]["Y"]["count"] == 1


def test_payment_reviews_listed(client: TestClient, accounting: FakeAccountingClient) -> None:
    accounting.payments = [
        PaymentEvent(customer_name="Nobody", amount=Decimal("10"), payment_date=date(2025, 3, 15))
    ]
    body, headers = _signed({"eventNotifications": []})
    client.post("/webhooks/qbo", content=body, headers=headers)

    reviews = client.get("/api/v1/payment-reviews").json()

    assert reviews["total"] == 1
    assert reviews["reviews"][0]["reason"] == "no_match"
