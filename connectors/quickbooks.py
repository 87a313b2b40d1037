"""
connectors/quickbooks.py

QuickBooks Online client: OAuth2 authorization-code flow, token refresh,
expense queries and payment lookups.

Tokens live in the record store (one row per service) and are re-read before
every call. Refreshes for one service are serialized and re-check the stored
row first, so overlapping requests converge on a single new token pair.

Every outbound call carries an explicit timeout. GETs are retried with
exponential backoff on timeouts, connection errors and retryable statuses;
token POSTs are never retried.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence
from urllib.parse import urlencode

import requests

from config import Settings
from domain.errors import ConfigurationError, UpstreamError
from domain.payment import PaymentEvent
from domain.time import parse_date
from domain.tokens import QUICKBOOKS_SERVICE, OAuthTokens
from repositories.record_store import RecordStore
from repositories.token_repository import get_oauth_tokens, save_oauth_tokens
from services.retry import retry_with_backoff

logger = logging.getLogger(__name__)

AUTHORIZATION_URL = "https://appcenter.intuit.com/connect/oauth2"
TOKEN_URL = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
PRODUCTION_BASE_URL = "https://quickbooks.api.intuit.com"
SANDBOX_BASE_URL = "https://sandbox-quickbooks.api.intuit.com"
ACCOUNTING_SCOPE = "com.intuit.quickbooks.accounting"
MINOR_VERSION = "65"
QUERY_PAGE_SIZE = 1000
DEFAULT_TOKEN_TTL_SECONDS = 3600

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

_token_locks_guard = threading.Lock()
_token_locks: Dict[str, threading.Lock] = {}


def _token_lock(service: str) -> threading.Lock:
    with _token_locks_guard:
        return _token_locks.setdefault(service, threading.Lock())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RetryableUpstreamError(UpstreamError):
    """An UpstreamError worth retrying (timeout, connection reset, 429/5xx)."""


@dataclass(frozen=True)
class ExpenseLine:
    """One categorized expense line from a Purchase transaction."""

    amount: Decimal
    account_name: str
    txn_date: date
    vendor: Optional[str] = None
    purchase_id: Optional[str] = None


def _decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value)) if value not in (None, "") else Decimal("0")
    except InvalidOperation:
        return Decimal("0")


def _ref_name(obj: Mapping[str, Any], key: str) -> str:
    ref = obj.get(key) or {}
    return str(ref.get("name") or "") if isinstance(ref, Mapping) else ""


def _matches_any(name: str, categories: Sequence[str]) -> bool:
    lowered = name.lower()
    return any(category.lower() in lowered for category in categories)


def expense_lines_from_purchase(purchase: Mapping[str, Any]) -> List[ExpenseLine]:
    """
    Split a Purchase into per-account lines.

    Uses the account-based line details when present; otherwise the whole
    purchase is attributed to its own AccountRef.
    """

    txn_date = parse_date(purchase.get("TxnDate"))
    vendor = _ref_name(purchase, "EntityRef") or None
    purchase_id = str(purchase.get("Id")) if purchase.get("Id") is not None else None

    lines: List[ExpenseLine] = []
    for line in purchase.get("Line") or []:
        detail = line.get("AccountBasedExpenseLineDetail") or {}
        account = _ref_name(detail, "AccountRef") or _ref_name(line, "AccountRef")
        if not account:
            continue
        lines.append(
            ExpenseLine(
                amount=_decimal(line.get("Amount")),
                account_name=account,
                txn_date=txn_date,
                vendor=vendor,
                purchase_id=purchase_id,
            )
        )

    if not lines:
        lines.append(
            ExpenseLine(
                amount=_decimal(purchase.get("TotalAmt")),
                account_name=_ref_name(purchase, "AccountRef") or "Uncategorized",
                txn_date=txn_date,
                vendor=vendor,
                purchase_id=purchase_id,
            )
        )
    return lines


class QuickBooksClient:
    """
    Accounting-platform client bound to one record store for token storage.
    """

    service = QUICKBOOKS_SERVICE

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        store: RecordStore,
        sandbox: bool = False,
        timeout_seconds: float = 20.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        session: requests.Session | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._store = store
        self._base_url = SANDBOX_BASE_URL if sandbox else PRODUCTION_BASE_URL
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._session = session or requests.Session()
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: RecordStore,
        session: requests.Session | None = None,
    ) -> "QuickBooksClient":
        """
        Raises:
            ConfigurationError: QBO_CLIENT_ID, QBO_CLIENT_SECRET or
                QBO_REDIRECT_URI is missing.
        """

        missing = [
            name
            for name, value in (
                ("QBO_CLIENT_ID", settings.qbo_client_id),
                ("QBO_CLIENT_SECRET", settings.qbo_client_secret),
                ("QBO_REDIRECT_URI", settings.qbo_redirect_uri),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing QuickBooks configuration: {', '.join(missing)}")

        return cls(
            client_id=settings.qbo_client_id or "",
            client_secret=settings.qbo_client_secret or "",
            redirect_uri=settings.qbo_redirect_uri or "",
            store=store,
            sandbox=settings.qbo_sandbox,
            timeout_seconds=settings.http_timeout_seconds,
            session=session,
        )

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            response = self._session.request(method, url, timeout=self._timeout_seconds, **kwargs)
        except requests.Timeout as exc:
            raise RetryableUpstreamError(
                f"QuickBooks {method} timed out after {self._timeout_seconds}s",
                operation=method,
                context={"url": url},
            ) from exc
        except requests.RequestException as exc:
            raise RetryableUpstreamError(
                f"QuickBooks {method} failed: {exc}",
                operation=method,
                context={"url": url},
            ) from exc

        if response.status_code >= 400:
            error_cls = (
                RetryableUpstreamError
                if response.status_code in RETRYABLE_STATUS_CODES
                else UpstreamError
            )
            raise error_cls(
                f"QuickBooks {method} returned HTTP {response.status_code}: {response.text[:300]}",
                operation=method,
                context={"url": url, "status_code": response.status_code},
            )
        return response

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError("QuickBooks response was not valid JSON") from exc

    def _get_json(self, path: str, tokens: OAuthTokens, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        url = f"{self._base_url}/v3/company/{tokens.company_id}/{path}"
        query = {"minorversion": MINOR_VERSION, **(params or {})}
        headers = {"Authorization": f"Bearer {tokens.access_token}", "Accept": "application/json"}

        response = retry_with_backoff(
            lambda: self._send("GET", url, params=query, headers=headers),
            max_retries=self._max_retries,
            base_delay=self._backoff_seconds,
            retry_on=(RetryableUpstreamError,),
            sleep=self._sleep,
        )
        return self._json(response)

    def _token_request(self, form: Mapping[str, str]) -> Dict[str, Any]:
        response = self._send(
            "POST",
            TOKEN_URL,
            data=dict(form),
            auth=(self._client_id, self._client_secret),
            headers={"Accept": "application/json"},
        )
        payload = self._json(response)
        if not payload.get("access_token") or not payload.get("refresh_token"):
            raise UpstreamError("QuickBooks token response is missing tokens", operation="token")
        return payload

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def get_authorization_url(self, state: str) -> str:
        params = {
            "client_id": self._client_id,
            "response_type": "code",
            "scope": ACCOUNTING_SCOPE,
            "redirect_uri": self._redirect_uri,
            "state": state,
        }
        return f"{AUTHORIZATION_URL}?{urlencode(params)}"

    def _tokens_from_response(self, payload: Mapping[str, Any], company_id: str) -> OAuthTokens:
        now = self._clock()
        expires_in = int(payload.get("expires_in") or DEFAULT_TOKEN_TTL_SECONDS)
        return OAuthTokens(
            service=self.service,
            access_token=str(payload["access_token"]),
            refresh_token=str(payload["refresh_token"]),
            company_id=company_id,
            expires_at=now + timedelta(seconds=expires_in),
            updated_at=now,
        )

    def exchange_code(self, code: str, realm_id: str) -> OAuthTokens:
        """Trade an authorization code for tokens and store them."""

        if not code or not realm_id:
            raise ValueError("Authorization code and realm id are required")

        payload = self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._redirect_uri,
            }
        )
        tokens = self._tokens_from_response(payload, realm_id)
        with _token_lock(self.service):
            saved = save_oauth_tokens(self._store, tokens, self._clock())
        logger.info("QuickBooks authorized for company %s", realm_id)
        return saved

    def refresh(self, tokens: OAuthTokens) -> OAuthTokens:
        """
        Exchange a refresh token for a new pair and store it.

        If another request already rotated the stored pair, that pair is
        returned instead of refreshing again.
        """

        with _token_lock(self.service):
            stored = retry_with_backoff(
                lambda: get_oauth_tokens(self._store, self.service),
                sleep=self._sleep,
            )
            if (
                stored is not None
                and stored.refresh_token != tokens.refresh_token
                and not stored.is_expired(self._clock())
            ):
                logger.info("QuickBooks tokens already refreshed by another request")
                return stored

            payload = self._token_request(
                {"grant_type": "refresh_token", "refresh_token": tokens.refresh_token}
            )
            fresh = self._tokens_from_response(payload, tokens.company_id)
            saved = save_oauth_tokens(self._store, fresh, self._clock())
        logger.info("QuickBooks access token refreshed")
        return saved

    def ensure_tokens(self) -> OAuthTokens:
        """
        Current usable tokens, refreshing them when expired.

        Raises:
            ConfigurationError: QuickBooks was never authorized.
        """

        tokens = retry_with_backoff(
            lambda: get_oauth_tokens(self._store, self.service),
            sleep=self._sleep,
        )
        if tokens is None:
            raise ConfigurationError(
                "QuickBooks is not connected. Authorize via /auth/quickbooks first."
            )
        if tokens.is_expired(self._clock()):
            logger.info("QuickBooks access token expired, refreshing")
            return self.refresh(tokens)
        return tokens

    # ------------------------------------------------------------------
    # Accounting data
    # ------------------------------------------------------------------

    def query(self, statement: str, entity: str, tokens: Optional[OAuthTokens] = None) -> List[Dict[str, Any]]:
        """Run a paged QBO query and return every `entity` row."""

        tokens = tokens or self.ensure_tokens()
        rows: List[Dict[str, Any]] = []
        start = 1
        while True:
            paged = f"{statement} STARTPOSITION {start} MAXRESULTS {QUERY_PAGE_SIZE}"
            payload = self._get_json("query", tokens, {"query": paged})
            page = (payload.get("QueryResponse") or {}).get(entity) or []
            rows.extend(page)
            if len(page) < QUERY_PAGE_SIZE:
                return rows
            start += QUERY_PAGE_SIZE

    def list_expenses(
        self,
        start: date,
        end: date,
        categories: Sequence[str] = (),
    ) -> List[ExpenseLine]:
        """
        Expense lines dated within [start, end] whose account name contains
        any of `categories` (case-insensitive). No categories means all lines.
        """

        statement = (
            "SELECT * FROM Purchase "
            f"WHERE TxnDate >= '{start.isoformat()}' AND TxnDate <= '{end.isoformat()}'"
        )
        purchases = self.query(statement, "Purchase")
        lines = [line for purchase in purchases for line in expense_lines_from_purchase(purchase)]
        if categories:
            lines = [line for line in lines if _matches_any(line.account_name, categories)]
        logger.info(
            "QuickBooks: %d purchases, %d matching expense lines for %s..%s",
            len(purchases),
            len(lines),
            start,
            end,
        )
        return lines

    def _lookup_name(self, path: str, key: str, field: str, tokens: OAuthTokens) -> Optional[str]:
        try:
            entity = self._get_json(path, tokens).get(key) or {}
        except UpstreamError as exc:
            logger.warning("QuickBooks %s lookup failed: %s", path, exc)
            return None
        value = entity.get(field)
        return str(value) if value else None

    def get_payment(self, payment_id: str, tokens: Optional[OAuthTokens] = None) -> PaymentEvent:
        """
        Fetch a Payment and resolve its customer name and invoice number.

        Customer and invoice lookups degrade to the payment's own references
        when they fail.
        """

        tokens = tokens or self.ensure_tokens()
        payment = self._get_json(f"payment/{payment_id}", tokens).get("Payment") or {}
        if not payment:
            raise UpstreamError(f"QuickBooks payment {payment_id} not found", operation="GET")

        customer_ref = payment.get("CustomerRef") or {}
        customer_id = str(customer_ref.get("value")) if customer_ref.get("value") else None
        customer_name = None
        if customer_id:
            customer_name = self._lookup_name(f"customer/{customer_id}", "Customer", "DisplayName", tokens)
        customer_name = customer_name or customer_ref.get("name") or "Unknown Customer"

        invoice_number = None
        for line in payment.get("Line") or []:
            linked = [txn for txn in line.get("LinkedTxn") or [] if txn.get("TxnType") == "Invoice"]
            if linked:
                invoice_number = self._lookup_name(
                    f"invoice/{linked[0]['TxnId']}", "Invoice", "DocNumber", tokens
                )
                break

        return PaymentEvent(
            customer_name=str(customer_name),
            amount=_decimal(payment.get("TotalAmt")),
            payment_date=parse_date(payment.get("TxnDate")),
            invoice_number=invoice_number,
            payment_method=_ref_name(payment, "PaymentMethodRef") or None,
            payment_id=str(payment.get("Id") or payment_id),
            customer_id=customer_id,
            reference_number=payment.get("PaymentRefNum"),
        )

    def payments_from_webhook(self, payload: Mapping[str, Any]) -> List[PaymentEvent]:
        """Fetch every Payment entity referenced by a QBO change notification."""

        payment_ids = list(_payment_ids(payload))
        if not payment_ids:
            return []

        tokens = self.ensure_tokens()
        return [self.get_payment(payment_id, tokens) for payment_id in payment_ids]


def _payment_ids(payload: Mapping[str, Any]) -> Iterable[str]:
    for notification in payload.get("eventNotifications") or []:
        entities = (notification.get("dataChangeEvent") or {}).get("entities") or []
        for entity in entities:
            if entity.get("name") == "Payment" and entity.get("operation", "Create") != "Delete":
                yield str(entity["id"])


__all__ = [
    "ExpenseLine",
    "QuickBooksClient",
    "RetryableUpstreamError",
    "expense_lines_from_purchase",
]
