"""
Supabase-backed record store.

This module contains the database connection setup and the `RecordStore`
implementation over the official Supabase Python client. Nothing here is
created at import time: callers build a store explicitly with
`create_record_store(settings)` and pass it to repository functions.

Environment variables required (see config.py):
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, ClientOptions, create_client  # type: ignore[import-not-found]

from config import Settings
from domain.errors import ConfigurationError, UpstreamError
from repositories.record_store import StoredRecord, TableNames

logger = logging.getLogger(__name__)

_ID_COLUMN: str = "id"


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so user text is matched literally."""

    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_record(row: Mapping[str, Any]) -> StoredRecord:
    fields = {key: value for key, value in row.items() if key != _ID_COLUMN}
    return StoredRecord(record_id=str(row[_ID_COLUMN]), fields=fields)


class SupabaseRecordStore:
    """RecordStore over Supabase (PostgREST) tables."""

    def __init__(self, client: Client, tables: Optional[TableNames] = None) -> None:
        self._client = client
        self.tables = tables or TableNames()

    def _execute(self, request: Any, *, operation: str, table: str) -> Any:
        try:
            response = request.execute()
        except Exception as exc:
            raise UpstreamError(
                f"Supabase {operation} on {table} failed: {exc}",
                operation=operation,
                context={"table": table},
            ) from exc

        error = getattr(response, "error", None)
        if error:
            raise UpstreamError(
                f"Supabase {operation} on {table} failed: {error}",
                operation=operation,
                context={"table": table},
            )
        return response

    def query(
        self,
        table: str,
        *,
        equals: Optional[Mapping[str, Any]] = None,
        icontains: Optional[Mapping[str, str]] = None,
        gte: Optional[Mapping[str, Any]] = None,
        lte: Optional[Mapping[str, Any]] = None,
        columns: str = "*",
        order_by: Optional[str] = _ID_COLUMN,
        limit: Optional[int] = None,
    ) -> List[StoredRecord]:
        if columns != "*" and _ID_COLUMN not in [c.strip() for c in columns.split(",")]:
            columns = f"{_ID_COLUMN},{columns}"

        request = self._client.table(table).select(columns)
        for column, value in (equals or {}).items():
            request = request.eq(column, value)
        for column, value in (icontains or {}).items():
            request = request.ilike(column, f"%{_escape_like(value)}%")
        for column, value in (gte or {}).items():
            request = request.gte(column, value)
        for column, value in (lte or {}).items():
            request = request.lte(column, value)
        if order_by is not None:
            request = request.order(order_by)
        if limit is not None:
            request = request.limit(limit)

        response = self._execute(request, operation="query", table=table)
        rows = getattr(response, "data", None) or []
        return [_to_record(row) for row in rows]

    def create(self, table: str, fields: Mapping[str, Any]) -> StoredRecord:
        request = self._client.table(table).insert(dict(fields))
        response = self._execute(request, operation="create", table=table)
        rows = getattr(response, "data", None) or []
        if not rows:
            raise UpstreamError(
                f"Supabase create on {table} returned no row",
                operation="create",
                context={"table": table},
            )
        return _to_record(rows[0])

    def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> StoredRecord:
        request = self._client.table(table).update(dict(fields)).eq(_ID_COLUMN, record_id)
        response = self._execute(request, operation="update", table=table)
        rows = getattr(response, "data", None) or []
        if not rows:
            raise UpstreamError(
                f"Supabase update on {table} matched no record {record_id}",
                operation="update",
                context={"table": table, "record_id": record_id},
            )
        return _to_record(rows[0])


def create_record_store(settings: Settings) -> SupabaseRecordStore:
    """
    Build a Supabase-backed store from settings.

    Raises:
        ConfigurationError: SUPABASE_URL or SUPABASE_KEY is missing.
    """

    if not settings.supabase_url:
        raise ConfigurationError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )
    if not settings.supabase_key:
        raise ConfigurationError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    options = ClientOptions(postgrest_client_timeout=int(settings.http_timeout_seconds))
    client = create_client(settings.supabase_url, settings.supabase_key, options=options)
    tables = TableNames(
        leads=settings.leads_table,
        monthly_summary=settings.monthly_summary_table,
        oauth_tokens=settings.oauth_tokens_table,
        payment_reviews=settings.payment_reviews_table,
    )
    logger.info("Supabase record store initialized")
    return SupabaseRecordStore(client, tables)


__all__ = ["SupabaseRecordStore", "create_record_store"]
