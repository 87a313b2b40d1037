"""
Record store contract.

Every repository module talks to the store through this protocol instead of a
module-level client, so services can be handed a Supabase-backed store in
production and an in-memory one in tests.

Records are rows with an opaque `id` assigned by the store on creation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Protocol


@dataclass(frozen=True, slots=True)
class TableNames:
    leads: str = "leads"
    monthly_summary: str = "monthly_summary"
    oauth_tokens: str = "oauth_tokens"
    payment_reviews: str = "payment_reviews"


@dataclass(frozen=True, slots=True)
class StoredRecord:
    """A row as returned by the store: its id plus every other column."""

    record_id: str
    fields: Mapping[str, Any]

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


class RecordStore(Protocol):
    tables: TableNames

    def query(
        self,
        table: str,
        *,
        equals: Optional[Mapping[str, Any]] = None,
        icontains: Optional[Mapping[str, str]] = None,
        gte: Optional[Mapping[str, Any]] = None,
        lte: Optional[Mapping[str, Any]] = None,
        columns: str = "*",
        order_by: Optional[str] = "id",
        limit: Optional[int] = None,
    ) -> List[StoredRecord]:
        """
        Return rows matching every filter, in `order_by` order.

        - equals: column == value
        - icontains: case-insensitive substring match
        - gte / lte: inclusive range bounds
        """
        ...

    def create(self, table: str, fields: Mapping[str, Any]) -> StoredRecord:
        ...

    def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> StoredRecord:
        ...


__all__ = ["TableNames", "StoredRecord", "RecordStore"]
