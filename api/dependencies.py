"""
FastAPI dependency wiring.

Routers never build clients themselves; they ask for them here so tests can
swap in fakes through `app.dependency_overrides`.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from config import Settings, get_settings
from connectors.quickbooks import QuickBooksClient
from repositories.client import create_record_store
from repositories.record_store import RecordStore


def settings_dependency() -> Settings:
    return get_settings()


@lru_cache(maxsize=1)
def _record_store() -> RecordStore:
    return create_record_store(get_settings())


def get_record_store() -> RecordStore:
    """Process-wide record store (raises ConfigurationError when unconfigured)."""

    return _record_store()


def get_accounting_client(
    settings: Settings = Depends(settings_dependency),
    store: RecordStore = Depends(get_record_store),
) -> QuickBooksClient:
    return QuickBooksClient.from_settings(settings, store)


__all__ = ["settings_dependency", "get_record_store", "get_accounting_client"]
