"""
Domain: error taxonomy.

Every core operation either returns a typed outcome or raises one of these.
Callers decide how each maps to an HTTP status or an exit code.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional


class ConfigurationError(RuntimeError):
    """Required credentials or identifiers are missing. Fatal, never retried."""


class UpstreamError(RuntimeError):
    """
    A record-store or accounting-platform call failed.

    `context` carries enough detail (operation, table, ids) to retry by hand.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.context = dict(context or {})


class NoMatchFound(LookupError):
    """No lead matched a payment's customer name. A normal, reportable outcome."""

    def __init__(self, customer_name: str) -> None:
        super().__init__(f"No matching lead found for customer: {customer_name!r}")
        self.customer_name = customer_name


class InvalidSignature(Exception):
    """Webhook authenticity check failed; the request must not be processed."""


__all__ = [
    "ConfigurationError",
    "UpstreamError",
    "NoMatchFound",
    "InvalidSignature",
]
