"""
Name reconciliation: resolve a payment's free-text customer name to a Lead.

Process:
1. Blank names never match and never reach the store.
2. Fast path: a case-insensitive substring query on the leads table. The
   first hit (lowest id) wins and no similarity scoring happens.
3. Otherwise every candidate name (bounded page) is scored against the
   target; the best score wins if it reaches the threshold. Equal scores
   resolve to the lowest record id.

Scores are in [0, 1]; a higher threshold is stricter and a score exactly
equal to the threshold is accepted.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence, Tuple

from rapidfuzz import fuzz

from domain.errors import NoMatchFound
from domain.lead import LeadRecord
from repositories.lead_repository import (
    find_leads_by_name_fragment,
    get_lead_by_id,
    list_lead_names,
)
from repositories.record_store import RecordStore
from services.retry import retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.8
DEFAULT_CANDIDATE_LIMIT = 1000

Scorer = Callable[[str, str], float]

_BUSINESS_SUFFIXES = re.compile(r"\b(inc|llc|corp|ltd|company|co)\b")
_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_customer_name(name: Optional[str]) -> str:
    """
    Canonical form for comparing names across systems.

    Example:
        normalize_customer_name("ACME Plumbing Co.")  # "acme plumbing"
    """

    if not name:
        return ""
    text = _NON_WORD.sub("", name.lower().strip())
    text = _WHITESPACE.sub(" ", text)
    text = _BUSINESS_SUFFIXES.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def name_similarity(left: str, right: str) -> float:
    """Token-order-insensitive similarity of two names, in [0, 1]."""

    a = normalize_customer_name(left)
    b = normalize_customer_name(right)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return fuzz.token_sort_ratio(a, b) / 100.0


@dataclass(frozen=True, slots=True)
class LeadMatch:
    lead: LeadRecord
    score: float
    method: str  # "exact" or "fuzzy"


def _id_sort_key(record_id: str) -> Tuple[int, int, str]:
    # Numeric ids sort numerically, everything else lexically after them.
    if record_id.isdigit():
        return (0, int(record_id), "")
    return (1, 0, record_id)


def best_candidate(
    target_name: str,
    candidates: Iterable[Tuple[str, str]],
    threshold: float = DEFAULT_THRESHOLD,
    scorer: Scorer = name_similarity,
) -> Optional[Tuple[str, float]]:
    """
    Pick the best (record_id, name) candidate for `target_name`.

    Returns:
        (record_id, score) when the best score is >= threshold, else None.
    """

    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold must be within [0, 1], got {threshold}")

    ordered: Sequence[Tuple[str, str]] = sorted(candidates, key=lambda c: _id_sort_key(c[0]))
    best_id: Optional[str] = None
    best_score = -1.0
    for record_id, name in ordered:
        if not name:
            continue
        score = scorer(target_name, name)
        # Strictly greater keeps the lowest id on ties.
        if score > best_score:
            best_id, best_score = record_id, score

    if best_id is None or best_score < threshold:
        return None
    return best_id, best_score


def find_match(
    store: RecordStore,
    target_name: Optional[str],
    threshold: float = DEFAULT_THRESHOLD,
    *,
    scorer: Scorer = name_similarity,
    candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
) -> Optional[LeadMatch]:
    """
    Find the Lead a payment's customer name refers to.

    Returns None for no match; that is a normal outcome the caller reports
    for manual review, not an error.

    Raises:
        UpstreamError: the record store could not be read (after retries).
    """

    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold must be within [0, 1], got {threshold}")

    needle = (target_name or "").strip().lower()
    if not needle:
        return None

    hits = retry_with_backoff(lambda: find_leads_by_name_fragment(store, needle))
    if hits:
        lead = min(hits, key=lambda hit: _id_sort_key(hit.record_id))
        logger.info("Exact match for %r: lead %s", target_name, lead.record_id)
        return LeadMatch(lead=lead, score=1.0, method="exact")

    names = retry_with_backoff(lambda: list_lead_names(store, limit=candidate_limit))
    best = best_candidate(needle, names, threshold=threshold, scorer=scorer)
    if best is None:
        logger.info("No match for %r among %d candidates", target_name, len(names))
        return None

    record_id, score = best
    lead = retry_with_backoff(lambda: get_lead_by_id(store, record_id))
    if lead is None:
        # Deleted between the name scan and the fetch.
        logger.warning("Matched lead %s disappeared before it could be read", record_id)
        return None

    logger.info(
        "Fuzzy match for %r: %r (lead %s, score %.3f)",
        target_name,
        lead.customer_name,
        record_id,
        score,
    )
    return LeadMatch(lead=lead, score=score, method="fuzzy")


def require_match(
    store: RecordStore,
    target_name: Optional[str],
    threshold: float = DEFAULT_THRESHOLD,
    **kwargs,
) -> LeadMatch:
    """
    Like `find_match`, but raises NoMatchFound instead of returning None.
    """

    match = find_match(store, target_name, threshold, **kwargs)
    if match is None:
        raise NoMatchFound(target_name or "")
    return match


__all__ = [
    "require_match",
    "DEFAULT_THRESHOLD",
    "LeadMatch",
    "normalize_customer_name",
    "name_similarity",
    "best_candidate",
    "find_match",
]
