"""
Lead intake: normalize loosely-typed CRM webhooks and upsert the Lead.

Payloads arrive from HouseCall Pro directly (`event_type: customer.created`)
or relayed through Go High Level (flat contact fields plus custom fields that
move around between workflow versions). No single field name is trusted:
each value is read by probing a prioritized list of extractors and taking
the first present, non-empty, non-placeholder value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from config import DEFAULT_PLACEHOLDER_SOURCES
from domain.lead import LeadIntake, LeadRecord
from domain.time import parse_utc_datetime
from repositories.lead_repository import upsert_lead
from repositories.record_store import RecordStore

logger = logging.getLogger(__name__)

Payload = Mapping[str, Any]

DEFAULT_GHL_SOURCE = "Go High Level"
DEFAULT_HCP_SOURCE = "Unknown"


@dataclass(frozen=True, slots=True)
class FieldExtractor:
    """A named path into a payload, e.g. ("contact", "attributionSource", "source")."""

    name: str
    path: Tuple[str, ...]

    def __call__(self, payload: Payload) -> Any:
        current: Any = payload
        for key in self.path:
            if not isinstance(current, Mapping):
                return None
            current = current.get(key)
        return current


def _field(*path: str) -> FieldExtractor:
    return FieldExtractor(name=".".join(path), path=tuple(path))


LEAD_SOURCE_EXTRACTORS: Tuple[FieldExtractor, ...] = (
    _field("Housecall Pro Lead Source"),
    _field("Lead Source"),
    _field("HCP Lead Source"),
    _field("lead_source"),
    _field("leadSource"),
    _field("source"),
    _field("customData", "leadSource"),
    _field("customData", "source"),
    _field("customData", "lead_source"),
    _field("contact", "source"),
    _field("triggerData", "source"),
    _field("contact", "attributionSource", "source"),
    _field("contact", "attributionSource", "medium"),
    _field("attributionSource", "source"),
    _field("attributionSource", "medium"),
)

TAG_EXTRACTORS: Tuple[FieldExtractor, ...] = (
    _field("tags"),
    _field("HCP Tags"),
    _field("hcp_tags"),
    _field("customData", "tags"),
    _field("contact", "tags"),
)

ADDRESS_PART_EXTRACTORS: Tuple[FieldExtractor, ...] = (
    _field("address1"),
    _field("address2"),
    _field("city"),
    _field("state"),
    _field("postal_code"),
)


def first_value(
    payload: Payload,
    extractors: Iterable[FieldExtractor],
    placeholders: Sequence[str] = (),
) -> Optional[str]:
    """First extractor value that is present, non-blank and not a placeholder."""

    ignored = {placeholder.casefold() for placeholder in placeholders}
    for extractor in extractors:
        value = extractor(payload)
        if value is None:
            continue
        text = str(value).strip()
        if not text or text.casefold() in ignored:
            continue
        logger.debug("Using %s=%r", extractor.name, text)
        return text
    return None


def extract_lead_source(
    payload: Payload,
    placeholders: Sequence[str] = DEFAULT_PLACEHOLDER_SOURCES,
    default: str = DEFAULT_GHL_SOURCE,
) -> str:
    return first_value(payload, LEAD_SOURCE_EXTRACTORS, placeholders) or default


def build_address(payload: Payload) -> str:
    """`full_address` when given, else the street/unit/city/state/zip parts joined."""

    full = payload.get("full_address")
    if full and str(full).strip():
        return str(full).strip()
    parts = [extractor(payload) for extractor in ADDRESS_PART_EXTRACTORS]
    return ", ".join(str(part).strip() for part in parts if part and str(part).strip())


def collect_tags(payload: Payload) -> Tuple[str, ...]:
    """Tags from every known location, de-duplicated in first-seen order."""

    tags: List[str] = []
    for extractor in TAG_EXTRACTORS:
        value = extractor(payload)
        if not value:
            continue
        items = value if isinstance(value, (list, tuple)) else str(value).split(",")
        for item in items:
            text = str(item).strip()
            if text and text not in tags:
                tags.append(text)
    return tuple(tags)


def _full_name(record: Payload) -> str:
    name = record.get("full_name") or record.get("name")
    if name and str(name).strip():
        return str(name).strip()
    first = str(record.get("first_name") or "").strip()
    last = str(record.get("last_name") or "").strip()
    return f"{first} {last}".strip()


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _created_at(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_utc_datetime(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring unparseable created date %r", value)
        return None


def parse_ghl_lead(
    payload: Payload,
    placeholders: Sequence[str] = DEFAULT_PLACEHOLDER_SOURCES,
) -> LeadIntake:
    """Normalize a Go High Level contact webhook."""

    name = _full_name(payload)
    if not name:
        raise ValueError("Lead webhook has no customer name")

    return LeadIntake(
        customer_name=name,
        lead_source=extract_lead_source(payload, placeholders),
        email=_optional_text(payload.get("email")),
        phone=_optional_text(payload.get("phone")),
        address=build_address(payload) or None,
        notes=_optional_text(payload.get("HCP Notes")),
        tags=collect_tags(payload),
        created_at=_created_at(payload.get("date_created")),
        external_customer_id=_optional_text(payload.get("contact_id")),
    )


def parse_housecall_customer(payload: Payload) -> LeadIntake:
    """Normalize a HouseCall Pro `customer.created` webhook."""

    customer = payload.get("data") or payload.get("customer")
    if not isinstance(customer, Mapping):
        raise ValueError("Invalid webhook payload: customer data not found")

    name = _full_name(customer)
    if not name:
        raise ValueError("Customer webhook has no customer name")

    tags = tuple(str(tag) for tag in customer.get("tags") or ())
    source = _optional_text(customer.get("lead_source"))
    if source is None:
        source = next((tag for tag in tags if "source" in tag.lower()), DEFAULT_HCP_SOURCE)

    address = customer.get("address")
    if isinstance(address, Mapping):
        address = build_address({
            "address1": address.get("street"),
            "address2": address.get("street_line_2"),
            "city": address.get("city"),
            "state": address.get("state"),
            "postal_code": address.get("zip"),
        })

    return LeadIntake(
        customer_name=name,
        lead_source=source,
        email=_optional_text(customer.get("email")),
        phone=_optional_text(customer.get("phone") or customer.get("mobile_number")),
        address=_optional_text(address),
        notes=_optional_text(customer.get("notes")),
        tags=tags,
        created_at=_created_at(customer.get("created_at")),
        external_customer_id=_optional_text(customer.get("id")),
    )


def parse_lead_webhook(
    payload: Payload,
    placeholders: Sequence[str] = DEFAULT_PLACEHOLDER_SOURCES,
) -> Optional[LeadIntake]:
    """
    Pick the parser for a payload's shape.

    Returns None for payloads that are neither HouseCall Pro nor Go High Level.
    """

    if payload.get("event_type") == "customer.created":
        return parse_housecall_customer(payload)
    if payload.get("contact_id"):
        return parse_ghl_lead(payload, placeholders)
    return None


def process_lead_webhook(
    store: RecordStore,
    payload: Payload,
    placeholders: Sequence[str] = DEFAULT_PLACEHOLDER_SOURCES,
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
) -> Optional[LeadRecord]:
    """
    Upsert the Lead described by an intake webhook.

    Returns the stored Lead, or None when the payload shape is unrecognized
    (logged, nothing written).
    """

    intake = parse_lead_webhook(payload, placeholders)
    if intake is None:
        logger.warning(
            "Unrecognized lead webhook format; fields: %s",
            sorted(payload.keys()),
        )
        return None

    lead, created = upsert_lead(store, intake, clock())
    logger.info(
        "Lead %s %s: %s (source %r)",
        lead.record_id,
        "created" if created else "updated",
        lead.customer_name,
        lead.lead_source,
    )
    return lead


__all__ = [
    "FieldExtractor",
    "LEAD_SOURCE_EXTRACTORS",
    "first_value",
    "extract_lead_source",
    "build_address",
    "collect_tags",
    "parse_ghl_lead",
    "parse_housecall_customer",
    "parse_lead_webhook",
    "process_lead_webhook",
]
