"""Normalization of raw booking log entries.

Turns the opaque entries of the records and webhook logs into NormalizedEvent
instances for the grouping step.

**Input Contract:**
- A list of raw entries as read from the log store: JSON strings, bytes, or
  already-decoded mappings, optionally wrapped in a ``{"value": "<json>"}``
  envelope, in any order, with duplicates

**Output Contract:**
- One or two NormalizedEvent per usable entry (two when consultation and paid
  service lines are mixed), in input order
- Every event has a positive ``client_id``; timestamps are aware UTC or None

**Error Handling:**
- Nothing raises. Entries that do not parse into an object, lack a client id,
  or describe a non-record webhook are dropped; invalid timestamps become None
  and unparseable service lists become empty
- The log is append-only and cannot be corrected, so noise is tolerated rather
  than reported per entry; only the dropped count is logged
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .classify import parse_timestamp, split_services_by_type
from .data_models import NormalizedEvent, ServiceLine
from .enums import GroupType, LogSource
from .extractors import (
    FieldExtractor,
    coerce,
    first_match,
    path,
    to_attendance,
    to_list,
    to_number,
    to_positive_int,
    to_text,
)

LOG = logging.getLogger(__name__)


def _field(converter: Callable[[Any], Any], *paths: tuple[str, ...]) -> FieldExtractor[Any]:
    return first_match(*(coerce(path(*p), converter) for p in paths))


CLIENT_ID = _field(
    to_positive_int,
    ("clientId",),
    ("client_id",),
    ("data", "client", "id"),
    ("data", "client_id"),
    ("body", "data", "client", "id"),
    ("body", "data", "client_id"),
)

VISIT_AT = _field(
    parse_timestamp,
    ("datetime",),
    ("data", "datetime"),
    ("body", "data", "datetime"),
)

RECEIVED_AT = _field(
    parse_timestamp,
    ("receivedAt",),
    ("received_at",),
    ("body", "receivedAt"),
)

SERVICES = first_match(
    _field(
        to_list,
        ("data", "services"),
        ("services",),
        ("body", "data", "services"),
    ),
    _field(
        to_list,
        ("data", "service"),
        ("body", "data", "service"),
    ),
)

STAFF_ID = _field(
    to_positive_int,
    ("staffId",),
    ("data", "staff", "id"),
    ("data", "staff_id"),
    ("body", "data", "staff", "id"),
    ("body", "data", "staff_id"),
)

STAFF_NAME = _field(
    to_text,
    ("staffName",),
    ("data", "staff", "name"),
    ("data", "staff", "display_name"),
    ("body", "data", "staff", "name"),
    ("body", "data", "staff", "display_name"),
)

ATTENDANCE = _field(
    to_attendance,
    ("attendance",),
    ("visit_attendance",),
    ("data", "attendance"),
    ("data", "visit_attendance"),
    ("body", "data", "attendance"),
    ("body", "data", "visit_attendance"),
)

STATUS = _field(
    to_text,
    ("status",),
    ("body", "status"),
)

VISIT_ID = _field(
    to_positive_int,
    ("visitId",),
    ("visit_id",),
    ("data", "visit_id"),
    ("body", "data", "visit_id"),
)

RECORD_ID = _field(
    to_positive_int,
    ("recordId",),
    ("record_id",),
    ("data", "record_id"),
    ("body", "resource_id"),
    ("body", "data", "id"),
)


def parse_log_item(raw: Any) -> Optional[Dict[str, Any]]:
    """Decode one raw log entry into a mapping, or None.

    Handles JSON strings (including a JSON string that itself encodes a JSON
    string), bytes, plain mappings, and one level of ``{"value": "<json>"}``
    envelope as written by the key-value store.

    Parameters
    ----------
    raw : Any
        Raw log entry.

    Returns
    -------
    Dict[str, Any] | None
        Parsed entry, or None when it does not decode into an object.
    """
    parsed = _decode_json(raw)
    if isinstance(parsed, Mapping) and isinstance(parsed.get("value"), str):
        inner = _decode_json(parsed["value"])
        if isinstance(inner, Mapping):
            parsed = inner
    if not isinstance(parsed, Mapping):
        return None
    return dict(parsed)


def _decode_json(raw: Any) -> Any:
    value = raw
    if isinstance(value, (bytes, bytearray)):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            return None
    # Two passes cover entries that were JSON-encoded twice.
    for _ in range(2):
        if not isinstance(value, str):
            break
        try:
            value = json.loads(value)
        except ValueError:
            return None
    return value


def detect_source(entry: Mapping[str, Any]) -> Optional[LogSource]:
    """Recognise the log shape of a parsed entry.

    Webhook-log entries carry the delivery under ``body``; only ``record``
    resources describe bookings, so other resources return None.
    """
    body = entry.get("body")
    if isinstance(body, Mapping):
        resource = body.get("resource")
        if resource is not None and resource != "record":
            return None
        return LogSource.WEBHOOK
    return LogSource.RECORDS


def build_service_line(raw: Any) -> Optional[ServiceLine]:
    """Convert a raw service mapping into a ServiceLine, or None."""
    if not isinstance(raw, Mapping):
        return None

    category = raw.get("category")
    category_title: Optional[str] = None
    category_type: Optional[str] = None
    if isinstance(category, Mapping):
        category_title = to_text(category.get("title") or category.get("name"))
        category_type = to_text(category.get("type"))
    elif category is not None:
        category_title = to_text(category)

    # integral ids compare equal whether a log carries 7, 7.0 or "7"
    service_id = to_positive_int(raw.get("id"))

    return ServiceLine(
        title=to_text(raw.get("title") or raw.get("name")) or "",
        cost=to_number(raw.get("cost")),
        amount=to_number(raw.get("amount")),
        id=str(service_id) if service_id is not None else to_text(raw.get("id")),
        category=category_title,
        item_type=to_text(raw.get("type")) or category_type,
    )


def normalize_log_item(raw: Any) -> List[NormalizedEvent]:
    """Normalize one raw entry into zero, one or two events.

    Consultation and paid service lines are split into separate events that
    share every other field; an entry without services yields a single event
    with an empty service list.
    """
    entry = parse_log_item(raw)
    if entry is None:
        return []

    source = detect_source(entry)
    if source is None:
        return []

    client_id = CLIENT_ID(entry)
    if client_id is None:
        return []

    visit_at = VISIT_AT(entry)
    received_at = RECEIVED_AT(entry) or visit_at

    raw_services = SERVICES(entry) or []
    services = [
        line for line in (build_service_line(s) for s in raw_services) if line
    ]

    shared = dict(
        client_id=client_id,
        visit_at=visit_at,
        received_at=received_at,
        staff_id=STAFF_ID(entry),
        staff_name=STAFF_NAME(entry),
        attendance=ATTENDANCE(entry),
        status=STATUS(entry),
        visit_id=VISIT_ID(entry),
        record_id=RECORD_ID(entry),
        source=source.value,
    )

    if not services:
        return [NormalizedEvent(services=[], **shared)]

    split = split_services_by_type(services)
    return [
        NormalizedEvent(services=split[group_type], **shared)
        for group_type in (GroupType.CONSULTATION, GroupType.PAID)
        if split[group_type]
    ]


def normalize_log_items(raw_items: Iterable[Any]) -> List[NormalizedEvent]:
    """Normalize raw log entries into canonical events.

    Parameters
    ----------
    raw_items : Iterable[Any]
        Raw entries from one or more logs, in any order.

    Returns
    -------
    List[NormalizedEvent]
        Events in input order; unusable entries are skipped.
    """
    events: List[NormalizedEvent] = []
    total = 0
    dropped = 0
    for raw in raw_items:
        total += 1
        produced = normalize_log_item(raw)
        if not produced:
            dropped += 1
        events.extend(produced)

    LOG.info(
        "Normalized %d events from %d raw entries (%d dropped)",
        len(events),
        total,
        dropped,
    )
    return events
