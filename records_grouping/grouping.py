"""Grouping of normalized booking events into per-visit record groups.

One client is assumed to have at most one visit per Kyiv day for each group
type, so events are bucketed by ``(client_id, kyiv_day, group_type)``. Groups
are recomputed from the full event list on every call; nothing is cached
between calls because the logs keep growing outside this process.

**Fold rules:**
- ``visit_at`` and ``received_at`` keep the latest value seen
- services are a union deduplicated by (id, title), case-insensitive
- staff ids and names are unions; unknown-master placeholders are dropped

Events are folded in a canonical order (newest first, with a total tie-break
on every field) so the same event set always yields the same groups,
whatever order the logs were read in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from .attendance import resolve_attendance
from .classify import day_key, group_type_for, is_unknown_staff_name
from .data_models import (
    NormalizedEvent,
    RecordGroup,
    ServiceLine,
    event_base_time,
    event_delivery_time,
)
from .enums import GroupType

LOG = logging.getLogger(__name__)

GroupKey = Tuple[int, str, GroupType]


def _timestamp(value: Optional[datetime]) -> float:
    return value.timestamp() if value is not None else float("-inf")


def event_sort_key(event: NormalizedEvent) -> tuple:
    """Total ordering key for events, oldest delivery first.

    Delivery time decides; remaining fields only break ties so that the order
    never depends on input order.
    """
    return (
        _timestamp(event_delivery_time(event)),
        _timestamp(event.visit_at),
        event.visit_id or 0,
        event.record_id or 0,
        event.staff_id or 0,
        event.staff_name or "",
        event.attendance if event.attendance is not None else -9,
        event.status or "",
        event.source or "",
        tuple(
            (
                s.id or "",
                s.title,
                s.cost if s.cost is not None else float("-inf"),
                s.amount if s.amount is not None else float("-inf"),
                s.category or "",
                s.item_type or "",
            )
            for s in event.services
        ),
    )


def service_key(service: ServiceLine) -> str:
    """Deduplication key of a service line (id and title, case-insensitive)."""
    return f"{service.id or ''}:{service.title}".strip().lower()


def unique_services(services: Iterable[ServiceLine]) -> List[ServiceLine]:
    """Deduplicate service lines by service_key, keeping the first occurrence."""
    seen: set[str] = set()
    unique: List[ServiceLine] = []
    for service in services:
        key = service_key(service)
        if key in seen:
            continue
        seen.add(key)
        unique.append(service)
    return unique


def group_key(event: NormalizedEvent) -> Optional[GroupKey]:
    """Return the bucket key of an event, or None when it has no usable day."""
    base = event_base_time(event)
    if base is None:
        return None
    day = day_key(base)
    if not day:
        return None
    return (event.client_id, day, group_type_for(event.services))


@dataclass
class _GroupBuilder:
    """Mutable accumulator for one group key."""

    client_id: int
    kyiv_day: str
    group_type: GroupType
    visit_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    services: List[ServiceLine] = field(default_factory=list)
    staff_ids: List[int] = field(default_factory=list)
    staff_names: List[str] = field(default_factory=list)
    events: List[NormalizedEvent] = field(default_factory=list)

    def add(self, event: NormalizedEvent) -> None:
        self.events.append(event)
        self.services = unique_services([*self.services, *event.services])

        if event.staff_id and event.staff_id not in self.staff_ids:
            self.staff_ids.append(event.staff_id)

        name = (event.staff_name or "").strip()
        if name and not is_unknown_staff_name(name):
            if name.lower() not in {n.lower() for n in self.staff_names}:
                self.staff_names.append(name)

        self.visit_at = _later(self.visit_at, event.visit_at)
        self.received_at = _later(self.received_at, event.received_at)

    def finalize(self) -> RecordGroup:
        resolution = resolve_attendance(self.events, self.kyiv_day)
        events = sorted(self.events, key=event_sort_key, reverse=True)
        return RecordGroup(
            client_id=self.client_id,
            kyiv_day=self.kyiv_day,
            group_type=self.group_type,
            visit_at=self.visit_at,
            received_at=self.received_at,
            services=list(self.services),
            staff_ids=list(self.staff_ids),
            staff_names=list(self.staff_names),
            attendance_status=resolution.status,
            attendance=resolution.attendance,
            events=events,
        )


def _later(current: Optional[datetime], incoming: Optional[datetime]) -> Optional[datetime]:
    if incoming is None:
        return current
    if current is None or incoming > current:
        return incoming
    return current


def group_sort_key(group: RecordGroup) -> tuple:
    """Ordering key for a client's groups, oldest first."""
    return (
        _timestamp(group.visit_at or group.received_at),
        group.kyiv_day,
        group.group_type.value,
    )


def group_records_by_client_day(
    events: Iterable[NormalizedEvent],
) -> Dict[int, List[RecordGroup]]:
    """Group normalized events into record groups per client.

    Parameters
    ----------
    events : Iterable[NormalizedEvent]
        Normalized events in any order; duplicates are expected.

    Returns
    -------
    Dict[int, List[RecordGroup]]
        Client id -> groups, newest first. Clients appear in ascending id
        order. Events without a usable day are left out.
    """
    builders: Dict[GroupKey, _GroupBuilder] = {}
    skipped = 0

    for event in sorted(events, key=event_sort_key, reverse=True):
        key = group_key(event)
        if key is None:
            skipped += 1
            continue
        builder = builders.get(key)
        if builder is None:
            client_id, day, group_type = key
            builder = _GroupBuilder(client_id=client_id, kyiv_day=day, group_type=group_type)
            builders[key] = builder
        builder.add(event)

    by_client: Dict[int, List[RecordGroup]] = {}
    for builder in builders.values():
        by_client.setdefault(builder.client_id, []).append(builder.finalize())

    result: Dict[int, List[RecordGroup]] = {}
    for client_id in sorted(by_client):
        result[client_id] = sorted(by_client[client_id], key=group_sort_key, reverse=True)

    LOG.info(
        "Built %d record groups for %d clients (%d events without a day skipped)",
        sum(len(groups) for groups in result.values()),
        len(result),
        skipped,
    )
    return result


def group_client_records(
    events: Iterable[NormalizedEvent], client_id: int
) -> List[RecordGroup]:
    """Return the record groups of a single client, newest first."""
    relevant = [event for event in events if event.client_id == client_id]
    return group_records_by_client_day(relevant).get(client_id, [])
