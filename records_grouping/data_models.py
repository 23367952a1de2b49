"""Unified data models for the records grouping pipeline.

This module provides the dataclasses passed between pipeline steps. Raw log
entries are never modelled: they stay opaque until the normalizer turns them
into NormalizedEvent instances.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from .enums import AttendanceStatus, GroupType


@dataclass(frozen=True)
class ServiceLine:
    """One service, product or placeholder line of a booking.

    Fields
    ------
    title : str
        Service title as shown in the booking system (may be empty).
    cost : Optional[float]
        Unit cost in UAH, None when missing or not numeric.
    amount : Optional[float]
        Quantity, None when missing or not numeric.
    id : Optional[str]
        Booking-system service id, stringified.
    category : Optional[str]
        Category title, when the booking system sent one.
    item_type : Optional[str]
        Explicit item type marker (``type`` or ``category.type``); used to
        recognise goods.
    """

    title: str
    cost: Optional[float] = None
    amount: Optional[float] = None
    id: Optional[str] = None
    category: Optional[str] = None
    item_type: Optional[str] = None


@dataclass(frozen=True)
class NormalizedEvent:
    """Canonical booking event produced from one raw log entry.

    One raw entry yields at most two events: consultation and paid service
    lines are split apart and every other field is shared.

    Fields
    ------
    client_id : int
        Booking-system client id (always positive).
    visit_at : Optional[datetime]
        Appointment instant (timezone-aware, UTC).
    received_at : Optional[datetime]
        When the webhook arrived; falls back to ``visit_at``.
    services : List[ServiceLine]
        Service lines carried by this event.
    staff_id : Optional[int]
        Staff member id, if any.
    staff_name : Optional[str]
        Staff member display name, if any.
    attendance : Optional[int]
        1 arrived, 0 pending, -1 no-show or cancelled, None unknown.
    status : Optional[str]
        Event status such as ``create`` or ``update``.
    visit_id : Optional[int]
        Visit the record belongs to.
    record_id : Optional[int]
        Booking record id.
    source : Optional[str]
        LogSource value the entry was recognised as.
    """

    client_id: int
    visit_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    services: List[ServiceLine] = field(default_factory=list)
    staff_id: Optional[int] = None
    staff_name: Optional[str] = None
    attendance: Optional[int] = None
    status: Optional[str] = None
    visit_id: Optional[int] = None
    record_id: Optional[int] = None
    source: Optional[str] = None


@dataclass(frozen=True)
class AttendanceResolution:
    """Authoritative attendance of a group and its numeric mirror."""

    status: AttendanceStatus
    attendance: Optional[int]


@dataclass(frozen=True)
class RecordGroup:
    """All events of one client on one Kyiv day for one group type.

    Groups are rebuilt from the raw logs on every run and are never stored.

    Fields
    ------
    client_id : int
        Client the group belongs to.
    kyiv_day : str
        Calendar day (YYYY-MM-DD) in Europe/Kyiv.
    group_type : GroupType
        Consultation or paid.
    visit_at : Optional[datetime]
        Latest appointment instant seen in the group.
    received_at : Optional[datetime]
        Latest delivery instant seen in the group.
    services : List[ServiceLine]
        Union of member services, deduplicated by id and title.
    staff_ids : List[int]
        Distinct staff ids.
    staff_names : List[str]
        Distinct staff names, unknown placeholders removed.
    attendance_status : AttendanceStatus
        Resolved attendance.
    attendance : Optional[int]
        Numeric mirror of ``attendance_status`` (1, -1, -2, 0 or None).
    events : List[NormalizedEvent]
        Member events, newest first.
    """

    client_id: int
    kyiv_day: str
    group_type: GroupType
    visit_at: Optional[datetime]
    received_at: Optional[datetime]
    services: List[ServiceLine]
    staff_ids: List[int]
    staff_names: List[str]
    attendance_status: AttendanceStatus
    attendance: Optional[int]
    events: List[NormalizedEvent]


@dataclass(frozen=True)
class StaffPick:
    """Staff member chosen as responsible for a group."""

    staff_id: Optional[int]
    staff_name: str


@dataclass(frozen=True)
class MasterSum:
    """Attributable total of one staff member within a group."""

    master_name: str
    sum_uah: int


@dataclass(frozen=True)
class MasterCategorySums:
    """Attributable totals of one staff member split by service category."""

    master_name: str
    services_sum: int
    hair_sum: int
    goods_sum: int


@dataclass(frozen=True)
class BreakdownIds:
    """Visit and record a group's cost is reconciled against."""

    visit_id: Optional[int]
    record_id: Optional[int]


@dataclass(frozen=True)
class RebookResult:
    """Outcome of rebook detection for one client and month.

    Parameters
    ----------
    has_rebook : bool
        True when a future paid visit was booked on an attended visit day.
    primary_staff : Optional[StaffPick]
        Staff member the rebook is credited to.
    next_visit_at : Optional[datetime]
        Appointment instant of the rebooked visit.
    """

    has_rebook: bool
    primary_staff: Optional[StaffPick] = None
    next_visit_at: Optional[datetime] = None


@dataclass(frozen=True)
class BreakdownAudit:
    """Comparison of a persisted cost breakdown with the log-derived one."""

    log_total: int
    log_breakdown: List[MasterSum]
    persisted_total: Optional[int]
    persisted_breakdown_total: int
    matches: bool
    trust_log: bool


@dataclass(frozen=True)
class MasterProfile:
    """Roster entry used to map staff picks onto reporting rows.

    Parameters
    ----------
    master_id : str
        Stable roster id.
    name : str
        Display name.
    role : str
        One of MasterRole values.
    staff_id : Optional[int]
        Booking-system staff id, when known.
    """

    master_id: str
    name: str
    role: str = "master"
    staff_id: Optional[int] = None


def event_base_time(event: NormalizedEvent) -> Optional[datetime]:
    """Return the instant that places an event on a day (visit, else delivery)."""
    return event.visit_at or event.received_at


def event_delivery_time(event: NormalizedEvent) -> Optional[datetime]:
    """Return the instant an event was delivered (delivery, else visit)."""
    return event.received_at or event.visit_at


def as_plain_dict(value: Any) -> Any:
    """Convert dataclasses, enums and datetimes into JSON-ready values."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: as_plain_dict(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [as_plain_dict(item) for item in value]
    if isinstance(value, dict):
        return {key: as_plain_dict(item) for key, item in value.items()}
    return value
