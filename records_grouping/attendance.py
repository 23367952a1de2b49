"""Attendance resolution for record groups.

A group collects every attendance signal the booking system sent for one
visit. The signals are resolved with a fixed precedence, first rule wins:

1. any ``attendance == 1`` -> arrived (1)
2. any ``attendance == -1`` delivered on or after the visit day -> no-show (-1)
3. any ``attendance == -1`` delivered before the visit day -> cancelled (-2)
4. any ``attendance == 0`` -> pending (0)
5. otherwise -> pending (None)

Only the set of signals matters, so the result does not depend on event order.
"""

from __future__ import annotations

from typing import Iterable

from .classify import day_key
from .data_models import AttendanceResolution, NormalizedEvent, event_delivery_time
from .enums import AttendanceStatus

ARRIVED = 1
PENDING = 0
NEGATIVE = -1
CANCELLED_CODE = -2


def is_before_visit_day(event: NormalizedEvent, kyiv_day: str) -> bool:
    """Check whether an event was delivered strictly before the visit day.

    The delivery day is taken from ``received_at``, falling back to
    ``visit_at``; an event whose only timestamp is the visit itself therefore
    counts as delivered on the visit day. Events with no usable timestamp, or
    groups with no day, are never treated as early.
    """
    delivered_day = day_key(event_delivery_time(event))
    if not delivered_day or not kyiv_day:
        return False
    return delivered_day < kyiv_day


def resolve_attendance(
    events: Iterable[NormalizedEvent], kyiv_day: str
) -> AttendanceResolution:
    """Resolve one attendance status from all signals of a group.

    Parameters
    ----------
    events : Iterable[NormalizedEvent]
        Member events of the group, in any order.
    kyiv_day : str
        The group's visit day (YYYY-MM-DD).

    Returns
    -------
    AttendanceResolution
        Status and numeric mirror (1, -1, -2, 0 or None).
    """
    has_arrived = False
    has_pending = False
    negative_on_day = False
    negative_before = False

    for event in events:
        if event.attendance == ARRIVED:
            has_arrived = True
        elif event.attendance == PENDING:
            has_pending = True
        elif event.attendance == NEGATIVE:
            if is_before_visit_day(event, kyiv_day):
                negative_before = True
            else:
                negative_on_day = True

    if has_arrived:
        return AttendanceResolution(AttendanceStatus.ARRIVED, ARRIVED)
    if negative_on_day:
        return AttendanceResolution(AttendanceStatus.NO_SHOW, NEGATIVE)
    if negative_before:
        return AttendanceResolution(AttendanceStatus.CANCELLED, CANCELLED_CODE)
    if has_pending:
        return AttendanceResolution(AttendanceStatus.PENDING, PENDING)
    return AttendanceResolution(AttendanceStatus.PENDING, None)
