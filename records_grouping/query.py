"""Lookups over a client's record groups.

Bridges dates stored elsewhere (the intended consultation or paid-service
date on a client card) with the groups rebuilt from the logs, and answers the
timeline questions the statistics roll-up needs: when a booking was created,
when the arrival was confirmed, and whether the client rebooked on the day of
a visit.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from .classify import day_key, is_admin_staff_name, is_unknown_staff_name, parse_timestamp
from .data_models import RebookResult, RecordGroup, StaffPick
from .enums import AttendanceStatus, GroupType
from .grouping import event_sort_key

LOG = logging.getLogger(__name__)

CLOSEST_GROUP_MAX_DIFF = timedelta(hours=24)

CREATE_STATUS = "create"

_MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")


def is_valid_month(value: Optional[str]) -> bool:
    """Check a YYYY-MM month key."""
    return bool(value) and bool(_MONTH_PATTERN.match(value))


def is_arrived(group: RecordGroup) -> bool:
    return group.attendance_status is AttendanceStatus.ARRIVED or group.attendance == 1


def groups_of_type(
    groups: Iterable[RecordGroup], group_type: GroupType | str
) -> List[RecordGroup]:
    """Filter groups to one group type, keeping their order."""
    if isinstance(group_type, str):
        group_type = GroupType.from_string(group_type)
    return [group for group in groups if group.group_type is group_type]


def groups_in_month(groups: Iterable[RecordGroup], month: str) -> List[RecordGroup]:
    """Groups whose Kyiv day falls in ``month`` (YYYY-MM)."""
    return [group for group in groups if group.kyiv_day[:7] == month]


def pick_closest_group(
    groups: Iterable[RecordGroup],
    target: object,
    group_type: GroupType | str,
) -> Optional[RecordGroup]:
    """Find the group of one type that corresponds to a target date.

    Parameters
    ----------
    groups : Iterable[RecordGroup]
        A client's groups.
    target : str | datetime
        Target date, usually the persisted intended visit date.
    group_type : GroupType | str
        Type the group must have.

    Returns
    -------
    RecordGroup | None
        The group on the same Kyiv day as ``target``. Otherwise the group
        nearest in time, provided it is at most 24 hours away; None when
        nothing qualifies or the target cannot be parsed.
    """
    target_at = parse_timestamp(target)
    if target_at is None:
        return None
    target_day = day_key(target_at)

    candidates = groups_of_type(groups, group_type)
    for group in candidates:
        if group.kyiv_day == target_day:
            return group

    best: Optional[RecordGroup] = None
    best_diff: Optional[timedelta] = None
    for group in candidates:
        moment = group.visit_at or group.received_at
        if moment is None:
            continue
        diff = abs(moment - target_at)
        if best_diff is None or diff < best_diff:
            best, best_diff = group, diff

    if best is None or best_diff > CLOSEST_GROUP_MAX_DIFF:
        LOG.debug("No %s group within 24h of %s", group_type, target_day)
        return None
    return best


def pick_record_created_at(group: RecordGroup) -> Optional[datetime]:
    """Earliest delivery time of a ``create`` event in the group, or None."""
    created = [
        event.received_at
        for event in group.events
        if (event.status or "").lower() == CREATE_STATUS and event.received_at is not None
    ]
    return min(created) if created else None


def attended_event_received_at(group: RecordGroup) -> Optional[datetime]:
    """Earliest delivery of an arrival signal received on the visit day itself."""
    attended = [
        event.received_at
        for event in group.events
        if event.attendance == 1
        and event.received_at is not None
        and day_key(event.received_at) == group.kyiv_day
    ]
    return min(attended) if attended else None


def pick_attended_day_staff(group: RecordGroup) -> Optional[StaffPick]:
    """Master credited for a rebook made during an arrived visit.

    Only events delivered on the visit day itself are considered, so a
    booking created days earlier by someone else does not take the credit.
    Administrators and "unknown master" placeholders are skipped; the
    earliest delivery wins.
    """
    on_day = [
        event
        for event in group.events
        if event.received_at is not None
        and day_key(event.received_at) == group.kyiv_day
        and (event.staff_name or "").strip()
        and not is_unknown_staff_name(event.staff_name)
        and not is_admin_staff_name(event.staff_name)
    ]
    if not on_day:
        return None
    chosen = min(on_day, key=lambda event: (event.received_at, event_sort_key(event)))
    return StaffPick(staff_id=chosen.staff_id, staff_name=chosen.staff_name.strip())


def detect_rebook(groups: List[RecordGroup], month: str) -> RebookResult:
    """Detect whether a client booked their next paid visit while in the salon.

    A rebook is a paid group created (its first ``create`` event delivered)
    on the day of an arrived paid visit in ``month`` and scheduled for a
    later day. The arrival must have been confirmed on the visit day itself.
    At most one rebook is reported per client and month.

    Parameters
    ----------
    groups : List[RecordGroup]
        A client's groups, as returned by group_records_by_client_day.
    month : str
        Month key (YYYY-MM) of the visit that triggers the rebook.

    Returns
    -------
    RebookResult
        ``primary_staff`` is the first master seen on the day of the arrived
        visit (see pick_attended_day_staff) and
        ``next_visit_at`` the visit time of the nearest rebooked group.
    """
    paid = groups_of_type(groups, GroupType.PAID)
    for attended in paid:
        if not is_arrived(attended) or attended.kyiv_day[:7] != month:
            continue
        if attended_event_received_at(attended) is None:
            continue

        candidates = []
        for group in paid:
            if group is attended or group.kyiv_day <= attended.kyiv_day:
                continue
            created_at = pick_record_created_at(group)
            if created_at is not None and day_key(created_at) == attended.kyiv_day:
                candidates.append(group)
        if not candidates:
            continue

        following = min(candidates, key=lambda g: g.kyiv_day)
        return RebookResult(
            has_rebook=True,
            primary_staff=pick_attended_day_staff(attended),
            next_visit_at=following.visit_at,
        )

    return RebookResult(has_rebook=False)
