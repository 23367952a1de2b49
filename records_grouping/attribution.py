"""Staff and cost attribution for record groups.

Answers the questions the admin table and the statistics roll-up ask about a
group: who was the responsible master, how many hands worked, what the visit
cost and how that cost splits per master and per category.

Staff attribution only looks at events whose own visit day equals the group's
day, so a late delivery filed under another day never changes the master.
Administrators and "unknown master" placeholders are skipped unless a caller
explicitly allows administrators.

Every function here is total: missing data gives None, zero or an empty list,
which callers render as an empty cell.
"""

from __future__ import annotations

import math
from collections import Counter
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .classify import day_key, is_admin_staff_name, is_unknown_staff_name
from .data_models import (
    BreakdownAudit,
    BreakdownIds,
    MasterCategorySums,
    MasterSum,
    NormalizedEvent,
    RecordGroup,
    ServiceLine,
    StaffPick,
    event_base_time,
)
from .enums import PickMode, ServiceCategory
from .grouping import event_sort_key, unique_services
from .normalize import build_service_line

# Title or category fragments of hair products (extensions, wefts, ponytails).
HAIR_KEYWORDS = (
    "накладк",
    "трес",
    "хвіст",
    "хвост",
    "нарощування",
    "волосся",
    "hair",
)

GOODS_TYPE_MARKERS = ("good", "goods", "product", "товар")

RECONCILE_MIN_TOLERANCE = 500
RECONCILE_TOLERANCE_RATIO = 0.10

AUDIT_MATCH_TOLERANCE = 500
AUDIT_MISMATCH_MIN = 1000
AUDIT_MISMATCH_RATIO = 0.15


def _as_mode(mode: PickMode | str | None) -> PickMode:
    if isinstance(mode, PickMode):
        return mode
    return PickMode.from_string(mode)


def event_visit_day(event: NormalizedEvent) -> str:
    """Kyiv day of an event's visit (visit time, else delivery time)."""
    return day_key(event_base_time(event))


def staff_identity(staff_id: Optional[int], staff_name: Optional[str]) -> str:
    """Identity used to tell staff members apart: id when known, else name."""
    if staff_id:
        return f"id:{staff_id}"
    return f"name:{(staff_name or '').strip().lower()}"


def is_qualifying_staff_event(
    event: NormalizedEvent, kyiv_day: str, allow_admin: bool = False
) -> bool:
    """Check whether an event may attribute its staff member to the group.

    Parameters
    ----------
    event : NormalizedEvent
        Candidate event.
    kyiv_day : str
        The group's day.
    allow_admin : bool
        Accept administrator names as well.

    Returns
    -------
    bool
        True when the staff name is usable and the event's own visit day is
        the group's day.
    """
    name = (event.staff_name or "").strip()
    if not name or is_unknown_staff_name(name):
        return False
    if not allow_admin and is_admin_staff_name(name):
        return False
    return event_visit_day(event) == kyiv_day


def qualifying_events(
    group: RecordGroup, allow_admin: bool = False
) -> List[NormalizedEvent]:
    """Member events of ``group`` that may attribute staff, newest first."""
    return [
        event
        for event in group.events
        if is_qualifying_staff_event(event, group.kyiv_day, allow_admin)
    ]


def _ordered(events: Iterable[NormalizedEvent], mode: PickMode) -> List[NormalizedEvent]:
    return sorted(events, key=event_sort_key, reverse=mode is PickMode.LATEST)


def pick_staff(
    group: RecordGroup,
    mode: PickMode | str | None = PickMode.LATEST,
    allow_admin: bool = False,
) -> Optional[StaffPick]:
    """Pick the responsible staff member of a group.

    Parameters
    ----------
    group : RecordGroup
        Finalized group.
    mode : PickMode | str
        FIRST takes the earliest delivered qualifying event, LATEST the most
        recent one.
    allow_admin : bool
        Accept administrators when no master qualifies.

    Returns
    -------
    StaffPick | None
        Chosen staff member, or None when no event qualifies.
    """
    candidates = _ordered(qualifying_events(group, allow_admin), _as_mode(mode))
    if not candidates:
        return None
    chosen = candidates[0]
    return StaffPick(staff_id=chosen.staff_id, staff_name=(chosen.staff_name or "").strip())


def pick_staff_for_sums(group: RecordGroup) -> Optional[StaffPick]:
    """Latest master of a group, falling back to an administrator."""
    return pick_staff(group, PickMode.LATEST) or pick_staff(
        group, PickMode.LATEST, allow_admin=True
    )


def pick_staff_pair(
    group: RecordGroup, mode: PickMode | str | None = PickMode.FIRST
) -> List[StaffPick]:
    """Pick up to two distinct masters of a group ("four hands" services).

    Uses the same filter and ordering as pick_staff with administrators
    excluded. Staff are told apart by id when present, else by name.
    """
    picks: List[StaffPick] = []
    seen: set[str] = set()
    for event in _ordered(qualifying_events(group), _as_mode(mode)):
        identity = staff_identity(event.staff_id, event.staff_name)
        if identity in seen:
            continue
        seen.add(identity)
        picks.append(
            StaffPick(staff_id=event.staff_id, staff_name=(event.staff_name or "").strip())
        )
        if len(picks) == 2:
            break
    return picks


def count_distinct_staff(group: RecordGroup) -> int:
    """Count distinct masters that qualify for attribution in a group."""
    return len(
        {staff_identity(e.staff_id, e.staff_name) for e in qualifying_events(group)}
    )


def hands_for_staff_count(count: int) -> int:
    """Map a master count to the "hands" multiplier used in reporting.

    Business rule kept as agreed with the salon: one master (or none) is two
    hands, two masters four hands, three or more six hands.
    """
    if count <= 1:
        return 2
    if count == 2:
        return 4
    return 6


def _service_line(service: Any) -> Optional[ServiceLine]:
    if isinstance(service, ServiceLine):
        return service
    if isinstance(service, Mapping):
        return build_service_line(service)
    return None


def _round_currency(total: float) -> int:
    return int(Decimal(repr(total)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_services_cost(services: Iterable[Any]) -> int:
    """Sum ``cost * amount`` over service lines, rounded to whole UAH.

    Lines whose cost or amount is not a finite number are skipped; a line
    without an amount counts once. The total is rounded, not each line.

    Parameters
    ----------
    services : Iterable[ServiceLine | Mapping]
        Service lines.

    Returns
    -------
    int
        Rounded total, 0 for no services.

    Examples
    --------
    >>> compute_services_cost([{"cost": 333.33, "amount": 3}])
    1000
    """
    total = 0.0
    for service in services:
        line = _service_line(service)
        if line is None or line.cost is None or not math.isfinite(line.cost):
            continue
        amount = 1.0 if line.amount is None else line.amount
        if not math.isfinite(amount):
            continue
        total += line.cost * amount
    return _round_currency(total)


def compute_group_total_cost(group: RecordGroup) -> int:
    """Total cost of a group's deduplicated services."""
    return compute_services_cost(group.services)


def classify_service(service: Any) -> ServiceCategory:
    """Assign a service line to the services, hair or goods bucket.

    Hair keywords in the title or category win over an explicit goods type;
    anything unrecognised is a service.
    """
    line = _service_line(service)
    if line is None:
        return ServiceCategory.SERVICES

    text = f"{line.title} {line.category or ''}".lower()
    if any(keyword in text for keyword in HAIR_KEYWORDS):
        return ServiceCategory.HAIR

    item_type = (line.item_type or "").strip().lower()
    if item_type in GOODS_TYPE_MARKERS:
        return ServiceCategory.GOODS
    return ServiceCategory.SERVICES


def _services_by_staff(
    events: Iterable[NormalizedEvent],
) -> Dict[str, tuple[str, List[ServiceLine]]]:
    """Deduplicated services per staff identity; the newest name is kept."""
    buckets: Dict[str, tuple[str, List[ServiceLine]]] = {}
    for event in events:
        identity = staff_identity(event.staff_id, event.staff_name)
        name, services = buckets.get(
            identity, ((event.staff_name or "").strip(), [])
        )
        buckets[identity] = (name, unique_services([*services, *event.services]))
    return buckets


def per_master_sums(
    group: RecordGroup,
    visit_id: Optional[int] = None,
    record_id: Optional[int] = None,
) -> List[MasterSum]:
    """Attributable total per master within a group.

    Parameters
    ----------
    group : RecordGroup
        Finalized group.
    visit_id : Optional[int]
        Only count events of this visit.
    record_id : Optional[int]
        Only count events of this record.

    Returns
    -------
    List[MasterSum]
        Non-zero totals, largest first.
    """
    events = qualifying_events(group)
    if visit_id is not None:
        events = [e for e in events if e.visit_id == visit_id]
    if record_id is not None:
        events = [e for e in events if e.record_id == record_id]

    sums = [
        MasterSum(master_name=name, sum_uah=compute_services_cost(services))
        for name, services in _services_by_staff(events).values()
    ]
    sums = [entry for entry in sums if entry.sum_uah != 0]
    return sorted(sums, key=lambda entry: (-entry.sum_uah, entry.master_name))


def per_master_category_sums(group: RecordGroup) -> List[MasterCategorySums]:
    """Attributable totals per master split into services, hair and goods."""
    result: List[MasterCategorySums] = []
    for name, services in _services_by_staff(qualifying_events(group)).values():
        buckets: Dict[ServiceCategory, List[ServiceLine]] = {c: [] for c in ServiceCategory}
        for line in services:
            buckets[classify_service(line)].append(line)
        entry = MasterCategorySums(
            master_name=name,
            services_sum=compute_services_cost(buckets[ServiceCategory.SERVICES]),
            hair_sum=compute_services_cost(buckets[ServiceCategory.HAIR]),
            goods_sum=compute_services_cost(buckets[ServiceCategory.GOODS]),
        )
        if entry.services_sum or entry.hair_sum or entry.goods_sum:
            result.append(entry)
    return sorted(
        result,
        key=lambda e: (-(e.services_sum + e.hair_sum + e.goods_sum), e.master_name),
    )


def _most_frequent(ids: List[int]) -> Optional[int]:
    """Most frequent id; ties go to the one seen first (events are newest first)."""
    if not ids:
        return None
    counts = Counter(ids)
    return max(counts, key=lambda value: (counts[value], -ids.index(value)))


def _main_id(events: Iterable[NormalizedEvent], attr: str) -> Optional[int]:
    events = list(events)
    arrived = [getattr(e, attr) for e in events if e.attendance == 1 and getattr(e, attr)]
    if arrived:
        return _most_frequent(arrived)
    return _most_frequent([getattr(e, attr) for e in events if getattr(e, attr)])


def main_visit_id(group: RecordGroup) -> Optional[int]:
    """Most representative visit id of a group.

    Ids of arrived events are preferred; otherwise the most frequent id over
    all events is used.
    """
    return _main_id(group.events, "visit_id")


def main_record_id(group: RecordGroup) -> Optional[int]:
    """Most representative record id of a group (see main_visit_id)."""
    return _main_id(group.events, "record_id")


def cost_by_id(group: RecordGroup, attr: str) -> Dict[int, int]:
    """Total cost of the events sharing each visit or record id."""
    services_by_id: Dict[int, List[ServiceLine]] = {}
    for event in group.events:
        key = getattr(event, attr)
        if not key:
            continue
        services_by_id[key] = unique_services(
            [*services_by_id.get(key, []), *event.services]
        )
    return {key: compute_services_cost(lines) for key, lines in services_by_id.items()}


def reconcile_tolerance(target_sum: float) -> float:
    """Allowed difference when matching a persisted total: 10%, at least 500."""
    return max(RECONCILE_MIN_TOLERANCE, abs(target_sum) * RECONCILE_TOLERANCE_RATIO)


def _closest_within(sums: Dict[int, int], target: float, tolerance: float) -> Optional[int]:
    candidates = [
        (abs(total - target), key)
        for key, total in sums.items()
        if abs(total - target) <= tolerance
    ]
    if not candidates:
        return None
    return min(candidates)[1]


def resolve_breakdown_ids(
    group: RecordGroup, target_sum: Optional[float] = None
) -> BreakdownIds:
    """Choose the visit and record a persisted total should be reconciled with.

    Parameters
    ----------
    group : RecordGroup
        Finalized group, possibly spanning several bookings.
    target_sum : Optional[float]
        Persisted total to match. Visit totals are searched first, then
        record totals; a match must lie within reconcile_tolerance.

    Returns
    -------
    BreakdownIds
        Matched ids, or main_visit_id / main_record_id when nothing matches
        or no target is given.
    """
    fallback = BreakdownIds(visit_id=main_visit_id(group), record_id=main_record_id(group))
    if target_sum is None or isinstance(target_sum, bool):
        return fallback
    try:
        target = float(target_sum)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(target):
        return fallback

    tolerance = reconcile_tolerance(target)

    visit_match = _closest_within(cost_by_id(group, "visit_id"), target, tolerance)
    if visit_match is not None:
        members = [e for e in group.events if e.visit_id == visit_match]
        return BreakdownIds(visit_id=visit_match, record_id=_main_id(members, "record_id"))

    record_match = _closest_within(cost_by_id(group, "record_id"), target, tolerance)
    if record_match is not None:
        members = [e for e in group.events if e.record_id == record_match]
        return BreakdownIds(visit_id=_main_id(members, "visit_id"), record_id=record_match)

    return fallback


def audit_breakdown(
    group: Optional[RecordGroup],
    persisted_total: Optional[int],
    persisted_breakdown: Iterable[MasterSum] = (),
) -> BreakdownAudit:
    """Compare a persisted total and per-master breakdown with the logs.

    Parameters
    ----------
    group : RecordGroup | None
        Log-derived group of the visit, if one was found.
    persisted_total : Optional[int]
        Total stored on the client record.
    persisted_breakdown : Iterable[MasterSum]
        Per-master breakdown stored on the client record.

    Returns
    -------
    BreakdownAudit
        ``matches`` when both the total and the breakdown total agree within
        500 UAH; ``trust_log`` when the stored breakdown is off from the log
        total by more than max(1000, 15%).
    """
    log_total = compute_group_total_cost(group) if group is not None else 0
    log_breakdown = per_master_sums(group) if group is not None else []
    log_breakdown_total = sum(entry.sum_uah for entry in log_breakdown)
    persisted_breakdown_total = sum(entry.sum_uah for entry in persisted_breakdown)

    has_log_data = group is not None and (log_total > 0 or bool(log_breakdown))
    matches = (
        has_log_data
        and persisted_total is not None
        and abs(persisted_total - log_total) <= AUDIT_MATCH_TOLERANCE
        and abs(persisted_breakdown_total - log_breakdown_total) <= AUDIT_MATCH_TOLERANCE
    )
    trust_log = has_log_data and abs(persisted_breakdown_total - log_total) > max(
        AUDIT_MISMATCH_MIN, (log_total or 1) * AUDIT_MISMATCH_RATIO
    )
    return BreakdownAudit(
        log_total=log_total,
        log_breakdown=log_breakdown,
        persisted_total=persisted_total,
        persisted_breakdown_total=persisted_breakdown_total,
        matches=bool(matches),
        trust_log=bool(trust_log),
    )
