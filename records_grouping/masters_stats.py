"""Monthly per-master statistics built from record groups.

Rolls a month of record groups up into one row per roster master, plus one
row for work that could not be attributed. Staff picks from the booking
system are mapped onto the roster by staff id, then by name; names that only
differ in spelling are matched with rapidfuzz, the same way column headers
are matched against canonical names elsewhere.

Output columns:

- ``clients``: clients whose newest group in the month belongs to the master
- ``consult_booked`` / ``consult_attended``: consultation groups with a visit
  time in the month, and those of them the client arrived to
- ``paid_attended``: arrived paid groups in the month
- ``rebooks_created``: clients who booked their next paid visit on the day of
  an arrived paid visit (at most one per client)
- ``rebook_rate_pct``: rebooks per arrived paid visit, in percent
- ``services_sum`` / ``hair_sum`` / ``goods_sum``: attributable UAH of arrived
  paid groups, split by service category
- ``future_sum``, ``month_to_end_sum``, ``next_month_sum``,
  ``plus2_month_sum``: booked UAH of paid groups relative to a reference
  day (today in Kyiv by default), independent of the reporting month.
  Future means strictly after the reference day
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

import pandas as pd
from rapidfuzz import fuzz, process

from .attribution import (
    compute_group_total_cost,
    per_master_category_sums,
    pick_staff,
    pick_staff_for_sums,
)
from .classify import BUSINESS_TIMEZONE
from .data_models import MasterProfile, RecordGroup, StaffPick
from .enums import GroupType, MasterRole, PickMode
from .query import detect_rebook, groups_in_month, is_arrived, is_valid_month

LOG = logging.getLogger(__name__)

UNASSIGNED_ID = "unassigned"
UNASSIGNED_NAME = "Без майстра"

DEFAULT_FUZZY_THRESHOLD = 80

STATS_COLUMNS = [
    "master_id",
    "master_name",
    "role",
    "clients",
    "consult_booked",
    "consult_attended",
    "paid_attended",
    "rebooks_created",
    "rebook_rate_pct",
    "services_sum",
    "hair_sum",
    "goods_sum",
    "future_sum",
    "month_to_end_sum",
    "next_month_sum",
    "plus2_month_sum",
]

_COUNTER_COLUMNS = [
    column for column in STATS_COLUMNS[3:] if column != "rebook_rate_pct"
]


def normalize_name(name: Optional[str]) -> str:
    return (name or "").strip().lower()


def first_name_token(name: Optional[str]) -> str:
    """First whitespace-separated token of a normalized name."""
    tokens = normalize_name(name).split()
    return tokens[0] if tokens else ""


def roster_from_config(config: Optional[Dict[str, Any]]) -> List[MasterProfile]:
    """Build the master roster from the ``masters`` configuration section."""
    roster = []
    for entry in (config or {}).get("masters", []) or []:
        roster.append(
            MasterProfile(
                master_id=str(entry["id"]).strip(),
                name=str(entry["name"]).strip(),
                role=MasterRole.from_string(entry.get("role")).value,
                staff_id=entry.get("staff_id"),
            )
        )
    return roster


def map_staff_to_master(
    pick: Optional[StaffPick],
    roster: Iterable[MasterProfile],
    threshold: int = DEFAULT_FUZZY_THRESHOLD,
) -> str:
    """Map a staff pick onto a roster master id.

    Parameters
    ----------
    pick : StaffPick | None
        Staff member picked from a group.
    roster : Iterable[MasterProfile]
        Configured masters.
    threshold : int
        Minimum rapidfuzz score (0..100) for a fuzzy name match.

    Returns
    -------
    str
        Roster ``master_id``, or ``"unassigned"``.

    Notes
    -----
    Match order, first hit wins: staff id, full name (case-insensitive),
    first name token, fuzzy full-name match scored with
    ``fuzz.token_sort_ratio``.

    Examples
    --------
    >>> roster = [MasterProfile(master_id="m1", name="Олена Коваль")]
    >>> map_staff_to_master(StaffPick(staff_id=None, staff_name="Олена"), roster)
    'm1'
    """
    if pick is None:
        return UNASSIGNED_ID
    roster = list(roster)
    if not roster:
        return UNASSIGNED_ID

    if pick.staff_id is not None:
        for master in roster:
            if master.staff_id is not None and master.staff_id == pick.staff_id:
                return master.master_id

    full = normalize_name(pick.staff_name)
    if not full:
        return UNASSIGNED_ID
    for master in roster:
        if normalize_name(master.name) == full:
            return master.master_id

    first = first_name_token(pick.staff_name)
    for master in roster:
        if first_name_token(master.name) == first:
            return master.master_id

    _, score, index = process.extractOne(
        query=full,
        choices=[normalize_name(master.name) for master in roster],
        scorer=fuzz.token_sort_ratio,
    )
    if score >= threshold:
        LOG.debug(
            "Fuzzy matched staff %r to %r with score %.1f", full, roster[index].name, score
        )
        return roster[index].master_id
    return UNASSIGNED_ID


def _newest_group(groups: List[RecordGroup]) -> RecordGroup:
    def moment(group: RecordGroup) -> float:
        value = group.received_at or group.visit_at
        return value.timestamp() if value is not None else float("-inf")

    return max(groups, key=lambda g: (g.kyiv_day, moment(g)))


def kyiv_today() -> str:
    """Current day in the business timezone as YYYY-MM-DD."""
    return datetime.now(BUSINESS_TIMEZONE).strftime("%Y-%m-%d")


def shift_month(month: str, months: int) -> str:
    """Shift a YYYY-MM key by a number of months.

    Examples
    --------
    >>> shift_month("2026-12", 1)
    '2027-01'
    """
    return str(pd.Period(month, freq="M") + months)


def _add_forward_sums(
    row: Dict[str, Any], group: RecordGroup, today: str, total: int
) -> None:
    current_month = today[:7]
    group_month = group.kyiv_day[:7]
    if group.kyiv_day > today:
        row["future_sum"] += total
        if group_month == current_month:
            row["month_to_end_sum"] += total
    if group_month == shift_month(current_month, 1):
        row["next_month_sum"] += total
    if group_month == shift_month(current_month, 2):
        row["plus2_month_sum"] += total


def compute_masters_stats(
    groups_by_client: Mapping[int, List[RecordGroup]],
    month: str,
    roster: Iterable[MasterProfile],
    threshold: int = DEFAULT_FUZZY_THRESHOLD,
    today: Optional[str] = None,
) -> pd.DataFrame:
    """Roll one month of record groups up into per-master statistics.

    Parameters
    ----------
    groups_by_client : Mapping[int, List[RecordGroup]]
        Output of group_records_by_client_day.
    month : str
        Reporting month as YYYY-MM (Kyiv days).
    roster : Iterable[MasterProfile]
        Configured masters; each gets a row even without activity.
    threshold : int
        Fuzzy name match threshold for map_staff_to_master.
    today : str, optional
        Reference Kyiv day (YYYY-MM-DD) for the forward-looking sums;
        defaults to the current day.

    Returns
    -------
    pd.DataFrame
        One row per roster master in roster order, then the ``unassigned``
        row, with the columns listed in STATS_COLUMNS.

    Raises
    ------
    ValueError
        If ``month`` is not a YYYY-MM key.
    """
    if not is_valid_month(month):
        raise ValueError(f"month must be YYYY-MM, got {month!r}")
    if today is None:
        today = kyiv_today()

    roster = list(roster)
    rows: Dict[str, Dict[str, Any]] = {}
    for master in roster:
        rows[master.master_id] = _empty_row(master.master_id, master.name, master.role)
    rows[UNASSIGNED_ID] = _empty_row(UNASSIGNED_ID, UNASSIGNED_NAME, UNASSIGNED_ID)

    clients_by_master: Dict[str, Set[int]] = {master_id: set() for master_id in rows}

    def master_for(pick: Optional[StaffPick]) -> str:
        return map_staff_to_master(pick, roster, threshold)

    for client_id, groups in groups_by_client.items():
        for group in groups:
            if group.group_type is not GroupType.PAID or not group.kyiv_day:
                continue
            total = compute_group_total_cost(group)
            if total > 0:
                row = rows[master_for(pick_staff_for_sums(group))]
                _add_forward_sums(row, group, today, total)

        month_groups = groups_in_month(groups, month)
        if not month_groups:
            continue

        newest = _newest_group(month_groups)
        clients_by_master[master_for(pick_staff(newest, PickMode.LATEST))].add(client_id)

        for group in month_groups:
            row = rows[master_for(pick_staff(group, PickMode.FIRST))]
            if group.group_type is GroupType.CONSULTATION and group.visit_at is not None:
                row["consult_booked"] += 1
                if is_arrived(group):
                    row["consult_attended"] += 1
            if group.group_type is GroupType.PAID and is_arrived(group):
                row["paid_attended"] += 1
                for entry in per_master_category_sums(group):
                    by_name = StaffPick(staff_id=None, staff_name=entry.master_name)
                    target = rows[master_for(by_name)]
                    target["services_sum"] += entry.services_sum
                    target["hair_sum"] += entry.hair_sum
                    target["goods_sum"] += entry.goods_sum

        rebook = detect_rebook(groups, month)
        if rebook.has_rebook:
            rows[master_for(rebook.primary_staff)]["rebooks_created"] += 1

    for master_id, clients in clients_by_master.items():
        rows[master_id]["clients"] = len(clients)

    for row in rows.values():
        paid = row["paid_attended"]
        row["rebook_rate_pct"] = round(row["rebooks_created"] * 100 / paid, 1) if paid else 0.0

    df = pd.DataFrame(list(rows.values()), columns=STATS_COLUMNS)
    df[_COUNTER_COLUMNS] = df[_COUNTER_COLUMNS].astype("int64")
    df["rebook_rate_pct"] = df["rebook_rate_pct"].astype("float64")

    LOG.info(
        "Computed masters stats for %s (reference day %s): %d clients, %d masters",
        month,
        today,
        len(groups_by_client),
        len(roster),
    )
    return df


def _empty_row(master_id: str, name: str, role: str) -> Dict[str, Any]:
    row: Dict[str, Any] = {column: 0 for column in STATS_COLUMNS}
    row.update(master_id=master_id, master_name=name, role=role, rebook_rate_pct=0.0)
    return row
