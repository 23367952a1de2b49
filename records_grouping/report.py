"""Per-client grouped-record artifact.

Writes the groups rebuilt from the logs, together with the derived values the
admin table shows per visit, into a single JSON artifact:

- localized display day (Babel, ``report.locale``)
- primary master and the "four hands" pair, with the hands multiplier
- total cost and per-master sums
- the visit and record ids a persisted total is reconciled against. Callers
  holding a stored total pass it to summarize_group, which also audits the
  breakdown; the batch run has no stored totals and reports the main ids
- when the booking was created

Every derived value may be null; consumers render null as an empty cell.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from babel.dates import format_date

from .attribution import (
    audit_breakdown,
    compute_group_total_cost,
    count_distinct_staff,
    hands_for_staff_count,
    main_record_id,
    main_visit_id,
    per_master_sums,
    pick_staff,
    pick_staff_pair,
    resolve_breakdown_ids,
)
from .data_models import RecordGroup, as_plain_dict
from .enums import PickMode
from .query import pick_record_created_at

LOG = logging.getLogger(__name__)

DEFAULT_LOCALE = "uk"


def format_kyiv_day(kyiv_day: str, locale: str = DEFAULT_LOCALE) -> str:
    """Format a YYYY-MM-DD day key as a long, locale-aware date.

    Parameters
    ----------
    kyiv_day : str
        Day key from a RecordGroup.
    locale : str
        Babel locale identifier.

    Returns
    -------
    str
        Display date, or an empty string for an empty or invalid key.

    Examples
    --------
    >>> format_kyiv_day("2026-02-10", "en")
    'February 10, 2026'
    """
    if not kyiv_day:
        return ""
    try:
        day = date.fromisoformat(kyiv_day)
    except ValueError:
        return ""
    return format_date(day, format="long", locale=locale)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def summarize_group(
    group: RecordGroup,
    locale: str = DEFAULT_LOCALE,
    persisted_total: Optional[int] = None,
) -> Dict[str, Any]:
    """Derived view of one record group for the artifact.

    When ``persisted_total`` is given, ``breakdown_ids`` are reconciled
    against it and a ``breakdown_audit`` is added.
    """
    primary = pick_staff(group, PickMode.LATEST)
    pair = pick_staff_pair(group, PickMode.FIRST)
    summary = {
        "kyiv_day": group.kyiv_day,
        "kyiv_day_display": format_kyiv_day(group.kyiv_day, locale),
        "group_type": group.group_type.value,
        "visit_at": _isoformat(group.visit_at),
        "received_at": _isoformat(group.received_at),
        "attendance_status": group.attendance_status.value,
        "attendance": group.attendance,
        "primary_staff": as_plain_dict(primary) if primary else None,
        "staff_pair": [as_plain_dict(pick) for pick in pair],
        "hands": hands_for_staff_count(count_distinct_staff(group)),
        "services": [as_plain_dict(line) for line in group.services],
        "total_cost": compute_group_total_cost(group),
        "master_sums": [as_plain_dict(entry) for entry in per_master_sums(group)],
        "main_visit_id": main_visit_id(group),
        "main_record_id": main_record_id(group),
        "breakdown_ids": as_plain_dict(resolve_breakdown_ids(group, persisted_total)),
        "record_created_at": _isoformat(pick_record_created_at(group)),
        "events_count": len(group.events),
    }
    if persisted_total is not None:
        summary["breakdown_audit"] = as_plain_dict(audit_breakdown(group, persisted_total))
    return summary


def build_client_summaries(
    groups_by_client: Mapping[int, List[RecordGroup]],
    locale: str = DEFAULT_LOCALE,
) -> List[Dict[str, Any]]:
    """Summaries per client, in the order of ``groups_by_client``."""
    return [
        {
            "client_id": client_id,
            "groups": [summarize_group(group, locale) for group in groups],
        }
        for client_id, groups in groups_by_client.items()
    ]


def write_artifact(
    output_dir: Path,
    run_id: str,
    groups_by_client: Mapping[int, List[RecordGroup]],
    locale: str = DEFAULT_LOCALE,
) -> Path:
    """Write grouped records to a JSON artifact file.

    Parameters
    ----------
    output_dir : Path
        Artifact directory; created when missing.
    run_id : str
        Unique run identifier used in the file name.
    groups_by_client : Mapping[int, List[RecordGroup]]
        Output of group_records_by_client_day.
    locale : str
        Babel locale for display dates.

    Returns
    -------
    Path
        Path of ``grouped_records_<run_id>.json``.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    clients = build_client_summaries(groups_by_client, locale)
    payload = {
        "run_id": run_id,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "locale": locale,
        "total_clients": len(clients),
        "total_groups": sum(len(client["groups"]) for client in clients),
        "clients": clients,
    }

    artifact_path = output_dir / f"grouped_records_{run_id}.json"
    artifact_path.write_text(
        json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8"
    )
    LOG.info("Wrote grouped records artifact to %s", artifact_path)
    return artifact_path
