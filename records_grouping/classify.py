"""Day and type classification for booking events.

Every day boundary in the pipeline is computed in the salon's business
timezone (Europe/Kyiv), never in the server's local zone. The timezone and the
consultation keyword pattern are fixed constants: changing either moves events
between groups.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

import pandas as pd

from .data_models import ServiceLine
from .enums import GroupType

BUSINESS_TIMEZONE = ZoneInfo("Europe/Kyiv")

CONSULTATION_PATTERN = re.compile(r"консультаці|consultation", re.IGNORECASE)

# Substrings marking front-desk staff rather than masters.
ADMIN_NAME_KEYWORDS = ("адм", "administrator", "admin", "менеджер", "manager")

# Substrings of the placeholder names used when no master was assigned.
UNKNOWN_STAFF_MARKERS = ("невідом", "unknown")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamp from the booking logs into an aware UTC datetime.

    Accepts datetime objects, ISO 8601 strings (with or without offset) and
    epoch milliseconds. Values without an offset are salon wall-clock times
    and are localized to the business timezone.

    Parameters
    ----------
    value : Any
        Raw timestamp value.

    Returns
    -------
    datetime | None
        Timezone-aware UTC datetime, or None when the value is empty or
        cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc)

    try:
        if isinstance(value, (int, float)):
            parsed = pd.to_datetime(value, unit="ms", errors="coerce", utc=True)
        elif isinstance(value, (str, datetime)):
            if isinstance(value, str) and not value.strip():
                return None
            parsed = pd.to_datetime(value, errors="coerce")
        else:
            return None
    except (ValueError, TypeError, OverflowError):
        return None

    if parsed is None or pd.isna(parsed):
        return None

    if parsed.tzinfo is None:
        parsed = parsed.tz_localize(
            BUSINESS_TIMEZONE, ambiguous=True, nonexistent="shift_forward"
        )
    return parsed.tz_convert(timezone.utc).to_pydatetime()


def day_key(value: Any) -> str:
    """Return the Kyiv calendar day of a timestamp as YYYY-MM-DD.

    Parameters
    ----------
    value : Any
        Timestamp accepted by parse_timestamp.

    Returns
    -------
    str
        Day key, or an empty string when the timestamp is missing or
        invalid. Events with an empty day key cannot be grouped.

    Examples
    --------
    >>> day_key("2026-02-09T22:30:00Z")
    '2026-02-10'
    """
    parsed = parse_timestamp(value)
    if parsed is None:
        return ""
    return parsed.astimezone(BUSINESS_TIMEZONE).strftime("%Y-%m-%d")


def service_title(service: Any) -> str:
    """Return the display title of a raw service mapping or ServiceLine."""
    if isinstance(service, ServiceLine):
        return service.title
    if isinstance(service, dict):
        return str(service.get("title") or service.get("name") or "").strip()
    return ""


def is_consultation_title(title: str) -> bool:
    """Check whether a service title names a consultation."""
    return bool(CONSULTATION_PATTERN.search(title or ""))


def is_consultation_services(services: Iterable[Any]) -> bool:
    """Check whether any service line is a consultation."""
    return any(is_consultation_title(service_title(s)) for s in services)


def group_type_for(services: Iterable[Any]) -> GroupType:
    """Classify a list of service lines into a group type.

    A list is a consultation as soon as one line matches the consultation
    pattern; everything else, including an empty list, is paid.
    """
    if is_consultation_services(services):
        return GroupType.CONSULTATION
    return GroupType.PAID


def split_services_by_type(services: Iterable[Any]) -> Dict[GroupType, List[Any]]:
    """Split service lines into consultation and paid lines, preserving order."""
    split: Dict[GroupType, List[Any]] = {
        GroupType.CONSULTATION: [],
        GroupType.PAID: [],
    }
    for service in services:
        if is_consultation_title(service_title(service)):
            split[GroupType.CONSULTATION].append(service)
        else:
            split[GroupType.PAID].append(service)
    return split


def is_admin_staff_name(name: Optional[str]) -> bool:
    """Check whether a staff name belongs to an administrator or manager.

    Examples
    --------
    >>> is_admin_staff_name("Адміністратор Ірина")
    True
    >>> is_admin_staff_name("Олена")
    False
    """
    lowered = (name or "").strip().lower()
    if not lowered:
        return False
    return any(keyword in lowered for keyword in ADMIN_NAME_KEYWORDS)


def is_unknown_staff_name(name: Optional[str]) -> bool:
    """Check whether a staff name is an "unknown master" placeholder."""
    lowered = (name or "").strip().lower()
    return any(marker in lowered for marker in UNKNOWN_STAFF_MARKERS)
