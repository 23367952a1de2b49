"""Enumerations for the records grouping pipeline."""

from enum import Enum


class GroupType(Enum):
    """Service line category a record group belongs to.

    Consultations and paid services are never merged into one group, even
    when a single booking carries both kinds of service lines.
    """

    CONSULTATION = "consultation"
    PAID = "paid"

    @classmethod
    def from_string(cls, value: str | None) -> "GroupType":
        """Convert string to GroupType.

        Parameters
        ----------
        value : str | None
            Group type name ('consultation', 'paid'), or None for default.

        Returns
        -------
        GroupType
            Corresponding GroupType enum, defaults to PAID if value is None.

        Raises
        ------
        ValueError
            If value is not a valid group type.
        """
        if value is None:
            return cls.PAID

        value_lower = value.strip().lower()
        for group_type in cls:
            if group_type.value == value_lower:
                return group_type

        raise ValueError(
            f"Unknown group type: {value}. "
            f"Valid options: {', '.join(g.value for g in cls)}"
        )


class AttendanceStatus(Enum):
    """Resolved attendance of a record group.

    Each status has a numeric mirror used by the admin table:

    - ARRIVED: 1
    - NO_SHOW: -1 (negative signal received on or after the visit day)
    - CANCELLED: -2 (negative signal received before the visit day)
    - PENDING: 0, or None when no signal was ever received

    See Also
    --------
    records_grouping.attendance.resolve_attendance
    """

    ARRIVED = "arrived"
    NO_SHOW = "no-show"
    CANCELLED = "cancelled"
    PENDING = "pending"


class ServiceCategory(Enum):
    """Reporting bucket for a single service line."""

    SERVICES = "services"
    HAIR = "hair"
    GOODS = "goods"


class PickMode(Enum):
    """Which end of the time-ordered staff events to pick from."""

    FIRST = "first"
    LATEST = "latest"

    @classmethod
    def from_string(cls, value: str | None) -> "PickMode":
        """Convert string to PickMode.

        Parameters
        ----------
        value : str | None
            Mode name ('first', 'latest'), or None for default (LATEST).

        Returns
        -------
        PickMode
            Corresponding PickMode enum.

        Raises
        ------
        ValueError
            If value is not a valid mode.

        Examples
        --------
        >>> PickMode.from_string('FIRST')
        <PickMode.FIRST: 'first'>
        """
        if value is None:
            return cls.LATEST

        value_lower = value.strip().lower()
        for mode in cls:
            if mode.value == value_lower:
                return mode

        raise ValueError(
            f"Unknown pick mode: {value}. "
            f"Valid options: {', '.join(m.value for m in cls)}"
        )


class LogSource(Enum):
    """Raw log a normalized event was read from."""

    RECORDS = "records:log"
    WEBHOOK = "webhook:log"


class MasterRole(Enum):
    """Roles accepted in the master roster configuration."""

    MASTER = "master"
    ADMIN = "admin"
    DIRECT_MANAGER = "direct-manager"

    @classmethod
    def all_values(cls) -> set[str]:
        """Get set of all role names.

        Returns
        -------
        set[str]
            Set of role values (e.g., {'master', 'admin', 'direct-manager'}).
        """
        return {role.value for role in cls}

    @classmethod
    def from_string(cls, value: str | None) -> "MasterRole":
        """Convert string to MasterRole, defaulting to MASTER for None.

        Raises
        ------
        ValueError
            If value is not a valid role.
        """
        if value is None:
            return cls.MASTER

        value_lower = str(value).strip().lower()
        for role in cls:
            if role.value == value_lower:
                return role

        raise ValueError(
            f"Unknown master role: {value}. "
            f"Valid options: {', '.join(sorted(cls.all_values()))}"
        )
