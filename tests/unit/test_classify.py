"""Unit tests for classify module - Kyiv days, group types and staff names.

Tests cover:
- Timestamp parsing (offsets, UTC, naive wall-clock, epoch milliseconds)
- Kyiv day boundaries around midnight and DST
- Consultation detection and service splitting
- Administrator and unknown-master name heuristics

Real-world significance:
- Every group key depends on the Kyiv day; an off-by-one moves a visit
- Consultation and paid visits must never be merged
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from records_grouping import classify
from records_grouping.enums import GroupType
from tests.fixtures import sample_input


@pytest.mark.unit
class TestParseTimestamp:
    """Unit tests for parse_timestamp function."""

    def test_offset_string_converted_to_utc(self) -> None:
        """Verify ISO strings with offsets become aware UTC datetimes."""
        parsed = classify.parse_timestamp("2026-02-10T10:00:00+02:00")

        assert parsed == datetime(2026, 2, 10, 8, 0, tzinfo=timezone.utc)
        assert parsed.utcoffset().total_seconds() == 0

    def test_naive_string_is_kyiv_wall_clock(self) -> None:
        """Verify values without offset are read as salon local time.

        Real-world significance:
        - Booking datetimes are sometimes exported without an offset
        """
        parsed = classify.parse_timestamp("2026-07-01 10:00:00")

        # Kyiv is UTC+03:00 in summer
        assert parsed == datetime(2026, 7, 1, 7, 0, tzinfo=timezone.utc)

    def test_epoch_milliseconds(self) -> None:
        """Verify numeric values are epoch milliseconds."""
        parsed = classify.parse_timestamp(1770710400000)

        assert parsed == datetime(2026, 2, 10, 8, 0, tzinfo=timezone.utc)

    def test_aware_datetime_passthrough(self) -> None:
        """Verify aware datetimes are converted, not reparsed."""
        value = datetime(2026, 2, 10, 8, 0, tzinfo=timezone.utc)

        assert classify.parse_timestamp(value) == value

    @pytest.mark.parametrize("value", [None, "", "   ", "not a date", True, {"a": 1}])
    def test_invalid_values_return_none(self, value) -> None:
        """Verify invalid timestamps become None instead of raising.

        Real-world significance:
        - Noisy log entries must be tolerated, not rejected
        """
        assert classify.parse_timestamp(value) is None


@pytest.mark.unit
class TestDayKey:
    """Unit tests for day_key function."""

    def test_late_evening_utc_is_next_kyiv_day(self) -> None:
        """Verify UTC evening after 22:00 falls on the next Kyiv day.

        Real-world significance:
        - Server-local (UTC) day math would put these visits a day early
        """
        assert classify.day_key("2026-02-09T22:30:00Z") == "2026-02-10"
        assert classify.day_key("2026-02-09T21:59:00Z") == "2026-02-09"

    def test_summer_offset(self) -> None:
        """Verify the summer offset (UTC+03:00) is applied."""
        assert classify.day_key("2026-07-01T21:30:00Z") == "2026-07-02"

    def test_invalid_returns_empty(self) -> None:
        """Verify missing timestamps give an empty key."""
        assert classify.day_key(None) == ""
        assert classify.day_key("garbage") == ""


@pytest.mark.unit
class TestGroupTypeFor:
    """Unit tests for consultation detection."""

    def test_consultation_in_ukrainian(self) -> None:
        """Verify the Ukrainian consultation keyword is matched case-insensitively."""
        services = [sample_input.line("Консультація з нарощування")]

        assert classify.group_type_for(services) is GroupType.CONSULTATION

    def test_consultation_in_english(self) -> None:
        """Verify the English keyword is matched."""
        assert classify.group_type_for([{"title": "Online Consultation"}]) is (
            GroupType.CONSULTATION
        )

    def test_other_services_are_paid(self) -> None:
        """Verify non-consultation lines and empty lists are paid."""
        assert classify.group_type_for([sample_input.line("Корекція")]) is GroupType.PAID
        assert classify.group_type_for([]) is GroupType.PAID

    def test_split_services_preserves_order(self) -> None:
        """Verify mixed lists split into both types, keeping order."""
        consult = sample_input.line("Консультація")
        first = sample_input.line("Нарощування")
        second = sample_input.line("Корекція")

        split = classify.split_services_by_type([first, consult, second])

        assert split[GroupType.CONSULTATION] == [consult]
        assert split[GroupType.PAID] == [first, second]


@pytest.mark.unit
class TestStaffNameHeuristics:
    """Unit tests for administrator and placeholder detection."""

    @pytest.mark.parametrize(
        "name",
        ["Адміністратор Ірина", "admin", "Manager Olga", "Менеджер", "адм. Світлана"],
    )
    def test_admin_names(self, name: str) -> None:
        """Verify role keywords mark administrators."""
        assert classify.is_admin_staff_name(name) is True

    def test_master_names(self) -> None:
        """Verify ordinary names are not administrators."""
        assert classify.is_admin_staff_name("Олена Коваль") is False
        assert classify.is_admin_staff_name("") is False
        assert classify.is_admin_staff_name(None) is False

    def test_unknown_placeholders(self) -> None:
        """Verify placeholder names for unassigned bookings are detected."""
        assert classify.is_unknown_staff_name("Невідомий майстер") is True
        assert classify.is_unknown_staff_name("Unknown") is True
        assert classify.is_unknown_staff_name("Олена") is False
