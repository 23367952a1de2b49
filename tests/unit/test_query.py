"""Unit tests for query module - lookups over a client's record groups.

Tests cover:
- Closest-group matching (exact Kyiv day, 24-hour fallback)
- Record creation and same-day arrival timestamps
- Rebook detection for monthly statistics

Real-world significance:
- Persisted visit dates drift after reschedules; the lookup bridges them to
  the log-derived groups
- Rebooks are a KPI for masters and must be counted at most once per client
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from records_grouping import query
from records_grouping.data_models import StaffPick
from records_grouping.enums import GroupType
from records_grouping.grouping import group_records_by_client_day
from tests.fixtures import sample_input


def _paid(visit_at, received_at, **kwargs):
    return sample_input.make_event(
        visit_at=visit_at,
        received_at=received_at,
        services=[sample_input.line("Корекція", cost=1500)],
        **kwargs,
    )


@pytest.mark.unit
class TestPickClosestGroup:
    """Unit tests for pick_closest_group function."""

    @pytest.fixture
    def groups(self):
        events = [
            _paid("2026-02-01T10:00:00+02:00", "2026-02-01T10:00:00+02:00"),
            _paid("2026-02-10T23:30:00+02:00", "2026-02-10T23:30:00+02:00"),
            sample_input.make_event(
                visit_at="2026-02-10T10:00:00+02:00",
                services=[sample_input.line("Консультація")],
            ),
        ]
        return group_records_by_client_day(events)[42]

    def test_exact_day_match(self, groups) -> None:
        """Verify a group on the same Kyiv day is returned directly."""
        group = query.pick_closest_group(groups, "2026-02-01", GroupType.PAID)

        assert group.kyiv_day == "2026-02-01"

    def test_type_is_respected(self, groups) -> None:
        """Verify groups of the other type are never returned."""
        group = query.pick_closest_group(groups, "2026-02-10", "consultation")

        assert group.group_type is GroupType.CONSULTATION

    def test_fallback_within_24_hours(self, groups) -> None:
        """Verify the nearest group within 24 hours is accepted.

        Real-world significance:
        - A visit moved from late evening to the next morning still matches
        """
        group = query.pick_closest_group(groups, "2026-02-11T09:00:00+02:00", GroupType.PAID)

        assert group.kyiv_day == "2026-02-10"

    def test_fallback_beyond_24_hours_rejected(self, groups) -> None:
        """Verify groups more than 24 hours away do not match."""
        assert query.pick_closest_group(groups, "2026-02-05", GroupType.PAID) is None

    def test_invalid_target(self, groups) -> None:
        """Verify an unparseable target gives no match."""
        assert query.pick_closest_group(groups, "soon", GroupType.PAID) is None
        assert query.pick_closest_group([], "2026-02-10", GroupType.PAID) is None


@pytest.mark.unit
class TestTimelineHelpers:
    """Unit tests for pick_record_created_at and attended_event_received_at."""

    def test_record_created_at_is_earliest_create(self) -> None:
        """Verify the first create delivery is the creation time."""
        group = sample_input.make_group(
            [
                _paid("2026-02-10T10:00:00+02:00", "2026-02-03T12:00:00+02:00", status="create"),
                _paid("2026-02-10T10:00:00+02:00", "2026-02-01T09:00:00+02:00", status="Create"),
                _paid("2026-02-10T10:00:00+02:00", "2026-01-30T09:00:00+02:00", status="update"),
            ]
        )

        assert query.pick_record_created_at(group) == datetime(
            2026, 2, 1, 7, 0, tzinfo=timezone.utc
        )

    def test_record_created_at_missing(self) -> None:
        """Verify None without create events."""
        group = sample_input.make_group([_paid("2026-02-10T10:00:00+02:00", None)])

        assert query.pick_record_created_at(group) is None

    def test_attended_event_on_visit_day_only(self) -> None:
        """Verify arrival signals delivered on another day are ignored."""
        group = sample_input.make_group(
            [
                _paid("2026-02-10T10:00:00+02:00", "2026-02-11T09:00:00+02:00", attendance=1),
                _paid("2026-02-10T10:00:00+02:00", "2026-02-10T12:00:00+02:00", attendance=1),
            ]
        )

        assert query.attended_event_received_at(group) == datetime(
            2026, 2, 10, 10, 0, tzinfo=timezone.utc
        )

    def test_attended_event_missing(self) -> None:
        """Verify None when the arrival was only confirmed later."""
        group = sample_input.make_group(
            [_paid("2026-02-10T10:00:00+02:00", "2026-02-12T09:00:00+02:00", attendance=1)]
        )

        assert query.attended_event_received_at(group) is None


@pytest.mark.unit
class TestDetectRebook:
    """Unit tests for detect_rebook function."""

    def _groups(self, next_created_at="2026-02-10T13:00:00+02:00"):
        events = [
            _paid(
                "2026-02-10T10:00:00+02:00",
                "2026-02-10T11:00:00+02:00",
                attendance=1,
                staff_id=101,
                staff_name="Олена",
            ),
            _paid(
                "2026-03-15T10:00:00+02:00",
                next_created_at,
                status="create",
                staff_id=101,
                staff_name="Олена",
            ),
        ]
        return group_records_by_client_day(events)[42]

    def test_rebook_created_on_visit_day(self) -> None:
        """Verify a next visit booked during the visit counts as a rebook."""
        result = query.detect_rebook(self._groups(), "2026-02")

        assert result.has_rebook is True
        assert result.primary_staff.staff_name == "Олена"
        assert result.next_visit_at == datetime(2026, 3, 15, 8, 0, tzinfo=timezone.utc)

    def test_rebook_credited_to_master_on_the_day(self) -> None:
        """Verify the master present on the visit day gets the rebook.

        Real-world significance:
        - The booking is often created days ahead by another master; the
          rebook belongs to whoever worked with the client that day
        """
        events = [
            _paid(
                "2026-02-10T10:00:00+02:00",
                "2026-02-03T09:00:00+02:00",
                status="create",
                staff_id=101,
                staff_name="Олена",
            ),
            _paid(
                "2026-02-10T10:00:00+02:00",
                "2026-02-10T09:30:00+02:00",
                staff_id=301,
                staff_name="Адміністратор Ірина",
            ),
            _paid(
                "2026-02-10T10:00:00+02:00",
                "2026-02-10T11:00:00+02:00",
                attendance=1,
                staff_id=102,
                staff_name="Марія",
            ),
            _paid(
                "2026-03-15T10:00:00+02:00",
                "2026-02-10T13:00:00+02:00",
                status="create",
                staff_id=102,
                staff_name="Марія",
            ),
        ]
        groups = group_records_by_client_day(events)[42]

        result = query.detect_rebook(groups, "2026-02")

        assert result.has_rebook is True
        assert result.primary_staff == StaffPick(staff_id=102, staff_name="Марія")

    def test_no_master_on_the_day(self) -> None:
        """Verify pick_attended_day_staff ignores earlier deliveries."""
        [group] = group_records_by_client_day(
            [
                _paid(
                    "2026-02-10T10:00:00+02:00",
                    "2026-02-03T09:00:00+02:00",
                    status="create",
                    staff_name="Олена",
                ),
                _paid(
                    "2026-02-10T10:00:00+02:00",
                    "2026-02-10T11:00:00+02:00",
                    attendance=1,
                    staff_name="Невідомий майстер",
                ),
            ]
        )[42]

        assert query.pick_attended_day_staff(group) is None

    def test_booking_on_other_day_is_not_rebook(self) -> None:
        """Verify bookings created on a later day are not rebooks."""
        result = query.detect_rebook(self._groups("2026-02-12T13:00:00+02:00"), "2026-02")

        assert result.has_rebook is False
        assert result.primary_staff is None

    def test_other_month(self) -> None:
        """Verify only arrived visits in the requested month trigger a rebook."""
        assert query.detect_rebook(self._groups(), "2026-03").has_rebook is False

    def test_no_groups(self) -> None:
        """Verify an empty history has no rebook."""
        assert query.detect_rebook([], "2026-02").has_rebook is False


@pytest.mark.unit
class TestMonthHelpers:
    """Unit tests for month helpers."""

    @pytest.mark.parametrize(
        "value, expected",
        [("2026-02", True), ("2026-2", False), ("", False), (None, False), ("2026-02-01", False)],
    )
    def test_is_valid_month(self, value, expected) -> None:
        """Verify month keys are YYYY-MM."""
        assert query.is_valid_month(value) is expected
