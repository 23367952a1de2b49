"""Integration tests for the normalize -> group -> attribute flow.

Tests cover:
- Idempotence and input-order independence of grouping
- Consultation/paid split of mixed entries
- Attendance precedence and the cancelled/no-show boundary
- Cost rounding of the summed total

Real-world significance:
- Groups are recomputed on every request from logs that are read in
  arbitrary order; the admin table must never flicker between requests
"""

from __future__ import annotations

import json
import random
from typing import Any, List

import pytest

from records_grouping import attribution
from records_grouping.enums import AttendanceStatus, GroupType
from records_grouping.grouping import group_records_by_client_day
from records_grouping.normalize import normalize_log_items
from tests.fixtures import sample_input


def _run(raw_items: List[Any]):
    return group_records_by_client_day(normalize_log_items(raw_items))


@pytest.fixture
def mixed_raw_items() -> List[Any]:
    """Records and webhook entries for three clients, duplicates included."""
    hair = sample_input.service("Нарощування", cost=4800, service_id=1)
    consult = sample_input.service("Консультація", cost=0, service_id=2)
    goods = sample_input.service("Шампунь", cost=450, service_id=3, item_type="goods")
    return [
        sample_input.as_envelope(
            sample_input.records_entry(
                services=[hair, consult],
                staff_id=101,
                staff_name="Олена Коваль",
                status="create",
                received_at="2026-02-01T12:00:00+02:00",
                visit_id=9001,
                record_id=7001,
            )
        ),
        json.dumps(
            sample_input.webhook_entry(
                services=[hair, goods],
                staff_id=102,
                staff_name="Марія Шевченко",
                attendance=1,
                received_at="2026-02-10T12:00:00+02:00",
                visit_id=9001,
                record_id=7001,
            )
        ),
        json.dumps(
            sample_input.webhook_entry(
                services=[hair, goods],
                staff_id=102,
                staff_name="Марія Шевченко",
                attendance=1,
                received_at="2026-02-10T12:00:00+02:00",
                visit_id=9001,
                record_id=7001,
            )
        ),
        sample_input.as_envelope(
            sample_input.records_entry(
                client_id=7,
                visit_at="2026-02-12T15:00:00+02:00",
                received_at="2026-02-12T09:00:00+02:00",
                services=[sample_input.service("Корекція", cost=333.33, amount=3)],
                staff_name="Невідомий майстер",
                attendance=-1,
            )
        ),
        sample_input.as_envelope(
            sample_input.records_entry(
                client_id=8,
                visit_at="2026-02-14T10:00:00+02:00",
                received_at="2026-02-13T18:00:00+02:00",
                services=[consult],
                attendance=-1,
            )
        ),
        "not json at all",
        json.dumps(sample_input.webhook_entry(client_id=9, resource="client")),
    ]


@pytest.mark.integration
class TestDeterminism:
    """Integration tests for idempotence and order independence."""

    def test_idempotent(self, mixed_raw_items: List[Any]) -> None:
        """Verify two runs over the same entries produce identical groups."""
        assert _run(mixed_raw_items) == _run(mixed_raw_items)

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_order_independent(self, mixed_raw_items: List[Any], seed: int) -> None:
        """Verify shuffled input produces the same groups and attribution."""
        shuffled = list(mixed_raw_items)
        random.Random(seed).shuffle(shuffled)

        expected = _run(mixed_raw_items)
        actual = _run(shuffled)

        assert actual == expected
        for client_id, groups in expected.items():
            for before, after in zip(groups, actual[client_id]):
                assert attribution.pick_staff(before) == attribution.pick_staff(after)
                assert attribution.per_master_sums(before) == attribution.per_master_sums(after)

    def test_duplicates_differing_in_category(self) -> None:
        """Verify the kept duplicate does not depend on which line came first.

        Real-world significance:
        - Records and webhook snapshots of one booking may disagree on the
          category; hair and service sums must not swap between requests
        """

        def entry(category):
            return json.dumps(
                sample_input.records_entry(
                    services=[
                        sample_input.service(
                            "Корекція", cost=3000, service_id=5, category=category
                        )
                    ],
                    staff_id=101,
                    staff_name="Олена Коваль",
                    attendance=1,
                )
            )

        plain, hair = entry(None), entry("Накладки")

        forward = _run([plain, hair])
        backward = _run([hair, plain])

        assert forward == backward
        [group] = forward[42]
        assert attribution.per_master_category_sums(group) == attribution.per_master_category_sums(
            backward[42][0]
        )

    def test_unusable_entries_dropped(self, mixed_raw_items: List[Any]) -> None:
        """Verify garbage lines and non-record webhooks never form groups."""
        assert sorted(_run(mixed_raw_items)) == [7, 8, 42]


@pytest.mark.integration
class TestSplitInvariant:
    """Integration tests for the consultation/paid split."""

    def test_mixed_entry_yields_two_groups(self, mixed_raw_items: List[Any]) -> None:
        """Verify a consultation line never shares a group with paid lines."""
        groups = _run(mixed_raw_items)[42]

        assert sorted(g.group_type.value for g in groups) == ["consultation", "paid"]
        assert {g.kyiv_day for g in groups} == {"2026-02-10"}
        paid = next(g for g in groups if g.group_type is GroupType.PAID)
        assert [s.title for s in paid.services] == ["Нарощування", "Шампунь"]
        assert attribution.compute_group_total_cost(paid) == 5250


@pytest.mark.integration
class TestAttendanceFlow:
    """Integration tests for attendance resolved from raw entries."""

    def test_arrived_overrides_early_negative(self) -> None:
        """Verify a later arrival beats an earlier cancellation."""
        services = [sample_input.service("Корекція", cost=1000)]
        raw = [
            json.dumps(
                sample_input.records_entry(
                    services=services,
                    attendance=-1,
                    received_at="2026-02-09T18:00:00+02:00",
                )
            ),
            json.dumps(
                sample_input.records_entry(
                    services=services,
                    attendance=1,
                    received_at="2026-02-10T11:00:00+02:00",
                )
            ),
        ]

        [group] = _run(raw)[42]

        assert group.attendance_status is AttendanceStatus.ARRIVED
        assert group.attendance == 1

    def test_no_show_vs_cancelled(self, mixed_raw_items: List[Any]) -> None:
        """Verify the delivery day decides between no-show and cancelled."""
        groups = _run(mixed_raw_items)

        [same_day] = groups[7]
        [day_before] = groups[8]
        assert (same_day.attendance_status, same_day.attendance) == (
            AttendanceStatus.NO_SHOW,
            -1,
        )
        assert (day_before.attendance_status, day_before.attendance) == (
            AttendanceStatus.CANCELLED,
            -2,
        )

    def test_total_rounded_once(self, mixed_raw_items: List[Any]) -> None:
        """Verify 333.33 x 3 is billed as 1000."""
        [group] = _run(mixed_raw_items)[7]

        assert attribution.compute_group_total_cost(group) == 1000
        assert group.staff_names == []
