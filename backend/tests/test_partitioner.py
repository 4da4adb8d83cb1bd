from __future__ import annotations

import pytest

from allocation.partitioner import GroupSlot, group_code, plan_partition, student_sort_key
from core.errors import CapacityExceededWarning, ValidationError


def sizes(plan):
    return [g.size + len(g.added) for g in plan.groups]


def test_101_students_in_groups_of_20():
    plan = plan_partition(grade=12, students=list(range(101)), max_per_group=20)

    assert sizes(plan) == [20, 20, 20, 20, 20, 1]
    assert [g.code for g in plan.groups] == ["12-1", "12-2", "12-3", "12-4", "12-5", "12-6"]
    assert plan.warnings == []
    assert plan.assigned == 101
    # Input order is kept.
    assert plan.groups[0].added == list(range(20))
    assert plan.groups[5].added == [100]


def test_max_groups_widens_groups_with_warning():
    plan = plan_partition(grade=12, students=list(range(101)), max_per_group=20, max_groups=4)

    assert sizes(plan) == [26, 26, 26, 23]
    assert len(plan.warnings) == 1
    warning = plan.warnings[0]
    assert isinstance(warning, CapacityExceededWarning)
    assert warning.requested_per_group == 20
    assert warning.effective_per_group == 26
    assert warning.group_count == 4
    assert warning.to_dict()["code"] == "CAPACITY_EXCEEDED"


def test_max_groups_not_reached_gives_no_warning():
    plan = plan_partition(grade=10, students=list(range(40)), max_per_group=20, max_groups=3)
    assert sizes(plan) == [20, 20]
    assert plan.warnings == []


def test_existing_groups_are_filled_before_new_ones():
    existing = [GroupSlot(ordinal=1, code="12-1", capacity=20, size=18, group_id="g1")]
    plan = plan_partition(grade=12, students=["a", "b", "c", "d", "e"], existing=existing, max_per_group=20)

    assert [g.code for g in plan.groups] == ["12-1", "12-2"]
    assert plan.groups[0].added == ["a", "b"]
    assert plan.groups[1].added == ["c", "d", "e"]
    assert plan.groups[1].is_new and not plan.groups[0].is_new
    # The caller's slots are not modified.
    assert existing[0].added == []


def test_full_existing_groups_widen_when_no_new_group_allowed():
    existing = [
        GroupSlot(ordinal=1, code="12-1", capacity=20, size=20, group_id="g1"),
        GroupSlot(ordinal=2, code="12-2", capacity=20, size=20, group_id="g2"),
    ]
    plan = plan_partition(grade=12, students=[1, 2, 3, 4], existing=existing, max_per_group=20, max_groups=2)

    assert [g.capacity for g in plan.groups] == [22, 22]
    assert [g.added for g in plan.groups] == [[1, 2], [3, 4]]
    assert plan.warnings[0].effective_per_group == 22


def test_no_students_changes_nothing():
    existing = [GroupSlot(ordinal=1, code="12-1", capacity=20, size=7, group_id="g1")]
    plan = plan_partition(grade=12, students=[], existing=existing, max_per_group=20)

    assert len(plan.groups) == 1
    assert plan.assigned == 0
    assert plan.warnings == []


@pytest.mark.parametrize("max_per_group, max_groups", [(0, None), (-3, None), (20, 0)])
def test_rejects_non_positive_limits(max_per_group, max_groups):
    with pytest.raises(ValidationError):
        plan_partition(grade=12, students=[1], max_per_group=max_per_group, max_groups=max_groups)


def test_sort_key_orders_by_class_then_name():
    rows = [("12A2", "An", "S3"), ("12A1", "Binh", "S2"), ("12A1", "an", "S1")]
    assert sorted(rows, key=lambda r: student_sort_key(*r)) == [
        ("12A1", "an", "S1"),
        ("12A1", "Binh", "S2"),
        ("12A2", "An", "S3"),
    ]
    assert group_code(11, 4) == "11-4"
