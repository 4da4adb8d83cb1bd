from __future__ import annotations

from dataclasses import dataclass, field
from math import ceil
from typing import Any, Sequence

from core.errors import CapacityExceededWarning, ValidationError


def group_code(grade: int, ordinal: int) -> str:
    return f"{grade}-{ordinal}"


def student_sort_key(class_code: str | None, full_name: str | None, code: str | None) -> tuple[str, str, str]:
    # Class first, then name; the student code only breaks exact ties.
    return ((class_code or "").casefold(), (full_name or "").casefold(), code or "")


@dataclass
class GroupSlot:
    ordinal: int
    code: str
    capacity: int
    size: int = 0
    group_id: Any | None = None
    added: list[Any] = field(default_factory=list)

    @property
    def is_new(self) -> bool:
        return self.group_id is None

    @property
    def free(self) -> int:
        return max(self.capacity - self.size - len(self.added), 0)


@dataclass
class PartitionPlan:
    groups: list[GroupSlot]
    warnings: list[CapacityExceededWarning] = field(default_factory=list)

    @property
    def assigned(self) -> int:
        return sum(len(g.added) for g in self.groups)


def plan_partition(
    *,
    grade: int,
    students: Sequence[Any],
    existing: Sequence[GroupSlot] = (),
    max_per_group: int,
    max_groups: int | None = None,
) -> PartitionPlan:
    """Plan how ``students`` (already in seating order) join seating groups.

    Existing groups are filled up to their capacity first, in ordinal order; the
    rest go into new groups of ``max_per_group``. When ``max_groups`` caps the
    number of groups, the per-group size grows instead and a
    ``CapacityExceededWarning`` is attached to the plan. Existing members are never
    moved.
    """

    if max_per_group is None or int(max_per_group) <= 0:
        raise ValidationError("max_per_group must be a positive integer", code="INVALID_MAX_PER_GROUP")
    if max_groups is not None and int(max_groups) <= 0:
        raise ValidationError("max_groups must be a positive integer", code="INVALID_MAX_GROUPS")

    groups = sorted((GroupSlot(g.ordinal, g.code, g.capacity, g.size, g.group_id) for g in existing), key=lambda g: g.ordinal)
    plan = PartitionPlan(groups=groups)
    pending = list(students)
    if not pending:
        return plan

    widened = False
    overflow = len(pending) - sum(g.free for g in groups)
    if overflow > 0:
        new_count = ceil(overflow / max_per_group)
        per_group = max_per_group
        if max_groups is not None and len(groups) + new_count > max_groups:
            widened = True
            new_count = max(max_groups - len(groups), 0)
            if new_count > 0:
                per_group = ceil(overflow / new_count)
            else:
                extra = ceil(overflow / len(groups))
                for g in groups:
                    g.capacity += extra

        next_ordinal = max((g.ordinal for g in groups), default=0) + 1
        for i in range(new_count):
            ordinal = next_ordinal + i
            groups.append(GroupSlot(ordinal=ordinal, code=group_code(grade, ordinal), capacity=per_group))

    cursor = 0
    for g in groups:
        take = min(g.free, len(pending) - cursor)
        if take <= 0:
            continue
        g.added.extend(pending[cursor : cursor + take])
        cursor += take

    # ceil() can leave the last new group without anyone in it.
    plan.groups = [g for g in groups if not (g.is_new and not g.added)]
    if widened:
        plan.warnings.append(
            CapacityExceededWarning(
                grade=grade,
                requested_per_group=max_per_group,
                effective_per_group=max(g.capacity for g in plan.groups),
                group_count=len(plan.groups),
            )
        )
    return plan
