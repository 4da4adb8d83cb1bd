from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable


MAIN = "main"
ASSISTANT = "assistant"
ROLES = (MAIN, ASSISTANT)


def _pair(a: Any, b: Any) -> frozenset:
    return frozenset((a, b))


@dataclass
class InvigilationLedger:
    """Running fairness counters for one batch (one session or a whole exam).

    ``counts`` is how many roles each teacher holds so far; ``pairings`` is how
    often two teachers already shared a room. The ledger is a plain value: copy it
    to plan, keep the copy to commit.
    """

    counts: dict[Any, int] = field(default_factory=dict)
    pairings: dict[frozenset, int] = field(default_factory=dict)

    @classmethod
    def from_assignments(cls, rows: Iterable[tuple[Any, Any, str]]) -> "InvigilationLedger":
        """Build from existing ``(mapping_id, teacher_id, role)`` rows."""

        ledger = cls()
        by_mapping: dict[Any, dict[str, Any]] = {}
        for mapping_id, teacher_id, role in rows:
            ledger.record(teacher_id)
            by_mapping.setdefault(mapping_id, {})[str(role)] = teacher_id
        for roles in by_mapping.values():
            if MAIN in roles and ASSISTANT in roles:
                ledger.record_pair(roles[MAIN], roles[ASSISTANT])
        return ledger

    def copy(self) -> "InvigilationLedger":
        return InvigilationLedger(counts=dict(self.counts), pairings=dict(self.pairings))

    def count(self, teacher_id: Any) -> int:
        return self.counts.get(teacher_id, 0)

    def record(self, teacher_id: Any) -> None:
        self.counts[teacher_id] = self.count(teacher_id) + 1

    def pair_count(self, a: Any, b: Any) -> int:
        return self.pairings.get(_pair(a, b), 0)

    def record_pair(self, a: Any, b: Any) -> None:
        key = _pair(a, b)
        self.pairings[key] = self.pairings.get(key, 0) + 1

    def rank(self, teacher_ids: Iterable[Any], *, partner: Any | None = None) -> list[Any]:
        def key(tid: Any) -> tuple[int, int, str]:
            repeats = self.pair_count(partner, tid) if partner is not None else 0
            return (self.count(tid), repeats, str(tid))

        return sorted(teacher_ids, key=key)


@dataclass(frozen=True)
class RoomNeed:
    mapping_id: Any
    label: str
    main_id: Any | None = None
    assistant_id: Any | None = None


@dataclass(frozen=True)
class PlannedRole:
    mapping_id: Any
    teacher_id: Any
    role: str


@dataclass(frozen=True)
class UnfilledRole:
    mapping_id: Any
    label: str
    role: str
    reason: str = "NO_ELIGIBLE_TEACHER"


@dataclass
class SessionPlan:
    assignments: list[PlannedRole]
    unfilled: list[UnfilledRole]
    ledger: InvigilationLedger


def plan_session(
    rooms: list[RoomNeed],
    eligible: Iterable[Any],
    ledger: InvigilationLedger,
    *,
    per_room: int = 2,
) -> SessionPlan:
    """Fill missing roles for the rooms of one session.

    Every missing main is filled before any assistant, each time with the
    lowest-count eligible teacher. A teacher picked once is busy for the rest of the
    session. Roles that cannot be filled stay empty and are reported.
    """

    ledger = ledger.copy()
    pool = set(eligible)
    assignments: list[PlannedRole] = []
    unfilled: list[UnfilledRole] = []
    mains: dict[Any, Any] = {r.mapping_id: r.main_id for r in rooms}

    for room in rooms:
        if room.main_id is not None:
            continue
        ranked = ledger.rank(pool)
        if not ranked:
            unfilled.append(UnfilledRole(room.mapping_id, room.label, MAIN))
            continue
        chosen = ranked[0]
        pool.discard(chosen)
        ledger.record(chosen)
        mains[room.mapping_id] = chosen
        assignments.append(PlannedRole(room.mapping_id, chosen, MAIN))

    if per_room >= 2:
        for room in rooms:
            if room.assistant_id is not None:
                continue
            main_id = mains.get(room.mapping_id)
            ranked = ledger.rank(pool, partner=main_id)
            if not ranked:
                unfilled.append(UnfilledRole(room.mapping_id, room.label, ASSISTANT))
                continue
            chosen = ranked[0]
            pool.discard(chosen)
            ledger.record(chosen)
            if main_id is not None:
                ledger.record_pair(main_id, chosen)
            assignments.append(PlannedRole(room.mapping_id, chosen, ASSISTANT))

    return SessionPlan(assignments=assignments, unfilled=unfilled, ledger=ledger)
