from __future__ import annotations

from allocation.invigilators import ASSISTANT, MAIN, InvigilationLedger, RoomNeed, plan_session


def rooms(n: int) -> list[RoomNeed]:
    return [RoomNeed(mapping_id=f"m{i}", label=f"R{i:02d}") for i in range(1, n + 1)]


def test_three_rooms_four_teachers():
    ledger = InvigilationLedger()
    plan = plan_session(rooms(3), ["t4", "t2", "t3", "t1"], ledger, per_room=2)

    mains = [(a.mapping_id, a.teacher_id) for a in plan.assignments if a.role == MAIN]
    assistants = [(a.mapping_id, a.teacher_id) for a in plan.assignments if a.role == ASSISTANT]
    assert mains == [("m1", "t1"), ("m2", "t2"), ("m3", "t3")]
    assert assistants == [("m1", "t4")]
    assert [(u.mapping_id, u.role) for u in plan.unfilled] == [("m2", ASSISTANT), ("m3", ASSISTANT)]
    assert [plan.ledger.count(t) for t in ("t1", "t2", "t3", "t4")] == [1, 1, 1, 1]
    assert plan.ledger.pair_count("t1", "t4") == 1
    # The caller's ledger is left alone.
    assert ledger.counts == {}


def test_lower_counts_win():
    ledger = InvigilationLedger(counts={"t1": 3, "t2": 1})
    plan = plan_session(rooms(1), ["t1", "t2", "t3"], ledger, per_room=2)

    assert [(a.teacher_id, a.role) for a in plan.assignments] == [("t3", MAIN), ("t2", ASSISTANT)]


def test_repeat_pairings_are_avoided():
    ledger = InvigilationLedger(counts={"t1": 1, "t2": 1, "t3": 1})
    ledger.record_pair("t1", "t2")
    need = [RoomNeed(mapping_id="m1", label="R01", main_id="t1")]

    plan = plan_session(need, ["t2", "t3"], ledger, per_room=2)

    assert [(a.teacher_id, a.role) for a in plan.assignments] == [("t3", ASSISTANT)]


def test_single_invigilator_rooms_get_no_assistant():
    plan = plan_session(rooms(2), ["t1", "t2", "t3"], InvigilationLedger(), per_room=1)

    assert [a.role for a in plan.assignments] == [MAIN, MAIN]
    assert plan.unfilled == []


def test_no_teachers_leaves_every_role_unfilled():
    plan = plan_session(rooms(2), [], InvigilationLedger(), per_room=2)

    assert plan.assignments == []
    assert len(plan.unfilled) == 4


def test_ledger_from_existing_assignments():
    ledger = InvigilationLedger.from_assignments(
        [("m1", "t1", MAIN), ("m1", "t2", ASSISTANT), ("m2", "t1", MAIN)]
    )
    assert ledger.count("t1") == 2
    assert ledger.count("t2") == 1
    assert ledger.pair_count("t2", "t1") == 1
    assert ledger.rank(["t1", "t2", "t3"]) == ["t3", "t2", "t1"]
