from __future__ import annotations

import uuid
from collections import Counter
from datetime import date, time

import pytest
from sqlalchemy import select

from core.errors import ConflictError, NotFoundError, ValidationError
from models.invigilator_assignment import InvigilatorAssignment
from models.session_room_mapping import SessionRoomMapping
from services import group_partitioner, invigilator_assigner, slot_mapper
from services.invigilator_assigner import RoleChoice


def roles_by_room(db, session_id) -> dict[str, dict[str, object]]:
    rows = db.execute(
        select(SessionRoomMapping.room_code, InvigilatorAssignment.role, InvigilatorAssignment.teacher_id)
        .join(InvigilatorAssignment, InvigilatorAssignment.mapping_id == SessionRoomMapping.id)
        .where(SessionRoomMapping.session_id == session_id)
    ).all()
    out: dict[str, dict[str, object]] = {}
    for room_code, role, teacher_id in rows:
        out.setdefault(room_code, {})[str(role)] = teacher_id
    return out


def mapped_session(db, exam, make_session, **session_kwargs):
    session = make_session(exam, **session_kwargs)
    slot_mapper.map_session_rooms(db, session.id)
    return session


def test_three_rooms_four_teachers(db, partitioned_exam, make_rooms, make_teachers, make_session):
    exam, _ = partitioned_exam(students=60)
    make_rooms(3)
    t1, t2, t3, t4 = make_teachers(4)
    session = mapped_session(db, exam, make_session)

    result = invigilator_assigner.auto_assign_session(db, session.id)

    assert roles_by_room(db, session.id) == {
        "R01": {"main": t1.id, "assistant": t4.id},
        "R02": {"main": t2.id},
        "R03": {"main": t3.id},
    }
    assert [(u.label, u.role) for u in result.unfilled] == [("R02", "assistant"), ("R03", "assistant")]
    assert [result.ledger.count(t.id) for t in (t1, t2, t3, t4)] == [1, 1, 1, 1]


def test_no_teacher_in_two_overlapping_sessions(db, make_exam, make_students, make_rooms, make_teachers, make_session):
    make_rooms(4)
    teachers = make_teachers(8)

    first = make_exam("HK1", grades=(12,))
    make_students(12, 60)
    group_partitioner.register_students(db, first.id, 12)
    group_partitioner.partition_groups(db, first.id, 12, 20)
    morning = mapped_session(db, first, make_session, start=time(7, 0), end=time(9, 0))

    second = make_exam("HK2", grades=(11,))
    make_students(11, 20)
    group_partitioner.register_students(db, second.id, 11)
    group_partitioner.partition_groups(db, second.id, 11, 20)
    overlapping = mapped_session(db, second, make_session, grade=11, start=time(8, 0), end=time(10, 0))

    invigilator_assigner.auto_assign_session(db, morning.id)
    invigilator_assigner.auto_assign_session(db, overlapping.id)

    busy_morning = {t for roles in roles_by_room(db, morning.id).values() for t in roles.values()}
    busy_overlap = {t for roles in roles_by_room(db, overlapping.id).values() for t in roles.values()}
    assert len(busy_morning) == 6
    assert busy_overlap == {teachers[6].id, teachers[7].id}


def test_exam_wide_assignment_balances_load(db, partitioned_exam, make_rooms, make_teachers, make_session):
    exam, _ = partitioned_exam(students=60)
    make_rooms(3)
    make_teachers(6)
    day_one = mapped_session(db, exam, make_session, subject="Math")
    day_two = mapped_session(db, exam, make_session, subject="Physics", on_date=date(2026, 12, 15))

    results = invigilator_assigner.auto_assign_exam(db, exam.id)

    assert [r.session_id for r in results] == [day_one.id, day_two.id]
    assert all(not r.unfilled for r in results)
    load = Counter(
        db.execute(select(InvigilatorAssignment.teacher_id)).scalars().all()
    )
    assert sorted(load.values()) == [2, 2, 2, 2, 2, 2]
    # Room R01 keeps its main but gets a different assistant the second day.
    assert roles_by_room(db, day_one.id)["R01"]["assistant"] != roles_by_room(db, day_two.id)["R01"]["assistant"]


def test_auto_assign_fills_only_missing_roles(db, partitioned_exam, make_rooms, make_teachers, make_session):
    exam, _ = partitioned_exam(students=20)
    make_rooms(1)
    t1, t2, t3 = make_teachers(3)
    session = mapped_session(db, exam, make_session)
    (mapping,) = slot_mapper.list_mappings(db, exam.id)[0]
    invigilator_assigner.assign(db, mapping.id, [RoleChoice(teacher_id=t3.id, role="main")])

    result = invigilator_assigner.auto_assign_session(db, session.id)

    assert [(a.teacher_id, a.role) for a in result.assigned] == [(t1.id, "assistant")]
    assert roles_by_room(db, session.id)["R01"] == {"main": t3.id, "assistant": t1.id}


def test_manual_assign_rejects_overlapping_teacher(db, partitioned_exam, make_rooms, make_teachers, make_session):
    exam, _ = partitioned_exam(students=40)
    make_rooms(4)
    t1, t2, t3 = make_teachers(3)
    morning = mapped_session(db, exam, make_session, start=time(7, 0), end=time(9, 0))
    mappings, _ = slot_mapper.list_mappings(db, exam.id)
    invigilator_assigner.assign(db, mappings[0].id, [RoleChoice(t1.id, "main"), RoleChoice(t2.id, "assistant")])

    # Same session, another room: t1 is already invigilating.
    with pytest.raises(ConflictError) as exc:
        invigilator_assigner.assign(db, mappings[1].id, [RoleChoice(t1.id, "main")])
    assert exc.value.conflicts[0].conflict_type == "TEACHER_DOUBLE_BOOKED"

    # Replacing the invigilators of the same mapping is allowed.
    invigilator_assigner.assign(db, mappings[0].id, [RoleChoice(t2.id, "main"), RoleChoice(t3.id, "assistant")])
    assert roles_by_room(db, morning.id)["R01"] == {"main": t2.id, "assistant": t3.id}


@pytest.mark.parametrize(
    "roles, code",
    [
        (["main", "main"], "DUPLICATE_ROLE"),
        (["assistant"], "MAIN_REQUIRED"),
        (["main", "assistant", "assistant"], "TOO_MANY_INVIGILATORS"),
    ],
)
def test_manual_assign_validates_roles(db, partitioned_exam, make_rooms, make_teachers, make_session, roles, code):
    exam, _ = partitioned_exam(students=20)
    make_rooms(1)
    teachers = make_teachers(3)
    mapped_session(db, exam, make_session)
    (mapping,) = slot_mapper.list_mappings(db, exam.id)[0]

    with pytest.raises(ValidationError) as exc:
        invigilator_assigner.assign(db, mapping.id, [RoleChoice(t.id, r) for t, r in zip(teachers, roles)])
    assert code in {c.conflict_type for c in exc.value.conflicts}


def test_inactive_teachers_are_never_picked(db, partitioned_exam, make_rooms, make_teachers, make_session):
    exam, _ = partitioned_exam(students=20)
    make_rooms(1)
    t1, t2, t3 = make_teachers(3)
    t1.is_active = False
    db.flush()
    session = mapped_session(db, exam, make_session)

    invigilator_assigner.auto_assign_session(db, session.id)

    assert roles_by_room(db, session.id)["R01"] == {"main": t2.id, "assistant": t3.id}


def test_remove_all_counts_cleared_rooms(db, partitioned_exam, make_rooms, make_teachers, make_session):
    exam, _ = partitioned_exam(students=60)
    make_rooms(3)
    make_teachers(4)
    session = mapped_session(db, exam, make_session)
    invigilator_assigner.auto_assign_session(db, session.id)

    assert invigilator_assigner.remove_all(db, exam.id) == 3
    assert roles_by_room(db, session.id) == {}
    assert invigilator_assigner.remove_all(db, exam.id) == 0


def test_exam_wide_assignment_records_a_failed_session(db, partitioned_exam, make_rooms, make_teachers, make_session, monkeypatch):
    exam, _ = partitioned_exam(students=20)
    make_rooms(1)
    make_teachers(4)
    day_one = mapped_session(db, exam, make_session, subject="Math")
    day_two = mapped_session(db, exam, make_session, subject="Physics", on_date=date(2026, 12, 15))

    original = invigilator_assigner.auto_assign_session

    def lose_race_on_day_one(db, session_id, ledger=None):
        if session_id == day_one.id:
            raise ConflictError("Teachers were booked elsewhere while planning; retry", code="TEACHER_DOUBLE_BOOKED")
        return original(db, session_id, ledger=ledger)

    monkeypatch.setattr(invigilator_assigner, "auto_assign_session", lose_race_on_day_one)
    results = invigilator_assigner.auto_assign_exam(db, exam.id)

    assert [(r.session_id, r.status) for r in results] == [(day_one.id, "failed"), (day_two.id, "succeeded")]
    assert results[0].code == "TEACHER_DOUBLE_BOOKED"
    assert results[0].assigned == []
    assert roles_by_room(db, day_one.id) == {}
    assert set(roles_by_room(db, day_two.id)["R01"]) == {"main", "assistant"}


def test_teacher_invigilations_follow_the_timetable(db, partitioned_exam, make_rooms, make_teachers, make_session):
    exam, _ = partitioned_exam(students=20)
    make_rooms(1)
    t1, t2 = make_teachers(2)
    later = mapped_session(db, exam, make_session, subject="Physics", on_date=date(2026, 12, 15))
    earlier = mapped_session(db, exam, make_session, subject="Math")
    for session in (later, earlier):
        invigilator_assigner.auto_assign_session(db, session.id)

    rows = invigilator_assigner.teacher_invigilations(db, t1.id)

    assert [(r["session_id"], r["subject"], r["room_code"], r["exam_code"]) for r in rows] == [
        (earlier.id, "Math", "R01", "HK1"),
        (later.id, "Physics", "R01", "HK1"),
    ]
    assert {r["role"] for r in invigilator_assigner.teacher_invigilations(db, t2.id)} <= {"main", "assistant"}


def test_teacher_invigilations_need_a_known_teacher(db):
    with pytest.raises(NotFoundError):
        invigilator_assigner.teacher_invigilations(db, uuid.uuid4())
