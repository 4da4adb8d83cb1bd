from __future__ import annotations

from datetime import time

import pytest
from sqlalchemy import func, select

from core.errors import StateError
from models.invigilator_assignment import InvigilatorAssignment
from models.seat_assignment import SeatAssignment
from models.seating_group import SeatingGroup
from models.session_room_mapping import SessionRoomMapping
from services import exam_registry, group_partitioner, invigilator_assigner, seat_assigner, slot_mapper
from services.invigilator_assigner import RoleChoice


def snapshot(db) -> tuple:
    def count(model):
        return db.execute(select(func.count(model.id))).scalar_one()

    rooms = tuple(db.execute(select(SessionRoomMapping.room_id).order_by(SessionRoomMapping.id)).scalars().all())
    return (
        count(SeatingGroup),
        count(SessionRoomMapping),
        count(SeatAssignment),
        count(InvigilatorAssignment),
        rooms,
    )


@pytest.fixture()
def locked(db, partitioned_exam, make_rooms, make_teachers, make_session):
    exam, _ = partitioned_exam(students=40)
    rooms = make_rooms(4)
    teachers = make_teachers(4)
    session = make_session(exam)
    slot_mapper.map_session_rooms(db, session.id)
    invigilator_assigner.auto_assign_session(db, session.id)
    exam_registry.set_status(db, exam.id, "locked")
    mapping = slot_mapper.list_mappings(db, exam.id)[0][0]
    return exam, session, mapping, rooms, teachers


def test_every_mutation_is_refused(db, locked):
    exam, session, mapping, rooms, teachers = locked
    before = snapshot(db)

    attempts = [
        lambda: group_partitioner.partition_groups(db, exam.id, 12, 20),
        lambda: group_partitioner.register_students(db, exam.id, 12),
        lambda: slot_mapper.map_session_rooms(db, session.id),
        lambda: slot_mapper.map_exam_rooms(db, exam.id),
        lambda: slot_mapper.move_mapping(db, mapping.id, rooms[3].id),
        lambda: slot_mapper.reset_session_mappings(db, session.id),
        lambda: seat_assigner.assign_seats(db, mapping.id, regenerate=True),
        lambda: seat_assigner.reset_seats(db, mapping.id),
        lambda: invigilator_assigner.auto_assign_session(db, session.id),
        lambda: invigilator_assigner.auto_assign_exam(db, exam.id),
        lambda: invigilator_assigner.assign(db, mapping.id, [RoleChoice(teachers[0].id, "main")]),
        lambda: invigilator_assigner.remove_all(db, exam.id),
        lambda: exam_registry.add_session(
            db, exam.id, subject="Chemistry", grade=12, on_date=session.date, start_time=time(13, 0)
        ),
    ]
    for attempt in attempts:
        with pytest.raises(StateError):
            attempt()

    assert snapshot(db) == before


def test_unlocking_allows_changes_again(db, locked):
    exam, session, mapping, rooms, _ = locked

    exam_registry.set_status(db, exam.id, "published")
    assert slot_mapper.move_mapping(db, mapping.id, rooms[3].id).room_id == rooms[3].id


def test_archived_exam_stays_archived(db, locked):
    exam = locked[0]
    exam_registry.set_status(db, exam.id, "archived")

    with pytest.raises(StateError):
        exam_registry.set_status(db, exam.id, "draft")
    with pytest.raises(StateError):
        invigilator_assigner.remove_all(db, exam.id)
