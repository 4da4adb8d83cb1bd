from __future__ import annotations

from datetime import time

import pytest

from allocation.conflicts import TimeWindow
from models.session_room_mapping import SessionRoomMapping
from services import room_pool
from services.room_pool import HeldRoom


@pytest.fixture()
def overlapping(db, make_exam, make_session):
    exam = make_exam(grades=(11, 12))
    morning = make_session(exam, grade=12, start=time(7, 0), end=time(9, 0))
    late_morning = make_session(exam, subject="Physics", grade=11, start=time(8, 0), end=time(10, 0))
    return exam, morning, late_morning


def test_reserve_accepts_a_free_room(db, make_rooms, overlapping):
    _, morning, _ = overlapping
    (room,) = make_rooms(1)

    reservation = room_pool.reserve(db, room, morning)

    assert reservation.ok
    assert reservation.conflict is None
    assert reservation.room.id == room.id


def test_reserve_sees_a_booking_made_after_listing(db, make_rooms, overlapping):
    exam, morning, late_morning = overlapping
    make_rooms(2)
    listed = room_pool.list_available(db, TimeWindow.of(morning))
    assert [r.code for r in listed] == ["R01", "R02"]

    # Another request takes R01 for an overlapping session in between.
    rival = SessionRoomMapping(
        exam_id=exam.id, session_id=late_morning.id, room_id=listed[0].id, room_code=listed[0].code, room_type="normal"
    )
    db.add(rival)
    db.flush()

    taken = room_pool.reserve(db, listed[0], morning)
    free = room_pool.reserve(db, listed[1], morning)

    assert not taken.ok
    assert taken.conflict.conflict_type == "ROOM_DOUBLE_BOOKED"
    assert taken.conflict.mapping_id == rival.id
    assert taken.conflict.metadata == {"clashing_session_ids": [str(late_morning.id)]}
    assert free.ok


def test_reserve_ignores_the_mapping_being_moved(db, make_rooms, overlapping):
    exam, morning, _ = overlapping
    (room,) = make_rooms(1)
    own = SessionRoomMapping(exam_id=exam.id, session_id=morning.id, room_id=room.id, room_code=room.code, room_type="normal")
    db.add(own)
    db.flush()

    assert not room_pool.reserve(db, room, morning).ok
    assert room_pool.reserve(db, room, morning, exclude_mapping_id=own.id).ok


def test_reserve_refuses_a_room_taken_out_of_service(db, make_rooms, overlapping):
    _, morning, _ = overlapping
    (room,) = make_rooms(1)
    assert room_pool.list_available(db, TimeWindow.of(morning)) == [room]

    room.status = "maintenance"
    db.flush()
    reservation = room_pool.reserve(db, room, morning)

    assert not reservation.ok
    assert reservation.conflict.conflict_type == "ROOM_UNAVAILABLE"
    assert reservation.conflict.room_id == room.id
    assert room_pool.list_available(db, TimeWindow.of(morning)) == []


def test_reserve_refuses_a_room_held_by_the_same_batch(db, make_rooms, overlapping):
    _, morning, late_morning = overlapping
    (room,) = make_rooms(1)
    held = [HeldRoom(room_id=room.id, window=TimeWindow.of(late_morning))]

    reservation = room_pool.reserve(db, room, morning, held=held)

    assert not reservation.ok
    assert reservation.conflict.conflict_type == "ROOM_USED_TWICE_IN_BATCH"
    assert reservation.conflict.session_id == morning.id


def test_held_rooms_only_clash_when_windows_overlap(db, make_rooms, make_session, overlapping):
    exam, morning, _ = overlapping
    (room,) = make_rooms(1)
    afternoon = make_session(exam, subject="History", grade=12, start=time(13, 0), end=time(15, 0))

    reservation = room_pool.reserve(db, room, afternoon, held=[HeldRoom(room_id=room.id, window=TimeWindow.of(morning))])

    assert reservation.ok
