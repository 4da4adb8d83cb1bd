from __future__ import annotations

from datetime import date, time

import pytest

from allocation.conflicts import (
    Booking,
    TimeWindow,
    busy_teachers,
    end_time_for,
    overlaps,
    room_is_free,
    teacher_is_free,
)


DAY = date(2026, 12, 14)


def w(start: str, end: str, day: date = DAY) -> TimeWindow:
    sh, sm = map(int, start.split(":"))
    eh, em = map(int, end.split(":"))
    return TimeWindow(date=day, start=time(sh, sm), end=time(eh, em))


def test_overlap_is_half_open():
    assert overlaps(w("07:00", "09:00"), w("08:00", "10:00"))
    assert overlaps(w("08:00", "10:00"), w("07:00", "09:00"))
    assert not overlaps(w("07:00", "09:00"), w("09:00", "10:00"))
    assert overlaps(w("07:00", "11:00"), w("08:00", "09:00"))


def test_overlap_requires_same_date():
    assert not overlaps(w("07:00", "09:00"), w("07:00", "09:00", date(2026, 12, 15)))


def test_window_rejects_empty_range():
    with pytest.raises(ValueError):
        w("09:00", "09:00")


def test_end_time_for():
    assert end_time_for(time(7, 30), 90) == time(9, 0)
    with pytest.raises(ValueError):
        end_time_for(time(23, 0), 120)


def test_room_is_free_ignores_excluded_mapping():
    bookings = [Booking(mapping_id="m1", session_id="s1", room_id="r1", window=w("07:00", "09:00"))]
    assert not room_is_free("r1", w("08:00", "10:00"), bookings)
    assert room_is_free("r2", w("08:00", "10:00"), bookings)
    assert room_is_free("r1", w("09:00", "10:00"), bookings)
    assert room_is_free("r1", w("08:00", "10:00"), bookings, exclude_mapping_id="m1")


def test_teacher_is_free_and_busy_teachers():
    bookings = [
        Booking("m1", "s1", "r1", w("07:00", "09:00"), frozenset({"t1", "t2"})),
        Booking("m2", "s2", "r2", w("13:00", "15:00"), frozenset({"t3"})),
    ]
    assert not teacher_is_free("t1", w("08:30", "10:00"), bookings)
    assert teacher_is_free("t3", w("08:30", "10:00"), bookings)
    assert busy_teachers(w("08:00", "14:00"), bookings) == {"t1", "t2", "t3"}
    assert busy_teachers(w("09:00", "13:00"), bookings) == set()
