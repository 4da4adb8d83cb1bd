from __future__ import annotations

import pytest

from allocation.seating import format_exam_number, number_seats
from core.errors import ValidationError
from models.exam import DEFAULT_EXAM_NUMBER_FORMAT


def test_seats_are_contiguous_in_given_order():
    seats = number_seats(["c", "a", "b"], fmt=DEFAULT_EXAM_NUMBER_FORMAT, exam_code="HK1", grade=12, group_ordinal=3)

    assert [s.exam_student_id for s in seats] == ["c", "a", "b"]
    assert [s.seat_number for s in seats] == [1, 2, 3]
    assert [s.exam_number for s in seats] == ["HK1-120301", "HK1-120302", "HK1-120303"]


def test_exam_number_is_stable_for_same_inputs():
    first = number_seats(["x", "y"], fmt=DEFAULT_EXAM_NUMBER_FORMAT, exam_code="HK1", grade=10, group_ordinal=1)
    again = number_seats(["x", "y"], fmt=DEFAULT_EXAM_NUMBER_FORMAT, exam_code="HK1", grade=10, group_ordinal=1)
    assert first == again


def test_custom_format():
    assert format_exam_number("{grade}{seat:03d}", exam_code="X", grade=11, group=0, seat=7) == "11007"


def test_bad_format_is_a_validation_error():
    with pytest.raises(ValidationError):
        format_exam_number("{room}", exam_code="X", grade=11, group=1, seat=1)


def test_empty_group_has_no_seats():
    assert number_seats([], fmt=DEFAULT_EXAM_NUMBER_FORMAT, exam_code="HK1", grade=12, group_ordinal=1) == []


def test_offset_moves_exam_numbers_but_not_seats():
    seats = number_seats(["p", "q"], fmt=DEFAULT_EXAM_NUMBER_FORMAT, exam_code="HK1", grade=12, group_ordinal=0, offset=2)

    assert [s.seat_number for s in seats] == [1, 2]
    assert [s.exam_number for s in seats] == ["HK1-120003", "HK1-120004"]
