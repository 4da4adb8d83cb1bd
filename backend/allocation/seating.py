from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from core.errors import ValidationError


@dataclass(frozen=True)
class Seat:
    exam_student_id: Any
    seat_number: int
    exam_number: str


def format_exam_number(fmt: str, *, exam_code: str, grade: int, group: int, seat: int) -> str:
    try:
        return fmt.format(exam_code=exam_code, grade=int(grade), group=int(group), seat=int(seat))
    except (KeyError, IndexError, ValueError) as exc:
        raise ValidationError(f"Invalid exam number format {fmt!r}: {exc}", code="INVALID_EXAM_NUMBER_FORMAT") from exc


def number_seats(
    ordered_student_ids: Sequence[Any],
    *,
    fmt: str,
    exam_code: str,
    grade: int,
    group_ordinal: int,
    offset: int = 0,
) -> list[Seat]:
    """Seats 1..N in the given order.

    The exam number only depends on the exam, the grade, the group and the seat,
    so regenerating seats for an unchanged group reproduces the same numbers.
    Rosters without a group share ordinal 0 within a session and are kept apart
    by ``offset``, which shifts the seat part of the exam number only.
    """

    if offset < 0:
        raise ValueError("offset must not be negative")
    seats: list[Seat] = []
    for index, exam_student_id in enumerate(ordered_student_ids, start=1):
        seats.append(
            Seat(
                exam_student_id=exam_student_id,
                seat_number=index,
                exam_number=format_exam_number(
                    fmt, exam_code=exam_code, grade=grade, group=group_ordinal, seat=offset + index
                ),
            )
        )
    return seats
