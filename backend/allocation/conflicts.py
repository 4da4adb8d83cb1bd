"""Pure conflict predicates shared by room mapping and invigilator assignment.

Nothing in here touches the database; callers load the current bookings and pass
them in, then call these before any write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval ``[start, end)`` on one calendar date."""

    date: date
    start: time
    end: time

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError("TimeWindow end must be after start")

    @classmethod
    def of(cls, session: Any) -> "TimeWindow":
        return cls(date=session.date, start=session.start_time, end=session.end_time)

    def label(self) -> str:
        return f"{self.date.isoformat()} {self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')}"


@dataclass(frozen=True)
class Booking:
    """What one existing session room mapping occupies."""

    mapping_id: Any
    session_id: Any
    room_id: Any
    window: TimeWindow
    teacher_ids: frozenset = field(default_factory=frozenset)


def end_time_for(start: time, duration_minutes: int) -> time:
    end = datetime.combine(date.min, start) + timedelta(minutes=int(duration_minutes))
    if end.date() != date.min:
        raise ValueError("Session must end on the day it starts")
    return end.time()


def overlaps(a: TimeWindow, b: TimeWindow) -> bool:
    return a.date == b.date and a.start < b.end and b.start < a.end


def _clashing(window: TimeWindow, bookings: Iterable[Booking], exclude_mapping_id: Any | None) -> Iterable[Booking]:
    for booking in bookings:
        if exclude_mapping_id is not None and booking.mapping_id == exclude_mapping_id:
            continue
        if overlaps(window, booking.window):
            yield booking


def room_clashes(
    room_id: Any, window: TimeWindow, bookings: Iterable[Booking], *, exclude_mapping_id: Any | None = None
) -> list[Booking]:
    return [b for b in _clashing(window, bookings, exclude_mapping_id) if b.room_id == room_id]


def room_is_free(
    room_id: Any, window: TimeWindow, bookings: Iterable[Booking], *, exclude_mapping_id: Any | None = None
) -> bool:
    return not room_clashes(room_id, window, bookings, exclude_mapping_id=exclude_mapping_id)


def teacher_clashes(
    teacher_id: Any, window: TimeWindow, bookings: Iterable[Booking], *, exclude_mapping_id: Any | None = None
) -> list[Booking]:
    return [b for b in _clashing(window, bookings, exclude_mapping_id) if teacher_id in b.teacher_ids]


def teacher_is_free(
    teacher_id: Any, window: TimeWindow, bookings: Iterable[Booking], *, exclude_mapping_id: Any | None = None
) -> bool:
    return not teacher_clashes(teacher_id, window, bookings, exclude_mapping_id=exclude_mapping_id)


def busy_teachers(window: TimeWindow, bookings: Iterable[Booking]) -> set[Any]:
    busy: set[Any] = set()
    for booking in _clashing(window, bookings, None):
        busy.update(booking.teacher_ids)
    return busy
