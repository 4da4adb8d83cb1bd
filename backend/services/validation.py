from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from allocation.conflicts import Booking, TimeWindow
from core.errors import NotFoundError, StateError, ValidationConflict
from models.exam import Exam
from models.exam_session import ExamSession
from models.invigilator_assignment import InvigilatorAssignment
from models.session_room_mapping import SessionRoomMapping


__all__ = [
    "ValidationConflict",
    "ensure_exam_mutable",
    "get_exam",
    "get_mapping",
    "get_session",
    "load_bookings",
]


def get_exam(db: Session, exam_id: Any) -> Exam:
    exam = db.get(Exam, exam_id)
    if exam is None:
        raise NotFoundError(f"Exam {exam_id} not found", code="EXAM_NOT_FOUND")
    return exam


def get_session(db: Session, session_id: Any) -> ExamSession:
    session = db.get(ExamSession, session_id)
    if session is None:
        raise NotFoundError(f"Exam session {session_id} not found", code="SESSION_NOT_FOUND")
    return session


def get_mapping(db: Session, mapping_id: Any) -> SessionRoomMapping:
    mapping = db.get(SessionRoomMapping, mapping_id)
    if mapping is None:
        raise NotFoundError(f"Room mapping {mapping_id} not found", code="MAPPING_NOT_FOUND")
    return mapping


def ensure_exam_mutable(exam: Exam) -> Exam:
    if exam.is_frozen:
        raise StateError(
            f"Exam {exam.code} is {exam.status}; its allocations can no longer change",
            conflicts=[
                ValidationConflict(
                    conflict_type="EXAM_LOCKED",
                    message=f"Exam status is {exam.status}",
                    metadata={"exam_id": str(exam.id), "status": str(exam.status)},
                )
            ],
        )
    return exam


def load_bookings(db: Session, on_date: date, *, session_ids: Iterable[Any] | None = None) -> list[Booking]:
    """Every room mapping held on ``on_date`` (any exam), with its invigilators.

    Reads the flushed state of the current transaction, so mappings written
    earlier in the same batch are included.
    """

    q = (
        select(
            SessionRoomMapping.id,
            SessionRoomMapping.session_id,
            SessionRoomMapping.room_id,
            ExamSession.date,
            ExamSession.start_time,
            ExamSession.end_time,
        )
        .join(ExamSession, ExamSession.id == SessionRoomMapping.session_id)
        .where(ExamSession.date == on_date)
    )
    if session_ids is not None:
        q = q.where(SessionRoomMapping.session_id.in_(list(session_ids)))
    rows = db.execute(q).all()
    if not rows:
        return []

    teachers_by_mapping: dict[Any, set[Any]] = defaultdict(set)
    mapping_ids = [r[0] for r in rows]
    for mapping_id, teacher_id in db.execute(
        select(InvigilatorAssignment.mapping_id, InvigilatorAssignment.teacher_id).where(
            InvigilatorAssignment.mapping_id.in_(mapping_ids)
        )
    ).all():
        teachers_by_mapping[mapping_id].add(teacher_id)

    return [
        Booking(
            mapping_id=mapping_id,
            session_id=session_id,
            room_id=room_id,
            window=TimeWindow(date=d, start=start, end=end),
            teacher_ids=frozenset(teachers_by_mapping.get(mapping_id, ())),
        )
        for mapping_id, session_id, room_id, d, start, end in rows
    ]
