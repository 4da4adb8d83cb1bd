from __future__ import annotations

import logging
from datetime import date, time
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from allocation.conflicts import TimeWindow, end_time_for, overlaps
from core.config import settings
from core.errors import ConflictError, StateError, ValidationConflict, ValidationError
from models.exam import DEFAULT_EXAM_NUMBER_FORMAT, Exam
from models.exam_session import ExamSession
from services.validation import ensure_exam_mutable, get_exam


logger = logging.getLogger(__name__)


EXAM_STATUSES = ("draft", "published", "locked", "archived")


def _clean_grades(grades: Iterable[Any]) -> list[int]:
    try:
        cleaned = sorted({int(g) for g in grades})
    except (TypeError, ValueError):
        raise ValidationError("Grades must be integers", code="INVALID_GRADES")
    if not cleaned or any(g <= 0 for g in cleaned):
        raise ValidationError("An exam needs at least one positive grade", code="INVALID_GRADES")
    return cleaned


def create_exam(
    db: Session,
    *,
    code: str,
    name: str,
    grades: Iterable[Any],
    max_students_per_room: int | None = None,
    invigilators_per_room: int | None = None,
    exam_number_format: str | None = None,
) -> Exam:
    code = (code or "").strip()
    name = (name or "").strip()
    if not code:
        raise ValidationError("Exam code is required", code="INVALID_CODE")
    if not name:
        raise ValidationError("Exam name is required", code="INVALID_NAME")
    if db.execute(select(Exam.id).where(Exam.code == code).limit(1)).first() is not None:
        raise ConflictError(f"Exam code {code} already exists", code="EXAM_CODE_ALREADY_EXISTS")

    per_room = settings.default_max_students_per_room if max_students_per_room is None else int(max_students_per_room)
    invigilators = settings.default_invigilators_per_room if invigilators_per_room is None else int(invigilators_per_room)
    if per_room < 1:
        raise ValidationError("max_students_per_room must be positive", code="INVALID_MAX_STUDENTS_PER_ROOM")
    if invigilators not in (1, 2):
        raise ValidationError("invigilators_per_room must be 1 or 2", code="INVALID_INVIGILATORS_PER_ROOM")

    exam = Exam(
        code=code,
        name=name,
        grades=_clean_grades(grades),
        status="draft",
        max_students_per_room=per_room,
        invigilators_per_room=invigilators,
        exam_number_format=exam_number_format or DEFAULT_EXAM_NUMBER_FORMAT,
    )
    db.add(exam)
    db.flush()
    logger.info("Created exam %s (grades=%s)", exam.code, exam.grades)
    return exam


def set_status(db: Session, exam_id: Any, status: str) -> Exam:
    exam = get_exam(db, exam_id)
    status = (status or "").strip().lower()
    if status not in EXAM_STATUSES:
        raise ValidationError(f"Unknown exam status {status!r}", code="INVALID_STATUS")
    if str(exam.status) == "archived" and status != "archived":
        raise StateError(f"Exam {exam.code} is archived", code="EXAM_ARCHIVED")
    previous = str(exam.status)
    exam.status = status
    db.flush()
    if previous != status:
        logger.info("Exam %s status %s -> %s", exam.code, previous, status)
    return exam


def add_session(
    db: Session,
    exam_id: Any,
    *,
    subject: str,
    grade: int,
    on_date: date,
    start_time: time,
    end_time: time | None = None,
    duration_minutes: int | None = None,
) -> ExamSession:
    exam = ensure_exam_mutable(get_exam(db, exam_id))
    subject = (subject or "").strip()
    if not subject:
        raise ValidationError("Subject is required", code="INVALID_SUBJECT")
    if int(grade) not in {int(g) for g in exam.grades or []}:
        raise ValidationError(f"Grade {grade} is not part of exam {exam.code}", code="GRADE_NOT_IN_EXAM")

    if end_time is None:
        minutes = 90 if duration_minutes is None else int(duration_minutes)
        if minutes <= 0:
            raise ValidationError("duration_minutes must be positive", code="INVALID_DURATION")
        try:
            end_time = end_time_for(start_time, minutes)
        except ValueError as exc:
            raise ValidationError(str(exc), code="INVALID_TIME_RANGE") from exc
    elif end_time <= start_time:
        raise ValidationError("end_time must be after start_time", code="INVALID_TIME_RANGE")

    if duration_minutes is None:
        duration_minutes = (end_time.hour * 60 + end_time.minute) - (start_time.hour * 60 + start_time.minute)
    if int(duration_minutes) <= 0:
        raise ValidationError("duration_minutes must be positive", code="INVALID_DURATION")

    window = TimeWindow(date=on_date, start=start_time, end=end_time)
    clashes = [
        s
        for s in db.execute(
            select(ExamSession).where(
                ExamSession.exam_id == exam.id,
                ExamSession.grade == int(grade),
                ExamSession.date == on_date,
            )
        )
        .scalars()
        .all()
        if overlaps(window, TimeWindow.of(s))
    ]
    if clashes:
        # The same students would have to sit two papers at once.
        raise ConflictError(
            f"Grade {grade} already sits another paper during {window.label()}",
            code="SCHEDULE_CONFLICT",
            conflicts=[
                ValidationConflict(
                    conflict_type="SCHEDULE_CONFLICT",
                    message=f"Overlaps {s.subject} {TimeWindow.of(s).label()}",
                    session_id=s.id,
                )
                for s in clashes
            ],
        )

    session = ExamSession(
        exam_id=exam.id,
        subject=subject,
        grade=int(grade),
        date=on_date,
        start_time=start_time,
        end_time=end_time,
        duration_minutes=int(duration_minutes),
    )
    db.add(session)
    db.flush()
    logger.info("Added session %s grade %s on %s %s-%s to exam %s", subject, grade, on_date, start_time, end_time, exam.code)
    return session


def list_sessions(db: Session, exam_id: Any) -> list[ExamSession]:
    exam = get_exam(db, exam_id)
    return list(
        db.execute(
            select(ExamSession)
            .where(ExamSession.exam_id == exam.id)
            .order_by(ExamSession.date.asc(), ExamSession.start_time.asc(), ExamSession.subject.asc())
        )
        .scalars()
        .all()
    )
