from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from allocation.conflicts import TimeWindow, busy_teachers, teacher_clashes
from allocation.invigilators import (
    ASSISTANT,
    MAIN,
    ROLES,
    InvigilationLedger,
    PlannedRole,
    RoomNeed,
    UnfilledRole,
    plan_session,
)
from core.errors import ConflictError, NotFoundError, ValidationConflict, ValidationError
from models.exam import Exam
from models.exam_session import ExamSession
from models.invigilator_assignment import InvigilatorAssignment
from models.session_room_mapping import SessionRoomMapping
from models.teacher import Teacher
from services.validation import ensure_exam_mutable, get_exam, get_mapping, get_session, load_bookings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleChoice:
    teacher_id: Any
    role: str


@dataclass
class InvigilationResult:
    session_id: Any
    status: str = "succeeded"  # succeeded | failed
    assigned: list[PlannedRole] = field(default_factory=list)
    unfilled: list[UnfilledRole] = field(default_factory=list)
    ledger: InvigilationLedger = field(default_factory=InvigilationLedger)
    code: str | None = None
    message: str | None = None
    conflicts: list[ValidationConflict] = field(default_factory=list)


def exam_ledger(db: Session, exam_id: Any) -> InvigilationLedger:
    rows = db.execute(
        select(InvigilatorAssignment.mapping_id, InvigilatorAssignment.teacher_id, InvigilatorAssignment.role)
        .join(SessionRoomMapping, SessionRoomMapping.id == InvigilatorAssignment.mapping_id)
        .where(SessionRoomMapping.exam_id == exam_id)
    ).all()
    return InvigilationLedger.from_assignments((m, t, str(r)) for m, t, r in rows)


def _lock_teachers(db: Session, teacher_ids: Iterable[Any]) -> dict[Any, Teacher]:
    ids = sorted(set(teacher_ids), key=str)
    if not ids:
        return {}
    rows = db.execute(select(Teacher).where(Teacher.id.in_(ids)).order_by(Teacher.id.asc()).with_for_update()).scalars().all()
    return {t.id: t for t in rows}


def _double_bookings(
    db: Session, session: ExamSession, teacher_ids: Iterable[Any], *, exclude_mapping_id: Any | None = None
) -> list[ValidationConflict]:
    window = TimeWindow.of(session)
    bookings = load_bookings(db, session.date)
    conflicts: list[ValidationConflict] = []
    for tid in teacher_ids:
        for clash in teacher_clashes(tid, window, bookings, exclude_mapping_id=exclude_mapping_id):
            conflicts.append(
                ValidationConflict(
                    conflict_type="TEACHER_DOUBLE_BOOKED",
                    message=f"Teacher already invigilates during {clash.window.label()}",
                    session_id=clash.session_id,
                    mapping_id=clash.mapping_id,
                    teacher_id=tid,
                )
            )
    return conflicts


def auto_assign_session(db: Session, session_id: Any, ledger: InvigilationLedger | None = None) -> InvigilationResult:
    session = get_session(db, session_id)
    exam = ensure_exam_mutable(get_exam(db, session.exam_id))
    if ledger is None:
        ledger = exam_ledger(db, exam.id)

    mappings = (
        db.execute(
            select(SessionRoomMapping)
            .where(SessionRoomMapping.session_id == session.id)
            .order_by(SessionRoomMapping.room_code.asc())
        )
        .scalars()
        .all()
    )
    if not mappings:
        return InvigilationResult(session_id=session.id, ledger=ledger)

    current: dict[Any, dict[str, Any]] = defaultdict(dict)
    for mapping_id, teacher_id, role in db.execute(
        select(InvigilatorAssignment.mapping_id, InvigilatorAssignment.teacher_id, InvigilatorAssignment.role).where(
            InvigilatorAssignment.mapping_id.in_([m.id for m in mappings])
        )
    ).all():
        current[mapping_id][str(role)] = teacher_id

    needs = [
        RoomNeed(
            mapping_id=m.id,
            label=m.room_code,
            main_id=current[m.id].get(MAIN),
            assistant_id=current[m.id].get(ASSISTANT),
        )
        for m in mappings
    ]

    window = TimeWindow.of(session)
    busy = busy_teachers(window, load_bookings(db, session.date))
    active = db.execute(select(Teacher.id).where(Teacher.is_active.is_(True)).order_by(Teacher.id.asc())).scalars().all()
    eligible = [tid for tid in active if tid not in busy]

    plan = plan_session(needs, eligible, ledger, per_room=int(exam.invigilators_per_room))

    chosen = [a.teacher_id for a in plan.assignments]
    locked = _lock_teachers(db, chosen)
    lost = [tid for tid in chosen if tid not in locked or not locked[tid].is_active]
    conflicts = [
        ValidationConflict(conflict_type="TEACHER_UNAVAILABLE", message="Teacher is no longer active", teacher_id=tid)
        for tid in lost
    ]
    conflicts.extend(_double_bookings(db, session, chosen))
    if conflicts:
        logger.warning("Invigilator assignment for session=%s lost a race on %d teachers", session.id, len(conflicts))
        raise ConflictError(
            "Teachers were booked elsewhere while planning; retry",
            code="TEACHER_DOUBLE_BOOKED",
            conflicts=conflicts,
        )

    db.add_all(InvigilatorAssignment(mapping_id=a.mapping_id, teacher_id=a.teacher_id, role=a.role) for a in plan.assignments)
    db.flush()

    for u in plan.unfilled:
        logger.warning("No eligible teacher for %s in room %s (session=%s)", u.role, u.label, session.id)
    logger.info(
        "Assigned %d invigilator roles for session=%s, %d left unfilled",
        len(plan.assignments),
        session.id,
        len(plan.unfilled),
    )
    return InvigilationResult(session_id=session.id, assigned=plan.assignments, unfilled=plan.unfilled, ledger=plan.ledger)


def auto_assign_exam(db: Session, exam_id: Any) -> list[InvigilationResult]:
    exam = ensure_exam_mutable(get_exam(db, exam_id))
    sessions = (
        db.execute(
            select(ExamSession.id)
            .where(ExamSession.exam_id == exam.id)
            .order_by(ExamSession.date.asc(), ExamSession.start_time.asc(), ExamSession.subject.asc())
        )
        .scalars()
        .all()
    )
    ledger = exam_ledger(db, exam.id)
    results: list[InvigilationResult] = []
    for session_id in sessions:
        try:
            result = auto_assign_session(db, session_id, ledger=ledger)
        except ConflictError as exc:
            # Nothing was written for this session; later sessions plan against the same ledger.
            results.append(
                InvigilationResult(
                    session_id=session_id,
                    status="failed",
                    ledger=ledger,
                    code=exc.code,
                    message=exc.message,
                    conflicts=exc.conflicts,
                )
            )
            continue
        ledger = result.ledger
        results.append(result)

    failed = sum(1 for r in results if r.status == "failed")
    logger.info("Exam-wide invigilation for exam=%s: %d sessions, %d failed", exam.code, len(results), failed)
    return results


def _check_roles(choices: list[RoleChoice], *, per_room: int) -> list[ValidationConflict]:
    conflicts: list[ValidationConflict] = []
    roles = Counter(c.role for c in choices)
    for role in roles:
        if role not in ROLES:
            conflicts.append(ValidationConflict(conflict_type="UNKNOWN_ROLE", message=f"Unknown role {role!r}"))
    for role, n in roles.items():
        if n > 1:
            conflicts.append(ValidationConflict(conflict_type="DUPLICATE_ROLE", message=f"Role {role} given {n} times"))
    if len(choices) > per_room:
        conflicts.append(
            ValidationConflict(
                conflict_type="TOO_MANY_INVIGILATORS",
                message=f"At most {per_room} invigilators per room",
                metadata={"given": len(choices), "allowed": per_room},
            )
        )
    if choices and roles.get(MAIN, 0) != 1:
        conflicts.append(ValidationConflict(conflict_type="MAIN_REQUIRED", message="Exactly one main invigilator is required"))
    for tid, n in Counter(c.teacher_id for c in choices).items():
        if n > 1:
            conflicts.append(
                ValidationConflict(conflict_type="DUPLICATE_TEACHER", message="Teacher given more than once", teacher_id=tid)
            )
    return conflicts


def assign(db: Session, mapping_id: Any, choices: Iterable[RoleChoice]) -> SessionRoomMapping:
    """Replace the invigilators of one mapping. An empty list clears them."""

    mapping = get_mapping(db, mapping_id)
    exam = ensure_exam_mutable(get_exam(db, mapping.exam_id))
    session = get_session(db, mapping.session_id)
    choices = list(choices)

    problems = _check_roles(choices, per_room=int(exam.invigilators_per_room))
    if problems:
        raise ValidationError("Invalid invigilator roles", code="INVALID_INVIGILATORS", conflicts=problems)

    teacher_ids = [c.teacher_id for c in choices]
    locked = _lock_teachers(db, teacher_ids)
    missing = [tid for tid in teacher_ids if tid not in locked]
    if missing:
        raise NotFoundError(
            "Teacher not found",
            code="TEACHER_NOT_FOUND",
            conflicts=[ValidationConflict(conflict_type="TEACHER_NOT_FOUND", message="Teacher not found", teacher_id=t) for t in missing],
        )
    inactive = [tid for tid in teacher_ids if not locked[tid].is_active]
    if inactive:
        raise ValidationError(
            "Inactive teachers cannot invigilate",
            code="TEACHER_INACTIVE",
            conflicts=[ValidationConflict(conflict_type="TEACHER_INACTIVE", message="Teacher is inactive", teacher_id=t) for t in inactive],
        )

    clashes = _double_bookings(db, session, teacher_ids, exclude_mapping_id=mapping.id)
    if clashes:
        raise ConflictError("Teacher already invigilates an overlapping session", code="TEACHER_DOUBLE_BOOKED", conflicts=clashes)

    db.execute(delete(InvigilatorAssignment).where(InvigilatorAssignment.mapping_id == mapping.id))
    db.add_all(InvigilatorAssignment(mapping_id=mapping.id, teacher_id=c.teacher_id, role=c.role) for c in choices)
    db.flush()
    logger.info("Set %d invigilators for room %s (mapping=%s)", len(choices), mapping.room_code, mapping.id)
    return mapping


def list_invigilators(db: Session, mapping_ids: Iterable[Any]) -> dict[Any, list[InvigilatorAssignment]]:
    ids = list(mapping_ids)
    out: dict[Any, list[InvigilatorAssignment]] = {mid: [] for mid in ids}
    if not ids:
        return out
    for row in db.execute(select(InvigilatorAssignment).where(InvigilatorAssignment.mapping_id.in_(ids))).scalars():
        out[row.mapping_id].append(row)
    for rows in out.values():
        rows.sort(key=lambda r: ROLES.index(str(r.role)))
    return out


def remove_all(db: Session, exam_id: Any) -> int:
    exam = ensure_exam_mutable(get_exam(db, exam_id))
    mapping_ids = select(SessionRoomMapping.id).where(SessionRoomMapping.exam_id == exam.id)
    cleared = list(
        db.execute(
            select(InvigilatorAssignment.mapping_id).where(InvigilatorAssignment.mapping_id.in_(mapping_ids)).distinct()
        )
        .scalars()
        .all()
    )
    if cleared:
        db.execute(delete(InvigilatorAssignment).where(InvigilatorAssignment.mapping_id.in_(cleared)))
        db.flush()
    logger.info("Removed invigilators from %d rooms of exam=%s", len(cleared), exam.code)
    return len(cleared)


def teacher_invigilations(db: Session, teacher_id: Any) -> list[dict[str, Any]]:
    """Every room a teacher invigilates, across exams, in timetable order."""

    if db.get(Teacher, teacher_id) is None:
        raise NotFoundError(f"Teacher {teacher_id} not found", code="TEACHER_NOT_FOUND")
    rows = db.execute(
        select(InvigilatorAssignment, SessionRoomMapping, ExamSession, Exam)
        .join(SessionRoomMapping, SessionRoomMapping.id == InvigilatorAssignment.mapping_id)
        .join(ExamSession, ExamSession.id == SessionRoomMapping.session_id)
        .join(Exam, Exam.id == ExamSession.exam_id)
        .where(InvigilatorAssignment.teacher_id == teacher_id)
        .order_by(ExamSession.date.asc(), ExamSession.start_time.asc(), SessionRoomMapping.room_code.asc())
    ).all()
    return [
        {
            "mapping_id": m.id,
            "exam_id": e.id,
            "exam_code": e.code,
            "session_id": s.id,
            "subject": s.subject,
            "grade": s.grade,
            "date": s.date,
            "start_time": s.start_time,
            "end_time": s.end_time,
            "room_code": m.room_code,
            "role": str(a.role),
        }
        for a, m, s, e in rows
    ]
