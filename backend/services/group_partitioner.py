from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from allocation.partitioner import GroupSlot, plan_partition, student_sort_key
from core.errors import CapacityExceededWarning, ConflictError, NotFoundError, ValidationConflict, ValidationError
from models.exam_student import ExamStudent
from models.seating_group import SeatingGroup
from models.seating_group_member import SeatingGroupMember
from models.session_room_mapping import SessionRoomMapping
from models.student import Student
from services.validation import ensure_exam_mutable, get_exam


logger = logging.getLogger(__name__)


@dataclass
class PartitionResult:
    grade: int
    groups: list[SeatingGroup] = field(default_factory=list)
    warnings: list[CapacityExceededWarning] = field(default_factory=list)
    assigned: int = 0


def _require_grade(exam, grade: Any) -> int:
    try:
        grade = int(grade)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid grade {grade!r}", code="INVALID_GRADE")
    if grade not in {int(g) for g in (exam.grades or [])}:
        raise ValidationError(f"Grade {grade} is not part of exam {exam.code}", code="GRADE_NOT_IN_EXAM")
    return grade


def group_sizes(db: Session, group_ids: Iterable[Any]) -> dict[Any, int]:
    ids = list(group_ids)
    if not ids:
        return {}
    rows = db.execute(
        select(SeatingGroupMember.group_id, func.count(SeatingGroupMember.id))
        .where(SeatingGroupMember.group_id.in_(ids))
        .group_by(SeatingGroupMember.group_id)
    ).all()
    sizes = {gid: 0 for gid in ids}
    sizes.update({gid: int(n) for gid, n in rows})
    return sizes


def group_roster(db: Session, group_id: Any) -> list[Any]:
    """Exam-student ids of a group in seating order."""

    return list(
        db.execute(
            select(SeatingGroupMember.exam_student_id)
            .where(SeatingGroupMember.group_id == group_id)
            .order_by(SeatingGroupMember.position.asc())
        )
        .scalars()
        .all()
    )


def list_groups(db: Session, exam_id: Any, grade: int | None = None) -> list[SeatingGroup]:
    q = select(SeatingGroup).where(SeatingGroup.exam_id == exam_id)
    if grade is not None:
        q = q.where(SeatingGroup.grade == int(grade))
    return list(db.execute(q.order_by(SeatingGroup.grade.asc(), SeatingGroup.ordinal.asc())).scalars().all())


def register_students(db: Session, exam_id: Any, grade: Any, class_codes: Iterable[str] | None = None) -> int:
    """Register directory students of ``grade`` who are not yet registered for the exam."""

    exam = ensure_exam_mutable(get_exam(db, exam_id))
    grade = _require_grade(exam, grade)

    already = select(ExamStudent.student_id).where(ExamStudent.exam_id == exam.id)
    q = select(Student).where(Student.grade == grade, Student.id.not_in(already))
    codes = [c.strip() for c in (class_codes or []) if c and c.strip()]
    if codes:
        q = q.where(Student.class_code.in_(codes))

    created = 0
    for student in db.execute(q).scalars().all():
        db.add(ExamStudent(exam_id=exam.id, student_id=student.id, grade=grade, status="active"))
        created += 1
    db.flush()
    logger.info("Registered %d students for exam=%s grade=%s", created, exam.code, grade)
    return created


def partition_groups(
    db: Session,
    exam_id: Any,
    grade: Any,
    max_per_group: int,
    max_groups: int | None = None,
) -> PartitionResult:
    exam = ensure_exam_mutable(get_exam(db, exam_id))
    grade = _require_grade(exam, grade)

    existing_rows = list_groups(db, exam.id, grade)
    sizes = group_sizes(db, [g.id for g in existing_rows])
    by_id = {g.id: g for g in existing_rows}
    existing = [GroupSlot(g.ordinal, g.code, int(g.capacity), sizes.get(g.id, 0), g.id) for g in existing_rows]

    rows = db.execute(
        select(ExamStudent, Student)
        .join(Student, Student.id == ExamStudent.student_id)
        .where(
            ExamStudent.exam_id == exam.id,
            ExamStudent.grade == grade,
            ExamStudent.status == "active",
            ExamStudent.seating_group_id.is_(None),
        )
    ).all()
    rows.sort(key=lambda r: student_sort_key(r[1].class_code, r[1].full_name, r[1].code))
    eligible = [es for es, _student in rows]

    plan = plan_partition(
        grade=grade,
        students=eligible,
        existing=existing,
        max_per_group=max_per_group,
        max_groups=max_groups,
    )

    for slot in plan.groups:
        if slot.is_new:
            group = SeatingGroup(exam_id=exam.id, grade=grade, code=slot.code, ordinal=slot.ordinal, capacity=slot.capacity)
            db.add(group)
            db.flush()
            slot.group_id = group.id
            by_id[group.id] = group
        else:
            group = by_id[slot.group_id]
            if int(group.capacity) != slot.capacity:
                group.capacity = slot.capacity

        for offset, exam_student in enumerate(slot.added, start=1):
            db.add(SeatingGroupMember(group_id=group.id, exam_student_id=exam_student.id, position=slot.size + offset))
            exam_student.seating_group_id = group.id
    db.flush()

    for warning in plan.warnings:
        logger.warning("exam=%s %s", exam.code, warning.message)
    if plan.assigned:
        logger.info(
            "Partitioned %d students of exam=%s grade=%s into %d groups",
            plan.assigned,
            exam.code,
            grade,
            len(plan.groups),
        )

    return PartitionResult(
        grade=grade,
        groups=[by_id[s.group_id] for s in plan.groups],
        warnings=plan.warnings,
        assigned=plan.assigned,
    )


def partition_exam(db: Session, exam_id: Any, max_per_group: int, max_groups: int | None = None) -> list[PartitionResult]:
    exam = get_exam(db, exam_id)
    return [partition_groups(db, exam.id, g, max_per_group, max_groups) for g in sorted({int(g) for g in exam.grades or []})]


REGISTRATION_STATUSES = ("active", "absent", "excluded")


def list_registrations(
    db: Session, exam_id: Any, grade: int | None = None, status: str | None = None
) -> list[tuple[ExamStudent, Student]]:
    """Registrations of the exam with their directory rows, in seating order."""

    exam = get_exam(db, exam_id)
    q = select(ExamStudent, Student).join(Student, Student.id == ExamStudent.student_id).where(ExamStudent.exam_id == exam.id)
    if grade is not None:
        q = q.where(ExamStudent.grade == int(grade))
    if status is not None:
        q = q.where(ExamStudent.status == status)
    rows = [(es, s) for es, s in db.execute(q).all()]
    rows.sort(key=lambda r: (int(r[0].grade), student_sort_key(r[1].class_code, r[1].full_name, r[1].code)))
    return rows


def _ungrouped_registration(db: Session, exam_id: Any, exam_student_id: Any) -> tuple[Any, ExamStudent]:
    exam = ensure_exam_mutable(get_exam(db, exam_id))
    registration = db.get(ExamStudent, exam_student_id)
    if registration is None or registration.exam_id != exam.id:
        raise NotFoundError(f"Student registration {exam_student_id} not found", code="EXAM_STUDENT_NOT_FOUND")
    if registration.seating_group_id is not None:
        # Groups are fixed once formed; a grouped student keeps their place.
        raise ConflictError(
            "Student already belongs to a seating group",
            code="STUDENT_ALREADY_GROUPED",
            conflicts=[
                ValidationConflict(
                    conflict_type="STUDENT_ALREADY_GROUPED",
                    message="Only students without a seating group can change registration",
                    seating_group_id=registration.seating_group_id,
                    exam_student_id=registration.id,
                )
            ],
        )
    rostered = [
        m.id
        for m in db.execute(
            select(SessionRoomMapping).where(
                SessionRoomMapping.exam_id == exam.id,
                SessionRoomMapping.seating_group_id.is_(None),
            )
        ).scalars()
        if str(registration.id) in {str(x) for x in (m.roster or [])}
    ]
    if rostered:
        raise ConflictError(
            "Student is listed in a room roster",
            code="STUDENT_ALREADY_SEATED",
            conflicts=[
                ValidationConflict(
                    conflict_type="STUDENT_ALREADY_SEATED",
                    message="Remove the roster room before changing this registration",
                    mapping_id=mid,
                    exam_student_id=registration.id,
                )
                for mid in rostered
            ],
        )
    return exam, registration


def set_registration_status(db: Session, exam_id: Any, exam_student_id: Any, status: str) -> ExamStudent:
    """Mark an ungrouped registration active, absent or excluded."""

    status = (status or "").strip().lower()
    if status not in REGISTRATION_STATUSES:
        raise ValidationError(f"Unknown registration status {status!r}", code="INVALID_STATUS")
    exam, registration = _ungrouped_registration(db, exam_id, exam_student_id)
    previous = str(registration.status)
    registration.status = status
    db.flush()
    if previous != status:
        logger.info("exam=%s registration %s status %s -> %s", exam.code, registration.id, previous, status)
    return registration


def withdraw_student(db: Session, exam_id: Any, exam_student_id: Any) -> None:
    exam, registration = _ungrouped_registration(db, exam_id, exam_student_id)
    db.delete(registration)
    db.flush()
    logger.info("exam=%s withdrew registration %s", exam.code, registration.id)
