from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps import PageParams, commit_or_conflict, get_page_params
from api.routes.mappings import conflicts_out, mappings_out
from api.routes.sessions import invigilation_out
from core.database import get_db
from core.errors import ValidationError
from models.student import Student
from schemas.common import Paginated
from schemas.exam import (
    ExamCreate,
    ExamOut,
    ExamSessionCreate,
    ExamSessionOut,
    ExamStatusUpdate,
    ExamStudentOut,
    ExamStudentStatusUpdate,
    RegisterStudentsRequest,
    RegisterStudentsResponse,
    WithdrawStudentResponse,
)
from schemas.invigilator import ExamInvigilationOut, RemoveInvigilatorsResponse
from schemas.mapping import MapExamRequest, MapExamResponse, MappingOut, SessionOutcomeOut
from schemas.seating import GradePartitionOut, PartitionRequest, PartitionResponse, SeatingGroupOut
from services import exam_registry, group_partitioner, invigilator_assigner, slot_mapper
from services.group_partitioner import PartitionResult
from services.validation import get_exam


router = APIRouter()


def _groups_out(db: Session, groups) -> list[SeatingGroupOut]:
    sizes = group_partitioner.group_sizes(db, [g.id for g in groups])
    return [
        SeatingGroupOut(
            id=g.id,
            exam_id=g.exam_id,
            grade=g.grade,
            code=g.code,
            ordinal=g.ordinal,
            capacity=g.capacity,
            size=sizes.get(g.id, 0),
        )
        for g in groups
    ]


def _partition_out(db: Session, result: PartitionResult) -> GradePartitionOut:
    return GradePartitionOut(
        grade=result.grade,
        assigned=result.assigned,
        groups=_groups_out(db, result.groups),
        warnings=[w.to_dict() for w in result.warnings],
    )


@router.post("/", response_model=ExamOut)
def create_exam(
    payload: ExamCreate,
    db: Session = Depends(get_db),
) -> ExamOut:
    exam = exam_registry.create_exam(db, **payload.model_dump())
    commit_or_conflict(db, code="EXAM_CODE_ALREADY_EXISTS")
    db.refresh(exam)
    return exam


@router.get("/{exam_id}", response_model=ExamOut)
def read_exam(
    exam_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> ExamOut:
    return get_exam(db, exam_id)


@router.patch("/{exam_id}/status", response_model=ExamOut)
def update_exam_status(
    exam_id: uuid.UUID,
    payload: ExamStatusUpdate,
    db: Session = Depends(get_db),
) -> ExamOut:
    exam = exam_registry.set_status(db, exam_id, payload.status)
    commit_or_conflict(db)
    db.refresh(exam)
    return exam


@router.get("/{exam_id}/sessions", response_model=list[ExamSessionOut])
def list_sessions(
    exam_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> list[ExamSessionOut]:
    return exam_registry.list_sessions(db, exam_id)


@router.post("/{exam_id}/sessions", response_model=ExamSessionOut)
def add_session(
    exam_id: uuid.UUID,
    payload: ExamSessionCreate,
    db: Session = Depends(get_db),
) -> ExamSessionOut:
    session = exam_registry.add_session(
        db,
        exam_id,
        subject=payload.subject,
        grade=payload.grade,
        on_date=payload.date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        duration_minutes=payload.duration_minutes,
    )
    commit_or_conflict(db)
    db.refresh(session)
    return session


@router.post("/{exam_id}/students", response_model=RegisterStudentsResponse)
def register_students(
    exam_id: uuid.UUID,
    payload: RegisterStudentsRequest,
    db: Session = Depends(get_db),
) -> RegisterStudentsResponse:
    registered = group_partitioner.register_students(db, exam_id, payload.grade, payload.class_codes)
    commit_or_conflict(db, code="STUDENT_ALREADY_REGISTERED")
    return RegisterStudentsResponse(grade=payload.grade, registered=registered)


def _student_out(registration, student) -> ExamStudentOut:
    return ExamStudentOut(
        id=registration.id,
        student_id=student.id,
        student_code=student.code,
        full_name=student.full_name,
        class_code=student.class_code,
        grade=registration.grade,
        status=registration.status,
        seating_group_id=registration.seating_group_id,
    )


@router.get("/{exam_id}/students", response_model=list[ExamStudentOut])
def list_students(
    exam_id: uuid.UUID,
    grade: int | None = Query(default=None),
    status: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[ExamStudentOut]:
    exam = get_exam(db, exam_id)
    rows = group_partitioner.list_registrations(db, exam.id, grade=grade, status=status)
    return [_student_out(es, s) for es, s in rows]


@router.patch("/{exam_id}/students/{exam_student_id}", response_model=ExamStudentOut)
def update_student_status(
    exam_id: uuid.UUID,
    exam_student_id: uuid.UUID,
    payload: ExamStudentStatusUpdate,
    db: Session = Depends(get_db),
) -> ExamStudentOut:
    registration = group_partitioner.set_registration_status(db, exam_id, exam_student_id, payload.status)
    commit_or_conflict(db)
    db.refresh(registration)
    return _student_out(registration, db.get(Student, registration.student_id))


@router.delete("/{exam_id}/students/{exam_student_id}", response_model=WithdrawStudentResponse)
def withdraw_student(
    exam_id: uuid.UUID,
    exam_student_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> WithdrawStudentResponse:
    group_partitioner.withdraw_student(db, exam_id, exam_student_id)
    commit_or_conflict(db)
    return WithdrawStudentResponse(withdrawn=exam_student_id)


@router.post("/{exam_id}/seating-groups", response_model=PartitionResponse)
def partition_groups(
    exam_id: uuid.UUID,
    payload: PartitionRequest,
    db: Session = Depends(get_db),
) -> PartitionResponse:
    exam = get_exam(db, exam_id)
    max_per_group = payload.max_per_group or int(exam.max_students_per_room)

    grade = payload.grade
    if isinstance(grade, str):
        grade = grade.strip().lower()
        if grade.isdigit():
            grade = int(grade)
        elif grade != "all":
            raise ValidationError(f"Invalid grade {payload.grade!r}; use a number or 'all'", code="INVALID_GRADE")

    if grade == "all":
        results = group_partitioner.partition_exam(db, exam.id, max_per_group, payload.max_groups)
    else:
        results = [group_partitioner.partition_groups(db, exam.id, grade, max_per_group, payload.max_groups)]

    out = [_partition_out(db, r) for r in results]
    commit_or_conflict(db, code="SEATING_GROUP_CONFLICT")
    return PartitionResponse(results=out)


@router.get("/{exam_id}/seating-groups", response_model=list[SeatingGroupOut])
def list_seating_groups(
    exam_id: uuid.UUID,
    grade: int | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[SeatingGroupOut]:
    exam = get_exam(db, exam_id)
    return _groups_out(db, group_partitioner.list_groups(db, exam.id, grade))


@router.post("/{exam_id}/mappings", response_model=MapExamResponse)
def map_exam_rooms(
    exam_id: uuid.UUID,
    payload: MapExamRequest | None = None,
    db: Session = Depends(get_db),
) -> MapExamResponse:
    payload = payload or MapExamRequest()
    outcomes = slot_mapper.map_exam_rooms(db, exam_id, room_type=payload.room_type)
    out = [
        SessionOutcomeOut(
            session_id=o.session_id,
            status=o.status,
            mapping_ids=o.mapping_ids,
            code=o.code,
            message=o.message,
            conflicts=conflicts_out(o.conflicts),
        )
        for o in outcomes
    ]
    commit_or_conflict(db, code="ROOM_DOUBLE_BOOKED")
    return MapExamResponse(results=out)


@router.get("/{exam_id}/mappings", response_model=Paginated[MappingOut])
def list_mappings(
    exam_id: uuid.UUID,
    paging: PageParams = Depends(get_page_params),
    db: Session = Depends(get_db),
) -> Paginated[MappingOut]:
    rows, total = slot_mapper.list_mappings(db, exam_id, page=paging.page, page_size=paging.page_size)
    return Paginated[MappingOut](
        items=mappings_out(db, rows),
        total=total,
        page=paging.page,
        page_size=paging.page_size,
    )


@router.post("/{exam_id}/invigilators/auto", response_model=ExamInvigilationOut)
def auto_assign_invigilators(
    exam_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> ExamInvigilationOut:
    results = invigilator_assigner.auto_assign_exam(db, exam_id)
    load = dict(results[-1].ledger.counts) if results else {}
    out = ExamInvigilationOut(
        results=[invigilation_out(r) for r in results],
        load={str(k): int(v) for k, v in sorted(load.items(), key=lambda kv: str(kv[0]))},
    )
    commit_or_conflict(db, code="TEACHER_DOUBLE_BOOKED")
    return out


@router.delete("/{exam_id}/invigilators", response_model=RemoveInvigilatorsResponse)
def remove_all_invigilators(
    exam_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> RemoveInvigilatorsResponse:
    cleared = invigilator_assigner.remove_all(db, exam_id)
    commit_or_conflict(db)
    return RemoveInvigilatorsResponse(cleared_mappings=cleared)
