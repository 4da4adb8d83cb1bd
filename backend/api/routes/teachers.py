from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from api.deps import commit_or_conflict
from core.database import get_db
from models.teacher import Teacher
from schemas.invigilator import TeacherInvigilationOut
from schemas.teacher import TeacherCreate, TeacherOut
from services import invigilator_assigner


router = APIRouter()


@router.get("/", response_model=list[TeacherOut])
def list_teachers(
    active_only: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[TeacherOut]:
    q = select(Teacher)
    if active_only:
        q = q.where(Teacher.is_active.is_(True))
    return db.execute(q.order_by(Teacher.full_name.asc())).scalars().all()


@router.post("/", response_model=TeacherOut)
def create_teacher(
    payload: TeacherCreate,
    db: Session = Depends(get_db),
) -> TeacherOut:
    data = payload.model_dump()
    data["code"] = data["code"].strip()
    data["full_name"] = data["full_name"].strip()
    if not data["code"] or not data["full_name"]:
        raise HTTPException(status_code=400, detail="INVALID_TEACHER")
    if db.execute(select(Teacher.id).where(Teacher.code == data["code"]).limit(1)).first() is not None:
        raise HTTPException(status_code=409, detail="TEACHER_CODE_ALREADY_EXISTS")

    teacher = Teacher(**data)
    db.add(teacher)
    commit_or_conflict(db, code="TEACHER_CODE_ALREADY_EXISTS")
    db.refresh(teacher)
    return teacher


@router.get("/{teacher_id}/invigilations", response_model=list[TeacherInvigilationOut])
def list_teacher_invigilations(
    teacher_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> list[TeacherInvigilationOut]:
    return [TeacherInvigilationOut(**row) for row in invigilator_assigner.teacher_invigilations(db, teacher_id)]
