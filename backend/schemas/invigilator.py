from __future__ import annotations

import uuid
import datetime as dt
from typing import Literal

from pydantic import BaseModel, Field

from schemas.common import ConflictOut
from schemas.mapping import InvigilatorOut


Role = Literal["main", "assistant"]


class RoleChoiceIn(BaseModel):
    teacher_id: uuid.UUID
    role: Role


class AssignInvigilatorsRequest(BaseModel):
    invigilators: list[RoleChoiceIn] = Field(default_factory=list)


class PlannedRoleOut(BaseModel):
    mapping_id: uuid.UUID
    teacher_id: uuid.UUID
    role: Role

    class Config:
        from_attributes = True


class UnfilledRoleOut(BaseModel):
    mapping_id: uuid.UUID
    room_code: str
    role: Role
    reason: str


class SessionInvigilationOut(BaseModel):
    session_id: uuid.UUID
    status: Literal["succeeded", "failed"] = "succeeded"
    assigned: list[PlannedRoleOut] = Field(default_factory=list)
    unfilled: list[UnfilledRoleOut] = Field(default_factory=list)
    code: str | None = None
    message: str | None = None
    conflicts: list[ConflictOut] = Field(default_factory=list)


class ExamInvigilationOut(BaseModel):
    results: list[SessionInvigilationOut]
    # Roles held per teacher across the exam after this run.
    load: dict[str, int] = Field(default_factory=dict)


class MappingInvigilatorsOut(BaseModel):
    mapping_id: uuid.UUID
    invigilators: list[InvigilatorOut]


class RemoveInvigilatorsResponse(BaseModel):
    cleared_mappings: int


class TeacherInvigilationOut(BaseModel):
    mapping_id: uuid.UUID
    exam_id: uuid.UUID
    exam_code: str
    session_id: uuid.UUID
    subject: str
    grade: int
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    room_code: str
    role: Role
