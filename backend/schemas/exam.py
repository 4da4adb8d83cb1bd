from __future__ import annotations

import uuid
import datetime as dt
from typing import Literal

from pydantic import BaseModel, Field, model_validator


ExamStatus = Literal["draft", "published", "locked", "archived"]


class ExamCreate(BaseModel):
    code: str = Field(min_length=1)
    name: str = Field(min_length=1)
    grades: list[int] = Field(min_length=1)
    max_students_per_room: int | None = Field(default=None, ge=1)
    invigilators_per_room: int | None = Field(default=None, ge=1, le=2)
    exam_number_format: str | None = None


class ExamOut(BaseModel):
    id: uuid.UUID
    code: str
    name: str
    grades: list[int]
    status: ExamStatus
    max_students_per_room: int
    invigilators_per_room: int
    exam_number_format: str
    created_at: dt.datetime

    class Config:
        from_attributes = True


class ExamStatusUpdate(BaseModel):
    status: ExamStatus


class ExamSessionCreate(BaseModel):
    subject: str = Field(min_length=1)
    grade: int = Field(ge=1)
    date: dt.date
    start_time: dt.time
    end_time: dt.time | None = None
    duration_minutes: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_range(self) -> "ExamSessionCreate":
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class ExamSessionOut(BaseModel):
    id: uuid.UUID
    exam_id: uuid.UUID
    subject: str
    grade: int
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    duration_minutes: int

    class Config:
        from_attributes = True


class RegisterStudentsRequest(BaseModel):
    grade: int = Field(ge=1)
    class_codes: list[str] | None = None


class RegisterStudentsResponse(BaseModel):
    grade: int
    registered: int


RegistrationStatus = Literal["active", "absent", "excluded"]


class ExamStudentOut(BaseModel):
    id: uuid.UUID
    student_id: uuid.UUID
    student_code: str
    full_name: str
    class_code: str
    grade: int
    status: RegistrationStatus
    seating_group_id: uuid.UUID | None = None


class ExamStudentStatusUpdate(BaseModel):
    status: RegistrationStatus


class WithdrawStudentResponse(BaseModel):
    withdrawn: uuid.UUID
