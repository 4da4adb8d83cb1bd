from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, Field


class PartitionRequest(BaseModel):
    # An integer grade, or "all" for every grade of the exam.
    grade: int | str
    max_per_group: int | None = Field(default=None, ge=1)
    max_groups: int | None = Field(default=None, ge=1)


class SeatingGroupOut(BaseModel):
    id: uuid.UUID
    exam_id: uuid.UUID
    grade: int
    code: str
    ordinal: int
    capacity: int
    size: int = 0


class GradePartitionOut(BaseModel):
    grade: int
    assigned: int
    groups: list[SeatingGroupOut]
    warnings: list[dict[str, Any]] = Field(default_factory=list)


class PartitionResponse(BaseModel):
    results: list[GradePartitionOut]


class SeatOut(BaseModel):
    exam_student_id: uuid.UUID
    seat_number: int
    exam_number: str

    class Config:
        from_attributes = True


class SeatsResponse(BaseModel):
    mapping_id: uuid.UUID
    seats: list[SeatOut]


class ResetResponse(BaseModel):
    deleted: int
