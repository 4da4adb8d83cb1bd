from __future__ import annotations

import uuid
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field


T = TypeVar("T")


class Paginated(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int


class ConflictOut(BaseModel):
    severity: Literal["INFO", "WARN", "ERROR"] = "ERROR"
    conflict_type: str
    message: str
    session_id: uuid.UUID | None = None
    mapping_id: uuid.UUID | None = None
    room_id: uuid.UUID | None = None
    seating_group_id: uuid.UUID | None = None
    teacher_id: uuid.UUID | None = None
    exam_student_id: uuid.UUID | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True
