from __future__ import annotations

import uuid
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from schemas.common import ConflictOut
from schemas.room import RoomType


class ExplicitPairIn(BaseModel):
    room_id: uuid.UUID
    seating_group_id: uuid.UUID | None = None
    roster: list[uuid.UUID] | None = None

    @model_validator(mode="after")
    def _one_source(self) -> "ExplicitPairIn":
        if (self.seating_group_id is None) == (self.roster is None):
            raise ValueError("Provide exactly one of seating_group_id or roster")
        return self


class MapSessionRequest(BaseModel):
    auto: bool = True
    room_type: RoomType | None = "normal"
    explicit_mapping: list[ExplicitPairIn] | None = None
    assign_seats: bool = True

    @model_validator(mode="after")
    def _explicit_when_manual(self) -> "MapSessionRequest":
        if not self.auto and not self.explicit_mapping:
            raise ValueError("explicit_mapping is required when auto is false")
        return self


class MapExamRequest(BaseModel):
    room_type: RoomType | None = "normal"


class InvigilatorOut(BaseModel):
    teacher_id: uuid.UUID
    role: Literal["main", "assistant"]

    class Config:
        from_attributes = True


class MappingOut(BaseModel):
    id: uuid.UUID
    exam_id: uuid.UUID
    session_id: uuid.UUID
    room_id: uuid.UUID
    room_code: str
    room_type: str
    seating_group_id: uuid.UUID | None = None
    roster: list[uuid.UUID] | None = None
    seat_count: int = 0
    invigilators: list[InvigilatorOut] = Field(default_factory=list)


class MapSessionResponse(BaseModel):
    mappings: list[MappingOut]
    conflicts: list[ConflictOut] = Field(default_factory=list)


class SessionOutcomeOut(BaseModel):
    session_id: uuid.UUID
    status: Literal["succeeded", "skipped", "failed"]
    mapping_ids: list[uuid.UUID] = Field(default_factory=list)
    code: str | None = None
    message: str | None = None
    conflicts: list[ConflictOut] = Field(default_factory=list)


class MapExamResponse(BaseModel):
    results: list[SessionOutcomeOut]


class MoveMappingRequest(BaseModel):
    room_id: uuid.UUID
