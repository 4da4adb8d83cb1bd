from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


RoomType = Literal["normal", "lab", "computer"]
RoomStatus = Literal["available", "maintenance", "inactive"]


class RoomBase(BaseModel):
    code: str = Field(min_length=1)
    name: str | None = None
    room_type: RoomType = "normal"
    capacity: int = Field(default=0, ge=0)
    status: RoomStatus = "available"
    note: str | None = None


class RoomCreate(RoomBase):
    pass


class RoomUpdate(BaseModel):
    name: str | None = None
    room_type: RoomType | None = None
    capacity: int | None = Field(default=None, ge=0)
    status: RoomStatus | None = None
    note: str | None = None


class RoomOut(RoomBase):
    id: uuid.UUID
    created_at: datetime

    class Config:
        from_attributes = True
