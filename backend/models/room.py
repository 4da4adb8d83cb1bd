from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


ROOM_TYPE = Enum("normal", "lab", "computer", name="room_type")
ROOM_STATUS = Enum("available", "maintenance", "inactive", name="room_status")


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(Text, nullable=False)
    name = Column(Text, nullable=True)
    room_type = Column(ROOM_TYPE, nullable=False, default="normal")
    capacity = Column(Integer, nullable=False, default=0)
    status = Column(ROOM_STATUS, nullable=False, default="available")
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="ck_rooms_capacity"),
        UniqueConstraint("code", name="uq_rooms_code"),
    )
