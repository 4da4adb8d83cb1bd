from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base
from models.room import ROOM_TYPE


class SessionRoomMapping(Base):
    """Binding of a seating group to a physical room for one exam session."""

    __tablename__ = "session_room_mappings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    exam_id = Column(Uuid, nullable=False, index=True)
    session_id = Column(Uuid, nullable=False, index=True)
    room_id = Column(Uuid, nullable=False, index=True)
    room_code = Column(Text, nullable=False)
    room_type = Column(ROOM_TYPE, nullable=False, default="normal")
    seating_group_id = Column(Uuid, nullable=True)
    # Ordered exam_student ids, only for mappings without a seating group.
    roster = Column(JSON, nullable=True)
    # First exam-number sequence of a roster mapping; rosters of one session never share numbers.
    roster_offset = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("session_id", "room_id", name="uq_session_room_mappings_session_room"),
        UniqueConstraint("session_id", "seating_group_id", name="uq_session_room_mappings_session_group"),
    )
