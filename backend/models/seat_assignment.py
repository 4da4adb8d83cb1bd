from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


class SeatAssignment(Base):
    __tablename__ = "seat_assignments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    exam_id = Column(Uuid, nullable=False, index=True)
    session_id = Column(Uuid, nullable=False, index=True)
    mapping_id = Column(Uuid, nullable=False, index=True)
    exam_student_id = Column(Uuid, nullable=False)
    seat_number = Column(Integer, nullable=False)
    exam_number = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("mapping_id", "seat_number", name="uq_seat_assignments_mapping_seat"),
        UniqueConstraint("session_id", "exam_student_id", name="uq_seat_assignments_session_student"),
        UniqueConstraint("session_id", "exam_number", name="uq_seat_assignments_session_exam_number"),
        CheckConstraint("seat_number >= 1", name="ck_seat_assignments_seat_number"),
    )
