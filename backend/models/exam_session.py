from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Integer, Text, Time, Uuid
from sqlalchemy.sql import func

from models.base import Base


class ExamSession(Base):
    """One timed sitting of a subject for a grade."""

    __tablename__ = "exam_sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    exam_id = Column(Uuid, nullable=False, index=True)
    subject = Column(Text, nullable=False)
    grade = Column(Integer, nullable=False)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=90)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_exam_sessions_duration"),
        CheckConstraint("end_time > start_time", name="ck_exam_sessions_time_range"),
    )
