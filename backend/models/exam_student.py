from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Enum, Integer, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


EXAM_STUDENT_STATUS = Enum("active", "absent", "excluded", name="exam_student_status")


class ExamStudent(Base):
    __tablename__ = "exam_students"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    exam_id = Column(Uuid, nullable=False, index=True)
    student_id = Column(Uuid, nullable=False)
    grade = Column(Integer, nullable=False)
    status = Column(EXAM_STUDENT_STATUS, nullable=False, default="active")
    seating_group_id = Column(Uuid, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (UniqueConstraint("exam_id", "student_id", name="uq_exam_students_exam_student"),)
