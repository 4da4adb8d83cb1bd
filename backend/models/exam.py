from __future__ import annotations

import uuid

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Enum, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


EXAM_STATUS = Enum("draft", "published", "locked", "archived", name="exam_status")

FROZEN_EXAM_STATUSES = frozenset({"locked", "archived"})

DEFAULT_EXAM_NUMBER_FORMAT = "{exam_code}-{grade}{group:02d}{seat:02d}"


class Exam(Base):
    __tablename__ = "exams"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    grades = Column(JSON, nullable=False, default=list)
    status = Column(EXAM_STATUS, nullable=False, default="draft")
    max_students_per_room = Column(Integer, nullable=False, default=24)
    invigilators_per_room = Column(Integer, nullable=False, default=2)
    exam_number_format = Column(Text, nullable=False, default=DEFAULT_EXAM_NUMBER_FORMAT)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("code", name="uq_exams_code"),
        CheckConstraint("max_students_per_room >= 1", name="ck_exams_max_students_per_room"),
        CheckConstraint("invigilators_per_room in (1, 2)", name="ck_exams_invigilators_per_room"),
    )

    @property
    def is_frozen(self) -> bool:
        return str(self.status) in FROZEN_EXAM_STATUSES
