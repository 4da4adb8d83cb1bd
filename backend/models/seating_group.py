from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


class SeatingGroup(Base):
    """Fixed seating group ("logical room") of one grade, stable for the whole exam."""

    __tablename__ = "seating_groups"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    exam_id = Column(Uuid, nullable=False, index=True)
    grade = Column(Integer, nullable=False)
    code = Column(Text, nullable=False)
    ordinal = Column(Integer, nullable=False)
    capacity = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("exam_id", "grade", "code", name="uq_seating_groups_exam_grade_code"),
        UniqueConstraint("exam_id", "grade", "ordinal", name="uq_seating_groups_exam_grade_ordinal"),
        CheckConstraint("capacity >= 1", name="ck_seating_groups_capacity"),
        CheckConstraint("ordinal >= 1", name="ck_seating_groups_ordinal"),
    )
