from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, Integer, UniqueConstraint, Uuid

from models.base import Base


class SeatingGroupMember(Base):
    __tablename__ = "seating_group_members"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid, nullable=False, index=True)
    exam_student_id = Column(Uuid, nullable=False)
    position = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("exam_student_id", name="uq_seating_group_members_exam_student"),
        UniqueConstraint("group_id", "position", name="uq_seating_group_members_group_position"),
        CheckConstraint("position >= 1", name="ck_seating_group_members_position"),
    )
