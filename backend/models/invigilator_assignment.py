from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Enum, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


INVIGILATOR_ROLE = Enum("main", "assistant", name="invigilator_role")


class InvigilatorAssignment(Base):
    __tablename__ = "invigilator_assignments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    mapping_id = Column(Uuid, nullable=False, index=True)
    teacher_id = Column(Uuid, nullable=False, index=True)
    role = Column(INVIGILATOR_ROLE, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("mapping_id", "role", name="uq_invigilator_assignments_mapping_role"),
        UniqueConstraint("mapping_id", "teacher_id", name="uq_invigilator_assignments_mapping_teacher"),
    )
