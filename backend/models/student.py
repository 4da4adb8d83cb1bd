from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


class Student(Base):
    """Student directory row. The engine only reads these."""

    __tablename__ = "students"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(Text, nullable=False)
    full_name = Column(Text, nullable=False)
    class_code = Column(Text, nullable=False)
    grade = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (UniqueConstraint("code", name="uq_students_code"),)
