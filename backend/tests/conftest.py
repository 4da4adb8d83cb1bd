from __future__ import annotations

import os

# Must be set before anything imports core.config.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("AUTO_CREATE_SCHEMA", "true")

from datetime import date, time

import pytest

import models  # noqa: F401
from core.database import ENGINE, SessionLocal
from models.base import Base
from models.room import Room
from models.student import Student
from models.teacher import Teacher
from services import exam_registry, group_partitioner


EXAM_DAY = date(2026, 12, 14)


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=ENGINE)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=ENGINE)


@pytest.fixture()
def client(db):
    from fastapi.testclient import TestClient

    from main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def make_rooms(db):
    def _make(count: int, *, capacity: int = 24, room_type: str = "normal", prefix: str = "R") -> list[Room]:
        rooms = [
            Room(code=f"{prefix}{i:02d}", name=f"Room {prefix}{i:02d}", room_type=room_type, capacity=capacity)
            for i in range(1, count + 1)
        ]
        db.add_all(rooms)
        db.flush()
        return rooms

    return _make


@pytest.fixture()
def make_teachers(db):
    def _make(count: int, *, prefix: str = "T") -> list[Teacher]:
        teachers = [Teacher(code=f"{prefix}{i:03d}", full_name=f"Teacher {prefix}{i:03d}") for i in range(1, count + 1)]
        db.add_all(teachers)
        db.flush()
        return sorted(teachers, key=lambda t: str(t.id))

    return _make


@pytest.fixture()
def make_students(db):
    def _make(grade: int, count: int, *, classes: int = 4, start: int = 1) -> list[Student]:
        students = [
            Student(
                code=f"S{grade}{i:04d}",
                full_name=f"Student {i:04d}",
                class_code=f"{grade}A{1 + i % classes}",
                grade=grade,
            )
            for i in range(start, start + count)
        ]
        db.add_all(students)
        db.flush()
        return students

    return _make


@pytest.fixture()
def make_exam(db):
    def _make(code: str = "HK1", grades=(12,), **kwargs):
        return exam_registry.create_exam(db, code=code, name=f"Exam {code}", grades=list(grades), **kwargs)

    return _make


@pytest.fixture()
def make_session(db):
    def _make(exam, *, subject: str = "Math", grade: int = 12, start=time(7, 0), end=time(9, 0), on_date=EXAM_DAY):
        return exam_registry.add_session(
            db,
            exam.id,
            subject=subject,
            grade=grade,
            on_date=on_date,
            start_time=start,
            end_time=end,
        )

    return _make


@pytest.fixture()
def partitioned_exam(db, make_exam, make_students):
    """Grade 12 exam with 101 registered students split into groups of 20."""

    def _make(code: str = "HK1", *, students: int = 101, per_group: int = 20, grades=(12,)):
        exam = make_exam(code, grades=grades)
        make_students(12, students)
        group_partitioner.register_students(db, exam.id, 12)
        result = group_partitioner.partition_groups(db, exam.id, 12, per_group)
        return exam, result

    return _make


@pytest.fixture()
def partitioned_grade(db, make_students):
    """Register and partition another grade of an existing exam."""

    def _make(exam, grade: int, *, students: int = 20, per_group: int = 20):
        make_students(grade, students)
        group_partitioner.register_students(db, exam.id, grade)
        return group_partitioner.partition_groups(db, exam.id, grade, per_group)

    return _make
