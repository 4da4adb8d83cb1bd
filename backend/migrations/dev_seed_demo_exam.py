from __future__ import annotations

"""DEV ONLY: seed a demo exam (rooms, teachers, students, sessions) and run the pipeline.

Run:
  python -m migrations.dev_seed_demo_exam --yes
"""

import argparse
import sys
from datetime import date, time, timedelta
from pathlib import Path

# Allow running this script from any working directory.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import select

from core.bootstrap import ensure_schema
from core.database import SessionLocal
from core.logging import setup_logging
from models.exam import Exam
from models.room import Room
from models.student import Student
from models.teacher import Teacher
from services import exam_registry, group_partitioner, invigilator_assigner, slot_mapper


FIRST_NAMES = ["An", "Binh", "Chi", "Dung", "Giang", "Hoa", "Khanh", "Lan", "Minh", "Nam", "Phuong", "Quan"]
LAST_NAMES = ["Nguyen", "Tran", "Le", "Pham", "Hoang", "Vu", "Dang", "Bui"]


def _seed_directory(db, *, grade: int, students: int, rooms: int, teachers: int) -> None:
    for i in range(1, rooms + 1):
        code = f"R{i:02d}"
        if db.execute(select(Room.id).where(Room.code == code)).first() is None:
            db.add(Room(code=code, name=f"Room {i}", room_type="normal", capacity=24 if i % 3 else 30))
    for i in range(1, teachers + 1):
        code = f"T{i:03d}"
        if db.execute(select(Teacher.id).where(Teacher.code == code)).first() is None:
            db.add(Teacher(code=code, full_name=f"Teacher {i:03d}"))
    for i in range(1, students + 1):
        code = f"S{grade}{i:04d}"
        if db.execute(select(Student.id).where(Student.code == code)).first() is None:
            name = f"{LAST_NAMES[i % len(LAST_NAMES)]} {FIRST_NAMES[i % len(FIRST_NAMES)]} {i}"
            db.add(Student(code=code, full_name=name, class_code=f"{grade}A{1 + i % 4}", grade=grade))
    db.flush()


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--exam-code", default="DEMO")
    parser.add_argument("--grade", type=int, default=12)
    parser.add_argument("--students", type=int, default=101)
    parser.add_argument("--rooms", type=int, default=8)
    parser.add_argument("--teachers", type=int, default=16)
    parser.add_argument("--yes", action="store_true", help="Actually write to the database")
    args = parser.parse_args()

    if not args.yes:
        print("Dry run only. Re-run with --yes to seed the demo exam.")
        return 0

    setup_logging(environment="development")
    ensure_schema()

    db = SessionLocal()
    try:
        _seed_directory(db, grade=args.grade, students=args.students, rooms=args.rooms, teachers=args.teachers)

        exam = db.execute(select(Exam).where(Exam.code == args.exam_code)).scalar_one_or_none()
        if exam is None:
            exam = exam_registry.create_exam(db, code=args.exam_code, name="Demo term exam", grades=[args.grade])
            start = date.today() + timedelta(days=7)
            for offset, subject in enumerate(["Math", "Literature", "English"]):
                exam_registry.add_session(
                    db,
                    exam.id,
                    subject=subject,
                    grade=args.grade,
                    on_date=start + timedelta(days=offset),
                    start_time=time(7, 30),
                    duration_minutes=90,
                )

        group_partitioner.register_students(db, exam.id, args.grade)
        result = group_partitioner.partition_groups(db, exam.id, args.grade, int(exam.max_students_per_room))
        outcomes = slot_mapper.map_exam_rooms(db, exam.id)
        invigilation = invigilator_assigner.auto_assign_exam(db, exam.id)
        db.commit()
    finally:
        db.close()

    print(f"Groups: {len(result.groups)} ({result.assigned} students newly placed)")
    for o in outcomes:
        print(f"- session {o.session_id}: {o.status} {o.code or ''}".rstrip())
    unfilled = sum(len(r.unfilled) for r in invigilation)
    print(f"Invigilator roles left unfilled: {unfilled}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
