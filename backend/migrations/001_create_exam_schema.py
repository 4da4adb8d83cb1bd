from __future__ import annotations

"""Create the exam allocation tables and their lookup indexes.

Safe to run multiple times (create_all skips existing tables, indexes use IF NOT EXISTS).

Run:
  python -m migrations.001_create_exam_schema --yes

Or:
  python backend/migrations/001_create_exam_schema.py --yes
"""

import argparse
import sys
from pathlib import Path

# Allow running this script from any working directory.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import text

from core.bootstrap import ensure_schema
from core.database import ENGINE
from models.base import Base


STATEMENTS = [
    # Overlap checks load every mapping of one date.
    "CREATE INDEX IF NOT EXISTS idx_exam_sessions_date_start ON exam_sessions (date, start_time);",
    "CREATE INDEX IF NOT EXISTS idx_exam_sessions_exam_date ON exam_sessions (exam_id, date, start_time);",
    "CREATE INDEX IF NOT EXISTS idx_session_room_mappings_room_session ON session_room_mappings (room_id, session_id);",
    # Fairness ledger and double-invigilation checks.
    "CREATE INDEX IF NOT EXISTS idx_invigilator_assignments_teacher_mapping ON invigilator_assignments (teacher_id, mapping_id);",
    # Partitioning reads unassigned students per grade.
    "CREATE INDEX IF NOT EXISTS idx_exam_students_exam_grade_group ON exam_students (exam_id, grade, seating_group_id);",
    "CREATE INDEX IF NOT EXISTS idx_seat_assignments_session_student ON seat_assignments (session_id, exam_student_id);",
]


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--yes", action="store_true", help="Actually apply changes")
    args = parser.parse_args()

    print("Tables:")
    for name in sorted(Base.metadata.tables):
        print(f"- {name}")
    print("\nIndexes:")
    for stmt in STATEMENTS:
        print(f"- {stmt}")

    if not args.yes:
        print("\nDry run only. Re-run with --yes to apply.")
        return

    ensure_schema(ENGINE)
    with ENGINE.begin() as conn:
        for stmt in STATEMENTS:
            conn.execute(text(stmt))
    print("\nOK: schema ensured")


if __name__ == "__main__":
    main()
