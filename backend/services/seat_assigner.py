from __future__ import annotations

import logging
import uuid
from collections import Counter
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from allocation.seating import Seat, number_seats
from core.errors import ConflictError, ValidationConflict, ValidationError
from models.exam_session import ExamSession
from models.room import Room
from models.seat_assignment import SeatAssignment
from models.seating_group import SeatingGroup
from models.session_room_mapping import SessionRoomMapping
from services.group_partitioner import group_roster
from services.validation import ensure_exam_mutable, get_exam, get_mapping


logger = logging.getLogger(__name__)


def list_seats(db: Session, mapping_id: Any) -> list[SeatAssignment]:
    return list(
        db.execute(
            select(SeatAssignment).where(SeatAssignment.mapping_id == mapping_id).order_by(SeatAssignment.seat_number.asc())
        )
        .scalars()
        .all()
    )


def _roster_ids(mapping: SessionRoomMapping) -> list[uuid.UUID]:
    try:
        return [uuid.UUID(str(x)) for x in (mapping.roster or [])]
    except ValueError as exc:
        raise ValidationError(f"Mapping {mapping.id} has an invalid roster", code="INVALID_ROSTER") from exc


def seating_order(db: Session, mapping: SessionRoomMapping, session: ExamSession) -> tuple[list[Any], int, int, int | None]:
    """(ordered exam-student ids, grade, group ordinal, group capacity)."""

    if mapping.seating_group_id is None:
        return _roster_ids(mapping), int(session.grade), 0, None
    group = db.get(SeatingGroup, mapping.seating_group_id)
    if group is None:
        raise ValidationError(f"Seating group {mapping.seating_group_id} not found", code="SEATING_GROUP_NOT_FOUND")
    return group_roster(db, group.id), int(group.grade), int(group.ordinal), int(group.capacity)


def check_seating(db: Session, mapping: SessionRoomMapping, ordered: list[Any], *, room: Room, group_capacity: int | None) -> None:
    conflicts: list[ValidationConflict] = []

    limit = int(room.capacity) if group_capacity is None else min(int(room.capacity), group_capacity)
    if len(ordered) > limit:
        conflicts.append(
            ValidationConflict(
                conflict_type="CAPACITY_EXCEEDED",
                message=f"{len(ordered)} students do not fit room {room.code} (limit {limit})",
                session_id=mapping.session_id,
                mapping_id=mapping.id,
                room_id=room.id,
                seating_group_id=mapping.seating_group_id,
                metadata={"students": len(ordered), "limit": limit},
            )
        )

    for exam_student_id, n in Counter(ordered).items():
        if n > 1:
            conflicts.append(
                ValidationConflict(
                    conflict_type="DUPLICATE_STUDENT",
                    message="Student listed more than once in the mapping",
                    mapping_id=mapping.id,
                    exam_student_id=exam_student_id,
                )
            )

    if ordered:
        seated = db.execute(
            select(SeatAssignment.exam_student_id, SeatAssignment.mapping_id).where(
                SeatAssignment.session_id == mapping.session_id,
                SeatAssignment.mapping_id != mapping.id,
                SeatAssignment.exam_student_id.in_(list(set(ordered))),
            )
        ).all()
        for exam_student_id, other_mapping_id in seated:
            conflicts.append(
                ValidationConflict(
                    conflict_type="STUDENT_ALREADY_SEATED",
                    message="Student already has a seat in this session",
                    session_id=mapping.session_id,
                    mapping_id=other_mapping_id,
                    exam_student_id=exam_student_id,
                )
            )

    if conflicts:
        raise ConflictError(f"Cannot seat students for mapping {mapping.id}", code="SEATING_CONFLICT", conflicts=conflicts)


def _check_exam_numbers(db: Session, mapping: SessionRoomMapping, planned: list[Seat]) -> None:
    if not planned:
        return
    taken = db.execute(
        select(SeatAssignment.exam_number, SeatAssignment.exam_student_id).where(
            SeatAssignment.session_id == mapping.session_id,
            SeatAssignment.mapping_id != mapping.id,
            SeatAssignment.exam_number.in_([s.exam_number for s in planned]),
        )
    ).all()
    if taken:
        raise ConflictError(
            f"{len(taken)} exam numbers are already used in this session",
            code="SEATING_CONFLICT",
            conflicts=[
                ValidationConflict(
                    conflict_type="EXAM_NUMBER_TAKEN",
                    message=f"Exam number {number} already belongs to another student",
                    session_id=mapping.session_id,
                    mapping_id=mapping.id,
                    exam_student_id=holder,
                    metadata={"exam_number": number},
                )
                for number, holder in taken
            ],
        )


def assign_seats(db: Session, mapping_id: Any, regenerate: bool = False) -> list[SeatAssignment]:
    mapping = get_mapping(db, mapping_id)
    exam = ensure_exam_mutable(get_exam(db, mapping.exam_id))

    if regenerate:
        reset_seats(db, mapping.id)
    else:
        existing = list_seats(db, mapping.id)
        if existing:
            return existing

    session = db.get(ExamSession, mapping.session_id)
    room = db.get(Room, mapping.room_id)
    ordered, grade, ordinal, group_capacity = seating_order(db, mapping, session)
    check_seating(db, mapping, ordered, room=room, group_capacity=group_capacity)
    planned = number_seats(
        ordered,
        fmt=exam.exam_number_format,
        exam_code=exam.code,
        grade=grade,
        group_ordinal=ordinal,
        offset=int(mapping.roster_offset or 0) if mapping.seating_group_id is None else 0,
    )
    _check_exam_numbers(db, mapping, planned)

    seats = [
        SeatAssignment(
            exam_id=exam.id,
            session_id=mapping.session_id,
            mapping_id=mapping.id,
            exam_student_id=seat.exam_student_id,
            seat_number=seat.seat_number,
            exam_number=seat.exam_number,
        )
        for seat in planned
    ]
    db.add_all(seats)
    db.flush()
    logger.info("Assigned %d seats in room %s (mapping=%s)", len(seats), mapping.room_code, mapping.id)
    return seats


def reset_seats(db: Session, mapping_id: Any) -> int:
    mapping = get_mapping(db, mapping_id)
    ensure_exam_mutable(get_exam(db, mapping.exam_id))
    result = db.execute(delete(SeatAssignment).where(SeatAssignment.mapping_id == mapping.id))
    db.flush()
    return int(result.rowcount or 0)
