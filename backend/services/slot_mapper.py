from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from allocation.conflicts import TimeWindow
from core.errors import (
    ConflictError,
    EngineError,
    NotFoundError,
    ResourceExhaustedError,
    ValidationConflict,
    ValidationError,
)
from models.exam_session import ExamSession
from models.exam_student import ExamStudent
from models.invigilator_assignment import InvigilatorAssignment
from models.room import Room
from models.seat_assignment import SeatAssignment
from models.seating_group import SeatingGroup
from models.session_room_mapping import SessionRoomMapping
from services import seat_assigner
from services.group_partitioner import group_sizes, list_groups
from services.room_pool import HeldRoom, list_available, reserve
from services.validation import ensure_exam_mutable, get_exam, get_mapping, get_session


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExplicitPair:
    """One caller-chosen placement: a seating group (or a raw roster) into a room."""

    room_id: Any
    seating_group_id: Any | None = None
    roster: list[Any] | None = None


@dataclass
class _Planned:
    room: Room
    group: SeatingGroup | None = None
    roster: list[Any] | None = None


@dataclass
class SessionOutcome:
    session_id: Any
    status: str  # succeeded | skipped | failed
    mapping_ids: list[Any] = field(default_factory=list)
    code: str | None = None
    message: str | None = None
    conflicts: list[ValidationConflict] = field(default_factory=list)


def _mapped_group_ids(db: Session, session_id: Any) -> set[Any]:
    return set(
        db.execute(
            select(SessionRoomMapping.seating_group_id).where(
                SessionRoomMapping.session_id == session_id,
                SessionRoomMapping.seating_group_id.is_not(None),
            )
        )
        .scalars()
        .all()
    )


def _plan_auto(db: Session, session: ExamSession, room_type: str | None) -> list[_Planned]:
    groups = list_groups(db, session.exam_id, session.grade)
    if not groups:
        raise ValidationError(
            f"No seating groups for grade {session.grade}; partition the students first",
            code="NO_SEATING_GROUPS",
        )
    mapped = _mapped_group_ids(db, session.id)
    pending = [g for g in groups if g.id not in mapped]
    if not pending:
        return []

    window = TimeWindow.of(session)
    sizes = group_sizes(db, [g.id for g in pending])
    candidates = list_available(db, window, room_type=room_type)

    held: list[HeldRoom] = []
    planned: list[_Planned] = []
    unplaced: list[ValidationConflict] = []
    for group in pending:
        size = sizes.get(group.id, 0)
        placed = False
        taken = {h.room_id for h in held}
        for room in candidates:
            if room.id in taken or int(room.capacity) < size:
                continue
            reservation = reserve(db, room, session, held)
            if not reservation.ok:
                logger.debug("Skipping room %s for group %s: %s", room.code, group.code, reservation.conflict.message)
                continue
            held.append(HeldRoom(room_id=room.id, window=window))
            planned.append(_Planned(room=reservation.room, group=group))
            placed = True
            break
        if not placed:
            unplaced.append(
                ValidationConflict(
                    conflict_type="NO_ROOM_AVAILABLE",
                    message=f"No free {room_type or 'any'} room with {size} seats for group {group.code} during {window.label()}",
                    session_id=session.id,
                    seating_group_id=group.id,
                    metadata={"group_code": group.code, "group_size": size},
                )
            )

    if unplaced:
        raise ResourceExhaustedError(
            f"{len(unplaced)} of {len(pending)} seating groups could not be placed",
            code="NO_ROOM_AVAILABLE",
            conflicts=unplaced,
        )
    return planned


def _plan_explicit(db: Session, session: ExamSession, pairs: list[ExplicitPair]) -> list[_Planned]:
    window = TimeWindow.of(session)
    mapped = _mapped_group_ids(db, session.id)
    held: list[HeldRoom] = []
    seen_groups: set[Any] = set()
    planned: list[_Planned] = []
    conflicts: list[ValidationConflict] = []

    for pair in pairs:
        if (pair.seating_group_id is None) == (pair.roster is None):
            conflicts.append(
                ValidationConflict(
                    conflict_type="INVALID_PAIR",
                    message="Each pair needs either a seating group or a roster",
                    session_id=session.id,
                    room_id=pair.room_id,
                )
            )
            continue

        group = None
        roster = None
        if pair.seating_group_id is not None:
            group = db.get(SeatingGroup, pair.seating_group_id)
            if group is None or group.exam_id != session.exam_id or int(group.grade) != int(session.grade):
                conflicts.append(
                    ValidationConflict(
                        conflict_type="GROUP_NOT_IN_SESSION",
                        message="Seating group does not belong to this session's exam and grade",
                        session_id=session.id,
                        seating_group_id=pair.seating_group_id,
                    )
                )
                continue
            if group.id in mapped:
                conflicts.append(
                    ValidationConflict(
                        conflict_type="GROUP_ALREADY_MAPPED",
                        message=f"Group {group.code} already has a room in this session",
                        session_id=session.id,
                        seating_group_id=group.id,
                    )
                )
                continue
            if group.id in seen_groups:
                conflicts.append(
                    ValidationConflict(
                        conflict_type="GROUP_USED_TWICE_IN_BATCH",
                        message=f"Group {group.code} appears more than once",
                        session_id=session.id,
                        seating_group_id=group.id,
                    )
                )
                continue
            seen_groups.add(group.id)
            size = group_sizes(db, [group.id]).get(group.id, 0)
        else:
            roster = [uuid.UUID(str(x)) for x in pair.roster]
            known = set(
                db.execute(
                    select(ExamStudent.id).where(ExamStudent.exam_id == session.exam_id, ExamStudent.id.in_(roster))
                )
                .scalars()
                .all()
            )
            unknown = [x for x in roster if x not in known]
            if unknown:
                conflicts.extend(
                    ValidationConflict(
                        conflict_type="UNKNOWN_STUDENT",
                        message="Student is not registered for this exam",
                        session_id=session.id,
                        exam_student_id=x,
                    )
                    for x in unknown
                )
                continue
            size = len(roster)

        room = db.get(Room, pair.room_id)
        if room is None:
            conflicts.append(
                ValidationConflict(
                    conflict_type="ROOM_NOT_FOUND",
                    message=f"Room {pair.room_id} not found",
                    session_id=session.id,
                    room_id=pair.room_id,
                )
            )
            continue
        reservation = reserve(db, room, session, held)
        if not reservation.ok:
            conflicts.append(reservation.conflict)
            continue
        if int(room.capacity) < size:
            conflicts.append(
                ValidationConflict(
                    conflict_type="CAPACITY_EXCEEDED",
                    message=f"Room {room.code} seats {room.capacity}, {size} needed",
                    session_id=session.id,
                    room_id=room.id,
                    seating_group_id=group.id if group is not None else None,
                    metadata={"room_capacity": int(room.capacity), "needed": size},
                )
            )
            continue
        held.append(HeldRoom(room_id=room.id, window=window))
        planned.append(_Planned(room=reservation.room, group=group, roster=roster))

    if conflicts:
        raise ConflictError(
            f"{len(conflicts)} of {len(pairs)} room assignments are invalid",
            code="MAPPING_CONFLICT",
            conflicts=conflicts,
        )
    return planned


def _next_roster_offset(db: Session, session_id: Any) -> int:
    rows = db.execute(
        select(SessionRoomMapping.roster_offset, SessionRoomMapping.roster).where(
            SessionRoomMapping.session_id == session_id,
            SessionRoomMapping.seating_group_id.is_(None),
        )
    ).all()
    return max((int(offset or 0) + len(roster or []) for offset, roster in rows), default=0)


def _write(db: Session, session: ExamSession, planned: list[_Planned], *, with_seats: bool) -> list[SessionRoomMapping]:
    mappings = [
        SessionRoomMapping(
            id=uuid.uuid4(),
            exam_id=session.exam_id,
            session_id=session.id,
            room_id=p.room.id,
            room_code=p.room.code,
            room_type=p.room.room_type,
            seating_group_id=p.group.id if p.group is not None else None,
            roster=[str(x) for x in p.roster] if p.roster is not None else None,
        )
        for p in planned
    ]

    # Roster mappings take consecutive exam-number ranges after the ones already in the session.
    offset = None
    for mapping, p in zip(mappings, planned):
        if p.roster is None:
            continue
        if offset is None:
            offset = _next_roster_offset(db, session.id)
        mapping.roster_offset = offset
        offset += len(p.roster)

    if with_seats:
        # Seat checks run on the unsaved mappings so a rejected batch writes nothing.
        seen: Counter = Counter()
        for mapping, p in zip(mappings, planned):
            ordered, _grade, _ordinal, group_capacity = seat_assigner.seating_order(db, mapping, session)
            seat_assigner.check_seating(db, mapping, ordered, room=p.room, group_capacity=group_capacity)
            seen.update(set(ordered))
        doubled = [x for x, n in seen.items() if n > 1]
        if doubled:
            raise ConflictError(
                "Students appear in more than one room of this batch",
                code="SEATING_CONFLICT",
                conflicts=[
                    ValidationConflict(
                        conflict_type="STUDENT_ALREADY_SEATED",
                        message="Student listed in two rooms of the same session",
                        session_id=session.id,
                        exam_student_id=x,
                    )
                    for x in doubled
                ],
            )

    db.add_all(mappings)
    db.flush()
    if with_seats:
        for mapping in mappings:
            seat_assigner.assign_seats(db, mapping.id)
    return mappings


def map_session_rooms(
    db: Session,
    session_id: Any,
    explicit_mapping: list[ExplicitPair] | None = None,
    room_type: str | None = "normal",
    assign_seats: bool = True,
) -> list[SessionRoomMapping]:
    """Bind the session's seating groups to rooms, all or nothing."""

    session = get_session(db, session_id)
    ensure_exam_mutable(get_exam(db, session.exam_id))

    try:
        if explicit_mapping is not None:
            planned = _plan_explicit(db, session, list(explicit_mapping))
        else:
            planned = _plan_auto(db, session, room_type)
    except EngineError as exc:
        logger.warning("Room mapping rejected for session=%s: %s (%d conflicts)", session.id, exc.message, len(exc.conflicts))
        raise

    if not planned:
        return []
    mappings = _write(db, session, planned, with_seats=assign_seats)
    logger.info(
        "Mapped %d rooms for session=%s (%s grade %s on %s)",
        len(mappings),
        session.id,
        session.subject,
        session.grade,
        session.date,
    )
    return mappings


def move_mapping(db: Session, mapping_id: Any, new_room_id: Any) -> SessionRoomMapping:
    mapping = get_mapping(db, mapping_id)
    ensure_exam_mutable(get_exam(db, mapping.exam_id))
    session = get_session(db, mapping.session_id)

    room = db.get(Room, new_room_id)
    if room is None:
        raise NotFoundError(f"Room {new_room_id} not found", code="ROOM_NOT_FOUND")
    if room.id == mapping.room_id:
        return mapping

    reservation = reserve(db, room, session, exclude_mapping_id=mapping.id)
    if not reservation.ok:
        raise ConflictError(reservation.conflict.message, code=reservation.conflict.conflict_type, conflicts=[reservation.conflict])

    seated = int(
        db.execute(select(func.count(SeatAssignment.id)).where(SeatAssignment.mapping_id == mapping.id)).scalar_one()
    )
    if mapping.seating_group_id is not None:
        needed = max(seated, group_sizes(db, [mapping.seating_group_id]).get(mapping.seating_group_id, 0))
    else:
        needed = max(seated, len(mapping.roster or []))
    if int(room.capacity) < needed:
        raise ConflictError(
            f"Room {room.code} seats {room.capacity}, {needed} needed",
            code="CAPACITY_EXCEEDED",
            conflicts=[
                ValidationConflict(
                    conflict_type="CAPACITY_EXCEEDED",
                    message=f"Room {room.code} seats {room.capacity}, {needed} needed",
                    session_id=session.id,
                    mapping_id=mapping.id,
                    room_id=room.id,
                )
            ],
        )

    previous = mapping.room_code
    mapping.room_id = room.id
    mapping.room_code = room.code
    mapping.room_type = room.room_type
    db.flush()
    logger.info("Moved mapping=%s from room %s to %s", mapping.id, previous, room.code)
    return mapping


def map_exam_rooms(db: Session, exam_id: Any, room_type: str | None = "normal") -> list[SessionOutcome]:
    """Map every not-yet-mapped session of the exam, one session at a time."""

    exam = ensure_exam_mutable(get_exam(db, exam_id))
    sessions = (
        db.execute(
            select(ExamSession)
            .where(ExamSession.exam_id == exam.id)
            .order_by(ExamSession.date.asc(), ExamSession.start_time.asc(), ExamSession.subject.asc())
        )
        .scalars()
        .all()
    )
    already = set(
        db.execute(select(SessionRoomMapping.session_id).where(SessionRoomMapping.exam_id == exam.id).distinct())
        .scalars()
        .all()
    )

    outcomes: list[SessionOutcome] = []
    for session in sessions:
        if session.id in already:
            outcomes.append(SessionOutcome(session_id=session.id, status="skipped"))
            continue
        try:
            mappings = map_session_rooms(db, session.id, room_type=room_type)
        except (ValidationError, ConflictError, ResourceExhaustedError) as exc:
            outcomes.append(
                SessionOutcome(
                    session_id=session.id,
                    status="failed",
                    code=exc.code,
                    message=exc.message,
                    conflicts=exc.conflicts,
                )
            )
            continue
        outcomes.append(SessionOutcome(session_id=session.id, status="succeeded", mapping_ids=[m.id for m in mappings]))

    counts = Counter(o.status for o in outcomes)
    logger.info(
        "Exam-wide room mapping for exam=%s: %d succeeded, %d skipped, %d failed",
        exam.code,
        counts["succeeded"],
        counts["skipped"],
        counts["failed"],
    )
    return outcomes


def reset_session_mappings(db: Session, session_id: Any) -> int:
    session = get_session(db, session_id)
    ensure_exam_mutable(get_exam(db, session.exam_id))
    mapping_ids = list(
        db.execute(select(SessionRoomMapping.id).where(SessionRoomMapping.session_id == session.id)).scalars().all()
    )
    if not mapping_ids:
        return 0
    db.execute(delete(SeatAssignment).where(SeatAssignment.mapping_id.in_(mapping_ids)))
    db.execute(delete(InvigilatorAssignment).where(InvigilatorAssignment.mapping_id.in_(mapping_ids)))
    db.execute(delete(SessionRoomMapping).where(SessionRoomMapping.id.in_(mapping_ids)))
    db.flush()
    logger.info("Reset %d room mappings of session=%s", len(mapping_ids), session.id)
    return len(mapping_ids)


def list_mappings(db: Session, exam_id: Any, *, page: int = 1, page_size: int = 50) -> tuple[list[SessionRoomMapping], int]:
    exam = get_exam(db, exam_id)
    total = int(
        db.execute(select(func.count(SessionRoomMapping.id)).where(SessionRoomMapping.exam_id == exam.id)).scalar_one()
    )
    rows = (
        db.execute(
            select(SessionRoomMapping)
            .join(ExamSession, ExamSession.id == SessionRoomMapping.session_id)
            .where(SessionRoomMapping.exam_id == exam.id)
            .order_by(ExamSession.date.asc(), ExamSession.start_time.asc(), SessionRoomMapping.room_code.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        .scalars()
        .all()
    )
    return list(rows), total
