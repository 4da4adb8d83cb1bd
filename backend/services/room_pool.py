from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from allocation.conflicts import TimeWindow, overlaps, room_clashes
from core.errors import ValidationConflict
from models.exam_session import ExamSession
from models.room import Room
from services.validation import load_bookings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeldRoom:
    """A room already claimed by the batch being planned."""

    room_id: Any
    window: TimeWindow


@dataclass(frozen=True)
class Reservation:
    room: Room
    ok: bool
    conflict: ValidationConflict | None = None


def list_available(
    db: Session,
    window: TimeWindow,
    room_type: str | None = None,
    min_capacity: int = 0,
    exclude_mapping_id: Any | None = None,
) -> list[Room]:
    """Rooms usable for ``window``, ordered by code."""

    q = select(Room).where(Room.status == "available", Room.capacity >= int(min_capacity))
    if room_type:
        q = q.where(Room.room_type == room_type)
    rooms = db.execute(q.order_by(Room.code.asc())).scalars().all()

    bookings = load_bookings(db, window.date)
    return [r for r in rooms if not room_clashes(r.id, window, bookings, exclude_mapping_id=exclude_mapping_id)]


def _held_clash(room_id: Any, window: TimeWindow, held: Iterable[HeldRoom]) -> bool:
    for h in held:
        if h.room_id == room_id and overlaps(h.window, window):
            return True
    return False


def reserve(
    db: Session,
    room: Room,
    session: ExamSession,
    held: Iterable[HeldRoom] = (),
    exclude_mapping_id: Any | None = None,
) -> Reservation:
    """Lock the room row and re-check it against committed and batch state.

    The row lock lasts until the caller's transaction ends.
    """

    window = TimeWindow.of(session)
    locked = db.execute(select(Room).where(Room.id == room.id).with_for_update()).scalar_one_or_none()
    if locked is None or str(locked.status) != "available":
        return Reservation(
            room=room,
            ok=False,
            conflict=ValidationConflict(
                conflict_type="ROOM_UNAVAILABLE",
                message=f"Room {room.code} is not available",
                session_id=session.id,
                room_id=room.id,
            ),
        )

    if _held_clash(locked.id, window, held):
        return Reservation(
            room=locked,
            ok=False,
            conflict=ValidationConflict(
                conflict_type="ROOM_USED_TWICE_IN_BATCH",
                message=f"Room {locked.code} is already used by another group in this batch",
                session_id=session.id,
                room_id=locked.id,
            ),
        )

    clashes = room_clashes(locked.id, window, load_bookings(db, window.date), exclude_mapping_id=exclude_mapping_id)
    if clashes:
        logger.debug("Room %s busy during %s (%d clashes)", locked.code, window.label(), len(clashes))
        return Reservation(
            room=locked,
            ok=False,
            conflict=ValidationConflict(
                conflict_type="ROOM_DOUBLE_BOOKED",
                message=f"Room {locked.code} is already booked during {window.label()}",
                session_id=session.id,
                room_id=locked.id,
                mapping_id=clashes[0].mapping_id,
                metadata={"clashing_session_ids": [str(c.session_id) for c in clashes]},
            ),
        )

    return Reservation(room=locked, ok=True)
