from __future__ import annotations

import logging
import uuid
from datetime import date, time

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from allocation.conflicts import TimeWindow
from api.deps import commit_or_conflict
from core.database import get_db
from models.room import Room
from models.session_room_mapping import SessionRoomMapping
from schemas.room import RoomCreate, RoomOut, RoomType, RoomUpdate
from services.room_pool import list_available


logger = logging.getLogger(__name__)


router = APIRouter()


def _ensure_unique_room_code(db: Session, *, code: str) -> None:
    if db.execute(select(Room.id).where(Room.code == code).limit(1)).first() is not None:
        raise HTTPException(status_code=409, detail="ROOM_CODE_ALREADY_EXISTS")


@router.get("/", response_model=list[RoomOut])
def list_rooms(
    status: str | None = Query(default=None),
    room_type: RoomType | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[RoomOut]:
    q = select(Room)
    if status:
        q = q.where(Room.status == status)
    if room_type:
        q = q.where(Room.room_type == room_type)
    return db.execute(q.order_by(Room.code.asc())).scalars().all()


@router.get("/available", response_model=list[RoomOut])
def available_rooms(
    on_date: date = Query(alias="date"),
    start_time: time = Query(),
    end_time: time = Query(),
    room_type: RoomType | None = Query(default=None),
    min_capacity: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> list[RoomOut]:
    if end_time <= start_time:
        raise HTTPException(status_code=400, detail="INVALID_TIME_RANGE")
    window = TimeWindow(date=on_date, start=start_time, end=end_time)
    return list_available(db, window, room_type=room_type, min_capacity=min_capacity)


@router.post("/", response_model=RoomOut)
def create_room(
    payload: RoomCreate,
    db: Session = Depends(get_db),
) -> RoomOut:
    data = payload.model_dump()
    data["code"] = str(data["code"]).strip()
    if data.get("name") is not None:
        data["name"] = str(data["name"]).strip() or None
    if data.get("note") is not None:
        data["note"] = str(data["note"]).strip() or None
    if not data["code"]:
        raise HTTPException(status_code=400, detail="INVALID_CODE")

    _ensure_unique_room_code(db, code=data["code"])

    room = Room(**data)
    db.add(room)
    commit_or_conflict(db, code="ROOM_CODE_ALREADY_EXISTS")
    db.refresh(room)
    return room


@router.patch("/{room_id}", response_model=RoomOut)
def update_room(
    room_id: uuid.UUID,
    payload: RoomUpdate,
    db: Session = Depends(get_db),
) -> RoomOut:
    room = db.get(Room, room_id)
    if room is None:
        raise HTTPException(status_code=404, detail="ROOM_NOT_FOUND")

    updates = payload.model_dump(exclude_unset=True)
    for k, v in updates.items():
        setattr(room, k, v)

    if "room_type" in updates:
        # Mappings keep a copy of the room type.
        mapped = db.execute(select(SessionRoomMapping).where(SessionRoomMapping.room_id == room.id)).scalars().all()
        for m in mapped:
            m.room_type = room.room_type
    if "status" in updates and updates["status"] != "available":
        in_use = db.execute(select(SessionRoomMapping.id).where(SessionRoomMapping.room_id == room.id).limit(1)).first()
        if in_use is not None:
            logger.warning(
                "Room %s set to %s while still mapped to exam sessions",
                str(room.code),
                str(updates["status"]),
            )

    commit_or_conflict(db)
    db.refresh(room)
    return room
