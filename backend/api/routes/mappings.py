from __future__ import annotations

import uuid
from typing import Iterable

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from api.deps import commit_or_conflict
from core.database import get_db
from models.seat_assignment import SeatAssignment
from models.session_room_mapping import SessionRoomMapping
from schemas.common import ConflictOut
from schemas.invigilator import AssignInvigilatorsRequest, MappingInvigilatorsOut
from schemas.mapping import InvigilatorOut, MappingOut, MoveMappingRequest
from schemas.seating import ResetResponse, SeatOut, SeatsResponse
from services import invigilator_assigner, seat_assigner, slot_mapper
from services.invigilator_assigner import RoleChoice
from services.validation import get_mapping


router = APIRouter()


def conflicts_out(conflicts: Iterable) -> list[ConflictOut]:
    return [ConflictOut(**c.to_dict()) for c in conflicts]


def mappings_out(db: Session, mappings: list[SessionRoomMapping]) -> list[MappingOut]:
    ids = [m.id for m in mappings]
    seat_counts: dict = {}
    if ids:
        seat_counts = dict(
            db.execute(
                select(SeatAssignment.mapping_id, func.count(SeatAssignment.id))
                .where(SeatAssignment.mapping_id.in_(ids))
                .group_by(SeatAssignment.mapping_id)
            ).all()
        )
    invigilators = invigilator_assigner.list_invigilators(db, ids)
    return [
        MappingOut(
            id=m.id,
            exam_id=m.exam_id,
            session_id=m.session_id,
            room_id=m.room_id,
            room_code=m.room_code,
            room_type=str(m.room_type),
            seating_group_id=m.seating_group_id,
            roster=m.roster,
            seat_count=int(seat_counts.get(m.id, 0)),
            invigilators=[InvigilatorOut.model_validate(a) for a in invigilators.get(m.id, [])],
        )
        for m in mappings
    ]


@router.post("/{mapping_id}/move", response_model=MappingOut)
def move_mapping(
    mapping_id: uuid.UUID,
    payload: MoveMappingRequest,
    db: Session = Depends(get_db),
) -> MappingOut:
    mapping = slot_mapper.move_mapping(db, mapping_id, payload.room_id)
    commit_or_conflict(db, code="ROOM_DOUBLE_BOOKED")
    db.refresh(mapping)
    return mappings_out(db, [mapping])[0]


@router.get("/{mapping_id}/seats", response_model=SeatsResponse)
def list_seats(
    mapping_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> SeatsResponse:
    mapping = get_mapping(db, mapping_id)
    seats = seat_assigner.list_seats(db, mapping.id)
    return SeatsResponse(mapping_id=mapping.id, seats=[SeatOut.model_validate(s) for s in seats])


@router.post("/{mapping_id}/seats", response_model=SeatsResponse)
def assign_seats(
    mapping_id: uuid.UUID,
    regenerate: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> SeatsResponse:
    seats = seat_assigner.assign_seats(db, mapping_id, regenerate=regenerate)
    out = [SeatOut.model_validate(s) for s in seats]
    commit_or_conflict(db, code="SEATING_CONFLICT")
    return SeatsResponse(mapping_id=mapping_id, seats=out)


@router.delete("/{mapping_id}/seats", response_model=ResetResponse)
def reset_seats(
    mapping_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> ResetResponse:
    deleted = seat_assigner.reset_seats(db, mapping_id)
    commit_or_conflict(db)
    return ResetResponse(deleted=deleted)


@router.put("/{mapping_id}/invigilators", response_model=MappingInvigilatorsOut)
def set_invigilators(
    mapping_id: uuid.UUID,
    payload: AssignInvigilatorsRequest,
    db: Session = Depends(get_db),
) -> MappingInvigilatorsOut:
    choices = [RoleChoice(teacher_id=c.teacher_id, role=c.role) for c in payload.invigilators]
    mapping = invigilator_assigner.assign(db, mapping_id, choices)
    commit_or_conflict(db, code="TEACHER_DOUBLE_BOOKED")
    rows = invigilator_assigner.list_invigilators(db, [mapping.id])[mapping.id]
    return MappingInvigilatorsOut(mapping_id=mapping.id, invigilators=[InvigilatorOut.model_validate(r) for r in rows])
