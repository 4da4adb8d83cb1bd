from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.deps import commit_or_conflict
from api.routes.mappings import conflicts_out, mappings_out
from core.database import get_db
from schemas.invigilator import PlannedRoleOut, SessionInvigilationOut, UnfilledRoleOut
from schemas.mapping import MapSessionRequest, MapSessionResponse
from schemas.seating import ResetResponse
from services import invigilator_assigner, slot_mapper
from services.invigilator_assigner import InvigilationResult
from services.slot_mapper import ExplicitPair


router = APIRouter()


def invigilation_out(result: InvigilationResult) -> SessionInvigilationOut:
    return SessionInvigilationOut(
        session_id=result.session_id,
        status=result.status,
        assigned=[PlannedRoleOut.model_validate(a) for a in result.assigned],
        unfilled=[
            UnfilledRoleOut(mapping_id=u.mapping_id, room_code=u.label, role=u.role, reason=u.reason)
            for u in result.unfilled
        ],
        code=result.code,
        message=result.message,
        conflicts=conflicts_out(result.conflicts),
    )


@router.post("/{session_id}/mappings", response_model=MapSessionResponse)
def map_session_rooms(
    session_id: uuid.UUID,
    payload: MapSessionRequest | None = None,
    db: Session = Depends(get_db),
) -> MapSessionResponse:
    payload = payload or MapSessionRequest()
    explicit = None
    if not payload.auto:
        explicit = [
            ExplicitPair(room_id=p.room_id, seating_group_id=p.seating_group_id, roster=p.roster)
            for p in payload.explicit_mapping or []
        ]
    mappings = slot_mapper.map_session_rooms(
        db,
        session_id,
        explicit_mapping=explicit,
        room_type=payload.room_type,
        assign_seats=payload.assign_seats,
    )
    out = mappings_out(db, mappings)
    commit_or_conflict(db, code="ROOM_DOUBLE_BOOKED")
    return MapSessionResponse(mappings=out)


@router.delete("/{session_id}/mappings", response_model=ResetResponse)
def reset_session_mappings(
    session_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> ResetResponse:
    deleted = slot_mapper.reset_session_mappings(db, session_id)
    commit_or_conflict(db)
    return ResetResponse(deleted=deleted)


@router.post("/{session_id}/invigilators/auto", response_model=SessionInvigilationOut)
def auto_assign_invigilators(
    session_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> SessionInvigilationOut:
    result = invigilator_assigner.auto_assign_session(db, session_id)
    out = invigilation_out(result)
    commit_or_conflict(db, code="TEACHER_DOUBLE_BOOKED")
    return out
