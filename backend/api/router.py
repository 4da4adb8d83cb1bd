from __future__ import annotations

from fastapi import APIRouter

from api.routes import exams, mappings, rooms, sessions, teachers


api_router = APIRouter()
api_router.include_router(rooms.router, prefix="/rooms", tags=["rooms"])
api_router.include_router(teachers.router, prefix="/teachers", tags=["teachers"])
api_router.include_router(exams.router, prefix="/exams", tags=["exams"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
api_router.include_router(mappings.router, prefix="/mappings", tags=["mappings"])
