from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic.aliases import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=BACKEND_DIR / ".env", env_file_encoding="utf-8")

    database_url: str

    # Runtime
    environment: str = Field(default="development", validation_alias=AliasChoices("environment", "ENVIRONMENT"))
    frontend_origin: str = Field(
        default="http://localhost:5173",
        validation_alias=AliasChoices("frontend_origin", "FRONTEND_ORIGIN"),
    )

    # Create missing tables on startup (Base.metadata.create_all).
    auto_create_schema: bool = Field(
        default=True,
        validation_alias=AliasChoices("auto_create_schema", "AUTO_CREATE_SCHEMA"),
    )

    # Defaults applied to new exams when the request does not set them.
    default_max_students_per_room: int = Field(
        default=24,
        ge=1,
        validation_alias=AliasChoices("default_max_students_per_room", "DEFAULT_MAX_STUDENTS_PER_ROOM"),
    )
    default_invigilators_per_room: int = Field(
        default=2,
        validation_alias=AliasChoices("default_invigilators_per_room", "DEFAULT_INVIGILATORS_PER_ROOM"),
    )

    @field_validator("frontend_origin")
    @classmethod
    def _normalize_frontend_origin(cls, v: str) -> str:
        # Starlette CORS expects the Origin to match exactly (no trailing slash).
        return v.strip().rstrip("/")

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, v: str) -> str:
        return (v or "development").strip().lower()

    @field_validator("default_invigilators_per_room")
    @classmethod
    def _check_invigilators_per_room(cls, v: int) -> int:
        if v not in (1, 2):
            raise ValueError("DEFAULT_INVIGILATORS_PER_ROOM must be 1 or 2")
        return v


settings = Settings()
