from __future__ import annotations

import logging

from sqlalchemy.engine import Engine

import models  # noqa: F401  (registers every table on Base.metadata)
from core.database import ENGINE
from models.base import Base


logger = logging.getLogger(__name__)


def ensure_schema(engine: Engine | None = None) -> None:
    """Create missing tables. Existing tables are left untouched.

    This function is safe to run on every startup.
    """

    bind = engine or ENGINE
    Base.metadata.create_all(bind=bind)
    logger.debug("Schema ensured (%d tables)", len(Base.metadata.tables))
