from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.errors import ConflictError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageParams:
    page: int
    page_size: int


def get_page_params(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
) -> PageParams:
    return PageParams(page=page, page_size=page_size)


def commit_or_conflict(db: Session, *, code: str = "CONFLICT") -> None:
    """Commit the request transaction; a unique-constraint race becomes a 409."""

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Commit rejected by a database constraint (%s): %s", code, exc.orig)
        raise ConflictError("Another request changed the same records; reload and retry", code=code) from exc
