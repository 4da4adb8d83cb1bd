from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable


@dataclass(frozen=True)
class ValidationConflict:
    conflict_type: str
    message: str
    severity: str = "ERROR"
    session_id: Any | None = None
    mapping_id: Any | None = None
    room_id: Any | None = None
    seating_group_id: Any | None = None
    teacher_id: Any | None = None
    exam_student_id: Any | None = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["metadata"] = dict(self.metadata or {})
        return {k: (str(v) if k.endswith("_id") and v is not None else v) for k, v in data.items()}


class EngineError(Exception):
    """Base class for errors raised by the assignment engine.

    Every error is raised before anything is committed, so the caller can fix the
    input (or pick another room/teacher/time) and retry.
    """

    status_code = 400
    default_code = "ENGINE_ERROR"

    def __init__(self, message: str, *, code: str | None = None, conflicts: Iterable[ValidationConflict] = ()):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.conflicts: list[ValidationConflict] = list(conflicts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "conflicts": [c.to_dict() for c in self.conflicts],
        }


class ValidationError(EngineError):
    """Bad input (missing grade, non-positive capacity, unknown role...)."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFoundError(EngineError):
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(EngineError):
    """Room/teacher double-booking or a duplicate seat."""

    status_code = 409
    default_code = "CONFLICT"


class ResourceExhaustedError(EngineError):
    """No room or teacher candidate left for one or more items of a batch."""

    status_code = 409
    default_code = "RESOURCE_EXHAUSTED"


class StateError(EngineError):
    """Mutation attempted on a locked or archived exam."""

    status_code = 423
    default_code = "EXAM_LOCKED"


class CapacityExceededWarning(UserWarning):
    """A partition had to exceed the caller's preferred group size.

    Returned alongside results, never raised.
    """

    def __init__(self, *, grade: int, requested_per_group: int, effective_per_group: int, group_count: int):
        self.grade = grade
        self.requested_per_group = requested_per_group
        self.effective_per_group = effective_per_group
        self.group_count = group_count
        super().__init__(self.message)

    @property
    def message(self) -> str:
        return (
            f"Grade {self.grade}: {self.group_count} groups allowed, so groups hold up to "
            f"{self.effective_per_group} students instead of {self.requested_per_group}."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": "CAPACITY_EXCEEDED",
            "message": self.message,
            "grade": self.grade,
            "requested_per_group": self.requested_per_group,
            "effective_per_group": self.effective_per_group,
            "group_count": self.group_count,
        }
