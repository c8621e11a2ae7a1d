"""Helpers shared by the mutating services."""
from datetime import datetime, timezone
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from control_plane.exceptions import ConflictError, ValidationError

M = TypeVar("M", bound=BaseModel)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_input(model: Type[M], data: Any) -> M:
    """Validate caller input into ``model``; pydantic errors become ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        details = [
            {"field": ".".join(str(p) for p in err["loc"]) or "body", "error": err["msg"]}
            for err in exc.errors()
        ]
        raise ValidationError("Invalid input", details) from exc


def evolve(record: M, **changes) -> M:
    """Validated copy of a frozen record with ``changes`` applied."""
    return type(record).model_validate({**record.model_dump(), **changes})


def check_expected_version(kind: str, record, expected_version: Optional[int]) -> None:
    if expected_version is not None and record.version != expected_version:
        raise ConflictError(
            f"{kind} '{record.id}' is at version {record.version}, not {expected_version}; "
            "re-read and retry"
        )
