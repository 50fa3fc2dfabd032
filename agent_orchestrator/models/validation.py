"""
Shape validation — turns untyped input into typed models or a list of
(path, message) issues. Never touches the store.
"""

from __future__ import annotations

from typing import Any, Sequence, TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class ShapeIssue(BaseModel):
    path: str
    message: str


def format_path(base: str, loc: Sequence[Any]) -> str:
    """Join a pydantic error location onto a JSON-pointer style base path."""
    suffix = "/".join(str(part) for part in loc if str(part))
    if not suffix:
        return base or "/"
    return f"{base}/{suffix}"


def issues_from_error(exc: ValidationError, base: str = "") -> list[ShapeIssue]:
    return [
        ShapeIssue(path=format_path(base, err.get("loc", ())), message=err.get("msg", "invalid"))
        for err in exc.errors()
    ]


def validate_shape(
    model: type[ModelT],
    data: Any,
    base: str = "",
) -> tuple[ModelT | None, list[ShapeIssue]]:
    """Validate *data* against *model*; exactly one side of the pair is populated."""
    try:
        return model.model_validate(data), []
    except ValidationError as exc:
        return None, issues_from_error(exc, base)
