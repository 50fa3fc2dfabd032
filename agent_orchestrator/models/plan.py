"""
Plan schemas — transient input to the plan lint engine, never persisted.

The shape here is deliberately loose (any tier string, any number for rank);
judging those values is the lint rules' job.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, StrictFloat, StrictInt, StrictStr

from .enums import FindingSeverity


class SlicePriority(BaseModel):
    tier: StrictStr
    rank: Union[StrictInt, StrictFloat]


class Slice(BaseModel):
    """One unit of a plan — a requirement-to-be."""
    id: StrictStr
    title: StrictStr
    priority: SlicePriority
    direction: StrictStr
    acceptance_criteria: list[StrictStr]
    out_of_scope: list[StrictStr]
    dependencies: list[StrictStr]
    notes: Optional[StrictStr] = None


class Plan(BaseModel):
    version: StrictStr
    slices: list[Slice]


class LintFinding(BaseModel):
    severity: FindingSeverity
    code: str
    message: str
    path: str
    req_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class LintReport(BaseModel):
    errors: list[LintFinding] = []
    warnings: list[LintFinding] = []

    @property
    def ok(self) -> bool:
        return not self.errors
