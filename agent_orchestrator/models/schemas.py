"""
Requirement data schemas.

A Requirement has four role-owned sections. Section models are closed:
unknown fields are rejected, because a role writes its section wholesale.
Enum fields are stored as their plain string values so the models dump
straight to the persisted JSON layout.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from .enums import (
    OverallStatus,
    PmDecision,
    PriorityTier,
    Role,
    SectionStatus,
)

# Ranks stay below this bound so (tier, rank) packs into one exact float score
RANK_LIMIT = 10**12

_http_url = TypeAdapter(AnyHttpUrl)


class _Closed(BaseModel):
    model_config = ConfigDict(extra="forbid", use_enum_values=True)


# ── Priority ─────────────────────────────────────────────


class Priority(_Closed):
    """A PM-assigned priority as accepted from clients."""
    tier: PriorityTier
    rank: int = Field(strict=True, gt=0, lt=RANK_LIMIT)


class PriorityKey(BaseModel):
    """Stored priority. Legacy records may carry the placeholder ("", 0)."""
    tier: str = ""
    rank: int = 0

    @property
    def is_assigned(self) -> bool:
        return bool(self.tier) and self.rank > 0

    def as_tuple(self) -> tuple[str, int]:
        return (self.tier, self.rank)


# ── Sections ─────────────────────────────────────────────


class PmSection(_Closed):
    status: SectionStatus
    direction: str
    feedback: str
    decision: PmDecision


class ArchitectSection(_Closed):
    status: SectionStatus
    design_spec: str


class PullRequest(_Closed):
    number: int = Field(strict=True, ge=0)
    title: str
    url: str
    commit: str

    @field_validator("url")
    @classmethod
    def _well_formed_url(cls, value: str) -> str:
        # Validate without rewriting; AnyHttpUrl would normalize the string
        _http_url.validate_python(value)
        return value


class CoderSection(_Closed):
    status: SectionStatus
    implementation_notes: str
    pr: Optional[PullRequest] = None


class TestCase(_Closed):
    __test__ = False  # not a pytest class

    id: str
    title: str
    steps: str
    expected: str
    status: str
    notes: str


class TestResults(_Closed):
    __test__ = False

    status: str
    notes: str


def _empty_results() -> TestResults:
    return TestResults(status="", notes="")


class TesterSection(_Closed):
    status: SectionStatus
    test_plan: str
    test_cases: list[TestCase] = Field(default_factory=list)
    test_results: TestResults = Field(default_factory=_empty_results)


class Sections(_Closed):
    pm: PmSection
    architect: ArchitectSection
    coder: CoderSection
    tester: TesterSection


# Defaults used when a section has never been written
SECTION_DEFAULTS: dict[str, dict] = {
    "pm": {
        "status": SectionStatus.UNADDRESSED.value,
        "direction": "",
        "feedback": "",
        "decision": PmDecision.PENDING.value,
    },
    "architect": {
        "status": SectionStatus.UNADDRESSED.value,
        "design_spec": "",
    },
    "coder": {
        "status": SectionStatus.UNADDRESSED.value,
        "implementation_notes": "",
        "pr": None,
    },
    "tester": {
        "status": SectionStatus.UNADDRESSED.value,
        "test_plan": "",
        "test_cases": [],
        "test_results": {"status": "", "notes": ""},
    },
}


def default_sections() -> Sections:
    return Sections.model_validate(SECTION_DEFAULTS)


# ── Requirement ──────────────────────────────────────────


class Requirement(BaseModel):
    """A requirement as held in the store."""
    model_config = ConfigDict(use_enum_values=True)

    req_id: str
    title: str = ""
    priority: PriorityKey = Field(default_factory=PriorityKey)
    overall_status: OverallStatus = OverallStatus.NOT_STARTED.value
    sections: Sections = Field(default_factory=default_sections)

    @classmethod
    def new(cls, req_id: str, title: str, priority: PriorityKey | None = None) -> "Requirement":
        """A fresh requirement: every section unaddressed, not started."""
        return cls(req_id=req_id, title=title, priority=priority or PriorityKey())


# ── Request bodies ───────────────────────────────────────


class PmUpdate(_Closed):
    section: PmSection
    priority: Optional[Priority] = None


class ArchitectUpdate(_Closed):
    section: ArchitectSection


class CoderUpdate(_Closed):
    section: CoderSection


class TesterUpdate(_Closed):
    section: TesterSection


class StatusUpdate(_Closed):
    overall_status: OverallStatus


class BulkRequirementEntry(_Closed):
    req_id: str
    title: str
    priority: Priority


class BulkRequest(_Closed):
    requirements: list[BulkRequirementEntry] = Field(min_length=1)


# ── Audit Trail ──────────────────────────────────────────


class AuditActor(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    role: Role
    id: str


SYSTEM_MIGRATION_ACTOR = AuditActor(role=Role.SYSTEM, id="migration")


class AuditEntry(BaseModel):
    """One append-only audit record. Every field is a flat string."""
    ts: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    actor_role: str
    actor_id: str
    action: str
    req_id: str
    outcome: str = "success"
    details: str = ""

    def to_fields(self) -> dict[str, str]:
        return self.model_dump()
