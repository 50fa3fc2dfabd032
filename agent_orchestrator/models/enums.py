from enum import Enum


class Role(str, Enum):
    PM = "pm"
    ARCHITECT = "architect"
    CODER = "coder"
    TESTER = "tester"
    SYSTEM = "system"


class PriorityTier(str, Enum):
    P0 = "p0"
    P1 = "p1"
    P2 = "p2"


class OverallStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    IN_REVIEW = "in_review"
    COMPLETED = "completed"


class SectionStatus(str, Enum):
    UNADDRESSED = "unaddressed"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    BLOCKED = "blocked"


class PmDecision(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RecordShape(str, Enum):
    """Persisted record generations understood by the normalizer."""
    CURRENT = "current"
    LEGACY_GEN0 = "legacy_gen0"  # legacy section names, no per-section status
    LEGACY_GEN1 = "legacy_gen1"  # legacy section names with per-section status


class FindingSeverity(str, Enum):
    ERROR = "error"
    WARN = "warn"


# Tier ordering shared by the lint engine and the priority index
TIER_ORDER: dict[str, int] = {
    PriorityTier.P0.value: 0,
    PriorityTier.P1.value: 1,
    PriorityTier.P2.value: 2,
}
UNKNOWN_TIER_ORDER = 99

# Section route name → owning role
SECTION_ROLES: dict[str, Role] = {
    "pm": Role.PM,
    "architecture": Role.ARCHITECT,
    "engineering": Role.CODER,
    "qa": Role.TESTER,
}
