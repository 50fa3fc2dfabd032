"""
State Normalizer — converts persisted requirement records of any supported
generation into the current Requirement shape.

Three generations are recognised (see RecordShape):
  CURRENT      — carries a ``sections`` object and ``overall_status``
  LEGACY_GEN1  — flat ``pm/architecture/engineering/qa`` sections with their
                 own ``status`` and a legacy top-level ``status``
  LEGACY_GEN0  — the same flat sections without per-section ``status``

The shape is classified once, then handled by the matching entry in
``_SECTION_READERS``.  Normalizing an already-current record is a no-op.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable

from pydantic import ValidationError

from agent_orchestrator.models.enums import OverallStatus, PmDecision, RecordShape, SectionStatus
from agent_orchestrator.models.schemas import SECTION_DEFAULTS, PullRequest, Requirement, TestCase, TestResults

logger = logging.getLogger(__name__)

# Legacy top-level status → overall_status
LEGACY_STATUS_MAP: dict[str, str] = {
    "ready_for_pm_review": OverallStatus.IN_REVIEW.value,
    "done": OverallStatus.COMPLETED.value,
    "blocked": OverallStatus.BLOCKED.value,
    "open": OverallStatus.NOT_STARTED.value,
}

# Legacy section name → current role section name
LEGACY_SECTION_NAMES: dict[str, str] = {
    "pm": "pm",
    "architecture": "architect",
    "engineering": "coder",
    "qa": "tester",
}

_OVERALL_STATUSES = {s.value for s in OverallStatus}
_SECTION_STATUSES = {s.value for s in SectionStatus}
_PM_DECISIONS = {d.value for d in PmDecision}


def normalize_overall_status(status: Any) -> str:
    if isinstance(status, str):
        if status in LEGACY_STATUS_MAP:
            return LEGACY_STATUS_MAP[status]
        if status in _OVERALL_STATUSES:
            return status
    return OverallStatus.NOT_STARTED.value


def classify_record(raw: dict[str, Any]) -> RecordShape:
    if isinstance(raw.get("sections"), dict):
        return RecordShape.CURRENT
    for legacy_name in LEGACY_SECTION_NAMES:
        section = raw.get(legacy_name)
        if isinstance(section, dict) and "status" in section:
            return RecordShape.LEGACY_GEN1
    return RecordShape.LEGACY_GEN0


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _test_cases(value: Any) -> list[dict[str, str]]:
    if not isinstance(value, list):
        return []
    # partial cases keep their known fields; missing ones become ""
    return [
        {field: _text(case.get(field)) for field in TestCase.model_fields}
        for case in value
        if isinstance(case, dict)
    ]


def _test_results(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return copy.deepcopy(SECTION_DEFAULTS["tester"]["test_results"])
    return {field: _text(value.get(field)) for field in TestResults.model_fields}


def _pull_request(value: Any) -> dict[str, Any] | None:
    if not isinstance(value, dict):
        return None
    known = {field: value[field] for field in PullRequest.model_fields if field in value}
    try:
        return PullRequest.model_validate(known).model_dump()
    except ValidationError as exc:
        logger.debug(f"Dropping unusable pull request {value}: {exc}")
        return None


_NESTED_READERS: dict[str, Callable[[Any], Any]] = {
    "test_cases": _test_cases,
    "test_results": _test_results,
    "pr": _pull_request,
}


def _normalize_section(name: str, value: Any) -> dict[str, Any]:
    """Overlay a stored section onto its defaults, coercing every field to its schema."""
    section = copy.deepcopy(SECTION_DEFAULTS[name])
    if not isinstance(value, dict):
        return section

    dropped = [key for key in value if key not in section]
    if dropped:
        logger.debug(f"Dropping unknown {name} section fields: {dropped}")

    for key in section:
        if key not in value or value[key] is None:
            continue
        if key in ("status", "decision"):
            section[key] = value[key]
        else:
            section[key] = _NESTED_READERS.get(key, _text)(value[key])

    if not isinstance(section["status"], str) or section["status"] not in _SECTION_STATUSES:
        section["status"] = SectionStatus.UNADDRESSED.value
    if name == "pm" and (not isinstance(section["decision"], str) or section["decision"] not in _PM_DECISIONS):
        section["decision"] = PmDecision.PENDING.value
    return section


def _current_sections(raw: dict[str, Any]) -> dict[str, Any]:
    stored = raw["sections"]
    return {name: _normalize_section(name, stored.get(name)) for name in SECTION_DEFAULTS}


def _legacy_sections(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        current: _normalize_section(current, raw.get(legacy))
        for legacy, current in LEGACY_SECTION_NAMES.items()
    }


def _current_status(raw: dict[str, Any]) -> str:
    if "overall_status" in raw:
        return normalize_overall_status(raw["overall_status"])
    return normalize_overall_status(raw.get("status"))


def _legacy_status(raw: dict[str, Any]) -> str:
    return normalize_overall_status(raw.get("status", raw.get("overall_status")))


_SECTION_READERS: dict[RecordShape, tuple[Callable, Callable]] = {
    RecordShape.CURRENT: (_current_sections, _current_status),
    RecordShape.LEGACY_GEN1: (_legacy_sections, _legacy_status),
    RecordShape.LEGACY_GEN0: (_legacy_sections, _legacy_status),
}


def _priority(raw: dict[str, Any]) -> dict[str, Any]:
    priority = raw.get("priority")
    if not isinstance(priority, dict):
        return {"tier": "", "rank": 0}
    tier = priority.get("tier")
    rank = priority.get("rank")
    return {
        "tier": tier if isinstance(tier, str) else "",
        "rank": rank if isinstance(rank, int) and not isinstance(rank, bool) else 0,
    }


def normalize_requirement(req_id: str, raw: Any) -> Requirement:
    """
    Return *raw* in the current Requirement shape.

    Every field is coerced to its schema first: partial test cases are
    padded with "", an unusable ``pr`` becomes None and malformed test
    results fall back to their defaults.
    """
    if isinstance(raw, Requirement):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        raw = {}

    shape = classify_record(raw)
    read_sections, read_status = _SECTION_READERS[shape]

    title = raw.get("title")
    record = {
        "req_id": _text(raw.get("req_id")) or _text(raw.get("id")) or req_id,
        "title": _text(title),
        "priority": _priority(raw),
        "overall_status": read_status(raw),
        "sections": read_sections(raw),
    }
    return Requirement.model_validate(record)
