"""
Plan Rules — structural and semantic checks applied to a plan before its
slices enter the requirement workflow.

Errors block acceptance of the plan; warnings are advisory.  Every rule
runs independently, except that an empty slice list stops linting after
P-002.  Nothing here raises for a rule violation: findings are data.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

from agent_orchestrator.models.enums import FindingSeverity, TIER_ORDER, UNKNOWN_TIER_ORDER
from agent_orchestrator.models.plan import LintFinding, LintReport, Plan, Slice
from agent_orchestrator.models.validation import validate_shape

logger = logging.getLogger(__name__)

PLAN_VERSION = "1.0"
MIN_ACCEPTANCE_CRITERIA = 3
SLICE_ID_PATTERN = re.compile(r"REQ-[0-9]+")


def _error(code: str, message: str, path: str, req_id: str | None = None) -> LintFinding:
    return LintFinding(severity=FindingSeverity.ERROR, code=code, message=message, path=path, req_id=req_id)


def _warn(code: str, message: str, path: str, req_id: str | None = None) -> LintFinding:
    return LintFinding(severity=FindingSeverity.WARN, code=code, message=message, path=path, req_id=req_id)


def tier_order(tier: str) -> int:
    return TIER_ORDER.get(tier, UNKNOWN_TIER_ORDER)


def _is_blank(value: str) -> bool:
    return not value.strip()


def _out_of_scope_ok(entries: list[str]) -> bool:
    normalized = [entry.strip().lower() for entry in entries]
    if normalized == ["none"]:
        return True
    if not any(normalized):
        return False
    return "none" not in normalized


# ── Shape ────────────────────────────────────────────────


def validate_plan_shape(raw: Any) -> tuple[Plan | None, list[LintFinding]]:
    """Parse *raw* into a Plan, or report P-SHAPE findings."""
    plan, issues = validate_shape(Plan, raw, base="/plan")
    findings = [_error("P-SHAPE", issue.message, issue.path) for issue in issues]
    return plan, findings


# ── Per-slice checks ─────────────────────────────────────


def _check_slice(
    slice_: Slice,
    index: int,
    seen_ids: set[str],
    seen_priorities: set[tuple[str, int | float]],
) -> list[LintFinding]:
    base = f"/plan/slices/{index}"
    req_id = slice_.id
    errors: list[LintFinding] = []

    if not SLICE_ID_PATTERN.fullmatch(req_id):
        errors.append(_error("P-003", "slice.id must match REQ-n", f"{base}/id", req_id))

    if req_id in seen_ids:
        errors.append(_error("P-004", "slice.id must be unique", f"{base}/id", req_id))
    seen_ids.add(req_id)

    if _is_blank(slice_.title):
        errors.append(_error("P-005", "slice.title must be non-empty", f"{base}/title", req_id))

    if _is_blank(slice_.direction):
        errors.append(_error("P-006", "slice.direction must be non-empty", f"{base}/direction", req_id))

    criteria = [entry for entry in slice_.acceptance_criteria if not _is_blank(entry)]
    if len(criteria) < MIN_ACCEPTANCE_CRITERIA:
        errors.append(_error(
            "P-007",
            f"acceptance_criteria must include at least {MIN_ACCEPTANCE_CRITERIA} non-empty entries",
            f"{base}/acceptance_criteria",
            req_id,
        ))

    if not _out_of_scope_ok(slice_.out_of_scope):
        errors.append(_error(
            "P-008",
            'out_of_scope must be ["none"] or a list of non-empty strings',
            f"{base}/out_of_scope",
            req_id,
        ))

    tier = slice_.priority.tier
    rank = slice_.priority.rank
    if tier not in TIER_ORDER:
        errors.append(_error("P-009", "priority.tier must be one of p0, p1, p2", f"{base}/priority/tier", req_id))

    # JSON has one number type; 2.0 counts as an integer
    integral = isinstance(rank, int) or rank.is_integer()
    if not integral or rank <= 0:
        errors.append(_error("P-010", "priority.rank must be a positive integer", f"{base}/priority/rank", req_id))

    # 1 and 1.0 compare and hash equal, so they collide here
    key = (tier, rank)
    if key in seen_priorities:
        errors.append(_error("P-011", "priority tier+rank pair must be unique", f"{base}/priority", req_id))
    seen_priorities.add(key)

    return errors


# ── Plan-wide checks ─────────────────────────────────────


def _check_dependencies(slices: list[Slice]) -> list[LintFinding]:
    known = {slice_.id for slice_ in slices}
    warnings: list[LintFinding] = []
    for index, slice_ in enumerate(slices):
        for dep_index, dep in enumerate(slice_.dependencies):
            if dep not in known:
                warnings.append(_warn(
                    "P-012",
                    f"dependency {dep} should reference an existing slice id",
                    f"/plan/slices/{index}/dependencies/{dep_index}",
                    slice_.id,
                ))
    return warnings


def _check_ordering(slices: list[Slice]) -> list[LintFinding]:
    keys = [(tier_order(s.priority.tier), s.priority.rank) for s in slices]
    if keys != sorted(keys):
        return [_warn("P-013", "slices should be ordered by priority tier then rank", "/plan/slices")]
    return []


def lint_plan(plan: Plan) -> LintReport:
    """Run the full rule battery over an already shape-checked plan."""
    report = LintReport()

    if plan.version != PLAN_VERSION:
        report.errors.append(_error("P-001", f'plan.version must equal "{PLAN_VERSION}"', "/plan/version"))

    if not plan.slices:
        report.errors.append(_error("P-002", "plan.slices must have at least one entry", "/plan/slices"))
        return report

    seen_ids: set[str] = set()
    seen_priorities: set[tuple[str, int | float]] = set()
    for index, slice_ in enumerate(plan.slices):
        report.errors.extend(_check_slice(slice_, index, seen_ids, seen_priorities))

    report.warnings.extend(_check_dependencies(plan.slices))
    report.warnings.extend(_check_ordering(plan.slices))

    logger.debug(
        f"Linted plan: {len(plan.slices)} slices, "
        f"{len(report.errors)} errors, {len(report.warnings)} warnings"
    )
    return report


def lint_plan_payload(raw: Any) -> dict[str, Any]:
    """Shape-check and lint untyped input, returning the response document."""
    plan, shape_findings = validate_plan_shape(raw)
    checked_at = datetime.now(timezone.utc).isoformat()

    if plan is None:
        return {
            "ok": False,
            "errors": [f.to_dict() for f in shape_findings],
            "warnings": [],
            "meta": {"checked_at": checked_at, "requirements_found": 0},
        }

    report = lint_plan(plan)
    return {
        "ok": report.ok,
        "errors": [f.to_dict() for f in report.errors],
        "warnings": [f.to_dict() for f in report.warnings],
        "meta": {"checked_at": checked_at, "requirements_found": len(plan.slices)},
    }
