"""
Requirement Service — role-gated read-modify-write cycles against the store.

Every mutation follows the same steps: role check (before the store is
touched), body validation, fetch + normalize, one logical change, priority
uniqueness check when priority moves, then a single audited save.

Read-modify-write is last-writer-wins; there is no optimistic concurrency
check between the fetch and the save.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from agent_orchestrator.errors import AuthError, ConflictError, NotFoundError, ShapeError
from agent_orchestrator.models.enums import SECTION_ROLES, Role
from agent_orchestrator.models.schemas import (
    ArchitectUpdate,
    AuditActor,
    BulkRequest,
    CoderUpdate,
    PmUpdate,
    PriorityKey,
    Requirement,
    StatusUpdate,
    TesterUpdate,
)
from agent_orchestrator.models.validation import validate_shape
from agent_orchestrator.persistence.requirement_store import RequirementStore

logger = logging.getLogger(__name__)

REQ_ID_PATTERN = re.compile(r"REQ-[1-9][0-9]*")

# Requirement lines in a requirements document, e.g. "- REQ-12: Export to CSV"
REQUIREMENT_LINE_PATTERN = re.compile(
    r"^\s*(?:[-*]\s*)?(?:#+\s*)?(REQ-[0-9]+)\s*(?:[:\-–]\s*)?(.*)$",
    re.IGNORECASE,
)

# Section route name → (body model, section attribute)
SECTION_UPDATES: dict[str, tuple[type, str]] = {
    "pm": (PmUpdate, "pm"),
    "architecture": (ArchitectUpdate, "architect"),
    "engineering": (CoderUpdate, "coder"),
    "qa": (TesterUpdate, "tester"),
}


def parse_req_id(raw_id: str) -> str:
    return raw_id.strip().upper()


def require_role(actor: AuditActor, role: Role) -> None:
    if actor.role != role.value:
        logger.warning(f"Rejected {actor.role}:{actor.id} on {role.value}-only operation")
        raise AuthError("role not permitted for this endpoint", role.value, str(actor.role))


def parse_requirements_from_text(contents: str) -> list[tuple[str, str]]:
    """Extract (req_id, title) pairs from a requirements document."""
    results: list[tuple[str, str]] = []
    for line in contents.splitlines():
        match = REQUIREMENT_LINE_PATTERN.match(line)
        if not match:
            continue
        req_id = parse_req_id(match.group(1))
        if not REQ_ID_PATTERN.fullmatch(req_id):
            continue
        title = match.group(2).strip() or req_id
        results.append((req_id, title))
    return results


def _validated(model: type, body: Any):
    value, issues = validate_shape(model, body)
    if value is None:
        raise ShapeError(details=[issue.model_dump() for issue in issues])
    return value


class RequirementService:
    """Role-gated mutations over a RequirementStore."""

    def __init__(self, store: RequirementStore):
        self.store = store

    # ── Reads ────────────────────────────────────────────

    async def get(self, req_id: str) -> Requirement:
        requirement = await self.store.get(parse_req_id(req_id))
        if requirement is None:
            raise NotFoundError()
        return requirement

    async def list(self) -> dict[str, Requirement]:
        return await self.store.list()

    async def top(self, limit: int) -> list[Requirement]:
        return await self.store.list_top(limit)

    # ── Section updates ──────────────────────────────────

    async def update_section(
        self,
        section_route: str,
        req_id: str,
        actor: AuditActor,
        body: Any,
    ) -> Requirement:
        """Replace one role's section wholesale (pm may also move priority)."""
        if section_route not in SECTION_UPDATES:
            raise NotFoundError(error_code="not_found")
        require_role(actor, SECTION_ROLES[section_route])
        model, attribute = SECTION_UPDATES[section_route]
        update = _validated(model, body)

        previous = await self.get(req_id)
        requirement = previous.model_copy(deep=True)
        setattr(requirement.sections, attribute, update.section)

        if isinstance(update, PmUpdate) and update.priority is not None:
            new_priority = PriorityKey(**update.priority.model_dump())
            if new_priority.as_tuple() != previous.priority.as_tuple():
                await self._check_priority_free(requirement.req_id, new_priority)
            requirement.priority = new_priority

        await self.store.save(requirement, actor, f"update_{attribute}", previous)
        return requirement

    async def update_overall_status(self, req_id: str, actor: AuditActor, body: Any) -> Requirement:
        require_role(actor, Role.PM)
        update = _validated(StatusUpdate, body)

        previous = await self.get(req_id)
        requirement = previous.model_copy(deep=True)
        requirement.overall_status = update.overall_status

        await self.store.save(requirement, actor, "update_status", previous)
        return requirement

    async def _check_priority_free(self, req_id: str, priority: PriorityKey) -> None:
        for other_id, other in (await self.store.list()).items():
            if other_id != req_id and other.priority.as_tuple() == priority.as_tuple():
                logger.warning(f"Priority {priority.tier}/{priority.rank} for {req_id} held by {other_id}")
                raise ConflictError(f"priority {priority.tier}/{priority.rank} already used by {other_id}")

    # ── Bulk ─────────────────────────────────────────────

    async def bulk_upsert(self, actor: AuditActor, body: Any) -> dict[str, Requirement]:
        """
        Create or update a batch of requirements.

        The whole batch is checked before anything is written; a single
        invalid id, duplicate id or priority clash rejects every entry.
        """
        require_role(actor, Role.PM)
        request = _validated(BulkRequest, body)
        existing = await self.store.list()

        seen_ids: set[str] = set()
        batch_priorities: dict[tuple[str, int], str] = {}
        for entry in request.requirements:
            req_id = parse_req_id(entry.req_id)
            if not REQ_ID_PATTERN.fullmatch(req_id):
                raise ShapeError(f"invalid requirement id: {entry.req_id}", "invalid_requirement_id")
            if req_id in seen_ids:
                raise ShapeError(f"duplicate requirement id: {req_id}", "duplicate_requirement_id")
            seen_ids.add(req_id)

            key = (entry.priority.tier, entry.priority.rank)
            if key in batch_priorities:
                raise ConflictError(f"priority {key[0]}/{key[1]} repeated in batch ({batch_priorities[key]}, {req_id})")
            batch_priorities[key] = req_id

        for key, req_id in batch_priorities.items():
            for other_id, other in existing.items():
                if other_id in seen_ids:
                    # moving within the batch; its new priority was checked above
                    continue
                if other.priority.as_tuple() == key:
                    raise ConflictError(f"priority {key[0]}/{key[1]} already used by {other_id}")

        saved: dict[str, Requirement] = {}
        for entry in request.requirements:
            req_id = parse_req_id(entry.req_id)
            priority = PriorityKey(**entry.priority.model_dump())
            previous = existing.get(req_id)
            if previous is None:
                requirement = Requirement.new(req_id, entry.title, priority)
                action = "bulk_create"
            else:
                requirement = previous.model_copy(deep=True)
                requirement.title = entry.title
                requirement.priority = priority
                action = "bulk_update"
            await self.store.save(requirement, actor, action, previous)
            saved[req_id] = requirement

        logger.info(f"Bulk upsert by {actor.id}: {len(saved)} requirements")
        return saved

    # ── Sync from requirements document ──────────────────

    async def sync_from_text(self, actor: AuditActor, contents: str) -> dict[str, Requirement]:
        """Create missing requirements and refresh titles from a document."""
        require_role(actor, Role.SYSTEM)
        parsed = parse_requirements_from_text(contents)
        if not parsed:
            raise ShapeError("no requirement lines found", "no_requirements_found")

        existing = await self.store.list()
        for req_id, title in parsed:
            previous = existing.get(req_id)
            if previous is None:
                requirement = Requirement.new(req_id, title)
            elif previous.title == title:
                continue
            else:
                requirement = previous.model_copy(deep=True)
                requirement.title = title
            await self.store.save(requirement, actor, "sync", previous)
            existing[req_id] = requirement

        return await self.store.list()
