"""
Requirement Store — system of record for requirements.

Handles get/list/top-N reads, atomic save (record + indexes + audit) and
the one-time migration of the legacy single-blob state.  The store is a
handle with an explicit ``open()`` / ``close()`` lifecycle; the backend
and priority scoring are chosen by the caller and injected.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

from pydantic import ValidationError

from agent_orchestrator.models.enums import TIER_ORDER, UNKNOWN_TIER_ORDER
from agent_orchestrator.models.schemas import (
    RANK_LIMIT,
    SYSTEM_MIGRATION_ACTOR,
    AuditActor,
    AuditEntry,
    PriorityKey,
    Requirement,
)
from agent_orchestrator.persistence.backends import LEGACY_STATE_KEY, StorageBackend
from agent_orchestrator.persistence.normalizer import normalize_requirement
from agent_orchestrator.services.audit_service import AuditService

logger = logging.getLogger(__name__)


# ── Priority scoring ─────────────────────────────────────


def composite_priority_score(priority: PriorityKey) -> float:
    """Tier first, rank second; unassigned or unknown tiers sort last."""
    return float(TIER_ORDER.get(priority.tier, UNKNOWN_TIER_ORDER) * RANK_LIMIT + priority.rank)


def legacy_priority_score(priority: PriorityKey) -> float:
    """tier_value + rank — collides across tiers; kept for compatibility."""
    return float(TIER_ORDER.get(priority.tier, 0) + priority.rank)


PRIORITY_SCORERS: dict[str, Callable[[PriorityKey], float]] = {
    "composite": composite_priority_score,
    "legacy": legacy_priority_score,
}


class RequirementStore:
    """Durable, queryable home for requirements."""

    def __init__(
        self,
        backend: StorageBackend,
        scoring: str = "composite",
        audit_service: AuditService | None = None,
    ):
        if scoring not in PRIORITY_SCORERS:
            raise ValueError(f"Unknown priority scoring '{scoring}'")
        self.backend = backend
        self.scoring = scoring
        self._score = PRIORITY_SCORERS[scoring]
        self.audit = audit_service or AuditService(backend)
        self._migration_checked = False
        self._migration_lock = asyncio.Lock()

    # ── Lifecycle ────────────────────────────────────────

    async def open(self) -> None:
        await self.backend.open()
        logger.info(f"Requirement store open (backend={self.backend.name}, scoring={self.scoring})")

    async def close(self) -> None:
        await self.backend.close()

    # ── Reads ────────────────────────────────────────────

    async def get(self, req_id: str) -> Requirement | None:
        await self._ensure_migrated()
        return await self._fetch(req_id)

    async def list(self) -> dict[str, Requirement]:
        await self._ensure_migrated()
        requirements: dict[str, Requirement] = {}
        for req_id in sorted(await self.backend.members()):
            requirement = await self._fetch(req_id)
            if requirement is not None:
                requirements[req_id] = requirement
        return requirements

    async def list_top(self, limit: int) -> list[Requirement]:
        """First *limit* requirements in priority-index order."""
        await self._ensure_migrated()
        count = limit if isinstance(limit, int) and limit > 0 else 1
        requirements: list[Requirement] = []
        for req_id in await self.backend.top_ids(count):
            requirement = await self._fetch(req_id)
            if requirement is not None:
                requirements.append(requirement)
        return requirements

    async def audit_trail(self, req_id: str) -> list[AuditEntry]:
        return await self.audit.get_trail(req_id)

    async def _fetch(self, req_id: str) -> Requirement | None:
        raw = await self.backend.read_document(req_id)
        if raw is None:
            return None
        try:
            return normalize_requirement(req_id, json.loads(raw))
        except (json.JSONDecodeError, TypeError, ValidationError) as exc:
            logger.warning(f"Unreadable record for {req_id}, treating as missing: {exc}")
            return None

    # ── Writes ───────────────────────────────────────────

    async def save(
        self,
        requirement: Requirement,
        actor: AuditActor,
        action: str,
        previous: Requirement | None = None,
    ) -> None:
        """Write record, indexes and one audit entry as a single transaction."""
        entry = self.audit.build_entry(requirement, actor, action)
        await self.backend.commit_save(
            req_id=requirement.req_id,
            payload=requirement.model_dump_json(),
            score=self._score(requirement.priority),
            status=requirement.overall_status,
            audit_fields=entry.to_fields(),
        )

        if previous is not None and previous.overall_status != requirement.overall_status:
            logger.info(
                f"[{requirement.req_id}] {action} by {actor.role}:{actor.id} "
                f"({previous.overall_status} → {requirement.overall_status})"
            )
        else:
            logger.info(f"[{requirement.req_id}] {action} by {actor.role}:{actor.id}")

    # ── Legacy migration ─────────────────────────────────

    async def _ensure_migrated(self) -> None:
        if self._migration_checked:
            return
        async with self._migration_lock:
            if self._migration_checked:
                return
            await self.migrate_legacy_state()
            self._migration_checked = True

    async def migrate_legacy_state(self) -> int:
        """
        Move requirements out of the legacy ``state`` blob.

        Runs only when the membership index is empty; returns the number
        of requirements migrated.
        """
        if await self.backend.members():
            return 0

        raw = await self.backend.read_document(LEGACY_STATE_KEY)
        if not raw:
            return 0

        try:
            parsed: Any = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Legacy state blob is not valid JSON; skipping migration")
            return 0

        legacy = parsed.get("requirements") if isinstance(parsed, dict) else None
        if not isinstance(legacy, dict) or not legacy:
            return 0

        migrated = 0
        for key, value in legacy.items():
            try:
                requirement = normalize_requirement(key, value)
            except ValidationError as exc:
                logger.warning(f"Skipping unreadable legacy requirement {key}: {exc}")
                continue
            await self.save(requirement, SYSTEM_MIGRATION_ACTOR, "migrate", None)
            migrated += 1

        logger.info(f"Migrated {migrated} legacy requirements")
        return migrated
