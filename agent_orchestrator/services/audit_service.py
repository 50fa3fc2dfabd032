"""
Audit Service — builds audit entries for requirement mutations and reads
the trail back.  Entries are appended by the store inside the same
transaction as the record write; this service never writes on its own.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from agent_orchestrator.models.schemas import AuditActor, AuditEntry, Requirement

if TYPE_CHECKING:
    from agent_orchestrator.persistence.backends import StorageBackend

logger = logging.getLogger(__name__)


class AuditService:
    """Records who changed which requirement, and reads the trail back."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    def build_entry(
        self,
        requirement: Requirement,
        actor: AuditActor,
        action: str,
        outcome: str = "success",
    ) -> AuditEntry:
        """Build the entry for one save; details capture status and priority."""
        details = json.dumps({
            "overall_status": requirement.overall_status,
            "priority": requirement.priority.model_dump(),
        })
        entry = AuditEntry(
            actor_role=str(actor.role),
            actor_id=actor.id,
            action=action,
            req_id=requirement.req_id,
            outcome=outcome,
            details=details,
        )
        logger.debug(f"[AUDIT] {actor.role}:{actor.id} → {action} {requirement.req_id}")
        return entry

    async def get_trail(self, req_id: str) -> list[AuditEntry]:
        """Return all audit entries for one requirement, in append order."""
        return [e for e in await self.get_all() if e.req_id == req_id]

    async def get_all(self) -> list[AuditEntry]:
        """Return all audit entries (for debugging)."""
        return [AuditEntry.model_validate(fields) for fields in await self.backend.read_audit()]
