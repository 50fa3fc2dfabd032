"""Services — AuditService, RequirementService."""

from agent_orchestrator.services.audit_service import AuditService

__all__ = ["AuditService"]
