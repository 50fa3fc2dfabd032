"""
Request-scoped dependencies: agent identity and the requirement service.

Identity comes from two headers, ``X-Agent-Role`` and ``X-Agent-Id``.
Both are required on every gated route; the role must be a known one.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import Header, Request

from agent_orchestrator.config import Settings
from agent_orchestrator.errors import AuthError, ShapeError
from agent_orchestrator.models.enums import Role
from agent_orchestrator.models.schemas import AuditActor
from agent_orchestrator.services.requirement_service import RequirementService

logger = logging.getLogger(__name__)

ALLOWED_ROLES = [role.value for role in Role]
REQUIRED_ROLE_STRING = "|".join(ALLOWED_ROLES)


def require_identity(
    x_agent_role: Optional[str] = Header(default=None),
    x_agent_id: Optional[str] = Header(default=None),
) -> AuditActor:
    provided = x_agent_role.lower() if x_agent_role else ""
    if not x_agent_role or not x_agent_id:
        raise AuthError("missing required headers", REQUIRED_ROLE_STRING, provided)
    if provided not in ALLOWED_ROLES:
        raise AuthError("invalid role", REQUIRED_ROLE_STRING, provided)
    return AuditActor(role=provided, id=x_agent_id)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_requirement_service(request: Request) -> RequirementService:
    return request.app.state.requirement_service


async def read_json_body(request: Request) -> Any:
    """Parse the request body as JSON, reporting malformed input as a shape error."""
    raw = await request.body()
    if not raw:
        return None
    try:
        return await request.json()
    except ValueError as exc:
        raise ShapeError(details=[{"path": "", "message": f"malformed JSON: {exc}"}]) from exc
