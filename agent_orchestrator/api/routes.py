"""
API routes — thin HTTP layer that delegates to RequirementService.

Routes (under the configured prefix, default /v1):
  GET  /requirements                    → All requirements keyed by id
  GET  /requirements/top[/{limit}]      → Requirements in priority order
  GET  /requirements/{req_id}           → One requirement
  GET  /requirements/{req_id}/audit     → Audit trail for one requirement
  PUT  /requirements/{req_id}/status    → PM: overall status
  PUT  /requirements/{req_id}/{section} → Role-owned section update
  POST /requirements/bulk               → PM: batch create/update
  POST /requirements/sync               → system: sync from requirements file
Plus:
  GET  /health                          → API health check (no identity)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from fastapi import APIRouter, Depends, Request

from agent_orchestrator.api.dependencies import (
    get_app_settings,
    get_requirement_service,
    read_json_body,
    require_identity,
)
from agent_orchestrator.config import Settings
from agent_orchestrator.errors import NotFoundError, ShapeError
from agent_orchestrator.models.enums import SECTION_ROLES, Role
from agent_orchestrator.models.schemas import AuditActor
from agent_orchestrator.services.requirement_service import (
    SECTION_UPDATES,
    RequirementService,
    parse_req_id,
    require_role,
)

logger = logging.getLogger(__name__)

# ── Routers ──────────────────────────────────────────────
health_router = APIRouter()
requirements_router = APIRouter(dependencies=[Depends(require_identity)])


def _dump_map(requirements: dict) -> dict:
    return {req_id: r.model_dump(mode="json") for req_id, r in requirements.items()}


def _parse_limit(raw: str) -> int:
    """Accept plain ASCII digits only; signs, decimals and exponents are rejected."""
    value = raw.strip()
    if not (value.isascii() and value.isdigit()) or int(value) <= 0:
        raise ShapeError(f"limit must be a positive integer, got '{raw}'", "invalid_limit")
    return int(value)


# ── Health ───────────────────────────────────────────────

@health_router.get("/health")
async def health_check():
    return {
        "ok": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ── Reads ────────────────────────────────────────────────

@requirements_router.get("/requirements")
async def list_requirements(service: RequirementService = Depends(get_requirement_service)):
    return {"requirements": _dump_map(await service.list())}


@requirements_router.get("/requirements/top")
async def top_requirements(
    settings: Settings = Depends(get_app_settings),
    service: RequirementService = Depends(get_requirement_service),
):
    return [r.model_dump(mode="json") for r in await service.top(settings.default_top_limit)]


@requirements_router.get("/requirements/top/{limit}")
async def top_requirements_limited(
    limit: str,
    service: RequirementService = Depends(get_requirement_service),
):
    return [r.model_dump(mode="json") for r in await service.top(_parse_limit(limit))]


@requirements_router.get("/requirements/{req_id}")
async def get_requirement(req_id: str, service: RequirementService = Depends(get_requirement_service)):
    requirement = await service.get(req_id)
    return requirement.model_dump(mode="json")


@requirements_router.get("/requirements/{req_id}/audit")
async def get_requirement_audit(req_id: str, service: RequirementService = Depends(get_requirement_service)):
    requirement = await service.get(req_id)
    entries = await service.store.audit_trail(requirement.req_id)
    return {
        "req_id": requirement.req_id,
        "entries": [e.model_dump() for e in entries],
    }


# ── Writes ───────────────────────────────────────────────

@requirements_router.post("/requirements/bulk")
async def bulk_requirements(
    request: Request,
    actor: AuditActor = Depends(require_identity),
    service: RequirementService = Depends(get_requirement_service),
):
    require_role(actor, Role.PM)
    saved = await service.bulk_upsert(actor, await read_json_body(request))
    return {"requirements": _dump_map(saved)}


@requirements_router.post("/requirements/sync")
async def sync_requirements(
    actor: AuditActor = Depends(require_identity),
    settings: Settings = Depends(get_app_settings),
    service: RequirementService = Depends(get_requirement_service),
):
    require_role(actor, Role.SYSTEM)
    path = Path(settings.requirements_file)
    try:
        contents = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ShapeError(f"{path} not found", "requirements_file_missing") from exc

    requirements = await service.sync_from_text(actor, contents)
    return {"requirements": _dump_map(requirements)}


@requirements_router.put("/requirements/{req_id}/status")
async def update_status(
    req_id: str,
    request: Request,
    actor: AuditActor = Depends(require_identity),
    service: RequirementService = Depends(get_requirement_service),
):
    require_role(actor, Role.PM)
    body = await read_json_body(request)
    requirement = await service.update_overall_status(parse_req_id(req_id), actor, body)
    return requirement.model_dump(mode="json")


@requirements_router.put("/requirements/{req_id}/{section}")
async def update_section(
    req_id: str,
    section: str,
    request: Request,
    actor: AuditActor = Depends(require_identity),
    service: RequirementService = Depends(get_requirement_service),
):
    if section not in SECTION_UPDATES:
        raise NotFoundError(f"unknown section '{section}'", "not_found")
    require_role(actor, SECTION_ROLES[section])
    body = await read_json_body(request)
    requirement = await service.update_section(section, parse_req_id(req_id), actor, body)
    return requirement.model_dump(mode="json")
