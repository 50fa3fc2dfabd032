"""
Plan API routes.

Routes:
  POST /plan/lint → Shape-check and lint a plan; always 200
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request

from agent_orchestrator.api.dependencies import read_json_body
from agent_orchestrator.errors import ShapeError
from agent_orchestrator.rules.plan_rules import lint_plan_payload

logger = logging.getLogger(__name__)

plan_router = APIRouter()


@plan_router.post("/plan/lint")
async def lint_plan_route(request: Request):
    try:
        body = await read_json_body(request)
    except ShapeError:
        body = None
    plan = body.get("plan") if isinstance(body, dict) else None
    result = lint_plan_payload(plan)
    logger.info(
        f"Plan lint: ok={result['ok']} errors={len(result['errors'])} "
        f"warnings={len(result['warnings'])}"
    )
    return result
