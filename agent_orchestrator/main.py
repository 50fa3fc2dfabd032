"""
Agent Orchestrator — Main Entry Point

Run as an API server:
    python -m agent_orchestrator --serve
    # or: uvicorn agent_orchestrator.api:app --port 3000

Lint a plan file from the command line:
    python -m agent_orchestrator lint path/to/plan.json

Or import and lint programmatically:
    from agent_orchestrator.main import lint_file
    report = lint_file("plan.json")
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from agent_orchestrator.config import get_settings
from agent_orchestrator.rules.plan_rules import lint_plan_payload
from agent_orchestrator.utils.logger import setup_logging


def lint_file(file_path: str) -> dict[str, Any]:
    """Lint a plan stored as JSON. Accepts either {plan: ...} or the bare plan."""
    setup_logging(get_settings().log_level)
    logger = logging.getLogger(__name__)

    raw = json.loads(Path(file_path).read_text(encoding="utf-8"))
    plan = raw.get("plan", raw) if isinstance(raw, dict) else raw
    result = lint_plan_payload(plan)

    _print_summary(file_path, result)
    logger.debug(json.dumps(result, indent=2))
    return result


def _print_summary(file_path: str, result: dict[str, Any]) -> None:
    """Print a human-readable summary of the lint result."""
    logger = logging.getLogger(__name__)

    logger.info("-" * 60)
    logger.info(f"  PLAN LINT: {file_path}")
    logger.info(f"  Slices:     {result['meta']['requirements_found']}")
    logger.info(f"  Errors:     {len(result['errors'])}")
    logger.info(f"  Warnings:   {len(result['warnings'])}")
    logger.info("-" * 60)
    for finding in result["errors"] + result["warnings"]:
        logger.info(
            f"    {finding['severity']:<5} | {finding['code']} | "
            f"{finding.get('path', '')} | {finding['message']}"
        )


def serve(host: str | None = None, port: int | None = None) -> None:
    """Start the FastAPI server."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)
    host = host or settings.host
    port = port or settings.port
    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run("agent_orchestrator.api:app", host=host, port=port, reload=settings.debug)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="agent_orchestrator")
    parser.add_argument("--serve", action="store_true", help="run the HTTP API")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    sub = parser.add_subparsers(dest="command")
    lint_parser = sub.add_parser("lint", help="lint a plan JSON file")
    lint_parser.add_argument("plan_file")

    args = parser.parse_args(argv)
    if args.command == "lint":
        result = lint_file(args.plan_file)
        print(json.dumps(result, indent=2))
        return 0 if result["ok"] else 1
    if args.serve:
        serve(args.host, args.port)
        return 0
    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
