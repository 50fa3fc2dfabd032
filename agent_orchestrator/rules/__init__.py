"""Rule engines — pure checks that return findings as data."""

from .plan_rules import lint_plan, lint_plan_payload, validate_plan_shape

__all__ = ["lint_plan", "lint_plan_payload", "validate_plan_shape"]
