"""
Error taxonomy shared by the store, the service layer and the HTTP routes.

Each error carries the HTTP status it maps to and a stable ``error_code``
that ends up in the JSON response body.
"""

from __future__ import annotations

from typing import Any


class OrchestratorError(Exception):
    """Base class for every error the service turns into a JSON response."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str = "", error_code: str | None = None):
        super().__init__(message or self.error_code)
        self.message = message
        if error_code is not None:
            self.error_code = error_code

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error_code}
        if self.message:
            body["message"] = self.message
        return body


class ShapeError(OrchestratorError):
    """Input does not match the expected schema."""

    status_code = 400
    error_code = "invalid_body"

    def __init__(
        self,
        message: str = "",
        error_code: str | None = None,
        details: list[dict[str, str]] | None = None,
    ):
        super().__init__(message, error_code)
        self.details = details or []

    def to_body(self) -> dict[str, Any]:
        body = super().to_body()
        if self.details:
            body["details"] = self.details
        return body


class AuthError(OrchestratorError):
    """Missing, unknown or mismatched agent role."""

    status_code = 401
    error_code = "unauthorized"

    def __init__(self, message: str, required_role: str, provided_role: str):
        super().__init__(message)
        self.required_role = required_role
        self.provided_role = provided_role

    def to_body(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "required_role": self.required_role,
            "provided_role": self.provided_role,
        }


class NotFoundError(OrchestratorError):
    status_code = 404
    error_code = "requirement_not_found"


class ConflictError(OrchestratorError):
    """Priority (tier, rank) collision."""

    status_code = 400
    error_code = "priority_conflict"


class StorageError(OrchestratorError):
    """Backing store unreachable or a command failed."""

    status_code = 500
    error_code = "storage_unavailable"
