"""
Application configuration using Pydantic Settings.
All environment-specific values are centralized here.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── App ──────────────────────────────────────────────
    app_name: str = "Agent Orchestrator"
    debug: bool = False
    mock_mode: bool = True  # When True, requirements live in process memory

    # ── HTTP ─────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 3000
    api_prefix: str = "/v1"
    default_top_limit: int = 5

    # ── Requirement Store ────────────────────────────────
    store_backend: str = "memory"  # "memory" | "redis"
    redis_url: str = "redis://localhost:6379"
    redis_json_mode: str = "auto"  # "auto" | "json" | "string"
    priority_scoring: str = "composite"  # "composite" | "legacy"

    # ── Requirements sync ────────────────────────────────
    requirements_file: str = "./REQUIREMENTS.md"

    # ── Logging ──────────────────────────────────────────
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @property
    def use_redis(self) -> bool:
        return not self.mock_mode and self.store_backend == "redis"


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings (singleton)."""
    return Settings()
