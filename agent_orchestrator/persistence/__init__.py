"""Persistence — storage backends, RedisClient, RequirementStore."""

from agent_orchestrator.persistence.backends import MemoryBackend, RedisBackend, StorageBackend, build_backend
from agent_orchestrator.persistence.redis_client import RedisClient
from agent_orchestrator.persistence.requirement_store import RequirementStore

__all__ = [
    "MemoryBackend",
    "RedisBackend",
    "RedisClient",
    "RequirementStore",
    "StorageBackend",
    "build_backend",
]
