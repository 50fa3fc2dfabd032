"""
Storage backends for the requirement store.

Both backends expose the same primitive operations over the same logical
layout: a record table keyed by req_id, a membership set, a priority
sorted set, one set per overall status and an append-only audit stream.
``commit_save`` applies every effect of a save as one unit.

MemoryBackend is used in mock mode and in tests; RedisBackend is the
production store.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator

from redis.exceptions import RedisError

from agent_orchestrator.errors import StorageError
from agent_orchestrator.models.enums import OverallStatus
from agent_orchestrator.persistence.redis_client import RedisClient

logger = logging.getLogger(__name__)

REQUIREMENTS_SET = "requirements"
PRIORITY_ZSET = "priority"
AUDIT_STREAM = "audit_log"
LEGACY_STATE_KEY = "state"
STATUS_SETS: tuple[str, ...] = tuple(s.value for s in OverallStatus)


class StorageBackend(ABC):
    """Primitive, async storage operations used by RequirementStore."""

    name = "abstract"

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @abstractmethod
    async def read_document(self, key: str) -> str | None:
        """Return the serialized document at *key*, or None."""

    @abstractmethod
    async def members(self) -> list[str]:
        """All ids in the membership set."""

    @abstractmethod
    async def top_ids(self, count: int) -> list[str]:
        """First *count* ids of the priority index, lowest score first."""

    @abstractmethod
    async def status_members(self, status: str) -> set[str]:
        """Ids currently in the set for *status*."""

    @abstractmethod
    async def commit_save(
        self,
        req_id: str,
        payload: str,
        score: float,
        status: str,
        audit_fields: dict[str, str],
    ) -> None:
        """Write record, indexes and audit entry atomically."""

    @abstractmethod
    async def read_audit(self) -> list[dict[str, str]]:
        """Every audit entry, in append order."""


# ── In-memory ────────────────────────────────────────────


class MemoryBackend(StorageBackend):
    """Process-local store; a lock makes each save a single atomic step."""

    name = "memory"

    def __init__(self):
        self._documents: dict[str, str] = {}
        self._members: set[str] = set()
        self._scores: dict[str, float] = {}
        self._status_sets: dict[str, set[str]] = {status: set() for status in STATUS_SETS}
        self._audit: list[dict[str, str]] = []
        self._lock = asyncio.Lock()

    def put_document(self, key: str, payload: str) -> None:
        """Seed a raw document (legacy blobs, fixtures)."""
        self._documents[key] = payload

    async def read_document(self, key: str) -> str | None:
        return self._documents.get(key)

    async def members(self) -> list[str]:
        return list(self._members)

    async def top_ids(self, count: int) -> list[str]:
        # Same ordering as a sorted set: score, then member
        ordered = sorted(self._scores.items(), key=lambda item: (item[1], item[0]))
        return [member for member, _ in ordered[:count]]

    async def status_members(self, status: str) -> set[str]:
        return set(self._status_sets.get(status, set()))

    async def commit_save(self, req_id, payload, score, status, audit_fields) -> None:
        async with self._lock:
            self._documents[req_id] = payload
            self._members.add(req_id)
            self._scores[req_id] = score
            for name, ids in self._status_sets.items():
                if name != status:
                    ids.discard(req_id)
            self._status_sets.setdefault(status, set()).add(req_id)
            self._audit.append(dict(audit_fields))

    async def read_audit(self) -> list[dict[str, str]]:
        return [dict(entry) for entry in self._audit]


# ── Redis ────────────────────────────────────────────────


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except RedisError as exc:
        logger.error(f"Redis {operation} failed: {exc}")
        raise StorageError(f"{operation} failed: {exc}") from exc


class RedisBackend(StorageBackend):
    """Redis layout: string/JSON records, sets, a sorted set and a stream."""

    name = "redis"

    def __init__(self, client: RedisClient):
        self.client = client

    async def open(self) -> None:
        await self.client.connect()

    async def close(self) -> None:
        await self.client.close()

    async def read_document(self, key: str) -> str | None:
        with _storage_errors("read"):
            conn = self.client.connection
            return await self.client.codec.read(conn, key)

    async def members(self) -> list[str]:
        with _storage_errors("smembers"):
            return list(await self.client.connection.smembers(REQUIREMENTS_SET))

    async def top_ids(self, count: int) -> list[str]:
        with _storage_errors("zrange"):
            return list(await self.client.connection.zrange(PRIORITY_ZSET, 0, count - 1))

    async def status_members(self, status: str) -> set[str]:
        with _storage_errors("smembers"):
            return set(await self.client.connection.smembers(status))

    async def commit_save(self, req_id, payload, score, status, audit_fields) -> None:
        with _storage_errors("save transaction"):
            async with self.client.connection.pipeline(transaction=True) as pipe:
                self.client.codec.queue_write(pipe, req_id, payload)
                pipe.sadd(REQUIREMENTS_SET, req_id)
                pipe.zadd(PRIORITY_ZSET, {req_id: score})
                for name in STATUS_SETS:
                    if name != status:
                        pipe.srem(name, req_id)
                pipe.sadd(status, req_id)
                pipe.xadd(AUDIT_STREAM, audit_fields)
                await pipe.execute()

    async def read_audit(self) -> list[dict[str, str]]:
        with _storage_errors("xrange"):
            entries = await self.client.connection.xrange(AUDIT_STREAM)
        return [dict(fields) for _, fields in entries]


def build_backend(settings) -> StorageBackend:
    """Select the backend once, from settings."""
    if settings.use_redis:
        return RedisBackend(RedisClient(settings.redis_url, settings.redis_json_mode))
    return MemoryBackend()
