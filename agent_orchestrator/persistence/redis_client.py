"""
Redis Client — connection lifecycle and document-codec selection.

The client is constructed explicitly and opened once at startup.  During
``connect()`` it probes whether the server has the RedisJSON module and
caches the matching codec on the instance; nothing is re-detected per call.
"""

from __future__ import annotations

import logging
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError, ResponseError

from agent_orchestrator.config import get_settings
from agent_orchestrator.errors import StorageError

logger = logging.getLogger(__name__)

JSON_PROBE_KEY = "__json_probe__"


class StringCodec:
    """Documents stored as plain string values (GET / SET)."""

    name = "string"

    async def read(self, conn: Any, key: str) -> str | None:
        return await conn.get(key)

    def queue_write(self, pipe: Any, key: str, payload: str) -> None:
        pipe.set(key, payload)


class JsonDocumentCodec:
    """Documents stored through the RedisJSON module (JSON.GET / JSON.SET)."""

    name = "json"

    async def read(self, conn: Any, key: str) -> str | None:
        return await conn.execute_command("JSON.GET", key)

    def queue_write(self, pipe: Any, key: str, payload: str) -> None:
        pipe.execute_command("JSON.SET", key, "$", payload)


class RedisClient:
    """Thin wrapper around ``redis.asyncio`` with an open/close lifecycle."""

    def __init__(self, url: str | None = None, json_mode: str | None = None):
        settings = get_settings()
        self.url = url or settings.redis_url
        self.json_mode = json_mode or settings.redis_json_mode
        self._conn: Any = None
        self.codec: StringCodec | JsonDocumentCodec | None = None

    async def connect(self) -> None:
        """Open the connection and select the document codec."""
        if self._conn is not None:
            return
        try:
            self._conn = aioredis.from_url(self.url, decode_responses=True)
            await self._conn.ping()
            self.codec = await self._select_codec()
        except RedisError as exc:
            self._conn = None
            raise StorageError(f"Redis unavailable at {self._safe_url()}: {exc}") from exc
        logger.info(f"Connected to Redis at {self._safe_url()} (codec={self.codec.name})")

    async def _select_codec(self) -> StringCodec | JsonDocumentCodec:
        if self.json_mode == "json":
            return JsonDocumentCodec()
        if self.json_mode == "string":
            return StringCodec()
        try:
            await self._conn.execute_command("JSON.GET", JSON_PROBE_KEY)
        except ResponseError as exc:
            if "unknown command" in str(exc).lower():
                return StringCodec()
            raise
        return JsonDocumentCodec()

    @property
    def connection(self) -> Any:
        if self._conn is None:
            raise StorageError("Redis connection is not open")
        return self._conn

    async def close(self) -> None:
        """Close the connection."""
        if self._conn is not None:
            await self._conn.aclose()
            self._conn = None
            logger.info("Redis connection closed")

    def _safe_url(self) -> str:
        return self.url.split("@")[-1]
