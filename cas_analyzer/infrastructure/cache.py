"""Redis-backed cache of job status documents."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from cas_analyzer.config import get_settings

logger = logging.getLogger(__name__)


class JobStatusCache:
    """Best-effort JSON cache; a failing Redis never fails the caller."""

    def __init__(
        self,
        client: Any | None = None,
        *,
        url: str | None = None,
        ttl_seconds: int | None = None,
        prefix: str = "job:",
    ) -> None:
        settings = get_settings()
        self._client = client or redis.Redis.from_url(url or settings.redis_url, decode_responses=True)
        self._ttl_seconds = ttl_seconds or settings.job_status_cache_ttl_seconds
        self._prefix = prefix

    def key(self, job_id: str) -> str:
        return f"{self._prefix}{job_id}"

    async def get_json(self, job_id: str) -> Optional[Any]:
        try:
            raw = await self._client.get(self.key(job_id))
        except RedisError as exc:
            logger.warning("Redis get failed for job %s: %s", job_id, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding malformed cache entry for job %s", job_id)
            return None

    async def set_json(self, job_id: str, value: Any) -> None:
        try:
            await self._client.set(self.key(job_id), json.dumps(value), ex=self._ttl_seconds)
        except RedisError as exc:
            logger.warning("Redis set failed for job %s: %s", job_id, exc)

    async def invalidate(self, job_id: str) -> None:
        try:
            await self._client.delete(self.key(job_id))
        except RedisError as exc:
            logger.warning("Redis invalidate failed for job %s: %s", job_id, exc)

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except RedisError as exc:
            logger.debug("Redis close failed: %s", exc)


__all__ = ["JobStatusCache"]
