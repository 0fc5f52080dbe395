# =============================================================================
# Judgment Cache — Memoised Judge Output by (Evaluator, Submission)
# =============================================================================
#
# Re-evaluating the same submission with the same evaluator is expensive
# (one LLM call each) and, for a demo or a retried request, pointless.
# The cache stores the raw judge output as a string under
#   judgment:{definition_id}:{submission_id}
#
# BACKENDS:
#   InMemoryJudgmentCache — per-process dict with TTL (tests, single worker)
#   RedisJudgmentCache    — shared across API and Celery workers
#
# DESIGN DECISION: Graceful degradation. A Redis outage turns every lookup
# into a miss and every write into a no-op (log a warning, carry on). The
# cache must never be the reason an evaluation fails.
#
# Uses Redis db 2 by default (db 0/1 reserved for Celery).
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from typing import Protocol

from pitchswarm.config import settings

logger = logging.getLogger(__name__)


def judgment_cache_key(definition_id: str, submission_id: str) -> str:
    return f"judgment:{definition_id}:{submission_id}"


class JudgmentCache(Protocol):
    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryJudgmentCache:
    """Dict-backed cache with lazy expiry on read."""

    def __init__(self, ttl_seconds: float | None = None) -> None:
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.judgment_cache_ttl_seconds
        self._entries: dict[str, tuple[float, str]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if time.monotonic() >= expires_at:
                del self._entries[key]
                return None
            return value

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._entries[key] = (time.monotonic() + self._ttl, value)

    def __len__(self) -> int:
        return len(self._entries)


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class RedisJudgmentCache:
    """
    redis.asyncio-backed cache. The client is created on first use so
    constructing the cache never opens a connection.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        self._redis_url = redis_url or settings.judgment_cache_redis_url
        self._ttl = ttl_seconds or settings.judgment_cache_ttl_seconds
        self._client = None

    def _get_client(self):
        if self._client is None:
            import redis.asyncio as aioredis
            self._client = aioredis.from_url(
                self._redis_url,
                decode_responses=True,
            )
        return self._client

    async def get(self, key: str) -> str | None:
        try:
            return await self._get_client().get(key)
        except Exception as e:
            logger.warning(
                "Judgment cache unavailable (Redis error): %s. Treating as miss.", e,
            )
            return None

    async def set(self, key: str, value: str) -> None:
        try:
            await self._get_client().set(key, value, ex=self._ttl)
        except Exception as e:
            logger.warning(
                "Judgment cache unavailable (Redis error): %s. Skipping write.", e,
            )


def build_judgment_cache(backend: str | None = None) -> JudgmentCache | None:
    """Cache for the configured backend, or None when caching is off."""
    backend = backend or settings.judgment_cache_backend
    if backend == "memory":
        return InMemoryJudgmentCache()
    if backend == "redis":
        return RedisJudgmentCache()
    return None


_judgment_cache: JudgmentCache | None = None
_judgment_cache_built = False


def get_judgment_cache() -> JudgmentCache | None:
    """Process-wide cache for the configured backend, built on first use."""
    global _judgment_cache, _judgment_cache_built
    if not _judgment_cache_built:
        _judgment_cache = build_judgment_cache()
        _judgment_cache_built = True
    return _judgment_cache
