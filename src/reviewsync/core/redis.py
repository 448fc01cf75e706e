"""Redis pool and per-connection sync leases.

Two overlapping syncs of the same connection would race on the review
unique key and on the connection's stats. The trigger surfaces (HTTP and
scheduler) take a short SET NX EX lease per connection before calling the
orchestrator; the lease expires on its own if the holder dies.
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis
from redis.exceptions import RedisError
import structlog

from src.reviewsync.config import get_settings

logger = structlog.get_logger(__name__)

# ── Module-level Redis pool (lazy init) ─────────────────────────────────────

_redis_pool: aioredis.Redis | None = None


def get_redis_pool() -> aioredis.Redis:
    """Get or create the Redis connection pool singleton."""
    global _redis_pool
    if _redis_pool is None:
        settings = get_settings()
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.close()
        _redis_pool = None


# ── Sync Lease ──────────────────────────────────────────────────────────────

# Delete only if the stored holder token is still ours.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class SyncLease:
    """Best-effort mutual exclusion for syncs of one connection.

    When Redis is unreachable the lease degrades to the disabled behavior:
    acquire succeeds and release is a no-op, so an outage never blocks syncs.

    Args:
        redis_client: Async Redis client.
        ttl_seconds: Lease lifetime. 0 disables leasing (acquire always succeeds).
    """

    KEY_PREFIX = "reviewsync:lease:"

    def __init__(self, redis_client: aioredis.Redis | None, ttl_seconds: int) -> None:
        self._redis = redis_client
        self._ttl = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self._redis is not None and self._ttl > 0

    def _key(self, connection_id: str) -> str:
        return f"{self.KEY_PREFIX}{connection_id}"

    async def acquire(self, connection_id: str) -> str | None:
        """Take the lease. Returns a holder token, or None if someone else holds it."""
        holder = uuid.uuid4().hex
        if not self.enabled:
            return holder
        try:
            acquired = await self._redis.set(
                self._key(connection_id), holder, nx=True, ex=self._ttl
            )
        except (RedisError, OSError) as exc:
            logger.warning(
                "lease.unavailable", connection_id=connection_id, operation="acquire", error=str(exc)
            )
            return holder
        if not acquired:
            logger.info("lease.held", connection_id=connection_id)
            return None
        return holder

    async def release(self, connection_id: str, holder: str) -> None:
        if not self.enabled:
            return
        try:
            await self._redis.eval(_RELEASE_SCRIPT, 1, self._key(connection_id), holder)
        except (RedisError, OSError) as exc:
            # The key expires on its own after the TTL.
            logger.warning(
                "lease.unavailable", connection_id=connection_id, operation="release", error=str(exc)
            )
