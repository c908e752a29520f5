"""Redis-backed batch guard for multi-worker deployments.

Several Celery workers may receive the same scheduler tick.  The guard makes
sure only one of them runs the batch: acquiring is an atomic
``SET key token NX PX ttl`` and releasing deletes the key only if it still
holds our token (Lua compare-and-delete), so a worker whose lock expired
never releases a lock taken over by another worker.

Redis errors are treated as "busy" (fail-closed): skipping one trigger is
preferable to two overlapping sweeps.

Typical usage::

    redis_client = aioredis.from_url(settings.redis_url)
    guard = RedisBatchGuard(redis_client)
    scheduler = Scheduler(engine_context, runner, guard=guard)
"""

from __future__ import annotations

import logging
import uuid

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

#: Key holding the token of the worker that currently runs a batch.
BATCH_LOCK_KEY: str = "snippet_harvester:batch_lock"

#: Lock lifetime.  Long enough for a large batch; a crashed holder frees the
#: lock after this interval.
DEFAULT_LOCK_TTL_MS: int = 6 * 60 * 60 * 1000

_LUA_RELEASE = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class RedisBatchGuard:
    """Distributed :class:`~snippet_harvester.scraper.scheduler.BatchGuard`.

    Args:
        redis_client: ``redis.asyncio`` client.
        key: Lock key.
        ttl_ms: Lock expiry in milliseconds.
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        *,
        key: str = BATCH_LOCK_KEY,
        ttl_ms: int = DEFAULT_LOCK_TTL_MS,
    ) -> None:
        self.redis_client = redis_client
        self.key = key
        self.ttl_ms = ttl_ms
        self._token: str | None = None

    @property
    def held(self) -> bool:
        return self._token is not None

    async def try_acquire(self) -> bool:
        """Take the lock if it is free.  Returns ``False`` if busy or Redis is unreachable."""
        if self._token is not None:
            return False
        token = uuid.uuid4().hex
        try:
            acquired = await self.redis_client.set(self.key, token, nx=True, px=self.ttl_ms)
        except RedisError:
            logger.exception("batch_lock: Redis error while acquiring %s", self.key)
            return False
        if not acquired:
            logger.info("batch_lock: %s is held by another worker", self.key)
            return False
        self._token = token
        return True

    async def release(self) -> None:
        """Release the lock if this guard still owns it."""
        token, self._token = self._token, None
        if token is None:
            return
        try:
            released = await self.redis_client.eval(_LUA_RELEASE, 1, self.key, token)
        except RedisError:
            logger.exception("batch_lock: Redis error while releasing %s", self.key)
            return
        if not released:
            logger.warning("batch_lock: %s expired before release", self.key)
