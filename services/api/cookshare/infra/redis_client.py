"""Process-wide Redis clients.

The async client serves coroutines on the event loop (handlers, the SSE
stream, alert publishing); the sync one serves the cache helpers called
from sync handlers in the threadpool. Both are created on first use from
settings.redis_url and dropped by close_redis() at shutdown.
"""

import logging

from redis import Redis as SyncRedis
from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from cookshare.settings import settings

logger = logging.getLogger("cookshare.redis")

_redis_async: AsyncRedis | None = None
_redis_sync: SyncRedis | None = None

# Bus payloads and cache entries are JSON text
CLIENT_OPTIONS = {"decode_responses": True, "health_check_interval": 30}


async def get_redis() -> AsyncRedis:
    global _redis_async
    if _redis_async is None:
        _redis_async = AsyncRedis.from_url(settings.redis_url, **CLIENT_OPTIONS)
    return _redis_async


def get_sync_redis() -> SyncRedis:
    global _redis_sync
    if _redis_sync is None:
        _redis_sync = SyncRedis.from_url(settings.redis_url, **CLIENT_OPTIONS)
    return _redis_sync


async def redis_reachable() -> bool:
    try:
        r = await get_redis()
        return bool(await r.ping())
    except (RedisError, OSError) as e:
        logger.warning(f"Redis probe failed: {e}")
        return False


async def close_redis() -> None:
    global _redis_async, _redis_sync
    if _redis_async is not None:
        await _redis_async.aclose()
        _redis_async = None
    if _redis_sync is not None:
        _redis_sync.close()
        _redis_sync = None
