import json
import logging

from redis.exceptions import RedisError

from cookshare.infra.redis_client import get_redis, get_sync_redis

logger = logging.getLogger("cookshare.cache")


def get_or_set_json_sync(key: str, ttl_sec: int, compute_func):
    """Return (value, hit). Cache trouble degrades to computing fresh."""
    try:
        r = get_sync_redis()
        raw = r.get(key)
    except (RedisError, OSError) as e:
        logger.warning(f"Cache read failed for {key}: {e}")
        return compute_func(), False

    if raw:
        return json.loads(raw), True

    val = compute_func()
    try:
        r.set(key, json.dumps(val, default=str), ex=ttl_sec)
    except (RedisError, OSError) as e:
        logger.warning(f"Cache write failed for {key}: {e}")
    return val, False


def invalidate(*keys: str) -> None:
    try:
        get_sync_redis().delete(*keys)
    except (RedisError, OSError) as e:
        logger.warning(f"Cache invalidation failed for {keys}: {e}")


async def invalidate_async(*keys: str) -> None:
    """invalidate() for coroutines running on the event loop."""
    try:
        r = await get_redis()
        await r.delete(*keys)
    except (RedisError, OSError) as e:
        logger.warning(f"Cache invalidation failed for {keys}: {e}")
