import json
from datetime import datetime, timezone

from cookshare.infra.redis_client import get_redis


def channel_for_session(session_key: str) -> str:
    return f"cookshare:timer:{session_key}"


def _envelope(session_key: str, event: dict) -> str:
    payload = {"session": session_key, "ts": datetime.now(timezone.utc).isoformat(), **event}
    return json.dumps(payload)


async def publish_timer_event(session_key: str, event: dict):
    r = await get_redis()
    await r.publish(channel_for_session(session_key), _envelope(session_key, event))


async def subscribe_timer_events(session_key: str):
    r = await get_redis()
    pubsub = r.pubsub()
    await pubsub.subscribe(channel_for_session(session_key))
    return pubsub
