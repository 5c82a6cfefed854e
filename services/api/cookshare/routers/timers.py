"""Step timer endpoints.

One timer per (user, recipe) cook session, held in memory by the timer
registry. State changes are published on the session's Redis channel next
to the alert events, so the events stream carries everything the client
renders.

Handlers are async: the production scheduler ticks on the running loop.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import StreamingResponse
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_current_user, load_recipe
from ..infra.rate_limit import limiter
from ..models import User
from ..realtime.timer_bus import publish_timer_event, subscribe_timer_events
from ..schemas import (
    TimerAlertPrefsOut, TimerAlertPrefsPatch, TimerOut, TimerStartRequest,
)
from ..services.permissions import Capability, require_capability
from ..timers import (
    CookTimer, NotificationPermission, TimerAlreadyActive, TimerRegistry,
    TimerStateError, get_timer_registry,
)

router = APIRouter()
logger = logging.getLogger("cookshare.timers")

HEARTBEAT_SEC = 15.0
MAX_DESCRIPTION_LEN = 80


def _summarize(text: str) -> str:
    text = " ".join(text.split())
    if len(text) <= MAX_DESCRIPTION_LEN:
        return text
    return text[:MAX_DESCRIPTION_LEN - 1].rstrip() + "…"


async def _publish_state(session_key: str, event: str, timer: Optional[CookTimer]) -> None:
    try:
        await publish_timer_event(session_key, {
            "type": "timer_state",
            "event": event,
            "timer": timer.snapshot() if timer else None,
        })
    except (RedisError, OSError) as e:
        logger.error(f"Failed to publish timer {event} for {session_key}: {e}")


def _require_timer(registry: TimerRegistry, session_key: str) -> CookTimer:
    timer = registry.get(session_key)
    if timer is None:
        raise HTTPException(status_code=404, detail="No active timer")
    return timer


def _prefs_out(registry: TimerRegistry, session_key: str) -> TimerAlertPrefsOut:
    session = registry.peek(session_key)
    if session is None:
        return TimerAlertPrefsOut(
            sound_enabled=registry.alert_defaults.sound_enabled,
            notification_permission=NotificationPermission.DEFAULT.value,
        )
    return TimerAlertPrefsOut(
        sound_enabled=session.alert_settings.sound_enabled,
        notification_permission=session.permission.value,
    )


@router.post("/recipes/{recipe_id}/timer", response_model=TimerOut, status_code=201)
@limiter.limit("30/minute")
async def start_timer(
    request: Request,
    recipe_id: str,
    body: TimerStartRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    registry: TimerRegistry = Depends(get_timer_registry),
):
    """Start the timer for one instruction step."""
    recipe = load_recipe(db, recipe_id)
    require_capability(db, recipe, user, Capability.READ)

    instruction = recipe.instruction_for_step(body.step_number)
    if instruction is None:
        raise HTTPException(status_code=404, detail=f"Step {body.step_number} not found")

    minutes = body.minutes or instruction.timer_minutes
    if not minutes:
        raise HTTPException(status_code=400, detail=f"Step {body.step_number} has no timer")

    key = TimerRegistry.session_key(user.id, recipe.id)
    try:
        timer = registry.start(
            key,
            step_number=body.step_number,
            description=body.description or _summarize(instruction.instruction),
            total_minutes=minutes,
        )
    except TimerAlreadyActive as e:
        logger.info(f"Rejected timer start for {key}: step {e.timer.step_number} still active")
        raise HTTPException(
            status_code=409,
            detail="Timer already active. Please stop the current timer before starting a new one.",
        )
    except ValueError as e:
        # Sub-second lengths round to an empty countdown
        raise HTTPException(status_code=422, detail=str(e))

    await _publish_state(key, "started", timer)
    return TimerOut(**timer.snapshot())


@router.get("/recipes/{recipe_id}/timer", response_model=Optional[TimerOut])
async def get_timer(
    recipe_id: str,
    user: User = Depends(get_current_user),
    registry: TimerRegistry = Depends(get_timer_registry),
):
    timer = registry.get(TimerRegistry.session_key(user.id, recipe_id))
    if timer is None:
        return None
    return TimerOut(**timer.snapshot())


@router.post("/recipes/{recipe_id}/timer/pause", response_model=TimerOut)
async def pause_timer(
    recipe_id: str,
    user: User = Depends(get_current_user),
    registry: TimerRegistry = Depends(get_timer_registry),
):
    key = TimerRegistry.session_key(user.id, recipe_id)
    timer = _require_timer(registry, key)
    try:
        timer.pause()
    except TimerStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    await _publish_state(key, "paused", timer)
    return TimerOut(**timer.snapshot())


@router.post("/recipes/{recipe_id}/timer/resume", response_model=TimerOut)
async def resume_timer(
    recipe_id: str,
    user: User = Depends(get_current_user),
    registry: TimerRegistry = Depends(get_timer_registry),
):
    key = TimerRegistry.session_key(user.id, recipe_id)
    timer = _require_timer(registry, key)
    try:
        timer.resume()
    except TimerStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    await _publish_state(key, "resumed", timer)
    return TimerOut(**timer.snapshot())


@router.post("/recipes/{recipe_id}/timer/stop", status_code=204)
async def stop_timer(
    recipe_id: str,
    user: User = Depends(get_current_user),
    registry: TimerRegistry = Depends(get_timer_registry),
):
    """Discard the timer from any phase."""
    key = TimerRegistry.session_key(user.id, recipe_id)
    if not registry.stop(key):
        raise HTTPException(status_code=404, detail="No active timer")
    await _publish_state(key, "stopped", None)
    return Response(status_code=204)


@router.post("/recipes/{recipe_id}/timer/acknowledge", status_code=204)
async def acknowledge_timer(
    recipe_id: str,
    user: User = Depends(get_current_user),
    registry: TimerRegistry = Depends(get_timer_registry),
):
    """Dismiss a completed timer; cancels any alerts still running."""
    key = TimerRegistry.session_key(user.id, recipe_id)
    try:
        if not registry.acknowledge(key):
            raise HTTPException(status_code=404, detail="No active timer")
    except TimerStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    await _publish_state(key, "acknowledged", None)
    return Response(status_code=204)


@router.get("/recipes/{recipe_id}/timer/alerts", response_model=TimerAlertPrefsOut)
async def get_alert_prefs(
    recipe_id: str,
    user: User = Depends(get_current_user),
    registry: TimerRegistry = Depends(get_timer_registry),
):
    return _prefs_out(registry, TimerRegistry.session_key(user.id, recipe_id))


@router.patch("/recipes/{recipe_id}/timer/alerts", response_model=TimerAlertPrefsOut)
async def update_alert_prefs(
    recipe_id: str,
    body: TimerAlertPrefsPatch,
    user: User = Depends(get_current_user),
    registry: TimerRegistry = Depends(get_timer_registry),
):
    """Mute toggle and the browser's notification permission."""
    key = TimerRegistry.session_key(user.id, recipe_id)
    if body.sound_enabled is not None:
        registry.set_sound_enabled(key, body.sound_enabled)
    if body.notification_permission is not None:
        registry.set_notification_permission(key, NotificationPermission(body.notification_permission))
    return _prefs_out(registry, key)


@router.get("/recipes/{recipe_id}/timer/events")
async def stream_timer_events(
    recipe_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Subscribe to timer state and alert events for this cook session."""
    recipe = load_recipe(db, recipe_id)
    require_capability(db, recipe, user, Capability.READ)
    key = TimerRegistry.session_key(user.id, recipe.id)

    async def event_generator():
        pubsub = await subscribe_timer_events(key)
        try:
            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=HEARTBEAT_SEC)
                if message:
                    data_str = message["data"]
                    if isinstance(data_str, bytes):
                        data_str = data_str.decode("utf-8")
                    yield f"data: {data_str}\n\n"
                else:
                    payload = json.dumps({"type": "heartbeat", "ts": datetime.now(timezone.utc).isoformat()})
                    yield f"data: {payload}\n\n"
        except (RedisError, OSError) as e:
            logger.error(f"Timer event stream for {key} failed: {e}")
        finally:
            await pubsub.aclose()

    return StreamingResponse(event_generator(), media_type="text/event-stream")
