"""Production AlertDispatcher bindings.

The browser owns the actual notification, audio and title APIs, so the
server relays each channel as an event on the session's Redis channel and
the client renders it (see GET /api/recipes/{id}/timer/events).
"""

import asyncio
import logging
from collections import deque
from dataclasses import asdict
from typing import Optional

from redis.exceptions import RedisError

from cookshare.realtime.timer_bus import publish_timer_event
from .alerts import NotificationPayload, NotificationPermission, VisualState

logger = logging.getLogger("cookshare.alerts")


class BusAlertDispatcher:
    """Publishes alert channels to one cook session's event stream.

    Notification permission is whatever the client last reported. An
    undetermined permission is answered by asking the client to prompt; the
    answer only arrives with a later PATCH, so this completion treats it as
    not granted.

    Channel calls arrive as loop callbacks, so they only queue the event; one
    drain task per dispatcher publishes the queue in order with the async
    client and never blocks the loop.
    """

    def __init__(self, session_key: str, permission: NotificationPermission = NotificationPermission.DEFAULT):
        self.session_key = session_key
        self.permission = permission
        self._outbox: deque[dict] = deque()
        self._drain_task: Optional[asyncio.Task] = None

    def _publish(self, channel: str, **data) -> None:
        self._outbox.append({"type": "timer_alert", "channel": channel, **data})
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._outbox:
            event = self._outbox.popleft()
            try:
                await publish_timer_event(self.session_key, event)
            except (RedisError, OSError) as e:
                logger.warning("[%s] dropped %s alert: %s", self.session_key, event["channel"], e)

    async def flush(self) -> None:
        """Wait until every queued event has been handed to Redis."""
        if self._drain_task is not None:
            await self._drain_task

    def notification_permission(self) -> NotificationPermission:
        return self.permission

    def request_notification_permission(self) -> NotificationPermission:
        self._publish("notification_permission_request")
        return self.permission

    def notify(self, payload: NotificationPayload) -> None:
        self._publish("notification", **asdict(payload))

    def play_tone(self) -> None:
        self._publish("audio", kind="tone")

    def synthesize_beep(self) -> None:
        self._publish("audio", kind="beep")

    def flash_title(self, text: str) -> None:
        self._publish("title", action="flash", text=text)

    def restore_title(self) -> None:
        self._publish("title", action="restore")

    def show_visual(self, state: VisualState) -> None:
        self._publish("visual", state=state.value)


class LoggingAlertDispatcher:
    """Headless binding: every channel becomes a log line."""

    def __init__(self, session_key: str, permission: NotificationPermission = NotificationPermission.GRANTED):
        self.session_key = session_key
        self.permission = permission
        self._notified_tags: set[str] = set()

    def notification_permission(self) -> NotificationPermission:
        return self.permission

    def request_notification_permission(self) -> NotificationPermission:
        return self.permission

    def notify(self, payload: NotificationPayload) -> None:
        if payload.tag in self._notified_tags:
            return
        self._notified_tags.add(payload.tag)
        logger.info("[%s] notification: %s - %s", self.session_key, payload.title, payload.body)

    def play_tone(self) -> None:
        logger.info("[%s] tone", self.session_key)

    def synthesize_beep(self) -> None:
        logger.info("[%s] beep", self.session_key)

    def flash_title(self, text: str) -> None:
        logger.info("[%s] title: %s", self.session_key, text)

    def restore_title(self) -> None:
        logger.info("[%s] title restored", self.session_key)

    def show_visual(self, state: VisualState) -> None:
        logger.debug("[%s] visual: %s", self.session_key, state.value)


def build_dispatcher(backend: str, session_key: str, permission: NotificationPermission):
    if backend == "log":
        return LoggingAlertDispatcher(session_key, permission)
    if backend == "bus":
        return BusAlertDispatcher(session_key, permission)
    raise ValueError(f"Unknown timer alert backend: {backend}")
