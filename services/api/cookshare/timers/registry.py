"""In-memory cook timer sessions.

A session is one user viewing one recipe. It owns at most one timer at a
time, plus the user's alert preferences (mute flag, notification
permission). Nothing here is persisted.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from cookshare.settings import settings
from .alerts import AlertDispatcher, AlertSettings, CompletionFanOut, NotificationPermission
from .dispatchers import build_dispatcher
from .engine import CookTimer
from .scheduling import AsyncioScheduler, Scheduler

logger = logging.getLogger("cookshare.timers")

DispatcherFactory = Callable[[str, NotificationPermission], AlertDispatcher]


class TimerAlreadyActive(Exception):
    def __init__(self, timer: CookTimer):
        super().__init__(f"Timer {timer.id} for step {timer.step_number} is still active")
        self.timer = timer


@dataclass
class TimerSession:
    key: str
    alert_settings: AlertSettings
    permission: NotificationPermission = NotificationPermission.DEFAULT
    dispatcher: Optional[AlertDispatcher] = None
    timer: Optional[CookTimer] = None


def _default_dispatcher(session_key: str, permission: NotificationPermission) -> AlertDispatcher:
    return build_dispatcher(settings.timer_alert_backend, session_key, permission)


class TimerRegistry:
    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        dispatcher_factory: Optional[DispatcherFactory] = None,
        alert_defaults: Optional[AlertSettings] = None,
    ):
        self.scheduler = scheduler or AsyncioScheduler()
        self.dispatcher_factory = dispatcher_factory or _default_dispatcher
        self.alert_defaults = alert_defaults or AlertSettings.from_settings(settings)
        self._sessions: dict[str, TimerSession] = {}

    @staticmethod
    def session_key(user_id: str, recipe_id: str) -> str:
        return f"{user_id}:{recipe_id}"

    def session(self, key: str) -> TimerSession:
        session = self._sessions.get(key)
        if session is None:
            d = self.alert_defaults
            session = TimerSession(key=key, alert_settings=AlertSettings(
                sound_enabled=d.sound_enabled,
                flash_interval_sec=d.flash_interval_sec,
                flash_cycles=d.flash_cycles,
                audio_attempts=d.audio_attempts,
                audio_retry_delay_sec=d.audio_retry_delay_sec,
                title_revert_sec=d.title_revert_sec,
            ))
            self._sessions[key] = session
        return session

    def peek(self, key: str) -> Optional[TimerSession]:
        return self._sessions.get(key)

    def _release(self, key: str) -> None:
        """Forget a session that holds nothing a fresh one would not."""
        session = self._sessions.get(key)
        if session is None or session.timer is not None:
            return
        if (
            session.permission == NotificationPermission.DEFAULT
            and session.alert_settings.sound_enabled == self.alert_defaults.sound_enabled
        ):
            del self._sessions[key]

    def get(self, key: str) -> Optional[CookTimer]:
        session = self._sessions.get(key)
        if session is None or session.timer is None:
            return None
        if session.timer.discarded:
            session.timer = None
            self._release(key)
            return None
        return session.timer

    def start(self, key: str, *, step_number: int, description: str, total_minutes: float) -> CookTimer:
        """Start a step timer; rejects while the session still holds one."""
        current = self.get(key)
        if current is not None:
            raise TimerAlreadyActive(current)

        session = self.session(key)
        session.dispatcher = self.dispatcher_factory(key, session.permission)
        fan_out = CompletionFanOut(session.dispatcher, self.scheduler, session.alert_settings)
        try:
            session.timer = CookTimer(
                step_number=step_number,
                description=description,
                total_minutes=total_minutes,
                scheduler=self.scheduler,
                alerts=fan_out,
            )
        except ValueError:
            self._release(key)
            raise
        return session.timer

    def stop(self, key: str) -> bool:
        timer = self.get(key)
        if timer is None:
            return False
        timer.stop()
        self._sessions[key].timer = None
        self._release(key)
        return True

    def acknowledge(self, key: str) -> bool:
        timer = self.get(key)
        if timer is None:
            return False
        timer.acknowledge()
        self._sessions[key].timer = None
        self._release(key)
        return True

    def discard_recipe(self, recipe_id: str) -> int:
        """Stop every session's timer on a recipe that no longer exists."""
        stopped = 0
        suffix = f":{recipe_id}"
        for key in [k for k in self._sessions if k.endswith(suffix)]:
            if self.stop(key):
                stopped += 1
            self._sessions.pop(key, None)
        return stopped

    def set_sound_enabled(self, key: str, enabled: bool) -> None:
        self.session(key).alert_settings.sound_enabled = enabled
        self._release(key)

    def set_notification_permission(self, key: str, permission: NotificationPermission) -> None:
        session = self.session(key)
        session.permission = permission
        if session.dispatcher is not None and hasattr(session.dispatcher, "permission"):
            session.dispatcher.permission = permission
        self._release(key)

    def shutdown(self) -> None:
        for session in self._sessions.values():
            if session.timer is not None:
                session.timer.stop()
        self._sessions.clear()
        logger.info("Timer registry shut down")


timer_registry = TimerRegistry()


def get_timer_registry() -> TimerRegistry:
    return timer_registry
