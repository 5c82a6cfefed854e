"""Timer completion fan-out.

When a cook timer reaches zero four independent channels fire:

1. Visual: flash on/off at a short interval for a fixed number of cycles,
   then settle on a steady "completed" state.
2. Notification: shown unless permission was denied; an undetermined
   permission is requested inline first. Tagged by timer id.
3. Audio: a predefined tone, falling back to a synthesized beep, repeated a
   few times while sound is enabled.
4. Title: a temporary window/tab title, reverted after a delay.

Each channel is fault-isolated. A failing channel is logged and the
others still run.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Protocol

from .scheduling import Cancellable, Scheduler

logger = logging.getLogger("cookshare.alerts")


class NotificationPermission(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"


class VisualState(str, Enum):
    FLASH_ON = "flash_on"
    FLASH_OFF = "flash_off"
    COMPLETED = "completed"


@dataclass(frozen=True)
class CompletionAlert:
    timer_id: str
    step_number: int
    description: str


@dataclass(frozen=True)
class NotificationPayload:
    title: str
    body: str
    tag: str
    icon: str = "/favicon.ico"


class AlertDispatcher(Protocol):
    """Platform side of the alert channels (browser relay, logs, test recorder)."""

    def notification_permission(self) -> NotificationPermission: ...

    def request_notification_permission(self) -> NotificationPermission: ...

    def notify(self, payload: NotificationPayload) -> None: ...

    def play_tone(self) -> None: ...

    def synthesize_beep(self) -> None: ...

    def flash_title(self, text: str) -> None: ...

    def restore_title(self) -> None: ...

    def show_visual(self, state: VisualState) -> None: ...


@dataclass
class AlertSettings:
    sound_enabled: bool = True
    flash_interval_sec: float = 0.5
    flash_cycles: int = 6
    audio_attempts: int = 3
    audio_retry_delay_sec: float = 2.0
    title_revert_sec: float = 5.0

    @classmethod
    def from_settings(cls, settings) -> "AlertSettings":
        return cls(
            flash_interval_sec=settings.timer_flash_interval_sec,
            flash_cycles=settings.timer_flash_cycles,
            audio_attempts=settings.timer_audio_attempts,
            audio_retry_delay_sec=settings.timer_audio_retry_delay_sec,
            title_revert_sec=settings.timer_title_revert_sec,
        )


def _guarded(channel: str, func: Callable[[], None]) -> bool:
    try:
        func()
        return True
    except Exception:
        logger.warning("Alert channel %s failed", channel, exc_info=True)
        return False


@dataclass
class AlertRun:
    """One in-flight fan-out. cancel() drops every pending follow-up."""

    alert: CompletionAlert
    _pending: dict[str, Cancellable] = field(default_factory=dict)
    _title_flashed: bool = False
    _restore_title: Optional[Callable[[], None]] = None
    cancelled: bool = False

    @property
    def in_progress(self) -> bool:
        return bool(self._pending)

    def _track(self, key: str, handle: Cancellable) -> None:
        self._pending[key] = handle

    def _done(self, key: str) -> None:
        self._pending.pop(key, None)

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        for handle in list(self._pending.values()):
            handle.cancel()
        self._pending.clear()
        if self._title_flashed and self._restore_title is not None:
            self._title_flashed = False
            _guarded("title", self._restore_title)
        logger.info("Cancelled alerts for timer %s", self.alert.timer_id)


class CompletionFanOut:
    """Alert sink handed to cook timers; fires all channels for one completion."""

    def __init__(
        self,
        dispatcher: AlertDispatcher,
        scheduler: Scheduler,
        settings: Optional[AlertSettings] = None,
    ):
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self.settings = settings or AlertSettings()

    def fire_completion(self, alert: CompletionAlert) -> AlertRun:
        run = AlertRun(alert=alert, _restore_title=self.dispatcher.restore_title)
        logger.info("Timer %s complete (step %s)", alert.timer_id, alert.step_number)

        _guarded("visual", lambda: self._flash(run, 0))
        _guarded("notification", lambda: self._notify(alert))
        _guarded("audio", lambda: self._sound(run, 1))
        _guarded("title", lambda: self._title(run))
        return run

    # --- Visual ---

    def _flash(self, run: AlertRun, toggle: int) -> None:
        run._done("visual")
        if run.cancelled:
            return
        if toggle >= self.settings.flash_cycles * 2:
            self.dispatcher.show_visual(VisualState.COMPLETED)
            return
        state = VisualState.FLASH_ON if toggle % 2 == 0 else VisualState.FLASH_OFF
        self.dispatcher.show_visual(state)
        run._track("visual", self.scheduler.call_later(
            self.settings.flash_interval_sec,
            lambda: _guarded("visual", lambda: self._flash(run, toggle + 1)),
        ))

    # --- Notification ---

    def _notify(self, alert: CompletionAlert) -> None:
        permission = self.dispatcher.notification_permission()
        if permission == NotificationPermission.DEFAULT:
            permission = self.dispatcher.request_notification_permission()
        if permission != NotificationPermission.GRANTED:
            logger.debug("Notification skipped for timer %s: %s", alert.timer_id, permission.value)
            return
        self.dispatcher.notify(NotificationPayload(
            title="Timer Complete!",
            body=f"Step {alert.step_number}: {alert.description}",
            tag=alert.timer_id,
        ))

    # --- Audio ---

    def _sound(self, run: AlertRun, attempt: int) -> None:
        run._done("audio")
        if run.cancelled:
            return
        if not self.settings.sound_enabled:
            logger.debug("Sound disabled, skipping audio attempt %s", attempt)
            return

        if not _guarded("audio.tone", self.dispatcher.play_tone):
            if not _guarded("audio.beep", self.dispatcher.synthesize_beep):
                logger.debug("Audio unavailable for timer %s (attempt %s)", run.alert.timer_id, attempt)

        if attempt < self.settings.audio_attempts:
            run._track("audio", self.scheduler.call_later(
                self.settings.audio_retry_delay_sec,
                lambda: _guarded("audio", lambda: self._sound(run, attempt + 1)),
            ))

    # --- Title ---

    def _title(self, run: AlertRun) -> None:
        self.dispatcher.flash_title(f"Timer done: Step {run.alert.step_number}")
        run._title_flashed = True

        def revert() -> None:
            run._done("title")
            if run.cancelled or not run._title_flashed:
                return
            run._title_flashed = False
            _guarded("title", self.dispatcher.restore_title)

        run._track("title", self.scheduler.call_later(self.settings.title_revert_sec, revert))
