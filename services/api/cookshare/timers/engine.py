"""Per-step cooking timer.

State machine:

    RUNNING --tick--> RUNNING            remaining -= 1
    RUNNING --tick--> COMPLETED          remaining hits 0, alerts fire once
    RUNNING --pause--> PAUSED            tick source torn down
    PAUSED --resume--> RUNNING           new tick source, fresh 1s cadence
    any --stop--> discarded              ticks and in-flight alerts cancelled
    COMPLETED --acknowledge--> discarded

Time only advances through ticks; a paused timer never catches up on
resume.
"""

import logging
import uuid
from enum import Enum
from typing import Optional, Protocol

from .alerts import AlertRun, CompletionAlert
from .scheduling import Scheduler, TickSubscription

logger = logging.getLogger("cookshare.timers")

TICK_INTERVAL_SEC = 1.0
WARNING_THRESHOLD_SEC = 60
CRITICAL_THRESHOLD_SEC = 10


class TimerPhase(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class Emphasis(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class TimerStateError(Exception):
    """An operation was requested in a phase that does not allow it."""


class AlertSink(Protocol):
    def fire_completion(self, alert: CompletionAlert) -> Optional[AlertRun]: ...


def format_clock(seconds: int) -> str:
    minutes, secs = divmod(max(seconds, 0), 60)
    return f"{minutes:02d}:{secs:02d}"


class CookTimer:
    """Countdown for one instruction step. Starts running on creation."""

    def __init__(
        self,
        *,
        step_number: int,
        description: str,
        total_minutes: float,
        scheduler: Scheduler,
        alerts: AlertSink,
        timer_id: Optional[str] = None,
    ):
        if step_number < 1:
            raise ValueError(f"step_number must be positive, got {step_number}")
        total_seconds = int(round(total_minutes * 60))
        if total_seconds <= 0:
            raise ValueError(f"timer length must be positive, got {total_minutes} minutes")

        self.id = timer_id or uuid.uuid4().hex
        self.step_number = step_number
        self.description = description
        self.total_seconds = total_seconds
        self.remaining_seconds = total_seconds
        self.phase = TimerPhase.RUNNING

        self._scheduler = scheduler
        self._alerts = alerts
        self._alert_run: Optional[AlertRun] = None
        self._completion_fired = False
        self._discarded = False
        self._ticks: Optional[TickSubscription] = None
        self._start_ticking()

        logger.info("Started timer %s for step %s (%ss)", self.id, step_number, total_seconds)

    # --- Derived state ---

    @property
    def progress(self) -> float:
        return (self.total_seconds - self.remaining_seconds) / self.total_seconds

    @property
    def emphasis(self) -> Emphasis:
        if 0 < self.remaining_seconds <= CRITICAL_THRESHOLD_SEC:
            return Emphasis.CRITICAL
        if CRITICAL_THRESHOLD_SEC < self.remaining_seconds <= WARNING_THRESHOLD_SEC:
            return Emphasis.WARNING
        return Emphasis.NORMAL

    @property
    def discarded(self) -> bool:
        return self._discarded

    @property
    def ticking(self) -> bool:
        return self._ticks is not None and self._ticks.active

    @property
    def alert_run(self) -> Optional[AlertRun]:
        return self._alert_run

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "step_number": self.step_number,
            "description": self.description,
            "total_seconds": self.total_seconds,
            "remaining_seconds": self.remaining_seconds,
            "phase": self.phase.value,
            "progress": self.progress,
            "emphasis": self.emphasis.value,
            "display": format_clock(self.remaining_seconds),
        }

    # --- Tick source ---

    def _start_ticking(self) -> None:
        self._stop_ticking()
        self._ticks = TickSubscription(self._scheduler, TICK_INTERVAL_SEC, self.tick)

    def _stop_ticking(self) -> None:
        if self._ticks is not None:
            self._ticks.cancel()
            self._ticks = None

    # --- Transitions ---

    def tick(self) -> None:
        """Advance one second. Ignored unless running."""
        if self._discarded or self.phase != TimerPhase.RUNNING:
            return
        self.remaining_seconds = max(self.remaining_seconds - 1, 0)
        if self.remaining_seconds == 0:
            self._complete()

    def _complete(self) -> None:
        self.phase = TimerPhase.COMPLETED
        self._stop_ticking()
        if self._completion_fired:
            return
        self._completion_fired = True
        try:
            self._alert_run = self._alerts.fire_completion(CompletionAlert(
                timer_id=self.id,
                step_number=self.step_number,
                description=self.description,
            ))
        except Exception:
            logger.exception("Completion alerts failed for timer %s", self.id)

    def pause(self) -> None:
        self._ensure_live()
        if self.phase != TimerPhase.RUNNING:
            raise TimerStateError(f"Cannot pause a {self.phase.value} timer")
        self._stop_ticking()
        self.phase = TimerPhase.PAUSED
        logger.info("Paused timer %s at %ss", self.id, self.remaining_seconds)

    def resume(self) -> None:
        self._ensure_live()
        if self.phase != TimerPhase.PAUSED:
            raise TimerStateError(f"Cannot resume a {self.phase.value} timer")
        self.phase = TimerPhase.RUNNING
        self._start_ticking()
        logger.info("Resumed timer %s at %ss", self.id, self.remaining_seconds)

    def stop(self) -> None:
        """Discard the timer from any phase. Safe to call twice."""
        if self._discarded:
            return
        self._discard()
        logger.info("Stopped timer %s", self.id)

    def acknowledge(self) -> None:
        self._ensure_live()
        if self.phase != TimerPhase.COMPLETED:
            raise TimerStateError(f"Cannot acknowledge a {self.phase.value} timer")
        self._discard()

    def _discard(self) -> None:
        self._stop_ticking()
        if self._alert_run is not None:
            self._alert_run.cancel()
        self._discarded = True

    def _ensure_live(self) -> None:
        if self._discarded:
            raise TimerStateError("Timer has been discarded")
