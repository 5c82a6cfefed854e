"""Cook timers: countdown state machine, completion alerts, session registry."""

from .alerts import (
    AlertDispatcher,
    AlertRun,
    AlertSettings,
    CompletionAlert,
    CompletionFanOut,
    NotificationPayload,
    NotificationPermission,
    VisualState,
)
from .engine import CookTimer, Emphasis, TimerPhase, TimerStateError, format_clock
from .registry import TimerAlreadyActive, TimerRegistry, get_timer_registry, timer_registry
from .scheduling import AsyncioScheduler, Scheduler, TickSubscription

__all__ = [
    "AlertDispatcher",
    "AlertRun",
    "AlertSettings",
    "AsyncioScheduler",
    "CompletionAlert",
    "CompletionFanOut",
    "CookTimer",
    "Emphasis",
    "NotificationPayload",
    "NotificationPermission",
    "Scheduler",
    "TickSubscription",
    "TimerAlreadyActive",
    "TimerPhase",
    "TimerRegistry",
    "TimerStateError",
    "VisualState",
    "format_clock",
    "get_timer_registry",
    "timer_registry",
]
