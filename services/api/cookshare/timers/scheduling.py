"""Cooperative scheduling primitives for cook timers.

Everything runs on one event loop; nothing here starts a thread. A
`Scheduler` hands out cancellable delayed callbacks, and a
`TickSubscription` turns that into a fixed-cadence tick that its owner
must cancel on every exit path.
"""

import asyncio
import logging
from typing import Callable, Optional, Protocol

logger = logging.getLogger("cookshare.timers")


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable: ...


class AsyncioScheduler:
    """Binds callbacks to an asyncio loop (the running one unless given)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class TickSubscription:
    """A single live tick source.

    Each tick re-arms the next one only after the callback returns, so a
    fresh subscription always starts a full interval from now and there is
    never more than one pending callback.
    """

    def __init__(self, scheduler: Scheduler, interval: float, on_tick: Callable[[], None]):
        self._scheduler = scheduler
        self._interval = interval
        self._on_tick = on_tick
        self._cancelled = False
        self._handle: Optional[Cancellable] = scheduler.call_later(interval, self._fire)

    @property
    def active(self) -> bool:
        return not self._cancelled

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._handle = None
        self._on_tick()
        # on_tick may have cancelled us (pause, completion, stop)
        if not self._cancelled:
            self._handle = self._scheduler.call_later(self._interval, self._fire)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def __enter__(self) -> "TickSubscription":
        return self

    def __exit__(self, *exc) -> None:
        self.cancel()
