"""Deadline clock for a timed attempt.

Remaining time is always recomputed from the server's ``started_at`` and the
attempt duration, never by counting down locally. A reloaded page, a
throttled background task or a drifting local clock therefore converge on
the same deadline.

States:
    IDLE -> RUNNING: start() with time left
    IDLE -> EXPIRED: start() after the deadline (no tick is emitted)
    RUNNING -> EXPIRED: remaining time reaches zero
    any -> CANCELLED: cancel(); no listener is called afterwards
"""

import asyncio
import enum
import logging
import math
from datetime import datetime
from typing import Callable, List, Optional

from attempt_engine.datetime_utils import ensure_timezone_aware, utc_now
from attempt_engine.graceful_failure import graceful_failure
from attempt_engine.telemetry import metrics

logger = logging.getLogger(__name__)

TickListener = Callable[[int], None]
ExpiredListener = Callable[[], None]


class ClockState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


def format_remaining(seconds: int) -> str:
    """Render seconds as ``H:MM:SS`` from one hour up, otherwise ``MM:SS``."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class DeadlineClock:
    """Ticks once per second and fires a one-shot expiry event.

    Listeners run inside graceful_failure: a listener that raises is logged
    and the clock keeps running.

    Usage:
        with DeadlineClock(on_tick=show, on_expired=auto_submit) as clock:
            clock.start(attempt.started_at, duration_seconds)
            ...

    Leaving the ``with`` block cancels the clock.
    """

    def __init__(
        self,
        on_tick: Optional[TickListener] = None,
        on_expired: Optional[ExpiredListener] = None,
        *,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._tick_listeners: List[TickListener] = [on_tick] if on_tick else []
        self._expired_listeners: List[ExpiredListener] = [on_expired] if on_expired else []
        self._now = now
        self._state = ClockState.IDLE
        self._started_at: Optional[datetime] = None
        self._duration: int = 0
        self._remaining: Optional[int] = None
        self._last_tick: Optional[int] = None
        self._task: Optional[asyncio.Task] = None

    def __enter__(self) -> "DeadlineClock":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel()

    @property
    def state(self) -> ClockState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is ClockState.RUNNING

    @property
    def expired(self) -> bool:
        return self._state is ClockState.EXPIRED

    @property
    def cancelled(self) -> bool:
        return self._state is ClockState.CANCELLED

    @property
    def remaining(self) -> int:
        """Last observed remaining seconds (0 before start)."""
        return self._remaining if self._remaining is not None else 0

    def add_tick_listener(self, listener: TickListener) -> None:
        self._tick_listeners.append(listener)

    def add_expired_listener(self, listener: ExpiredListener) -> None:
        self._expired_listeners.append(listener)

    def seconds_left(self) -> float:
        """Exact time left right now, negative once the deadline has passed."""
        if self._started_at is None:
            return 0.0
        elapsed = (self._now() - self._started_at).total_seconds()
        return self._duration - elapsed

    def _observe(self) -> int:
        # Whole seconds, rounded up so the display reads 0 only at the deadline.
        # Never goes back up, even if the local clock is set backwards.
        remaining = max(0, math.ceil(self.seconds_left()))
        if self._remaining is not None:
            remaining = min(remaining, self._remaining)
        self._remaining = remaining
        return remaining

    def start(self, started_at: datetime, duration_seconds: int) -> None:
        """Start counting down towards ``started_at + duration_seconds``.

        Must be called from a running event loop, also when the deadline has
        already passed and expiry fires synchronously.

        Raises:
            RuntimeError: If the clock was already started or cancelled, or
                no event loop is running.
        """
        if self._state is not ClockState.IDLE:
            raise RuntimeError(f"Clock cannot be started from state {self._state.value}")
        loop = asyncio.get_running_loop()
        if duration_seconds < 0:
            raise ValueError("duration_seconds must be non-negative")

        self._started_at = ensure_timezone_aware(started_at)
        self._duration = int(duration_seconds)

        remaining = self._observe()
        if remaining <= 0:
            logger.info("Deadline already passed at clock start")
            self._expire()
            return

        self._state = ClockState.RUNNING
        logger.debug(f"Clock started with {remaining}s remaining")
        self._emit_tick(remaining)
        self._task = loop.create_task(self._run())

    def cancel(self) -> None:
        """Stop the clock and detach every listener. Idempotent."""
        if self._state in (ClockState.IDLE, ClockState.RUNNING):
            self._state = ClockState.CANCELLED
            logger.debug("Clock cancelled")
        self._tick_listeners.clear()
        self._expired_listeners.clear()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while self._state is ClockState.RUNNING:
            left = self.seconds_left()
            # Sleep until the displayed whole-second value changes
            delay = left - (math.ceil(left) - 1) if left > 0 else 0
            await asyncio.sleep(min(1.0, max(delay, 0.0)))
            if self._state is not ClockState.RUNNING:
                return
            remaining = self._observe()
            if remaining <= 0:
                self._expire()
                return
            if remaining != self._last_tick:
                self._emit_tick(remaining)

    def _emit_tick(self, remaining: int) -> None:
        self._last_tick = remaining
        for listener in list(self._tick_listeners):
            if self._state is not ClockState.RUNNING:
                return
            with graceful_failure("notify tick listener", logger, exc_info=True):
                listener(remaining)

    def _expire(self) -> None:
        self._state = ClockState.EXPIRED
        self._remaining = 0
        metrics.record_clock_expired()
        logger.info("Deadline reached")
        listeners = list(self._expired_listeners)
        self._tick_listeners.clear()
        self._expired_listeners.clear()
        for listener in listeners:
            with graceful_failure(
                "notify expiry listener", logger, log_level=logging.ERROR, exc_info=True
            ):
                listener()
