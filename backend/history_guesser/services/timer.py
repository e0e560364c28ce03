import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TimerStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    EXPIRED = "expired"


class RoundTimer:
    """
    Countdown for a single round.

    The only side effect is calling ``on_timeout`` once when the remaining
    time reaches zero while running. Further ticks after expiry are ignored.
    The same timer is reused across rounds through ``reset``.
    """

    def __init__(self, on_timeout: Optional[Callable[[], None]] = None):
        self.on_timeout = on_timeout
        self.status = TimerStatus.IDLE
        self.duration = 0.0
        self.remaining = 0.0
        self._started = False

    @property
    def elapsed(self) -> float:
        return max(0.0, self.duration - self.remaining)

    @property
    def is_running(self) -> bool:
        return self.status == TimerStatus.RUNNING

    @property
    def has_expired(self) -> bool:
        return self.status == TimerStatus.EXPIRED

    def start(self, seconds: float) -> None:
        self.duration = float(seconds)
        self.remaining = float(seconds)
        self.status = TimerStatus.RUNNING
        self._started = True
        if self.remaining <= 0:
            self._expire()

    def pause(self) -> None:
        if self.status == TimerStatus.RUNNING:
            self.status = TimerStatus.PAUSED

    def resume(self) -> None:
        if self.status == TimerStatus.PAUSED:
            self.status = TimerStatus.RUNNING

    def stop(self) -> None:
        """Stop counting without firing the timeout; back to idle."""
        self.status = TimerStatus.IDLE
        self._started = False

    def reset(self, seconds: float) -> None:
        """Fresh countdown: running again if the timer was started, otherwise idle."""
        self.duration = float(seconds)
        self.remaining = float(seconds)
        self.status = TimerStatus.RUNNING if self._started else TimerStatus.IDLE
        if self.status == TimerStatus.RUNNING and self.remaining <= 0:
            self._expire()

    def tick(self, seconds: float = 1.0) -> None:
        if self.status != TimerStatus.RUNNING:
            return
        self.remaining = max(0.0, self.remaining - seconds)
        if self.remaining <= 0:
            self._expire()

    def _expire(self) -> None:
        self.remaining = 0.0
        self.status = TimerStatus.EXPIRED
        logger.info("Round timer expired after %.0f seconds", self.duration)
        if self.on_timeout is not None:
            self.on_timeout()

    async def run(self, interval: float = 1.0) -> None:
        """Tick once per interval until the timer expires or is stopped."""
        while self.status in (TimerStatus.RUNNING, TimerStatus.PAUSED):
            await asyncio.sleep(interval)
            self.tick(interval)
