"""Per-section countdown and its once-per-second asyncio ticker."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)

WARNING_SECONDS = 300
CRITICAL_SECONDS = 60


class Countdown:
    """Remaining time of the active section, in whole seconds."""

    def __init__(self, minutes: int | None = None) -> None:
        self.limit_seconds = 0
        self.remaining_seconds = 0
        self.reset(minutes)

    def reset(self, minutes: int | None) -> None:
        self.limit_seconds = max(int(minutes or 0), 0) * 60
        self.remaining_seconds = self.limit_seconds

    @property
    def enabled(self) -> bool:
        return self.limit_seconds > 0

    @property
    def expired(self) -> bool:
        return self.enabled and self.remaining_seconds == 0

    def tick(self, seconds: int = 1) -> int:
        """Decrement by `seconds`, never below zero. Returns the remaining time."""
        if self.enabled:
            self.remaining_seconds = max(self.remaining_seconds - max(seconds, 0), 0)
        return self.remaining_seconds

    @property
    def display(self) -> str:
        minutes, seconds = divmod(self.remaining_seconds, 60)
        return f"{minutes:02d}:{seconds:02d}"

    @property
    def urgency(self) -> str:
        if self.remaining_seconds <= CRITICAL_SECONDS:
            return "critical"
        if self.remaining_seconds <= WARNING_SECONDS:
            return "warning"
        return "normal"

    def to_dict(self) -> dict[str, object]:
        if not self.enabled:
            return {"enabled": False}
        return {
            "enabled": True,
            "limitSeconds": self.limit_seconds,
            "remainingSeconds": self.remaining_seconds,
            "display": self.display,
            "urgency": self.urgency,
            "expired": self.expired,
        }


class TimerTask:
    """
    Calls `on_tick` once per `interval` seconds until stopped.

    No drift correction: each tick sleeps a full interval after the
    previous callback returns.
    """

    def __init__(self, on_tick: Callable[[], bool], interval: float = 1.0) -> None:
        self.on_tick = on_tick
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Schedule the ticker on the running loop. Returns False when there is none."""
        if self.running:
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, countdown must be ticked by the host")
            return False
        self._task = loop.create_task(self._run())
        return True

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if not self.on_tick():
                break
