"""Clock and timer seam used by the extraction manager."""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
import time
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(ABC):
    """Millisecond clock plus one-shot timers."""

    @abstractmethod
    def now(self) -> float:
        """Current time in milliseconds."""

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay_ms``."""


class LoopScheduler(Scheduler):
    """Timers on the running asyncio loop."""

    def now(self) -> float:
        return time.monotonic() * 1000

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000, callback)


__all__ = ["TimerHandle", "Scheduler", "LoopScheduler"]
