from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, List

import pytest

from formschema.models import ExtractedFormSchema, ExtractionTrigger
from formschema.scheduling import Scheduler


async def settle(rounds: int = 10) -> None:
    """Let freshly spawned tasks run to their next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@dataclass
class FakeTimer:
    due: float
    sequence: int
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler(Scheduler):
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.current = start
        self._timers: List[FakeTimer] = []
        self._sequence = 0

    def now(self) -> float:
        return self.current

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.current + delay_ms, self._sequence, callback)
        self._sequence += 1
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return [timer for timer in self._timers if not timer.cancelled]

    async def advance(self, ms: float) -> None:
        target = self.current + ms
        while True:
            due = [t for t in self.pending if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.sequence))
            self._timers.remove(timer)
            self.current = timer.due
            timer.callback()
            await settle()
        self.current = target
        await settle()


@dataclass
class RecordingExtractor:
    """Stands in for FormExtractor and records when each pass started."""

    scheduler: FakeScheduler
    host: object = None
    calls: List[tuple] = field(default_factory=list)
    failures: List[Exception] = field(default_factory=list)
    url: str = "https://jobs.example.com/apply"

    async def extract_form_schema(
        self, trigger: ExtractionTrigger = ExtractionTrigger.MANUAL
    ) -> ExtractedFormSchema:
        self.calls.append((self.scheduler.now(), trigger))
        await asyncio.sleep(0)
        if self.failures:
            raise self.failures.pop(0)
        return ExtractedFormSchema(
            fields=[], url=self.url, timestamp=0, extraction_source=trigger
        )


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def messages() -> List:
    return []


@pytest.fixture
def recording_extractor(scheduler) -> RecordingExtractor:
    return RecordingExtractor(scheduler)

