"""Debounced, rate-limited re-extraction driven by document mutations."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from .dom import DocumentHost, MutationNode, MutationRecord
from .form_extractor import FormExtractor, find_form_elements, now_ms
from .models import ExtractedFormSchema, ExtractionTrigger, ExtractorMessage
from .scheduling import LoopScheduler, Scheduler, TimerHandle

LOGGER = logging.getLogger(__name__)

Consumer = Callable[[ExtractorMessage], Any]


@dataclass(slots=True)
class SchedulingConfig:
    debounce_ms: float = 300
    max_delay_ms: float = 2000
    min_interval_ms: float = 1000
    bulk_mutation_threshold: int = 100


def touches_form_controls(node: MutationNode) -> bool:
    return node.is_form_control or (node.node_type == 1 and node.contains_control)


def batch_touches_form_controls(records: List[MutationRecord]) -> bool:
    for record in records:
        if record.type != "childList":
            continue
        if any(touches_form_controls(node) for node in record.added_nodes):
            return True
        if any(touches_form_controls(node) for node in record.removed_nodes):
            return True
    return False


def should_ignore_mutations(
    records: List[MutationRecord], bulk_threshold: int = 100
) -> bool:
    """True when a batch is a bulk re-render or never touches a form control."""
    return len(records) > bulk_threshold or not batch_touches_form_controls(records)


class ExtractionManager:
    """Decide when to re-run the extractor and forward its results.

    Qualifying mutation batches restart a debounce timer; the first batch
    after an idle period also arms a max-delay timer so a steady stream of
    mutations cannot postpone extraction forever. Every attempt, including
    forced ones, is dropped while another is in flight or when the previous
    attempt started less than ``min_interval_ms`` ago.
    """

    def __init__(
        self,
        extractor: FormExtractor,
        host: Optional[DocumentHost] = None,
        consumer: Optional[Consumer] = None,
        *,
        config: Optional[SchedulingConfig] = None,
        scheduler: Optional[Scheduler] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.extractor = extractor
        self.host = host or extractor.host
        self.consumer = consumer
        self.config = config or SchedulingConfig()
        self.scheduler = scheduler or LoopScheduler()
        self.logger = logger or LOGGER

        self.observing = False
        self.is_extracting = False
        self.last_extraction_time: Optional[float] = None
        self.last_field_count = 0
        self._debounce_timer: Optional[TimerHandle] = None
        self._max_delay_timer: Optional[TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

        self.start_observing()

    def start_observing(self) -> bool:
        if self.observing:
            return True
        if not self.host.supports_mutation_observer:
            self.logger.debug("Mutation observation not supported by host")
            return False
        self.observing = bool(self.host.observe_mutations(self.handle_mutations))
        if self.observing:
            self.logger.debug("Mutation observation started")
        return self.observing

    def stop_observing(self) -> None:
        if self.observing:
            self.host.disconnect()
            self.observing = False
            self.logger.debug("Mutation observation stopped")
        self._clear_timers()

    def handle_visibility_change(self, hidden: bool) -> None:
        if hidden:
            self.stop_observing()
            return
        self.start_observing()
        self._track(self._check_controls_changed())

    async def _check_controls_changed(self) -> None:
        """Mutations are not observed while hidden, so compare control counts."""
        if self.is_extracting:
            return
        try:
            snapshot = await self.host.capture()
        except Exception as exc:  # noqa: BLE001
            self.logger.debug("Could not inspect page after it became visible: %s", exc)
            return
        count = len(find_form_elements(snapshot))
        if count == self.last_field_count or not self.observing:
            return
        self.logger.debug(
            "Form controls changed while hidden (%s -> %s)", self.last_field_count, count
        )
        self.last_field_count = count
        self._debounced_extract()

    def handle_mutations(self, records: List[MutationRecord]) -> None:
        if len(records) > self.config.bulk_mutation_threshold:
            self.logger.debug("Ignoring bulk mutation batch of %s records", len(records))
            return
        if not batch_touches_form_controls(records):
            return
        self._debounced_extract()

    async def force_extraction(self) -> Optional[ExtractedFormSchema]:
        self._clear_timers()
        return await self._perform_extraction(ExtractionTrigger.MANUAL)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "last_extraction_time": self.last_extraction_time,
            "last_field_count": self.last_field_count,
            "is_observing": self.observing,
            "is_extracting": self.is_extracting,
        }

    async def wait_for_pending(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        self.stop_observing()
        await self.wait_for_pending()

    def _debounced_extract(self) -> None:
        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
        self._debounce_timer = self.scheduler.call_later(
            self.config.debounce_ms, self._on_debounce_timer
        )
        if self._max_delay_timer is None:
            self._max_delay_timer = self.scheduler.call_later(
                self.config.max_delay_ms, self._on_max_delay_timer
            )

    def _on_debounce_timer(self) -> None:
        self._debounce_timer = None
        self._spawn_extraction()

    def _on_max_delay_timer(self) -> None:
        self._max_delay_timer = None
        self.logger.debug("Max delay reached, extracting")
        self._spawn_extraction()

    def _spawn_extraction(self) -> None:
        self._track(self._perform_extraction(ExtractionTrigger.MUTATION_OBSERVER))

    def _track(self, coroutine) -> None:
        task = asyncio.get_running_loop().create_task(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _clear_timers(self) -> None:
        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
            self._debounce_timer = None
        if self._max_delay_timer is not None:
            self._max_delay_timer.cancel()
            self._max_delay_timer = None

    async def _perform_extraction(
        self, trigger: ExtractionTrigger
    ) -> Optional[ExtractedFormSchema]:
        if self.is_extracting:
            self.logger.debug("Extraction already in progress, skipping")
            return None
        now = self.scheduler.now()
        if (
            self.last_extraction_time is not None
            and now - self.last_extraction_time < self.config.min_interval_ms
        ):
            self.logger.debug("Extraction requested too soon, skipping")
            return None

        self._clear_timers()
        self.is_extracting = True
        self.last_extraction_time = now
        started_at = now_ms()
        try:
            schema = await self.extractor.extract_form_schema(trigger)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("Extraction failed: %s", exc)
            await self._deliver(
                ExtractorMessage.extraction_error(str(exc) or "Unknown error", started_at)
            )
            return None
        else:
            self.last_field_count = len(schema.fields)
            self.logger.debug("Extracted %s form fields (%s)", len(schema.fields), trigger.value)
            await self._deliver(ExtractorMessage.schema_extracted(schema, trigger))
            return schema
        finally:
            self.is_extracting = False

    async def _deliver(self, message: ExtractorMessage) -> None:
        if self.consumer is None:
            return
        try:
            result = self.consumer(message)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # noqa: BLE001
            self.logger.debug("Failed to deliver %s: %s", message.type, exc)


__all__ = [
    "SchedulingConfig",
    "ExtractionManager",
    "batch_touches_form_controls",
    "should_ignore_mutations",
    "touches_form_controls",
]
