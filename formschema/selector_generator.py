"""Multi-strategy CSS selector generation with live validation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import importlib
import inspect
import logging
import re
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from .css import attribute_selector, escape_identifier, quote_attribute_value
from .dom import FIELD_QUERY, DocumentHost, DomNode, InvalidSelectorError
from .models import SelectorCandidate, SelectorResult

LOGGER = logging.getLogger(__name__)

DEFAULT_HELPER_PATH = "formschema.path_selector:generate_selector"

AUTO_GENERATED_CLASS_PATTERNS = (
    re.compile(r"^css-"),
    re.compile(r"^r-\d+"),
    re.compile(r"^_\w+"),
    re.compile(r"^\w{6,8}$"),
    re.compile(r"^[a-f0-9]{8,}$", re.IGNORECASE),
)
STABLE_ATTRIBUTE_SELECTORS = (
    "[data-testid]",
    "[data-test]",
    "[data-cy]",
    "[name]",
    "[id]",
    "[autocomplete]",
)
UNSTABLE_ID_PATTERNS = (
    re.compile(r"^[a-f0-9]{8,}$", re.IGNORECASE),
    re.compile(r"^\d+$"),
    re.compile(r"^react-"),
    re.compile(r"^mui-"),
    re.compile(r"^:r\w+:"),
)

TAG_QUALIFIED_BONUS = 0.01
LIBRARY_CONFIDENCE = 0.8
TAG_TYPE_CONFIDENCE = 0.4
PARENT_NTH_CONFIDENCE = 0.3
FORM_NTH_CONFIDENCE = 0.35
MANUAL_BOOST = 0.1
DEFAULT_BOOST = 0.05
AMBIGUOUS_CAP = 0.4
AMBIGUOUS_FACTOR = 0.5
MISSING_CONFIDENCE = 0.1
MIN_CONFIDENCE = 0.1
MAX_FALLBACKS = 3
UNIVERSAL_SELECTOR = FIELD_QUERY


def is_stable_id(value: str) -> bool:
    return not any(pattern.search(value) for pattern in UNSTABLE_ID_PATTERNS)


@dataclass(slots=True, frozen=True)
class ManualStrategy:
    attribute: str
    confidence: float
    source_key: str
    validator: Optional[Callable[[str], bool]] = None


MANUAL_STRATEGIES = (
    ManualStrategy("data-testid", 0.99, "testid"),
    ManualStrategy("data-cy", 0.98, "cy"),
    ManualStrategy("data-test", 0.97, "test"),
    ManualStrategy("data-automation-id", 0.95, "automation-id"),
    ManualStrategy("id", 0.90, "id", is_stable_id),
    ManualStrategy("name", 0.85, "name"),
    ManualStrategy("autocomplete", 0.80, "autocomplete"),
)


@dataclass(slots=True)
class SelectorConfig:
    helper_path: Optional[str] = DEFAULT_HELPER_PATH
    helper_timeout_ms: int = 1000
    max_candidates: int = 5
    max_combinations: int = 50


SelectorHelper = Callable[..., Any]
HelperFactory = Callable[[str], Awaitable[SelectorHelper]]


async def import_helper(path: str) -> SelectorHelper:
    """Resolve ``"package.module:function"`` to a callable."""
    module_name, _, attribute = path.partition(":")
    module = await asyncio.to_thread(importlib.import_module, module_name)
    helper = getattr(module, attribute or "generate_selector")
    if not callable(helper):
        raise TypeError(f"{path} is not callable")
    return helper


class SelectorHelperLoader:
    """At-most-once loader for the general-purpose selector helper.

    Concurrent callers share a single in-flight load. A failed load is
    forgotten so a later call may retry.
    """

    def __init__(
        self,
        path: Optional[str] = DEFAULT_HELPER_PATH,
        *,
        factory: Optional[HelperFactory] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.path = path
        self.factory = factory or import_helper
        self.logger = logger or LOGGER
        self.load_attempts = 0
        self._helper: Optional[SelectorHelper] = None
        self._pending: Optional[asyncio.Future] = None

    async def get(self) -> Optional[SelectorHelper]:
        if self._helper is not None:
            return self._helper
        if not self.path:
            return None
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._load(self.path))
        return await asyncio.shield(self._pending)

    async def _load(self, path: str) -> Optional[SelectorHelper]:
        self.load_attempts += 1
        try:
            helper = await self.factory(path)
        except Exception as exc:  # noqa: BLE001
            self.logger.debug("Selector helper %s unavailable: %s", path, exc)
            self._pending = None
            return None
        self._helper = helper
        return helper


class SelectorGenerator:
    """Build a ranked primary/fallback selector set for one element."""

    def __init__(
        self,
        host: DocumentHost,
        config: Optional[SelectorConfig] = None,
        *,
        helper_loader: Optional[SelectorHelperLoader] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.host = host
        self.config = config or SelectorConfig()
        self.logger = logger or LOGGER
        self.helper_loader = helper_loader or SelectorHelperLoader(
            self.config.helper_path, logger=self.logger
        )

    async def generate_optimal_selector(self, element: DomNode) -> SelectorResult:
        candidates: List[SelectorCandidate] = []
        candidates.extend(self.generate_manual_selectors(element))
        candidates.extend(await self.generate_library_selectors(element))
        candidates.extend(self.generate_structural_selectors(element))
        validated = await self.validate_selectors(candidates, element)
        return select_best_selectors(validated)

    def generate_manual_selectors(self, element: DomNode) -> List[SelectorCandidate]:
        candidates: List[SelectorCandidate] = []
        for strategy in MANUAL_STRATEGIES:
            value = element.get_attribute(strategy.attribute)
            if not value:
                continue
            if strategy.validator and not strategy.validator(value):
                continue
            if strategy.attribute == "id":
                selector = f"#{escape_identifier(value)}"
            else:
                selector = attribute_selector(strategy.attribute, value)
            source = f"manual-{strategy.source_key}"
            candidates.append(
                SelectorCandidate(
                    selector=f"{element.tag}{selector}",
                    confidence=round(strategy.confidence + TAG_QUALIFIED_BONUS, 4),
                    source=f"{source}-tag",
                )
            )
            candidates.append(
                SelectorCandidate(
                    selector=selector, confidence=strategy.confidence, source=source
                )
            )
        return candidates

    async def generate_library_selectors(
        self, element: DomNode
    ) -> List[SelectorCandidate]:
        try:
            helper = await self.helper_loader.get()
            if helper is None:
                return []
            selector = await asyncio.wait_for(
                self._invoke_helper(helper, element),
                timeout=self.config.helper_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            self.logger.debug(
                "Selector helper timed out after %sms", self.config.helper_timeout_ms
            )
            return []
        except Exception as exc:  # noqa: BLE001
            self.logger.debug("Selector helper failed: %s", exc)
            return []
        if not selector or not isinstance(selector, str):
            return []
        return [
            SelectorCandidate(
                selector=selector, confidence=LIBRARY_CONFIDENCE, source="library"
            )
        ]

    def _invoke_helper(self, helper: SelectorHelper, element: DomNode) -> Awaitable[Any]:
        options = {
            "blacklist": AUTO_GENERATED_CLASS_PATTERNS,
            "whitelist": STABLE_ATTRIBUTE_SELECTORS,
            "max_candidates": self.config.max_candidates,
            "max_combinations": self.config.max_combinations,
        }
        if inspect.iscoroutinefunction(helper):
            return helper(element, **options)
        return asyncio.to_thread(helper, element, **options)

    def generate_structural_selectors(
        self, element: DomNode
    ) -> List[SelectorCandidate]:
        candidates: List[SelectorCandidate] = []
        tag = element.tag
        input_type = element.get_attribute("type")
        if input_type:
            candidates.append(
                SelectorCandidate(
                    selector=f"{tag}[type={quote_attribute_value(input_type)}]",
                    confidence=TAG_TYPE_CONFIDENCE,
                    source="structural",
                )
            )

        parent = element.parent
        if parent is not None and parent.is_element:
            same_tag = [child for child in parent.element_children if child.tag == tag]
            position = same_tag.index(element) + 1
            candidates.append(
                SelectorCandidate(
                    selector=f"{parent.tag} > {tag}:nth-of-type({position})",
                    confidence=PARENT_NTH_CONFIDENCE,
                    source="structural",
                )
            )

        form = element.parent.closest("form") if element.parent else None
        if form is not None:
            controls = [node for node in form.descendants() if node.is_control]
            position = controls.index(element) + 1
            candidates.append(
                SelectorCandidate(
                    selector=f"form {tag}:nth-of-type({position})",
                    confidence=FORM_NTH_CONFIDENCE,
                    source="structural",
                )
            )
        return candidates

    async def validate_selectors(
        self, candidates: Sequence[SelectorCandidate], element: DomNode
    ) -> List[SelectorCandidate]:
        if not await self.host.is_attached(element.key):
            return [c for c in candidates if c.confidence > MIN_CONFIDENCE]

        validated: List[SelectorCandidate] = []
        for candidate in candidates:
            try:
                matches = await self.host.query_selector_all(candidate.selector)
            except InvalidSelectorError as exc:
                self.logger.debug("Invalid selector %r: %s", candidate.selector, exc)
                continue
            if len(matches) == 1 and matches[0] == element.key:
                boost = MANUAL_BOOST if candidate.is_manual else DEFAULT_BOOST
                confidence = round(min(1.0, candidate.confidence + boost), 4)
                validated.append(candidate.with_confidence(confidence))
            elif len(matches) > 1 and element.key in matches:
                validated.append(
                    candidate.with_confidence(
                        min(AMBIGUOUS_CAP, candidate.confidence * AMBIGUOUS_FACTOR)
                    )
                )
            elif not matches:
                validated.append(candidate.with_confidence(MISSING_CONFIDENCE))
        return validated


def select_best_selectors(candidates: Sequence[SelectorCandidate]) -> SelectorResult:
    ranked = sorted(
        (c for c in candidates if c.confidence > MIN_CONFIDENCE),
        key=lambda c: c.confidence,
        reverse=True,
    )
    if not ranked:
        return SelectorResult(
            primary=UNIVERSAL_SELECTOR, fallbacks=[], confidence=MIN_CONFIDENCE
        )
    primary = ranked[0]
    fallbacks: List[str] = []
    for candidate in ranked[1:]:
        if candidate.selector == primary.selector or candidate.selector in fallbacks:
            continue
        fallbacks.append(candidate.selector)
        if len(fallbacks) == MAX_FALLBACKS:
            break
    return SelectorResult(
        primary=primary.selector, fallbacks=fallbacks, confidence=primary.confidence
    )


def generate_fallback_selector(element: DomNode) -> str:
    input_type = element.get_attribute("type")
    if input_type:
        return f"{element.tag}[type={quote_attribute_value(input_type)}]"
    return element.tag


__all__ = [
    "AUTO_GENERATED_CLASS_PATTERNS",
    "STABLE_ATTRIBUTE_SELECTORS",
    "DEFAULT_HELPER_PATH",
    "UNIVERSAL_SELECTOR",
    "SelectorConfig",
    "SelectorHelperLoader",
    "SelectorGenerator",
    "import_helper",
    "is_stable_id",
    "select_best_selectors",
    "generate_fallback_selector",
]
