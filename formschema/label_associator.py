"""Multi-strategy label resolution for form controls."""

from __future__ import annotations

import logging
import re
from typing import Callable, List, Optional, Sequence, Tuple

from .dom import DomNode, PageSnapshot
from .geometry import (
    GeometryConfig,
    center_distance,
    validate_label_proximity,
)
from .models import LabelResult, LabelSource

LOGGER = logging.getLogger(__name__)

EARLY_EXIT_CONFIDENCE = 0.7

FOR_ATTRIBUTE_CONFIDENCE = 0.95
WRAPPING_LABEL_CONFIDENCE = 0.9
ARIA_LABEL_CONFIDENCE = 0.85
ARIA_LABELLEDBY_CONFIDENCE = 0.85
PLACEHOLDER_CONFIDENCE = 0.5
PARENT_CONTEXT_FLOOR = 0.3
PARENT_CONTEXT_WEIGHT = 0.6

WRAPPING_LABEL_DEPTH = 3
PARENT_CONTEXT_DEPTH = 5
SEARCH_ROOT_DEPTH = 5
SEARCH_ROOT_MIN_HEIGHT = 200
MAX_TEXT_CANDIDATES = 10
MAX_NEARBY_TEXT_LENGTH = 99
MIN_CONTEXT_TEXT_LENGTH = 2
MAX_CONTEXT_TEXT_LENGTH = 50

UNLABELED_FIELD = "Unlabeled Field"
UNLABELED_CONFIDENCE = 0.1

ID_LIKE_TEXT = re.compile(r"^[a-f0-9-]{8,}$", re.IGNORECASE)
NUMERIC_TEXT = re.compile(r"^\d+$")

Strategy = Callable[[DomNode], LabelResult]


def _snapshot(element: DomNode) -> Optional[PageSnapshot]:
    return element.owner


class LabelAssociator:
    """Resolve the most plausible human-readable label for a control.

    Strategies run in a fixed priority order. The first one whose confidence
    exceeds ``EARLY_EXIT_CONFIDENCE`` wins outright; otherwise the completed
    result with the highest confidence is returned (earliest on ties), and a
    sentinel is produced when nothing matched at all.
    """

    def __init__(
        self,
        geometry_config: Optional[GeometryConfig] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.geometry_config = geometry_config or GeometryConfig()
        self.logger = logger or LOGGER
        self.strategies: Sequence[Tuple[LabelSource, Strategy]] = (
            (LabelSource.FOR_ATTRIBUTE, self.find_by_for_attribute),
            (LabelSource.WRAPPING_LABEL, self.find_by_wrapping_label),
            (LabelSource.ARIA_LABEL, self.find_by_aria_label),
            (LabelSource.ARIA_LABELLEDBY, self.find_by_aria_labelledby),
            (LabelSource.PLACEHOLDER, self.find_by_placeholder),
            (LabelSource.GEOMETRIC_PROXIMITY, self.find_by_geometric_proximity),
            (LabelSource.PARENT_CONTEXT, self.find_by_parent_context),
        )

    async def associate_label(self, element: DomNode) -> LabelResult:
        completed: List[LabelResult] = []
        for source, strategy in self.strategies:
            result = strategy(element)
            if result.confidence > EARLY_EXIT_CONFIDENCE:
                self.logger.debug(
                    "Label %r resolved by %s (%.2f)",
                    result.label,
                    source.value,
                    result.confidence,
                )
                return result
            completed.append(result)
        return select_best_fallback(completed)

    def find_by_for_attribute(self, element: DomNode) -> LabelResult:
        identifier = element.get_attribute("id")
        snapshot = _snapshot(element)
        if not identifier or snapshot is None:
            return LabelResult.empty(LabelSource.FOR_ATTRIBUTE)
        label = snapshot.find_label_for(identifier)
        text = label.text_content().strip() if label else ""
        if not text:
            return LabelResult.empty(LabelSource.FOR_ATTRIBUTE)
        return LabelResult(
            label=text,
            confidence=FOR_ATTRIBUTE_CONFIDENCE,
            source=LabelSource.FOR_ATTRIBUTE,
            debug=f'label[for="{identifier}"]',
        )

    def find_by_wrapping_label(self, element: DomNode) -> LabelResult:
        for depth, parent in enumerate(element.ancestors(WRAPPING_LABEL_DEPTH)):
            if parent.tag != "label":
                continue
            text = parent.text_without_controls().strip()
            if text:
                return LabelResult(
                    label=text,
                    confidence=WRAPPING_LABEL_CONFIDENCE,
                    source=LabelSource.WRAPPING_LABEL,
                    debug=f"wrapping label at depth {depth}",
                )
        return LabelResult.empty(LabelSource.WRAPPING_LABEL)

    def find_by_aria_label(self, element: DomNode) -> LabelResult:
        value = (element.get_attribute("aria-label") or "").strip()
        if not value:
            return LabelResult.empty(LabelSource.ARIA_LABEL)
        return LabelResult(
            label=value,
            confidence=ARIA_LABEL_CONFIDENCE,
            source=LabelSource.ARIA_LABEL,
        )

    def find_by_aria_labelledby(self, element: DomNode) -> LabelResult:
        references = (element.get_attribute("aria-labelledby") or "").split()
        snapshot = _snapshot(element)
        if not references or snapshot is None:
            return LabelResult.empty(LabelSource.ARIA_LABELLEDBY)
        parts = []
        for reference in references:
            target = snapshot.get_element_by_id(reference)
            text = target.text_content().strip() if target else ""
            if text:
                parts.append(text)
        if not parts:
            return LabelResult.empty(LabelSource.ARIA_LABELLEDBY)
        return LabelResult(
            label=" ".join(parts),
            confidence=ARIA_LABELLEDBY_CONFIDENCE,
            source=LabelSource.ARIA_LABELLEDBY,
            debug=f"referenced ids {references}",
        )

    def find_by_placeholder(self, element: DomNode) -> LabelResult:
        value = (element.get_attribute("placeholder") or "").strip()
        if not value:
            return LabelResult.empty(LabelSource.PLACEHOLDER)
        return LabelResult(
            label=value,
            confidence=PLACEHOLDER_CONFIDENCE,
            source=LabelSource.PLACEHOLDER,
        )

    def find_by_geometric_proximity(self, element: DomNode) -> LabelResult:
        for text, holder in self.find_nearby_text(element):
            validation = validate_label_proximity(
                element.rect,
                holder.rect,
                self.geometry_config,
                viewport=element.viewport,
            )
            if validation.is_valid:
                return LabelResult(
                    label=text,
                    confidence=validation.confidence,
                    source=LabelSource.GEOMETRIC_PROXIMITY,
                    debug=validation.reason,
                )
        return LabelResult.empty(LabelSource.GEOMETRIC_PROXIMITY)

    def find_by_parent_context(self, element: DomNode) -> LabelResult:
        for depth, parent in enumerate(element.ancestors(PARENT_CONTEXT_DEPTH)):
            text = container_text(parent)
            if not text:
                continue
            validation = validate_label_proximity(
                element.rect,
                parent.rect,
                self.geometry_config,
                viewport=element.viewport,
            )
            if validation.is_valid:
                return LabelResult(
                    label=text,
                    confidence=max(
                        PARENT_CONTEXT_FLOOR,
                        validation.confidence * PARENT_CONTEXT_WEIGHT,
                    ),
                    source=LabelSource.PARENT_CONTEXT,
                    debug=f"parent context at depth {depth}: {validation.reason}",
                )
        return LabelResult.empty(LabelSource.PARENT_CONTEXT)

    def find_nearby_text(self, element: DomNode) -> List[Tuple[str, DomNode]]:
        """Return up to ten (text, holder element) pairs, nearest first."""
        root = search_root(element)
        found: List[Tuple[float, str, DomNode]] = []
        for node in root.text_nodes():
            holder = node.parent
            if holder is None or holder is element or element.contains(node):
                continue
            text = node.text.strip()
            if not text or len(text) > MAX_NEARBY_TEXT_LENGTH:
                continue
            found.append((center_distance(element.rect, holder.rect), text, holder))
        found.sort(key=lambda item: item[0])
        return [(text, holder) for _, text, holder in found[:MAX_TEXT_CANDIDATES]]


def search_root(element: DomNode) -> DomNode:
    """Nearest form-like or tall ancestor, else the document body."""
    for parent in element.ancestors(SEARCH_ROOT_DEPTH):
        if parent.tag == "form" or parent.rect.height > SEARCH_ROOT_MIN_HEIGHT:
            return parent
    snapshot = _snapshot(element)
    if snapshot is not None:
        return snapshot.body
    root = element
    for root in element.ancestors():
        pass
    return root


def container_text(container: DomNode) -> str:
    text = container.text_without_controls().strip()
    if not MIN_CONTEXT_TEXT_LENGTH <= len(text) <= MAX_CONTEXT_TEXT_LENGTH:
        return ""
    if ID_LIKE_TEXT.match(text) or NUMERIC_TEXT.match(text):
        return ""
    return text


def select_best_fallback(results: Sequence[LabelResult]) -> LabelResult:
    best: Optional[LabelResult] = None
    for result in results:
        if result.confidence > 0 and (best is None or result.confidence > best.confidence):
            best = result
    if best is not None:
        return best
    return LabelResult(
        label=UNLABELED_FIELD,
        confidence=UNLABELED_CONFIDENCE,
        source=LabelSource.FALLBACK,
        debug="No suitable label found",
    )


__all__ = [
    "LabelAssociator",
    "EARLY_EXIT_CONFIDENCE",
    "UNLABELED_FIELD",
    "search_root",
    "container_text",
    "select_best_fallback",
]
