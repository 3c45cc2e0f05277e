"""Spatial plausibility scoring between rendered regions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import math
from typing import Optional

from .dom import DomNode, Rect, Viewport

LOGGER = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.6
VERTICAL_WEIGHT = 0.6
HORIZONTAL_WEIGHT = 0.4
SAME_ROW_BONUS = 0.2
ALIGNED_COLUMN_DISTANCE = 50


@dataclass(slots=True)
class GeometryConfig:
    max_vertical_distance: float = 50
    max_horizontal_distance: float = 200
    same_row_tolerance: float = 10


@dataclass(slots=True)
class ProximityResult:
    is_valid: bool
    confidence: float
    reason: str

    @classmethod
    def rejected(cls, reason: str) -> "ProximityResult":
        return cls(is_valid=False, confidence=0.0, reason=reason)


class LayoutRelationship(str, Enum):
    ABOVE = "above"
    BELOW = "below"
    LEFT = "left"
    RIGHT = "right"
    OVERLAPPING = "overlapping"
    DISTANT = "distant"


def has_valid_dimensions(node: DomNode) -> bool:
    return node.rect.width > 0 and node.rect.height > 0


def vertical_distance(first: Rect, second: Rect) -> float:
    """Gap between the nearest horizontal edges, 0 when the boxes overlap."""
    if first.bottom < second.top:
        return second.top - first.bottom
    if second.bottom < first.top:
        return first.top - second.bottom
    return 0.0


def horizontal_distance(first: Rect, second: Rect) -> float:
    if first.right < second.left:
        return second.left - first.right
    if second.right < first.left:
        return first.left - second.right
    return 0.0


def is_same_row(first: Rect, second: Rect, tolerance: float) -> bool:
    return abs(first.center[1] - second.center[1]) <= tolerance


def center_distance(first: Rect, second: Rect) -> float:
    (ax, ay), (bx, by) = first.center, second.center
    return math.hypot(ax - bx, ay - by)


def validate_label_proximity(
    control: Rect,
    text: Rect,
    config: Optional[GeometryConfig] = None,
    *,
    viewport: Optional[Viewport] = None,
    threshold: float = DEFAULT_THRESHOLD,
) -> ProximityResult:
    """Score how plausible it is that ``text`` labels ``control``.

    Never raises: malformed geometry degrades to a rejected result.
    """
    config = config or GeometryConfig()
    viewport = viewport or Viewport()
    try:
        if control.is_degenerate or text.is_degenerate:
            return ProximityResult.rejected("degenerate bounding box")
        if not viewport.intersects(control) or not viewport.intersects(text):
            return ProximityResult.rejected("outside viewport")

        gap = vertical_distance(control, text)
        alignment = abs(control.left - text.left)
        same_row = is_same_row(control, text, config.same_row_tolerance)

        score = VERTICAL_WEIGHT * max(0.0, 1 - gap / config.max_vertical_distance)
        score += HORIZONTAL_WEIGHT * max(
            0.0, 1 - alignment / config.max_horizontal_distance
        )
        if same_row:
            score += SAME_ROW_BONUS
        score = min(1.0, max(0.0, score))
        if math.isnan(score):
            return ProximityResult.rejected("invalid geometry")
    except (TypeError, ValueError, ZeroDivisionError, AttributeError) as exc:
        LOGGER.debug("Proximity check failed: %s", exc)
        return ProximityResult.rejected("invalid geometry")

    is_valid = score >= threshold
    reason = (
        f"vertical={gap:.1f} alignment={alignment:.1f} same_row={same_row}"
        f" score={score:.2f}"
    )
    return ProximityResult(is_valid=is_valid, confidence=score, reason=reason)


def get_layout_relationship(
    control: Rect, text: Rect, config: Optional[GeometryConfig] = None
) -> LayoutRelationship:
    """Classify where ``text`` sits relative to ``control``."""
    config = config or GeometryConfig()
    alignment = abs(control.left - text.left)
    if vertical_distance(control, text) == 0 and alignment == 0:
        return LayoutRelationship.OVERLAPPING
    if is_same_row(control, text, config.same_row_tolerance):
        if text.right < control.left:
            return LayoutRelationship.LEFT
        if text.left > control.right:
            return LayoutRelationship.RIGHT
    if alignment <= ALIGNED_COLUMN_DISTANCE:
        if text.bottom < control.top:
            return LayoutRelationship.ABOVE
        if text.top > control.bottom:
            return LayoutRelationship.BELOW
    return LayoutRelationship.DISTANT


__all__ = [
    "GeometryConfig",
    "ProximityResult",
    "LayoutRelationship",
    "has_valid_dimensions",
    "vertical_distance",
    "horizontal_distance",
    "center_distance",
    "is_same_row",
    "validate_label_proximity",
    "get_layout_relationship",
]
