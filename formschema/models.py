"""Data models shared across the extraction pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from .dom import Rect


class LabelSource(str, Enum):
    FOR_ATTRIBUTE = "for-attribute"
    WRAPPING_LABEL = "wrapping-label"
    ARIA_LABEL = "aria-label"
    ARIA_LABELLEDBY = "aria-labelledby"
    PLACEHOLDER = "placeholder"
    GEOMETRIC_PROXIMITY = "geometric-proximity"
    PARENT_CONTEXT = "parent-context"
    FALLBACK = "fallback"


class ExtractionTrigger(str, Enum):
    MANUAL = "manual"
    MUTATION_OBSERVER = "mutation-observer"


def _check_confidence(value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"confidence must lie in [0, 1], got {value!r}")
    return value


@dataclass(slots=True)
class LabelResult:
    label: str
    confidence: float
    source: LabelSource
    debug: Optional[str] = None

    def __post_init__(self) -> None:
        _check_confidence(self.confidence)

    @classmethod
    def empty(cls, source: LabelSource) -> "LabelResult":
        return cls(label="", confidence=0.0, source=source)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "confidence": self.confidence,
            "source": self.source.value,
            "debug": self.debug,
        }


@dataclass(slots=True)
class SelectorCandidate:
    selector: str
    confidence: float
    source: str

    def __post_init__(self) -> None:
        _check_confidence(self.confidence)

    @property
    def is_manual(self) -> bool:
        return self.source.startswith("manual")

    def with_confidence(self, confidence: float) -> "SelectorCandidate":
        return replace(self, confidence=confidence)


@dataclass(slots=True)
class SelectorResult:
    primary: str
    fallbacks: List[str]
    confidence: float

    def __post_init__(self) -> None:
        _check_confidence(self.confidence)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary": self.primary,
            "fallbacks": list(self.fallbacks),
            "confidence": self.confidence,
        }


@dataclass(slots=True)
class SelectOption:
    value: str
    text: str


@dataclass(slots=True)
class FieldAttributes:
    name: Optional[str] = None
    id: Optional[str] = None
    type: Optional[str] = None
    placeholder: Optional[str] = None
    required: bool = False
    autocomplete: Optional[str] = None
    aria_label: Optional[str] = None
    aria_labelledby: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "id": self.id,
            "type": self.type,
            "placeholder": self.placeholder,
            "required": self.required,
            "autocomplete": self.autocomplete,
            "aria-label": self.aria_label,
            "aria-labelledby": self.aria_labelledby,
        }


@dataclass(slots=True)
class ExtractedFieldSchema:
    index: int
    label: LabelResult
    selector: SelectorResult
    element_type: str
    attributes: FieldAttributes
    options: Optional[List[SelectOption]]
    bounding_rect: Rect

    def __post_init__(self) -> None:
        if not self.options:
            self.options = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "label": self.label.to_dict(),
            "selector": self.selector.to_dict(),
            "element_type": self.element_type,
            "attributes": self.attributes.to_dict(),
            "options": (
                [{"value": opt.value, "text": opt.text} for opt in self.options]
                if self.options
                else None
            ),
            "bounding_rect": self.bounding_rect.to_dict(),
        }


@dataclass(slots=True)
class ExtractedFormSchema:
    fields: List[ExtractedFieldSchema]
    url: str
    timestamp: int
    extraction_source: ExtractionTrigger
    site: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fields": [item.to_dict() for item in self.fields],
            "url": self.url,
            "site": self.site,
            "timestamp": self.timestamp,
            "extraction_source": self.extraction_source.value,
        }


FORM_SCHEMA_EXTRACTED = "FORM_SCHEMA_EXTRACTED"
EXTRACTION_ERROR = "EXTRACTION_ERROR"
EXTRACT_FORMS = "EXTRACT_FORMS"


@dataclass(slots=True)
class ExtractorMessage:
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def schema_extracted(
        cls, schema: ExtractedFormSchema, trigger: ExtractionTrigger
    ) -> "ExtractorMessage":
        return cls(
            type=FORM_SCHEMA_EXTRACTED,
            payload={"schema": schema, "trigger": trigger.value},
        )

    @classmethod
    def extraction_error(cls, error: str, timestamp: int) -> "ExtractorMessage":
        return cls(
            type=EXTRACTION_ERROR,
            payload={"error": error, "details": {"timestamp": timestamp}},
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = dict(self.payload)
        schema = payload.get("schema")
        if isinstance(schema, ExtractedFormSchema):
            payload["schema"] = schema.to_dict()
        return {"type": self.type, "payload": payload}


__all__ = [
    "LabelSource",
    "ExtractionTrigger",
    "LabelResult",
    "SelectorCandidate",
    "SelectorResult",
    "SelectOption",
    "FieldAttributes",
    "ExtractedFieldSchema",
    "ExtractedFormSchema",
    "ExtractorMessage",
    "FORM_SCHEMA_EXTRACTED",
    "EXTRACTION_ERROR",
    "EXTRACT_FORMS",
]
