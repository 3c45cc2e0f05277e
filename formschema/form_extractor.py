"""One full extraction pass over the current document."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional
from urllib.parse import urlparse

import tldextract

from .dom import CONTROL_TAGS, DocumentHost, DomNode, PageSnapshot
from .geometry import GeometryConfig, has_valid_dimensions
from .label_associator import LabelAssociator
from .models import (
    ExtractedFieldSchema,
    ExtractedFormSchema,
    ExtractionTrigger,
    FieldAttributes,
    SelectOption,
)
from .selector_generator import SelectorConfig, SelectorGenerator

LOGGER = logging.getLogger(__name__)

_TLD_EXTRACTOR = tldextract.TLDExtract(suffix_list_urls=())


class ExtractionError(RuntimeError):
    """Discovery failed and the pass could not run."""


def now_ms() -> int:
    return int(time.time() * 1000)


def registrable_domain(url: str) -> Optional[str]:
    host = (urlparse(url).hostname or "").lower()
    if not host:
        return None
    extracted = _TLD_EXTRACTOR(host)
    if extracted.domain and extracted.suffix:
        return f"{extracted.domain}.{extracted.suffix}"
    return host


def is_discoverable(node: DomNode) -> bool:
    if node.tag not in CONTROL_TAGS or node.has_attribute("disabled"):
        return False
    if node.tag == "input" and (node.get_attribute("type") or "").lower() == "hidden":
        return False
    return True


def is_element_visible(node: DomNode) -> bool:
    if node.display == "none" or node.visibility == "hidden" or node.opacity == 0:
        return False
    return has_valid_dimensions(node)


def find_form_elements(snapshot: PageSnapshot) -> List[DomNode]:
    return [
        node
        for node in snapshot.iter_elements()
        if is_discoverable(node) and is_element_visible(node)
    ]


def extract_attributes(node: DomNode) -> FieldAttributes:
    return FieldAttributes(
        name=node.get_attribute("name") or None,
        id=node.get_attribute("id") or None,
        type=node.get_attribute("type") or None,
        placeholder=node.get_attribute("placeholder") or None,
        required=node.has_attribute("required"),
        autocomplete=node.get_attribute("autocomplete") or None,
        aria_label=node.get_attribute("aria-label") or None,
        aria_labelledby=node.get_attribute("aria-labelledby") or None,
    )


def extract_options(node: DomNode) -> Optional[List[SelectOption]]:
    if node.tag != "select":
        return None
    options = []
    for child in node.descendants():
        if not child.is_element or child.tag != "option":
            continue
        text = child.text_content()
        value = child.get_attribute("value")
        if value is None:
            value = " ".join(text.split())
        options.append(SelectOption(value=value, text=text))
    return options or None


class FormExtractor:
    """Discover visible controls and build a schema for each of them."""

    def __init__(
        self,
        host: DocumentHost,
        *,
        geometry_config: Optional[GeometryConfig] = None,
        selector_config: Optional[SelectorConfig] = None,
        label_associator: Optional[LabelAssociator] = None,
        selector_generator: Optional[SelectorGenerator] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.host = host
        self.logger = logger or LOGGER
        self.geometry_config = geometry_config or GeometryConfig()
        self.label_associator = label_associator or LabelAssociator(
            self.geometry_config, logger=self.logger
        )
        self.selector_generator = selector_generator or SelectorGenerator(
            host, selector_config, logger=self.logger
        )

    async def extract_form_schema(
        self, trigger: ExtractionTrigger = ExtractionTrigger.MANUAL
    ) -> ExtractedFormSchema:
        started = time.perf_counter()
        try:
            snapshot = await self.host.capture()
            elements = find_form_elements(snapshot)
        except Exception as exc:
            self.logger.error("Form discovery failed: %s", exc)
            raise ExtractionError(f"Form extraction failed: {exc}") from exc

        if not elements:
            return self._build_schema(snapshot, [], trigger)

        results = await asyncio.gather(
            *(
                self.process_form_element(element, index)
                for index, element in enumerate(elements)
            ),
            return_exceptions=True,
        )
        fields: List[ExtractedFieldSchema] = []
        for index, result in enumerate(results):
            if isinstance(result, ExtractedFieldSchema):
                fields.append(result)
            elif isinstance(result, Exception):
                self.logger.warning(
                    "Failed to process form element at index %s: %s", index, result
                )
            elif isinstance(result, BaseException):
                raise result

        self.logger.debug(
            "Form extraction completed in %.1fms, found %s fields",
            (time.perf_counter() - started) * 1000,
            len(fields),
        )
        return self._build_schema(snapshot, fields, trigger)

    async def process_form_element(
        self, element: DomNode, index: int
    ) -> ExtractedFieldSchema:
        attributes = extract_attributes(element)
        label = await self.label_associator.associate_label(element)
        selector = await self.selector_generator.generate_optimal_selector(element)
        return ExtractedFieldSchema(
            index=index,
            label=label,
            selector=selector,
            element_type=element.tag,
            attributes=attributes,
            options=extract_options(element),
            bounding_rect=element.rect,
        )

    def _build_schema(
        self,
        snapshot: PageSnapshot,
        fields: List[ExtractedFieldSchema],
        trigger: ExtractionTrigger,
    ) -> ExtractedFormSchema:
        return ExtractedFormSchema(
            fields=fields,
            url=snapshot.url,
            timestamp=now_ms(),
            extraction_source=trigger,
            site=registrable_domain(snapshot.url),
        )


__all__ = [
    "ExtractionError",
    "FormExtractor",
    "find_form_elements",
    "is_discoverable",
    "is_element_visible",
    "extract_attributes",
    "extract_options",
    "registrable_domain",
    "now_ms",
]
