"""Read-only page model and the host capabilities the extractors rely on.

The extractors never talk to a browser directly. A ``DocumentHost`` captures
a ``PageSnapshot`` (element tree, attributes, rendered geometry and computed
visibility) once per pass, answers selector queries against the live
document, and forwards mutation and visibility notifications.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

ELEMENT_NODE = 1
TEXT_NODE = 3
CONTROL_TAGS = ("input", "select", "textarea")
FIELD_QUERY = "input, select, textarea"


class InvalidSelectorError(ValueError):
    """Raised by a host when a selector cannot be parsed."""


@dataclass(slots=True, frozen=True)
class Rect:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def left(self) -> float:
        return self.x

    @property
    def top(self) -> float:
        return self.y

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def is_degenerate(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @classmethod
    def from_sequence(cls, values: Optional[Sequence[float]]) -> "Rect":
        if not values or len(values) < 4:
            return ZERO_RECT
        try:
            x, y, width, height = (float(value or 0) for value in values[:4])
        except (TypeError, ValueError):
            return ZERO_RECT
        return cls(x=x, y=y, width=width, height=height)

    def to_dict(self) -> Dict[str, float]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "top": self.top,
            "right": self.right,
            "bottom": self.bottom,
            "left": self.left,
        }


ZERO_RECT = Rect()


@dataclass(slots=True, frozen=True)
class Viewport:
    width: float = 1280
    height: float = 720

    def intersects(self, rect: Rect) -> bool:
        return (
            rect.right > 0
            and rect.left < self.width
            and rect.bottom > 0
            and rect.top < self.height
        )


@dataclass(slots=True, eq=False)
class DomNode:
    """One element or text node of a captured page."""

    node_type: int
    key: int = -1
    tag: str = ""
    attrs: Dict[str, str] = field(default_factory=dict)
    text: str = ""
    rect: Rect = ZERO_RECT
    display: str = ""
    visibility: str = ""
    opacity: float = 1.0
    children: List["DomNode"] = field(default_factory=list, repr=False)
    parent: Optional["DomNode"] = field(default=None, repr=False)
    owner: Optional["PageSnapshot"] = field(default=None, repr=False)

    @property
    def is_element(self) -> bool:
        return self.node_type == ELEMENT_NODE

    @property
    def is_text(self) -> bool:
        return self.node_type == TEXT_NODE

    @property
    def is_control(self) -> bool:
        return self.is_element and self.tag in CONTROL_TAGS

    @property
    def viewport(self) -> Viewport:
        return self.owner.viewport if self.owner else Viewport()

    @property
    def element_children(self) -> List["DomNode"]:
        return [child for child in self.children if child.is_element]

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attrs.get(name)

    def has_attribute(self, name: str) -> bool:
        return name in self.attrs

    def ancestors(self, max_depth: Optional[int] = None) -> Iterator["DomNode"]:
        """Yield parent elements, nearest first."""
        parent = self.parent
        depth = 0
        while parent is not None and (max_depth is None or depth < max_depth):
            yield parent
            parent = parent.parent
            depth += 1

    def descendants(self) -> Iterator["DomNode"]:
        """Yield every node below this one in document order."""
        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def text_nodes(self) -> Iterator["DomNode"]:
        return (node for node in self.descendants() if node.is_text)

    def contains(self, other: "DomNode") -> bool:
        node: Optional[DomNode] = other
        while node is not None:
            if node is self:
                return True
            node = node.parent
        return False

    def closest(self, tag: str) -> Optional["DomNode"]:
        node: Optional[DomNode] = self
        while node is not None:
            if node.is_element and node.tag == tag:
                return node
            node = node.parent
        return None

    def text_content(self) -> str:
        if self.is_text:
            return self.text
        return "".join(node.text for node in self.text_nodes())

    def text_without_controls(self) -> str:
        """Text of this subtree with nested form controls removed."""
        parts: List[str] = []
        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            if node.is_text:
                parts.append(node.text)
            elif not node.is_control:
                stack.extend(reversed(node.children))
        return "".join(parts)


@dataclass(slots=True)
class PageSnapshot:
    root: DomNode
    url: str = ""
    viewport: Viewport = field(default_factory=Viewport)
    by_key: Dict[int, DomNode] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        for node in self.iter_nodes():
            node.owner = self
            if node.is_element and node.key >= 0:
                self.by_key.setdefault(node.key, node)

    @property
    def body(self) -> DomNode:
        for child in self.root.element_children:
            if child.tag == "body":
                return child
        return self.root

    def iter_nodes(self) -> Iterator[DomNode]:
        yield self.root
        yield from self.root.descendants()

    def iter_elements(self) -> Iterator[DomNode]:
        return (node for node in self.iter_nodes() if node.is_element)

    def element_by_key(self, key: int) -> Optional[DomNode]:
        return self.by_key.get(key)

    def get_element_by_id(self, identifier: str) -> Optional[DomNode]:
        for node in self.iter_elements():
            if node.attrs.get("id") == identifier:
                return node
        return None

    def find_label_for(self, identifier: str) -> Optional[DomNode]:
        for node in self.iter_elements():
            if node.tag == "label" and node.attrs.get("for") == identifier:
                return node
        return None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PageSnapshot":
        viewport_data = payload.get("viewport") or {}
        default = Viewport()
        viewport = Viewport(
            width=float(viewport_data.get("width") or default.width),
            height=float(viewport_data.get("height") or default.height),
        )
        root = _node_from_payload(payload["root"], None)
        return cls(root=root, url=payload.get("url") or "", viewport=viewport)


def _node_from_payload(data: Dict[str, Any], parent: Optional[DomNode]) -> DomNode:
    if data.get("t") == TEXT_NODE:
        return DomNode(node_type=TEXT_NODE, text=data.get("text") or "", parent=parent)
    style = data.get("style") or ["", "", 1.0]
    try:
        opacity = float(style[2])
    except (TypeError, ValueError, IndexError):
        opacity = 1.0
    node = DomNode(
        node_type=ELEMENT_NODE,
        key=int(data.get("key", -1)),
        tag=(data.get("tag") or "").lower(),
        attrs=dict(data.get("attrs") or {}),
        rect=Rect.from_sequence(data.get("rect")),
        display=style[0] or "",
        visibility=style[1] or "",
        opacity=opacity,
        parent=parent,
    )
    node.children = [_node_from_payload(child, node) for child in data.get("children") or []]
    return node


@dataclass(slots=True)
class MutationNode:
    node_type: int
    tag: str = ""
    contains_control: bool = False

    @property
    def is_form_control(self) -> bool:
        return self.node_type == ELEMENT_NODE and self.tag in CONTROL_TAGS

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "MutationNode":
        return cls(
            node_type=int(data.get("nodeType", 0)),
            tag=(data.get("tag") or "").lower(),
            contains_control=bool(data.get("containsControl")),
        )


@dataclass(slots=True)
class MutationRecord:
    type: str
    added_nodes: List[MutationNode] = field(default_factory=list)
    removed_nodes: List[MutationNode] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "MutationRecord":
        return cls(
            type=data.get("type") or "",
            added_nodes=[MutationNode.from_payload(n) for n in data.get("addedNodes") or []],
            removed_nodes=[
                MutationNode.from_payload(n) for n in data.get("removedNodes") or []
            ],
        )


MutationCallback = Callable[[List[MutationRecord]], None]
VisibilityCallback = Callable[[bool], None]


class DocumentHost(ABC):
    """Capabilities of the environment that renders the document."""

    supports_mutation_observer: bool = False

    @abstractmethod
    async def capture(self) -> PageSnapshot:
        """Capture the current document as a read-only snapshot."""

    @abstractmethod
    async def query_selector_all(self, selector: str) -> List[int]:
        """Return the keys of live elements matching ``selector``."""

    @abstractmethod
    async def is_attached(self, key: int) -> bool:
        """Return whether the captured element is still in the document."""

    def observe_mutations(self, callback: MutationCallback) -> bool:
        return False

    def disconnect(self) -> None:
        return None

    def observe_visibility(self, callback: VisibilityCallback) -> bool:
        return False


__all__ = [
    "CONTROL_TAGS",
    "ELEMENT_NODE",
    "TEXT_NODE",
    "FIELD_QUERY",
    "InvalidSelectorError",
    "Rect",
    "ZERO_RECT",
    "Viewport",
    "DomNode",
    "PageSnapshot",
    "MutationNode",
    "MutationRecord",
    "MutationCallback",
    "VisibilityCallback",
    "DocumentHost",
]
