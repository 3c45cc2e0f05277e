"""Default general-purpose selector helper.

Works over a captured ``DomNode`` tree. The shortest unique combination of
whitelisted attributes, non-generated classes and the tag wins; when no
combination is unique the helper falls back to an ``nth-of-type`` path
anchored at the closest ancestor that a whitelisted attribute identifies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import combinations
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

from .css import attribute_selector, escape_identifier
from .dom import DomNode


@dataclass(slots=True)
class Compound:
    """A simple selector: optional tag, attribute equalities, classes."""

    tag: Optional[str] = None
    attributes: Tuple[Tuple[str, str], ...] = ()
    classes: Tuple[str, ...] = ()
    nth_of_type: Optional[int] = None

    def matches(self, node: DomNode) -> bool:
        if not node.is_element:
            return False
        if self.tag and node.tag != self.tag:
            return False
        for name, value in self.attributes:
            if node.attrs.get(name) != value:
                return False
        if self.classes:
            present = set((node.attrs.get("class") or "").split())
            if not present.issuperset(self.classes):
                return False
        if self.nth_of_type is not None and nth_of_type(node) != self.nth_of_type:
            return False
        return True

    def render(self) -> str:
        parts = [self.tag or ""]
        for name, value in self.attributes:
            if name == "id":
                parts.append(f"#{escape_identifier(value)}")
            else:
                parts.append(attribute_selector(name, value))
        parts.extend(f".{escape_identifier(name)}" for name in self.classes)
        if self.nth_of_type is not None:
            parts.append(f":nth-of-type({self.nth_of_type})")
        return "".join(parts) or "*"


@dataclass(slots=True)
class ChildPath:
    """Compounds joined by child combinators, outermost first."""

    steps: List[Compound] = field(default_factory=list)

    def matches(self, node: DomNode) -> bool:
        current: Optional[DomNode] = node
        for step in reversed(self.steps):
            if current is None or not step.matches(current):
                return False
            current = current.parent
        return True

    def render(self) -> str:
        return " > ".join(step.render() for step in self.steps)


def nth_of_type(node: DomNode) -> int:
    if node.parent is None:
        return 1
    siblings = [child for child in node.parent.element_children if child.tag == node.tag]
    return siblings.index(node) + 1


def whitelisted_attributes(whitelist: Iterable[str]) -> List[str]:
    names = []
    for entry in whitelist:
        name = entry.strip().strip("[]").strip()
        if name and name not in names:
            names.append(name)
    return names


def stable_classes(node: DomNode, blacklist: Sequence[Pattern[str]]) -> List[str]:
    classes = []
    for name in (node.attrs.get("class") or "").split():
        if any(pattern.search(name) for pattern in blacklist):
            continue
        if name not in classes:
            classes.append(name)
    return classes


def _document_root(node: DomNode) -> DomNode:
    root = node
    while root.parent is not None:
        root = root.parent
    return root


def _is_unique(selector: "Compound | ChildPath", target: DomNode, root: DomNode) -> bool:
    found = 0
    for node in root.descendants():
        if selector.matches(node):
            if node is not target:
                return False
            found += 1
    if root is not target and selector.matches(root):
        return False
    return found == 1


def _attribute_parts(node: DomNode, attributes: Sequence[str]) -> List[Tuple[str, str]]:
    return [(name, node.attrs[name]) for name in attributes if node.attrs.get(name)]


def _compound_candidates(
    node: DomNode,
    attributes: Sequence[str],
    blacklist: Sequence[Pattern[str]],
    max_combinations: int,
) -> Iterable[Compound]:
    parts: List[Tuple[str, object]] = [
        ("attr", part) for part in _attribute_parts(node, attributes)
    ]
    parts.extend(("class", name) for name in stable_classes(node, blacklist))
    parts.append(("tag", node.tag))

    tried = 0
    for size in range(1, len(parts) + 1):
        for combo in combinations(parts, size):
            if tried >= max_combinations:
                return
            tried += 1
            yield Compound(
                tag=next((value for kind, value in combo if kind == "tag"), None),
                attributes=tuple(value for kind, value in combo if kind == "attr"),
                classes=tuple(value for kind, value in combo if kind == "class"),
            )


def _anchor_for(
    node: DomNode, attributes: Sequence[str], root: DomNode
) -> Optional[Compound]:
    for part in _attribute_parts(node, attributes):
        compound = Compound(tag=node.tag, attributes=(part,))
        if _is_unique(compound, node, root):
            return compound
    return None


def generate_selector(
    element: DomNode,
    *,
    blacklist: Sequence[Pattern[str]] = (),
    whitelist: Sequence[str] = (),
    max_candidates: int = 5,
    max_combinations: int = 50,
) -> str:
    """Return a selector that matches ``element`` and nothing else."""
    if not element.is_element:
        raise ValueError("selectors can only be generated for elements")
    root = _document_root(element)
    attributes = whitelisted_attributes(whitelist)

    found: List[str] = []
    for compound in _compound_candidates(element, attributes, blacklist, max_combinations):
        if _is_unique(compound, element, root):
            found.append(compound.render())
            if len(found) >= max_candidates:
                break
    if found:
        return min(found, key=len)

    path = ChildPath(
        steps=[Compound(tag=element.tag, nth_of_type=nth_of_type(element))]
    )
    current = element.parent
    while current is not None and current is not root:
        anchor = _anchor_for(current, attributes, root)
        if anchor is not None:
            path.steps.insert(0, anchor)
            if _is_unique(path, element, root):
                return path.render()
            path.steps[0] = Compound(tag=current.tag, nth_of_type=nth_of_type(current))
        else:
            path.steps.insert(0, Compound(tag=current.tag, nth_of_type=nth_of_type(current)))
        if _is_unique(path, element, root):
            return path.render()
        current = current.parent
    if current is not None and current.tag:
        path.steps.insert(0, Compound(tag=current.tag))
    return path.render()


__all__ = ["generate_selector", "Compound", "ChildPath", "nth_of_type"]
