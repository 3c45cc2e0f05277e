from unittest.mock import MagicMock

import pytest

from dom_fixtures import StaticPage
from formschema.dom import DomNode, ELEMENT_NODE, TEXT_NODE
from formschema.label_associator import (
    LabelAssociator,
    UNLABELED_FIELD,
    container_text,
    search_root,
    select_best_fallback,
)
from formschema.models import LabelResult, LabelSource


async def control(page: StaticPage, selector: str) -> DomNode:
    snapshot = await page.capture()
    keys = await page.query_selector_all(selector)
    return snapshot.element_by_key(keys[0])


@pytest.mark.asyncio
async def test_for_attribute_wins_without_evaluating_later_strategies():
    page = StaticPage('<label for="e">L</label><input id="e" aria-label="Other">')
    element = await control(page, "#e")
    associator = LabelAssociator()
    associator.strategies = [
        (source, MagicMock(wraps=strategy)) for source, strategy in associator.strategies
    ]

    result = await associator.associate_label(element)

    assert result.label == "L"
    assert result.source is LabelSource.FOR_ATTRIBUTE
    assert result.confidence >= 0.9
    for _, strategy in associator.strategies[1:]:
        strategy.assert_not_called()


@pytest.mark.asyncio
async def test_wrapping_label_strips_nested_controls():
    page = StaticPage(
        "<label><span>Email address</span> <input name='email'>"
        "<select name='x'><option>skip me</option></select></label>"
    )
    result = await LabelAssociator().associate_label(await control(page, "input"))
    assert result.source is LabelSource.WRAPPING_LABEL
    assert result.label == "Email address"
    assert result.confidence == pytest.approx(0.9)


@pytest.mark.asyncio
async def test_aria_label():
    page = StaticPage('<input aria-label="  Phone number ">')
    result = await LabelAssociator().associate_label(await control(page, "input"))
    assert result.label == "Phone number"
    assert result.source is LabelSource.ARIA_LABEL
    assert result.confidence == pytest.approx(0.85)


@pytest.mark.asyncio
async def test_aria_labelledby_joins_references_in_order():
    page = StaticPage(
        '<span id="b">Name</span><span id="a">First</span>'
        '<input aria-labelledby="a missing b">'
    )
    result = await LabelAssociator().associate_label(await control(page, "input"))
    assert result.label == "First Name"
    assert result.source is LabelSource.ARIA_LABELLEDBY


@pytest.mark.asyncio
async def test_placeholder_only():
    page = StaticPage('<input placeholder="First Name">')
    result = await LabelAssociator().associate_label(await control(page, "input"))
    assert result.source is LabelSource.PLACEHOLDER
    assert result.label == "First Name"
    assert 0.4 < result.confidence < 0.8


@pytest.mark.asyncio
async def test_unlabeled_control_gets_sentinel():
    page = StaticPage('<input type="text">')
    result = await LabelAssociator().associate_label(await control(page, "input"))
    assert result.label == UNLABELED_FIELD
    assert result.confidence == pytest.approx(0.1)
    assert result.source is LabelSource.FALLBACK


@pytest.mark.asyncio
async def test_geometric_proximity_uses_nearby_text():
    page = StaticPage(
        '<div><span class="caption">Company</span><input name="company"></div>'
        '<p class="far">Terms and conditions</p>',
        layout={
            ".caption": (100, 370, 80, 20),
            "input": (100, 400, 150, 30),
            ".far": (700, 650, 300, 20),
        },
    )
    result = await LabelAssociator().associate_label(await control(page, "input"))
    assert result.source is LabelSource.GEOMETRIC_PROXIMITY
    assert result.label == "Company"
    assert result.confidence == pytest.approx(0.88)


@pytest.mark.asyncio
async def test_geometric_search_skips_implausible_text():
    page = StaticPage(
        '<p class="far">Welcome back</p><input name="q" placeholder="Search">',
        layout={".far": (700, 40, 200, 20), "input": (100, 400, 150, 30)},
    )
    result = await LabelAssociator().associate_label(await control(page, "input"))
    assert result.source is LabelSource.PLACEHOLDER


@pytest.mark.asyncio
async def test_parent_context_beats_weaker_placeholder():
    page = StaticPage(
        '<div class="row"><b>Nickname</b><input name="nick" placeholder="e.g. Sam"></div>',
        layout={".row": (100, 395, 400, 40), "input": (100, 400, 150, 30)},
    )
    result = await LabelAssociator().associate_label(await control(page, "input"))
    assert result.source is LabelSource.PARENT_CONTEXT
    assert result.label == "Nickname"
    assert result.confidence == pytest.approx(0.6)


@pytest.mark.asyncio
async def test_first_strategy_over_threshold_wins_over_higher_later_one():
    page = StaticPage(
        '<input aria-label="Given name" aria-labelledby="t"><span id="t">Ignored</span>'
    )
    associator = LabelAssociator()
    associator.strategies = [
        (LabelSource.PLACEHOLDER, lambda el: LabelResult("low", 0.5, LabelSource.PLACEHOLDER)),
        (LabelSource.ARIA_LABEL, associator.find_by_aria_label),
        (
            LabelSource.FOR_ATTRIBUTE,
            lambda el: LabelResult("high", 0.95, LabelSource.FOR_ATTRIBUTE),
        ),
    ]
    result = await associator.associate_label(await control(page, "input"))
    assert result.label == "Given name"


def test_best_fallback_prefers_earliest_on_ties():
    first = LabelResult("a", 0.5, LabelSource.PLACEHOLDER)
    second = LabelResult("b", 0.5, LabelSource.GEOMETRIC_PROXIMITY)
    assert select_best_fallback([LabelResult.empty(LabelSource.ARIA_LABEL), first, second]) is first


def test_best_fallback_sentinel_when_everything_is_empty():
    result = select_best_fallback([LabelResult.empty(source) for source in LabelSource])
    assert result.label == UNLABELED_FIELD
    assert result.source is LabelSource.FALLBACK


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Date of birth", "Date of birth"),
        ("deadbeef-1234", ""),
        ("123456", ""),
        ("A", ""),
        ("x" * 51, ""),
    ],
)
def test_container_text_filters(text, expected):
    container = DomNode(ELEMENT_NODE, tag="div")
    child = DomNode(TEXT_NODE, text=f"  {text} ", parent=container)
    container.children.append(child)
    assert container_text(container) == expected


@pytest.mark.asyncio
async def test_nearby_text_search_stays_inside_the_form():
    page = StaticPage(
        '<span class="caption">Company</span><form><input name="company"></form>',
        layout={".caption": (100, 370, 80, 20), "input": (100, 400, 150, 30)},
    )
    element = await control(page, "input")
    associator = LabelAssociator()

    assert search_root(element).tag == "form"
    assert associator.find_nearby_text(element) == []
    result = await associator.associate_label(element)
    assert result.label == UNLABELED_FIELD
    assert result.source is LabelSource.FALLBACK


@pytest.mark.asyncio
async def test_tall_container_bounds_the_search():
    page = StaticPage(
        '<section><div class="panel"><input name="city"></div></section>',
        layout={".panel": (0, 0, 800, 300)},
    )
    element = await control(page, "input")
    assert search_root(element).get_attribute("class") == "panel"

    page = StaticPage("<div><div><input name='city'></div></div>")
    element = await control(page, "input")
    assert search_root(element).tag == "body"


@pytest.mark.parametrize("decoys, expected", [(9, "Company"), (11, UNLABELED_FIELD)])
@pytest.mark.asyncio
async def test_only_the_ten_nearest_texts_are_considered(decoys, expected):
    page = StaticPage(
        "".join(f'<span class="decoy">Note {i}</span>' for i in range(decoys))
        + '<span class="caption">Company</span><input name="company">',
        layout={
            ".decoy": (175, 415, 0, 0),
            ".caption": (100, 370, 80, 20),
            "input": (100, 400, 150, 30),
        },
    )
    element = await control(page, "input")
    associator = LabelAssociator()

    nearby = associator.find_nearby_text(element)
    assert len(nearby) == min(decoys + 1, 10)
    result = await associator.associate_label(element)
    assert result.label == expected
