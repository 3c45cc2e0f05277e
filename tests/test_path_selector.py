import pytest

from dom_fixtures import StaticPage
from formschema.dom import DomNode, TEXT_NODE
from formschema.path_selector import generate_selector
from formschema.selector_generator import (
    AUTO_GENERATED_CLASS_PATTERNS,
    STABLE_ATTRIBUTE_SELECTORS,
)

OPTIONS = {
    "blacklist": AUTO_GENERATED_CLASS_PATTERNS,
    "whitelist": STABLE_ATTRIBUTE_SELECTORS,
}


async def resolve(page: StaticPage, selector: str):
    snapshot = await page.capture()
    keys = await page.query_selector_all(selector)
    assert len(keys) == 1
    return snapshot.element_by_key(keys[0])


@pytest.mark.asyncio
async def test_prefers_single_whitelisted_attribute():
    page = StaticPage('<input name="zip" class="postcode"><input name="city">')
    element = await resolve(page, "input[name=zip]")
    assert generate_selector(element, **OPTIONS) == '[name="zip"]'


@pytest.mark.asyncio
async def test_generated_classes_are_ignored():
    page = StaticPage(
        '<div><input class="css-abc123 _hash a1b2c3d4"></div>'
        '<p><input class="css-abc123 _hash a1b2c3d4"></p>'
    )
    element = await resolve(page, "p input")
    selector = generate_selector(element, **OPTIONS)
    assert "css-" not in selector and "_hash" not in selector
    assert await page.query_selector_all(selector) == [element.key]


@pytest.mark.asyncio
async def test_falls_back_to_anchored_nth_of_type_path():
    page = StaticPage(
        '<div data-testid="billing"><span><input></span><span><input></span></div>'
        '<div data-testid="shipping"><span><input></span><span><input></span></div>'
    )
    element = await resolve(page, '[data-testid="shipping"] span:nth-of-type(2) input')
    selector = generate_selector(element, **OPTIONS)
    assert selector.startswith('div[data-testid="shipping"] >')
    assert await page.query_selector_all(selector) == [element.key]


@pytest.mark.asyncio
async def test_path_without_anchor_reaches_document_root():
    page = StaticPage("<div><input></div><div><input></div>")
    element = await resolve(page, "div:nth-of-type(2) input")
    selector = generate_selector(element, **OPTIONS)
    assert await page.query_selector_all(selector) == [element.key]


@pytest.mark.asyncio
async def test_combination_budget_is_respected():
    page = StaticPage('<input name="a"><input name="a" autocomplete="off">')
    element = await resolve(page, "input[autocomplete]")
    selector = generate_selector(element, max_combinations=1, **OPTIONS)
    assert await page.query_selector_all(selector) == [element.key]


def test_rejects_text_nodes():
    with pytest.raises(ValueError):
        generate_selector(DomNode(TEXT_NODE, text="hi"))
