import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from dom_fixtures import StaticPage
from formschema.form_extractor import ExtractionError, FormExtractor, registrable_domain
from formschema.label_associator import LabelAssociator
from formschema.models import ExtractionTrigger, LabelSource, SelectOption
from formschema.selector_generator import SelectorConfig

NO_HELPER = SelectorConfig(helper_path=None)

APPLICATION_FORM = """
<form id="apply">
  <label for="first">First name</label>
  <input id="first" name="first_name" required autocomplete="given-name">
  <label>Email <input type="email" name="email"></label>
  <input type="tel" name="phone" aria-label="Phone">
  <select name="country">
    <option value="">Choose a country</option>
    <option>France</option>
    <option value="de">Germany</option>
  </select>
  <textarea name="cover" placeholder="Cover letter"></textarea>
  <input type="hidden" name="csrf" value="t0k3n">
  <input type="submit" value="Send" disabled>
</form>
"""


@pytest.mark.asyncio
async def test_extracts_fields_in_document_order():
    page = StaticPage(APPLICATION_FORM)
    extractor = FormExtractor(page, selector_config=NO_HELPER)

    schema = await extractor.extract_form_schema()

    assert [f.attributes.name for f in schema.fields] == [
        "first_name",
        "email",
        "phone",
        "country",
        "cover",
    ]
    assert [f.index for f in schema.fields] == [0, 1, 2, 3, 4]
    assert [f.element_type for f in schema.fields] == [
        "input",
        "input",
        "input",
        "select",
        "textarea",
    ]
    assert [(f.label.label, f.label.source) for f in schema.fields] == [
        ("First name", LabelSource.FOR_ATTRIBUTE),
        ("Email", LabelSource.WRAPPING_LABEL),
        ("Phone", LabelSource.ARIA_LABEL),
        ("Unlabeled Field", LabelSource.FALLBACK),
        ("Cover letter", LabelSource.PLACEHOLDER),
    ]
    for field in schema.fields:
        assert await page.query_selector_all(field.selector.primary) != []
        assert 0 <= field.selector.confidence <= 1
        assert 0 <= field.label.confidence <= 1
    assert schema.url == "https://jobs.example.co.uk/apply"
    assert schema.extraction_source is ExtractionTrigger.MANUAL


@pytest.mark.asyncio
async def test_attributes_and_options():
    page = StaticPage(APPLICATION_FORM)
    schema = await FormExtractor(page, selector_config=NO_HELPER).extract_form_schema()
    first, email, _, country, cover = schema.fields

    assert first.attributes.required is True
    assert first.attributes.autocomplete == "given-name"
    assert first.attributes.id == "first"
    assert email.attributes.required is False
    assert email.attributes.type == "email"
    assert email.options is None
    assert cover.options is None
    assert country.options == [
        SelectOption(value="", text="Choose a country"),
        SelectOption(value="France", text="France"),
        SelectOption(value="de", text="Germany"),
    ]


@pytest.mark.asyncio
async def test_empty_select_has_no_options():
    page = StaticPage('<select name="empty"></select>')
    schema = await FormExtractor(page, selector_config=NO_HELPER).extract_form_schema()
    assert schema.fields[0].options is None


@pytest.mark.asyncio
async def test_invisible_controls_are_not_discovered():
    page = StaticPage(
        '<input name="shown">'
        '<input name="none" style="display: none">'
        '<input name="hidden" style="visibility:hidden">'
        '<input name="clear" style="opacity: 0">'
        '<input name="flat">'
        '<input name="off" disabled>'
        '<input name="token" type="HIDDEN">',
        layout={'input[name="flat"]': (10, 10, 0, 0)},
    )
    schema = await FormExtractor(page, selector_config=NO_HELPER).extract_form_schema()
    assert [f.attributes.name for f in schema.fields] == ["shown"]


@pytest.mark.asyncio
async def test_no_controls_short_circuits():
    page = StaticPage("<p>Nothing to fill in here</p><input type='hidden' name='x'>")
    associator = MagicMock()
    associator.associate_label = AsyncMock()
    selectors = MagicMock()
    selectors.generate_optimal_selector = AsyncMock()
    extractor = FormExtractor(
        page, label_associator=associator, selector_generator=selectors
    )

    schema = await extractor.extract_form_schema(ExtractionTrigger.MUTATION_OBSERVER)

    assert schema.fields == []
    assert schema.extraction_source is ExtractionTrigger.MUTATION_OBSERVER
    associator.associate_label.assert_not_called()
    selectors.generate_optimal_selector.assert_not_called()
    assert page.queries == []


class FlakyAssociator(LabelAssociator):
    async def associate_label(self, element):
        if element.get_attribute("name") == "c":
            raise RuntimeError("layout exploded")
        return await super().associate_label(element)


@pytest.mark.asyncio
async def test_one_failing_element_does_not_abort_the_pass():
    page = StaticPage("".join(f'<input name="{name}">' for name in "abcde"))
    extractor = FormExtractor(
        page, label_associator=FlakyAssociator(), selector_config=NO_HELPER
    )

    schema = await extractor.extract_form_schema()

    assert [f.attributes.name for f in schema.fields] == ["a", "b", "d", "e"]
    assert [f.index for f in schema.fields] == [0, 1, 3, 4]


@pytest.mark.asyncio
async def test_discovery_failure_raises_extraction_error():
    page = StaticPage("<input>")
    page.fail_capture = RuntimeError("page crashed")
    with pytest.raises(ExtractionError, match="Form extraction failed: page crashed") as info:
        await FormExtractor(page, selector_config=NO_HELPER).extract_form_schema()
    assert isinstance(info.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_schema_serializes_to_json():
    page = StaticPage(APPLICATION_FORM)
    schema = await FormExtractor(page, selector_config=NO_HELPER).extract_form_schema()
    data = json.loads(json.dumps(schema.to_dict()))

    assert data["site"] == "example.co.uk"
    assert data["extraction_source"] == "manual"
    field = data["fields"][0]
    assert field["label"]["source"] == "for-attribute"
    assert field["attributes"]["aria-label"] is None
    assert set(field["bounding_rect"]) == {
        "x",
        "y",
        "width",
        "height",
        "top",
        "right",
        "bottom",
        "left",
    }


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://boards.greenhouse.io/acme/jobs/1", "greenhouse.io"),
        ("https://careers.example.co.uk/apply", "example.co.uk"),
        ("http://localhost:8000/form", "localhost"),
        ("about:blank", None),
    ],
)
def test_registrable_domain(url, expected):
    assert registrable_domain(url) == expected
