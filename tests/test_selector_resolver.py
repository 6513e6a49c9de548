import pytest

from fakes import FakeElement, FakePage
from stepengine.config import RunConfig
from stepengine.errors import ActionErrorCode, ResolutionFailure
from stepengine.selector_resolver import SelectorResolver
from stepflow.dsl.models import ElementDescriptor


def test_unique_match_short_circuits():
    page = FakePage()
    page.add("#save", FakeElement("Save", attributes={"id": "save"}))
    page.add("text=Save", FakeElement("Save"))

    outcome = SelectorResolver(page).resolve(ElementDescriptor(id="save", text="Save"))

    assert outcome.strategy == "id"
    assert outcome.query == "#save"
    assert not outcome.ambiguous and not outcome.healed


def test_unique_later_strategy_beats_earlier_ambiguous_match():
    page = FakePage()
    page.add("[name='qty']", FakeElement(), FakeElement(), FakeElement())
    target = page.add(".qty-input", FakeElement(attributes={"className": "qty-input"}))

    descriptor = ElementDescriptor(name="qty", selector=".qty-input")
    outcome = SelectorResolver(page).resolve(descriptor)

    assert outcome.strategy == "selector"
    assert outcome.locator.elements == [target]
    assert outcome.match_count == 1


def test_lenient_mode_falls_back_to_first_ambiguous_match():
    page = FakePage()
    first = FakeElement("Delete")
    page.add("[name='delete']", first, FakeElement("Delete"))
    page.add("text=Delete", FakeElement("Delete"), FakeElement("Delete"), FakeElement("Delete"))

    outcome = SelectorResolver(page).resolve(ElementDescriptor(name="delete", text="Delete"))

    assert outcome.ambiguous
    assert outcome.strategy == "name"
    assert outcome.match_count == 2
    assert outcome.locator.elements == [first]


def test_strict_mode_rejects_ambiguous_match():
    page = FakePage()
    page.add("[name='delete']", FakeElement(), FakeElement())

    resolver = SelectorResolver(page, RunConfig(resolution_mode="strict"))
    with pytest.raises(ResolutionFailure) as excinfo:
        resolver.resolve(ElementDescriptor(name="delete"))

    assert excinfo.value.code == ActionErrorCode.AMBIGUOUS_MATCH
    assert excinfo.value.details["match_count"] == 2


def test_missing_element_reports_attempts():
    with pytest.raises(ResolutionFailure) as excinfo:
        SelectorResolver(FakePage()).resolve(ElementDescriptor(id="gone", text="Gone"))

    error = excinfo.value
    assert error.code == ActionErrorCode.RESOLUTION_FAILURE
    assert error.details["locator"] == "#gone"
    assert [attempt["strategy"] for attempt in error.details["attempts"]] == ["id", "text"]


def test_missing_descriptor_is_invalid_action():
    with pytest.raises(ResolutionFailure) as excinfo:
        SelectorResolver(FakePage()).resolve(None)
    assert excinfo.value.code == ActionErrorCode.INVALID_ACTION


def test_resolution_refreshes_live_attributes_without_empty_strings():
    page = FakePage()
    page.add(
        "#email",
        FakeElement(
            "  ",
            attributes={"id": "email", "name": "", "className": "field wide", "placeholder": None, "xpath": "//input[@id='email']"},
        ),
    )
    descriptor = ElementDescriptor(id="email", name="old-name", type="email", text="stale")

    refreshed = SelectorResolver(page).resolve(descriptor).descriptor

    assert refreshed.id == "email"
    assert refreshed.name is None
    assert refreshed.placeholder is None
    assert refreshed.text is None
    assert refreshed.class_name == "field wide"
    assert refreshed.xpath == "//input[@id='email']"
    assert refreshed.type == "email"
    assert descriptor.name == "old-name"


def test_successful_query_reports_first_matching_candidate():
    page = FakePage()
    page.add("text=Go", FakeElement("Go"), FakeElement("Go"))
    resolver = SelectorResolver(page)
    assert resolver.successful_query(ElementDescriptor(id="go", text="Go")) == "text=Go"
    assert resolver.successful_query(ElementDescriptor(id="nope")) is None
