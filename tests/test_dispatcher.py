import re

import pytest

from fakes import FakeElement, FakePage, FakeSession
from stepengine.config import RunConfig
from stepengine.dispatcher import ActionContext, ActionDispatcher, ActionInvocation
from stepengine.errors import ActionErrorCode
from stepflow.dsl.models import ActionRecord, ElementDescriptor


@pytest.fixture
def dispatcher(session, config, variables, waiter):
    return ActionDispatcher(ActionContext(session, config, variables, waiter=waiter))


def _action(kind, **fields):
    return ActionRecord(action_type=kind, action_number=fields.pop("action_number", 1), **fields)


def _run(dispatcher, action, sentence="", index=0):
    invocation = ActionInvocation(sentence=sentence, parameter_index=index)
    return dispatcher.dispatch(action, invocation), invocation


def test_click_records_state_trace(dispatcher, page):
    page.add("#login", FakeElement("Log in", attributes={"id": "login"}, navigates_to="https://app.test/home"))

    outcome, invocation = _run(dispatcher, _action("CLICK", element=ElementDescriptor(id="login")))

    assert outcome.ok
    assert invocation.state_names() == ["PENDING", "RESOLVING", "RESOLVED", "EXECUTING", "DONE"]
    assert outcome.details["url_after"] == "https://app.test/home"
    assert ("load_state", "networkidle") in page.calls


def test_type_uses_positional_parameter(dispatcher, page):
    field = page.add("#password", FakeElement())
    sentence = 'user logs in with "alice" and "s3cret"'

    outcome, _ = _run(
        dispatcher,
        _action("TYPE", element=ElementDescriptor(id="password"), value="___RUNTIME_PARAMETER___"),
        sentence,
        index=1,
    )

    assert outcome.ok
    assert field.value == "s3cret"


def test_type_falls_back_to_stored_value_and_keywords(dispatcher, page, variables):
    field = page.add("#email", FakeElement())

    outcome, _ = _run(dispatcher, _action("TYPE", element=ElementDescriptor(id="email"), value="RANDOM_EMAIL"))

    assert outcome.ok
    assert re.fullmatch(r"testuser_[0-9a-f]{8}@example\.com", field.value)
    assert variables.get("RANDOM_EMAIL") == field.value


def test_type_without_value_is_invalid(dispatcher, page):
    page.add("#email", FakeElement())

    outcome, invocation = _run(
        dispatcher, _action("TYPE", element=ElementDescriptor(id="email"), value="___RUNTIME_PARAMETER___")
    )

    assert not outcome.ok
    assert outcome.error.code == ActionErrorCode.INVALID_ACTION
    assert invocation.state_names() == ["PENDING", "FAILED"]


def test_unknown_variable_warns_and_types_keyword(dispatcher, page):
    field = page.add("#search", FakeElement())

    outcome, _ = _run(
        dispatcher, _action("TYPE", element=ElementDescriptor(id="search")), 'searches for "VAR_ORDER_ID"'
    )

    assert outcome.ok
    assert field.value == "VAR_ORDER_ID"
    assert any(ActionErrorCode.UNKNOWN_VARIABLE.value in warning for warning in outcome.warnings)


@pytest.mark.parametrize("mode, expected", [("EXACTLY", "Logged In Successfully"), ("CONTAINS", "Logged In")])
def test_verify_text_modes(dispatcher, page, mode, expected):
    page.add("#flash", FakeElement("Logged In Successfully  "))
    action = _action(
        "VERIFY_TEXT", element=ElementDescriptor(id="flash"), expected_text=expected, comparison_type=mode
    )

    outcome, _ = _run(dispatcher, action, "the success message is shown")

    assert outcome.ok


def test_verify_text_mismatch_reports_expected_and_actual(dispatcher, page):
    page.add("#flash", FakeElement("Logged In Successfully"))
    action = _action("VERIFY_TEXT", element=ElementDescriptor(id="flash"), comparison_type="EXACTLY")

    outcome, invocation = _run(dispatcher, action, 'the message "Logged In" is shown')

    assert not outcome.ok
    assert outcome.error.code == ActionErrorCode.VERIFICATION_MISMATCH
    assert outcome.error.details["expected"] == "Logged In"
    assert outcome.error.details["actual"] == "Logged In Successfully"
    assert outcome.error.details["locator"] == "#flash"
    assert invocation.state_names()[-1] == "FAILED"


def test_unresolved_element_stops_in_unresolved_state(dispatcher):
    outcome, invocation = _run(dispatcher, _action("CLICK", element=ElementDescriptor(id="missing")))

    assert not outcome.ok
    assert outcome.error.code == ActionErrorCode.RESOLUTION_FAILURE
    assert outcome.error.details["locator"] == "#missing"
    assert invocation.state_names() == ["PENDING", "RESOLVING", "UNRESOLVED"]


def test_driver_error_becomes_execution_failure(dispatcher, page):
    page.add("#covered", FakeElement(fail_on=("click",)))

    outcome, invocation = _run(dispatcher, _action("CLICK", element=ElementDescriptor(id="covered")))

    assert outcome.error.code == ActionErrorCode.ACTION_EXECUTION_FAILURE
    assert outcome.error.details["exception"] == "RuntimeError"
    assert invocation.state_names()[-2:] == ["EXECUTING", "FAILED"]


def test_unknown_action_kind_is_a_successful_no_op(dispatcher, page):
    outcome, invocation = _run(dispatcher, _action("TELEPORT"))

    assert outcome.ok
    assert outcome.details == {"skipped": True}
    assert invocation.state_names() == ["PENDING", "DONE"]
    assert page.calls == []


def test_missing_element_is_invalid_action(dispatcher):
    outcome, _ = _run(dispatcher, _action("HOVER"))
    assert outcome.error.code == ActionErrorCode.INVALID_ACTION


def test_get_text_captures_into_variable_store(dispatcher, page, variables):
    page.add("#order", FakeElement("  A-123 "))

    outcome, _ = _run(dispatcher, _action("GET_TEXT", element=ElementDescriptor(id="order")), 'saves "order_id"')

    assert outcome.ok
    assert variables.resolve("VAR_ORDER_ID") == "A-123"


def test_get_text_falls_back_to_value(dispatcher, page, variables):
    page.add("#total", FakeElement("", value="42.00"))

    _run(dispatcher, _action("GET_TEXT", element=ElementDescriptor(id="total"), value="TOTAL"))

    assert variables.get("TOTAL") == "42.00"


def test_select_date_types_resolved_date_slowly(dispatcher, page, config):
    field = page.add("#dob", FakeElement())
    action = _action("SELECT_DATE", element=ElementDescriptor(id="dob"), date_format="dd/MM/yyyy")

    outcome, _ = _run(dispatcher, action, 'picks "05-03-2025" as birth date')

    assert outcome.ok
    assert field.value == "05/03/2025"
    assert ("type", "#dob", "05/03/2025", config.type_delay_ms) in page.calls
    assert ("press", "#dob", "Tab") in page.calls


def test_select_option_and_checkbox(dispatcher, page):
    country = page.add("#country", FakeElement())
    terms = page.add("#terms", FakeElement())

    assert _run(dispatcher, _action("SELECT_DROPDOWN", element=ElementDescriptor(id="country"), value="NL"))[0].ok
    assert _run(dispatcher, _action("CHECK", element=ElementDescriptor(id="terms")))[0].ok

    assert country.value == "NL"
    assert terms.checked


def test_drag_drop_resolves_both_elements(dispatcher, page):
    page.add("#card", FakeElement())
    page.add("#done-column", FakeElement())
    action = _action(
        "DRAG_DROP", element=ElementDescriptor(id="card"), target_element=ElementDescriptor(id="done-column")
    )

    outcome, _ = _run(dispatcher, action)

    assert outcome.ok
    assert ("drag", "#card", "#done-column") in page.calls
    assert outcome.target_resolution.query == "#done-column"


def test_drag_drop_requires_target(dispatcher):
    outcome, _ = _run(dispatcher, _action("DRAG_DROP", element=ElementDescriptor(id="card")))
    assert outcome.error.code == ActionErrorCode.INVALID_ACTION


def test_navigate_substitutes_url_placeholders(session, variables, waiter, tmp_path):
    config = RunConfig(urls={"LOGIN": "https://app.test/login"}, screenshot_dir=tmp_path)
    dispatcher = ActionDispatcher(ActionContext(session, config, variables, waiter=waiter))

    outcome, _ = _run(dispatcher, _action("NAVIGATE"), 'the user opens "${LOGIN}?next=home"')

    assert outcome.ok
    assert session.page.url == "https://app.test/login?next=home"


def test_switch_window_by_title_and_close(dispatcher, session):
    shop = FakePage(url="https://shop.test/", title="Shop")
    session.switch_to(shop)
    session.switch_to(session.pages[0])

    outcome, _ = _run(dispatcher, _action("SWITCH_WINDOW", value="Shop"))
    assert outcome.ok
    assert session.page is shop

    outcome, _ = _run(dispatcher, _action("CLOSE_WINDOW"))
    assert outcome.ok
    assert shop.closed
    assert session.page is not shop


def test_click_and_switch_follows_popup(dispatcher, page, session):
    page.add("#help", FakeElement())
    popup = FakePage(url="https://app.test/help")
    page.popup = popup

    outcome, _ = _run(dispatcher, _action("CLICK_AND_SWITCH", element=ElementDescriptor(id="help")))

    assert outcome.ok
    assert session.page is popup


def test_scroll_by_pixels(dispatcher, page):
    outcome, _ = _run(dispatcher, _action("SCROLL", value="300"))
    assert outcome.details == {"pixels": 300}
    assert ("evaluate", 300) in page.calls


def test_verify_elements_counts_matches(dispatcher, page):
    page.add(".item", FakeElement(), FakeElement(), FakeElement())

    ok, _ = _run(dispatcher, _action("VERIFY_ELEMENTS", element=ElementDescriptor(selector=".item"), expected_count=3))
    bad, _ = _run(dispatcher, _action("VERIFY_ELEMENTS", element=ElementDescriptor(selector=".item"), expected_count=2))

    assert ok.ok
    assert bad.error.code == ActionErrorCode.VERIFICATION_MISMATCH
    assert bad.error.details["actual"] == 3


def test_wait_for_reload_fails_on_load_timeout(dispatcher, page):
    page.load_ok = False
    outcome, _ = _run(dispatcher, _action("WAIT_FOR_RELOAD"))
    assert outcome.error.code == ActionErrorCode.ACTION_EXECUTION_FAILURE


def test_screenshot_is_written_under_configured_directory(dispatcher, page, config):
    outcome, _ = _run(dispatcher, _action("SCREENSHOT", action_number=4))

    assert outcome.ok
    assert outcome.details["path"].startswith(str(config.screenshot_dir))
    assert outcome.details["path"].endswith("_4.png")


def test_ambiguous_match_adds_warning(dispatcher, page):
    page.add("text=Remove", FakeElement(), FakeElement())

    outcome, _ = _run(dispatcher, _action("HOVER", element=ElementDescriptor(text="Remove")))

    assert outcome.ok
    assert any(ActionErrorCode.AMBIGUOUS_MATCH.value in warning for warning in outcome.warnings)
