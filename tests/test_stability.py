from fakes import FakeElement, FakePage
from stepengine.page_stability import stabilize_page
from stepengine.stability import read_text, text_matches
from stepflow.dsl.models import ActionKind, ComparisonMode


def test_text_comparison_modes():
    assert text_matches("Logged In Successfully  ", "Logged In Successfully", ComparisonMode.EXACTLY)
    assert text_matches("Logged In Successfully  ", "Logged In", ComparisonMode.CONTAINS)
    assert not text_matches("Logged In Successfully", "Logged In", ComparisonMode.EXACTLY)
    assert not text_matches(None, "x", ComparisonMode.CONTAINS)


def test_read_text_falls_back_to_input_value():
    page = FakePage()
    page.add("#field", FakeElement("", value="typed"))
    assert read_text(page.locator("#field")) == "typed"


def test_timeouts_depend_on_action_kind(waiter, config):
    assert waiter.timeout_for_action(ActionKind.NAVIGATE) == config.long_timeout_ms
    assert waiter.timeout_for_action("WAIT_NAVIGATION") == config.long_timeout_ms
    assert waiter.timeout_for_action(ActionKind.VERIFY_TEXT) == config.medium_timeout_ms
    assert waiter.timeout_for_action(ActionKind.SCROLL) == config.short_timeout_ms
    assert waiter.timeout_for_action(ActionKind.CLICK) == config.default_timeout_ms
    assert waiter.timeout_for_action("SOMETHING_ELSE") == config.default_timeout_ms


def test_wait_for_condition_polls_until_true(waiter, clock, config):
    answers = iter([False, False, True])

    assert waiter.wait_for_condition(lambda: next(answers), 1000)
    assert clock.sleeps == [config.poll_interval_ms / 1000] * 2


def test_wait_for_condition_times_out_without_raising(waiter, clock):
    def broken():
        raise RuntimeError("detached")

    assert not waiter.wait_for_condition(broken, 500)
    assert clock.now >= 0.5


def test_wait_until_enabled_polls_after_visibility(waiter, clock):
    page = FakePage()
    element = page.add("#pay", FakeElement(enabled=False))
    locator = page.locator("#pay")

    assert not waiter.wait_until_enabled(locator, ActionKind.CLICK)

    element.enabled = True
    assert waiter.wait_until_enabled(locator, ActionKind.CLICK)


def test_wait_until_text_matches_sees_late_text(waiter, clock):
    page = FakePage()
    banner = page.add("#banner", FakeElement("Loading"))
    locator = page.locator("#banner")
    original_sleep = clock.sleep

    def sleep_then_render(seconds):
        original_sleep(seconds)
        banner.text = "Welcome back"

    waiter._sleep = sleep_then_render
    assert waiter.wait_until_text_matches(locator, "Welcome", ComparisonMode.CONTAINS)


def test_smart_wait_and_visibility_tolerate_missing_elements(waiter):
    page = FakePage()
    hidden = page.locator("#nothing")
    assert not waiter.smart_wait(hidden, ActionKind.CLICK)
    assert not waiter.wait_until_attached(hidden)
    assert waiter.wait_until_hidden(hidden)


def test_page_waits_report_timeouts(waiter):
    page = FakePage()
    assert waiter.wait_for_page_load(page)
    page.load_ok = False
    page.idle_ok = False
    assert not waiter.wait_for_page_load(page)
    assert not waiter.wait_for_network_idle(page)


def test_stabilize_page_waits_for_network_dom_and_spinners():
    page = FakePage()
    assert stabilize_page(page)
    page.add(".loading, .spinner, .loader", FakeElement())
    assert not stabilize_page(page)
    page.idle_ok = False
    assert not stabilize_page(page)
