from stepflow.fallbacks import FallbackRegistry, compile_expression


def test_expression_placeholders_convert_arguments():
    pattern, converters = compile_expression('the user waits {int} seconds for "{word}"')
    assert pattern.pattern.startswith("^") and pattern.pattern.endswith("$")
    assert len(converters) == 2

    registry = FallbackRegistry()
    calls = []
    registry.add("the cart total is {float}", lambda total: calls.append(total))
    registry.add("the user sees {string}", lambda text: calls.append(text))

    assert registry.try_execute("Then the cart total is 19.5")
    assert registry.try_execute('Then the user sees "Order placed"')
    assert calls == [19.5, "Order placed"]


def test_regex_expressions_are_used_verbatim():
    registry = FallbackRegistry()
    seen = []

    @registry.register(r"^the user opens the (\w+) page$")
    def open_page(name):
        seen.append(name)

    assert registry.try_execute("When the user opens the settings page")
    assert seen == ["settings"]


def test_first_matching_registration_wins():
    registry = FallbackRegistry()
    order = []
    registry.add("the user logs out", lambda: order.append("first"))
    registry.add("the user logs out", lambda: order.append("second"))

    assert registry.try_execute("And the user logs out")
    assert order == ["first"]
    assert len(registry) == 2


def test_failures_are_reported_as_false(caplog):
    registry = FallbackRegistry()

    @registry.register("the backend is reset")
    def reset():
        raise RuntimeError("backend down")

    registry.add("the feature flag is off", lambda: False)

    with caplog.at_level("ERROR"):
        assert not registry.try_execute("Given the backend is reset")
    assert "backend down" in caplog.text
    assert not registry.try_execute("Given the feature flag is off")
    assert not registry.try_execute("Given something unregistered")
