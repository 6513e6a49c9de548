from stepengine.locator_strategy import build_candidate_queries, class_query, describe_queries, xpath_query
from stepflow.dsl.models import ElementDescriptor, Fingerprint, FingerprintContext


def _strategies(descriptor):
    return [query.strategy for query in build_candidate_queries(descriptor)]


def test_queries_follow_fixed_priority_order():
    descriptor = ElementDescriptor(
        id="email",
        data_test="email-input",
        name="email",
        aria_label="Email address",
        role="textbox",
        css_selector="form input.email",
        selector="input[type=email]",
        xpath="//input[@name='email']",
        href="/x",
        src="/img.png",
        text="Email",
        value="a@b.c",
        title="Your email",
        alt="email icon",
        placeholder="you@example.com",
        class_name="form-control email",
        fingerprint=Fingerprint(context=FingerprintContext(nearby_text="Email")),
    )

    assert _strategies(descriptor) == [
        "proximity",
        "id",
        "data-test",
        "name",
        "aria-label",
        "role",
        "css",
        "selector",
        "xpath",
        "href",
        "src",
        "text",
        "value",
        "title",
        "alt",
        "placeholder",
        "class",
    ]
    queries = {query.strategy: query.query for query in build_candidate_queries(descriptor)}
    assert queries["proximity"] == '#email:near(:text("Email"))'
    assert queries["data-test"] == "[data-test='email-input']"
    assert queries["text"] == "text=Email"
    assert queries["class"] == ".form-control.email"


def test_absent_and_blank_signals_produce_no_query():
    descriptor = ElementDescriptor(id="", name="   ", text="Continue")
    assert _strategies(descriptor) == ["text"]
    assert build_candidate_queries(ElementDescriptor()) == []


def test_proximity_needs_anchor_and_primary_selector():
    anchor = Fingerprint(context=FingerprintContext(nearby_text="Password"))
    assert "proximity" not in _strategies(ElementDescriptor(text="x", fingerprint=anchor))
    with_selector = build_candidate_queries(ElementDescriptor(selector="input.pw", fingerprint=anchor))
    assert with_selector[0].query == 'input.pw:near(:text("Password"))'


def test_attribute_values_are_escaped():
    queries = build_candidate_queries(ElementDescriptor(name="o'brien"))
    assert queries[0].query == "[name='o\\'brien']"


def test_xpath_and_class_helpers():
    assert xpath_query("//div") == "//div"
    assert xpath_query("(//div)[2]") == "(//div)[2]"
    assert xpath_query("html/body/div") == "xpath=html/body/div"
    assert class_query("   ") is None
    assert describe_queries([]) == "<none>"
