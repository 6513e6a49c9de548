"""Turn an element descriptor into an ordered list of locator queries."""

from __future__ import annotations

from typing import List, Optional

from stepflow.dsl.models import ElementDescriptor
from stepflow.dsl.resolution import CandidateQuery

_XPATH_PREFIXES = ("xpath=", "//", "(")

# (strategy, descriptor field, attribute) for plain attribute equality queries.
_ATTRIBUTE_TAIL = (
    ("value", "value", "value"),
    ("title", "title", "title"),
    ("alt", "alt", "alt"),
    ("placeholder", "placeholder", "placeholder"),
)


def _attr_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def escape_text(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def attribute_query(attribute: str, value: str) -> str:
    return f"[{attribute}='{_attr_escape(value)}']"


def near_query(base: str, anchor: str) -> str:
    return f'{base}:near(:text("{escape_text(anchor)}"))'


def class_query(class_list: str) -> Optional[str]:
    tokens = class_list.split()
    if not tokens:
        return None
    return "." + ".".join(tokens)


def xpath_query(xpath: str) -> str:
    if xpath.startswith(_XPATH_PREFIXES):
        return xpath
    return f"xpath={xpath}"


def _proximity(descriptor: ElementDescriptor) -> Optional[CandidateQuery]:
    fingerprint = descriptor.fingerprint
    anchor = fingerprint.nearby_text if fingerprint else None
    if not anchor or not anchor.strip():
        return None
    element_id = descriptor.signal("id")
    base = f"#{element_id}" if element_id else descriptor.signal("selector")
    if not base or ":near" in base:
        return None
    return CandidateQuery("proximity", near_query(base, anchor))


def build_candidate_queries(descriptor: ElementDescriptor) -> List[CandidateQuery]:
    """Ordered queries, strongest identity signal first.

    Signals that are absent or blank produce no query.
    """

    queries: List[CandidateQuery] = []
    proximity = _proximity(descriptor)
    if proximity is not None:
        queries.append(proximity)

    signal = descriptor.signal
    if signal("id"):
        queries.append(CandidateQuery("id", f"#{descriptor.id}"))
    if signal("data_test"):
        queries.append(CandidateQuery("data-test", attribute_query("data-test", descriptor.data_test)))
    if signal("name"):
        queries.append(CandidateQuery("name", attribute_query("name", descriptor.name)))
    if signal("aria_label"):
        queries.append(CandidateQuery("aria-label", attribute_query("aria-label", descriptor.aria_label)))
    if signal("role"):
        queries.append(CandidateQuery("role", attribute_query("role", descriptor.role)))
    if signal("css_selector"):
        queries.append(CandidateQuery("css", descriptor.css_selector))
    if signal("selector"):
        queries.append(CandidateQuery("selector", descriptor.selector))
    if signal("xpath"):
        queries.append(CandidateQuery("xpath", xpath_query(descriptor.xpath)))
    if signal("href"):
        queries.append(CandidateQuery("href", attribute_query("href", descriptor.href)))
    if signal("src"):
        queries.append(CandidateQuery("src", attribute_query("src", descriptor.src)))
    if signal("text"):
        queries.append(CandidateQuery("text", f"text={descriptor.text}"))
    for strategy, field, attribute in _ATTRIBUTE_TAIL:
        value = signal(field)
        if value:
            queries.append(CandidateQuery(strategy, attribute_query(attribute, value)))
    if signal("class_name"):
        query = class_query(descriptor.class_name)
        if query:
            queries.append(CandidateQuery("class", query))
    return queries


def describe_queries(queries: List[CandidateQuery]) -> str:
    return ", ".join(f"{query.strategy}={query.query}" for query in queries) or "<none>"
