"""Typed models for stored steps, actions and element descriptors."""

from __future__ import annotations

import hashlib
import re
from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

RUNTIME_PARAMETER = "___RUNTIME_PARAMETER___"


class ActionKind(str, Enum):
    """Fixed vocabulary of executable action kinds."""

    NAVIGATE = "NAVIGATE"
    CLICK = "CLICK"
    DOUBLE_CLICK = "DOUBLE_CLICK"
    RIGHT_CLICK = "RIGHT_CLICK"
    TYPE = "TYPE"
    CLEAR = "CLEAR"
    SELECT = "SELECT"
    SELECT_DROPDOWN = "SELECT_DROPDOWN"
    SELECT_DATE = "SELECT_DATE"
    HOVER = "HOVER"
    CHECK = "CHECK"
    UNCHECK = "UNCHECK"
    PRESS_KEY = "PRESS_KEY"
    SWITCH_WINDOW = "SWITCH_WINDOW"
    CLICK_AND_SWITCH = "CLICK_AND_SWITCH"
    CLOSE_WINDOW = "CLOSE_WINDOW"
    DRAG_DROP = "DRAG_DROP"
    SCROLL = "SCROLL"
    WAIT_STABLE = "WAIT_STABLE"
    WAIT_FOR_RELOAD = "WAIT_FOR_RELOAD"
    WAIT_NAVIGATION = "WAIT_NAVIGATION"
    VERIFY_TEXT = "VERIFY_TEXT"
    VERIFY_ELEMENT = "VERIFY_ELEMENT"
    VERIFY_ELEMENTS = "VERIFY_ELEMENTS"
    GET_TEXT = "GET_TEXT"
    SCREENSHOT = "SCREENSHOT"


class ComparisonMode(str, Enum):
    CONTAINS = "CONTAINS"
    EXACTLY = "EXACTLY"


class FingerprintAttributes(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    type: Optional[str] = None
    aria_label: Optional[str] = Field(default=None, alias="ariaLabel")
    class_list: Optional[str] = Field(default=None, alias="classList")
    role: Optional[str] = None


class FingerprintContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    parent_tag: Optional[str] = Field(default=None, alias="parentTag")
    parent_class: Optional[str] = Field(default=None, alias="parentClass")
    nearby_text: Optional[str] = Field(default=None, alias="nearbyText")
    heading: Optional[str] = None


class Fingerprint(BaseModel):
    """Semantic metadata captured at recording time and used only for healing."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    attributes: Optional[FingerprintAttributes] = None
    context: Optional[FingerprintContext] = None

    @property
    def nearby_text(self) -> Optional[str]:
        if self.context is None:
            return None
        return self.context.nearby_text or None

    @property
    def role(self) -> Optional[str]:
        if self.attributes is None:
            return None
        return self.attributes.role or None

    @property
    def aria_label(self) -> Optional[str]:
        if self.attributes is None:
            return None
        return self.attributes.aria_label or None

    @property
    def class_list(self) -> Optional[str]:
        if self.attributes is None:
            return None
        return self.attributes.class_list or None


class ElementDescriptor(BaseModel):
    """Identity signals used to find one element on the page.

    Absent signals are ``None``. Descriptors are immutable; resolution and
    healing hand back updated copies instead of editing in place.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    type: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    selector: Optional[str] = None
    css_selector: Optional[str] = Field(default=None, alias="cssSelector")
    xpath: Optional[str] = None
    text: Optional[str] = None
    placeholder: Optional[str] = None
    data_test: Optional[str] = Field(
        default=None,
        alias="dataTest",
        validation_alias=AliasChoices("dataTest", "data_test", "testId", "dataTestId"),
    )
    aria_label: Optional[str] = Field(default=None, alias="ariaLabel")
    role: Optional[str] = None
    title: Optional[str] = None
    alt: Optional[str] = None
    class_name: Optional[str] = Field(default=None, alias="className")
    value: Optional[str] = None
    href: Optional[str] = None
    src: Optional[str] = None
    fingerprint: Optional[Fingerprint] = None
    healed: bool = False

    SIGNAL_FIELDS: ClassVar[Tuple[str, ...]] = (
        "type",
        "id",
        "name",
        "selector",
        "css_selector",
        "xpath",
        "text",
        "placeholder",
        "data_test",
        "aria_label",
        "role",
        "title",
        "alt",
        "class_name",
        "value",
        "href",
        "src",
    )

    # Labels used by the healing report, in display order.
    DISPLAY_LABELS: ClassVar[Dict[str, str]] = {
        "id": "ID",
        "name": "Name",
        "xpath": "XPath",
        "selector": "Selector",
        "css_selector": "CSS",
        "data_test": "Test ID",
        "role": "Role",
        "aria_label": "ARIA Label",
        "placeholder": "Placeholder",
        "text": "Text",
        "title": "Title",
        "alt": "Alt",
        "value": "Value",
        "href": "href",
        "src": "src",
        "class_name": "Class",
        "type": "Type",
    }

    def signal(self, field: str) -> Optional[str]:
        """Return a signal value, treating a stored empty string as absent."""

        value = getattr(self, field)
        if value is None:
            return None
        value = str(value)
        return value if value.strip() else None

    def signal_items(self) -> Iterator[Tuple[str, Optional[str]]]:
        for field in self.DISPLAY_LABELS:
            yield field, getattr(self, field)

    def has_signals(self) -> bool:
        return any(self.signal(field) for field in self.SIGNAL_FIELDS)

    def best_locator(self) -> Optional[str]:
        if self.signal("id"):
            return f"#{self.id}"
        if self.signal("data_test"):
            return f"[data-test='{self.data_test}']"
        for field in ("selector", "css_selector", "xpath"):
            value = self.signal(field)
            if value:
                return value
        if self.signal("text"):
            return f"text={self.text}"
        return None

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def __str__(self) -> str:
        return "ElementDescriptor(type={!r}, id={!r}, selector={!r}, text={!r})".format(
            self.type, self.id, self.selector, self.text
        )


class ActionRecord(BaseModel):
    """One executable instruction of a stored step."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    action_number: int = Field(default=0, alias="actionNumber")
    action_type: str = Field(
        alias="actionType",
        validation_alias=AliasChoices("actionType", "action_type", "action"),
    )
    description: Optional[str] = None
    element: Optional[ElementDescriptor] = None
    target_element: Optional[ElementDescriptor] = Field(default=None, alias="targetElement")
    value: Optional[str] = None
    url: Optional[str] = None
    expected_text: Optional[str] = Field(default=None, alias="expectedText")
    expected_count: Optional[int] = Field(default=None, alias="expectedCount")
    comparison_type: Optional[ComparisonMode] = Field(default=None, alias="comparisonType")
    date_format: Optional[str] = Field(default=None, alias="dateFormat")
    status: Optional[str] = None

    @field_validator("action_type", mode="before")
    @classmethod
    def _normalise_type(cls, value: Any) -> Any:
        if isinstance(value, ActionKind):
            return value.value
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("comparison_type", mode="before")
    @classmethod
    def _normalise_comparison(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper() or None
        return value

    @field_validator("value", "expected_text", "url", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @property
    def kind(self) -> Optional[ActionKind]:
        try:
            return ActionKind(self.action_type)
        except ValueError:
            return None

    @property
    def comparison(self) -> ComparisonMode:
        return self.comparison_type or ComparisonMode.CONTAINS

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class StepRecord(BaseModel):
    """A step sentence and the ordered actions recorded for it."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    gherkin_step: str = Field(alias="gherkinStep")
    step_number: int = Field(default=0, alias="stepNumber")
    step_type: Optional[str] = Field(default=None, alias="stepType")
    status: Optional[str] = None
    actions: List[ActionRecord] = Field(default_factory=list)

    @property
    def normalized_key(self) -> str:
        return normalize_step_text(self.gherkin_step)

    def with_actions(self, actions: List[ActionRecord]) -> "StepRecord":
        return self.model_copy(update={"actions": list(actions)})

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


_KEYWORD_RE = re.compile(r"^(Given|When|Then|And|But)\s+")
_QUOTED_RE = re.compile(r'"[^"]*"')
_ANGLE_RE = re.compile(r"<[^>]+>")
_NUMBER_RE = re.compile(r"\b\d+\b")
_PARAM_RUN_RE = re.compile(r"(_param_\s*)+")


def strip_keyword(sentence: str) -> str:
    return _KEYWORD_RE.sub("", sentence.strip()).strip()


def normalize_step_text(sentence: str) -> str:
    """Collapse a step sentence to its template key.

    Quoted values, ``<param>`` placeholders and standalone numbers all become
    ``_param_`` so differently parameterised instances share one record.
    """

    text = _KEYWORD_RE.sub("", sentence.strip())
    text = _QUOTED_RE.sub("_param_", text)
    text = _ANGLE_RE.sub("_param_", text)
    text = _NUMBER_RE.sub("_param_", text)
    text = _PARAM_RUN_RE.sub("_param_ ", text)
    return text.strip().casefold()


def step_file_name(sentence: str) -> str:
    normalized = normalize_step_text(sentence)
    sanitized = re.sub(r"['\"`]", "", normalized)
    sanitized = re.sub(r"[^a-z0-9\s_-]", "", sanitized).strip()
    sanitized = re.sub(r"\s+", "_", sanitized)
    sanitized = re.sub(r"_+", "_", sanitized).strip("_")
    if len(sanitized) > 100:
        sanitized = sanitized[:100].rstrip("_")
    if not sanitized:
        digest = hashlib.sha1(sentence.encode("utf-8")).hexdigest()[:12]
        sanitized = f"step_{digest}"
    return sanitized
