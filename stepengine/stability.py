"""Adaptive, polling waits used before and after browser interactions."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from stepflow.dsl.models import ActionKind, ComparisonMode

from .config import RunConfig
from .driver import LocatorLike, PageLike, Predicate

log = logging.getLogger(__name__)

_LONG_KINDS = {ActionKind.NAVIGATE, ActionKind.WAIT_NAVIGATION, ActionKind.WAIT_FOR_RELOAD}
_MEDIUM_KINDS = {ActionKind.VERIFY_TEXT, ActionKind.VERIFY_ELEMENT, ActionKind.VERIFY_ELEMENTS}
_SHORT_KINDS = {ActionKind.SCROLL}


def read_text(locator: LocatorLike) -> str:
    """Visible text of an element, falling back to its form value."""

    text = ""
    try:
        text = locator.inner_text() or ""
    except Exception as exc:
        log.debug("inner_text failed, trying text_content: %s", exc)
        text = locator.text_content() or ""
    if not text.strip():
        try:
            text = locator.input_value() or text
        except Exception as exc:
            log.debug("Element has no input value: %s", exc)
    return text


def text_matches(actual: Optional[str], expected: str, mode: ComparisonMode) -> bool:
    if actual is None:
        return False
    if mode == ComparisonMode.EXACTLY:
        return actual.strip() == expected.strip()
    return expected in actual


class StabilityWaiter:
    """Blocking waits that return ``True``/``False`` and never raise.

    ``sleep`` and ``clock`` are injectable so polling loops can be driven by a
    fake clock in tests.
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self._sleep = sleep
        self._clock = clock

    def timeout_for_action(self, kind: ActionKind | str | None) -> int:
        try:
            key = ActionKind(kind) if kind is not None else None
        except ValueError:
            key = None
        if key in _LONG_KINDS:
            return self.config.long_timeout_ms
        if key in _MEDIUM_KINDS:
            return self.config.medium_timeout_ms
        if key in _SHORT_KINDS:
            return self.config.short_timeout_ms
        return self.config.default_timeout_ms

    def _wait_state(self, locator: LocatorLike, state: str, timeout_ms: int) -> bool:
        try:
            locator.wait_for(state=state, timeout=timeout_ms)
            return True
        except Exception as exc:
            log.warning("Element did not become %s within %dms: %s", state, timeout_ms, exc)
            return False

    def wait_until_visible(
        self,
        locator: LocatorLike,
        action_kind: ActionKind | str | None = None,
        *,
        timeout_ms: Optional[int] = None,
    ) -> bool:
        return self._wait_state(locator, "visible", timeout_ms or self.timeout_for_action(action_kind))

    def wait_until_attached(self, locator: LocatorLike, *, timeout_ms: Optional[int] = None) -> bool:
        return self._wait_state(locator, "attached", timeout_ms or self.config.default_timeout_ms)

    def wait_until_hidden(self, locator: LocatorLike, *, timeout_ms: Optional[int] = None) -> bool:
        return self._wait_state(locator, "hidden", timeout_ms or self.config.default_timeout_ms)

    def wait_until_enabled(self, locator: LocatorLike, action_kind: ActionKind | str | None = None) -> bool:
        if not self.wait_until_visible(locator, action_kind):
            return False
        return self.wait_for_condition(
            locator.is_enabled,
            self.config.medium_timeout_ms,
            "element to become enabled",
        )

    def wait_until_text_matches(
        self,
        locator: LocatorLike,
        expected: str,
        mode: ComparisonMode = ComparisonMode.CONTAINS,
        *,
        timeout_ms: Optional[int] = None,
    ) -> bool:
        return self.wait_for_condition(
            lambda: text_matches(read_text(locator), expected, mode),
            timeout_ms or self.config.medium_timeout_ms,
            f"text {mode.value.lower()} {expected!r}",
        )

    def wait_for_page_load(self, page: PageLike, *, timeout_ms: Optional[int] = None) -> bool:
        timeout = timeout_ms or self.config.long_timeout_ms
        try:
            page.wait_for_load_state("load", timeout=timeout)
            return True
        except Exception as exc:
            log.warning("Page did not finish loading within %dms: %s", timeout, exc)
            return False

    def wait_for_network_idle(self, page: PageLike, *, timeout_ms: Optional[int] = None) -> bool:
        timeout = timeout_ms or self.config.default_timeout_ms
        try:
            page.wait_for_load_state("networkidle", timeout=timeout)
            return True
        except Exception as exc:
            log.warning("Network did not become idle within %dms: %s", timeout, exc)
            return False

    def smart_wait(self, locator: LocatorLike, action_kind: ActionKind | str | None = None) -> bool:
        """Quick visibility check first, then the action-specific timeout."""

        try:
            locator.wait_for(state="visible", timeout=self.config.short_timeout_ms)
            return True
        except Exception as exc:
            log.debug("Element not visible after short wait, extending: %s", exc)
        return self.wait_until_visible(locator, action_kind)

    def wait_for_condition(self, predicate: Predicate, timeout_ms: int, message: str = "condition") -> bool:
        deadline = self._clock() + timeout_ms / 1000
        interval = self.config.poll_interval_ms / 1000
        while True:
            try:
                if predicate():
                    return True
            except Exception as exc:
                log.debug("Condition check for %s raised: %s", message, exc)
            if self._clock() >= deadline:
                log.warning("Timed out after %dms waiting for %s", timeout_ms, message)
                return False
            self._sleep(interval)
