"""Execute one stored action against the active browser page."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from stepflow.dsl.models import RUNTIME_PARAMETER, ActionKind, ActionRecord, ElementDescriptor
from stepflow.dsl.registry import ActionRegistry, registry as default_registry
from stepflow.dsl.resolution import ResolutionOutcome

from .config import RunConfig
from .dates import resolve_date
from .driver import LocatorLike, PageLike, SessionLike
from .errors import ActionErrorCode, ActionOutcome, ResolutionFailure
from .page_stability import stabilize_page
from .parameters import ScenarioVariableStore, first_parameter, parameter_at
from .selector_resolver import SelectorResolver
from .stability import StabilityWaiter, read_text

log = logging.getLogger(__name__)

DEFAULT_SCROLL_PIXELS = 500


class ActionState(str, Enum):
    PENDING = "PENDING"
    RESOLVING = "RESOLVING"
    RESOLVED = "RESOLVED"
    HEALING = "HEALING"
    HEALED = "HEALED"
    UNRESOLVED = "UNRESOLVED"
    EXECUTING = "EXECUTING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(slots=True)
class ActionInvocation:
    """Per-action execution record: sentence, parameter cursor and trace."""

    sentence: str
    parameter_index: int = 0
    states: List[ActionState] = field(default_factory=lambda: [ActionState.PENDING])
    warnings: List[str] = field(default_factory=list)
    resolution: Optional[ResolutionOutcome] = None
    target_resolution: Optional[ResolutionOutcome] = None

    def mark(self, state: ActionState) -> None:
        self.states.append(state)

    @property
    def state(self) -> ActionState:
        return self.states[-1]

    def state_names(self) -> List[str]:
        return [state.value for state in self.states]


class ActionContext:
    def __init__(
        self,
        session: SessionLike,
        config: RunConfig,
        variables: ScenarioVariableStore,
        *,
        waiter: Optional[StabilityWaiter] = None,
    ) -> None:
        self.session = session
        self.config = config
        self.variables = variables
        self.waiter = waiter or StabilityWaiter(config)

    @property
    def page(self) -> PageLike:
        return self.session.page

    def resolver(self) -> SelectorResolver:
        return SelectorResolver(self.page, self.config)


class ActionFailed(Exception):
    """Handler-level failure carrying its error code."""

    def __init__(self, message: str, *, code: ActionErrorCode, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class ActionDispatcher:
    """Maps each action kind to a handler and turns failures into outcomes.

    Handlers raise :class:`ResolutionFailure` or :class:`ActionFailed` for
    expected failures; any other exception from the driver becomes an
    ``ACTION_EXECUTION_FAILURE``. Nothing escapes :meth:`dispatch`.
    """

    def __init__(self, context: ActionContext, registry: Optional[ActionRegistry] = None) -> None:
        self.context = context
        self.registry = registry or default_registry

    @property
    def config(self) -> RunConfig:
        return self.context.config

    @property
    def waiter(self) -> StabilityWaiter:
        return self.context.waiter

    def dispatch(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        spec = self.registry.lookup(action.action_type)
        if spec is None:
            log.warning("Unknown action type %r, skipping", action.action_type)
            invocation.mark(ActionState.DONE)
            return ActionOutcome.success(
                {"skipped": True}, warnings=[f"Unknown action type {action.action_type!r} skipped"]
            )

        if spec.requires_element and action.element is None:
            return self._finish(
                invocation,
                ActionOutcome.failure(
                    ActionErrorCode.INVALID_ACTION, f"{action.action_type} requires an element"
                ),
            )
        if spec.requires_target and action.target_element is None:
            return self._finish(
                invocation,
                ActionOutcome.failure(
                    ActionErrorCode.INVALID_ACTION, f"{action.action_type} requires a target element"
                ),
            )

        handler = getattr(self, spec.handler)
        try:
            outcome = handler(action, invocation)
        except ResolutionFailure as exc:
            log.error("Could not resolve element for %s: %s", action.action_type, exc)
            outcome = ActionOutcome.failure(exc.code, str(exc), details=self._diagnostics(action, exc.details))
        except ActionFailed as exc:
            log.error("%s failed: %s", action.action_type, exc)
            outcome = ActionOutcome.failure(exc.code, str(exc), details=self._diagnostics(action, exc.details))
        except Exception as exc:
            log.error("%s failed while executing: %s", action.action_type, exc)
            outcome = ActionOutcome.failure(
                ActionErrorCode.ACTION_EXECUTION_FAILURE,
                str(exc),
                details=self._diagnostics(action, {"exception": type(exc).__name__}),
            )
        return self._finish(invocation, outcome)

    def _finish(self, invocation: ActionInvocation, outcome: ActionOutcome) -> ActionOutcome:
        outcome.resolution = outcome.resolution or invocation.resolution
        outcome.target_resolution = outcome.target_resolution or invocation.target_resolution
        outcome.warnings = list(invocation.warnings) + list(outcome.warnings)
        if invocation.state != ActionState.UNRESOLVED:
            invocation.mark(ActionState.DONE if outcome.ok else ActionState.FAILED)
        return outcome

    def _diagnostics(self, action: ActionRecord, extra: Dict[str, Any]) -> Dict[str, Any]:
        details = dict(extra)
        if action.element is not None:
            details.setdefault("locator", action.element.best_locator())
        if action.description:
            details.setdefault("description", action.description)
        return details

    # ------------------------------------------------------------------
    # Shared helpers

    def _resolve(
        self,
        descriptor: Optional[ElementDescriptor],
        invocation: ActionInvocation,
        *,
        target: bool = False,
    ) -> ResolutionOutcome:
        invocation.mark(ActionState.RESOLVING)
        try:
            resolution = self.context.resolver().resolve(descriptor)
        except ResolutionFailure as exc:
            attempted_healing = (
                exc.code == ActionErrorCode.RESOLUTION_FAILURE
                and self.config.healing_enabled
                and descriptor is not None
                and descriptor.fingerprint is not None
            )
            if attempted_healing:
                invocation.mark(ActionState.HEALING)
            invocation.mark(ActionState.UNRESOLVED)
            raise
        if resolution.healed:
            invocation.mark(ActionState.HEALING)
            invocation.mark(ActionState.HEALED)
        else:
            invocation.mark(ActionState.RESOLVED)
        if resolution.ambiguous:
            invocation.warnings.append(
                f"{ActionErrorCode.AMBIGUOUS_MATCH.value}: {resolution.match_count} elements matched "
                f"{resolution.query}, using the first"
            )
        if target:
            invocation.target_resolution = resolution
        else:
            invocation.resolution = resolution
        return resolution

    def _ready(self, locator: LocatorLike, kind: ActionKind, invocation: ActionInvocation) -> None:
        if not self.waiter.smart_wait(locator, kind):
            invocation.warnings.append(f"Element not ready for {kind.value}, attempting anyway")

    def _ready_enabled(self, locator: LocatorLike, kind: ActionKind, invocation: ActionInvocation) -> None:
        if not self.waiter.wait_until_enabled(locator, kind):
            invocation.warnings.append(f"Element not enabled for {kind.value}, attempting anyway")

    def _keyword(self, raw: Optional[str], invocation: ActionInvocation) -> Optional[str]:
        variables = self.context.variables
        if variables.is_unknown_variable(raw):
            invocation.warnings.append(f"{ActionErrorCode.UNKNOWN_VARIABLE.value}: {raw} was never captured")
        return variables.resolve(raw)

    def _input_value(self, action: ActionRecord, invocation: ActionInvocation) -> str:
        raw = parameter_at(invocation.sentence, invocation.parameter_index)
        if raw is None:
            raw = action.value
        if raw is None or raw == RUNTIME_PARAMETER:
            raise ActionFailed(
                f"No value for {action.action_type}: sentence has no parameter #{invocation.parameter_index + 1}",
                code=ActionErrorCode.INVALID_ACTION,
            )
        value = self._keyword(raw, invocation)
        return value if value is not None else raw

    def _type_slowly(self, locator: LocatorLike, value: str) -> None:
        locator.focus()
        locator.fill("")
        if locator.input_value():
            # masked inputs keep their mask after fill("")
            locator.click()
            keyboard = self.context.page.keyboard
            keyboard.press("Control+A")
            keyboard.press("Backspace")
        locator.press_sequentially(value, delay=self.config.type_delay_ms)

    def _simple(
        self,
        action: ActionRecord,
        invocation: ActionInvocation,
        method: str,
        **kwargs: Any,
    ) -> ActionOutcome:
        kind = action.kind or ActionKind.CLICK
        resolution = self._resolve(action.element, invocation)
        self._ready(resolution.locator, kind, invocation)
        invocation.mark(ActionState.EXECUTING)
        getattr(resolution.locator, method)(**kwargs)
        log.debug("%s done on %s", kind.value, resolution.query)
        return ActionOutcome.success({"query": resolution.query})

    # ------------------------------------------------------------------
    # Navigation

    def _handle_navigate(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        url = first_parameter(invocation.sentence) or action.url
        if not url:
            raise ActionFailed("No URL for navigation", code=ActionErrorCode.INVALID_ACTION)
        url = self.config.resolve_url(url)
        if "${" in url:
            invocation.warnings.append(f"Unresolved URL placeholder in {url}")
        page = self.context.page
        invocation.mark(ActionState.EXECUTING)
        page.goto(url, timeout=self.config.long_timeout_ms)
        if not self.waiter.wait_for_page_load(page):
            invocation.warnings.append(f"Page load did not complete for {url}")
        log.info("Navigated to %s", url)
        return ActionOutcome.success({"url": url})

    def _handle_switch_window(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        wanted = first_parameter(invocation.sentence) or action.value
        session = self.context.session
        invocation.mark(ActionState.EXECUTING)
        pages = session.pages
        if not pages:
            raise ActionFailed("No open windows to switch to", code=ActionErrorCode.ACTION_EXECUTION_FAILURE)
        if not wanted or wanted.strip().lower() in {"new", "last"}:
            chosen = session.switch_to(pages[-1])
            return ActionOutcome.success({"url": chosen.url, "window": "last"})
        for page in pages:
            if wanted in page.url or wanted in page.title():
                chosen = session.switch_to(page)
                return ActionOutcome.success({"url": chosen.url, "window": wanted})
        raise ActionFailed(
            f"No window matching {wanted!r}",
            code=ActionErrorCode.ACTION_EXECUTION_FAILURE,
            details={"open_windows": [page.url for page in pages]},
        )

    def _handle_click_and_switch(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        resolution = self._resolve(action.element, invocation)
        self._ready(resolution.locator, ActionKind.CLICK, invocation)
        page = self.context.page
        invocation.mark(ActionState.EXECUTING)
        log.info("Clicking and waiting for a new window")
        with page.expect_popup(timeout=self.config.long_timeout_ms) as popup_info:
            resolution.locator.click()
        popup = popup_info.value
        if not self.waiter.wait_for_page_load(popup):
            invocation.warnings.append("New window did not finish loading")
        self.context.session.switch_to(popup)
        return ActionOutcome.success({"url": popup.url})

    def _handle_close_window(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        session = self.context.session
        invocation.mark(ActionState.EXECUTING)
        closing = session.page
        closed_url = closing.url
        closing.close()
        remaining = [page for page in session.pages if page is not closing]
        details: Dict[str, Any] = {"closed": closed_url, "remaining": len(remaining)}
        if remaining:
            details["url"] = session.switch_to(remaining[-1]).url
        return ActionOutcome.success(details)

    def _handle_scroll(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        if action.element is not None:
            resolution = self._resolve(action.element, invocation)
            invocation.mark(ActionState.EXECUTING)
            resolution.locator.scroll_into_view_if_needed(timeout=self.waiter.timeout_for_action(ActionKind.SCROLL))
            return ActionOutcome.success({"query": resolution.query})
        pixels = DEFAULT_SCROLL_PIXELS
        if action.value and action.value.strip().lstrip("-").isdigit():
            pixels = int(action.value.strip())
        invocation.mark(ActionState.EXECUTING)
        self.context.page.evaluate("(dy) => window.scrollBy(0, dy)", pixels)
        return ActionOutcome.success({"pixels": pixels})

    def _handle_wait_stable(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        invocation.mark(ActionState.EXECUTING)
        settled = stabilize_page(self.context.page, timeout=self.config.default_timeout_ms)
        if not settled:
            invocation.warnings.append("Page did not fully settle")
        return ActionOutcome.success({"settled": settled})

    def _handle_wait_for_reload(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        page = self.context.page
        timeout = self.waiter.timeout_for_action(ActionKind.WAIT_FOR_RELOAD)
        invocation.mark(ActionState.EXECUTING)
        if not self.waiter.wait_for_page_load(page, timeout_ms=timeout):
            raise ActionFailed("Page did not reload in time", code=ActionErrorCode.ACTION_EXECUTION_FAILURE)
        if not self.waiter.wait_for_network_idle(page, timeout_ms=timeout):
            invocation.warnings.append("Network did not become idle after reload")
        return ActionOutcome.success({"url": page.url})

    def _handle_wait_navigation(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        page = self.context.page
        invocation.mark(ActionState.EXECUTING)
        timeout = self.waiter.timeout_for_action(ActionKind.WAIT_NAVIGATION)
        if not self.waiter.wait_for_page_load(page, timeout_ms=timeout):
            raise ActionFailed("Navigation did not complete in time", code=ActionErrorCode.ACTION_EXECUTION_FAILURE)
        return ActionOutcome.success({"url": page.url})

    def _handle_screenshot(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        directory = self.config.screenshot_dir
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"screenshot_{time.strftime('%Y%m%d_%H%M%S')}_{action.action_number}.png"
        invocation.mark(ActionState.EXECUTING)
        self.context.page.screenshot(path=str(path), full_page=True)
        log.info("Screenshot saved to %s", path)
        return ActionOutcome.success({"path": str(path)})

    # ------------------------------------------------------------------
    # Interaction

    def _handle_click(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        resolution = self._resolve(action.element, invocation)
        self._ready(resolution.locator, ActionKind.CLICK, invocation)
        page = self.context.page
        before = page.url
        invocation.mark(ActionState.EXECUTING)
        resolution.locator.click()
        self.waiter.wait_for_page_load(page)
        self.waiter.wait_for_network_idle(page)
        after = page.url
        if before != after:
            log.info("Click navigated from %s to %s", before, after)
        else:
            log.info("Clicked %s, URL unchanged", resolution.query)
        return ActionOutcome.success({"query": resolution.query, "url_before": before, "url_after": after})

    def _handle_double_click(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        return self._simple(action, invocation, "dblclick")

    def _handle_right_click(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        return self._simple(action, invocation, "click", button="right")

    def _handle_hover(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        return self._simple(action, invocation, "hover")

    def _handle_check(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        return self._simple(action, invocation, "check")

    def _handle_uncheck(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        return self._simple(action, invocation, "uncheck")

    def _handle_clear(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        return self._simple(action, invocation, "clear")

    def _handle_type(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        value = self._input_value(action, invocation)
        date_format = action.date_format
        if date_format:
            value = resolve_date(value, date_format)
        resolution = self._resolve(action.element, invocation)
        self._ready_enabled(resolution.locator, ActionKind.TYPE, invocation)
        invocation.mark(ActionState.EXECUTING)
        if date_format:
            self._type_slowly(resolution.locator, value)
        else:
            resolution.locator.fill(value)
        log.debug("Typed %r into %s", value, resolution.query)
        return ActionOutcome.success({"query": resolution.query, "value": value})

    def _handle_select(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        value = self._input_value(action, invocation)
        resolution = self._resolve(action.element, invocation)
        self._ready_enabled(resolution.locator, action.kind or ActionKind.SELECT, invocation)
        invocation.mark(ActionState.EXECUTING)
        resolution.locator.select_option(value)
        log.debug("Selected %r in %s", value, resolution.query)
        return ActionOutcome.success({"query": resolution.query, "value": value})

    def _handle_select_date(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        raw = self._input_value(action, invocation)
        pattern = action.date_format or self.config.default_date_format
        value = resolve_date(raw, pattern)
        resolution = self._resolve(action.element, invocation)
        self._ready_enabled(resolution.locator, ActionKind.SELECT_DATE, invocation)
        invocation.mark(ActionState.EXECUTING)
        self._type_slowly(resolution.locator, value)
        resolution.locator.press("Tab")
        log.debug("Entered date %r (from %r) into %s", value, raw, resolution.query)
        return ActionOutcome.success({"query": resolution.query, "value": value, "input": raw})

    def _handle_press_key(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        raw = action.value
        if not raw or raw == RUNTIME_PARAMETER:
            raw = first_parameter(invocation.sentence)
        if not raw:
            raise ActionFailed("No key specified for PRESS_KEY", code=ActionErrorCode.INVALID_ACTION)
        key = self._keyword(raw, invocation) or raw
        invocation.mark(ActionState.EXECUTING)
        self.context.page.keyboard.press(key)
        return ActionOutcome.success({"key": key})

    def _handle_drag_drop(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        source = self._resolve(action.element, invocation)
        target = self._resolve(action.target_element, invocation, target=True)
        self._ready(source.locator, ActionKind.DRAG_DROP, invocation)
        invocation.mark(ActionState.EXECUTING)
        source.locator.drag_to(target.locator)
        return ActionOutcome.success({"source": source.query, "target": target.query})

    # ------------------------------------------------------------------
    # Verification and capture

    def _handle_verify_text(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        expected = first_parameter(invocation.sentence)
        if expected is None:
            expected = action.expected_text
        if expected == RUNTIME_PARAMETER and action.element is not None and action.element.text:
            log.debug("No runtime parameter given, verifying recorded text %r", action.element.text)
            expected = action.element.text
        if expected is None or expected == RUNTIME_PARAMETER:
            raise ActionFailed("No expected text for VERIFY_TEXT", code=ActionErrorCode.INVALID_ACTION)
        expected = self._keyword(expected, invocation) or expected

        resolution = self._resolve(action.element, invocation)
        mode = action.comparison
        invocation.mark(ActionState.EXECUTING)
        if self.waiter.wait_until_text_matches(resolution.locator, expected, mode):
            log.debug("Verified text %r (%s)", expected, mode.value)
            return ActionOutcome.success({"expected": expected, "mode": mode.value})
        actual = read_text(resolution.locator)
        log.error("Expected %r (%s), got %r", expected, mode.value, actual)
        raise ActionFailed(
            f"Text mismatch: expected {expected!r}, got {actual!r}",
            code=ActionErrorCode.VERIFICATION_MISMATCH,
            details={"expected": expected, "actual": actual, "mode": mode.value},
        )

    def _handle_verify_element(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        resolution = self._resolve(action.element, invocation)
        invocation.mark(ActionState.EXECUTING)
        if self.waiter.wait_until_visible(resolution.locator, ActionKind.VERIFY_ELEMENT):
            return ActionOutcome.success({"query": resolution.query, "visible": True})
        raise ActionFailed(
            f"Element {resolution.query} is not visible",
            code=ActionErrorCode.VERIFICATION_MISMATCH,
            details={"expected": "visible", "actual": "hidden"},
        )

    def _handle_verify_elements(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        assert action.element is not None
        query = action.element.best_locator()
        if not query:
            raise ActionFailed("Element has no usable locator", code=ActionErrorCode.INVALID_ACTION)
        invocation.mark(ActionState.EXECUTING)
        count = self.context.page.locator(query).count()
        expected = action.expected_count
        if (expected is not None and count == expected) or (expected is None and count > 0):
            return ActionOutcome.success({"query": query, "count": count})
        raise ActionFailed(
            f"Expected {expected if expected is not None else 'at least one'} element(s) for {query}, found {count}",
            code=ActionErrorCode.VERIFICATION_MISMATCH,
            details={"expected": expected, "actual": count},
        )

    def _handle_get_text(self, action: ActionRecord, invocation: ActionInvocation) -> ActionOutcome:
        key = parameter_at(invocation.sentence, invocation.parameter_index)
        if key is None:
            key = action.value
        if not key or key == RUNTIME_PARAMETER:
            raise ActionFailed("No variable name given for GET_TEXT", code=ActionErrorCode.INVALID_ACTION)
        resolution = self._resolve(action.element, invocation)
        invocation.mark(ActionState.EXECUTING)
        text = resolution.locator.inner_text() or ""
        if not text:
            text = resolution.locator.evaluate("el => el.value || el.placeholder || ''") or ""
        text = text.strip()
        self.context.variables.store(key, text)
        return ActionOutcome.success({"key": key.upper(), "value": text})
