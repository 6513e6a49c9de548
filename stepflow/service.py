"""Step execution service: sentence in, ordered actions out, result back.

A step sentence is looked up in the step store. When a recording exists its
actions are dispatched in order against the session's active page; the first
failing action halts the step. When any element had to be healed along the
way, the step is written back once every action has succeeded, carrying
the descriptors as they were found on the live page. Sentences without a
recording are handed to the fallback registry.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from stepengine.config import RunConfig
from stepengine.dispatcher import ActionContext, ActionDispatcher, ActionInvocation
from stepengine.driver import SessionLike
from stepengine.errors import ActionError, ActionErrorCode, ActionOutcome, ActionResult, StepResult
from stepengine.parameters import ScenarioVariableStore
from stepengine.stability import StabilityWaiter
from stepengine.structured_logging import StructuredLogger, prepare_log_paths

from .dsl.models import ActionKind, ActionRecord, StepRecord, step_file_name
from .dsl.registry import ActionRegistry, registry as default_registry
from .fallbacks import FallbackRegistry
from .store import StepStore

log = logging.getLogger(__name__)

PARAMETER_KINDS = {ActionKind.TYPE, ActionKind.SELECT, ActionKind.SELECT_DROPDOWN, ActionKind.SELECT_DATE}


def should_fuse(actions: List[ActionRecord], index: int) -> bool:
    """CLICK immediately followed by SWITCH_WINDOW ``new`` runs as one popup-aware click."""

    if index + 1 >= len(actions) or actions[index].kind != ActionKind.CLICK:
        return False
    following = actions[index + 1]
    return following.kind == ActionKind.SWITCH_WINDOW and (following.value or "").strip().lower() == "new"


def refresh_descriptors(action: ActionRecord, outcome: ActionOutcome) -> ActionRecord:
    """Copy of ``action`` carrying the descriptors as they were resolved on the live page."""

    update = {}
    if outcome.resolution is not None:
        update["element"] = outcome.resolution.descriptor
    if outcome.target_resolution is not None:
        update["target_element"] = outcome.target_resolution.descriptor
    return action.model_copy(update=update) if update else action


class StepExecutor:
    """Runs step sentences for one scenario thread."""

    def __init__(
        self,
        session: SessionLike,
        store: StepStore,
        *,
        fallbacks: Optional[FallbackRegistry] = None,
        config: Optional[RunConfig] = None,
        variables: Optional[ScenarioVariableStore] = None,
        waiter: Optional[StabilityWaiter] = None,
        registry: Optional[ActionRegistry] = None,
    ) -> None:
        self.config = config or RunConfig()
        self.store = store
        self.fallbacks = fallbacks or FallbackRegistry()
        self.variables = variables or ScenarioVariableStore()
        self.context = ActionContext(session, self.config, self.variables, waiter=waiter)
        self.dispatcher = ActionDispatcher(self.context, registry or default_registry)

    def start_scenario(self) -> None:
        self.variables.clear()

    def execute_step(self, sentence: str) -> StepResult:
        step = self.store.load(sentence)
        if step is None:
            log.info("No recorded actions for %r, trying fallback steps", sentence)
            ok = self.fallbacks.try_execute(sentence)
            error = None
            if not ok:
                error = ActionError(
                    ActionErrorCode.INVALID_ACTION,
                    f"No recorded or fallback step definition for: {sentence}",
                )
            return StepResult(sentence=sentence, ok=ok, error=error, via_fallback=True)

        events = self._open_event_log(sentence)
        try:
            return self._run(step, sentence, events)
        finally:
            if events is not None:
                events.close()

    def _open_event_log(self, sentence: str) -> Optional[StructuredLogger]:
        if self.config.log_root is None:
            return None
        name = step_file_name(sentence)
        return StructuredLogger(name, prepare_log_paths(name, self.config.log_root))

    def _run(self, step: StepRecord, sentence: str, events: Optional[StructuredLogger]) -> StepResult:
        actions = list(step.actions)
        updated = list(actions)
        results: List[ActionResult] = []
        parameter_index = 0
        healed = False
        log.info("Executing step %r (%d actions)", sentence, len(actions))

        position = 0
        while position < len(actions):
            action = actions[position]
            consumed = 1
            runnable = action
            if should_fuse(actions, position):
                log.info("CLICK followed by SWITCH_WINDOW(new), running as one popup-aware click")
                runnable = action.model_copy(update={"action_type": ActionKind.CLICK_AND_SWITCH.value})
                consumed = 2

            invocation = ActionInvocation(sentence=sentence, parameter_index=parameter_index)
            outcome = self.dispatcher.dispatch(runnable, invocation)
            result = ActionResult(
                action_number=action.action_number or position + 1,
                action_type=runnable.action_type,
                states=invocation.state_names(),
                outcome=outcome,
            )
            results.append(result)
            if events is not None:
                events.log_event(
                    action=runnable.payload(),
                    resolution=outcome.resolution.as_dict() if outcome.resolution else None,
                    result=outcome.details,
                    states=result.states,
                    warnings=outcome.warnings,
                    error=outcome.error.to_dict() if outcome.error else None,
                )

            if not outcome.ok:
                error = outcome.error
                locator = None
                if error is not None:
                    locator = error.details.get("locator")
                if locator is None and action.element is not None:
                    locator = action.element.best_locator()
                log.error(
                    "Step %r halted at action %d (%s): %s",
                    sentence,
                    result.action_number,
                    runnable.action_type,
                    error.message if error else "unknown error",
                )
                return StepResult(
                    sentence=sentence,
                    ok=False,
                    actions=results,
                    failed_action=runnable.action_type,
                    locator=locator,
                    error=error,
                    healed=healed,
                )

            if outcome.healed:
                healed = True
            updated[position] = refresh_descriptors(action, outcome)
            if runnable.kind in PARAMETER_KINDS:
                parameter_index += 1
            position += consumed

        persisted = False
        if healed:
            log.info("Elements were healed in %r, saving the fix to the step store", sentence)
            persisted = self.store.save(step.with_actions(updated))
        log.info("Step %r completed", sentence)
        return StepResult(sentence=sentence, ok=True, actions=results, healed=healed, persisted=persisted)
