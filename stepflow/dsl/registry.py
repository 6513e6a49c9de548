"""Registry describing how each action kind is executed."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

from pydantic import TypeAdapter

from .models import ActionKind, ActionRecord, StepRecord


@dataclass(slots=True)
class ActionSpec:
    name: ActionKind
    handler: str
    consumes_parameter: bool = False
    requires_element: bool = False
    requires_target: bool = False
    description: str | None = None

    def to_metadata(self) -> Dict[str, Any]:
        return {
            "name": self.name.value,
            "handler": self.handler,
            "consumes_parameter": self.consumes_parameter,
            "requires_element": self.requires_element,
            "requires_target": self.requires_target,
            "description": self.description or "",
        }


class ActionRegistry:
    """Central registry of the executable action vocabulary."""

    def __init__(self) -> None:
        self._actions: Dict[ActionKind, ActionSpec] = {}
        self._action_adapter = TypeAdapter(ActionRecord)
        self._step_adapter = TypeAdapter(StepRecord)

    def register(
        self,
        kind: ActionKind,
        *,
        handler: Optional[str] = None,
        consumes_parameter: bool = False,
        requires_element: bool = False,
        requires_target: bool = False,
        description: str | None = None,
    ) -> ActionSpec:
        spec = ActionSpec(
            name=kind,
            handler=handler or f"_handle_{kind.value.lower()}",
            consumes_parameter=consumes_parameter,
            requires_element=requires_element,
            requires_target=requires_target,
            description=description,
        )
        self._actions[kind] = spec
        return spec

    def get(self, kind: ActionKind | str) -> ActionSpec:
        spec = self.lookup(kind)
        if spec is None:
            raise KeyError(f"Unknown action '{kind}'")
        return spec

    def lookup(self, kind: ActionKind | str | None) -> Optional[ActionSpec]:
        if kind is None:
            return None
        try:
            key = ActionKind(kind)
        except ValueError:
            return None
        return self._actions.get(key)

    def __contains__(self, kind: object) -> bool:  # pragma: no cover - trivial
        return isinstance(kind, (str, ActionKind)) and self.lookup(kind) is not None

    def __iter__(self) -> Iterator[ActionSpec]:  # pragma: no cover - trivial
        return iter(self._actions.values())

    def parse_action(self, data: Any) -> ActionRecord:
        return self._action_adapter.validate_python(data)

    def parse_step(self, data: Any) -> StepRecord:
        return self._step_adapter.validate_python(data)

    def parse_json(self, data: str) -> StepRecord:
        return self._step_adapter.validate_json(data)

    def schema(self) -> Dict[str, Any]:
        return {kind.value: spec.to_metadata() for kind, spec in self._actions.items()}


registry = ActionRegistry()

registry.register(ActionKind.NAVIGATE, description="Open a URL in the active page")
registry.register(ActionKind.CLICK, requires_element=True)
registry.register(ActionKind.DOUBLE_CLICK, requires_element=True)
registry.register(ActionKind.RIGHT_CLICK, requires_element=True)
registry.register(
    ActionKind.TYPE,
    consumes_parameter=True,
    requires_element=True,
    description="Fill an input with a parameter, stored value or generated keyword",
)
registry.register(ActionKind.CLEAR, requires_element=True)
registry.register(ActionKind.SELECT, handler="_handle_select", consumes_parameter=True, requires_element=True)
registry.register(
    ActionKind.SELECT_DROPDOWN, handler="_handle_select", consumes_parameter=True, requires_element=True
)
registry.register(ActionKind.SELECT_DATE, consumes_parameter=True, requires_element=True)
registry.register(ActionKind.HOVER, requires_element=True)
registry.register(ActionKind.CHECK, requires_element=True)
registry.register(ActionKind.UNCHECK, requires_element=True)
registry.register(ActionKind.PRESS_KEY)
registry.register(ActionKind.SWITCH_WINDOW, description="Make another open page the active one")
registry.register(ActionKind.CLICK_AND_SWITCH, requires_element=True)
registry.register(ActionKind.CLOSE_WINDOW)
registry.register(ActionKind.DRAG_DROP, requires_element=True, requires_target=True)
registry.register(ActionKind.SCROLL)
registry.register(ActionKind.WAIT_STABLE)
registry.register(ActionKind.WAIT_FOR_RELOAD)
registry.register(ActionKind.WAIT_NAVIGATION)
registry.register(ActionKind.VERIFY_TEXT, requires_element=True)
registry.register(ActionKind.VERIFY_ELEMENT, requires_element=True)
registry.register(ActionKind.VERIFY_ELEMENTS, requires_element=True)
registry.register(ActionKind.GET_TEXT, requires_element=True)
registry.register(ActionKind.SCREENSHOT)
