"""Hand-written step procedures used when no recorded step exists."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Optional, Pattern, Tuple

from .dsl.models import strip_keyword

log = logging.getLogger(__name__)

StepHandler = Callable[..., Optional[bool]]

# placeholder -> (regex group, converter)
_PARAMETER_TYPES = {
    "{string}": (r'"([^"]*)"', str),
    "{int}": (r"(-?\d+)", int),
    "{float}": (r"(-?\d*\.?\d+)", float),
    "{word}": (r"(\w+)", str),
}
_PLACEHOLDER_RE = re.compile("|".join(re.escape(name) for name in _PARAMETER_TYPES))


def compile_expression(expression: str) -> Tuple[Pattern[str], List[Callable[[str], Any]]]:
    """Compile a Cucumber-style expression, or an anchored regex, to a pattern.

    Expressions already written as ``^...$`` are used verbatim and their
    groups are passed through as strings.
    """

    if expression.startswith("^") and expression.endswith("$"):
        pattern = re.compile(expression)
        return pattern, [str] * pattern.groups

    parts: List[str] = []
    converters: List[Callable[[str], Any]] = []
    cursor = 0
    for match in _PLACEHOLDER_RE.finditer(expression):
        parts.append(re.escape(expression[cursor:match.start()]))
        group, converter = _PARAMETER_TYPES[match.group(0)]
        parts.append(group)
        converters.append(converter)
        cursor = match.end()
    parts.append(re.escape(expression[cursor:]))
    return re.compile("^" + "".join(parts) + "$"), converters


@dataclass(slots=True)
class FallbackStep:
    expression: str
    pattern: Pattern[str]
    converters: List[Callable[[str], Any]]
    handler: StepHandler

    def match(self, text: str) -> Optional[List[Any]]:
        found = self.pattern.match(text)
        if found is None:
            return None
        return [convert(value) for convert, value in zip(self.converters, found.groups())]


class FallbackRegistry:
    """Ordered list of expression -> handler pairs; the first match runs."""

    def __init__(self) -> None:
        self._steps: List[FallbackStep] = []

    def add(self, expression: str, handler: StepHandler) -> StepHandler:
        pattern, converters = compile_expression(expression)
        self._steps.append(FallbackStep(expression, pattern, converters, handler))
        log.debug("Registered fallback step %s -> %s", expression, getattr(handler, "__name__", handler))
        return handler

    def register(self, expression: str) -> Callable[[StepHandler], StepHandler]:
        def decorator(handler: StepHandler) -> StepHandler:
            return self.add(expression, handler)

        return decorator

    def __iter__(self) -> Iterator[FallbackStep]:  # pragma: no cover - trivial
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def find(self, sentence: str) -> Optional[Tuple[FallbackStep, List[Any]]]:
        text = strip_keyword(sentence)
        for step in self._steps:
            args = step.match(text)
            if args is not None:
                return step, args
        return None

    def try_execute(self, sentence: str) -> bool:
        """Run the first matching procedure; ``False`` on no match or failure."""

        found = self.find(sentence)
        if found is None:
            log.warning("No fallback step matches: %s", sentence)
            return False
        step, args = found
        log.info("Executing fallback step %s", step.expression)
        try:
            result = step.handler(*args)
        except Exception as exc:
            log.error("Fallback step %s failed: %s", step.expression, exc)
            return False
        if result is False:
            log.error("Fallback step %s reported failure", step.expression)
            return False
        return True
