"""Step sentence parameters, generated data keywords and scenario variables."""

from __future__ import annotations

import logging
import random
import re
import string
import threading
from typing import Dict, List, Optional

from stepflow.dsl.models import RUNTIME_PARAMETER

log = logging.getLogger(__name__)

_QUOTED = re.compile(r'"([^"]*)"')

RANDOM_PREFIX = "RANDOM_"
VAR_PREFIX = "VAR_"


def extract_parameters(sentence: Optional[str]) -> List[str]:
    """All double-quoted values of a step sentence, in order."""

    if not sentence:
        return []
    return _QUOTED.findall(sentence)


def first_parameter(sentence: Optional[str]) -> Optional[str]:
    params = extract_parameters(sentence)
    return params[0] if params else None


def parameter_at(sentence: Optional[str], index: int) -> Optional[str]:
    params = extract_parameters(sentence)
    if 0 <= index < len(params):
        return params[index]
    if params:
        log.debug("Parameter index %d out of range (%d parameters)", index, len(params))
    return None


def is_keyword(value: Optional[str]) -> bool:
    if not value:
        return False
    upper = value.upper()
    return upper.startswith(RANDOM_PREFIX) or upper.startswith(VAR_PREFIX)


def _digits(rng: random.Random, length: int) -> str:
    return "".join(rng.choice(string.digits) for _ in range(length))


def _letters(rng: random.Random, length: int) -> str:
    return "".join(rng.choice(string.ascii_letters) for _ in range(length))


def _length_suffix(keyword: str, prefix: str) -> Optional[int]:
    suffix = keyword[len(prefix):]
    if not suffix.isdigit():
        return None
    return int(suffix)


def generate_value(keyword: str, rng: random.Random) -> Optional[str]:
    """Fresh value for a ``RANDOM_*`` keyword, or ``None`` when it is malformed."""

    upper = keyword.upper()
    if upper == "RANDOM_FIRST_NAME":
        return f"Guest{rng.randint(1000, 9999)}"
    if upper == "RANDOM_LAST_NAME":
        return f"User{rng.randint(100, 999)}"
    if upper == "RANDOM_EMAIL":
        return f"testuser_{rng.getrandbits(32):08x}@example.com"
    if upper == "RANDOM_PHONE":
        return "9" + _digits(rng, 9)
    if upper.startswith("RANDOM_NUMERIC_"):
        length = _length_suffix(upper, "RANDOM_NUMERIC_")
        return None if length is None else _digits(rng, length)
    if upper.startswith("RANDOM_ALPHABETIC_"):
        length = _length_suffix(upper, "RANDOM_ALPHABETIC_")
        return None if length is None else _letters(rng, length)
    label = keyword[len(RANDOM_PREFIX):]
    if not label:
        return None
    return f"{label[0].upper()}{label[1:].lower()}_{rng.randint(1000, 9999)}"


class ScenarioVariableStore:
    """Per-thread values captured or generated during one scenario.

    Keys are upper-cased keywords. A ``RANDOM_*`` keyword is generated once
    and then reused until :meth:`clear` starts the next scenario.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._local = threading.local()
        self._rng = rng or random.Random()

    def _values(self) -> Dict[str, str]:
        values = getattr(self._local, "values", None)
        if values is None:
            values = {}
            self._local.values = values
        return values

    def clear(self) -> None:
        self._values().clear()
        log.debug("Scenario variables cleared for %s", threading.current_thread().name)

    def store(self, key: Optional[str], value: str) -> bool:
        if not key or key == RUNTIME_PARAMETER:
            return False
        upper = key.upper()
        self._values()[upper] = value
        log.info("Captured variable %s = %r", upper, value)
        return True

    def get(self, key: str) -> Optional[str]:
        values = self._values()
        upper = key.upper()
        if upper in values:
            return values[upper]
        if upper.startswith(VAR_PREFIX):
            return values.get(upper[len(VAR_PREFIX):])
        return None

    def snapshot(self) -> Dict[str, str]:
        return dict(self._values())

    def is_unknown_variable(self, value: Optional[str]) -> bool:
        return bool(value) and value.upper().startswith(VAR_PREFIX) and self.get(value) is None

    def resolve(self, value: Optional[str]) -> Optional[str]:
        """Expand ``RANDOM_*`` and ``VAR_*`` keywords; other values pass through."""

        if not is_keyword(value):
            return value
        cached = self.get(value)
        if cached is not None:
            log.debug("Using cached value %r for %s", cached, value)
            return cached
        upper = value.upper()
        if upper.startswith(VAR_PREFIX):
            log.error("Variable %s was referenced before it was captured", value)
            return value
        generated = generate_value(value, self._rng)
        if generated is None:
            log.warning("Invalid generated data keyword %s", value)
            return value
        self._values()[upper] = generated
        log.info("Generated %r for %s", generated, value)
        return generated
