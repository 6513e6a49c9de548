"""Pytest configuration ensuring local packages and test fakes are importable."""

from __future__ import annotations

import random
import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_TESTS = Path(__file__).resolve().parent
for _path in (_ROOT, _TESTS):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))

from fakes import FakeClock, FakePage, FakeSession  # noqa: E402
from stepengine.config import RunConfig  # noqa: E402
from stepengine.parameters import ScenarioVariableStore  # noqa: E402
from stepengine.stability import StabilityWaiter  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config(tmp_path: Path) -> RunConfig:
    return RunConfig(screenshot_dir=tmp_path / "screenshots")


@pytest.fixture
def waiter(config: RunConfig, clock: FakeClock) -> StabilityWaiter:
    return StabilityWaiter(config, sleep=clock.sleep, clock=clock)


@pytest.fixture
def variables() -> ScenarioVariableStore:
    return ScenarioVariableStore(rng=random.Random(1234))


@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def session(page: FakePage) -> FakeSession:
    return FakeSession(page)
