"""Persistence of recorded steps, one JSON document per step template."""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import ValidationError

from .dsl.models import StepRecord, normalize_step_text, step_file_name
from .dsl.registry import registry

log = logging.getLogger(__name__)


class StepStore(Protocol):
    def load(self, sentence: str) -> Optional[StepRecord]: ...

    def save(self, step: StepRecord) -> bool: ...


def step_document(step: StepRecord) -> Dict[str, object]:
    actions = [action.payload() for action in step.actions]
    return {
        "stepFileName": step_file_name(step.gherkin_step),
        "gherkinStep": step.gherkin_step,
        "normalizedStep": normalize_step_text(step.gherkin_step),
        "stepType": step.step_type,
        "stepNumber": step.step_number,
        "status": step.status,
        "actions": actions,
        "metadata": {
            "createdDate": datetime.now().isoformat(timespec="seconds"),
            "totalActions": len(actions),
        },
    }


class JsonStepStore:
    """Directory of ``<step_file_name>.json`` documents.

    Sentences that differ only in their quoted values or numbers share a file.
    Concurrent saves of the same step are last-write-wins.
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def path_for(self, sentence: str) -> Path:
        return self.directory / f"{step_file_name(sentence)}.json"

    def exists(self, sentence: str) -> bool:
        return self.path_for(sentence).exists()

    def load(self, sentence: str) -> Optional[StepRecord]:
        path = self.path_for(sentence)
        if not path.exists():
            log.debug("Step not found in repository: %s", sentence)
            return None
        try:
            step = registry.parse_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            log.error("Could not read step file %s: %s", path, exc)
            return None
        log.info("Loaded step from repository: %s", sentence)
        return step

    def save(self, step: StepRecord) -> bool:
        path = self.path_for(step.gherkin_step)
        if path.exists():
            log.info("Step already exists, updating: %s", step.gherkin_step)
        tmp = path.with_name(f"{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(step_document(step), indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as exc:
            log.error("Could not save step %s: %s", step.gherkin_step, exc)
            tmp.unlink(missing_ok=True)
            return False
        log.info("Saved step to repository: %s -> %s", step.gherkin_step, path.name)
        return True

    def delete(self, sentence: str) -> bool:
        path = self.path_for(sentence)
        if not path.exists():
            return False
        path.unlink()
        log.info("Deleted step from repository: %s", sentence)
        return True

    def list_steps(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        steps: List[str] = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                log.warning("Skipping unreadable step file %s: %s", path.name, exc)
                continue
            if isinstance(data, dict) and data.get("gherkinStep"):
                steps.append(str(data["gherkinStep"]))
        return steps


class InMemoryStepStore:
    """Dictionary-backed store keyed by the normalised sentence."""

    def __init__(self, steps: Optional[List[StepRecord]] = None) -> None:
        self._steps: Dict[str, StepRecord] = {}
        self.saved: List[StepRecord] = []
        for step in steps or []:
            self._steps[step.normalized_key] = step

    def load(self, sentence: str) -> Optional[StepRecord]:
        return self._steps.get(normalize_step_text(sentence))

    def save(self, step: StepRecord) -> bool:
        self._steps[step.normalized_key] = step
        self.saved.append(step)
        return True
