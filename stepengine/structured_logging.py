"""Structured JSONL event log for step executions."""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

log = logging.getLogger(__name__)


@dataclass(slots=True)
class LogPaths:
    base: Path
    events: Path


class StructuredLogger:
    """Writes one JSONL event per executed action of a step."""

    def __init__(self, step_name: str, paths: LogPaths) -> None:
        self.step_name = step_name
        self.paths = paths
        self._index = 0
        self._events_file = paths.events.open("a", encoding="utf-8")

    def log_event(
        self,
        *,
        action: Dict[str, Any],
        resolution: Optional[Dict[str, Any]] = None,
        result: Optional[Dict[str, Any]] = None,
        states: Optional[list[str]] = None,
        warnings: Optional[list[str]] = None,
        error: Optional[Dict[str, Any]] = None,
    ) -> int:
        self._index += 1
        payload = {
            "ts": time.time(),
            "step": self.step_name,
            "index": self._index,
            "action": action,
            "resolution": resolution,
            "result": result,
            "states": states or [],
            "warnings": warnings or [],
            "error": error,
        }
        self._events_file.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
        self._events_file.flush()
        return self._index

    def close(self) -> None:
        try:
            self._events_file.close()
        except OSError as exc:
            log.debug("Failed to close event log %s: %s", self.paths.events, exc)

    def __enter__(self) -> "StructuredLogger":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def prepare_log_paths(step_name: str, base_dir: Path) -> LogPaths:
    safe = re.sub(r"[^A-Za-z0-9_.-]+", "_", step_name).strip("_") or "step"
    base = base_dir / safe
    base.mkdir(parents=True, exist_ok=True)
    return LogPaths(base=base, events=base / "events.jsonl")
