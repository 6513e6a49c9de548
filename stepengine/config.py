"""Configuration loader for the step engine."""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional


DEFAULTS: Dict[str, Any] = {
    "browser_type": "chromium",
    "headless": False,
    "slow_mo_ms": 0,
    "browser_timeout_ms": 30000,
    "short_timeout_ms": 3000,
    "medium_timeout_ms": 7000,
    "default_timeout_ms": 10000,
    "long_timeout_ms": 15000,
    "poll_interval_ms": 100,
    "type_delay_ms": 30,
    "step_repository_dir": "src/test/resources/stepRepository",
    "screenshot_dir": "target/screenshots",
    "log_root": None,
    "resolution_mode": "lenient",
    "healing_enabled": True,
    "default_date_format": "M/d/yyyy",
    "base_url": None,
}

RESOLUTION_MODES = ("lenient", "strict")
ENV_PREFIX = "STEPFLOW_"

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z0-9_]+)\}")


def _as_bool(value: Any) -> bool:
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _as_path(value: Any) -> Optional[Path]:
    if value is None or str(value).strip() == "":
        return None
    return Path(value)


@dataclass(slots=True)
class RunConfig:
    browser_type: str = DEFAULTS["browser_type"]
    headless: bool = DEFAULTS["headless"]
    slow_mo_ms: int = DEFAULTS["slow_mo_ms"]
    browser_timeout_ms: int = DEFAULTS["browser_timeout_ms"]
    short_timeout_ms: int = DEFAULTS["short_timeout_ms"]
    medium_timeout_ms: int = DEFAULTS["medium_timeout_ms"]
    default_timeout_ms: int = DEFAULTS["default_timeout_ms"]
    long_timeout_ms: int = DEFAULTS["long_timeout_ms"]
    poll_interval_ms: int = DEFAULTS["poll_interval_ms"]
    type_delay_ms: int = DEFAULTS["type_delay_ms"]
    step_repository_dir: Path = field(default_factory=lambda: Path(DEFAULTS["step_repository_dir"]))
    screenshot_dir: Path = field(default_factory=lambda: Path(DEFAULTS["screenshot_dir"]))
    log_root: Optional[Path] = None
    resolution_mode: str = DEFAULTS["resolution_mode"]
    healing_enabled: bool = DEFAULTS["healing_enabled"]
    default_date_format: str = DEFAULTS["default_date_format"]
    base_url: Optional[str] = None
    urls: Dict[str, str] = field(default_factory=dict)

    @property
    def strict(self) -> bool:
        return self.resolution_mode == "strict"

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> "RunConfig":
        data = dict(DEFAULTS)
        data.update({key: value for key, value in mapping.items() if value is not None})
        mode = str(data["resolution_mode"]).strip().lower()
        if mode not in RESOLUTION_MODES:
            raise ValueError(f"resolution_mode must be one of {RESOLUTION_MODES}, got {mode!r}")
        urls = {str(key).upper(): str(value) for key, value in dict(data.get("urls") or {}).items()}
        return cls(
            browser_type=str(data["browser_type"]).lower(),
            headless=_as_bool(data["headless"]),
            slow_mo_ms=int(data["slow_mo_ms"]),
            browser_timeout_ms=int(data["browser_timeout_ms"]),
            short_timeout_ms=int(data["short_timeout_ms"]),
            medium_timeout_ms=int(data["medium_timeout_ms"]),
            default_timeout_ms=int(data["default_timeout_ms"]),
            long_timeout_ms=int(data["long_timeout_ms"]),
            poll_interval_ms=int(data["poll_interval_ms"]),
            type_delay_ms=int(data["type_delay_ms"]),
            step_repository_dir=Path(data["step_repository_dir"]),
            screenshot_dir=Path(data["screenshot_dir"]),
            log_root=_as_path(data.get("log_root")),
            resolution_mode=mode,
            healing_enabled=_as_bool(data["healing_enabled"]),
            default_date_format=str(data["default_date_format"]),
            base_url=data.get("base_url") or None,
            urls=urls,
        )

    def url_for(self, name: str) -> Optional[str]:
        """Look up a named URL from the ``urls`` table or ``STEPFLOW_URL_*``."""

        key = name.strip().upper()
        if key in self.urls:
            return self.urls[key]
        if key == "BASE_URL" and self.base_url:
            return self.base_url
        return os.environ.get(f"{ENV_PREFIX}URL_{key}") or os.environ.get(key)

    def resolve_url(self, url: str) -> str:
        """Substitute ``${NAME}`` placeholders; unknown names are left in place."""

        if "${" not in url:
            return url
        return _PLACEHOLDER.sub(lambda match: self.url_for(match.group(1)) or match.group(0), url)


def _load_toml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as fh:
        return tomllib.load(fh)


def load_config(config_path: Path | None = None) -> RunConfig:
    """Load configuration from environment, optional TOML file, and defaults."""

    env_map: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if key.startswith(ENV_PREFIX) and not key.startswith(f"{ENV_PREFIX}URL_"):
            env_map[key[len(ENV_PREFIX):].lower()] = value

    file_map: Dict[str, Any] = {}
    path = config_path or Path("config.toml")
    if path.exists():
        file_map = _load_toml(path).get("stepflow", {})

    merged = {**file_map, **env_map}
    return RunConfig.from_mapping(merged)
