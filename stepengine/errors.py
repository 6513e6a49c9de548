"""Result and error types shared by the dispatcher and step executor."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from stepflow.dsl.resolution import ResolutionOutcome


class ActionErrorCode(str, Enum):
    RESOLUTION_FAILURE = "RESOLUTION_FAILURE"
    AMBIGUOUS_MATCH = "AMBIGUOUS_MATCH"
    ACTION_EXECUTION_FAILURE = "ACTION_EXECUTION_FAILURE"
    VERIFICATION_MISMATCH = "VERIFICATION_MISMATCH"
    UNKNOWN_VARIABLE = "UNKNOWN_VARIABLE"
    INVALID_ACTION = "INVALID_ACTION"


@dataclass(slots=True)
class ActionError:
    code: ActionErrorCode
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass(slots=True)
class ActionOutcome:
    ok: bool
    details: Dict[str, Any] = field(default_factory=dict)
    error: Optional[ActionError] = None
    warnings: List[str] = field(default_factory=list)
    resolution: Optional[ResolutionOutcome] = None
    target_resolution: Optional[ResolutionOutcome] = None

    @classmethod
    def success(
        cls,
        details: Optional[Dict[str, Any]] = None,
        *,
        resolution: Optional[ResolutionOutcome] = None,
        warnings: Optional[List[str]] = None,
    ) -> "ActionOutcome":
        return cls(ok=True, details=details or {}, resolution=resolution, warnings=list(warnings or []))

    @classmethod
    def failure(
        cls,
        code: ActionErrorCode,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        resolution: Optional[ResolutionOutcome] = None,
        warnings: Optional[List[str]] = None,
    ) -> "ActionOutcome":
        return cls(
            ok=False,
            details={},
            error=ActionError(code=code, message=message, details=details or {}),
            resolution=resolution,
            warnings=list(warnings or []),
        )

    @property
    def healed(self) -> bool:
        return any(res is not None and res.healed for res in (self.resolution, self.target_resolution))

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ok": self.ok, "details": self.details}
        if self.warnings:
            payload["warnings"] = self.warnings
        if self.error:
            payload["error"] = self.error.to_dict()
        if self.resolution:
            payload["resolution"] = self.resolution.as_dict()
        if self.target_resolution:
            payload["target_resolution"] = self.target_resolution.as_dict()
        return payload


class ResolutionFailure(Exception):
    """Raised when no candidate or healing strategy yields an element."""

    def __init__(
        self,
        message: str,
        *,
        code: ActionErrorCode = ActionErrorCode.RESOLUTION_FAILURE,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.details = details or {}


@dataclass(slots=True)
class ActionResult:
    """What happened to one action of a step."""

    action_number: int
    action_type: str
    states: List[str]
    outcome: ActionOutcome

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_number": self.action_number,
            "action_type": self.action_type,
            "states": list(self.states),
            **self.outcome.as_dict(),
        }


@dataclass(slots=True)
class StepResult:
    sentence: str
    ok: bool
    actions: List[ActionResult] = field(default_factory=list)
    failed_action: Optional[str] = None
    locator: Optional[str] = None
    error: Optional[ActionError] = None
    healed: bool = False
    persisted: bool = False
    via_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "sentence": self.sentence,
            "ok": self.ok,
            "actions": [result.to_dict() for result in self.actions],
            "healed": self.healed,
            "persisted": self.persisted,
            "via_fallback": self.via_fallback,
        }
        if self.failed_action:
            payload["failed_action"] = self.failed_action
        if self.locator:
            payload["locator"] = self.locator
        if self.error:
            payload["error"] = self.error.to_dict()
        return payload
