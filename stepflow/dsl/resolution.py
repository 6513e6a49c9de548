"""Data structures for element resolution and healing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .models import ElementDescriptor


@dataclass(frozen=True, slots=True)
class CandidateQuery:
    """One locator query tried by the resolution engine."""

    strategy: str
    query: str

    def as_dict(self) -> Dict[str, str]:
        return {"strategy": self.strategy, "query": self.query}


@dataclass(frozen=True, slots=True)
class HealingChange:
    signal: str
    before: Optional[str]
    after: Optional[str]


@dataclass(slots=True)
class HealingReport:
    """Before/after differences of a healed descriptor."""

    strategy: str
    query: str
    changes: List[HealingChange] = field(default_factory=list)

    @classmethod
    def compare(
        cls,
        before: ElementDescriptor,
        after: ElementDescriptor,
        *,
        strategy: str,
        query: str,
    ) -> "HealingReport":
        changes: List[HealingChange] = []
        for signal, label in ElementDescriptor.DISPLAY_LABELS.items():
            old = getattr(before, signal)
            new = getattr(after, signal)
            if (old or None) != (new or None):
                changes.append(HealingChange(signal=label, before=old, after=new))
        return cls(strategy=strategy, query=query, changes=changes)

    def render(self) -> str:
        width = max([len(change.signal) for change in self.changes] + [9])
        lines = [f"Healed via {self.strategy}: {self.query}"]
        lines.append(f"  {'Attribute':<{width}} | {'Before':<30} | After")
        for change in self.changes:
            lines.append(
                f"  {change.signal:<{width}} | {_cell(change.before):<30} | {_cell(change.after)}"
            )
        if not self.changes:
            lines.append("  (no displayable attribute changed)")
        return "\n".join(lines)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "query": self.query,
            "changes": [
                {"signal": change.signal, "before": change.before, "after": change.after}
                for change in self.changes
            ],
        }


def _cell(value: Optional[str]) -> str:
    if value is None:
        return "-"
    text = str(value)
    return text if len(text) <= 30 else text[:27] + "..."


@dataclass(slots=True)
class ResolutionOutcome:
    """Result of resolving a descriptor to a live element."""

    locator: Any = field(repr=False)
    strategy: str
    query: str
    descriptor: ElementDescriptor
    healed: bool = False
    ambiguous: bool = False
    match_count: int = 1
    report: Optional[HealingReport] = None

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "strategy": self.strategy,
            "query": self.query,
            "healed": self.healed,
            "ambiguous": self.ambiguous,
            "match_count": self.match_count,
        }
        if self.report is not None:
            data["healing"] = self.report.as_dict()
        return data
