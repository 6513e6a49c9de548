"""Resolve element descriptors to live elements, healing when needed."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from stepflow.dsl.models import ElementDescriptor
from stepflow.dsl.resolution import CandidateQuery, HealingReport, ResolutionOutcome

from .config import RunConfig
from .driver import LocatorLike, PageLike
from .errors import ActionErrorCode, ResolutionFailure
from .healing import HealedMatch, SelfHealingEngine
from .locator_strategy import build_candidate_queries, describe_queries

log = logging.getLogger(__name__)


LIVE_ATTRIBUTES_SCRIPT = """
(el) => {
  const xpathOf = (node) => {
    const tag = node.tagName.toLowerCase();
    if (node.id) return `//${tag}[@id='${node.id}']`;
    const name = node.getAttribute('name');
    if (name) return `//${tag}[@name='${name}']`;
    const parts = [];
    for (; node && node.nodeType === 1; node = node.parentNode) {
      let index = 0;
      for (let sib = node.previousSibling; sib; sib = sib.previousSibling) {
        if (sib.nodeType === 1 && sib.nodeName === node.nodeName) index++;
      }
      parts.unshift(node.nodeName.toLowerCase() + (index ? `[${index + 1}]` : ''));
      if (node.id) break;
    }
    const path = parts.join('/');
    return path.startsWith('html') ? '/' + path : '//' + path;
  };
  const attr = (name) => el.getAttribute(name) || null;
  return {
    id: el.id || attr('id'),
    name: attr('name'),
    type: el.type || attr('type'),
    placeholder: attr('placeholder'),
    title: el.title || attr('title'),
    alt: attr('alt'),
    className: attr('class'),
    href: attr('href'),
    src: attr('src'),
    value: (typeof el.value === 'string' && el.value) || attr('value'),
    ariaLabel: attr('aria-label'),
    role: attr('role'),
    xpath: xpathOf(el),
  };
}
"""

# Live attribute key -> descriptor field refreshed from it.
_LIVE_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("id", "id"),
    ("name", "name"),
    ("placeholder", "placeholder"),
    ("title", "title"),
    ("alt", "alt"),
    ("className", "class_name"),
    ("href", "href"),
    ("src", "src"),
    ("value", "value"),
    ("ariaLabel", "aria_label"),
    ("role", "role"),
    ("xpath", "xpath"),
)


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


class SelectorResolver:
    """Try each candidate query in order and return the first unique match.

    When only ambiguous matches exist, lenient mode falls back to the first of
    them; strict mode fails. When nothing matches, the healing engine gets a
    chance if the descriptor carries a fingerprint.
    """

    def __init__(
        self,
        page: PageLike,
        config: Optional[RunConfig] = None,
        *,
        healer: Optional[SelfHealingEngine] = None,
    ) -> None:
        self.page = page
        self.config = config or RunConfig()
        self.healer = healer or SelfHealingEngine(page)

    def resolve(self, descriptor: Optional[ElementDescriptor]) -> ResolutionOutcome:
        if descriptor is None:
            raise ResolutionFailure("Action does not define an element", code=ActionErrorCode.INVALID_ACTION)

        queries = build_candidate_queries(descriptor)
        log.debug("Trying %d locator strategies for %s", len(queries), descriptor)

        first_multi: Optional[Tuple[CandidateQuery, LocatorLike, int]] = None
        for candidate in queries:
            try:
                locator = self.page.locator(candidate.query)
                count = locator.count()
            except Exception as exc:
                log.debug("Locator strategy %s raised for %s: %s", candidate.strategy, candidate.query, exc)
                continue
            if count == 1:
                log.debug("Unique element found by %s: %s", candidate.strategy, candidate.query)
                return self._outcome(locator, candidate, descriptor)
            if count > 1:
                log.debug("%d elements matched %s: %s", count, candidate.strategy, candidate.query)
                if first_multi is None:
                    first_multi = (candidate, locator, count)
            else:
                log.debug("No element matched %s: %s", candidate.strategy, candidate.query)

        if first_multi is not None:
            candidate, locator, count = first_multi
            if self.config.strict:
                raise ResolutionFailure(
                    f"No unique element for {descriptor}; {count} elements matched {candidate.query}",
                    code=ActionErrorCode.AMBIGUOUS_MATCH,
                    details={"strategy": candidate.strategy, "query": candidate.query, "match_count": count},
                )
            log.warning(
                "No unique element found, using first non-unique match %s -> %s (%d elements)",
                candidate.strategy,
                candidate.query,
                count,
            )
            return self._outcome(locator.first, candidate, descriptor, ambiguous=True, match_count=count)

        if self.config.healing_enabled and descriptor.fingerprint is not None:
            log.warning("Standard locators failed for %s, invoking self-healing", descriptor)
            match = self.healer.heal(descriptor)
            if match is not None:
                return self._healed(match, descriptor)

        raise ResolutionFailure(
            f"Element not found after {len(queries)} attempts: {describe_queries(queries)}",
            details={"locator": descriptor.best_locator(), "attempts": [query.as_dict() for query in queries]},
        )

    def successful_query(self, descriptor: ElementDescriptor) -> Optional[str]:
        """First candidate query that matches anything, for diagnostics."""

        for candidate in build_candidate_queries(descriptor):
            try:
                if self.page.locator(candidate.query).count() > 0:
                    return candidate.query
            except Exception as exc:
                log.debug("Diagnostic query %s failed: %s", candidate.query, exc)
        return None

    def capture_live(self, locator: LocatorLike, descriptor: ElementDescriptor) -> ElementDescriptor:
        """Copy of ``descriptor`` refreshed with the element's current attributes."""

        try:
            attributes: Dict[str, Any] = locator.evaluate(LIVE_ATTRIBUTES_SCRIPT) or {}
            live_text = locator.inner_text()
        except Exception as exc:
            log.debug("Could not capture live attributes: %s", exc)
            return descriptor
        update: Dict[str, Any] = {field: _blank_to_none(attributes.get(key)) for key, field in _LIVE_FIELDS}
        update["type"] = _blank_to_none(attributes.get("type")) or descriptor.type
        update["text"] = _blank_to_none((live_text or "").strip())
        return descriptor.model_copy(update=update)

    def _outcome(
        self,
        locator: LocatorLike,
        candidate: CandidateQuery,
        descriptor: ElementDescriptor,
        *,
        ambiguous: bool = False,
        match_count: int = 1,
    ) -> ResolutionOutcome:
        return ResolutionOutcome(
            locator=locator,
            strategy=candidate.strategy,
            query=candidate.query,
            descriptor=self.capture_live(locator, descriptor),
            ambiguous=ambiguous,
            match_count=match_count,
        )

    def _healed(self, match: HealedMatch, descriptor: ElementDescriptor) -> ResolutionOutcome:
        healed = descriptor.model_copy(update={"selector": match.query, "healed": True})
        healed = self.capture_live(match.locator, healed)
        report = HealingReport.compare(descriptor, healed, strategy=match.strategy, query=match.query)
        log.info("Healing report\n%s", report.render())
        return ResolutionOutcome(
            locator=match.locator,
            strategy=f"healing:{match.strategy}",
            query=match.query,
            descriptor=healed,
            healed=True,
            report=report,
        )
